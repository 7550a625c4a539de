#!/usr/bin/env python3
"""
Report Viewer - "view my report" web server.
Serves one variant per process: crm, datastore, datastore-latest, or oidc.
"""

import argparse
import logging
import os
import sys

# Configure logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s", stream=sys.stderr
)

#
# NOTE: Keep report_viewer imports lazy (inside main) so `--help` works without the web stack installed.
#


def main():
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Serve the report viewer",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # CRM contact lookup (TOPLINE_PRIVATE_TOKEN required)
  python main.py --variant crm

  # Latest datastore report behind OIDC login
  python main.py --variant oidc --port 8080
        """,
    )
    parser.add_argument(
        "--variant",
        choices=["crm", "datastore", "datastore-latest", "oidc"],
        help="Server variant (default: REPORT_VARIANT or crm)",
    )
    parser.add_argument("--host", default="0.0.0.0", help="Bind host (default: 0.0.0.0)")
    parser.add_argument("--port", type=int, help="Listen port (default: PORT or 3000)")

    args = parser.parse_args()

    if args.variant:
        os.environ["REPORT_VARIANT"] = args.variant

    try:
        from report_viewer.api.server import run

        run(host=args.host, port=args.port)
    except Exception as e:
        print(f"Error starting report viewer: {e}", file=sys.stderr)
        raise


if __name__ == "__main__":
    main()
