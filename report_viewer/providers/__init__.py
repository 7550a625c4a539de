from __future__ import annotations

from report_viewer.config import AppConfig
from report_viewer.providers.base import ReportFetcher, ReportRecord, UnavailableFetcher

__all__ = ["ReportFetcher", "ReportRecord", "UnavailableFetcher", "build_fetcher"]

# variant -> (default table, content column, latest-row ordering)
DATASTORE_LAYOUTS = {
    "datastore": ("reports", "report_html", False),
    "datastore-latest": ("user_reports", "html_content", True),
    "oidc": ("user_reports", "html_content", True),
}


def build_fetcher(cfg: AppConfig) -> ReportFetcher:
    """
    Construct the fetcher for the configured variant.

    Raises ConfigurationError when the datastore is not configured.
    """
    if cfg.variant == "crm":
        from report_viewer.providers.crm_provider import CrmContactFetcher

        return CrmContactFetcher.from_config(cfg)

    from report_viewer.providers.supabase_provider import SupabaseReportStore, get_supabase

    table, content_field, latest = DATASTORE_LAYOUTS[cfg.variant]
    return SupabaseReportStore(
        get_supabase(cfg),
        table=cfg.report_table or table,
        content_field=content_field,
        latest=latest,
    )
