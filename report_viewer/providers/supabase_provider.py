"""
Supabase (PostgREST) report store.

Reads one row per request from a reports table, matched on email.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional
from urllib.parse import urlparse

import httpx
from postgrest.exceptions import APIError
from supabase import Client, ClientOptions, create_client

from report_viewer.config import AppConfig
from report_viewer.errors import ConfigurationError, RecordNotFound, ReportNotReady, UpstreamError
from report_viewer.providers.base import ReportRecord

logger = logging.getLogger(__name__)

# PostgREST: "JSON object requested, multiple (or no) rows returned" from `.single()`.
NO_ROWS_CODE = "PGRST116"


def get_supabase(cfg: AppConfig) -> Client:
    url = cfg.supabase_url or ""
    key = cfg.supabase_key or ""
    if not url or not key:
        raise ConfigurationError("Missing Supabase config. Set SUPABASE_URL and SUPABASE_KEY")

    parsed = urlparse(url)
    if not parsed.scheme or not parsed.netloc:
        raise ConfigurationError("Invalid SUPABASE_URL. It should look like https://<project-ref>.supabase.co")

    options = ClientOptions(postgrest_client_timeout=cfg.request_timeout_seconds)
    return create_client(url, key, options=options)


def _opt_str(row: Dict[str, Any], key: str) -> Optional[str]:
    v = row.get(key)
    if v is None:
        return None
    s = str(v).strip()
    return s or None


class SupabaseReportStore:
    """
    Look up the report row for an email.

    With `latest=True` the most recent row wins (`order by created_at desc limit 1`);
    otherwise exactly one row must match.
    """

    def __init__(self, client: Client, *, table: str, content_field: str, latest: bool = False) -> None:
        self.client = client
        self.table = table
        self.content_field = content_field
        self.latest = latest

    def _query(self, email: str) -> Any:
        q = self.client.table(self.table).select("*").eq("email", email)
        if self.latest:
            q = q.order("created_at", desc=True).limit(1)
        return q.single().execute()

    def fetch(self, identifier: str) -> ReportRecord:
        try:
            res = self._query(identifier)
        except APIError as e:
            if getattr(e, "code", None) == NO_ROWS_CODE:
                raise RecordNotFound(f"No report found for {identifier}") from e
            logger.warning("Supabase query on %s failed: code=%s", self.table, getattr(e, "code", None))
            raise UpstreamError(getattr(e, "message", None) or str(e)) from e
        except httpx.HTTPError as e:
            raise UpstreamError(f"Datastore request failed: {type(e).__name__}") from e

        row = getattr(res, "data", None)
        if isinstance(row, list):
            row = row[0] if row else None
        if not isinstance(row, dict):
            raise ReportNotReady(f"Report for {identifier} is not ready yet")

        content = row.get(self.content_field)
        if not (isinstance(content, str) and content.strip()):
            raise ReportNotReady(f"Report for {identifier} is not ready yet")

        return ReportRecord(
            identifier=identifier,
            full_name=_opt_str(row, "full_name") or _opt_str(row, "name") or "",
            email=_opt_str(row, "email") or identifier,
            company=_opt_str(row, "company"),
            report_type=_opt_str(row, "report_type"),
            created_at=_opt_str(row, "created_at"),
            content_html=content,
        )
