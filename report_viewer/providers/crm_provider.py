"""
CRM (LeadConnector/Topline-style) contact provider.

Environment variables:
- TOPLINE_PRIVATE_TOKEN: bearer token (private integration token)
- CRM_API_BASE_URL: API base (default: https://services.leadconnectorhq.com)
- CRM_API_VERSION: value of the `Version` header (default: 2021-07-28)
"""

from __future__ import annotations

import logging
import random
import time
from typing import Any, Callable, Dict, Optional
from urllib.parse import quote

import requests

from report_viewer.config import DEFAULT_CRM_API_BASE_URL, DEFAULT_CRM_API_VERSION, AppConfig
from report_viewer.errors import ConfigurationError, RecordNotFound, UpstreamError
from report_viewer.providers.base import ReportRecord

logger = logging.getLogger(__name__)

RETRYABLE_STATUS = frozenset({429, 502, 503, 504})
_BACKOFF_BASE_SECONDS = 0.25
_BACKOFF_CAP_SECONDS = 2.0


def _str_or(value: Any, default: str) -> str:
    s = str(value).strip() if value is not None else ""
    return s or default


def contact_to_record(contact_id: str, data: Dict[str, Any]) -> ReportRecord:
    """
    Project the API body onto a record. Every field has a fallback so a
    partially populated contact never raises.
    """
    contact = data.get("contact") if isinstance(data, dict) else None
    if not isinstance(contact, dict):
        contact = {}
    first = _str_or(contact.get("firstName"), "Member")
    last = _str_or(contact.get("lastName"), "")
    return ReportRecord(
        identifier=_str_or(contact.get("id"), contact_id),
        full_name=f"{first} {last}".strip(),
        email=_str_or(contact.get("email"), "Not provided"),
        company=_str_or(contact.get("companyName"), "") or None,
        contact={
            "id": _str_or(contact.get("id"), contact_id),
            "firstName": first,
            "lastName": last,
            "email": _str_or(contact.get("email"), "Not provided"),
            "phone": _str_or(contact.get("phone"), "Not provided"),
        },
    )


class CrmContactFetcher:
    """
    Fetch a single contact by ID with one GET (plus capped retries on transient failures).
    """

    def __init__(
        self,
        token: Optional[str],
        *,
        base_url: str = DEFAULT_CRM_API_BASE_URL,
        api_version: str = DEFAULT_CRM_API_VERSION,
        timeout: float = 10.0,
        max_retries: int = 2,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.token = token
        self.base_url = base_url.rstrip("/")
        self.api_version = api_version
        self.timeout = timeout
        self.max_retries = max(0, max_retries)
        self._sleep = sleep

    @classmethod
    def from_config(cls, cfg: AppConfig) -> "CrmContactFetcher":
        return cls(
            cfg.crm_token,
            base_url=cfg.crm_api_base_url,
            api_version=cfg.crm_api_version,
            timeout=cfg.request_timeout_seconds,
            max_retries=cfg.crm_max_retries,
        )

    def _backoff(self, attempt: int) -> float:
        # Full jitter on a capped exponential.
        ceiling = min(_BACKOFF_CAP_SECONDS, _BACKOFF_BASE_SECONDS * (2**attempt))
        return random.uniform(0, ceiling)

    def _get(self, url: str, headers: Dict[str, str]) -> requests.Response:
        attempt = 0
        while True:
            try:
                response = requests.get(url, headers=headers, timeout=self.timeout)
            except (requests.ConnectionError, requests.Timeout) as e:
                if attempt >= self.max_retries:
                    raise UpstreamError(f"CRM API request failed: {type(e).__name__}") from e
                logger.info("CRM API %s on attempt %d; retrying", type(e).__name__, attempt + 1)
            except requests.RequestException as e:
                raise UpstreamError(f"CRM API request failed: {type(e).__name__}") from e
            else:
                if response.status_code not in RETRYABLE_STATUS or attempt >= self.max_retries:
                    return response
                logger.info("CRM API returned %d on attempt %d; retrying", response.status_code, attempt + 1)
            self._sleep(self._backoff(attempt))
            attempt += 1

    def fetch(self, identifier: str) -> ReportRecord:
        if not self.token:
            raise ConfigurationError("TOPLINE_PRIVATE_TOKEN not configured")

        url = f"{self.base_url}/contacts/{quote(identifier, safe='')}"
        headers = {
            "Accept": "application/json",
            "Authorization": f"Bearer {self.token}",
            "Version": self.api_version,
        }
        response = self._get(url, headers)

        if response.status_code == 404:
            raise RecordNotFound(f"No contact found for ID {identifier}")
        if not response.ok:
            raise UpstreamError(
                f"API returned {response.status_code}: {response.reason or ''}".rstrip(),
                status_code=response.status_code,
            )
        try:
            data = response.json()
        except ValueError as e:
            raise UpstreamError("API returned a non-JSON body", status_code=response.status_code) from e
        return contact_to_record(identifier, data)
