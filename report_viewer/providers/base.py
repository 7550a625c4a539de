from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol

from report_viewer.errors import ConfigurationError


@dataclass(frozen=True)
class ReportRecord:
    """Read-only projection of an externally owned record (CRM contact or datastore row)."""

    identifier: str
    full_name: str = ""
    email: str = ""
    company: Optional[str] = None
    report_type: Optional[str] = None
    created_at: Optional[str] = None
    # Upstream-provided markup; rendered as-is.
    content_html: Optional[str] = None
    contact: Dict[str, Any] = field(default_factory=dict)


class ReportFetcher(Protocol):
    """One outbound lookup per call; raises `report_viewer.errors.ReportError` subclasses."""

    def fetch(self, identifier: str) -> ReportRecord:
        """
        Fetch the record for a contact ID or email.

        Raises:
            ConfigurationError: a required secret is missing
            RecordNotFound: nothing matches the identifier
            ReportNotReady: matched, but no report content yet
            UpstreamError: any other upstream failure
        """
        ...


class UnavailableFetcher:
    """Stand-in when the backing service could not be configured at startup."""

    def __init__(self, message: str) -> None:
        self.message = message

    def fetch(self, identifier: str) -> ReportRecord:
        raise ConfigurationError(self.message)
