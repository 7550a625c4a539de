"""
Errors raised while resolving a report.

Handlers map these onto HTML error pages; nothing here knows about HTTP.
"""
from __future__ import annotations

from typing import Optional


class ReportError(Exception):
    """Base class for failures while fetching a report record."""


class ConfigurationError(ReportError):
    """A required secret or setting is missing (raised before any network call)."""


class UpstreamError(ReportError):
    """The CRM API or datastore answered with a non-success result."""

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class RecordNotFound(ReportError):
    """No record exists for the requested identifier."""


class ReportNotReady(ReportError):
    """A record exists but has no renderable report content yet."""


class AuthFlowError(Exception):
    """OIDC login could not be completed (state mismatch, token exchange, bad claims)."""
