from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

VARIANTS = ("crm", "datastore", "datastore-latest", "oidc")

DEFAULT_CRM_API_BASE_URL = "https://services.leadconnectorhq.com"
DEFAULT_CRM_API_VERSION = "2021-07-28"


@dataclass(frozen=True)
class AppConfig:
    variant: str
    port: int
    base_url: str  # Used to build the OIDC redirect URI

    # Session configuration
    session_secret: Optional[str]  # None -> random per-process secret
    session_ttl_seconds: int
    cookie_secure: bool

    # CRM (REST) configuration
    crm_token: Optional[str]
    crm_api_base_url: str
    crm_api_version: str
    crm_max_retries: int

    # OIDC configuration (optional)
    oidc_issuer: Optional[str]
    oidc_client_id: Optional[str]
    oidc_client_secret: Optional[str]

    # Datastore configuration
    supabase_url: Optional[str]
    supabase_key: Optional[str]
    report_table: Optional[str]  # None -> variant default

    return_url: Optional[str]
    request_timeout_seconds: float

    @property
    def oidc_configured(self) -> bool:
        """OIDC is usable only if issuer and client credentials are all set."""
        return bool(self.oidc_issuer and self.oidc_client_id and self.oidc_client_secret)

    @property
    def datastore_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_key)

    @property
    def redirect_uri(self) -> str:
        return f"{self.base_url.rstrip('/')}/auth/callback"


def _env(name: str) -> Optional[str]:
    return (os.getenv(name, "") or "").strip() or None


def _env_bool(name: str) -> Optional[bool]:
    v = (os.getenv(name, "") or "").strip().lower()
    if v in ("1", "true", "yes", "on"):
        return True
    if v in ("0", "false", "no", "off"):
        return False
    return None


def _env_int(name: str, default: int) -> int:
    raw = (os.getenv(name, "") or "").strip()
    if not raw:
        return default
    try:
        return int(float(raw))
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = (os.getenv(name, "") or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


@lru_cache(maxsize=1)
def load_app_config() -> AppConfig:
    """
    Load configuration from environment variables.

    Everything is optional: a variant whose backing service is not configured
    still starts and reports the problem per request.
    """
    variant = (os.getenv("REPORT_VARIANT", "") or "crm").strip().lower()
    if variant not in VARIANTS:
        raise ValueError(f"Unknown REPORT_VARIANT {variant!r} (expected one of: {', '.join(VARIANTS)})")

    port = _env_int("PORT", 3000)
    base_url = (_env("BASE_URL") or f"http://localhost:{port}").rstrip("/")

    cookie_secure = _env_bool("COOKIE_SECURE")
    if cookie_secure is None:
        # Default: secure cookies in production or behind https; otherwise allow local dev.
        cookie_secure = (os.getenv("NODE_ENV", "") or "").strip().lower() == "production" or base_url.startswith(
            "https://"
        )

    ttl = _env_int("SESSION_TTL_SECONDS", 3600)
    if ttl <= 60:
        ttl = 60

    supabase_key = _env("SUPABASE_KEY") or _env("SUPABASE_SERVICE_ROLE_KEY") or _env("SUPABASE_ANON_KEY")

    timeout = _env_float("REQUEST_TIMEOUT_SECONDS", 10.0)
    if timeout <= 0:
        timeout = 10.0

    return AppConfig(
        variant=variant,
        port=port,
        base_url=base_url,
        session_secret=_env("SESSION_SECRET"),
        session_ttl_seconds=ttl,
        cookie_secure=cookie_secure,
        crm_token=_env("TOPLINE_PRIVATE_TOKEN"),
        crm_api_base_url=(_env("CRM_API_BASE_URL") or DEFAULT_CRM_API_BASE_URL).rstrip("/"),
        crm_api_version=_env("CRM_API_VERSION") or DEFAULT_CRM_API_VERSION,
        crm_max_retries=max(0, _env_int("CRM_MAX_RETRIES", 2)),
        oidc_issuer=_env("OIDC_ISSUER"),
        oidc_client_id=_env("OIDC_CLIENT_ID"),
        oidc_client_secret=_env("OIDC_CLIENT_SECRET"),
        supabase_url=_env("SUPABASE_URL"),
        supabase_key=supabase_key,
        report_table=_env("REPORT_TABLE"),
        return_url=_env("TOPLINE_RETURN_URL") or _env("RETURN_URL"),
        request_timeout_seconds=timeout,
    )
