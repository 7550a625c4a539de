from __future__ import annotations

import pytest

from report_viewer.config import load_app_config


def _clear_env(monkeypatch) -> None:
    for name in (
        "REPORT_VARIANT",
        "PORT",
        "BASE_URL",
        "SESSION_SECRET",
        "SESSION_TTL_SECONDS",
        "COOKIE_SECURE",
        "NODE_ENV",
        "TOPLINE_PRIVATE_TOKEN",
        "CRM_API_BASE_URL",
        "CRM_MAX_RETRIES",
        "OIDC_ISSUER",
        "OIDC_CLIENT_ID",
        "OIDC_CLIENT_SECRET",
        "SUPABASE_URL",
        "SUPABASE_KEY",
        "SUPABASE_SERVICE_ROLE_KEY",
        "SUPABASE_ANON_KEY",
        "REPORT_TABLE",
        "TOPLINE_RETURN_URL",
        "RETURN_URL",
        "REQUEST_TIMEOUT_SECONDS",
    ):
        monkeypatch.delenv(name, raising=False)


def test_defaults(monkeypatch) -> None:
    _clear_env(monkeypatch)
    cfg = load_app_config()
    assert cfg.variant == "crm"
    assert cfg.port == 3000
    assert cfg.base_url == "http://localhost:3000"
    assert cfg.redirect_uri == "http://localhost:3000/auth/callback"
    assert cfg.session_ttl_seconds == 3600
    assert cfg.cookie_secure is False
    assert cfg.crm_api_base_url == "https://services.leadconnectorhq.com"
    assert cfg.crm_api_version == "2021-07-28"
    assert cfg.request_timeout_seconds == 10.0
    assert cfg.return_url is None
    assert cfg.oidc_configured is False
    assert cfg.datastore_configured is False


def test_production_forces_secure_cookies(monkeypatch) -> None:
    _clear_env(monkeypatch)
    monkeypatch.setenv("NODE_ENV", "production")
    assert load_app_config().cookie_secure is True


def test_https_base_url_defaults_to_secure_cookies_unless_overridden(monkeypatch) -> None:
    _clear_env(monkeypatch)
    monkeypatch.setenv("BASE_URL", "https://reports.example.com/")
    cfg = load_app_config()
    assert cfg.cookie_secure is True
    assert cfg.redirect_uri == "https://reports.example.com/auth/callback"

    load_app_config.cache_clear()
    monkeypatch.setenv("COOKIE_SECURE", "false")
    assert load_app_config().cookie_secure is False


def test_unknown_variant_is_rejected(monkeypatch) -> None:
    _clear_env(monkeypatch)
    monkeypatch.setenv("REPORT_VARIANT", "graphql")
    with pytest.raises(ValueError, match="Unknown REPORT_VARIANT"):
        load_app_config()


def test_aliases_and_bounds(monkeypatch) -> None:
    _clear_env(monkeypatch)
    monkeypatch.setenv("REPORT_VARIANT", "Datastore-Latest")
    monkeypatch.setenv("SUPABASE_URL", "https://abc.supabase.co")
    monkeypatch.setenv("SUPABASE_SERVICE_ROLE_KEY", "service-key")
    monkeypatch.setenv("RETURN_URL", "https://dashboard.example.com")
    monkeypatch.setenv("SESSION_TTL_SECONDS", "5")
    monkeypatch.setenv("CRM_MAX_RETRIES", "-3")
    monkeypatch.setenv("REQUEST_TIMEOUT_SECONDS", "nope")

    cfg = load_app_config()
    assert cfg.variant == "datastore-latest"
    assert cfg.supabase_key == "service-key"
    assert cfg.datastore_configured is True
    assert cfg.return_url == "https://dashboard.example.com"
    assert cfg.session_ttl_seconds == 60
    assert cfg.crm_max_retries == 0
    assert cfg.request_timeout_seconds == 10.0


def test_topline_return_url_wins_over_alias(monkeypatch) -> None:
    _clear_env(monkeypatch)
    monkeypatch.setenv("TOPLINE_RETURN_URL", "https://app.example.com/dashboard")
    monkeypatch.setenv("RETURN_URL", "https://other.example.com")
    assert load_app_config().return_url == "https://app.example.com/dashboard"


def test_oidc_requires_all_three_settings(monkeypatch) -> None:
    _clear_env(monkeypatch)
    monkeypatch.setenv("OIDC_ISSUER", "https://idp.example.com")
    monkeypatch.setenv("OIDC_CLIENT_ID", "client")
    assert load_app_config().oidc_configured is False

    load_app_config.cache_clear()
    monkeypatch.setenv("OIDC_CLIENT_SECRET", "secret")
    assert load_app_config().oidc_configured is True
