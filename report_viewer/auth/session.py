from __future__ import annotations

import hmac
import json
import secrets
from dataclasses import asdict
from typing import Any, Dict, Optional

from itsdangerous import BadSignature, BadTimeSignature, URLSafeTimedSerializer

from report_viewer.auth.models import SessionData, SessionUser
from report_viewer.config import AppConfig

SESSION_SALT = "report-viewer-session-v1"
DEFAULT_NEXT_PATH = "/report"


def new_login_secret() -> str:
    """URL-safe random value for state, nonce, and the PKCE verifier (43 chars)."""
    return secrets.token_urlsafe(32)


def state_matches(expected: str | None, received: str | None) -> bool:
    if not expected or not received:
        return False
    # Byte comparison: compare_digest rejects non-ASCII str input.
    return hmac.compare_digest(expected.encode("utf-8"), received.strip().encode("utf-8"))


def remembered_path(target: str | None) -> str:
    """
    Where to send the browser after login. Only same-origin paths are kept;
    anything that could leave the site falls back to `/report`.
    """
    path = (target or "").replace("\r", "").replace("\n", "").strip()
    if not path.startswith("/") or path[1:2] in ("/", "\\"):
        return DEFAULT_NEXT_PATH
    return path


def session_cookie_name(cfg: AppConfig) -> str:
    # `__Host-` requires Secure + Path=/ + no Domain; browsers may reject it on HTTP.
    return "__Host-report_viewer_session" if cfg.cookie_secure else "report_viewer_session"


def _serializer(cfg: AppConfig) -> Optional[URLSafeTimedSerializer]:
    if not cfg.session_secret:
        return None
    return URLSafeTimedSerializer(secret_key=cfg.session_secret, salt=SESSION_SALT)


def encode_session(cfg: AppConfig, data: SessionData) -> Optional[str]:
    s = _serializer(cfg)
    if s is None:
        return None
    payload = asdict(data)
    # Keep cookie small: drop unset keys (no tokens are ever stored).
    payload = {k: v for k, v in payload.items() if v is not None}
    raw = json.dumps(payload, separators=(",", ":"), sort_keys=True)
    return s.dumps(raw)


def _user_from_dict(data: Any) -> Optional[SessionUser]:
    if not isinstance(data, dict):
        return None
    user_id = str(data.get("id") or "").strip()
    if not user_id:
        return None
    return SessionUser(
        provider=str(data.get("provider") or "").strip() or "crm",
        id=user_id,
        first_name=str(data.get("first_name") or "Member"),
        last_name=str(data.get("last_name") or ""),
        email=str(data.get("email") or "Not provided"),
        phone=str(data.get("phone") or "Not provided"),
    )


def _opt_str(data: Dict[str, Any], key: str) -> Optional[str]:
    v = data.get(key)
    return str(v) if v else None


def decode_session(cfg: AppConfig, value: str | None) -> SessionData:
    """Decode a session cookie. Missing, tampered, or expired cookies yield an empty session."""
    if not value:
        return SessionData()
    s = _serializer(cfg)
    if s is None:
        return SessionData()
    try:
        raw = s.loads(value, max_age=cfg.session_ttl_seconds)
        data = json.loads(raw)
    except (BadSignature, BadTimeSignature, ValueError):
        return SessionData()
    if not isinstance(data, dict):
        return SessionData()
    return SessionData(
        user=_user_from_dict(data.get("user")),
        code_verifier=_opt_str(data, "code_verifier"),
        state=_opt_str(data, "state"),
        nonce=_opt_str(data, "nonce"),
        next_path=_opt_str(data, "next_path"),
    )


def clear_session_cookie_kwargs(cfg: AppConfig) -> dict:
    return {
        "key": session_cookie_name(cfg),
        "value": "",
        "max_age": 0,
        "httponly": True,
        "secure": cfg.cookie_secure,
        "samesite": "lax",
        "path": "/",
    }


def session_cookie_kwargs(cfg: AppConfig, value: str) -> dict:
    return {
        "key": session_cookie_name(cfg),
        "value": value,
        "max_age": cfg.session_ttl_seconds,
        "httponly": True,
        "secure": cfg.cookie_secure,
        "samesite": "lax",
        "path": "/",
    }
