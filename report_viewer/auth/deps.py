from __future__ import annotations

from fastapi import HTTPException, Request

from report_viewer.auth.models import SessionData, SessionUser
from report_viewer.auth.session import decode_session, session_cookie_name
from report_viewer.config import AppConfig


def app_config(request: Request) -> AppConfig:
    return request.app.state.cfg


def load_session(request: Request) -> SessionData:
    """
    Return the request's session (empty if the cookie is missing, tampered, or expired).
    """
    cfg = app_config(request)
    return decode_session(cfg, request.cookies.get(session_cookie_name(cfg)))


def require_session_user(request: Request) -> SessionUser:
    """
    Guard: fail with 403 when the session carries no user.

    Not attached to any `crm` route (see DESIGN.md); routes opt in with `Depends`.
    """
    user = load_session(request).user
    if user is None:
        raise HTTPException(status_code=403, detail="Access denied. Invalid or missing authentication.")
    return user
