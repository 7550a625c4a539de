"""
HTTP surface of the report viewer.

One process serves one variant (`crm`, `datastore`, `datastore-latest`, `oidc`).
The fetcher and the SSO client are built once at startup and handed to
`create_app`; handlers read them from `app.state`.
"""
from __future__ import annotations

import logging
import os
import secrets
import time
from dataclasses import replace
from typing import Optional, Tuple

from fastapi import APIRouter, FastAPI, Query, Request
from fastapi.responses import HTMLResponse, PlainTextResponse, RedirectResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from report_viewer.auth.deps import app_config, load_session
from report_viewer.auth.models import SessionData, SessionUser
from report_viewer.auth.oidc import OidcClient, Sso, discover_sso, pkce_challenge
from report_viewer.auth.session import (
    clear_session_cookie_kwargs,
    encode_session,
    new_login_secret,
    remembered_path,
    session_cookie_kwargs,
    state_matches,
)
from report_viewer.config import AppConfig, load_app_config
from report_viewer.errors import ConfigurationError, RecordNotFound, ReportNotReady, UpstreamError
from report_viewer.providers import ReportFetcher, ReportRecord, UnavailableFetcher, build_fetcher
from report_viewer.render import (
    done_form,
    done_link,
    render_contact_report,
    render_error,
    render_home,
    render_stored_report,
)

logger = logging.getLogger(__name__)

# Accepted query parameters per variant, in precedence order.
IDENTIFIER_PARAMS = {
    "crm": ("contact_id", "user_id", "id"),
    "datastore": ("email",),
    "datastore-latest": ("email",),
    "oidc": ("email",),
}

_MISSING_IDENTIFIER_PAGES = {
    "crm": (
        "Missing Contact Information",
        "No contact ID was provided. Please access this from your member dashboard.",
    ),
    "email": (
        "Missing Email Address",
        "No email address was provided. Please access this from your member dashboard.",
    ),
}

pages = APIRouter()
sso_routes = APIRouter()


def _html(body: str, status_code: int = 200) -> HTMLResponse:
    resp = HTMLResponse(content=body, status_code=status_code)
    resp.headers["Cache-Control"] = "no-store"
    return resp


def _store_session(resp: Response, cfg: AppConfig, session: SessionData) -> None:
    if session.is_empty:
        resp.set_cookie(**clear_session_cookie_kwargs(cfg))
        return
    value = encode_session(cfg, session)
    if value:
        resp.set_cookie(**session_cookie_kwargs(cfg, value))


def _identifier(request: Request, variant: str) -> Optional[str]:
    for name in IDENTIFIER_PARAMS[variant]:
        value = (request.query_params.get(name) or "").strip()
        if value:
            return value
    return None


def _missing_identifier_page(variant: str) -> HTMLResponse:
    heading, message = _MISSING_IDENTIFIER_PAGES["crm" if variant == "crm" else "email"]
    return _html(render_error(heading, message), status_code=400)


def _sso_not_configured(sso: Optional[Sso]) -> HTMLResponse:
    reason = getattr(sso, "reason", None) or "SSO is not enabled for this server"
    logger.info("SSO requested but not configured: %s", reason)
    return _html(
        render_error("SSO not configured", "Single sign-on is not configured. Please contact support."),
        status_code=503,
    )


def _login_failed() -> HTMLResponse:
    # Deliberately generic: the underlying reason is only logged.
    return _html(
        render_error("Login failed", "We could not sign you in. Please try again from your member dashboard."),
        status_code=400,
    )


def _fetch(request: Request, identifier: str) -> Tuple[Optional[ReportRecord], Optional[HTMLResponse]]:
    """Run the fetcher and convert every failure into an error page."""
    fetcher: ReportFetcher = request.app.state.fetcher
    try:
        return fetcher.fetch(identifier), None
    except RecordNotFound:
        logger.info("Report not found for identifier=%s", identifier)
        return None, _html(
            render_error("Report Not Found", "We couldn't find a report for the details provided."),
            status_code=404,
        )
    except ReportNotReady:
        logger.info("Report not ready for identifier=%s", identifier)
        return None, _html(
            render_error(
                "Report Not Ready",
                "Your report is still being prepared. Please check back later.",
                notice=True,
            ),
            status_code=404,
        )
    except (ConfigurationError, UpstreamError) as e:
        logger.error("Error loading report: %s", str(e))
        detail = str(e)
    except Exception as e:
        logger.exception("Unexpected error loading report")
        detail = f"Unexpected error ({type(e).__name__})"
    return None, _html(
        render_error(
            "Error Loading Report",
            "Unable to retrieve your information. Please try again or contact support.",
            detail=detail,
        ),
        status_code=500,
    )


@pages.get("/", response_class=HTMLResponse)
def home() -> HTMLResponse:
    return _html(render_home())


@pages.get("/healthz", response_class=PlainTextResponse)
def healthz() -> PlainTextResponse:
    return PlainTextResponse("OK")


@pages.get("/report", response_class=HTMLResponse)
def report(request: Request) -> Response:
    """Look up the caller's record and render it."""
    cfg = app_config(request)
    session = load_session(request)

    if cfg.variant == "oidc" and session.user is None:
        target = request.url.path + (f"?{request.url.query}" if request.url.query else "")
        session.next_path = remembered_path(target)
        resp = RedirectResponse(url="/login", status_code=302)
        resp.headers["Cache-Control"] = "no-store"
        _store_session(resp, cfg, session)
        return resp

    identifier = _identifier(request, cfg.variant)
    if not identifier:
        return _missing_identifier_page(cfg.variant)

    record, error_page = _fetch(request, identifier)
    if error_page is not None:
        return error_page

    if cfg.variant == "crm":
        contact = record.contact
        session.user = SessionUser(
            provider="crm",
            id=contact.get("id") or identifier,
            first_name=contact.get("firstName") or "Member",
            last_name=contact.get("lastName") or "",
            email=contact.get("email") or "Not provided",
            phone=contact.get("phone") or "Not provided",
        )
        resp = _html(render_contact_report(session.user, record, done_link(cfg.return_url)))
        _store_session(resp, cfg, session)
        return resp

    done = done_form() if cfg.variant == "oidc" else done_link(cfg.return_url)
    return _html(render_stored_report(record, done, user=session.user))


@sso_routes.get("/login")
def login(request: Request) -> Response:
    """Start the authorization-code + PKCE flow."""
    cfg = app_config(request)
    sso: Sso = request.app.state.sso
    if not isinstance(sso, OidcClient):
        return _sso_not_configured(sso)

    session = load_session(request)
    session.state = new_login_secret()
    session.nonce = new_login_secret()
    session.code_verifier = new_login_secret()
    url = sso.build_authorize_url(
        state=session.state,
        nonce=session.nonce,
        code_challenge=pkce_challenge(session.code_verifier),
    )

    resp = RedirectResponse(url=url, status_code=302)
    resp.headers["Cache-Control"] = "no-store"
    _store_session(resp, cfg, session)
    return resp


@sso_routes.get("/auth/callback")
def auth_callback(
    request: Request,
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
) -> Response:
    """Finish the login: check state, exchange the code, populate the session user."""
    cfg = app_config(request)
    sso: Sso = request.app.state.sso
    if not isinstance(sso, OidcClient):
        return _sso_not_configured(sso)

    session = load_session(request)
    expected_state = session.state or ""
    verifier = session.code_verifier or ""
    nonce = session.nonce or ""
    next_path = remembered_path(session.next_path)
    session.clear_pending_login()

    failure: Optional[str] = None
    if error:
        failure = f"provider returned error={error}"
    elif not code:
        failure = "missing code"
    elif not state_matches(expected_state, state):
        failure = "state mismatch"
    elif not verifier:
        failure = "missing PKCE verifier"

    claims = None
    if failure is None:
        try:
            claims = sso.complete_login(code=code or "", code_verifier=verifier, nonce=nonce)
        except Exception as e:
            failure = f"{type(e).__name__}: {e}"

    if failure is not None or claims is None:
        logger.warning("OIDC callback failed: %s", failure)
        resp = _login_failed()
        _store_session(resp, cfg, session)
        return resp

    email = str(claims.get("email") or "").strip()
    name = str(claims.get("name") or "").strip()
    session.user = SessionUser(
        provider="oidc",
        id=str(claims.get("sub")),
        first_name=name or email or "Member",
        email=email or "Not provided",
    )
    logger.info("OIDC login completed for sub=%s", session.user.id)

    resp = RedirectResponse(url=next_path, status_code=302)
    resp.headers["Cache-Control"] = "no-store"
    _store_session(resp, cfg, session)
    return resp


@sso_routes.post("/done")
def done(request: Request) -> Response:
    """Destroy the session and send the browser back to the caller."""
    cfg = app_config(request)
    # A `javascript:` fallback is not a valid redirect target.
    resp = RedirectResponse(url=cfg.return_url or "/", status_code=303)
    resp.headers["Cache-Control"] = "no-store"
    resp.set_cookie(**clear_session_cookie_kwargs(cfg))
    return resp


async def _http_exception_page(request: Request, exc: StarletteHTTPException) -> HTMLResponse:
    heading = "Access Denied" if exc.status_code == 403 else "Error"
    return HTMLResponse(
        content=render_error(heading, str(exc.detail)),
        status_code=exc.status_code,
        headers=getattr(exc, "headers", None),
    )


def create_app(cfg: AppConfig, *, fetcher: ReportFetcher, sso: Optional[Sso] = None) -> FastAPI:
    """
    Wire one variant's routes around an already-constructed fetcher and SSO client.
    """
    if not cfg.session_secret:
        logger.warning("SESSION_SECRET is not set; using a random per-process secret (sessions reset on restart)")
        cfg = replace(cfg, session_secret=secrets.token_urlsafe(32))

    app = FastAPI(title="Report viewer", docs_url=None, redoc_url=None, openapi_url=None)
    app.state.cfg = cfg
    app.state.fetcher = fetcher
    app.state.sso = sso

    app.include_router(pages)
    if cfg.variant == "oidc":
        app.include_router(sso_routes)
    app.add_exception_handler(StarletteHTTPException, _http_exception_page)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log all incoming HTTP requests."""
        start_time = time.time()
        logger.debug("%s %s", request.method, request.url.path)
        try:
            response = await call_next(request)
        except Exception as e:
            process_time = time.time() - start_time
            logger.exception("%s %s - ERROR after %.3fs: %s", request.method, request.url.path, process_time, str(e))
            raise
        process_time = time.time() - start_time
        logger.debug("%s %s - %d (%.3fs)", request.method, request.url.path, response.status_code, process_time)
        return response

    return app


def build_app(cfg: Optional[AppConfig] = None) -> FastAPI:
    """
    Build the app for the configured variant from environment variables.

    Missing backing-service configuration never prevents startup; it is
    reported per request instead.
    """
    cfg = cfg or load_app_config()
    try:
        fetcher: ReportFetcher = build_fetcher(cfg)
    except ConfigurationError as e:
        logger.warning("Report fetcher unavailable: %s", str(e))
        fetcher = UnavailableFetcher(str(e))

    sso: Optional[Sso] = discover_sso(cfg) if cfg.variant == "oidc" else None

    # Avoid logging secrets; presence flags only.
    logger.info(
        "Report viewer config: variant=%s base_url=%s crm_token=%s datastore=%s sso=%s return_url=%s",
        cfg.variant,
        cfg.base_url,
        "yes" if cfg.crm_token else "no",
        "yes" if cfg.datastore_configured else "no",
        "n/a" if sso is None else ("yes" if isinstance(sso, OidcClient) else "no"),
        "yes" if cfg.return_url else "no",
    )
    return create_app(cfg, fetcher=fetcher, sso=sso)


def run(host: str = "0.0.0.0", port: Optional[int] = None) -> None:
    import uvicorn

    log_level = os.getenv("LOG_LEVEL", "info").upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    logger.setLevel(getattr(logging, log_level, logging.INFO))

    uvicorn_log_level = (
        log_level.lower() if log_level.lower() in ["critical", "error", "warning", "info", "debug", "trace"] else "info"
    )

    cfg = load_app_config()
    app = build_app(cfg)
    listen_port = port or cfg.port
    logger.info("Starting report viewer (%s) on %s:%d (log_level=%s)", cfg.variant, host, listen_port, log_level)
    uvicorn.run(app, host=host, port=listen_port, log_level=uvicorn_log_level)
