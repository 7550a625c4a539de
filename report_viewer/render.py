"""
HTML rendering for every page the servers return.

All functions are pure: data in, document string out. Templates autoescape,
so record fields and error messages can never inject markup. The only
exception is the report body stored upstream (`content_html`), which is
trusted markup and passed through unchanged.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from jinja2 import Environment, PackageLoader, select_autoescape
from markupsafe import Markup

from report_viewer.auth.models import SessionUser
from report_viewer.providers.base import ReportRecord

# Where "Done" goes when no return URL is configured.
FALLBACK_RETURN_URL = "javascript:window.close();"

_env = Environment(
    loader=PackageLoader("report_viewer", "templates"),
    autoescape=select_autoescape(["html"]),
    trim_blocks=True,
    lstrip_blocks=True,
)


@dataclass(frozen=True)
class DoneAction:
    method: str  # get (link) | post (form)
    target: str


def done_link(return_url: Optional[str]) -> DoneAction:
    return DoneAction(method="get", target=return_url or FALLBACK_RETURN_URL)


def done_form(action: str = "/done") -> DoneAction:
    """`POST /done` clears the session, then redirects to the return URL."""
    return DoneAction(method="post", target=action)


def render_home() -> str:
    return _env.get_template("home.html").render()


def render_error(heading: str, message: str, *, detail: Optional[str] = None, notice: bool = False) -> str:
    return _env.get_template("error.html").render(
        page_title="Error" if not notice else heading,
        heading=heading,
        message=message,
        detail=detail,
        css_class="notice" if notice else "error",
    )


def render_contact_report(
    user: SessionUser,
    record: ReportRecord,
    done: DoneAction,
    *,
    now: Optional[datetime] = None,
) -> str:
    now = now or datetime.now()
    return _env.get_template("contact_report.html").render(
        user=user,
        record=record,
        done=done,
        generated_date=now.strftime("%m/%d/%Y"),
        generated_time=now.strftime("%I:%M:%S %p"),
    )


def render_stored_report(record: ReportRecord, done: DoneAction, *, user: Optional[SessionUser] = None) -> str:
    return _env.get_template("stored_report.html").render(
        record=record,
        user=user,
        done=done,
        content=Markup(record.content_html or ""),
    )
