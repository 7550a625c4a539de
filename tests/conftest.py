"""
Pytest config.

Pins the repo root on sys.path so `import report_viewer` works without an install,
and provides in-memory stand-ins for the outbound services.
"""

from __future__ import annotations

import sys
from pathlib import Path
from types import SimpleNamespace
from typing import Any, Dict, List

import pytest


def _ensure_repo_root_on_syspath() -> None:
    repo_root = Path(__file__).resolve().parents[1]
    repo_root_str = str(repo_root)
    if repo_root_str not in sys.path:
        sys.path.insert(0, repo_root_str)


_ensure_repo_root_on_syspath()

from postgrest.exceptions import APIError  # noqa: E402

from report_viewer.config import AppConfig, load_app_config  # noqa: E402

TEST_SECRET = "test-secret-key-for-testing-purposes-only"


@pytest.fixture(autouse=True)
def _clear_config_cache():
    load_app_config.cache_clear()
    yield
    load_app_config.cache_clear()


@pytest.fixture
def make_config():
    """Factory for an AppConfig with test-friendly defaults (no env involved)."""

    def _make(**overrides: Any) -> AppConfig:
        values: Dict[str, Any] = {
            "variant": "crm",
            "port": 3000,
            "base_url": "http://testserver",
            "session_secret": TEST_SECRET,
            "session_ttl_seconds": 3600,
            "cookie_secure": False,
            "crm_token": "test-token",
            "crm_api_base_url": "https://crm.example.test",
            "crm_api_version": "2021-07-28",
            "crm_max_retries": 2,
            "oidc_issuer": None,
            "oidc_client_id": None,
            "oidc_client_secret": None,
            "supabase_url": None,
            "supabase_key": None,
            "report_table": None,
            "return_url": None,
            "request_timeout_seconds": 5.0,
        }
        values.update(overrides)
        return AppConfig(**values)

    return _make


def no_rows_error() -> APIError:
    return APIError(
        {
            "code": "PGRST116",
            "message": "JSON object requested, multiple (or no) rows returned",
            "details": "The result contains 0 rows",
            "hint": None,
        }
    )


class FakeQuery:
    """Just enough of the PostgREST request builder for one filtered select."""

    def __init__(self, rows: List[Dict[str, Any]], error: Exception | None = None) -> None:
        self.rows = list(rows)
        self.error = error
        self.ops: List[tuple] = []
        self._single = False

    def select(self, *cols: str) -> "FakeQuery":
        self.ops.append(("select", cols))
        return self

    def eq(self, column: str, value: Any) -> "FakeQuery":
        self.ops.append(("eq", column, value))
        self.rows = [r for r in self.rows if r.get(column) == value]
        return self

    def order(self, column: str, desc: bool = False) -> "FakeQuery":
        self.ops.append(("order", column, desc))
        self.rows.sort(key=lambda r: r.get(column) or "", reverse=desc)
        return self

    def limit(self, n: int) -> "FakeQuery":
        self.ops.append(("limit", n))
        self.rows = self.rows[:n]
        return self

    def single(self) -> "FakeQuery":
        self.ops.append(("single",))
        self._single = True
        return self

    def execute(self) -> SimpleNamespace:
        if self.error is not None:
            raise self.error
        if self._single:
            if len(self.rows) != 1:
                raise no_rows_error()
            return SimpleNamespace(data=self.rows[0])
        return SimpleNamespace(data=self.rows)


class FakeSupabase:
    def __init__(self, tables: Dict[str, List[Dict[str, Any]]], error: Exception | None = None) -> None:
        self.tables = tables
        self.error = error
        self.queries: List[tuple] = []

    def table(self, name: str) -> FakeQuery:
        q = FakeQuery(self.tables.get(name, []), error=self.error)
        self.queries.append((name, q))
        return q


@pytest.fixture
def fake_supabase():
    return FakeSupabase
