"""Pytest configuration and shared fixtures.

Every test gets its own file-backed SQLite database bootstrapped from the ORM
metadata, wrapped by a ``RecordingStore`` that counts calls and can script
rate-limit or error responses. Clocks and sleep are fakes so cache TTLs and
backoff are deterministic.
"""

# ruff: noqa: E402
from __future__ import annotations

import sys
from collections.abc import Iterator
from datetime import UTC, datetime
from pathlib import Path

import pytest

# Make the workspace packages importable without an editable install
_ROOT = Path(__file__).resolve().parents[1]
for _p in (_ROOT / "packages", _ROOT / "libs" / "db" / "src", _ROOT):
    if str(_p) not in sys.path:
        sys.path.insert(0, str(_p))

from db.client import dispose_engines
from fnzo.api import Services, build_services
from fnzo.config import Settings
from fnzo.sql_store import SqlStore

from tests.helpers.db import bootstrap_sqlite_db
from tests.helpers.store import FakeClock, RecordingSleep, RecordingStore

USER_ID = "user-1"
# Mid-month so the "current month" window is unambiguous
FIXED_NOW = datetime(2024, 5, 15, 12, 0, tzinfo=UTC)


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep a developer's shell/.env settings out of the tests."""

    for name in (
        "SUPABASE_URL",
        "NEXT_PUBLIC_SUPABASE_URL",
        "SUPABASE_ANON_KEY",
        "NEXT_PUBLIC_SUPABASE_ANON_KEY",
        "DATABASE_URL",
        "FNZO_USER_ID",
        "FNZO_SESSION_FILE",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def database_url(tmp_path: Path) -> Iterator[str]:
    yield bootstrap_sqlite_db(tmp_path / "ledger.sqlite3")
    dispose_engines()


@pytest.fixture
def sql_store(database_url: str) -> SqlStore:
    return SqlStore(database_url, USER_ID)


@pytest.fixture
def store(sql_store: SqlStore) -> RecordingStore:
    return RecordingStore(sql_store)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(start=1_700_000_000.0)


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def settings() -> Settings:
    return Settings(backoff_jitter=0.0, import_row_delay_sec=0.0)


@pytest.fixture
def services(
    store: RecordingStore, clock: FakeClock, sleep: RecordingSleep, settings: Settings
) -> Services:
    return build_services(
        settings,
        store=store,
        sleep=sleep,
        monotonic=clock,
        wall_clock=clock,
        now=lambda: FIXED_NOW,
    )
