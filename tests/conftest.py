"""Root test configuration for EventDesk.

Pins the environment for the whole suite so a developer's shell or config file
never leaks into test behaviour:

  - EVENTDESK_CONFIG points at a file that does not exist (defaults are used)
  - EVENTDESK_ENV / EVENTDESK_PORT / EVENTDESK_DB_PATH / GOOGLE_TIMEZONE_API_KEY
    are cleared

Tests that need a specific environment set it explicitly with monkeypatch.
"""

from __future__ import annotations

import time
from datetime import datetime, timezone
from pathlib import Path
from typing import AsyncIterator

import pytest

from app.models.environment import Environment
from app.models.event import EventDraft, SportCategory
from app.security.guard import RequestContext, RequestGuard
from app.security.origin import OriginGuard
from app.security.rate_limiter import RateLimiter
from app.store.sqlite_backend import LocalSQLiteStore

SAME_SITE_HEADERS = {"host": "app.example", "referer": "https://app.example/events"}


class FakeClock:
    """Manually advanced epoch clock for rate-limit window tests.

    The rate limiter's storage reads ``time.time()``, so the ``clock`` fixture
    installs the fake in its place.
    """

    def __init__(self, start: float = 1_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("EVENTDESK_CONFIG", str(tmp_path / "absent-config.yaml"))
    monkeypatch.chdir(tmp_path)
    for name in ("EVENTDESK_ENV", "EVENTDESK_PORT", "EVENTDESK_DB_PATH", "GOOGLE_TIMEZONE_API_KEY"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def clock(monkeypatch: pytest.MonkeyPatch) -> FakeClock:
    fake = FakeClock()
    monkeypatch.setattr(time, "time", fake)
    return fake


@pytest.fixture
async def store(tmp_path: Path) -> AsyncIterator[LocalSQLiteStore]:
    backend = LocalSQLiteStore(str(tmp_path / "eventdesk.db"))
    await backend.initialize()
    yield backend
    await backend.close()


def _make_draft(name: str = "Summer Games", sport_id: str = "swimming") -> EventDraft:
    return EventDraft(
        name=name,
        type="single",
        sports=[SportCategory(sport_id, sport_id.title(), "🏊")],
        location_city="Lisbon",
        location_timezone="Europe/Lisbon",
        start_date=datetime(2026, 7, 1, tzinfo=timezone.utc),
        end_date=datetime(2026, 7, 5, tzinfo=timezone.utc),
        max_participants=200,
    )


def _make_guard(
    environment: Environment = Environment.PRODUCTION,
    rate_limiter: RateLimiter | None = None,
) -> RequestGuard:
    if rate_limiter is None:
        rate_limiter = RateLimiter(enabled=environment is Environment.PRODUCTION)
    return RequestGuard(OriginGuard(environment), rate_limiter)


def _same_site_context(client_id: str = "203.0.113.7") -> RequestContext:
    return RequestContext(headers=dict(SAME_SITE_HEADERS), client_id=client_id)


@pytest.fixture
def make_draft():
    """Factory for a valid single-sport EventDraft."""
    return _make_draft


@pytest.fixture
def make_guard():
    """Factory for a RequestGuard; production unless told otherwise."""
    return _make_guard


@pytest.fixture
def ctx() -> RequestContext:
    """Same-site request context for a fixed client."""
    return _same_site_context()
