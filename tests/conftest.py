"""
Pytest configuration and fixtures for the AI cache test suites

Provides an in-memory CacheStore with failure injection, a controllable
clock, and a pre-wired AICacheService.
"""

import os
import sys
import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path

# Settings are read at import time; pin them before anything from app/ loads
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["CACHE_BACKEND"] = "sql"
os.environ["SUPABASE_JWT_SECRET"] = ""
os.environ["TEST_MODE"] = "false"
os.environ["LOG_TO_FILE"] = "false"

sys.path.insert(0, str(Path(__file__).parent.parent))

import pytest

from app.services.ai_cache_service import AICacheService
from app.services.cache_store import CacheStore, StoreAccessError
from app.utils import metrics


class FakeClock:
    """Callable clock that only moves when told to"""

    def __init__(self, start: datetime = None):
        self.current = start or datetime(2025, 3, 1, 8, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current += timedelta(**kwargs)


class InMemoryCacheStore(CacheStore):
    """
    Dict-of-lists CacheStore honouring the same contract as the SQL and
    Supabase stores. fail_on() makes chosen operations raise StoreAccessError.
    """

    def __init__(self):
        self.tables = {}
        self.calls = []
        self._failures = {}

    def fail_on(self, operation: str, table: str = None, times: int = None) -> None:
        self._failures[(operation, table)] = times

    def _maybe_fail(self, operation: str, table: str) -> None:
        for key in ((operation, table), (operation, None)):
            if key in self._failures:
                remaining = self._failures[key]
                if remaining is not None:
                    if remaining <= 0:
                        continue
                    self._failures[key] = remaining - 1
                raise StoreAccessError(operation, table, "injected failure")

    @staticmethod
    def _matches(row, filters) -> bool:
        return all(row.get(column) == value for column, value in filters.items())

    def rows(self, table: str):
        return self.tables.setdefault(table, [])

    async def select(self, table, filters, order_by=None, descending=False, limit=None):
        self.calls.append(("select", table))
        self._maybe_fail("select", table)
        found = [dict(row) for row in self.rows(table) if self._matches(row, filters)]
        if order_by:
            found.sort(key=lambda row: row[order_by], reverse=descending)
        return found[:limit] if limit else found

    async def delete(self, table, filters):
        self.calls.append(("delete", table))
        self._maybe_fail("delete", table)
        self.tables[table] = [row for row in self.rows(table) if not self._matches(row, filters)]

    async def insert(self, table, rows):
        self.calls.append(("insert", table))
        self._maybe_fail("insert", table)
        for row in rows:
            self.rows(table).append({"id": str(uuid.uuid4()), **row})

    async def upsert(self, table, row, on_conflict):
        self.calls.append(("upsert", table))
        self._maybe_fail("upsert", table)
        key = {column: row[column] for column in on_conflict}
        for existing in self.rows(table):
            if self._matches(existing, key):
                existing.update(row)
                return
        self.rows(table).append({"id": str(uuid.uuid4()), **row})


@pytest.fixture(autouse=True)
def reset_metrics():
    metrics.reset()
    yield
    metrics.reset()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return InMemoryCacheStore()


@pytest.fixture
def cache(store, clock):
    return AICacheService(store, ttl_hours=24, clock=clock)


@pytest.fixture
def user_id():
    return str(uuid.uuid4())


@pytest.fixture
def sample_recommendations():
    """Generator-shaped career recommendations (camelCase, mixed key names)"""
    return [
        {
            "title": "Data Scientist",
            "matchPercentage": 78,
            "description": "Turns data into decisions.",
            "salaryRange": "KES 120,000 - 300,000",
            "education": "BSc Statistics",
            "growth": "High",
            "whyRecommended": "Top marks in Mathematics.",
        },
        {
            "title": "Software Engineer",
            "matchPercentage": 85,
            "description": "Builds software.",
        },
        {
            "name": "Agricultural Economist",
            "value": 64,
        },
    ]
