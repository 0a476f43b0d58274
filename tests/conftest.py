"""Shared test fixtures for the Concierge test suite."""

from __future__ import annotations

import os
from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock

import pytest


def pytest_configure(config):
    """Set test environment variables BEFORE collection starts.

    This runs before any imports, so config.py won't fail on module load.
    """
    os.environ.setdefault("ANTHROPIC_API_KEY", "test-anthropic-key-123")
    os.environ.setdefault("GOOGLE_PLACES_API_KEY", "test-places-key-456")
    os.environ.setdefault("METRICS_ENABLED", "false")


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 3, 1, 9, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class ScriptedCompletion:
    """Completion client returning queued (text, input, output) replies.

    Queue an ``Exception`` instance to make the next call fail.
    """

    def __init__(self, *replies):
        self.replies = list(replies)
        self.requests = []

    def complete(self, request):
        from concierge.models import TokenUsage
        from concierge.services.completion import CompletionResult

        self.requests.append(request)
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        text, input_tokens, output_tokens = reply
        return CompletionResult(
            text=text, usage=TokenUsage.from_counts(input_tokens, output_tokens),
        )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def db():
    from concierge.services.database import Database

    database = Database("sqlite:///:memory:")
    database.initialize()
    yield database
    database.close()


@pytest.fixture
def directory(db, clock):
    from concierge.services.directory import DirectoryStore

    return DirectoryStore(db, clock=clock)


@pytest.fixture
def session_store(db, clock):
    from concierge.services.session_store import SessionStore

    return SessionStore(db, clock=clock)


@pytest.fixture
def detail_cache(db, clock):
    from concierge.services.cache import BusinessDetailCache

    return BusinessDetailCache(db, ttl=timedelta(hours=720), clock=clock)


@pytest.fixture
def places():
    """Mock External Business Lookup."""
    lookup = MagicMock()
    lookup.get_details.return_value = {
        "display_name": "Bar Pepe (Google)",
        "formatted_address": "Calle Mayor 1, Madrid",
        "international_phone_number": "+34 910 000 000",
        "rating": 4.5,
        "user_ratings_total": 120,
        "opening_hours": ["Monday: 9:00 AM – 5:00 PM"],
    }
    return lookup


@pytest.fixture
def add_business(directory):
    """Factory fixture inserting a BusinessRecord."""
    from concierge.models import BusinessRecord, VerificationStatus

    def _add(business_id: str = "biz-1", **overrides):
        fields = {
            "id": business_id,
            "display_name": "Bar Pepe",
            "category": "restaurant",
            "owner_id": "owner-1",
            "verification_status": VerificationStatus.APPROVED,
            "agent_enabled": True,
        }
        fields.update(overrides)
        return directory.add_business(BusinessRecord(**fields))

    return _add


@pytest.fixture
def completion():
    return ScriptedCompletion()


@pytest.fixture
def orchestrator(db, clock, directory, session_store, detail_cache, places, completion):
    from concierge.orchestrator import SessionOrchestrator
    from concierge.services.agent_config import AgentConfigResolver
    from concierge.services.business_details import BusinessDetailsService
    from concierge.services.costs import CostLedger

    return SessionOrchestrator(
        sessions=session_store,
        directory=directory,
        resolver=AgentConfigResolver(directory, default_model="claude-haiku-4-5", clock=clock),
        business_details=BusinessDetailsService(directory, detail_cache, places),
        completion=completion,
        ledger=CostLedger(),
        database=db,
    )


@pytest.fixture
def mock_places_response():
    """Factory fixture for creating mock Places API responses."""

    def _make(data: dict, status_code: int = 200):
        mock = MagicMock()
        mock.status_code = status_code
        mock.json.return_value = data
        mock.text = str(data)
        return mock

    return _make
