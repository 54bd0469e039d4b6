"""
Shared fixtures for trade engine tests.
"""

from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from core.clock import MockClock
from trade_engine.config import TradeEngineConfig
from trade_engine.coordinator import TradeCoordinator
from trade_engine.store import InMemoryDocumentStore

from tests.factories import make_roster, make_settings, open_time, seed


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture
def clock():
    """Clock pinned to an open-trading instant after round 1."""
    return MockClock(open_time(1))


@pytest.fixture
def config():
    return TradeEngineConfig.for_testing()


@pytest.fixture
def alerter():
    alerter = AsyncMock()
    alerter.send_alert = AsyncMock(return_value=True)
    return alerter


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def roster():
    return make_roster()


@pytest.fixture
def store():
    return InMemoryDocumentStore()


@pytest_asyncio.fixture
async def seeded_store(store, settings, roster):
    """Store holding league settings and the user's roster."""
    await seed(store, settings, roster)
    return store


@pytest.fixture
def coordinator(seeded_store, clock, config, alerter):
    return TradeCoordinator(seeded_store, clock, config, alerter=alerter)
