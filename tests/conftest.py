"""Shared fixtures for catalog tests.

Every fixture runs against the in-memory store in ``tests/fakes.py``; no
Postgres server is needed.
"""

from datetime import datetime, timezone

import pytest
import pytest_asyncio

from catalog_server.catalog.manager import build_catalog_manager
from catalog_server.catalog.versions import CatalogVersion
from tests.fakes import FakeEngine, empty_state, versioned_state

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


# =============================================================================
# Store Fixtures
# =============================================================================

@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def empty_engine() -> FakeEngine:
    """A database without any catalog."""
    return FakeEngine(empty_state())


@pytest.fixture
def engine_at():
    """Factory for a database holding a populated catalog at a given version."""
    def make(version: str) -> FakeEngine:
        return FakeEngine(versioned_state(version))
    return make


# =============================================================================
# Catalog Fixtures
# =============================================================================

@pytest.fixture
def manager_for():
    """Factory wiring the catalog components around an engine."""
    def make(engine: FakeEngine, version: CatalogVersion = CatalogVersion.V1_1):
        return build_catalog_manager(engine, current_version=version)
    return make


@pytest_asyncio.fixture
async def initialised_engine(empty_engine, manager_for, now) -> FakeEngine:
    """A database with a freshly initialised catalog."""
    manager = manager_for(empty_engine)
    await manager.bootstrapper.initialize(now)
    empty_engine.log.clear()
    empty_engine.begin_count = 0
    return empty_engine
