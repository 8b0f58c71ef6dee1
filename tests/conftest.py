"""
Shared pytest fixtures for the advisorylock tests.

This module provides:
- An in-memory advisory lock server and fake async engines bound to it
- A connected ConnectionGuard on a fake engine
- A factory fixture for building mutex factories on fake engines
- A MockTracer for span assertions

Unit tests never need a database; integration tests under
``tests/integration`` use a PostgreSQL testcontainer instead.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Callable

import pytest
import pytest_asyncio

from advisorylock.config import MutexConfig
from advisorylock.connection import ConnectionGuard
from advisorylock.factory import MutexFactory
from advisorylock.observability import MockTracer
from tests.fixtures.database import FAKE_URL, FakeEngine, FakeLockServer

# ============================================================================
# Pytest Configuration
# ============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers for tests."""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests (may require docker)"
    )
    config.addinivalue_line("markers", "postgres: marks tests that require PostgreSQL")


# =============================================================================
# Fake Database Fixtures
# =============================================================================


@pytest.fixture
def lock_server() -> FakeLockServer:
    """Provide an empty in-memory advisory lock table."""
    return FakeLockServer()


@pytest.fixture
def fake_engine(lock_server: FakeLockServer) -> FakeEngine:
    """Provide a fake engine whose connections share ``lock_server``."""
    return FakeEngine(lock_server)


@pytest.fixture
def mock_tracer() -> MockTracer:
    """Provide a tracer that records spans."""
    return MockTracer()


@pytest_asyncio.fixture
async def guard(fake_engine: FakeEngine) -> AsyncGenerator[ConnectionGuard, None]:
    """Provide a guard that has started connecting on ``fake_engine``."""
    guard = ConnectionGuard(fake_engine, enable_tracing=False)
    guard.connect()
    yield guard
    await guard.close()


@pytest.fixture
def make_factory(
    lock_server: FakeLockServer,
) -> Callable[..., MutexFactory]:
    """
    Factory fixture for mutex factories on fresh fake engines.

    Every call opens a separate fake session on the shared lock server, the
    same way separate processes would. Must be called inside a test
    coroutine (the factory starts connecting immediately).
    """

    def _make(engine: FakeEngine | None = None, **kwargs: object) -> MutexFactory:
        return MutexFactory(
            MutexConfig(url=FAKE_URL, enable_tracing=False),
            engine=engine or FakeEngine(lock_server),  # type: ignore[arg-type]
            **kwargs,  # type: ignore[arg-type]
        )

    return _make
