"""
Shared test fixtures for the advisorylock library.

Usage:
    from tests.fixtures import FakeEngine, FakeLockServer
"""

from tests.fixtures.database import (
    FAKE_URL,
    FakeConnection,
    FakeEngine,
    FakeLockServer,
    FakeResult,
)

__all__ = [
    "FAKE_URL",
    "FakeConnection",
    "FakeEngine",
    "FakeLockServer",
    "FakeResult",
]
