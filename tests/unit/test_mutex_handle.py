"""
Unit tests for MutexHandle.

Tests cover:
- lock / unlock / try_lock on shared and separate sessions
- with_lock result handling for sync, async and missing work
- with_lock release guarantees, including release failures overriding
  the pending outcome
- The hold() context manager

Sessions are simulated by the in-memory lock server in tests.fixtures.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable

import pytest

from advisorylock.exceptions import LockOperationError
from advisorylock.factory import MutexFactory
from advisorylock.mutex import MutexHandle
from advisorylock.observability import ATTR_LOCK_KEY, ATTR_LOCK_NAME, MockTracer
from tests.fixtures.database import FakeEngine, FakeLockServer

MakeFactory = Callable[..., MutexFactory]


def _unlock_count(engine: FakeEngine) -> int:
    return sum(
        1 for sql, _ in engine.connection.executed if "pg_advisory_unlock" in sql
    )


class TestLockUnlock:
    """Tests for lock() and unlock()."""

    async def test_lock_and_unlock(self, make_factory: MakeFactory) -> None:
        create_mutex = make_factory()
        other = make_factory()("test-lock")
        mutex = create_mutex("test-lock")

        await mutex.lock()
        assert await other.try_lock() is False

        assert await mutex.unlock() is True
        assert await other.try_lock() is True
        await other.unlock()

    async def test_unlock_without_lock_reports_false(self, make_factory: MakeFactory) -> None:
        mutex = make_factory()("never-locked")

        assert await mutex.unlock() is False

    async def test_same_session_cycles_do_not_block(self, make_factory: MakeFactory) -> None:
        """Three lock/wait/unlock cycles on one connection all enter at once."""
        create_mutex = make_factory()
        mutex = create_mutex("test-lock")
        entered: list[int] = []
        inside = 0

        async def cycle(i: int) -> None:
            nonlocal inside
            await mutex.lock()
            entered.append(inside)
            inside += 1
            await asyncio.sleep(0.05)
            inside -= 1
            await mutex.unlock()

        await asyncio.wait_for(asyncio.gather(*(cycle(i) for i in range(3))), timeout=1)

        assert entered == [0, 1, 2]
        assert inside == 0

    async def test_separate_sessions_serialize(self, make_factory: MakeFactory) -> None:
        """Handles on different connections never overlap in the guarded region."""
        mutexes = [make_factory()("test-lock") for _ in range(5)]
        inside = 0
        observed: list[int] = []

        async def cycle(mutex: MutexHandle) -> None:
            nonlocal inside
            await mutex.lock()
            observed.append(inside)
            inside += 1
            await asyncio.sleep(0.01)
            inside -= 1
            await mutex.unlock()

        await asyncio.wait_for(asyncio.gather(*(cycle(m) for m in mutexes)), timeout=2)

        assert observed == [0, 0, 0, 0, 0]

    async def test_operations_wait_for_connection(self, lock_server: FakeLockServer, make_factory: MakeFactory) -> None:
        engine = FakeEngine(lock_server)
        engine.connect_allowed.clear()
        mutex = make_factory(engine)("test-lock")

        call = asyncio.create_task(mutex.try_lock())
        await asyncio.sleep(0.01)
        assert not call.done()

        engine.connect_allowed.set()
        assert await call is True


class TestTryLock:
    """Tests for try_lock()."""

    async def test_try_lock_sequence(self, make_factory: MakeFactory) -> None:
        mutex1 = make_factory()("test-try-lock")
        mutex2 = make_factory()("test-try-lock")

        assert await mutex1.try_lock() is True
        assert await mutex2.try_lock() is False
        await mutex1.unlock()
        assert await mutex2.try_lock() is True
        assert await mutex1.try_lock() is False
        await mutex2.unlock()


class TestWithLock:
    """Tests for with_lock()."""

    async def test_async_work_result_is_returned(self, make_factory: MakeFactory) -> None:
        mutex1 = make_factory()("test-withlock-lock")
        mutex2 = make_factory()("test-withlock-lock")
        seen: list[bool] = []

        async def work() -> str:
            seen.append(await mutex2.try_lock())
            return "someval"

        assert await mutex1.with_lock(work) == "someval"
        assert seen == [False]
        assert await mutex2.try_lock() is True
        await mutex2.unlock()

    async def test_plain_value_work(self, make_factory: MakeFactory) -> None:
        mutex = make_factory()("test-withlock-lock")

        assert await mutex.with_lock(lambda: "someval") == "someval"

    async def test_callable_returning_awaitable(self, make_factory: MakeFactory) -> None:
        mutex = make_factory()("test-withlock-lock")

        async def compute() -> int:
            return 42

        assert await mutex.with_lock(lambda: compute()) == 42

    async def test_no_work(self, make_factory: MakeFactory, fake_engine: FakeEngine) -> None:
        mutex = make_factory(fake_engine)("test-withlock-release")

        assert await mutex.with_lock() is None
        assert _unlock_count(fake_engine) == 1

    async def test_async_work_failure_releases_lock(self, make_factory: MakeFactory) -> None:
        mutex1 = make_factory()("test-withlock-lock")
        mutex2 = make_factory()("test-withlock-lock")

        async def work() -> None:
            raise ValueError("critical section failed")

        with pytest.raises(ValueError, match="critical section failed"):
            await mutex1.with_lock(work)

        assert await mutex2.try_lock() is True
        await mutex2.unlock()

    async def test_sync_work_failure_releases_lock(self, make_factory: MakeFactory) -> None:
        mutex1 = make_factory()("test-withlock-lock")
        mutex2 = make_factory()("test-withlock-lock")

        def work() -> None:
            raise KeyError("missing")

        with pytest.raises(KeyError):
            await mutex1.with_lock(work)

        assert await mutex2.try_lock() is True
        await mutex2.unlock()

    async def test_unlock_happens_exactly_once(
        self, make_factory: MakeFactory, fake_engine: FakeEngine
    ) -> None:
        mutex = make_factory(fake_engine)("test-withlock-lock")

        def fail() -> None:
            raise RuntimeError("work failed")

        await mutex.with_lock(lambda: None)
        with pytest.raises(RuntimeError):
            await mutex.with_lock(fail)

        assert _unlock_count(fake_engine) == 2

    async def test_unlock_failure_overrides_result(
        self, make_factory: MakeFactory, fake_engine: FakeEngine
    ) -> None:
        mutex = make_factory(fake_engine)("test-withlock-lock")
        cause = OSError("connection lost")
        fake_engine.failures["pg_advisory_unlock"] = cause

        with pytest.raises(LockOperationError) as exc_info:
            await mutex.with_lock(lambda: "someval")

        assert exc_info.value.operation == "pg_advisory_unlock"
        assert exc_info.value.__cause__ is cause
        assert _unlock_count(fake_engine) == 1

    async def test_unlock_failure_overrides_work_error(
        self,
        make_factory: MakeFactory,
        fake_engine: FakeEngine,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        mutex = make_factory(fake_engine)("test-withlock-lock")
        fake_engine.failures["pg_advisory_unlock"] = OSError("connection lost")

        async def work() -> None:
            raise ValueError("critical section failed")

        with caplog.at_level("WARNING", logger="advisorylock.mutex"):
            with pytest.raises(LockOperationError) as exc_info:
                await mutex.with_lock(work)

        assert isinstance(exc_info.value.__cause__, OSError)
        assert isinstance(exc_info.value.__context__, ValueError)
        assert _unlock_count(fake_engine) == 1
        assert "Error releasing advisory lock" in caplog.text

    async def test_lock_failure_skips_work_and_unlock(
        self, make_factory: MakeFactory, fake_engine: FakeEngine
    ) -> None:
        mutex = make_factory(fake_engine)("test-withlock-lock")
        fake_engine.failures["pg_advisory_lock"] = OSError("timeout")
        calls: list[str] = []

        with pytest.raises(LockOperationError):
            await mutex.with_lock(lambda: calls.append("ran"))

        assert calls == []
        assert _unlock_count(fake_engine) == 0

    async def test_with_lock_blocks_until_lock_available(self, make_factory: MakeFactory) -> None:
        mutex1 = make_factory()("test-withlock-lock")
        mutex2 = make_factory()("test-withlock-lock")
        logs: list[str] = []

        def critical(name: str) -> Callable[[], object]:
            async def work() -> None:
                logs.append(f"{name} enters")
                await asyncio.sleep(0.02)
                logs.append(f"{name} leaves")

            return work

        await asyncio.gather(mutex1.with_lock(critical("mutex1")), mutex2.with_lock(critical("mutex2")))

        first = logs[0].split()[0]
        second = "mutex2" if first == "mutex1" else "mutex1"
        assert logs == [f"{first} enters", f"{first} leaves", f"{second} enters", f"{second} leaves"]

    async def test_span_attributes(self, make_factory: MakeFactory) -> None:
        tracer = MockTracer()
        mutex = make_factory(tracer=tracer)("test-lock")

        await mutex.with_lock()

        assert tracer.span_names == [
            "advisorylock.connection.connect",
            "advisorylock.lock.with_lock",
            "advisorylock.lock.acquire",
            "advisorylock.lock.release",
        ]
        _, attributes = next(s for s in tracer.spans if s[0] == "advisorylock.lock.with_lock")
        assert attributes is not None
        assert attributes[ATTR_LOCK_NAME] == "test-lock"
        assert attributes[ATTR_LOCK_KEY] == "-107789403,1811518275"


class TestHold:
    """Tests for the hold() context manager."""

    async def test_hold_releases_on_exit(self, make_factory: MakeFactory) -> None:
        mutex1 = make_factory()("test-hold")
        mutex2 = make_factory()("test-hold")

        async with mutex1.hold() as held:
            assert held is mutex1
            assert await mutex2.try_lock() is False

        assert await mutex2.try_lock() is True
        await mutex2.unlock()

    async def test_hold_releases_on_error(self, make_factory: MakeFactory) -> None:
        mutex1 = make_factory()("test-hold")
        mutex2 = make_factory()("test-hold")

        with pytest.raises(ValueError):
            async with mutex1.hold():
                raise ValueError("boom")

        assert await mutex2.try_lock() is True
        await mutex2.unlock()

    async def test_hold_unlock_failure_overrides_error(
        self, make_factory: MakeFactory, fake_engine: FakeEngine
    ) -> None:
        mutex = make_factory(fake_engine)("test-hold")
        fake_engine.failures["pg_advisory_unlock"] = OSError("connection lost")

        with pytest.raises(LockOperationError) as exc_info:
            async with mutex.hold():
                raise ValueError("boom")

        assert isinstance(exc_info.value.__cause__, OSError)
        assert isinstance(exc_info.value.__context__, ValueError)
        assert str(exc_info.value.__context__) == "boom"


class TestHandleProperties:
    async def test_properties_and_repr(self, make_factory: MakeFactory) -> None:
        factory = make_factory()
        named = factory("test-lock")
        keyed = factory((1, 2))

        assert named.name == "test-lock"
        assert named.key == (-107789403, 1811518275)
        assert named.guard is factory.guard
        assert keyed.name is None
        assert keyed.key == (1, 2)
        assert repr(named) == "MutexHandle(name='test-lock', key=(-107789403, 1811518275))"
        assert repr(keyed) == "MutexHandle(key=(1, 2))"
