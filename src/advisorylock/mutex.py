"""
Named mutex handles.

A ``MutexHandle`` binds a lock key to a connection guard. It keeps no
record of whether it holds the lock; the database session does. Handles
are cheap and any number of them can share one guard.

Example:
    >>> mutex = create_mutex("nightly-report")
    >>>
    >>> result = await mutex.with_lock(build_report)
    >>>
    >>> async with mutex.hold():
    ...     await build_report()
    >>>
    >>> if await mutex.try_lock():
    ...     try:
    ...         await build_report()
    ...     finally:
    ...         await mutex.unlock()
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from typing import Any

from advisorylock import operations
from advisorylock.connection import ConnectionGuard, requires_ready
from advisorylock.observability import ATTR_LOCK_KEY, ATTR_LOCK_NAME, Tracer, create_tracer
from advisorylock.types import LockKey

logger = logging.getLogger(__name__)


async def _run_work(work: Callable[[], Any] | None) -> Any:
    if work is None:
        return None
    result = work()
    if inspect.isawaitable(result):
        result = await result
    return result


class MutexHandle:
    """
    Lock, unlock, try-lock and run-with-lock for one advisory lock key.

    Every operation waits for the guard's connection to be ready before
    talking to the database.

    Args:
        guard: Connection guard whose session holds the lock
        key: Lock key pair
        name: Lock name the key was derived from, if any
        tracer: Optional custom Tracer instance
        enable_tracing: Whether to enable OpenTelemetry tracing.
            Ignored if tracer is explicitly provided.
    """

    def __init__(
        self,
        guard: ConnectionGuard,
        key: LockKey,
        *,
        name: str | None = None,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._guard = guard
        self._key = key
        self._name = name
        self._tracer = tracer or create_tracer(__name__, enable_tracing)

    @property
    def key(self) -> LockKey:
        return self._key

    @property
    def name(self) -> str | None:
        return self._name

    @property
    def guard(self) -> ConnectionGuard:
        return self._guard

    def __repr__(self) -> str:
        label = f"name={self._name!r}, " if self._name is not None else ""
        return f"MutexHandle({label}key={self._key!r})"

    @requires_ready
    async def lock(self) -> None:
        """Wait until this session holds the lock."""
        await operations.acquire(self._guard, self._key, tracer=self._tracer)

    @requires_ready
    async def unlock(self) -> bool:
        """
        Release one level of the lock.

        Returns:
            False if the session did not hold the lock (as reported by PostgreSQL)
        """
        return await operations.release(self._guard, self._key, tracer=self._tracer)

    @requires_ready
    async def try_lock(self) -> bool:
        """Take the lock if no other session holds it; never waits."""
        return await operations.try_acquire(self._guard, self._key, tracer=self._tracer)

    @requires_ready
    async def with_lock(self, work: Callable[[], Any] | None = None) -> Any:
        """
        Run ``work`` while holding the lock, then release it.

        ``work`` may be a plain function, a coroutine function, or any callable
        returning an awaitable. The lock is released exactly once whatever
        happens: after success the result is returned, after a failure the
        original error is re-raised. If the release itself fails, its error
        is raised instead (the original error, if any, is kept as
        ``__context__``).

        Args:
            work: Zero-argument callable to run inside the critical section

        Returns:
            Whatever ``work`` returned (awaited if needed)
        """
        with self._tracer.span("advisorylock.lock.with_lock", self._span_attributes()):
            await self.lock()
            try:
                result = await _run_work(work)
            except BaseException as e:
                await self._unlock_after_failure(e)
                raise
            await self.unlock()
            return result

    @asynccontextmanager
    async def hold(self) -> AsyncIterator[MutexHandle]:
        """
        Hold the lock for the duration of an ``async with`` block.

        Release follows the same rules as ``with_lock``.

        Example:
            >>> async with mutex.hold():
            ...     await perform_migration()
        """
        await self.lock()
        try:
            yield self
        except BaseException as e:
            await self._unlock_after_failure(e)
            raise
        await self.unlock()

    async def _unlock_after_failure(self, work_error: BaseException) -> None:
        try:
            await self.unlock()
        except Exception as e:
            logger.warning(
                "Error releasing advisory lock after failed work: key=%s, error=%s",
                operations.format_key(self._key),
                e,
            )
            # __cause__ stays the driver error; the work error is the context
            e.__context__ = work_error
            raise

    def _span_attributes(self) -> dict[str, Any]:
        attributes: dict[str, Any] = {ATTR_LOCK_KEY: operations.format_key(self._key)}
        if self._name is not None:
            attributes[ATTR_LOCK_NAME] = self._name
        return attributes


__all__ = [
    "MutexHandle",
]
