"""
PostgreSQL advisory lock primitives.

Each operation is a single round trip on a guarded connection, keyed by a
``(k1, k2)`` pair. The database owns all lock state; nothing here records
who holds what. Session-level advisory locks are reentrant: the same
session can acquire a key it already holds, and must release it once per
acquisition.

Failures are reported as ``LockOperationError`` with the driver error as
``__cause__``. Nothing is retried.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from sqlalchemy import text

from advisorylock.exceptions import AdvisoryLockError, LockOperationError
from advisorylock.observability import (
    ATTR_CONNECTION_OUTSTANDING,
    ATTR_DB_OPERATION,
    ATTR_DB_SYSTEM,
    ATTR_LOCK_ACQUIRED,
    ATTR_LOCK_KEY,
    NullTracer,
    Tracer,
)
from advisorylock.types import LockKey

if TYPE_CHECKING:
    from advisorylock.connection import ConnectionGuard

logger = logging.getLogger(__name__)

LOCK_FUNCTION = "pg_advisory_lock"
UNLOCK_FUNCTION = "pg_advisory_unlock"
TRY_LOCK_FUNCTION = "pg_try_advisory_lock"

_STATEMENTS = {
    fn: text(f"SELECT {fn}(CAST(:k1 AS integer), CAST(:k2 AS integer))")
    for fn in (LOCK_FUNCTION, UNLOCK_FUNCTION, TRY_LOCK_FUNCTION)
}

_SPAN_SUFFIX = {
    LOCK_FUNCTION: "acquire",
    UNLOCK_FUNCTION: "release",
    TRY_LOCK_FUNCTION: "try_acquire",
}

_NULL_TRACER = NullTracer()


def format_key(key: LockKey) -> str:
    """Render a lock key the way it appears in logs and span attributes."""
    return f"{key[0]},{key[1]}"


async def _call(
    guard: ConnectionGuard,
    function: str,
    key: LockKey,
    tracer: Tracer,
) -> Any:
    k1, k2 = key
    logger.debug("query: SELECT %s(%d, %d)", function, k1, k2)
    with tracer.span(
        f"advisorylock.lock.{_SPAN_SUFFIX[function]}",
        {
            ATTR_DB_SYSTEM: "postgresql",
            ATTR_DB_OPERATION: function,
            ATTR_LOCK_KEY: format_key(key),
            ATTR_CONNECTION_OUTSTANDING: guard.outstanding,
        },
    ) as span:
        try:
            value = await guard.execute(_STATEMENTS[function], {"k1": k1, "k2": k2})
        except AdvisoryLockError:
            raise
        except Exception as e:
            logger.debug("%s(%d, %d) failed: %s", function, k1, k2, e)
            raise LockOperationError(function, key, str(e) or type(e).__name__) from e

        if span is not None and function == TRY_LOCK_FUNCTION:
            span.set_attribute(ATTR_LOCK_ACQUIRED, bool(value))
        return value


async def acquire(
    guard: ConnectionGuard,
    key: LockKey,
    *,
    tracer: Tracer | None = None,
) -> None:
    """
    Block until the session holds the advisory lock for ``key``.

    Acquiring a key the session already holds succeeds immediately and
    increments the hold count.

    Raises:
        LockOperationError: If the round trip fails
    """
    await _call(guard, LOCK_FUNCTION, key, tracer or _NULL_TRACER)


async def release(
    guard: ConnectionGuard,
    key: LockKey,
    *,
    tracer: Tracer | None = None,
) -> bool:
    """
    Release one level of the advisory lock held by the session for ``key``.

    Returns:
        What the database reports: False if the session did not hold the lock

    Raises:
        LockOperationError: If the round trip fails
    """
    return bool(await _call(guard, UNLOCK_FUNCTION, key, tracer or _NULL_TRACER))


async def try_acquire(
    guard: ConnectionGuard,
    key: LockKey,
    *,
    tracer: Tracer | None = None,
) -> bool:
    """
    Take the advisory lock for ``key`` if it is free, without waiting.

    Returns:
        True if the lock was granted, False if another session holds it

    Raises:
        LockOperationError: If the round trip fails
    """
    return bool(await _call(guard, TRY_LOCK_FUNCTION, key, tracer or _NULL_TRACER))


__all__ = [
    "LOCK_FUNCTION",
    "TRY_LOCK_FUNCTION",
    "UNLOCK_FUNCTION",
    "acquire",
    "format_key",
    "release",
    "try_acquire",
]
