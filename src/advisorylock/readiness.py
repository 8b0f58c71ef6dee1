"""
One-shot readiness signal for connection bootstrap.

A ``ReadinessGate`` starts in ``CONNECTING`` and is decided exactly once,
either ``READY`` or ``FAILED``. Callers that arrive before the decision are
queued; the queue is drained in arrival order when the decision is made.
Callers that arrive afterwards are answered immediately.

Example:
    >>> gate = ReadinessGate()
    >>> waiter = asyncio.create_task(gate.wait())
    >>> gate.set_ready()
    >>> await waiter  # returns None
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum

logger = logging.getLogger(__name__)


class ReadinessState(Enum):
    """
    Lifecycle of a guarded connection.

    Values:
        CONNECTING: Handshake in progress, callers are queued
        READY: Handshake succeeded, callers proceed immediately
        FAILED: Handshake failed, callers receive the captured error
    """

    CONNECTING = "connecting"
    READY = "ready"
    FAILED = "failed"


class ReadinessGate:
    """
    Single-assignment readiness signal with an ordered waiter queue.

    Unlike ``asyncio.Event``, the gate can also be decided as failed, in
    which case every queued and future waiter receives the same error.
    """

    def __init__(self) -> None:
        self._state = ReadinessState.CONNECTING
        self._error: BaseException | None = None
        self._waiters: list[asyncio.Future[None]] = []

    @property
    def state(self) -> ReadinessState:
        return self._state

    @property
    def error(self) -> BaseException | None:
        """The captured failure, once the gate is ``FAILED``."""
        return self._error

    @property
    def pending(self) -> int:
        """Number of callers currently queued."""
        return len(self._waiters)

    @property
    def is_decided(self) -> bool:
        return self._state is not ReadinessState.CONNECTING

    async def wait(self) -> None:
        """
        Wait until the gate is decided.

        Raises:
            BaseException: The captured error if the gate failed
        """
        if self._state is ReadinessState.READY:
            return
        if self._state is ReadinessState.FAILED:
            assert self._error is not None
            # Same instance for every caller; drop frames left by earlier raises
            raise self._error.with_traceback(None)

        waiter: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        logger.debug("Waiting for connection (queued=%d)", len(self._waiters))
        try:
            await waiter
        finally:
            # Drained waiters are already gone; only cancelled ones remain
            if waiter in self._waiters:
                self._waiters.remove(waiter)

    def set_ready(self) -> None:
        """
        Decide the gate as ready and release every queued caller in order.

        Raises:
            RuntimeError: If the gate was already decided
        """
        self._decide(ReadinessState.READY)
        for waiter in self._drain():
            waiter.set_result(None)

    def set_failed(self, error: BaseException) -> None:
        """
        Decide the gate as failed and reject every queued caller in order.

        Args:
            error: Error raised to every current and future waiter

        Raises:
            RuntimeError: If the gate was already decided
        """
        self._decide(ReadinessState.FAILED)
        self._error = error
        for waiter in self._drain():
            waiter.set_exception(error)

    def _decide(self, state: ReadinessState) -> None:
        if self.is_decided:
            raise RuntimeError(f"Readiness already decided as {self._state.value}")
        self._state = state

    def _drain(self) -> list[asyncio.Future[None]]:
        waiters, self._waiters = self._waiters, []
        return [waiter for waiter in waiters if not waiter.done()]


__all__ = [
    "ReadinessGate",
    "ReadinessState",
]
