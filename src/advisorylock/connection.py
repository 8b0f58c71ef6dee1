"""
Readiness-gated access to one dedicated database connection.

A ``ConnectionGuard`` owns a single SQLAlchemy ``AsyncConnection``. Advisory
locks live as long as the database session that took them, so the guard
never pools or shares its connection: the session *is* the lock holder.

Calls made while the handshake is still running are queued and released
in order once it completes. If the handshake fails, the failure is
permanent and every queued and future call raises the same
``ConnectionFailedError``.

The guard also counts outstanding operations (the handshake and every
round trip). The count is exposed through ``outstanding``, ``is_idle`` and
``wait_idle()`` so the surrounding application can decide when it is safe
to shut down; the guard never decides process lifetime itself.

Example:
    >>> engine = create_async_engine(url, poolclass=NullPool)
    >>> guard = ConnectionGuard(engine)
    >>> guard.connect()
    >>> await guard.execute(text("SELECT 1"))
    1
    >>> await guard.close()
"""

from __future__ import annotations

import asyncio
import functools
import logging
from collections.abc import Awaitable, Callable, Mapping
from typing import Any, ParamSpec, TypeVar

from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine
from sqlalchemy.sql.elements import TextClause

from advisorylock.exceptions import ConnectionClosedError, ConnectionFailedError
from advisorylock.observability import ATTR_DB_SYSTEM, Tracer, create_tracer
from advisorylock.readiness import ReadinessGate, ReadinessState

logger = logging.getLogger(__name__)

P = ParamSpec("P")
R = TypeVar("R")
T = TypeVar("T")


def requires_ready(
    func: Callable[P, Awaitable[R]],
) -> Callable[P, Awaitable[R]]:
    """
    Decorator that defers a coroutine method until the connection is ready.

    The decorated method's object must either be a ``ConnectionGuard`` or
    expose one as ``_guard``. The wrapped call first awaits
    ``guard.wait_until_ready()``, so a call made during the handshake is
    queued and a call made after a failed handshake raises immediately.
    """

    @functools.wraps(func)
    async def wrapper(self: Any, *args: P.args, **kwargs: P.kwargs) -> R:
        guard: ConnectionGuard = getattr(self, "_guard", self)
        await guard.wait_until_ready()
        return await func(self, *args, **kwargs)  # type: ignore[arg-type]

    return wrapper  # type: ignore[return-value]


class ConnectionGuard:
    """
    Owner of one dedicated connection, with deferred calls and usage tracking.

    Args:
        engine: Engine the connection is opened from. It should be built with
            ``NullPool`` so closing the guard really ends the session.
        tracer: Optional custom Tracer instance
        enable_tracing: Whether to enable OpenTelemetry tracing.
            Ignored if tracer is explicitly provided.
    """

    def __init__(
        self,
        engine: AsyncEngine,
        *,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._engine = engine
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._gate = ReadinessGate()
        self._connection: AsyncConnection | None = None
        self._connect_task: asyncio.Task[None] | None = None
        self._closed = False
        self._outstanding = 0
        self._idle = asyncio.Event()
        self._idle.set()

    @property
    def target(self) -> str:
        """Connection target with the password masked."""
        return self._engine.url.render_as_string(hide_password=True)

    @property
    def state(self) -> ReadinessState:
        return self._gate.state

    @property
    def connection(self) -> AsyncConnection | None:
        """The underlying connection, once the handshake has succeeded."""
        return self._connection

    @property
    def outstanding(self) -> int:
        """Number of operations dispatched and not yet settled."""
        return self._outstanding

    @property
    def is_idle(self) -> bool:
        return self._outstanding == 0

    @property
    def is_closed(self) -> bool:
        return self._closed

    def connect(self) -> asyncio.Task[None]:
        """
        Start the handshake if it has not been started yet.

        Only the first call opens a connection; later calls return the same
        task. Must be called from a running event loop.

        Returns:
            Task that settles when readiness has been decided. It never
            raises; failures are reported through the waiters.
        """
        if self._connect_task is None:
            logger.debug("Connecting to %s", self.target)
            self._connect_task = asyncio.get_running_loop().create_task(
                self._handshake(),
                name=f"advisorylock-connect:{self.target}",
            )
        return self._connect_task

    async def wait_until_ready(self) -> None:
        """
        Wait until the handshake has completed.

        Returns immediately once the connection is ready.

        Raises:
            ConnectionFailedError: If the handshake failed
            ConnectionClosedError: If the guard has been closed
        """
        if self._closed:
            raise ConnectionClosedError(self.target)
        self.connect()
        await self._gate.wait()
        if self._closed:
            raise ConnectionClosedError(self.target)

    async def track(self, operation: Callable[[], Awaitable[T]]) -> T:
        """
        Run an operation while counting it as outstanding.

        The count is incremented before ``operation`` is invoked and
        decremented exactly once when it settles, whether it succeeded or not.
        """
        self._outstanding += 1
        self._idle.clear()
        try:
            return await operation()
        finally:
            self._outstanding -= 1
            if self._outstanding == 0:
                self._idle.set()

    async def wait_idle(self) -> None:
        """Wait until no operation is outstanding on this connection."""
        await self._idle.wait()

    @requires_ready
    async def execute(
        self,
        statement: TextClause,
        params: Mapping[str, Any] | None = None,
    ) -> Any:
        """
        Run one statement on the guarded connection and return its scalar.

        Driver errors propagate unchanged; callers decide how to report them.
        """
        connection = self._connection
        if connection is None:
            raise ConnectionClosedError(self.target)
        result = await self.track(lambda: connection.execute(statement, params))
        return result.scalar()

    async def close(self) -> None:
        """
        Close the connection and dispose of the engine.

        Ends the database session, which releases every advisory lock it
        still holds. Safe to call more than once.
        """
        if self._closed:
            return
        self._closed = True

        if self._connect_task is not None and not self._connect_task.done():
            await asyncio.wait([self._connect_task])

        if self._connection is not None:
            connection, self._connection = self._connection, None
            await connection.close()

        await self._engine.dispose()
        logger.debug("Closed connection to %s", self.target)

    async def _handshake(self) -> None:
        with self._tracer.span(
            "advisorylock.connection.connect",
            {ATTR_DB_SYSTEM: "postgresql"},
        ):
            try:
                self._connection = await self.track(self._open_connection)
            except Exception as e:
                self._fail(e)
                return
            except BaseException as e:
                # Cancelled: queued callers must not wait forever
                self._fail(e)
                raise

        logger.debug("Connected to %s", self.target)
        self._gate.set_ready()

    def _fail(self, cause: BaseException) -> None:
        error = ConnectionFailedError(self.target, str(cause) or type(cause).__name__)
        error.__cause__ = cause
        logger.error("Connection to %s failed: %s", self.target, error)
        self._gate.set_failed(error)

    async def _open_connection(self) -> AsyncConnection:
        connection = self._engine.connect()
        await connection.start()
        return connection


__all__ = [
    "ConnectionGuard",
    "requires_ready",
]
