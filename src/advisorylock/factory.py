"""
Mutex factories.

``create_mutex_factory`` opens one dedicated connection and returns a
callable that builds named mutex handles on it. Every handle from the same
factory shares that connection, and therefore the same database session:
they contend for the same lock identity but the session can re-enter locks
it already holds. Handles from different factories contend like separate
processes.

Example:
    >>> create_mutex = create_mutex_factory("postgres://app@db/app")
    >>> mutex = create_mutex("nightly-report")
    >>> await mutex.with_lock(build_report)
    >>> await create_mutex.close()
"""

from __future__ import annotations

import logging
from types import TracebackType
from typing import Any

from pydantic import ValidationError
from sqlalchemy.exc import ArgumentError, InvalidRequestError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import NullPool

from advisorylock.config import MutexConfig
from advisorylock.connection import ConnectionGuard
from advisorylock.exceptions import ConfigurationError
from advisorylock.keys import coerce_key
from advisorylock.mutex import MutexHandle
from advisorylock.observability import Tracer, create_tracer
from advisorylock.types import LockIdentifier

logger = logging.getLogger(__name__)


def create_lock_engine(config: MutexConfig, **engine_options: Any) -> AsyncEngine:
    """
    Build the engine behind a factory's dedicated connection.

    The engine never pools (closing the connection must end the session and
    with it every lock it holds) and runs in autocommit mode so no
    transaction stays open between lock calls.

    Raises:
        ConfigurationError: If SQLAlchemy rejects the URL (unknown dialect,
            non-async driver) or the engine options
    """
    options: dict[str, Any] = {
        "poolclass": NullPool,
        "isolation_level": "AUTOCOMMIT",
        "echo": config.echo,
    }
    options.update(engine_options)
    try:
        return create_async_engine(config.url, **options)
    except (ArgumentError, InvalidRequestError) as e:
        raise ConfigurationError(f"Cannot create engine for {config.masked_url}: {e}") from e


class MutexFactory:
    """
    Builds mutex handles that share one guarded connection.

    Construction starts the connection handshake immediately, so it must
    happen inside a running event loop. Handles can be created and used
    straight away; their operations wait for the handshake.

    Args:
        config: Connection settings
        tracer: Optional custom Tracer instance
        engine: Optional pre-built engine (see ``create_lock_engine``)
        engine_options: Extra keyword arguments for ``create_async_engine``
    """

    def __init__(
        self,
        config: MutexConfig,
        *,
        tracer: Tracer | None = None,
        engine: AsyncEngine | None = None,
        engine_options: dict[str, Any] | None = None,
    ) -> None:
        self._config = config
        self._tracer = tracer or create_tracer(__name__, config.enable_tracing)
        self._engine = engine or create_lock_engine(config, **(engine_options or {}))
        self._guard = ConnectionGuard(self._engine, tracer=self._tracer)
        logger.debug("connection string: %s", config.masked_url)
        self._guard.connect()

    @property
    def config(self) -> MutexConfig:
        return self._config

    @property
    def guard(self) -> ConnectionGuard:
        """The guard owning this factory's connection."""
        return self._guard

    def __call__(self, identifier: LockIdentifier) -> MutexHandle:
        """
        Build a handle for a lock name or a pre-derived ``(k1, k2)`` key.

        Raises:
            InvalidLockKeyError: If a key pair is not two int32 values
        """
        key = coerce_key(identifier)
        name = identifier if isinstance(identifier, str) else None
        return MutexHandle(self._guard, key, name=name, tracer=self._tracer)

    async def close(self) -> None:
        """Close the connection, releasing every lock its session holds."""
        await self._guard.close()

    async def __aenter__(self) -> MutexFactory:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()


def create_mutex_factory(
    target: str | MutexConfig,
    *,
    tracer: Tracer | None = None,
    enable_tracing: bool = True,
    engine_options: dict[str, Any] | None = None,
) -> MutexFactory:
    """
    Open a connection to ``target`` and return a mutex factory bound to it.

    Each call opens a new, independent connection. Must be called from a
    running event loop.

    Args:
        target: Connection URL or a ``MutexConfig``
        tracer: Optional custom Tracer instance
        enable_tracing: Whether to enable OpenTelemetry tracing. Ignored if
            ``target`` is a ``MutexConfig`` or a tracer is provided.
        engine_options: Extra keyword arguments for ``create_async_engine``

    Raises:
        ConfigurationError: If ``target`` is not a usable connection URL

    Example:
        >>> async with create_mutex_factory(url) as create_mutex:
        ...     await create_mutex("cutover:tenant-123").with_lock(cutover)
    """
    if isinstance(target, MutexConfig):
        config = target
    else:
        try:
            config = MutexConfig(url=target, enable_tracing=enable_tracing)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid connection string: {e}") from e
    return MutexFactory(config, tracer=tracer, engine_options=engine_options)


__all__ = [
    "MutexFactory",
    "create_lock_engine",
    "create_mutex_factory",
]
