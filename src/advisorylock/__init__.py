"""
advisorylock - Distributed mutexes on PostgreSQL advisory locks.

This library provides:
- Lock name to advisory lock key derivation
- A connection guard that defers calls until its dedicated connection is ready
- Mutex handles with lock, unlock, try_lock and with_lock
- Mutex factories that share one database session between handles
- The ``withlock`` command for running a program inside a lock

Example:
    >>> from advisorylock import create_mutex_factory
    >>>
    >>> async with create_mutex_factory("postgres://app@db/app") as create_mutex:
    ...     await create_mutex("nightly-report").with_lock(build_report)
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("advisory-lock")
except PackageNotFoundError:
    # Package not installed (running from source without install)
    __version__ = "0.0.0.dev0"

from advisorylock.config import CONNECTION_STRING_ENV, MutexConfig
from advisorylock.connection import ConnectionGuard, requires_ready
from advisorylock.exceptions import (
    AdvisoryLockError,
    ConfigurationError,
    ConnectionClosedError,
    ConnectionFailedError,
    InvalidLockKeyError,
    LockOperationError,
)
from advisorylock.factory import MutexFactory, create_lock_engine, create_mutex_factory
from advisorylock.keys import coerce_key, str_to_key
from advisorylock.mutex import MutexHandle
from advisorylock.readiness import ReadinessGate, ReadinessState
from advisorylock.types import LockIdentifier, LockKey, LockName

__all__ = [
    "__version__",
    # Configuration
    "CONNECTION_STRING_ENV",
    "MutexConfig",
    # Keys
    "LockIdentifier",
    "LockKey",
    "LockName",
    "coerce_key",
    "str_to_key",
    # Connection
    "ConnectionGuard",
    "ReadinessGate",
    "ReadinessState",
    "requires_ready",
    # Mutexes
    "MutexFactory",
    "MutexHandle",
    "create_lock_engine",
    "create_mutex_factory",
    # Exceptions
    "AdvisoryLockError",
    "ConfigurationError",
    "ConnectionClosedError",
    "ConnectionFailedError",
    "InvalidLockKeyError",
    "LockOperationError",
]
