"""Library exceptions for the advisorylock package."""

from __future__ import annotations

from typing import Any


class AdvisoryLockError(Exception):
    """Base exception for advisorylock library."""

    pass


class ConfigurationError(AdvisoryLockError):
    """Raised when no usable connection target can be resolved."""

    pass


class InvalidLockKeyError(AdvisoryLockError, ValueError):
    """Raised when a pre-derived lock key is not a pair of int32 values."""

    def __init__(self, key: Any) -> None:
        self.key = key
        super().__init__(f"Invalid lock key {key!r}: expected a pair of signed 32-bit integers")


class ConnectionFailedError(AdvisoryLockError):
    """
    Raised when the connection handshake fails.

    The failure is permanent for the guard that owns the connection: every
    queued and future operation raises this same error instance. The driver
    error is available as ``__cause__``.

    Attributes:
        target: Connection target with the password masked
    """

    def __init__(self, target: str, message: str) -> None:
        self.target = target
        super().__init__(f"Could not connect to {target}: {message}")


class ConnectionClosedError(AdvisoryLockError):
    """Raised when an operation is attempted on a closed connection guard."""

    def __init__(self, target: str) -> None:
        self.target = target
        super().__init__(f"Connection to {target} is closed")


class LockOperationError(AdvisoryLockError):
    """
    Raised when a single advisory lock round trip fails.

    The connection stays usable; only the failed call is affected. The
    driver error is available as ``__cause__``.

    Attributes:
        operation: Advisory lock function that failed (e.g., 'pg_advisory_lock')
        key: Lock key the call was made with, if any
    """

    def __init__(self, operation: str, key: tuple[int, int] | None, message: str) -> None:
        self.operation = operation
        self.key = key
        key_info = f" for key {key[0]},{key[1]}" if key is not None else ""
        super().__init__(f"Database operation {operation} failed{key_info}: {message}")
