"""
Standard span attributes for advisorylock.

This module defines the attribute constants attached to every span the
library creates. Database attributes follow OpenTelemetry semantic
conventions; lock attributes use the ``advisorylock.`` prefix.

Example:
    >>> from advisorylock.observability.attributes import ATTR_LOCK_KEY
    >>>
    >>> with tracer.span(
    ...     "advisorylock.lock.acquire",
    ...     {ATTR_LOCK_KEY: "-107789403,1811518275"},
    ... ):
    ...     pass
"""

# =============================================================================
# Database Attributes (OTEL semantic conventions)
# =============================================================================

ATTR_DB_SYSTEM = "db.system"
"""Database system identifier (always 'postgresql')."""

ATTR_DB_OPERATION = "db.operation"
"""Advisory lock function invoked (e.g., 'pg_advisory_lock')."""

# =============================================================================
# Lock Attributes
# =============================================================================

ATTR_LOCK_NAME = "advisorylock.lock.name"
"""Human-readable lock name, when the handle was built from one (string)."""

ATTR_LOCK_KEY = "advisorylock.lock.key"
"""Numeric lock key pair rendered as 'k1,k2' (string)."""

ATTR_LOCK_ACQUIRED = "advisorylock.lock.acquired"
"""Whether a try-acquire obtained the lock (boolean)."""

# =============================================================================
# Connection Attributes
# =============================================================================

ATTR_CONNECTION_OUTSTANDING = "advisorylock.connection.outstanding"
"""Outstanding operations on the guarded connection (integer)."""

__all__ = [
    "ATTR_DB_SYSTEM",
    "ATTR_DB_OPERATION",
    "ATTR_LOCK_NAME",
    "ATTR_LOCK_KEY",
    "ATTR_LOCK_ACQUIRED",
    "ATTR_CONNECTION_OUTSTANDING",
]
