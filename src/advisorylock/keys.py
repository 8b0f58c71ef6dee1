"""
Lock key derivation.

PostgreSQL keys advisory locks on integers, so every lock name is hashed
into the ``(int, int)`` form accepted by ``pg_advisory_lock(int, int)``.
Processes that agree on the spelling of a name always agree on its key.
"""

from __future__ import annotations

import hashlib
import struct

from advisorylock.exceptions import InvalidLockKeyError
from advisorylock.types import LockIdentifier, LockKey

INT32_MIN = -(2**31)
INT32_MAX = 2**31 - 1

_INT32_LE = struct.Struct("<i")


def str_to_key(name: str) -> LockKey:
    """
    Convert a lock name to a pair of signed 32-bit integers.

    Takes the SHA-256 digest of the UTF-8 encoded name and reads two
    little-endian int32 values from it, at byte offsets 0 and 1. The second
    read overlaps the first; this matches keys already derived by other
    clients of the same locks, so it must not change.

    Args:
        name: Lock name

    Returns:
        Lock key pair

    Example:
        >>> str_to_key("test-lock")
        (-107789403, 1811518275)
    """
    digest = hashlib.sha256(name.encode("utf-8")).digest()
    return (
        _INT32_LE.unpack_from(digest, 0)[0],
        _INT32_LE.unpack_from(digest, 1)[0],
    )


def coerce_key(identifier: LockIdentifier) -> LockKey:
    """
    Resolve a lock name or a pre-derived key pair to a lock key.

    Raises:
        InvalidLockKeyError: If a pair is given that is not two int32 values
    """
    if isinstance(identifier, str):
        return str_to_key(identifier)
    # bytes unpack into ints but are never a key pair
    if isinstance(identifier, (bytes, bytearray, memoryview)):
        raise InvalidLockKeyError(identifier)

    try:
        k1, k2 = identifier
    except (TypeError, ValueError):
        raise InvalidLockKeyError(identifier) from None

    for part in (k1, k2):
        # bool is an int subclass but never a meaningful key half
        if isinstance(part, bool) or not isinstance(part, int):
            raise InvalidLockKeyError(identifier)
        if not INT32_MIN <= part <= INT32_MAX:
            raise InvalidLockKeyError(identifier)
    return (k1, k2)


__all__ = [
    "INT32_MAX",
    "INT32_MIN",
    "coerce_key",
    "str_to_key",
]
