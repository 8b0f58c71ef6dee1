"""Common type definitions for the advisorylock library."""

from typing import TypeAlias

# Human-readable name shared by every process contending for a lock
LockName: TypeAlias = str

# Pair of signed 32-bit integers passed to pg_advisory_lock(int, int)
LockKey: TypeAlias = tuple[int, int]

# Anything a mutex factory accepts to identify a lock
LockIdentifier: TypeAlias = LockName | LockKey
