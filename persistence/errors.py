"""Exception hierarchy for the document store.

Only these kinds escape the store; I/O and JSON failures are chained onto
them so the original cause stays visible in tracebacks.
"""

from __future__ import annotations


class StoreError(Exception):
    """Base class for every document store failure."""


class StoreIOError(StoreError):
    """Raised when reading or writing a file under the base directory fails."""


class MalformedError(StoreError):
    """Raised when a document or the index file is not valid JSON of the expected shape."""


class UnlockedError(StoreError):
    """Raised when a mutating operation runs without holding the database lock."""

    def __init__(self, message: str = "the database must be locked before writing") -> None:
        super().__init__(message)


class AlreadyLockedError(StoreError):
    """Raised when another live process owns the lock file."""

    def __init__(self, pid: int) -> None:
        super().__init__(f"another process is locking the database (pid = {pid})")
        self.pid = pid


__all__ = [
    "StoreError",
    "StoreIOError",
    "MalformedError",
    "UnlockedError",
    "AlreadyLockedError",
]
