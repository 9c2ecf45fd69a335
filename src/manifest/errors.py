"""Errors raised by manifest operations.

Store failures keep their own hierarchy (``recordstore.StoreError``); they
are re-raised by the service as read or write errors with operation context.
"""
from typing import Iterable, Optional

from recordstore import StoreError, StoreReadError, StoreWriteError


class ManifestError(Exception):
    """Base class for manifest failures that need operator attention."""


class ValidationError(ManifestError):
    """Caller input violates a precondition."""


class InvariantViolation(ManifestError):
    """Persisted state does not satisfy a cardinality precondition."""

    def __init__(
        self,
        message: str,
        table: Optional[str] = None,
        partition: Optional[str] = None,
        names: Optional[Iterable[str]] = None,
    ):
        super().__init__(message)
        self.table = table
        self.partition = partition
        self.names = list(names or [])


class CorruptedStateError(ManifestError):
    """More than one record sits where at most one may exist."""

    def __init__(self, message: str, deployable: Optional[str] = None, count: int = 0):
        super().__init__(message)
        self.deployable = deployable
        self.count = count


__all__ = [
    "ManifestError",
    "ValidationError",
    "InvariantViolation",
    "CorruptedStateError",
    "StoreError",
    "StoreReadError",
    "StoreWriteError",
]
