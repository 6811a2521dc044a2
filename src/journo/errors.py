"""Exceptions raised by the journal engine."""

from __future__ import annotations

from typing import Optional


class JournalError(Exception):
    """Base exception for journal operations."""
    pass


class StorageFailure(JournalError):
    """Canonical entry content could not be persisted; prior state is kept."""

    stage = "canonical"


class IndexFailure(JournalError):
    """The derived index could not be updated; the paired write is rolled back."""

    stage = "index"


class InvalidStateTransition(JournalError):
    """A bullet cannot move to the requested state."""
    pass


class BulletNotFoundError(JournalError):
    """No bullet with the given id exists on that date."""
    pass


class MigrationError(JournalError):
    """A task migration failed on one side.

    Attributes:
        side: "source" or "target" (which write failed)
        compensated: True if the source was restored after a target failure
    """

    def __init__(self, message: str, side: str, compensated: Optional[bool] = None):
        super().__init__(message)
        self.side = side
        self.compensated = compensated
