# src/offline_tasks/core/errors.py

"""
Error taxonomy.

- LocalIntegrityError: a local write violates a store constraint or targets a
  record that no longer exists. Fatal to that one operation only.
- RemoteTransientError: network/backend failure during push, pull or delete.
  Always caught where the remote call is made; the local write stands.
- OutOfBoundsError: a reorder gesture reports indices outside the displayed list.
"""

from __future__ import annotations


class SyncError(Exception):
    """Base class for engine errors."""


class LocalIntegrityError(SyncError):
    pass


class RemoteTransientError(SyncError):
    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class OutOfBoundsError(SyncError, IndexError):
    pass
