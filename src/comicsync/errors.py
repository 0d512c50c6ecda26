"""Error taxonomy shared by the adapter, store, mirror and migration."""

from __future__ import annotations


class ComicSyncError(Exception):
    """Base error. ``number`` is the comic the failure is isolated to, if any."""

    def __init__(self, message: str, *, number: int | None = None) -> None:
        super().__init__(message)
        self.number = number


class NetworkError(ComicSyncError):
    """A remote fetch failed or timed out."""


class DecodeError(ComicSyncError):
    """A remote response could not be decoded."""


class StorageError(ComicSyncError):
    """A local write (database row or image file) failed."""


class MigrationError(ComicSyncError):
    """The legacy store could not be read or copied."""
