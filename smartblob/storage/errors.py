from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from smartblob.storage.base import CopyState


class StorageError(Exception):
    """Base class for errors raised by the storage layer."""


class BlobNotFoundError(StorageError, FileNotFoundError):
    """Raised by a gateway when the named blob does not exist."""

    def __init__(self, name: str, message: Optional[str] = None):
        super().__init__(message or f"Blob {name!r} not found")
        self.name = name


class CopyFailedError(StorageError):
    """Raised when an asynchronous copy reaches a terminal state other than success."""

    def __init__(self, source: str, destination: str, state: "CopyState"):
        super().__init__(f"Copy {source!r} -> {destination!r} ended in state {state.value!r}")
        self.source = source
        self.destination = destination
        self.state = state


class InvalidArgumentError(StorageError, ValueError):
    """Raised before any remote call when the caller's input is malformed."""
