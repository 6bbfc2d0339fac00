"""Exception types raised by the Nimbus client core."""

from __future__ import annotations

from typing import Optional


class NimbusError(Exception):
    """Base class for every error raised by this package."""


class ApiError(NimbusError):
    """A REST call failed, either in transport or with an HTTP error status."""

    def __init__(self, message: str, *, status: Optional[int] = None, endpoint: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.status = status
        self.endpoint = endpoint

    def __str__(self) -> str:
        if self.status is None:
            return self.message
        return f"HTTP {self.status}: {self.message}"


class MoveRejected(NimbusError):
    """The requested destination would place a folder inside its own subtree."""


class TraversalError(NimbusError):
    """Descendant enumeration could not list part of the moving folder's subtree."""

    def __init__(self, folder_id: str, cause: Exception) -> None:
        super().__init__(f"Could not list children of folder {folder_id}: {cause}")
        self.folder_id = folder_id
        self.cause = cause


class SessionClosed(NimbusError):
    """A move session was used after it was committed or cancelled."""


class UploadError(NimbusError):
    """A local file could not be uploaded."""
