"""
Error taxonomy shared by the directory client and the reconciler.
"""

from typing import Optional


class DirectoryError(Exception):
    """Base class for every error reported by the identity directory."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class NotFoundError(DirectoryError):
    """The requested group or user does not exist."""


class AmbiguousUserError(DirectoryError):
    """More than one directory user matches an email address."""


class ConflictError(DirectoryError):
    """The directory rejected a write (conflict or validation failure)."""


class TransportError(DirectoryError):
    """Network, auth, quota or any other unexpected remote failure."""


class RecordNotFoundError(Exception):
    """The desired-state record is not present in the store."""


class RequeueExhaustedError(Exception):
    """A record still asked to be requeued when the delivery passes ran out."""
