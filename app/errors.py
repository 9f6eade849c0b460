"""Domain errors shared by the persistence, account and library layers."""

from __future__ import annotations


class NotFoundError(LookupError):
    """Raised when a requested row does not exist."""


class UserNotFoundError(NotFoundError):
    pass


class MovieNotFoundError(NotFoundError):
    pass


class UserMovieNotFoundError(NotFoundError):
    pass


class CommentNotFoundError(NotFoundError):
    pass


class ConflictError(RuntimeError):
    """Raised when a write would duplicate a unique value."""


class AuthenticationError(RuntimeError):
    """Raised for bad credentials or rejected tokens."""


class MissingMetadataError(ValueError):
    """Raised when an unknown movie must be created but no metadata was sent."""
