"""Custom exceptions for Taskhue."""


class TaskhueError(Exception):
    """Base exception for all Taskhue errors."""

    pass


class StoreError(TaskhueError):
    """Raised when a durable-store read or write fails."""

    pass


class QuotaExceededError(StoreError):
    """Raised when a write would exceed the replicated tier's per-item quota."""

    pass


class DecodeError(TaskhueError):
    """Raised when an identifier payload cannot be decoded."""

    pass


class ChannelError(TaskhueError):
    """Raised when the message channel fails or has no handler."""

    pass


class AuthError(TaskhueError):
    """Raised when an access token cannot be acquired."""

    pass
