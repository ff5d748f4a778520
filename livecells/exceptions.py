"""Domain exception hierarchy for livecells."""

from __future__ import annotations


class LiveCellsError(RuntimeError):
    """Base class for all livecells errors."""


class InvalidArgument(LiveCellsError, ValueError):
    """Raised when caller-supplied data violates a documented shape."""


class ForbiddenError(LiveCellsError):
    """Raised when the host forbids access to a notebook file."""

    def __init__(self, name: str) -> None:
        super().__init__(f"forbidden access to file {name!r}")
        self.name = name


class BridgeFailure(LiveCellsError):
    """Raised when the host bridge replies with an unexpected error."""

    def __init__(self, message: str, reason: object | None = None) -> None:
        super().__init__(message)
        self.reason = reason


class WidgetStoppedError(LiveCellsError):
    """Raised when querying a widget that is no longer running."""


class MailboxClosedError(LiveCellsError):
    """Raised when delivering to a mailbox whose owner has terminated."""


class ConfigValidationError(LiveCellsError):
    """Raised when configuration cannot be validated safely."""
