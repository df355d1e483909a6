"""Domain errors raised by the message store and the realtime relay.

Each error carries a human-readable message; the socket boundary forwards
only that message to the originating connection.
"""

from __future__ import annotations


class RelayError(Exception):
    default_message = "Request failed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(RelayError):
    """Required fields are missing or malformed."""

    default_message = "Invalid request"


class NotFoundError(RelayError):
    """Unknown message id, user or target."""

    default_message = "Not found"


class PermissionDenied(RelayError):
    """The actor does not own the message it tries to mutate."""

    default_message = "Permission denied"
