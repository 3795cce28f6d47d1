"""Request-level failures reported back to the originating connection."""

from __future__ import annotations


class RelayError(Exception):
    """Base class; `code` goes on the wire next to the message."""

    code = "RelayError"
    default_message = "Request failed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidRequest(RelayError):
    code = "InvalidRequest"
    default_message = "Missing required parameters"


class StreamNotFound(RelayError):
    code = "NotFound"
    default_message = "Stream not found"


class Unauthorized(RelayError):
    code = "Unauthorized"
    default_message = "Invalid access key"


class NoStream(RelayError):
    code = "NoStream"
    default_message = "Not connected to any stream"


class EmptyPayload(RelayError):
    code = "EmptyPayload"
    default_message = "Empty payload"
