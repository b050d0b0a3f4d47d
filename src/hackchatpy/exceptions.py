"""Exception classes for hackchatpy.

Only connection and send failures are meant to reach the caller; decode
problems are raised by the protocol layer and recovered by the event stream.
"""


class HackChatError(Exception):
    """Base exception for all hackchatpy errors."""

    def __init__(self, message: str, details: str | None = None) -> None:
        """Initialize HackChatError with message and optional details.

        Args:
            message: Error message.
            details: Optional additional error details.
        """
        self.message = message
        self.details = details
        super().__init__(self.message)


class ConnectionError(HackChatError):
    """Raised when the websocket cannot be established or the join fails."""

    pass


class MessageError(HackChatError):
    """Raised when a single outbound frame fails to send."""

    pass


class ProtocolError(HackChatError):
    """Raised when an inbound frame cannot be decoded."""

    pass
