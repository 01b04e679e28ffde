"""
Custom exception classes for RoomDrop.
"""


class RoomDropError(Exception):
    """Base exception for RoomDrop."""

    def __init__(self, message: str, details: dict = None):
        super().__init__(message)
        self.details = details or {}

    def __str__(self):
        if self.details:
            return f"{super().__str__()} - {self.details}"
        return super().__str__()


class MessageError(RoomDropError):
    """Raised when a relay or channel message cannot be parsed."""
    pass


class NegotiationError(RoomDropError):
    """Raised when a negotiation signal violates the handshake protocol."""
    pass


class ChannelError(RoomDropError):
    """Raised when a data channel is unsupported or unusable."""
    pass


class TransferError(RoomDropError):
    """Raised when a file transfer cannot be completed."""
    pass


class SignalingError(RoomDropError):
    """Raised when the relay connection fails."""
    pass
