"""
Core module for RoomDrop.
Contains configuration, logging, and common utilities.
"""

from .config import ServerConfig, ClientConfig, CHUNK_SIZE
from .logging import setup_logging, debug_log, LoggerMixin
from .exceptions import (
    RoomDropError,
    MessageError,
    NegotiationError,
    ChannelError,
    TransferError,
    SignalingError,
)

__all__ = [
    'ServerConfig',
    'ClientConfig',
    'CHUNK_SIZE',
    'setup_logging',
    'debug_log',
    'LoggerMixin',
    'RoomDropError',
    'MessageError',
    'NegotiationError',
    'ChannelError',
    'TransferError',
    'SignalingError',
]
