"""
Transfer module for RoomDrop.
Chunked file transfer over established peer channels.
"""

from .protocol import FileInfo, FileEnd, parse_control_message, iter_chunks
from .sender import FileSender
from .receiver import FileReceiver, ReceivedFile, TransferSession, TransferWarning

__all__ = [
    'FileInfo',
    'FileEnd',
    'parse_control_message',
    'iter_chunks',
    'FileSender',
    'FileReceiver',
    'ReceivedFile',
    'TransferSession',
    'TransferWarning'
]
