"""
Signaling module for RoomDrop.
Room registry, relay logic and the aiohttp relay server.
"""

from .room_registry import Room, RoomRegistry
from .relay import SignalingRelay
from .server import create_app, serve

__all__ = [
    'Room',
    'RoomRegistry',
    'SignalingRelay',
    'create_app',
    'serve'
]
