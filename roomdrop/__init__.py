"""
RoomDrop: room-based peer discovery, WebRTC negotiation and chunked
file transfer.
"""

__version__ = "0.1.0"
