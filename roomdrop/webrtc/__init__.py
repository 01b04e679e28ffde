"""
WebRTC module for RoomDrop.
Handles negotiation sessions, data channels and the relay connection.
"""

from .peer_manager import PeerNegotiationOrchestrator
from .negotiation import NegotiationSession, NegotiationState, Role, Signal
from .data_channel import DataChannelManager, PeerChannel
from .signaling_client import SignalingClient

__all__ = [
    'PeerNegotiationOrchestrator',
    'NegotiationSession',
    'NegotiationState',
    'Role',
    'Signal',
    'DataChannelManager',
    'PeerChannel',
    'SignalingClient'
]
