"""
Signaling relay: room membership and point-to-point forwarding of
negotiation messages between connected clients.
"""
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Union

from roomdrop.core.config import ServerConfig
from roomdrop.core.exceptions import MessageError
from roomdrop.core.logging import LoggerMixin
from roomdrop.signaling.messages import (
    Connected,
    JoinRoom,
    OfferNeeded,
    ReadyToConnect,
    RelayedSignal,
    RoomJoined,
    RoomUpdated,
    ServerMessage,
    SignalRequest,
    encode,
    parse_client_message,
)
from roomdrop.signaling.room_registry import RoomRegistry

SendCallable = Callable[[str], Awaitable[Any]]


class SignalingRelay(LoggerMixin):
    """Routes relay messages between live connections.

    All registry mutations happen synchronously inside a handler, before
    the first await that fans messages out, so a single event loop is
    enough to keep room state consistent without locks.
    """

    def __init__(self, config: Optional[ServerConfig] = None, registry: Optional[RoomRegistry] = None):
        super().__init__()
        self.config = config or ServerConfig()
        self.registry = registry if registry is not None else RoomRegistry()
        self.connections: Dict[str, SendCallable] = {}

    async def register(self, peer_id: str, send: SendCallable):
        """Record a live connection and tell it its peer id."""
        self.connections[peer_id] = send
        self.log_info("Peer connected", {
            "peer_id": peer_id,
            "total_connections": len(self.connections)
        })
        await self._send(peer_id, Connected(peer_id=peer_id))

    async def handle_message(self, peer_id: str, raw: Union[str, bytes]):
        """Parse and dispatch one inbound frame from ``peer_id``."""
        try:
            message = parse_client_message(raw)
        except MessageError as e:
            self.log_warning("Dropping malformed relay message", {
                "peer_id": peer_id,
                "error": str(e)
            })
            return

        if isinstance(message, JoinRoom):
            await self.join(message.room_id, peer_id)
        elif isinstance(message, SignalRequest):
            await self.relay(message.kind, message.target_id, message.payload, peer_id)

    async def join(self, room_id: str, peer_id: str):
        """Add ``peer_id`` to ``room_id`` and tell existing members to start negotiating."""
        other_rooms = [room.id for room in self.registry.rooms_containing(peer_id) if room.id != room_id]
        if other_rooms:
            self.log_warning("Peer already belongs to another room, join ignored", {
                "peer_id": peer_id,
                "room_id": room_id,
                "current_rooms": other_rooms
            })
            return

        created = room_id not in self.registry
        if not self.registry.add_member(room_id, peer_id):
            self.log_info("Peer already in room", {"peer_id": peer_id, "room_id": room_id})
            return

        members = list(self.registry.get(room_id).members)
        if created:
            self.log_info("Room created", {"room_id": room_id})
        self.log_info("Peer joined room", {
            "peer_id": peer_id,
            "room_id": room_id,
            "total_members": len(members)
        })

        joined = RoomJoined(peer_id=peer_id, room_id=room_id, total_members=len(members))
        for member_id in members:
            await self._send(member_id, joined)

        if len(members) > 1:
            await self._send(peer_id, ReadyToConnect(room_id=room_id))
            for member_id in members:
                if member_id != peer_id:
                    await self._send(member_id, OfferNeeded(new_peer_id=peer_id))

    async def relay(self, kind: str, target_id: str, payload: Any, sender_id: str) -> bool:
        """Forward an offer, answer or ICE candidate to ``target_id`` unmodified.

        Unknown targets are dropped without telling the sender.
        """
        if target_id not in self.connections:
            self.log_debug("Relay target not connected, dropping", {
                "kind": kind,
                "sender_id": sender_id,
                "target_id": target_id
            })
            return False

        if self.config.scope_relay_to_room and not self.registry.share_room(sender_id, target_id):
            self.log_warning("Relay target outside sender's room, dropping", {
                "kind": kind,
                "sender_id": sender_id,
                "target_id": target_id
            })
            return False

        self.log_debug("Relaying signal", {
            "kind": kind,
            "sender_id": sender_id,
            "target_id": target_id
        })
        return await self._send(target_id, RelayedSignal(kind=kind, sender_id=sender_id, payload=payload))

    async def disconnect(self, peer_id: str):
        """Remove ``peer_id`` from every room. Repeated calls are no-ops."""
        if self.connections.pop(peer_id, None) is None:
            return

        updates: List[Tuple[str, List[str]]] = []
        for room in self.registry.rooms_containing(peer_id):
            self.registry.remove_member(room.id, peer_id)
            if room.id in self.registry:
                updates.append((room.id, list(room.members)))
            else:
                self.log_info("Room deleted as it is empty", {"room_id": room.id})

        self.log_info("Peer disconnected", {
            "peer_id": peer_id,
            "updated_rooms": [room_id for room_id, _ in updates],
            "total_connections": len(self.connections)
        })

        for room_id, members in updates:
            update = RoomUpdated(members=members)
            for member_id in members:
                await self._send(member_id, update)

    async def _send(self, peer_id: str, message: ServerMessage) -> bool:
        send = self.connections.get(peer_id)
        if send is None:
            return False
        try:
            await send(encode(message))
            return True
        except Exception as e:
            self.log_error("Failed to send relay message", {
                "peer_id": peer_id,
                "event": message.event,
                "error": str(e),
                "error_type": type(e).__name__
            })
            return False

    def get_status(self) -> Dict[str, Any]:
        return {
            "connections": len(self.connections),
            "rooms": {room.id: len(room) for room in self.registry},
            "total_rooms": len(self.registry),
            "scope_relay_to_room": self.config.scope_relay_to_room
        }
