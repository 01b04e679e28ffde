"""
Client side of the relay connection.
"""
import asyncio
from typing import Any, Callable, Dict, Optional, Set

import websockets
from websockets.exceptions import ConnectionClosed, InvalidHandshake

from roomdrop.core.exceptions import MessageError, SignalingError
from roomdrop.core.logging import LoggerMixin, debug_log
from roomdrop.signaling.messages import (
    Connected,
    JoinRoom,
    RelayedSignal,
    SignalRequest,
    encode,
    parse_server_message,
)


class SignalingClient(LoggerMixin):
    """Talks to the relay over a WebSocket and dispatches relay events to listeners.

    Listeners are registered per event name (``room_joined``, ``offer_needed``,
    ``offer``, ...) and receive the parsed message. The pseudo-event
    ``disconnected`` fires once when the relay connection ends.
    """

    def __init__(self, url: str):
        super().__init__()
        self.url = url
        self.peer_id: Optional[str] = None
        self.room_id: Optional[str] = None
        self._ws = None
        self.event_listeners: Dict[str, Set[Callable]] = {}

    def add_listener(self, event: str, callback: Callable):
        """Add a listener for a relay event."""
        self.event_listeners.setdefault(event, set()).add(callback)

    async def connect(self):
        try:
            self._ws = await websockets.connect(self.url)
        except (OSError, InvalidHandshake) as e:
            raise SignalingError("Could not connect to relay", {"url": self.url, "error": str(e)})
        self.log_info("Connected to relay", {"url": self.url})

    async def run(self):
        """Consume relay frames until the connection closes."""
        if self._ws is None:
            raise SignalingError("Relay connection not open", {"url": self.url})
        try:
            async for raw in self._ws:
                await self.dispatch(raw)
        except ConnectionClosed as e:
            self.log_warning("Relay connection closed", {"url": self.url, "reason": str(e)})
        finally:
            self._ws = None
            self.peer_id = None
            await self._notify('disconnected', None)

    async def dispatch(self, raw: Any):
        """Parse one relay frame and call the listeners for its event."""
        try:
            message = parse_server_message(raw)
        except MessageError as e:
            self.log_warning("Dropping malformed relay event", {"error": str(e)})
            return

        if isinstance(message, Connected):
            self.peer_id = message.peer_id
            self.log_info("Relay assigned peer id", {"peer_id": self.peer_id})

        debug_log("📥 [Signaling] Relay event received", {
            "event": message.event,
            "sender_id": message.sender_id if isinstance(message, RelayedSignal) else None
        }, "DEBUG")
        await self._notify(message.event, message)

    async def _notify(self, event: str, message: Any):
        for callback in list(self.event_listeners.get(event, ())):
            try:
                result = callback(message)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                self.log_error("Error in relay event listener", {
                    "event": event,
                    "error": str(e),
                    "error_type": type(e).__name__
                })

    async def join_room(self, room_id: str):
        self.room_id = room_id
        await self._send(JoinRoom(room_id=room_id))

    async def send_signal(self, kind: str, target_id: str, payload: Any):
        """Send an offer, answer or ICE candidate to ``target_id`` through the relay."""
        await self._send(SignalRequest(kind=kind, target_id=target_id, payload=payload, room_id=self.room_id))

    async def _send(self, message):
        if self._ws is None:
            raise SignalingError("Relay connection not open", {"event": message.event})
        try:
            await self._ws.send(encode(message))
        except ConnectionClosed as e:
            raise SignalingError("Relay connection closed while sending", {
                "event": message.event,
                "reason": str(e)
            })

    async def close(self):
        if self._ws is not None:
            await self._ws.close()
