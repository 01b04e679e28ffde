"""
Peer negotiation orchestration: one negotiation session per remote peer.
"""
import asyncio
from typing import Any, Callable, Dict, Iterable, Optional, Set, Union

from aiortc import RTCDataChannel, RTCPeerConnection

from roomdrop.core.config import ClientConfig
from roomdrop.core.exceptions import ChannelError
from roomdrop.core.logging import LoggerMixin, debug_log
from roomdrop.webrtc.data_channel import DataChannelManager, PeerChannel
from roomdrop.webrtc.negotiation import (
    NegotiationSession,
    NegotiationState,
    Role,
    SendSignal,
    Signal,
)

CHANNEL_LABEL = "file_transfer"


class PeerNegotiationOrchestrator(LoggerMixin):
    """Creates, drives and tears down negotiation sessions.

    Only peers already in a room initiate; a peer that just joined waits
    for offers. Connection events are published through
    ``add_connection_callback``:

        channel_ready(remote_id, PeerChannel)
        peer_closed(remote_id, None)
    """

    def __init__(self, config: ClientConfig, send_signal: SendSignal,
                 peer_connection_factory: Optional[Callable[[], RTCPeerConnection]] = None):
        super().__init__()
        self.config = config
        self.send_signal = send_signal
        self.sessions: Dict[str, NegotiationSession] = {}
        self.data_channel_manager = DataChannelManager()
        self._peer_connection_factory = peer_connection_factory or self._create_peer_connection
        self._background_tasks: Set[asyncio.Task] = set()

        self.connection_callbacks: Dict[str, Set[Callable]] = {
            'channel_ready': set(),
            'peer_closed': set()
        }

    def _create_peer_connection(self) -> RTCPeerConnection:
        return RTCPeerConnection(configuration=self.config.rtc_config)

    def add_connection_callback(self, event: str, callback: Callable):
        """Add a callback for connection events."""
        if event in self.connection_callbacks:
            self.connection_callbacks[event].add(callback)

    def set_message_handler(self, handler: Callable[[str, Union[str, bytes]], Any]):
        """Route every channel message to ``handler(remote_id, message)``."""
        self.data_channel_manager.set_message_handler(handler)

    async def handle_offer_needed(self, remote_id: str) -> NegotiationSession:
        """Start negotiating as initiator toward a newly joined peer."""
        debug_log(f"🤝 [PeerManager] Offer needed", {"remote_id": remote_id})
        session = await self._new_session(remote_id, Role.INITIATOR)

        channel = session.peer_connection.createDataChannel(CHANNEL_LABEL, ordered=True)
        self._attach_channel(remote_id, channel)

        session.submit(Signal("offer_needed"))
        return session

    async def handle_signal(self, kind: str, sender_id: str, payload: Any) -> Optional[NegotiationSession]:
        """Route a relayed offer, answer or ICE candidate to its session."""
        session = self.sessions.get(sender_id)

        if kind in ("offer", "ice_candidate"):
            if session is None or session.is_terminal:
                session = await self._new_session(sender_id, Role.RESPONDER)
        elif session is None:
            self.log_error("Answer from peer with no negotiation session", {"remote_id": sender_id})
            return None

        session.submit(Signal(kind, payload))
        return session

    async def _new_session(self, remote_id: str, role: Role) -> NegotiationSession:
        previous = self.sessions.get(remote_id)
        if previous is not None:
            self.log_info("Replacing existing negotiation session", {
                "remote_id": remote_id,
                "state": previous.state.value
            })
            await self.close_session(remote_id)

        pc = self._peer_connection_factory()
        session = NegotiationSession(remote_id, role, pc, self.send_signal)
        self.sessions[remote_id] = session
        self._setup_peer_connection_handlers(session)

        self.log_info("Created negotiation session", {
            "remote_id": remote_id,
            "role": role.value,
            "total_sessions": len(self.sessions)
        })
        return session

    def _setup_peer_connection_handlers(self, session: NegotiationSession):
        """Set up event handlers for a peer connection."""
        pc = session.peer_connection
        remote_id = session.remote_id

        @pc.on("datachannel")
        def on_datachannel(channel: RTCDataChannel):
            if self.sessions.get(remote_id) is not session:
                return
            self._attach_channel(remote_id, channel)

        @pc.on("connectionstatechange")
        async def on_connection_state_change():
            debug_log(f"🔗 [PeerManager] Connection state changed", {
                "remote_id": remote_id,
                "connection_state": pc.connectionState
            })
            if pc.connectionState == "failed":
                session.fail(ConnectionError("peer connection failed"), "connectionstatechange")
                await self._teardown(session)
            elif pc.connectionState == "closed":
                await self._teardown(session)

    def _attach_channel(self, remote_id: str, channel: RTCDataChannel):
        session = self.sessions.get(remote_id)
        if session is None:
            return

        try:
            peer_channel = PeerChannel(remote_id, channel, self.config.buffered_amount_high)
        except ChannelError as e:
            session.fail(e, "datachannel")
            channel.close()
            return

        session.channel = peer_channel
        self.data_channel_manager.add_channel(
            peer_channel,
            close_handler=lambda: self._schedule(self._teardown(session))
        )

        if channel.readyState == "open":
            self._on_channel_open(session)
        else:
            @channel.on("open")
            def on_open():
                self._on_channel_open(session)

    def _on_channel_open(self, session: NegotiationSession):
        if self.sessions.get(session.remote_id) is not session or session.is_terminal:
            return
        session.mark_established()
        self.log_info("Peer channel established", {
            "remote_id": session.remote_id,
            "role": session.role.value
        })
        self._notify_callbacks('channel_ready', session.remote_id, session.channel)

    async def close_session(self, remote_id: str) -> bool:
        """Close and forget the session for ``remote_id``."""
        session = self.sessions.get(remote_id)
        if session is None:
            return False
        return await self._teardown(session)

    async def prune(self, member_ids: Iterable[str]):
        """Close sessions for peers that are no longer room members."""
        members = set(member_ids)
        for remote_id in list(self.sessions):
            if remote_id not in members:
                await self.close_session(remote_id)

    async def close_all(self):
        for remote_id in list(self.sessions):
            await self.close_session(remote_id)

    async def _teardown(self, session: NegotiationSession) -> bool:
        remote_id = session.remote_id
        if self.sessions.get(remote_id) is not session:
            return False

        del self.sessions[remote_id]
        session.mark_closed()
        peer_channel = self.data_channel_manager.remove_channel(remote_id)
        if peer_channel is not None:
            peer_channel.close()

        self.log_info("Negotiation session closed", {
            "remote_id": remote_id,
            "total_sessions": len(self.sessions)
        })
        self._notify_callbacks('peer_closed', remote_id)

        await session.peer_connection.close()
        return True

    def _schedule(self, coro):
        task = asyncio.ensure_future(coro)
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)
        return task

    def _notify_callbacks(self, event: str, remote_id: str, data: Any = None):
        """Notify all callbacks for an event."""
        for callback in list(self.connection_callbacks.get(event, ())):
            try:
                callback(remote_id, data)
            except Exception as e:
                self.log_error(f"Error in connection callback", {
                    "event": event,
                    "remote_id": remote_id,
                    "error": str(e)
                })

    def get_session(self, remote_id: str) -> Optional[NegotiationSession]:
        return self.sessions.get(remote_id)

    def get_open_channels(self) -> Dict[str, PeerChannel]:
        return self.data_channel_manager.get_open_channels()

    def get_status(self) -> Dict[str, Any]:
        return {
            "sessions": {remote_id: session.state.value for remote_id, session in self.sessions.items()},
            "established": [
                remote_id for remote_id, session in self.sessions.items()
                if session.state == NegotiationState.ESTABLISHED
            ],
            "channels": self.data_channel_manager.get_all_channels_info()
        }
