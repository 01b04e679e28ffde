"""
RoomDrop client: joins a room through the relay, negotiates a data
channel with every other member and exchanges files over it.
"""
import asyncio
import os
from typing import Callable, Dict, Optional

from roomdrop.core.config import ClientConfig
from roomdrop.core.logging import LoggerMixin
from roomdrop.signaling.messages import OfferNeeded, ReadyToConnect, RelayedSignal, RoomJoined, RoomUpdated
from roomdrop.transfer.receiver import FileReceiver, ReceivedFile, TransferWarning
from roomdrop.transfer.sender import FileSender
from roomdrop.webrtc.data_channel import PeerChannel
from roomdrop.webrtc.peer_manager import PeerNegotiationOrchestrator
from roomdrop.webrtc.signaling_client import SignalingClient


class RoomDropClient(LoggerMixin):
    """Wires the relay connection, negotiation and transfer engine for one local peer."""

    def __init__(self, config: Optional[ClientConfig] = None,
                 signaling: Optional[SignalingClient] = None,
                 peer_connection_factory: Optional[Callable] = None,
                 on_file: Optional[Callable[[ReceivedFile], None]] = None,
                 on_warning: Optional[Callable[[TransferWarning], None]] = None):
        super().__init__()
        self.config = config or ClientConfig()
        self.signaling = signaling or SignalingClient(self.config.relay_url)
        self.orchestrator = PeerNegotiationOrchestrator(
            self.config,
            self.signaling.send_signal,
            peer_connection_factory=peer_connection_factory
        )
        self.receiver = FileReceiver(
            on_file=on_file or self.save_file,
            on_warning=on_warning
        )
        self.sender = FileSender(chunk_size=self.config.chunk_size)

        # File pushed to every peer as soon as its channel opens
        self.auto_send_path: Optional[str] = None
        self._send_tasks = set()

        self._setup_integrations()

    def _setup_integrations(self):
        self.signaling.add_listener('room_joined', self._on_room_joined)
        self.signaling.add_listener('ready_to_connect', self._on_ready_to_connect)
        self.signaling.add_listener('offer_needed', self._on_offer_needed)
        for kind in ('offer', 'answer', 'ice_candidate'):
            self.signaling.add_listener(kind, self._on_relayed_signal)
        self.signaling.add_listener('room_updated', self._on_room_updated)
        self.signaling.add_listener('disconnected', self._on_relay_disconnected)

        self.orchestrator.set_message_handler(self.receiver.handle_message)
        self.orchestrator.add_connection_callback('channel_ready', self._on_channel_ready)
        self.orchestrator.add_connection_callback('peer_closed', self._on_peer_closed)

    def _on_room_joined(self, message: RoomJoined):
        self.log_info(f"Peer {message.peer_id} joined room {message.room_id}. Total: {message.total_members}")

    def _on_ready_to_connect(self, message: ReadyToConnect):
        self.log_info(f"Room {message.room_id} has other members, waiting for offers")

    async def _on_offer_needed(self, message: OfferNeeded):
        await self.orchestrator.handle_offer_needed(message.new_peer_id)

    async def _on_relayed_signal(self, message: RelayedSignal):
        await self.orchestrator.handle_signal(message.kind, message.sender_id, message.payload)

    async def _on_room_updated(self, message: RoomUpdated):
        self.log_info("Room membership changed", {"members": message.members})
        await self.orchestrator.prune(message.members)
        self.log_info("Peer status", self.orchestrator.get_status())

    async def _on_relay_disconnected(self, _message):
        await self.orchestrator.close_all()
        self.receiver.clear()

    def _on_channel_ready(self, remote_id: str, channel: PeerChannel):
        if self.auto_send_path:
            task = asyncio.ensure_future(self._send_to_peer(remote_id, channel, self.auto_send_path))
            self._send_tasks.add(task)
            task.add_done_callback(self._send_tasks.discard)

    def _on_peer_closed(self, remote_id: str, _data):
        self.receiver.discard(remote_id)

    async def _send_to_peer(self, remote_id: str, channel: PeerChannel, path: str) -> bool:
        result = await self.sender.send_to_peers({remote_id: channel}, path)
        return result[remote_id]

    async def send_file(self, path: str) -> Dict[str, bool]:
        """Send ``path`` to every peer with an open channel."""
        channels = self.orchestrator.get_open_channels()
        if not channels:
            self.log_warning("No connected peers to send to", {"path": path})
            return {}
        return await self.sender.send_to_peers(channels, path)

    def save_file(self, received: ReceivedFile) -> str:
        """Write a received file into the download directory."""
        os.makedirs(self.config.download_dir, exist_ok=True)
        file_name = os.path.basename(received.file_name)
        if file_name in ("", ".", ".."):
            file_name = "received.bin"
        path = os.path.join(self.config.download_dir, file_name)
        with open(path, 'wb') as f:
            f.write(received.data)
        self.log_info("Saved received file", {
            "remote_id": received.remote_id,
            "path": path,
            "size": received.size,
            "file_type": received.file_type
        })
        return path

    async def run(self, room_id: str, send_path: Optional[str] = None):
        """Connect to the relay, join ``room_id`` and serve until the relay goes away."""
        self.auto_send_path = send_path
        await self.signaling.connect()
        await self.signaling.join_room(room_id)
        await self.signaling.run()
