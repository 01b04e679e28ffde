"""
Data channel management for peer connections.
"""
import asyncio
from typing import Any, Callable, Dict, Optional, Union

from aiortc import RTCDataChannel

from roomdrop.core.config import CHUNK_SIZE
from roomdrop.core.exceptions import ChannelError
from roomdrop.core.logging import LoggerMixin, debug_log


class PeerChannel(LoggerMixin):
    """An ordered, reliable data channel to one remote peer.

    ``send`` applies cooperative backpressure: once more than
    ``buffered_amount_high`` bytes are queued it waits for the channel's
    ``bufferedamountlow`` event before returning.
    """

    def __init__(self, remote_id: str, channel: RTCDataChannel, buffered_amount_high: int = CHUNK_SIZE * 8):
        super().__init__()
        self._check_delivery_mode(remote_id, channel)

        self.remote_id = remote_id
        self.channel = channel
        self.buffered_amount_high = buffered_amount_high
        self._drained = asyncio.Event()
        self._drained.set()
        self._closed = False

        channel.bufferedAmountLowThreshold = buffered_amount_high // 2

        @channel.on("bufferedamountlow")
        def on_buffered_amount_low():
            self._drained.set()

        @channel.on("close")
        def on_close():
            self._closed = True
            self._drained.set()

    @staticmethod
    def _check_delivery_mode(remote_id: str, channel: RTCDataChannel):
        if not channel.ordered:
            raise ChannelError("Unordered data channels are not supported", {
                "remote_id": remote_id,
                "label": channel.label
            })
        if channel.maxRetransmits is not None or channel.maxPacketLifeTime is not None:
            raise ChannelError("Unreliable data channels are not supported", {
                "remote_id": remote_id,
                "label": channel.label,
                "max_retransmits": channel.maxRetransmits,
                "max_packet_life_time": channel.maxPacketLifeTime
            })

    @property
    def label(self) -> str:
        return self.channel.label

    @property
    def ready_state(self) -> str:
        return self.channel.readyState

    @property
    def is_open(self) -> bool:
        return not self._closed and self.channel.readyState == "open"

    async def send(self, data: Union[str, bytes]):
        """Send one message and wait until the channel can take more."""
        if not self.is_open:
            raise ChannelError("Channel is not open", {
                "remote_id": self.remote_id,
                "ready_state": self.ready_state
            })

        self.channel.send(data)

        if self.channel.bufferedAmount > self.buffered_amount_high:
            self._drained.clear()
            await self._drained.wait()
            if self._closed:
                raise ChannelError("Channel closed while sending", {"remote_id": self.remote_id})

    def close(self):
        self._closed = True
        self._drained.set()
        self.channel.close()


class DataChannelManager(LoggerMixin):
    """Tracks the open peer channels and routes their events."""

    def __init__(self):
        super().__init__()
        self.channels: Dict[str, PeerChannel] = {}
        self.message_handler: Optional[Callable[[str, Union[str, bytes]], Any]] = None
        self.close_handlers: Dict[str, Callable[[], None]] = {}

    def set_message_handler(self, handler: Callable[[str, Union[str, bytes]], Any]):
        """Set the handler called as ``handler(remote_id, message)`` for every channel."""
        self.message_handler = handler

    def add_channel(self, peer_channel: PeerChannel, close_handler: Callable[[], None]):
        """Add a new data channel."""
        remote_id = peer_channel.remote_id
        self.log_info(f"Adding data channel", {
            "remote_id": remote_id,
            "channel_label": peer_channel.label,
            "total_channels": len(self.channels)
        })

        self.channels[remote_id] = peer_channel
        self.close_handlers[remote_id] = close_handler

        self._setup_channel_handlers(remote_id, peer_channel)

    def remove_channel(self, remote_id: str) -> Optional[PeerChannel]:
        """Stop tracking a data channel."""
        peer_channel = self.channels.pop(remote_id, None)
        self.close_handlers.pop(remote_id, None)
        if peer_channel is not None:
            self.log_info(f"Removing data channel", {
                "remote_id": remote_id,
                "total_channels": len(self.channels)
            })
        return peer_channel

    def _setup_channel_handlers(self, remote_id: str, peer_channel: PeerChannel):
        """Set up event handlers for a data channel."""

        @peer_channel.channel.on("message")
        async def on_message(message):
            """Handle incoming messages on the data channel."""
            if self.channels.get(remote_id) is not peer_channel or self.message_handler is None:
                return
            try:
                result = self.message_handler(remote_id, message)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                self.log_error("Error handling data channel message", {
                    "remote_id": remote_id,
                    "error": str(e),
                    "error_type": type(e).__name__
                })

        @peer_channel.channel.on("close")
        def on_close():
            """Handle data channel closure."""
            if self.channels.get(remote_id) is not peer_channel:
                return
            debug_log(f"🔌 [DataChannel] Data channel closed", {
                "remote_id": remote_id,
                "label": peer_channel.label
            })
            close_handler = self.close_handlers.get(remote_id)
            self.remove_channel(remote_id)
            if close_handler:
                close_handler()

    def get_channel(self, remote_id: str) -> Optional[PeerChannel]:
        return self.channels.get(remote_id)

    def get_open_channels(self) -> Dict[str, PeerChannel]:
        return {remote_id: channel for remote_id, channel in self.channels.items() if channel.is_open}

    def get_channel_info(self, remote_id: str) -> Optional[Dict[str, Any]]:
        """Get information about a specific data channel."""
        peer_channel = self.channels.get(remote_id)
        if peer_channel is None:
            return None

        channel = peer_channel.channel
        return {
            "remote_id": remote_id,
            "label": channel.label,
            "ordered": channel.ordered,
            "ready_state": channel.readyState,
            "buffered_amount": channel.bufferedAmount
        }

    def get_all_channels_info(self) -> Dict[str, Dict[str, Any]]:
        return {remote_id: self.get_channel_info(remote_id) for remote_id in self.channels}

    def get_channel_count(self) -> int:
        return len(self.channels)
