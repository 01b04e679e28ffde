"""
Configuration management for RoomDrop.
"""
import os
from dataclasses import dataclass, field
from typing import List, Optional

from aiortc import RTCConfiguration, RTCIceServer

CHUNK_SIZE = 16 * 1024
DEFAULT_STUN_URL = "stun:stun.l.google.com:19302"


def _env_flag(name: str, default: str = "false") -> bool:
    return os.environ.get(name, default).lower() in ("1", "true", "yes")


@dataclass
class ServerConfig:
    """Relay server configuration settings."""

    host: Optional[str] = None
    port: Optional[int] = None
    relay_path: Optional[str] = None

    # Only forward offer/answer/candidate between peers sharing a room
    scope_relay_to_room: Optional[bool] = None

    log_level: Optional[str] = None

    def __post_init__(self):
        """Fill unset fields from environment variables."""
        if self.host is None:
            self.host = os.environ.get('ROOMDROP_HOST', '0.0.0.0')
        if self.port is None:
            self.port = int(os.environ.get('ROOMDROP_PORT', 3000))
        if self.relay_path is None:
            self.relay_path = os.environ.get('ROOMDROP_RELAY_PATH', '/ws')
        if self.scope_relay_to_room is None:
            self.scope_relay_to_room = _env_flag('ROOMDROP_SCOPE_RELAY_TO_ROOM')
        if self.log_level is None:
            self.log_level = os.environ.get('ROOMDROP_LOG_LEVEL', 'INFO')

    def __str__(self) -> str:
        return (f"ServerConfig(host={self.host}, port={self.port}, "
                f"relay_path={self.relay_path}, scoped={self.scope_relay_to_room})")


@dataclass
class ClientConfig:
    """Client-side configuration: relay location, ICE servers and transfer tuning."""

    relay_url: Optional[str] = None

    # ICE servers
    stun_urls: List[str] = field(default_factory=list)
    turn_url: Optional[str] = None
    turn_username: Optional[str] = None
    turn_password: Optional[str] = None

    download_dir: Optional[str] = None
    chunk_size: int = CHUNK_SIZE

    # Sender pauses once this many bytes are queued on the data channel
    buffered_amount_high: int = CHUNK_SIZE * 8

    log_level: Optional[str] = None

    rtc_config: Optional[RTCConfiguration] = None

    def __post_init__(self):
        """Fill unset fields from environment variables."""
        if self.relay_url is None:
            self.relay_url = os.environ.get('ROOMDROP_RELAY_URL', 'ws://localhost:3000/ws')
        if not self.stun_urls:
            stun = os.environ.get('ROOMDROP_STUN_URLS', DEFAULT_STUN_URL)
            self.stun_urls = [url.strip() for url in stun.split(',') if url.strip()]
        if self.turn_url is None:
            self.turn_url = os.environ.get('ROOMDROP_TURN_URL')
            self.turn_username = self.turn_username or os.environ.get('ROOMDROP_TURN_USERNAME')
            self.turn_password = self.turn_password or os.environ.get('ROOMDROP_TURN_PASSWORD')
        if self.download_dir is None:
            self.download_dir = os.environ.get('ROOMDROP_DOWNLOAD_DIR', os.path.join(os.getcwd(), 'downloads'))
        if self.log_level is None:
            self.log_level = os.environ.get('ROOMDROP_LOG_LEVEL', 'INFO')
        if self.chunk_size <= 0 or self.chunk_size > CHUNK_SIZE:
            raise ValueError(f"chunk_size must be between 1 and {CHUNK_SIZE}, got {self.chunk_size}")

        if self.rtc_config is None:
            self._build_rtc_config()

    def _build_rtc_config(self):
        """Build WebRTC configuration from the configured ICE servers."""
        ice_servers = [RTCIceServer(urls=url) for url in self.stun_urls]

        if self.turn_url:
            ice_servers.append(
                RTCIceServer(
                    urls=self.turn_url,
                    username=self.turn_username,
                    credential=self.turn_password
                )
            )

        self.rtc_config = RTCConfiguration(iceServers=ice_servers)

    def __str__(self) -> str:
        return (f"ClientConfig(relay_url={self.relay_url}, stun_urls={self.stun_urls}, "
                f"turn={'yes' if self.turn_url else 'no'}, download_dir={self.download_dir})")
