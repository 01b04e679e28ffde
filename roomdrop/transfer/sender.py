"""
Sending side of the transfer protocol.
"""
import asyncio
import mimetypes
import os
from typing import Dict, Iterable, Optional

from roomdrop.core.config import CHUNK_SIZE
from roomdrop.core.exceptions import TransferError
from roomdrop.core.logging import LoggerMixin
from roomdrop.transfer.protocol import DEFAULT_FILE_TYPE, FileEnd, FileInfo, iter_chunks, read_chunks
from roomdrop.webrtc.data_channel import PeerChannel


def guess_file_type(file_name: str) -> str:
    file_type, _ = mimetypes.guess_type(file_name)
    return file_type or DEFAULT_FILE_TYPE


class FileSender(LoggerMixin):
    """Streams files over established peer channels: file_info, chunks, file_end."""

    def __init__(self, chunk_size: int = CHUNK_SIZE):
        super().__init__()
        if chunk_size <= 0 or chunk_size > CHUNK_SIZE:
            raise ValueError(f"chunk_size must be between 1 and {CHUNK_SIZE}")
        self.chunk_size = chunk_size

    async def send_bytes(self, channel: PeerChannel, file_name: str, data: bytes,
                         file_type: Optional[str] = None) -> int:
        """Send an in-memory file. Returns the number of chunks sent."""
        info = FileInfo(
            file_name=file_name,
            file_type=file_type or guess_file_type(file_name),
            total_size=len(data)
        )
        return await self._send_stream(channel, info, iter_chunks(data, self.chunk_size))

    async def send_file(self, channel: PeerChannel, path: str, file_type: Optional[str] = None) -> int:
        """Send the file at ``path``, reading one chunk at a time."""
        file_name = os.path.basename(path)
        info = FileInfo(
            file_name=file_name,
            file_type=file_type or guess_file_type(file_name),
            total_size=os.path.getsize(path)
        )
        with open(path, 'rb') as stream:
            return await self._send_stream(channel, info, read_chunks(stream, self.chunk_size))

    async def send_to_peers(self, channels: Dict[str, PeerChannel], path: str) -> Dict[str, bool]:
        """Send ``path`` to every channel. Each peer is served independently."""
        remote_ids = list(channels.keys())
        results = await asyncio.gather(
            *(self.send_file(channels[remote_id], path) for remote_id in remote_ids),
            return_exceptions=True
        )

        outcome = {}
        for remote_id, result in zip(remote_ids, results):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, Exception):
                self.log_error("File transfer to peer failed", {
                    "remote_id": remote_id,
                    "path": path,
                    "error": str(result),
                    "error_type": type(result).__name__
                })
                outcome[remote_id] = False
            else:
                outcome[remote_id] = True
        return outcome

    async def _send_stream(self, channel: PeerChannel, info: FileInfo, chunks: Iterable[bytes]) -> int:
        if not channel.is_open:
            raise TransferError("Channel is not open", {
                "remote_id": channel.remote_id,
                "ready_state": channel.ready_state
            })

        self.log_info("Sending file", {
            "remote_id": channel.remote_id,
            "file_name": info.file_name,
            "file_type": info.file_type,
            "total_size": info.total_size
        })

        await channel.send(info.to_json())

        sent_chunks = 0
        sent_bytes = 0
        for chunk in chunks:
            await channel.send(chunk)
            sent_chunks += 1
            sent_bytes += len(chunk)

        if sent_bytes != info.total_size:
            raise TransferError("File size changed while sending", {
                "file_name": info.file_name,
                "expected": info.total_size,
                "sent": sent_bytes
            })

        await channel.send(FileEnd(file_name=info.file_name).to_json())

        self.log_info("File sent", {
            "remote_id": channel.remote_id,
            "file_name": info.file_name,
            "chunks": sent_chunks
        })
        return sent_chunks
