"""
Receiving side of the transfer protocol: one reassembly session per
remote peer.
"""
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Union

from roomdrop.core.exceptions import MessageError
from roomdrop.core.logging import LoggerMixin
from roomdrop.transfer.protocol import FileEnd, FileInfo, parse_control_message


@dataclass
class TransferSession:
    file_name: str
    file_type: str
    total_size: int
    received_size: int = 0
    chunks: List[bytes] = field(default_factory=list)

    def append(self, chunk: bytes):
        self.chunks.append(chunk)
        self.received_size += len(chunk)

    @property
    def is_complete(self) -> bool:
        return self.received_size == self.total_size


@dataclass
class ReceivedFile:
    remote_id: str
    file_name: str
    file_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass
class TransferWarning:
    """An integrity problem reported to the consumer instead of raised."""
    remote_id: str
    reason: str
    file_name: Optional[str] = None
    expected: Optional[int] = None
    received: Optional[int] = None


class FileReceiver(LoggerMixin):
    """Reassembles files sent by remote peers.

    Callbacks:
        on_file(ReceivedFile): a complete file arrived.
        on_warning(TransferWarning): chunks were lost, overflowed or arrived
            without a session; the affected session is discarded.
        on_text(remote_id, text): a text message that is not control data.
    """

    def __init__(self,
                 on_file: Optional[Callable[[ReceivedFile], None]] = None,
                 on_warning: Optional[Callable[[TransferWarning], None]] = None,
                 on_text: Optional[Callable[[str, str], None]] = None):
        super().__init__()
        self.sessions: Dict[str, TransferSession] = {}
        self.on_file = on_file
        self.on_warning = on_warning
        self.on_text = on_text

    def handle_message(self, remote_id: str, message: Union[str, bytes]) -> Optional[ReceivedFile]:
        """Feed one channel message. Returns the file when ``file_end`` completes it."""
        if isinstance(message, (bytes, bytearray, memoryview)):
            self._handle_chunk(remote_id, bytes(message))
            return None

        try:
            control = parse_control_message(message)
        except MessageError as e:
            self.log_warning("Ignoring unknown control message", {
                "remote_id": remote_id,
                "error": str(e)
            })
            return None

        if control is None:
            self.log_info(f"Text message from {remote_id}: {message}")
            if self.on_text:
                self.on_text(remote_id, message)
            return None

        if isinstance(control, FileInfo):
            self._start_session(remote_id, control)
            return None

        return self._finish_session(remote_id, control)

    def discard(self, remote_id: str) -> bool:
        """Drop the in-flight session for ``remote_id``, if any."""
        session = self.sessions.pop(remote_id, None)
        if session is not None:
            self.log_info("Discarded in-flight transfer", {
                "remote_id": remote_id,
                "file_name": session.file_name,
                "received_size": session.received_size,
                "total_size": session.total_size
            })
        return session is not None

    def clear(self):
        for remote_id in list(self.sessions):
            self.discard(remote_id)

    def get_progress(self, remote_id: str) -> Optional[Dict[str, int]]:
        session = self.sessions.get(remote_id)
        if session is None:
            return None
        return {"received_size": session.received_size, "total_size": session.total_size}

    def _start_session(self, remote_id: str, info: FileInfo):
        previous = self.sessions.get(remote_id)
        if previous is not None:
            self._warn(TransferWarning(
                remote_id=remote_id,
                reason="incomplete transfer replaced by a new file",
                file_name=previous.file_name,
                expected=previous.total_size,
                received=previous.received_size
            ))

        self.sessions[remote_id] = TransferSession(
            file_name=info.file_name,
            file_type=info.file_type,
            total_size=info.total_size
        )
        self.log_info("Receiving file", {
            "remote_id": remote_id,
            "file_name": info.file_name,
            "total_size": info.total_size
        })

    def _handle_chunk(self, remote_id: str, chunk: bytes):
        session = self.sessions.get(remote_id)
        if session is None:
            self._warn(TransferWarning(
                remote_id=remote_id,
                reason="chunk received without file_info",
                received=len(chunk)
            ))
            return

        if session.received_size + len(chunk) > session.total_size:
            del self.sessions[remote_id]
            self._warn(TransferWarning(
                remote_id=remote_id,
                reason="chunk exceeds announced file size",
                file_name=session.file_name,
                expected=session.total_size,
                received=session.received_size + len(chunk)
            ))
            return

        session.append(chunk)
        self.log_debug(f"Received chunk from {remote_id}: {session.received_size}/{session.total_size} bytes")

    def _finish_session(self, remote_id: str, end: FileEnd) -> Optional[ReceivedFile]:
        session = self.sessions.pop(remote_id, None)
        if session is None:
            self._warn(TransferWarning(
                remote_id=remote_id,
                reason="file_end received without file_info",
                file_name=end.file_name
            ))
            return None

        if session.file_name != end.file_name:
            self._warn(TransferWarning(
                remote_id=remote_id,
                reason=f"file_end names '{end.file_name}'",
                file_name=session.file_name,
                expected=session.total_size,
                received=session.received_size
            ))
            return None

        if not session.is_complete:
            self._warn(TransferWarning(
                remote_id=remote_id,
                reason="received size does not match announced size",
                file_name=session.file_name,
                expected=session.total_size,
                received=session.received_size
            ))
            return None

        received = ReceivedFile(
            remote_id=remote_id,
            file_name=session.file_name,
            file_type=session.file_type,
            data=b"".join(session.chunks)
        )
        self.log_info("File transfer complete", {
            "remote_id": remote_id,
            "file_name": received.file_name,
            "size": received.size
        })
        if self.on_file:
            self.on_file(received)
        return received

    def _warn(self, warning: TransferWarning):
        self.log_warning(f"Transfer integrity problem: {warning.reason}", {
            "remote_id": warning.remote_id,
            "file_name": warning.file_name,
            "expected": warning.expected,
            "received": warning.received
        })
        if self.on_warning:
            self.on_warning(warning)
