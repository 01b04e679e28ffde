"""
Channel-level wire format for file transfer.

Control messages travel as JSON text, file bytes as binary messages of
at most ``CHUNK_SIZE`` bytes.
"""
import json
from dataclasses import dataclass
from typing import BinaryIO, ClassVar, Iterator, Optional, Union

from roomdrop.core.config import CHUNK_SIZE
from roomdrop.core.exceptions import MessageError
from roomdrop.core.validation_utils import ValidationUtils

DEFAULT_FILE_TYPE = 'application/octet-stream'


@dataclass
class FileInfo:
    type: ClassVar[str] = 'file_info'
    file_name: str
    file_type: str
    total_size: int

    def to_json(self) -> str:
        return json.dumps({
            'type': self.type,
            'fileName': self.file_name,
            'fileType': self.file_type,
            'totalSize': self.total_size
        })


@dataclass
class FileEnd:
    type: ClassVar[str] = 'file_end'
    file_name: str

    def to_json(self) -> str:
        return json.dumps({'type': self.type, 'fileName': self.file_name})


ControlMessage = Union[FileInfo, FileEnd]


def parse_control_message(text: str) -> Optional[ControlMessage]:
    """Parse a text message received on the channel.

    Returns None when the text is not structured control data (a plain
    text line). Raises MessageError for JSON objects that are not a known
    control message.
    """
    try:
        data = json.loads(text)
    except ValueError:
        return None

    if not isinstance(data, dict):
        return None

    message_type = data.get('type')

    if message_type == FileInfo.type:
        error = ValidationUtils.validate_required_fields(data, ['fileName', 'totalSize'])
        error = error or ValidationUtils.validate_size(data['totalSize'], 'totalSize')
        if error:
            raise MessageError(error, {"type": message_type})
        return FileInfo(
            file_name=str(data['fileName']),
            file_type=data.get('fileType') or DEFAULT_FILE_TYPE,
            total_size=data['totalSize']
        )

    if message_type == FileEnd.type:
        error = ValidationUtils.validate_required_fields(data, ['fileName'])
        if error:
            raise MessageError(error, {"type": message_type})
        return FileEnd(file_name=str(data['fileName']))

    raise MessageError("Unknown control message type", {"type": message_type})


def iter_chunks(data: bytes, chunk_size: int = CHUNK_SIZE) -> Iterator[bytes]:
    """Split ``data`` into consecutive chunks; only the last may be shorter."""
    view = memoryview(data)
    for offset in range(0, len(view), chunk_size):
        yield bytes(view[offset:offset + chunk_size])


def read_chunks(stream: BinaryIO, chunk_size: int = CHUNK_SIZE) -> Iterator[bytes]:
    """Read ``stream`` lazily in chunks of at most ``chunk_size`` bytes."""
    while True:
        chunk = stream.read(chunk_size)
        if not chunk:
            return
        yield chunk
