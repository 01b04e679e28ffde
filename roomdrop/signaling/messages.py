"""
Relay message vocabulary.

Every frame on the relay WebSocket is a JSON envelope
``{"event": <name>, "data": <payload>}``. Envelopes are parsed into the
closed set of dataclasses below at the boundary; anything else raises
:class:`MessageError`.
"""
import json
from dataclasses import dataclass
from typing import Any, ClassVar, Dict, List, Optional, Union

from roomdrop.core.exceptions import MessageError
from roomdrop.core.validation_utils import ValidationUtils

SIGNAL_KINDS = ('offer', 'answer', 'ice_candidate')

# Field that carries the relayed body for each signal kind
SIGNAL_PAYLOAD_FIELD = {
    'offer': 'sdp',
    'answer': 'sdp',
    'ice_candidate': 'candidate',
}


# Client -> relay

@dataclass
class JoinRoom:
    event: ClassVar[str] = 'create_or_join_room'
    room_id: str

    def to_payload(self) -> Any:
        return self.room_id


@dataclass
class SignalRequest:
    """An offer, answer or ICE candidate addressed to ``target_id``."""
    kind: str
    target_id: str
    payload: Any
    room_id: Optional[str] = None

    @property
    def event(self) -> str:
        return self.kind

    def to_payload(self) -> Dict[str, Any]:
        data = {'targetId': self.target_id, SIGNAL_PAYLOAD_FIELD[self.kind]: self.payload}
        if self.room_id is not None:
            data['roomId'] = self.room_id
        return data


# Relay -> client

@dataclass
class Connected:
    event: ClassVar[str] = 'connected'
    peer_id: str

    def to_payload(self) -> Dict[str, Any]:
        return {'peerId': self.peer_id}


@dataclass
class RoomJoined:
    event: ClassVar[str] = 'room_joined'
    peer_id: str
    room_id: str
    total_members: int

    def to_payload(self) -> Dict[str, Any]:
        return {'peerId': self.peer_id, 'roomId': self.room_id, 'totalMembers': self.total_members}


@dataclass
class ReadyToConnect:
    event: ClassVar[str] = 'ready_to_connect'
    room_id: str

    def to_payload(self) -> Any:
        return self.room_id


@dataclass
class OfferNeeded:
    event: ClassVar[str] = 'offer_needed'
    new_peer_id: str

    def to_payload(self) -> Dict[str, Any]:
        return {'newPeerId': self.new_peer_id}


@dataclass
class RelayedSignal:
    """An offer, answer or ICE candidate forwarded from ``sender_id``."""
    kind: str
    sender_id: str
    payload: Any

    @property
    def event(self) -> str:
        return self.kind

    def to_payload(self) -> Dict[str, Any]:
        return {'senderId': self.sender_id, SIGNAL_PAYLOAD_FIELD[self.kind]: self.payload}


@dataclass
class RoomUpdated:
    event: ClassVar[str] = 'room_updated'
    members: List[str]

    def to_payload(self) -> List[str]:
        return list(self.members)


ClientMessage = Union[JoinRoom, SignalRequest]
ServerMessage = Union[Connected, RoomJoined, ReadyToConnect, OfferNeeded, RelayedSignal, RoomUpdated]


def encode(message: Union[ClientMessage, ServerMessage]) -> str:
    """Serialize a message into a relay envelope."""
    return json.dumps({'event': message.event, 'data': message.to_payload()})


def _decode_envelope(raw: Union[str, bytes]) -> tuple:
    try:
        envelope = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise MessageError("Relay frame is not valid JSON", {"error": str(e)})

    if not isinstance(envelope, dict):
        raise MessageError("Relay frame must be a JSON object", {"frame_type": type(envelope).__name__})

    error = ValidationUtils.validate_required_fields(envelope, ['event'])
    if error:
        raise MessageError(error, {"keys": list(envelope.keys())})

    return envelope['event'], envelope.get('data')


def _require_dict(event: str, data: Any, fields: List[str]) -> Dict[str, Any]:
    if not isinstance(data, dict):
        raise MessageError(f"Payload for '{event}' must be an object", {"event": event})
    error = ValidationUtils.validate_required_fields(data, fields)
    if error:
        raise MessageError(error, {"event": event, "keys": list(data.keys())})
    return data


def _require_identifier(event: str, value: Any, name: str) -> str:
    error = ValidationUtils.validate_identifier(value, name)
    if error:
        raise MessageError(error, {"event": event})
    return value


def _parse_signal_body(event: str, data: Dict[str, Any]) -> Any:
    field_name = SIGNAL_PAYLOAD_FIELD[event]
    if field_name not in data:
        raise MessageError(f"Missing required fields: {field_name}", {"event": event})
    body = data[field_name]
    if field_name == 'sdp':
        error = ValidationUtils.validate_session_description(body)
        if error:
            raise MessageError(error, {"event": event})
    elif body is not None and not isinstance(body, dict):
        raise MessageError("candidate must be an object or null", {"event": event})
    return body


def parse_client_message(raw: Union[str, bytes]) -> ClientMessage:
    """Parse a frame received by the relay from a client."""
    event, data = _decode_envelope(raw)

    if event == JoinRoom.event:
        return JoinRoom(room_id=_require_identifier(event, data, 'roomId'))

    if event in SIGNAL_KINDS:
        data = _require_dict(event, data, ['targetId'])
        room_id = data.get('roomId')
        if room_id is not None:
            _require_identifier(event, room_id, 'roomId')
        return SignalRequest(
            kind=event,
            target_id=_require_identifier(event, data['targetId'], 'targetId'),
            payload=_parse_signal_body(event, data),
            room_id=room_id
        )

    raise MessageError("Unknown relay event", {"event": event})


def parse_server_message(raw: Union[str, bytes]) -> ServerMessage:
    """Parse a frame received by a client from the relay."""
    event, data = _decode_envelope(raw)

    if event == Connected.event:
        data = _require_dict(event, data, ['peerId'])
        return Connected(peer_id=_require_identifier(event, data['peerId'], 'peerId'))

    if event == RoomJoined.event:
        data = _require_dict(event, data, ['peerId', 'roomId', 'totalMembers'])
        error = ValidationUtils.validate_size(data['totalMembers'], 'totalMembers')
        if error:
            raise MessageError(error, {"event": event})
        return RoomJoined(
            peer_id=_require_identifier(event, data['peerId'], 'peerId'),
            room_id=_require_identifier(event, data['roomId'], 'roomId'),
            total_members=data['totalMembers']
        )

    if event == ReadyToConnect.event:
        return ReadyToConnect(room_id=_require_identifier(event, data, 'roomId'))

    if event == OfferNeeded.event:
        data = _require_dict(event, data, ['newPeerId'])
        return OfferNeeded(new_peer_id=_require_identifier(event, data['newPeerId'], 'newPeerId'))

    if event in SIGNAL_KINDS:
        data = _require_dict(event, data, ['senderId'])
        return RelayedSignal(
            kind=event,
            sender_id=_require_identifier(event, data['senderId'], 'senderId'),
            payload=_parse_signal_body(event, data)
        )

    if event == RoomUpdated.event:
        if not isinstance(data, list) or not all(isinstance(member, str) for member in data):
            raise MessageError("room_updated payload must be a list of peer ids", {"event": event})
        return RoomUpdated(members=list(data))

    raise MessageError("Unknown relay event", {"event": event})
