"""
In-memory room bookkeeping for the signaling relay.
"""
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional


@dataclass
class Room:
    """A named group of connections. Members keep their join order."""
    id: str
    members: List[str] = field(default_factory=list)

    def __contains__(self, peer_id: str) -> bool:
        return peer_id in self.members

    def __len__(self) -> int:
        return len(self.members)


class RoomRegistry:
    """Maps room ids to rooms. A room with no members is never kept."""

    def __init__(self):
        self._rooms: Dict[str, Room] = {}

    def get(self, room_id: str) -> Optional[Room]:
        return self._rooms.get(room_id)

    def get_or_create(self, room_id: str) -> Room:
        """Return the room, creating an empty one for an unknown id.

        The caller must add a member before yielding control, otherwise an
        empty room would be observable.
        """
        room = self._rooms.get(room_id)
        if room is None:
            room = Room(id=room_id)
            self._rooms[room_id] = room
        return room

    def add_member(self, room_id: str, peer_id: str) -> bool:
        """Add ``peer_id`` to the room. Returns False if it was already a member."""
        room = self.get_or_create(room_id)
        if peer_id in room:
            return False
        room.members.append(peer_id)
        return True

    def remove_member(self, room_id: str, peer_id: str) -> Optional[Room]:
        """Remove ``peer_id`` and delete the room if it became empty.

        Returns the room (possibly now deleted) or None if the peer was not
        a member.
        """
        room = self._rooms.get(room_id)
        if room is None or peer_id not in room:
            return None
        room.members.remove(peer_id)
        if self.is_empty(room_id):
            self.delete(room_id)
        return room

    def is_empty(self, room_id: str) -> bool:
        room = self._rooms.get(room_id)
        return room is None or len(room) == 0

    def delete(self, room_id: str):
        self._rooms.pop(room_id, None)

    def rooms_containing(self, peer_id: str) -> List[Room]:
        return [room for room in self._rooms.values() if peer_id in room]

    def share_room(self, peer_a: str, peer_b: str) -> bool:
        return any(peer_b in room for room in self.rooms_containing(peer_a))

    def __contains__(self, room_id: str) -> bool:
        return room_id in self._rooms

    def __len__(self) -> int:
        return len(self._rooms)

    def __iter__(self) -> Iterator[Room]:
        return iter(list(self._rooms.values()))
