"""
Room membership for Socket.IO connections.

The transport keeps its own room table for broadcasting; this manager keeps a
mirror so the message pipeline can ask who is actually in a room before it
decides on direct delivery.
"""
from typing import Dict, Set

from healthhub.utils.logger import get_logger

logger = get_logger("room_manager")


class RoomManager:
    def __init__(self, sio) -> None:
        self.sio = sio
        self._members: Dict[str, Set[str]] = {}
        self._rooms_of: Dict[str, Set[str]] = {}

    async def join(self, connection_id: str, room_id: str) -> None:
        """Add a connection to a room. Authentication is not required to join."""
        await self.sio.enter_room(connection_id, room_id)
        self._members.setdefault(room_id, set()).add(connection_id)
        self._rooms_of.setdefault(connection_id, set()).add(room_id)

    async def leave(self, connection_id: str, room_id: str) -> None:
        await self.sio.leave_room(connection_id, room_id)
        self._forget(connection_id, room_id)

    def leave_all(self, connection_id: str) -> Set[str]:
        """Drop every membership of a closed connection.

        The transport clears its own rooms on disconnect, so only the mirror
        is touched here.
        """
        rooms = self._rooms_of.pop(connection_id, set())
        for room_id in rooms:
            members = self._members.get(room_id)
            if members is None:
                continue
            members.discard(connection_id)
            if not members:
                self._members.pop(room_id, None)
        return rooms

    def _forget(self, connection_id: str, room_id: str) -> None:
        members = self._members.get(room_id)
        if members is not None:
            members.discard(connection_id)
            if not members:
                self._members.pop(room_id, None)
        rooms = self._rooms_of.get(connection_id)
        if rooms is not None:
            rooms.discard(room_id)
            if not rooms:
                self._rooms_of.pop(connection_id, None)

    def members(self, room_id: str) -> Set[str]:
        return set(self._members.get(room_id, ()))

    def rooms_of(self, connection_id: str) -> Set[str]:
        return set(self._rooms_of.get(connection_id, ()))

    def is_member(self, connection_id: str, room_id: str) -> bool:
        return connection_id in self._members.get(room_id, ())
