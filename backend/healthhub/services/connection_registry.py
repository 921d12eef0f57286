"""
Presence tracking: which Socket.IO connections belong to which user.

One instance per process, passed to every handler that needs it. The state
lives only in memory; after a restart clients reconnect and authenticate again.
"""
from typing import Dict, Optional, Set

from healthhub.utils.logger import get_logger

logger = get_logger("connection_registry")


class ConnectionRegistry:
    """userId -> set of connection ids, plus the reverse link per connection.

    Invariant: a user key exists only while its set is non-empty.
    """

    def __init__(self) -> None:
        self._by_user: Dict[str, Set[str]] = {}
        # connection id -> user id (None until authenticated)
        self._by_connection: Dict[str, Optional[str]] = {}

    def connect(self, connection_id: str) -> str:
        """Record a new transport connection. It has no identity yet."""
        self._by_connection.setdefault(connection_id, None)
        return connection_id

    def authenticate(self, connection_id: str, user_id: str) -> None:
        """Bind a connection to a user. Calling it again with the same user is a no-op."""
        user_id = str(user_id)
        previous = self._by_connection.get(connection_id)
        if previous is not None and previous != user_id:
            # the same tab logged in as someone else
            self._drop(connection_id, previous)
        self._by_connection[connection_id] = user_id
        self._by_user.setdefault(user_id, set()).add(connection_id)

    def disconnect(self, connection_id: str) -> Optional[str]:
        """Forget a connection; returns the user it belonged to, if any."""
        user_id = self._by_connection.pop(connection_id, None)
        if user_id is not None:
            self._drop(connection_id, user_id)
        return user_id

    def _drop(self, connection_id: str, user_id: str) -> None:
        connections = self._by_user.get(user_id)
        if connections is None:
            return
        connections.discard(connection_id)
        if not connections:
            self._by_user.pop(user_id, None)

    def connections_for(self, user_id) -> Set[str]:
        if user_id is None:
            return set()
        return set(self._by_user.get(str(user_id), ()))

    def user_for(self, connection_id: str) -> Optional[str]:
        return self._by_connection.get(connection_id)

    def is_authenticated(self, connection_id: str) -> bool:
        return self._by_connection.get(connection_id) is not None

    def is_online(self, user_id) -> bool:
        return user_id is not None and str(user_id) in self._by_user

    def online_users(self) -> Set[str]:
        return set(self._by_user)

    def __len__(self) -> int:
        return len(self._by_connection)
