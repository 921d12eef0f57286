from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import SimpleNamespace
from typing import Any, Dict, List, Optional

import pytest

from healthhub.config import Settings
from healthhub.constants import Role
from healthhub.services.realtime import build_hub
from healthhub.services.socket_service import register_handlers


def _now() -> datetime:
    return datetime.now(timezone.utc)


class FakeSocketServer:
    """In-memory stand-in for socketio.AsyncServer.

    Every connection is also a room named after its sid, like the real server.
    Each emit records who would have received it.
    """

    def __init__(self) -> None:
        self.handlers: Dict[str, Any] = {}
        self.rooms: Dict[str, set] = {}
        self.sids: set = set()
        self.emitted: List[dict] = []
        self.fail_emits = False

    def on(self, event: str):
        def decorator(handler):
            self.handlers[event] = handler
            return handler

        return decorator

    async def enter_room(self, sid: str, room: str) -> None:
        self.rooms.setdefault(room, set()).add(sid)

    async def leave_room(self, sid: str, room: str) -> None:
        self.rooms.get(room, set()).discard(sid)

    async def emit(self, event: str, data: Any = None, to: Optional[str] = None, skip_sid: Optional[str] = None):
        if self.fail_emits:
            raise ConnectionError("transport closed")
        recipients = set(self.rooms.get(to, set()))
        if to in self.sids:
            recipients.add(to)
        recipients.discard(skip_sid)
        self.emitted.append({"event": event, "data": data, "to": to, "skip_sid": skip_sid, "recipients": recipients})

    # -- helpers for tests --

    async def trigger(self, event: str, sid: str, *args):
        return await self.handlers[event](sid, *args)

    async def connect(self, sid: str, auth: Optional[dict] = None, environ: Optional[dict] = None):
        self.sids.add(sid)
        return await self.handlers["connect"](sid, environ or {}, auth)

    async def disconnect(self, sid: str):
        self.sids.discard(sid)
        for members in self.rooms.values():
            members.discard(sid)
        return await self.handlers["disconnect"](sid)

    def received(self, sid: str, event: Optional[str] = None) -> List[Any]:
        return [
            e["data"]
            for e in self.emitted
            if sid in e["recipients"] and (event is None or e["event"] == event)
        ]

    def events_for(self, sid: str) -> List[str]:
        return [e["event"] for e in self.emitted if sid in e["recipients"]]


@dataclass
class FakeMessage:
    id: str
    sender_id: str
    message: str
    room_id: str
    receiver_id: Optional[str] = None
    sender_name: Optional[str] = None
    sender_role: Optional[Role] = None
    request_id: Optional[str] = None
    appointment_id: Optional[str] = None
    pharmacy_id: Optional[str] = None
    patient_id: Optional[str] = None
    message_type: str = "text"
    is_read: bool = False
    timestamp: datetime = field(default_factory=_now)


class FakeChatRepository:
    def __init__(self) -> None:
        self.messages: List[FakeMessage] = []
        self.fail = False

    async def create(self, **fields) -> FakeMessage:
        if self.fail:
            raise RuntimeError("store unavailable")
        message = FakeMessage(id=f"m{len(self.messages) + 1}", **fields)
        self.messages.append(message)
        return message

    async def list_room(self, room_id: str, limit: int):
        return [m for m in self.messages if m.room_id == room_id][:limit]

    async def list_for_request(self, request_id: str, limit: int):
        return [m for m in self.messages if m.request_id == request_id][:limit]

    async def mark_room_read(self, room_id: str, reader_id: str) -> int:
        updated = 0
        for m in self.messages:
            if m.room_id == room_id and m.sender_id != reader_id and not m.is_read:
                m.is_read = True
                updated += 1
        return updated

    async def has_participant(self, room_id: str, user_id: str) -> bool:
        return any(m.room_id == room_id and user_id in (m.sender_id, m.receiver_id) for m in self.messages)


@dataclass
class FakeNotification:
    id: str
    user_id: str
    type: Any
    title: str
    message: str
    priority: Any
    metadata: Dict[str, Any] = field(default_factory=dict)
    action_url: Optional[str] = None
    action_label: Optional[str] = None
    is_read: bool = False
    created_at: datetime = field(default_factory=_now)


class FakeNotificationRepository:
    def __init__(self) -> None:
        self.notifications: List[FakeNotification] = []
        self.fail = False

    async def create(self, **fields) -> FakeNotification:
        if self.fail:
            raise RuntimeError("notifications collection unavailable")
        notification = FakeNotification(id=f"n{len(self.notifications) + 1}", **fields)
        self.notifications.append(notification)
        return notification

    async def list_for_user(self, user_id: str, limit: int):
        mine = [n for n in self.notifications if n.user_id == user_id]
        return list(reversed(mine))[:limit]

    async def count_unread(self, user_id: str) -> int:
        return sum(1 for n in self.notifications if n.user_id == user_id and not n.is_read)

    async def get_for_user(self, notification_id: str, user_id: str):
        for n in self.notifications:
            if n.id == notification_id and n.user_id == user_id:
                return n
        return None

    async def mark_read(self, notification_id: str, user_id: str):
        notification = await self.get_for_user(notification_id, user_id)
        if notification:
            notification.is_read = True
        return notification

    async def mark_all_read(self, user_id: str) -> int:
        updated = 0
        for n in self.notifications:
            if n.user_id == user_id and not n.is_read:
                n.is_read = True
                updated += 1
        return updated

    async def delete(self, notification_id: str, user_id: str) -> bool:
        notification = await self.get_for_user(notification_id, user_id)
        if not notification:
            return False
        self.notifications.remove(notification)
        return True


class FakeDirectory:
    def __init__(self) -> None:
        self.users: Dict[str, SimpleNamespace] = {}
        self.requests: Dict[str, SimpleNamespace] = {}

    def add_user(self, user_id: str, name: str, role: Role) -> SimpleNamespace:
        user = SimpleNamespace(id=user_id, name=name, role=role)
        self.users[user_id] = user
        return user

    def add_request(self, request_id: str, user_id: str, pharmacy_id: str) -> SimpleNamespace:
        request = SimpleNamespace(id=request_id, user_id=user_id, pharmacy_id=pharmacy_id, status="pending")
        self.requests[request_id] = request
        return request

    async def get_user(self, user_id):
        return self.users.get(str(user_id))

    async def get_medication_request(self, request_id):
        return self.requests.get(str(request_id))


@pytest.fixture
def settings():
    return Settings(SOCKET_REQUIRE_TOKEN=False, REALTIME_EVENT_ALIASES=True, CHANGE_FEED_ENABLED=False)


@pytest.fixture
def sio():
    return FakeSocketServer()


@pytest.fixture
def chat_repo():
    return FakeChatRepository()


@pytest.fixture
def notification_repo():
    return FakeNotificationRepository()


@pytest.fixture
def directory():
    directory = FakeDirectory()
    directory.add_user("P1", "Sara", Role.PATIENT)
    directory.add_user("PH1", "Green Cross", Role.PHARMACY)
    directory.add_user("PH2", "Blue Pharmacy", Role.PHARMACY)
    directory.add_user("D1", "Dr. Amal", Role.DOCTOR)
    directory.add_request("R9", user_id="P1", pharmacy_id="PH1")
    return directory


@pytest.fixture
def hub(sio, settings, chat_repo, notification_repo, directory):
    hub = build_hub(
        sio,
        settings,
        chat_repository=chat_repo,
        notification_repository=notification_repo,
        directory=directory,
        database_provider=lambda: None,
    )
    register_handlers(hub)
    return hub
