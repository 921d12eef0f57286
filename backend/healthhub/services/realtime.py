"""
Wiring for the realtime services.

Everything is built once per process by `build_hub` and handed to the socket
handlers, the routers (through `app.state.hub`) and the startup jobs.
"""
from dataclasses import dataclass
from typing import Any, Callable, Optional

from healthhub.config import Settings, get_settings
from healthhub.database import get_database
from healthhub.repositories import ChatRepository, DirectoryRepository, NotificationRepository
from healthhub.services.change_feed import ChangeFeedBridge
from healthhub.services.chat_service import ChatService
from healthhub.services.connection_registry import ConnectionRegistry
from healthhub.services.event_publisher import EventPublisher
from healthhub.services.notification_service import NotificationDispatcher
from healthhub.services.room_manager import RoomManager


@dataclass
class RealtimeHub:
    sio: Any
    settings: Settings
    registry: ConnectionRegistry
    rooms: RoomManager
    publisher: EventPublisher
    notifications: NotificationDispatcher
    chat: ChatService
    change_feed: ChangeFeedBridge
    directory: Any


def build_hub(
    sio,
    settings: Optional[Settings] = None,
    chat_repository=None,
    notification_repository=None,
    directory=None,
    database_provider: Callable[[], Any] = get_database,
) -> RealtimeHub:
    settings = settings or get_settings()
    directory = directory if directory is not None else DirectoryRepository()
    registry = ConnectionRegistry()
    rooms = RoomManager(sio)
    publisher = EventPublisher(sio, emit_aliases=settings.REALTIME_EVENT_ALIASES)
    notifications = NotificationDispatcher(
        notification_repository if notification_repository is not None else NotificationRepository(),
        registry,
        publisher,
        directory=directory,
        page_size=settings.NOTIFICATION_PAGE_SIZE,
        preview_length=settings.NOTIFICATION_PREVIEW_LENGTH,
    )
    chat = ChatService(
        chat_repository if chat_repository is not None else ChatRepository(),
        registry,
        rooms,
        publisher,
        notifications,
        directory=directory,
        max_length=settings.CHAT_MESSAGE_MAX_LENGTH,
        history_limit=settings.CHAT_HISTORY_LIMIT,
    )
    change_feed = ChangeFeedBridge(database_provider, registry, publisher)
    return RealtimeHub(
        sio=sio,
        settings=settings,
        registry=registry,
        rooms=rooms,
        publisher=publisher,
        notifications=notifications,
        chat=chat,
        change_feed=change_feed,
        directory=directory,
    )
