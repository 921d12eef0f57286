"""
In-app notifications: persist, then push to every surface the user may be listening on.
"""
from typing import Any, Dict, List, Optional

from healthhub.constants import NotificationPriority, NotificationType, Role
from healthhub.services.connection_registry import ConnectionRegistry
from healthhub.services.event_publisher import EventPublisher, RealtimeEvent
from healthhub.utils.chat_helpers import serialize_notification, truncate_preview
from healthhub.utils.logger import get_logger
from healthhub.utils.room_ids import pharmacy_room, user_room

logger = get_logger("notification_service")


class NotificationDispatcher:
    """Creates notification records and fans them out over Socket.IO.

    `notify` is best effort: it is called from inside other actions (message
    send, appointment update) and must never make them fail.
    """

    def __init__(
        self,
        repository,
        registry: ConnectionRegistry,
        publisher: EventPublisher,
        directory=None,
        page_size: int = 100,
        preview_length: int = 100,
    ) -> None:
        self.repository = repository
        self.registry = registry
        self.publisher = publisher
        self.directory = directory
        self.page_size = page_size
        self.preview_length = preview_length

    def preview(self, text: str) -> str:
        return truncate_preview(text, self.preview_length)

    async def notify(
        self,
        user_id: str,
        type: NotificationType,
        title: str,
        message: str,
        priority: NotificationPriority = NotificationPriority.MEDIUM,
        metadata: Optional[Dict[str, Any]] = None,
        action_url: Optional[str] = None,
        action_label: Optional[str] = None,
        role: Optional[Role] = None,
    ):
        """Persist one notification and emit `new-notification`. Returns None on failure."""
        try:
            notification = await self.repository.create(
                user_id=str(user_id),
                type=type,
                title=title,
                message=message,
                priority=priority,
                metadata=metadata or {},
                action_url=action_url,
                action_label=action_label,
            )
            await self.push(notification, role=role)
            return notification
        except Exception as e:
            logger.error(f"❌ Failed to notify user {user_id} ({type}): {e}", exc_info=True)
            return None

    async def push(self, notification, role: Optional[Role] = None) -> List[str]:
        """Emit to each connection, the user room and, for pharmacies, the pharmacy room.

        Clients may have joined only some of these, so the same event can
        arrive more than once; de-duplication is left to the client.
        """
        user_id = notification.user_id
        payload = serialize_notification(notification)
        targets = sorted(self.registry.connections_for(user_id))
        targets.append(user_room(user_id))
        if await self._target_role(user_id, role) == Role.PHARMACY:
            targets.append(pharmacy_room(user_id))
        await self.publisher.publish_many(RealtimeEvent.NOTIFICATION, payload, targets)
        logger.info(f"📬 Notification {payload['id']} for {user_id} emitted to {len(targets)} target(s)")
        return targets

    async def _target_role(self, user_id: str, role: Optional[Role]) -> Optional[Role]:
        if role is not None or self.directory is None:
            return role
        try:
            user = await self.directory.get_user(user_id)
        except Exception as e:
            logger.warning(f"⚠️ Could not resolve role for {user_id}: {e}")
            return None
        return user.role if user else None

    # -------------------- Inbox --------------------

    async def list_for_user(self, user_id: str):
        return await self.repository.list_for_user(str(user_id), self.page_size)

    async def unread_count(self, user_id: str) -> int:
        return await self.repository.count_unread(str(user_id))

    async def mark_read(self, notification_id: str, user_id: str):
        return await self.repository.mark_read(notification_id, str(user_id))

    async def mark_all_read(self, user_id: str) -> int:
        return await self.repository.mark_all_read(str(user_id))

    async def delete(self, notification_id: str, user_id: str) -> bool:
        return await self.repository.delete(notification_id, str(user_id))
