from typing import List

from beanie.operators import Set as UpdateSet

from healthhub.models import Notification
from healthhub.repositories._ids import to_object_id


class NotificationRepository:
    """Beanie-backed storage for in-app notifications."""

    async def create(self, **fields) -> Notification:
        notification = Notification(**fields)
        await notification.insert()
        return notification

    async def list_for_user(self, user_id: str, limit: int) -> List[Notification]:
        """Newest first."""
        return await Notification.find(
            Notification.user_id == user_id
        ).sort("-created_at").limit(limit).to_list()

    async def count_unread(self, user_id: str) -> int:
        return await Notification.find(
            Notification.user_id == user_id,
            Notification.is_read == False,
        ).count()

    async def get_for_user(self, notification_id: str, user_id: str) -> Notification | None:
        oid = to_object_id(notification_id)
        if oid is None:
            return None
        return await Notification.find_one(
            Notification.id == oid,
            Notification.user_id == user_id,
        )

    async def mark_read(self, notification_id: str, user_id: str) -> Notification | None:
        notification = await self.get_for_user(notification_id, user_id)
        if not notification:
            return None
        notification.is_read = True
        await notification.save()
        return notification

    async def mark_all_read(self, user_id: str) -> int:
        result = await Notification.find(
            Notification.user_id == user_id,
            Notification.is_read == False,
        ).update(UpdateSet({"is_read": True}))
        return getattr(result, "modified_count", 0) if result is not None else 0

    async def delete(self, notification_id: str, user_id: str) -> bool:
        notification = await self.get_for_user(notification_id, user_id)
        if not notification:
            return False
        await notification.delete()
        return True
