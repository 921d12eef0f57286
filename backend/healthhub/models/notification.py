from beanie import Document, Indexed
from pydantic import Field
from datetime import datetime, timezone
from typing import Any, Dict

from healthhub.constants import NotificationPriority, NotificationType


class Notification(Document):
    """In-app notification shown in the user's inbox."""
    user_id: Indexed(str)
    type: NotificationType = NotificationType.SYSTEM
    title: str
    message: str
    priority: NotificationPriority = NotificationPriority.MEDIUM
    is_read: bool = False
    action_url: str | None = None
    action_label: str | None = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: Indexed(datetime) = Field(default_factory=lambda: datetime.now(timezone.utc))

    class Settings:
        name = "notifications"
        indexes = [
            [("user_id", 1), ("is_read", 1)],
        ]
