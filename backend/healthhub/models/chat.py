from beanie import Document, Indexed
from pydantic import Field
from datetime import datetime, timezone
from typing import Optional

from healthhub.constants import MessageType, Role


class ChatMessage(Document):
    """Persisted chat message. Only `is_read` changes after insert."""
    sender_id: Indexed(str)
    receiver_id: Indexed(str) | None = None
    message: str
    sender_name: Optional[str] = None
    sender_role: Role | None = None
    room_id: Indexed(str)
    # link-back ids
    request_id: Indexed(str) | None = None
    appointment_id: Indexed(str) | None = None
    pharmacy_id: str | None = None
    patient_id: str | None = None
    message_type: MessageType = MessageType.TEXT
    is_read: bool = False
    timestamp: Indexed(datetime) = Field(default_factory=lambda: datetime.now(timezone.utc))

    class Settings:
        name = "chats"
        indexes = [
            [("room_id", 1), ("timestamp", 1)],
        ]
