from typing import List

from beanie.operators import Or, Set as UpdateSet

from healthhub.models import ChatMessage


class ChatRepository:
    """Beanie-backed storage for chat messages."""

    async def create(self, **fields) -> ChatMessage:
        message = ChatMessage(**fields)
        await message.insert()
        return message

    async def list_room(self, room_id: str, limit: int) -> List[ChatMessage]:
        """Room history, oldest first."""
        return await ChatMessage.find(
            ChatMessage.room_id == room_id
        ).sort("timestamp").limit(limit).to_list()

    async def list_for_request(self, request_id: str, limit: int) -> List[ChatMessage]:
        return await ChatMessage.find(
            ChatMessage.request_id == request_id
        ).sort("timestamp").limit(limit).to_list()

    async def mark_room_read(self, room_id: str, reader_id: str) -> int:
        """Flip `is_read` on every message in the room not sent by the reader."""
        result = await ChatMessage.find(
            ChatMessage.room_id == room_id,
            ChatMessage.sender_id != reader_id,
            ChatMessage.is_read == False,
        ).update(UpdateSet({"is_read": True}))
        return getattr(result, "modified_count", 0) if result is not None else 0

    async def has_participant(self, room_id: str, user_id: str) -> bool:
        """True when the user sent or received at least one message in the room."""
        message = await ChatMessage.find(
            ChatMessage.room_id == room_id,
            Or(ChatMessage.sender_id == user_id, ChatMessage.receiver_id == user_id),
        ).first_or_none()
        return message is not None
