"""
One place that knows the wire names of realtime events.

Different generations of the web client listen on different names for the
same fact (`new-message`, `newMessage`, `pharmacy-chat-message`, ...).
Callers publish a logical event; the table below decides what goes on the wire.
"""
from enum import Enum
from typing import Any, Dict, Iterable, Optional, Tuple

from healthhub.utils.logger import get_logger

logger = get_logger("event_publisher")


class RealtimeEvent(str, Enum):
    CHAT_MESSAGE = "chat_message"
    PHARMACY_CHAT_MESSAGE = "pharmacy_chat_message"
    PHARMACY_INBOX_MESSAGE = "pharmacy_inbox_message"
    DIRECT_MESSAGE = "direct_message"
    NOTIFICATION = "notification"
    TYPING_STARTED = "typing_started"
    TYPING_STOPPED = "typing_stopped"


# First name is canonical; the rest are kept for older clients.
WIRE_EVENTS: Dict[RealtimeEvent, Tuple[str, ...]] = {
    RealtimeEvent.CHAT_MESSAGE: ("new-message",),
    RealtimeEvent.PHARMACY_CHAT_MESSAGE: ("newMessage", "pharmacy-chat-message"),
    RealtimeEvent.PHARMACY_INBOX_MESSAGE: ("newPharmacyChatMessage",),
    RealtimeEvent.DIRECT_MESSAGE: ("incomingMessage",),
    RealtimeEvent.NOTIFICATION: ("new-notification",),
    RealtimeEvent.TYPING_STARTED: ("user-typing",),
    RealtimeEvent.TYPING_STOPPED: ("user-stopped-typing",),
}


class EventPublisher:
    def __init__(self, sio, emit_aliases: bool = True) -> None:
        self.sio = sio
        self.emit_aliases = emit_aliases

    def wire_names(self, kind: RealtimeEvent) -> Tuple[str, ...]:
        names = WIRE_EVENTS[kind]
        return names if self.emit_aliases else names[:1]

    async def publish(
        self,
        kind: RealtimeEvent,
        payload: Any,
        to: str,
        skip: Optional[str] = None,
    ) -> None:
        """Emit a logical event to a room or a single connection id."""
        for name in self.wire_names(kind):
            await self.emit(name, payload, to=to, skip=skip)

    async def publish_many(self, kind: RealtimeEvent, payload: Any, targets: Iterable[str]) -> None:
        for target in targets:
            await self.publish(kind, payload, to=target)

    async def emit(self, event: str, payload: Any, to: str, skip: Optional[str] = None) -> None:
        """Raw emit. A target that no longer exists is a no-op; transport errors are logged, not raised."""
        try:
            if skip is not None:
                await self.sio.emit(event, payload, to=to, skip_sid=skip)
            else:
                await self.sio.emit(event, payload, to=to)
        except Exception as e:
            logger.warning(f"⚠️ Failed to emit '{event}' to {to}: {e}")
