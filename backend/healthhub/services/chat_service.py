"""
Chat message pipeline: received -> persisted -> fanned out -> notification dispatched.

Both the Socket.IO gateway and the REST router send through `ChatService`,
so a message written from any surface reaches the same rooms.
"""
import asyncio
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Set

from healthhub.constants import ConversationKind, NotificationType, Role
from healthhub.exceptions import (
    ForbiddenException,
    NotFoundException,
    ServiceException,
    ValidationException,
)
from healthhub.services.connection_registry import ConnectionRegistry
from healthhub.services.event_publisher import EventPublisher, RealtimeEvent
from healthhub.services.notification_service import NotificationDispatcher
from healthhub.services.room_manager import RoomManager
from healthhub.utils.chat_helpers import serialize_message
from healthhub.utils.logger import get_logger
from healthhub.utils.room_ids import (
    derive_appointment_room_id,
    derive_pharmacy_request_room_id,
    derive_room_id,
    pharmacy_room,
    user_room,
)

logger = get_logger("chat_service")

DEFAULT_SENDER_NAMES = {
    Role.PATIENT: "Patient",
    Role.PHARMACY: "Pharmacy",
    Role.DOCTOR: "Doctor",
    Role.ADMIN: "Admin",
}


@dataclass
class SendMessageCommand:
    sender_id: str
    text: str
    receiver_id: Optional[str] = None
    room_id: Optional[str] = None
    request_id: Optional[str] = None
    appointment_id: Optional[str] = None
    pharmacy_id: Optional[str] = None
    patient_id: Optional[str] = None
    sender_role: Optional[Role] = None
    sender_name: Optional[str] = None
    receiver_role: Optional[Role] = None
    kind: ConversationKind = ConversationKind.DIRECT
    notify_receiver: bool = True


def resolve_room(command: SendMessageCommand) -> Optional[str]:
    """Explicit room, else the pairwise room, else one derived from a link id."""
    if command.room_id:
        return command.room_id
    if command.sender_id and command.receiver_id:
        return derive_room_id(command.sender_id, command.receiver_id)
    if command.pharmacy_id and command.request_id:
        return derive_pharmacy_request_room_id(command.pharmacy_id, command.request_id)
    if command.appointment_id:
        return derive_appointment_room_id(command.appointment_id)
    return None


class ChatService:
    def __init__(
        self,
        repository,
        registry: ConnectionRegistry,
        rooms: RoomManager,
        publisher: EventPublisher,
        notifications: NotificationDispatcher,
        directory=None,
        max_length: int = 1000,
        history_limit: int = 1000,
    ) -> None:
        self.repository = repository
        self.registry = registry
        self.rooms = rooms
        self.publisher = publisher
        self.notifications = notifications
        self.directory = directory
        self.max_length = max_length
        self.history_limit = history_limit
        self._notifying: Set[asyncio.Task] = set()

    async def send_message(self, command: SendMessageCommand):
        """Validate, persist and deliver one message. Returns the stored message.

        Raises ValidationException before anything is written, and
        ServiceException if the store rejects the write (nothing is emitted
        in that case). The receiver notification is scheduled as a background
        task after fan-out; its problems are logged and never raised.
        """
        text = (command.text or "").strip()
        if not text:
            raise ValidationException("Message cannot be empty", code="E400")
        if len(text) > self.max_length:
            raise ValidationException(
                f"Message cannot exceed {self.max_length} characters", code="E400"
            )
        if not command.sender_id:
            raise ValidationException("Sender is required", code="E400")

        room_id = resolve_room(command)
        if not room_id:
            raise ValidationException("roomId, receiverId, or appointmentId is required", code="E400")

        sender_name = await self._display_name(command)

        try:
            message = await self.repository.create(
                sender_id=str(command.sender_id),
                receiver_id=str(command.receiver_id) if command.receiver_id else None,
                message=text,
                sender_name=sender_name,
                sender_role=command.sender_role,
                room_id=room_id,
                request_id=command.request_id,
                appointment_id=command.appointment_id,
                pharmacy_id=command.pharmacy_id,
                patient_id=command.patient_id,
            )
        except Exception as e:
            logger.error(f"❌ Failed to persist message in room {room_id}: {e}", exc_info=True)
            raise ServiceException("Failed to send message", code="E500")

        payload = serialize_message(message, sender_name)
        await self._fan_out(command, room_id, payload)
        if command.notify_receiver:
            self._schedule_notification(command, room_id, text, sender_name, str(message.id))

        logger.info(
            f"📨 Message {payload['id']} sent - Room: {room_id}, "
            f"Sender: {command.sender_id} (role={payload['senderRole']}), Receiver: {command.receiver_id}"
        )
        return message

    async def _fan_out(self, command: SendMessageCommand, room_id: str, payload: Dict[str, Any]) -> None:
        if command.kind == ConversationKind.PHARMACY_REQUEST:
            await self.publisher.publish(RealtimeEvent.PHARMACY_CHAT_MESSAGE, payload, to=room_id)
            inbox = self._inbox_room(command)
            if inbox:
                await self.publisher.publish(
                    RealtimeEvent.PHARMACY_INBOX_MESSAGE,
                    {"message": payload, "roomId": room_id, "medicalRequestId": command.request_id},
                    to=inbox,
                )
        else:
            await self.publisher.publish(RealtimeEvent.CHAT_MESSAGE, payload, to=room_id)

        # Receivers who are online but have not joined the room yet still get the message.
        for connection_id in sorted(self.registry.connections_for(command.receiver_id)):
            if not self.rooms.is_member(connection_id, room_id):
                await self.publisher.publish(RealtimeEvent.DIRECT_MESSAGE, payload, to=connection_id)

    def _schedule_notification(self, *args) -> None:
        # runs after fan-out so the send returns without waiting on the notification write
        task = asyncio.create_task(self._dispatch_notification(*args))
        self._notifying.add(task)
        task.add_done_callback(self._notification_done)

    def _notification_done(self, task: asyncio.Task) -> None:
        self._notifying.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"❌ Chat notification task failed: {task.exception()}")

    async def flush_notifications(self) -> None:
        """Wait for notifications scheduled by earlier sends (shutdown, tests)."""
        while self._notifying:
            await asyncio.gather(*list(self._notifying), return_exceptions=True)

    def _inbox_room(self, command: SendMessageCommand) -> Optional[str]:
        if not command.receiver_id:
            return None
        if command.receiver_role == Role.PHARMACY:
            return pharmacy_room(command.receiver_id)
        return user_room(command.receiver_id)

    async def _dispatch_notification(
        self,
        command: SendMessageCommand,
        room_id: str,
        text: str,
        sender_name: str,
        message_id: str,
    ) -> None:
        """Best-effort notification for the receiver; never fails the send."""
        receiver_id = command.receiver_id
        if not receiver_id or str(receiver_id) == str(command.sender_id):
            return
        try:
            preview = self.notifications.preview(text)
            metadata: Dict[str, Any] = {
                "roomId": room_id,
                "messageId": message_id,
                "senderId": str(command.sender_id),
            }
            if command.kind == ConversationKind.PHARMACY_REQUEST and command.request_id:
                if command.receiver_role == Role.PATIENT:
                    body = f"Regarding your medication request: {preview}"
                else:
                    body = f"Regarding medication request: {preview}"
                metadata["medicationRequestId"] = command.request_id
                metadata["pharmacyId"] = command.pharmacy_id
                metadata["patientId"] = command.patient_id
            else:
                body = preview
            if command.receiver_role == Role.PHARMACY:
                action_url = f"/pharmacy-dashboard/call-chat?roomId={room_id}"
            elif command.request_id:
                action_url = f"/chat/{room_id}?requestId={command.request_id}"
            else:
                action_url = f"/chat/{room_id}"

            await self.notifications.notify(
                user_id=receiver_id,
                type=NotificationType.CHAT,
                title=f"Message from {sender_name}",
                message=body,
                metadata=metadata,
                action_url=action_url,
                action_label="Open Chat",
                role=command.receiver_role,
            )
        except Exception as e:
            logger.error(f"❌ Error creating chat notification for {receiver_id}: {e}", exc_info=True)

    async def _display_name(self, command: SendMessageCommand) -> str:
        if command.sender_name:
            return command.sender_name
        if self.directory is not None:
            try:
                user = await self.directory.get_user(command.sender_id)
            except Exception as e:
                logger.warning(f"⚠️ Could not load sender {command.sender_id}: {e}")
                user = None
            if user and user.name:
                return user.name
        return DEFAULT_SENDER_NAMES.get(command.sender_role, "User")

    # -------------------- Pharmacy request chat --------------------

    async def send_patient_pharmacy_message(
        self,
        patient_id: str,
        pharmacy_id: str,
        request_id: str,
        text: str,
        room_id: Optional[str] = None,
    ):
        """Patient writes in the chat attached to one of their medication requests."""
        if not pharmacy_id or not request_id:
            raise ValidationException("pharmacyId and medicalRequestId are required", code="E400")
        return await self.send_message(SendMessageCommand(
            sender_id=patient_id,
            text=text,
            receiver_id=pharmacy_id,
            room_id=room_id or derive_pharmacy_request_room_id(pharmacy_id, request_id),
            request_id=request_id,
            pharmacy_id=pharmacy_id,
            patient_id=patient_id,
            sender_role=Role.PATIENT,
            receiver_role=Role.PHARMACY,
            kind=ConversationKind.PHARMACY_REQUEST,
        ))

    async def send_pharmacy_message(
        self,
        pharmacy_id: str,
        request_id: str,
        text: str,
        room_id: Optional[str] = None,
    ):
        """Pharmacy answers on a request; only the pharmacy the request is assigned to may do so."""
        if not request_id:
            raise ValidationException("Medical request ID required", code="E400")
        request = await self.get_request(request_id)
        if str(request.pharmacy_id) != str(pharmacy_id):
            logger.warning(
                f"🚫 Pharmacy {pharmacy_id} tried to write on request {request_id} "
                f"assigned to {request.pharmacy_id}"
            )
            raise ForbiddenException(
                "Unauthorized: This request is not assigned to your pharmacy", code="E403"
            )
        patient_id = str(request.user_id)
        return await self.send_message(SendMessageCommand(
            sender_id=pharmacy_id,
            text=text,
            receiver_id=patient_id,
            room_id=room_id or derive_pharmacy_request_room_id(pharmacy_id, request_id),
            request_id=request_id,
            pharmacy_id=str(pharmacy_id),
            patient_id=patient_id,
            sender_role=Role.PHARMACY,
            receiver_role=Role.PATIENT,
            kind=ConversationKind.PHARMACY_REQUEST,
        ))

    # Older chat centers talk in the pairwise patient/pharmacy room and only
    # optionally link a request.

    async def send_patient_to_pharmacy(
        self,
        patient_id: str,
        pharmacy_id: str,
        text: str,
        request_id: Optional[str] = None,
    ):
        if not pharmacy_id:
            raise ValidationException("pharmacyId is required", code="E400")
        return await self.send_message(SendMessageCommand(
            sender_id=patient_id,
            text=text,
            receiver_id=pharmacy_id,
            request_id=request_id,
            pharmacy_id=str(pharmacy_id),
            patient_id=str(patient_id),
            sender_role=Role.PATIENT,
            receiver_role=Role.PHARMACY,
            kind=ConversationKind.PHARMACY_REQUEST,
        ))

    async def send_pharmacy_to_patient(
        self,
        pharmacy_id: str,
        patient_id: str,
        text: str,
        request_id: Optional[str] = None,
    ):
        """The patient is notified only when the linked request is theirs."""
        if not patient_id:
            raise ValidationException("patientId is required", code="E400")
        notify = False
        if request_id and self.directory is not None:
            try:
                request = await self.directory.get_medication_request(request_id)
            except Exception as e:
                logger.warning(f"⚠️ Could not load medication request {request_id}: {e}")
                request = None
            notify = request is not None and str(request.user_id) == str(patient_id)
        return await self.send_message(SendMessageCommand(
            sender_id=pharmacy_id,
            text=text,
            receiver_id=patient_id,
            request_id=request_id,
            pharmacy_id=str(pharmacy_id),
            patient_id=str(patient_id),
            sender_role=Role.PHARMACY,
            receiver_role=Role.PATIENT,
            kind=ConversationKind.PHARMACY_REQUEST,
            notify_receiver=notify,
        ))

    async def get_request(self, request_id: str):
        if self.directory is None:
            raise NotFoundException("Medical request not found", code="E404")
        request = await self.directory.get_medication_request(request_id)
        if not request:
            raise NotFoundException("Medical request not found", code="E404")
        return request

    # -------------------- History --------------------

    async def history(self, room_id: str) -> List:
        """Room messages, oldest first."""
        return await self.repository.list_room(room_id, self.history_limit)

    async def history_for_request(self, request_id: str) -> List:
        return await self.repository.list_for_request(request_id, self.history_limit)

    async def mark_room_read(self, room_id: str, reader_id: str) -> int:
        return await self.repository.mark_room_read(room_id, str(reader_id))

    async def is_participant(self, room_id: str, user_id: str) -> bool:
        """Rooms named after a link id (`chat_{appointmentId}`) carry no user ids; the stored messages do."""
        return await self.repository.has_participant(room_id, str(user_id))
