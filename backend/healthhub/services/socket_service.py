"""
Socket.IO gateway: event handlers for presence, rooms and chat.
"""
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional, Type, TypeVar

import socketio
from pydantic import BaseModel, ValidationError

from healthhub.config import Settings, get_settings
from healthhub.constants import ConversationKind, Role
from healthhub.exceptions import (
    DomainException,
    ForbiddenException,
    NotFoundException,
    UnauthorizedException,
    ValidationException,
)
from healthhub.schemas import (
    AuthenticateIn,
    DirectMessageIn,
    JoinChatRoomIn,
    OrderIn,
    PharmacyChatRoomIn,
    PharmacyIn,
    PharmacyMessageIn,
    RoomIn,
    TypingIn,
)
from healthhub.security import user_id_from_token
from healthhub.services.chat_service import SendMessageCommand
from healthhub.services.event_publisher import RealtimeEvent
from healthhub.services.realtime import RealtimeHub
from healthhub.utils.logger import get_logger
from healthhub.utils.room_ids import (
    derive_pharmacy_request_room_id,
    derive_room_id,
    pharmacy_requests_room,
    pharmacy_room,
    user_room,
)

logger = get_logger("socket_service")

P = TypeVar("P", bound=BaseModel)

# positional payloads some clients send instead of an object
SCALAR_FIELDS = {
    AuthenticateIn: "userId",
    PharmacyIn: "pharmacyId",
    OrderIn: "orderId",
    TypingIn: "roomId",
}

RECEIVER_MODEL_ROLES = {
    "pharmacy": Role.PHARMACY,
    "doctor": Role.DOCTOR,
    "patient": Role.PATIENT,
}


def create_socket_server(settings: Optional[Settings] = None) -> socketio.AsyncServer:
    settings = settings or get_settings()
    return socketio.AsyncServer(
        cors_allowed_origins=settings.cors_origins or "*",
        async_mode="asgi",
        logger=settings.APP_DEBUG,
        engineio_logger=False,
    )


def get_socket_app(sio: socketio.AsyncServer) -> socketio.ASGIApp:
    """Get Socket.IO ASGI app."""
    return socketio.ASGIApp(sio, socketio_path="socket.io")


def parse_payload(model: Type[P], data: Any) -> P:
    if data is None:
        data = {}
    elif not isinstance(data, dict):
        field = SCALAR_FIELDS.get(model)
        if field is None:
            raise ValidationException("Invalid payload", code="E400")
        data = {field: data}
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise ValidationException("Invalid payload", code="E400", details={"errors": e.errors()})


def register_handlers(hub: RealtimeHub) -> None:
    """Attach every client event handler to `hub.sio`."""
    sio = hub.sio
    registry = hub.registry
    rooms = hub.rooms
    publisher = hub.publisher
    chat = hub.chat
    settings = hub.settings

    async def guard(
        sid: str,
        action: Callable[[], Awaitable[None]],
        fallback: str,
        error_event: str = "chat-error",
    ) -> None:
        """Run a handler body; failures go back to the calling connection only."""
        try:
            await action()
        except DomainException as e:
            logger.warning(f"⚠️ {fallback} ({sid}): {e.message}")
            await publisher.emit(error_event, e.to_event(), to=sid)
        except Exception as e:
            logger.error(f"❌ {fallback} ({sid}): {e}", exc_info=True)
            await publisher.emit(error_event, {"message": fallback, "code": "E500"}, to=sid)

    def require_user(sid: str) -> str:
        user_id = registry.user_for(sid)
        if not user_id:
            raise UnauthorizedException("User not authenticated", code="E401")
        return user_id

    async def bind(sid: str, user_id: str) -> None:
        registry.authenticate(sid, user_id)
        room = user_room(user_id)
        await rooms.join(sid, room)
        logger.info(f"✅ User authenticated: {user_id} (socket: {sid}) - joined room: {room}")
        await publisher.emit("authenticated", {"userId": user_id, "connectionId": sid, "socketId": sid}, to=sid)

    @sio.on("connect")
    async def connect(sid: str, environ: dict, auth: dict = None):
        """Register the connection; a bearer token in `auth` authenticates it right away."""
        registry.connect(sid)
        token = None
        if isinstance(auth, dict):
            token = auth.get("token")
        if not token and environ:
            auth_header = environ.get("HTTP_AUTHORIZATION", "")
            if auth_header.startswith("Bearer "):
                token = auth_header.replace("Bearer ", "")

        if token:
            try:
                await bind(sid, user_id_from_token(token))
            except UnauthorizedException as e:
                logger.warning(f"❌ Token rejected for {sid}: {e.message}")
                if settings.SOCKET_REQUIRE_TOKEN:
                    registry.disconnect(sid)
                    return False
        logger.info(f"🔌 Client connected: {sid}")
        return True

    @sio.on("disconnect")
    async def disconnect(sid: str, *args):
        user_id = registry.disconnect(sid)
        rooms.leave_all(sid)
        if user_id:
            logger.info(f"🔌 User disconnected: {user_id} - Socket: {sid}")
        else:
            logger.info(f"🔌 Socket disconnected: {sid}")

    @sio.on("authenticate")
    async def authenticate(sid: str, data: Any = None):
        async def action():
            payload = parse_payload(AuthenticateIn, data)
            user_id = payload.user_id
            if payload.token:
                token_user = user_id_from_token(payload.token)
                if user_id and str(user_id) != token_user:
                    raise ForbiddenException("Token does not match userId", code="E403")
                user_id = token_user
            elif settings.SOCKET_REQUIRE_TOKEN:
                raise UnauthorizedException("Token required", code="E401")
            if not user_id:
                raise ValidationException("userId is required", code="E400")
            await bind(sid, str(user_id))

        await guard(sid, action, "Authentication failed")

    @sio.on("refresh-data")
    async def refresh_data(sid: str, data: Any = None):
        user_id = registry.user_for(sid) or (data if isinstance(data, str) else None)
        logger.info(f"🔄 Manual refresh requested for user: {user_id}")
        await publisher.emit(
            "data-refreshed",
            {"userId": user_id, "timestamp": datetime.now(timezone.utc).isoformat()},
            to=sid,
        )

    # ==================== Chat rooms ====================

    @sio.on("join-chat-room")
    async def join_chat_room(sid: str, data: Any = None):
        async def action():
            payload = parse_payload(JoinChatRoomIn, data)
            room_id = payload.room_id
            if not room_id:
                if not (payload.user_id and payload.doctor_id):
                    raise ValidationException("roomId or (userId and doctorId) required", code="E400")
                room_id = derive_room_id(payload.user_id, payload.doctor_id)
            await rooms.join(sid, room_id)
            logger.info(f"💬 User {registry.user_for(sid) or payload.user_id} joined chat room: {room_id}")
            await publisher.emit("chat-room-joined", {"roomId": room_id}, to=sid)

        await guard(sid, action, "Failed to join chat room")

    @sio.on("join-chat-room-by-id")
    async def join_chat_room_by_id(sid: str, data: Any = None):
        async def action():
            payload = parse_payload(RoomIn, data)
            if not payload.room_id:
                raise ValidationException("roomId is required", code="E400")
            await rooms.join(sid, payload.room_id)
            logger.info(f"💬 Socket {sid} joined chat room by ID: {payload.room_id}")
            await publisher.emit("chat-room-joined", {"roomId": payload.room_id}, to=sid)

        await guard(sid, action, "Failed to join chat room")

    @sio.on("leave-chat-room")
    async def leave_chat_room(sid: str, data: Any = None):
        async def action():
            payload = parse_payload(RoomIn, data)
            if not payload.room_id:
                raise ValidationException("roomId is required", code="E400")
            await rooms.leave(sid, payload.room_id)
            logger.info(f"👋 Socket {sid} left chat room: {payload.room_id}")
            await publisher.emit("chat-room-left", {"roomId": payload.room_id}, to=sid)

        await guard(sid, action, "Failed to leave chat room")

    async def join_pharmacy_chat(sid: str, room_id: Optional[str], pharmacy_id: Optional[str], request_id: Optional[str]):
        if not room_id:
            if not (pharmacy_id and request_id):
                raise ValidationException(
                    "roomId or (pharmacyId and medicalRequestId/orderId) required", code="E400"
                )
            room_id = derive_pharmacy_request_room_id(pharmacy_id, request_id)
        await rooms.join(sid, room_id)
        logger.info(f"💊 User {registry.user_for(sid)} joined pharmacy chat room: {room_id}")
        await publisher.emit(
            "pharmacy-chat-room-joined",
            {"roomId": room_id, "pharmacyId": pharmacy_id, "medicalRequestId": request_id},
            to=sid,
        )

    @sio.on("joinPharmacyChatRoom")
    async def join_pharmacy_chat_room(sid: str, data: Any = None):
        async def action():
            payload = parse_payload(PharmacyChatRoomIn, data)
            await join_pharmacy_chat(sid, payload.room_id, payload.pharmacy_id, payload.medical_request_id)

        await guard(sid, action, "Failed to join pharmacy chat room")

    @sio.on("joinOrderChatRoom")
    async def join_order_chat_room(sid: str, data: Any = None):
        async def action():
            payload = parse_payload(OrderIn, data)
            if not payload.order_id:
                raise ValidationException("orderId is required", code="E400")
            try:
                request = await chat.get_request(payload.order_id)
            except DomainException:
                raise NotFoundException("Order not found", code="E404")
            await join_pharmacy_chat(sid, None, str(request.pharmacy_id), payload.order_id)

        await guard(sid, action, "Failed to join order chat room")

    async def join_pharmacy_rooms(sid: str, data: Any) -> None:
        payload = parse_payload(PharmacyIn, data)
        user_id = registry.user_for(sid)
        if not user_id or not payload.pharmacy_id or user_id != str(payload.pharmacy_id):
            logger.warning(f"🚫 Socket {sid} ({user_id}) denied pharmacy rooms of {payload.pharmacy_id}")
            raise ForbiddenException("Unauthorized", code="E403")
        await rooms.join(sid, pharmacy_room(payload.pharmacy_id))
        await rooms.join(sid, pharmacy_requests_room(payload.pharmacy_id))
        logger.info(f"💊 Pharmacy {payload.pharmacy_id} joined pharmacy rooms")

    @sio.on("joinPharmacyRoom")
    async def join_pharmacy_room(sid: str, data: Any = None):
        await guard(sid, lambda: join_pharmacy_rooms(sid, data), "Failed to join pharmacy room", error_event="error")

    @sio.on("subscribe-pharmacy-requests")
    async def subscribe_pharmacy_requests(sid: str, data: Any = None):
        await guard(
            sid, lambda: join_pharmacy_rooms(sid, data), "Failed to subscribe to pharmacy requests", error_event="error"
        )

    # ==================== Messages ====================

    @sio.on("patientSendMessage")
    async def patient_send_message(sid: str, data: Any = None):
        async def action():
            payload = parse_payload(PharmacyMessageIn, data)
            patient_id = require_user(sid)
            await chat.send_patient_pharmacy_message(
                patient_id,
                payload.pharmacy_id,
                payload.medical_request_id,
                payload.message,
                room_id=payload.room_id,
            )

        await guard(sid, action, "Failed to send message")

    @sio.on("pharmacySendMessage")
    async def pharmacy_send_message(sid: str, data: Any = None):
        async def action():
            payload = parse_payload(PharmacyMessageIn, data)
            pharmacy_id = require_user(sid)
            await chat.send_pharmacy_message(
                pharmacy_id,
                payload.medical_request_id,
                payload.message,
                room_id=payload.room_id,
            )

        await guard(sid, action, "Failed to send message")

    @sio.on("patientToPharmacyMessage")
    async def patient_to_pharmacy_message(sid: str, data: Any = None):
        async def action():
            payload = parse_payload(PharmacyMessageIn, data)
            patient_id = require_user(sid)
            await chat.send_patient_to_pharmacy(
                patient_id, payload.pharmacy_id, payload.message, request_id=payload.medical_request_id
            )

        await guard(sid, action, "Failed to send message")

    @sio.on("pharmacyToPatientMessage")
    async def pharmacy_to_patient_message(sid: str, data: Any = None):
        async def action():
            payload = parse_payload(PharmacyMessageIn, data)
            pharmacy_id = require_user(sid)
            await chat.send_pharmacy_to_patient(
                pharmacy_id, payload.patient_id, payload.message, request_id=payload.medical_request_id
            )

        await guard(sid, action, "Failed to send message")

    @sio.on("send-chat-message")
    async def send_chat_message(sid: str, data: Any = None):
        async def action():
            payload = parse_payload(DirectMessageIn, data)
            sender_id = require_user(sid)
            if not payload.receiver_id and not payload.room_id and not payload.appointment_id:
                raise ValidationException("receiverId is required", code="E400")
            receiver_role = RECEIVER_MODEL_ROLES.get((payload.receiver_model or "").lower())
            await chat.send_message(SendMessageCommand(
                sender_id=sender_id,
                text=payload.message,
                receiver_id=payload.receiver_id,
                room_id=payload.room_id,
                appointment_id=payload.appointment_id,
                receiver_role=receiver_role,
                kind=ConversationKind.DIRECT,
            ))

        await guard(sid, action, "Failed to send message")

    # ==================== Typing ====================

    @sio.on("typing-start")
    async def typing_start(sid: str, data: Any = None):
        async def action():
            payload = parse_payload(TypingIn, data)
            if payload.room_id:
                await publisher.publish(
                    RealtimeEvent.TYPING_STARTED, {"userName": payload.user_name}, to=payload.room_id, skip=sid
                )

        await guard(sid, action, "Failed to send typing status")

    @sio.on("typing-stop")
    async def typing_stop(sid: str, data: Any = None):
        async def action():
            payload = parse_payload(TypingIn, data)
            if payload.room_id:
                await publisher.publish(RealtimeEvent.TYPING_STOPPED, {}, to=payload.room_id, skip=sid)

        await guard(sid, action, "Failed to send typing status")
