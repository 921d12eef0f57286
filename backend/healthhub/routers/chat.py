import re

from fastapi import APIRouter, HTTPException, Request

from healthhub.constants import ConversationKind, Role
from healthhub.deps import CurrentHub, CurrentUser
from healthhub.models import User
from healthhub.rate_limit import limiter
from healthhub.schemas import ChatHistoryOut, ChatMessageIn, ChatMessageOut, MarkReadOut
from healthhub.services.chat_service import SendMessageCommand
from healthhub.services.realtime import RealtimeHub
from healthhub.utils.chat_helpers import serialize_message
from healthhub.utils.logger import get_logger

logger = get_logger("chat_router")

router = APIRouter(prefix="/chats", tags=["chat"])

REQUEST_ROOM = re.compile(r"^pharmacy_(?P<pharmacy>[^_]+)_request_(?P<request>[^_]+)$")


def _out(message) -> ChatMessageOut:
    return ChatMessageOut(**serialize_message(message))


async def _check_request_access(hub: RealtimeHub, request_id: str, user: User):
    """Patient who placed the request, the pharmacy it is assigned to, or an admin."""
    request = await hub.chat.get_request(request_id)
    user_id = str(user.id)
    if user.role == Role.ADMIN:
        return request
    if user.role == Role.PATIENT and str(request.user_id) == user_id:
        return request
    if user.role == Role.PHARMACY and str(request.pharmacy_id) == user_id:
        return request
    raise HTTPException(status_code=403, detail="Access denied")


async def _check_room_access(hub: RealtimeHub, room_id: str, user: User) -> None:
    if user.role == Role.ADMIN:
        return
    match = REQUEST_ROOM.match(room_id)
    if match:
        request = await _check_request_access(hub, match.group("request"), user)
        if str(request.pharmacy_id) != match.group("pharmacy"):
            raise HTTPException(status_code=403, detail="Access denied")
        return
    if str(user.id) in room_id.split("_"):
        return
    if await hub.chat.is_participant(room_id, str(user.id)):
        return
    raise HTTPException(status_code=403, detail="Access denied")


@router.get("/rooms/{room_id}/messages", response_model=ChatHistoryOut)
async def room_history(room_id: str, current: User = CurrentUser, hub: RealtimeHub = CurrentHub):
    """Messages of a room, oldest first."""
    await _check_room_access(hub, room_id, current)
    messages = await hub.chat.history(room_id)
    return ChatHistoryOut(roomId=room_id, messages=[_out(m) for m in messages], count=len(messages))


@router.get("/history/{medical_request_id}", response_model=ChatHistoryOut)
async def request_history(medical_request_id: str, current: User = CurrentUser, hub: RealtimeHub = CurrentHub):
    """Chat attached to one medication request."""
    await _check_request_access(hub, medical_request_id, current)
    messages = await hub.chat.history_for_request(medical_request_id)
    return ChatHistoryOut(messages=[_out(m) for m in messages], count=len(messages))


@router.post("", response_model=ChatMessageOut, status_code=201)
@limiter.limit("60/minute")
async def send_message(
    request: Request,
    payload: ChatMessageIn,
    current: User = CurrentUser,
    hub: RealtimeHub = CurrentHub,
):
    """Send a message over REST; delivery is the same as over the socket."""
    sender_id = str(current.id)
    if payload.room_id:
        await _check_room_access(hub, payload.room_id, current)

    if payload.medical_request_id:
        if current.role == Role.PHARMACY:
            message = await hub.chat.send_pharmacy_message(
                sender_id, payload.medical_request_id, payload.message, room_id=payload.room_id
            )
            return _out(message)
        if current.role == Role.PATIENT:
            pharmacy_id = payload.pharmacy_id
            if not pharmacy_id:
                order = await _check_request_access(hub, payload.medical_request_id, current)
                pharmacy_id = str(order.pharmacy_id)
            message = await hub.chat.send_patient_pharmacy_message(
                sender_id, pharmacy_id, payload.medical_request_id, payload.message, room_id=payload.room_id
            )
            return _out(message)

    receiver_id = payload.receiver_id
    if not receiver_id and current.role == Role.PATIENT:
        receiver_id = payload.pharmacy_id
    elif not receiver_id and current.role == Role.PHARMACY:
        receiver_id = payload.patient_id

    message = await hub.chat.send_message(SendMessageCommand(
        sender_id=sender_id,
        text=payload.message,
        receiver_id=receiver_id,
        room_id=payload.room_id,
        appointment_id=payload.appointment_id,
        sender_role=current.role,
        sender_name=current.name,
        kind=ConversationKind.DIRECT,
    ))
    logger.info(f"📨 [REST] Message {message.id} saved by {sender_id} (role={current.role})")
    return _out(message)


@router.put("/rooms/{room_id}/read", response_model=MarkReadOut)
async def mark_room_read(room_id: str, current: User = CurrentUser, hub: RealtimeHub = CurrentHub):
    """Mark every message in the room that the caller did not send as read."""
    await _check_room_access(hub, room_id, current)
    updated = await hub.chat.mark_room_read(room_id, str(current.id))
    return MarkReadOut(roomId=room_id, updated=updated)
