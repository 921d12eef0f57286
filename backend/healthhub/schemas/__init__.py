from datetime import datetime
from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from typing import Any, Dict, List, Optional

from healthhub.constants import NotificationPriority, NotificationType

# -------------------- Socket payloads --------------------
# Clients evolved independently and send a few spellings for the same id.
# Each concept has one canonical field; the old spellings are accepted here
# and nowhere else.


class SocketPayload(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True, coerce_numbers_to_str=True)


class AuthenticateIn(SocketPayload):
    user_id: Optional[str] = Field(None, validation_alias=AliasChoices("userId", "user_id", "id"))
    token: Optional[str] = None


class JoinChatRoomIn(SocketPayload):
    room_id: Optional[str] = Field(None, validation_alias=AliasChoices("roomId", "room_id"))
    user_id: Optional[str] = Field(None, validation_alias=AliasChoices("userId", "user_id"))
    doctor_id: Optional[str] = Field(None, validation_alias=AliasChoices("doctorId", "doctor_id"))


class RoomIn(SocketPayload):
    room_id: Optional[str] = Field(None, validation_alias=AliasChoices("roomId", "room_id"))


class PharmacyChatRoomIn(SocketPayload):
    room_id: Optional[str] = Field(None, validation_alias=AliasChoices("roomId", "room_id"))
    pharmacy_id: Optional[str] = Field(None, validation_alias=AliasChoices("pharmacyId", "pharmacyID", "pharmacy_id"))
    medical_request_id: Optional[str] = Field(
        None, validation_alias=AliasChoices("medicalRequestId", "orderId", "requestId", "medical_request_id")
    )


class PharmacyIn(SocketPayload):
    pharmacy_id: Optional[str] = Field(None, validation_alias=AliasChoices("pharmacyId", "pharmacyID", "pharmacy_id"))


class OrderIn(SocketPayload):
    order_id: Optional[str] = Field(None, validation_alias=AliasChoices("orderId", "medicalRequestId", "order_id"))


class PharmacyMessageIn(SocketPayload):
    room_id: Optional[str] = Field(None, validation_alias=AliasChoices("roomId", "room_id"))
    message: str = ""
    pharmacy_id: Optional[str] = Field(None, validation_alias=AliasChoices("pharmacyId", "pharmacyID", "pharmacy_id"))
    medical_request_id: Optional[str] = Field(
        None, validation_alias=AliasChoices("medicalRequestId", "orderId", "requestId", "medical_request_id")
    )
    patient_id: Optional[str] = Field(None, validation_alias=AliasChoices("patientId", "patient_id"))


class DirectMessageIn(SocketPayload):
    receiver_id: Optional[str] = Field(None, validation_alias=AliasChoices("receiverId", "receiver_id"))
    message: str = ""
    receiver_model: Optional[str] = Field(None, validation_alias=AliasChoices("receiverModel", "receiver_model"))
    room_id: Optional[str] = Field(None, validation_alias=AliasChoices("roomId", "room_id"))
    appointment_id: Optional[str] = Field(None, validation_alias=AliasChoices("appointmentId", "appointment_id"))


class TypingIn(SocketPayload):
    room_id: Optional[str] = Field(None, validation_alias=AliasChoices("roomId", "room_id"))
    user_name: Optional[str] = Field(None, validation_alias=AliasChoices("userName", "user_name"))


# -------------------- Chat (REST) --------------------

class ChatMessageIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str
    receiver_id: Optional[str] = Field(None, validation_alias=AliasChoices("receiverId", "receiver_id"))
    room_id: Optional[str] = Field(None, validation_alias=AliasChoices("roomId", "room_id"))
    appointment_id: Optional[str] = Field(None, validation_alias=AliasChoices("appointmentId", "appointment_id"))
    pharmacy_id: Optional[str] = Field(None, validation_alias=AliasChoices("pharmacyId", "pharmacy_id"))
    patient_id: Optional[str] = Field(None, validation_alias=AliasChoices("patientId", "patient_id"))
    medical_request_id: Optional[str] = Field(
        None, validation_alias=AliasChoices("medicalRequestId", "requestId", "orderId", "medical_request_id")
    )


class ChatMessageOut(BaseModel):
    id: str
    senderId: str
    receiverId: Optional[str] = None
    senderName: Optional[str] = None
    senderRole: Optional[str] = None
    message: str
    roomId: str
    medicalRequestId: Optional[str] = None
    appointmentId: Optional[str] = None
    pharmacyId: Optional[str] = None
    patientId: Optional[str] = None
    messageType: Optional[str] = None
    isRead: bool = False
    timestamp: Optional[str] = None


class ChatHistoryOut(BaseModel):
    roomId: Optional[str] = None
    messages: List[ChatMessageOut]
    count: int


class MarkReadOut(BaseModel):
    roomId: str
    updated: int


# -------------------- Notifications --------------------

class NotificationIn(BaseModel):
    type: NotificationType = NotificationType.SYSTEM
    title: str
    message: str
    priority: NotificationPriority = NotificationPriority.MEDIUM
    actionUrl: Optional[str] = None
    actionLabel: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class NotificationOut(BaseModel):
    id: str
    userId: str
    type: str
    title: str
    message: str
    priority: str
    isRead: bool
    actionUrl: Optional[str] = None
    actionLabel: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    createdAt: Optional[str] = None


class NotificationListOut(BaseModel):
    data: List[NotificationOut]
    count: int


class UnreadCountOut(BaseModel):
    count: int


# -------------------- Realtime status --------------------

class RealtimeStatusOut(BaseModel):
    connections: int
    online_users: int
    change_feed: Dict[str, Any]
    checked_at: datetime
