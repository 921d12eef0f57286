from datetime import datetime
from typing import Any, Dict

from bson import ObjectId
from fastapi.encoders import jsonable_encoder


def truncate_preview(text: str, limit: int = 100) -> str:
    """Shorten a message for a notification; the stored message keeps the full text."""
    if len(text) > limit:
        return text[:limit] + "..."
    return text


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _value(value: Any) -> Any:
    # str-Enums (roles, types) go over the wire as their plain value
    return getattr(value, "value", value)


def serialize_message(message, sender_name: str | None = None) -> Dict[str, Any]:
    """Socket/REST payload for a stored chat message."""
    return {
        "id": str(message.id),
        "_id": str(message.id),
        "senderId": message.sender_id,
        "receiverId": message.receiver_id,
        "senderName": sender_name or message.sender_name,
        "senderRole": _value(message.sender_role),
        "message": message.message,
        "roomId": message.room_id,
        "medicalRequestId": message.request_id,
        "appointmentId": message.appointment_id,
        "pharmacyId": message.pharmacy_id,
        "patientId": message.patient_id,
        "messageType": _value(message.message_type),
        "isRead": message.is_read,
        "timestamp": _iso(message.timestamp),
        "createdAt": _iso(message.timestamp),
    }


def serialize_notification(notification) -> Dict[str, Any]:
    return {
        "id": str(notification.id),
        "_id": str(notification.id),
        "userId": notification.user_id,
        "type": _value(notification.type),
        "title": notification.title,
        "message": notification.message,
        "priority": _value(notification.priority),
        "isRead": notification.is_read,
        "actionUrl": notification.action_url,
        "actionLabel": notification.action_label,
        "metadata": to_jsonable(notification.metadata or {}),
        "createdAt": _iso(notification.created_at),
    }


def to_jsonable(document: Any) -> Any:
    """Make raw Mongo documents (ObjectId, datetime) safe for the Socket.IO JSON encoder."""
    return jsonable_encoder(document, custom_encoder={ObjectId: str})
