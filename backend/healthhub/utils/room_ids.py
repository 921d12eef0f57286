"""
Room naming for the Socket.IO layer.

Rooms are never stored: both parties compute the same name on their own,
so every function here is pure.
"""
from typing import Any

from healthhub.exceptions import ValidationException

ROOM_SEPARATOR = "_"


def _require(value: Any, field: str) -> str:
    text = str(value).strip() if value is not None else ""
    if not text:
        raise ValidationException(f"{field} is required", code="E400")
    return text


def derive_room_id(user_a: Any, user_b: Any) -> str:
    """Pairwise room; the smaller id always goes first so the order of the arguments does not matter."""
    ids = sorted([_require(user_a, "userId"), _require(user_b, "userId")])
    return ROOM_SEPARATOR.join(ids)


def derive_pharmacy_request_room_id(pharmacy_id: Any, request_id: Any) -> str:
    """Room scoped to one medication request. Always pharmacy first."""
    return f"pharmacy_{_require(pharmacy_id, 'pharmacyId')}_request_{_require(request_id, 'medicalRequestId')}"


def derive_appointment_room_id(appointment_id: Any) -> str:
    return f"chat_{_require(appointment_id, 'appointmentId')}"


def user_room(user_id: Any) -> str:
    return f"user_{_require(user_id, 'userId')}"


def pharmacy_room(pharmacy_id: Any) -> str:
    return f"pharmacy_{_require(pharmacy_id, 'pharmacyId')}"


def pharmacy_requests_room(pharmacy_id: Any) -> str:
    return f"pharmacy_requests_{_require(pharmacy_id, 'pharmacyId')}"
