import pytest

from healthhub.exceptions import ValidationException
from healthhub.utils.room_ids import (
    derive_appointment_room_id,
    derive_pharmacy_request_room_id,
    derive_room_id,
    pharmacy_requests_room,
    pharmacy_room,
    user_room,
)


def test_pairwise_room_is_order_independent():
    assert derive_room_id("u2", "u1") == "u1_u2"
    assert derive_room_id("u1", "u2") == "u1_u2"


def test_pairwise_room_sorts_lexicographically():
    assert derive_room_id("b", "a10") == "a10_b"


def test_pairwise_room_accepts_non_string_ids():
    assert derive_room_id(7, 3) == "3_7"


def test_pharmacy_request_room_keeps_pharmacy_first():
    assert derive_pharmacy_request_room_id("PH1", "R9") == "pharmacy_PH1_request_R9"


def test_named_rooms():
    assert derive_appointment_room_id("A1") == "chat_A1"
    assert user_room("P1") == "user_P1"
    assert pharmacy_room("PH1") == "pharmacy_PH1"
    assert pharmacy_requests_room("PH1") == "pharmacy_requests_PH1"


@pytest.mark.parametrize("a, b", [("", "u1"), ("u1", None), ("  ", "u2")])
def test_empty_ids_are_rejected(a, b):
    with pytest.raises(ValidationException):
        derive_room_id(a, b)


def test_request_room_requires_request_id():
    with pytest.raises(ValidationException) as exc:
        derive_pharmacy_request_room_id("PH1", "")
    assert "medicalRequestId" in exc.value.message
