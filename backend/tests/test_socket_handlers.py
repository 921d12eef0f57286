import pytest

from healthhub.exceptions import ValidationException
from healthhub.schemas import AuthenticateIn, PharmacyChatRoomIn, PharmacyIn
from healthhub.security import create_access_token
from healthhub.services.socket_service import parse_payload


def test_parse_payload_accepts_legacy_spellings():
    payload = parse_payload(PharmacyChatRoomIn, {"pharmacyID": "PH1", "orderId": "R9"})
    assert payload.pharmacy_id == "PH1"
    assert payload.medical_request_id == "R9"


def test_parse_payload_accepts_scalars():
    assert parse_payload(AuthenticateIn, "P1").user_id == "P1"
    assert parse_payload(PharmacyIn, 42).pharmacy_id == "42"


def test_parse_payload_rejects_unsupported_scalars():
    with pytest.raises(ValidationException):
        parse_payload(PharmacyChatRoomIn, "PH1")


@pytest.mark.asyncio
async def test_authenticate_binds_connection_and_joins_user_room(hub, sio):
    await sio.connect("s1")
    await sio.trigger("authenticate", "s1", {"userId": "P1"})

    assert hub.registry.user_for("s1") == "P1"
    assert "s1" in sio.rooms["user_P1"]
    assert sio.received("s1", "authenticated") == [{"userId": "P1", "connectionId": "s1", "socketId": "s1"}]


@pytest.mark.asyncio
async def test_authenticate_without_user_id_reports_error(hub, sio):
    await sio.connect("s1")
    await sio.trigger("authenticate", "s1", {})
    errors = sio.received("s1", "chat-error")
    assert errors and errors[0]["code"] == "E400"
    assert not hub.registry.is_authenticated("s1")


@pytest.mark.asyncio
async def test_token_in_handshake_authenticates(hub, sio):
    token = create_access_token({"sub": "D1"})
    assert await sio.connect("s1", auth={"token": token}) is True
    assert hub.registry.user_for("s1") == "D1"


@pytest.mark.asyncio
async def test_bearer_header_in_handshake_authenticates(hub, sio):
    token = create_access_token({"sub": "P1"})
    await sio.connect("s1", environ={"HTTP_AUTHORIZATION": f"Bearer {token}"})
    assert hub.registry.user_for("s1") == "P1"


@pytest.mark.asyncio
async def test_required_token_rejects_bad_handshake(hub, sio):
    hub.settings.SOCKET_REQUIRE_TOKEN = True
    assert await sio.connect("s1", auth={"token": "garbage"}) is False
    assert len(hub.registry) == 0


@pytest.mark.asyncio
async def test_token_subject_must_match_claimed_user(hub, sio):
    await sio.connect("s1")
    await sio.trigger("authenticate", "s1", {"userId": "P1", "token": create_access_token({"sub": "D1"})})
    assert sio.received("s1", "chat-error")[0]["code"] == "E403"
    assert not hub.registry.is_authenticated("s1")


@pytest.mark.asyncio
async def test_disconnect_clears_presence_and_rooms(hub, sio):
    await sio.connect("s1")
    await sio.trigger("authenticate", "s1", {"userId": "P1"})
    await sio.trigger("join-chat-room-by-id", "s1", {"roomId": "D1_P1"})

    await sio.disconnect("s1")

    assert not hub.registry.is_online("P1")
    assert hub.rooms.rooms_of("s1") == set()


@pytest.mark.asyncio
async def test_unauthenticated_connection_may_join_but_not_send(hub, sio, chat_repo):
    await sio.connect("anon")
    await sio.trigger("join-chat-room", "anon", {"roomId": "D1_P1"})
    await sio.trigger("send-chat-message", "anon", {"receiverId": "D1", "message": "hi"})

    assert sio.received("anon", "chat-room-joined") == [{"roomId": "D1_P1"}]
    assert sio.received("anon", "chat-error")[0]["code"] == "E401"
    assert chat_repo.messages == []


@pytest.mark.asyncio
async def test_join_chat_room_requires_room_or_pair(hub, sio):
    await sio.connect("s1")
    await sio.trigger("join-chat-room", "s1", {"userId": "P1"})
    assert sio.received("s1", "chat-error")[0]["code"] == "E400"


@pytest.mark.asyncio
async def test_leave_chat_room(hub, sio):
    await sio.connect("s1")
    await sio.trigger("join-chat-room-by-id", "s1", {"roomId": "chat_A1"})
    await sio.trigger("leave-chat-room", "s1", {"roomId": "chat_A1"})
    assert not hub.rooms.is_member("s1", "chat_A1")
    assert sio.received("s1", "chat-room-left") == [{"roomId": "chat_A1"}]


@pytest.mark.asyncio
async def test_pharmacy_round_trip(hub, sio, notification_repo):
    await sio.connect("patient")
    await sio.trigger("authenticate", "patient", {"userId": "P1"})
    await sio.connect("pharmacy")
    await sio.trigger("authenticate", "pharmacy", "PH1")
    await sio.trigger("joinPharmacyRoom", "pharmacy", {"pharmacyId": "PH1"})
    await sio.trigger("joinPharmacyChatRoom", "patient", {"pharmacyId": "PH1", "medicalRequestId": "R9"})
    await sio.trigger("joinOrderChatRoom", "pharmacy", "R9")

    assert sio.received("pharmacy", "pharmacy-chat-room-joined")[0]["roomId"] == "pharmacy_PH1_request_R9"

    await sio.trigger(
        "patientSendMessage",
        "patient",
        {"pharmacyId": "PH1", "medicalRequestId": "R9", "message": "Do you have it?"},
    )
    await sio.trigger("pharmacySendMessage", "pharmacy", {"medicalRequestId": "R9", "message": "Yes"})
    await hub.chat.flush_notifications()

    assert [m["message"] for m in sio.received("patient", "newMessage")] == ["Do you have it?", "Yes"]
    assert [m["message"] for m in sio.received("pharmacy", "pharmacy-chat-message")] == ["Do you have it?", "Yes"]
    # both parties were in the room already
    assert sio.received("patient", "incomingMessage") == []
    assert sio.received("pharmacy", "incomingMessage") == []
    assert {n.user_id for n in notification_repo.notifications} == {"P1", "PH1"}
    assert sio.received("patient", "chat-error") == []
    assert sio.received("pharmacy", "chat-error") == []


@pytest.mark.asyncio
async def test_pharmacy_room_of_another_pharmacy_is_refused(hub, sio):
    await sio.connect("ph2")
    await sio.trigger("authenticate", "ph2", {"userId": "PH2"})

    await sio.trigger("joinPharmacyRoom", "ph2", {"pharmacyId": "PH1"})
    await sio.trigger("subscribe-pharmacy-requests", "ph2", {"pharmacyId": "PH1"})

    assert [e["message"] for e in sio.received("ph2", "error")] == ["Unauthorized", "Unauthorized"]
    assert not hub.rooms.is_member("ph2", "pharmacy_PH1")
    assert not hub.rooms.is_member("ph2", "pharmacy_requests_PH1")


@pytest.mark.asyncio
async def test_foreign_pharmacy_cannot_write_on_request(hub, sio, chat_repo):
    await sio.connect("ph2")
    await sio.trigger("authenticate", "ph2", {"userId": "PH2"})

    await sio.trigger("pharmacySendMessage", "ph2", {"medicalRequestId": "R9", "message": "hello"})

    error = sio.received("ph2", "chat-error")[0]
    assert error["code"] == "E403"
    assert error["message"] == "Unauthorized: This request is not assigned to your pharmacy"
    assert chat_repo.messages == []


@pytest.mark.asyncio
async def test_unknown_order_room(hub, sio):
    await sio.connect("s1")
    await sio.trigger("joinOrderChatRoom", "s1", {"orderId": "R404"})
    assert sio.received("s1", "chat-error")[0] == {"message": "Order not found", "code": "E404"}


@pytest.mark.asyncio
async def test_typing_indicator_skips_sender(hub, sio):
    for sid in ("s1", "d1"):
        await sio.connect(sid)
        await sio.trigger("join-chat-room-by-id", sid, {"roomId": "D1_P1"})

    await sio.trigger("typing-start", "s1", {"roomId": "D1_P1", "userName": "Sara"})
    await sio.trigger("typing-stop", "s1", {"roomId": "D1_P1"})

    assert sio.received("d1", "user-typing") == [{"userName": "Sara"}]
    assert sio.received("d1", "user-stopped-typing") == [{}]
    assert sio.received("s1", "user-typing") == []


@pytest.mark.asyncio
async def test_store_failure_reported_to_sender_only(hub, sio, chat_repo):
    for sid, user in (("s1", "P1"), ("d1", "D1")):
        await sio.connect(sid)
        await sio.trigger("authenticate", sid, {"userId": user})
    chat_repo.fail = True

    await sio.trigger("send-chat-message", "s1", {"receiverId": "D1", "message": "hi", "receiverModel": "Doctor"})

    assert sio.received("s1", "chat-error") == [{"message": "Failed to send message", "code": "E500"}]
    assert sio.received("d1", "chat-error") == []
    assert sio.received("d1", "incomingMessage") == []


@pytest.mark.asyncio
async def test_refresh_data_echoes_user(hub, sio):
    await sio.connect("s1")
    await sio.trigger("authenticate", "s1", {"userId": "P1"})
    await sio.trigger("refresh-data", "s1")
    assert sio.received("s1", "data-refreshed")[0]["userId"] == "P1"


async def _pharmacy_pair(sio):
    await sio.connect("patient")
    await sio.trigger("authenticate", "patient", {"userId": "P1"})
    await sio.connect("pharmacy")
    await sio.trigger("authenticate", "pharmacy", {"userId": "PH1"})
    await sio.trigger("joinPharmacyRoom", "pharmacy", {"pharmacyId": "PH1"})


@pytest.mark.asyncio
async def test_patient_to_pharmacy_uses_pairwise_room(hub, sio, chat_repo, notification_repo):
    await _pharmacy_pair(sio)

    await sio.trigger(
        "patientToPharmacyMessage",
        "patient",
        {"pharmacyId": "PH1", "message": "Is my order ready?", "requestId": "R9"},
    )
    await hub.chat.flush_notifications()

    stored = chat_repo.messages[0]
    assert stored.room_id == "P1_PH1"
    assert stored.request_id == "R9"
    inbox = sio.received("pharmacy", "newPharmacyChatMessage")
    assert inbox[0]["roomId"] == "P1_PH1"
    assert sio.received("pharmacy", "incomingMessage")[0]["message"] == "Is my order ready?"
    assert [n.user_id for n in notification_repo.notifications] == ["PH1"]
    assert sio.received("patient", "chat-error") == []


@pytest.mark.asyncio
async def test_pharmacy_to_patient_notifies_request_owner(hub, sio, chat_repo, notification_repo):
    await _pharmacy_pair(sio)

    await sio.trigger(
        "pharmacyToPatientMessage",
        "pharmacy",
        {"patientId": "P1", "message": "Ready for pickup", "requestId": "R9"},
    )
    await hub.chat.flush_notifications()

    assert chat_repo.messages[0].room_id == "P1_PH1"
    assert sio.received("patient", "incomingMessage")[0]["message"] == "Ready for pickup"
    (notification,) = notification_repo.notifications
    assert notification.user_id == "P1"
    assert notification.message == "Regarding your medication request: Ready for pickup"
    assert notification.metadata["medicationRequestId"] == "R9"


@pytest.mark.asyncio
@pytest.mark.parametrize("patient_id, request_id", [("D1", "R9"), ("P1", "R404"), ("P1", None)])
async def test_pharmacy_to_patient_without_owned_request_sends_quietly(
    hub, sio, chat_repo, notification_repo, patient_id, request_id
):
    await _pharmacy_pair(sio)
    data = {"patientId": patient_id, "message": "Hello"}
    if request_id:
        data["requestId"] = request_id

    await sio.trigger("pharmacyToPatientMessage", "pharmacy", data)
    await hub.chat.flush_notifications()

    assert len(chat_repo.messages) == 1
    assert notification_repo.notifications == []
    assert sio.received("pharmacy", "chat-error") == []


@pytest.mark.asyncio
async def test_pairwise_pharmacy_events_need_authentication_and_target(hub, sio, chat_repo):
    await sio.connect("anon")
    await sio.trigger("patientToPharmacyMessage", "anon", {"pharmacyId": "PH1", "message": "hi"})
    await sio.connect("pharmacy")
    await sio.trigger("authenticate", "pharmacy", {"userId": "PH1"})
    await sio.trigger("pharmacyToPatientMessage", "pharmacy", {"message": "hi"})

    assert sio.received("anon", "chat-error")[0]["code"] == "E401"
    assert sio.received("pharmacy", "chat-error")[0] == {"message": "patientId is required", "code": "E400"}
    assert chat_repo.messages == []


@pytest.mark.asyncio
async def test_malformed_typing_payload_reports_error(hub, sio):
    for sid in ("s1", "d1"):
        await sio.connect(sid)
        await sio.trigger("join-chat-room-by-id", sid, {"roomId": "D1_P1"})

    await sio.trigger("typing-start", "s1", {"roomId": [], "userName": "Sara"})
    await sio.trigger("typing-stop", "s1", ["D1_P1"])

    errors = sio.received("s1", "chat-error")
    assert [e["code"] for e in errors] == ["E400", "E400"]
    assert sio.received("d1", "user-typing") == []
    assert sio.received("d1", "user-stopped-typing") == []
