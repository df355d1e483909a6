import pytest

from chat_relay.chat.exceptions import ValidationError
from chat_relay.realtime import protocol


def test_join_defaults():
    data = protocol.parse(protocol.JOIN, {"userId": 5, "fullName": "Eve"})
    assert data == {
        "user_id": 5,
        "display_name": "Eve",
        "profile_pic": "",
        "native_language": "",
    }


def test_join_accepts_legacy_id_field():
    assert protocol.parse(protocol.JOIN, {"_id": "7"})["user_id"] == 7  # noqa: PLR2004


def test_missing_field_names_the_field():
    with pytest.raises(ValidationError) as excinfo:
        protocol.parse(protocol.MESSAGE_SEND, {"text": "hi"})
    assert excinfo.value.message.startswith("targetUserId:")


def test_message_send_accepts_message_alias():
    data = protocol.parse(protocol.MESSAGE_SEND, {"targetUserId": 2, "message": "yo"})
    assert data["text"] == "yo"
    assert data["message_type"] == "text"


def test_unsupported_message_type():
    with pytest.raises(ValidationError):
        protocol.parse(
            protocol.MESSAGE_SEND, {"targetUserId": 2, "text": "x", "messageType": "gif"}
        )


def test_payload_must_be_object():
    with pytest.raises(ValidationError, match="object"):
        protocol.parse(protocol.HISTORY_REQUEST, ["not", "a", "dict"])


def test_unknown_event():
    with pytest.raises(ValidationError, match="Unknown event"):
        protocol.parse("message:shout", {})


def test_offer_payload_is_opaque():
    sdp = {"type": "offer", "sdp": "v=0\r\no=- 1 2 IN IP4 127.0.0.1\r\n"}
    data = protocol.parse(
        protocol.SIGNAL_OFFER, {"targetId": 3, "payload": sdp, "callId": "c-1"}
    )
    assert data["payload"] == sdp
    assert data["target_user_id"] == 3  # noqa: PLR2004


def test_end_call_without_payload():
    data = protocol.parse(protocol.SIGNAL_END, {"targetId": "sid-b"})
    assert data["target_connection_id"] == "sid-b"


def test_read_mark_needs_ids():
    with pytest.raises(ValidationError):
        protocol.parse(protocol.READ_MARK, {"messageIds": []})


def test_every_client_event_has_a_serializer():
    assert set(protocol.CLIENT_EVENTS) == {
        protocol.JOIN,
        protocol.MESSAGE_SEND,
        protocol.HISTORY_REQUEST,
        protocol.REACTION_TOGGLE,
        protocol.EDIT_REQUEST,
        protocol.DELETE_REQUEST,
        protocol.READ_MARK,
        protocol.SIGNAL_OFFER,
        protocol.SIGNAL_ANSWER,
        protocol.SIGNAL_CANDIDATE,
        protocol.SIGNAL_END,
        protocol.ROOM_JOIN,
        protocol.ROOM_LEAVE,
    }
