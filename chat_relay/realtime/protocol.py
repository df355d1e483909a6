"""Socket.IO event protocol.

Client events are a closed set; each has a serializer declaring its
required and optional fields. ``parse`` validates a payload at the relay
boundary and returns snake_case data for the hub.

Signaling payloads (SDP offers/answers, connectivity candidates) are only
checked for presence. Their content is opaque to the relay and is
forwarded verbatim.
"""

from __future__ import annotations

from typing import Any

from rest_framework import serializers

from chat_relay.chat.exceptions import ValidationError
from chat_relay.chat.models import Message

# Client -> server
JOIN = "join"
MESSAGE_SEND = "message:send"
HISTORY_REQUEST = "history:request"
REACTION_TOGGLE = "reaction:toggle"
EDIT_REQUEST = "edit:request"
DELETE_REQUEST = "delete:request"
READ_MARK = "read:mark"
SIGNAL_OFFER = "signal:offer"
SIGNAL_ANSWER = "signal:answer"
SIGNAL_CANDIDATE = "signal:candidate"
SIGNAL_END = "signal:end"
ROOM_JOIN = "room:join"
ROOM_LEAVE = "room:leave"

# Server -> client
ME = "me"
ERROR = "error"
PRESENCE_ONLINE = "presence:online"
PRESENCE_OFFLINE = "presence:offline"
MESSAGE_SENT = "message:sent"
MESSAGE_RECEIVE = "message:receive"
HISTORY_RESULT = "history:result"
REACTION_UPDATED = "reaction:updated"
EDIT_APPLIED = "edit:applied"
DELETE_APPLIED = "delete:applied"
READ_UPDATED = "read:updated"
ROOM_ROLE = "room:role"
PEER_INCOMING = "peer:incoming"
PEER_LEFT = "peer:left"


class JoinSerializer(serializers.Serializer):
    userId = serializers.IntegerField(source="user_id", min_value=1)  # noqa: N815
    fullName = serializers.CharField(  # noqa: N815
        source="display_name", required=False, allow_blank=True, default=""
    )
    profilePic = serializers.CharField(  # noqa: N815
        source="profile_pic", required=False, allow_blank=True, default=""
    )
    nativeLanguage = serializers.CharField(  # noqa: N815
        source="native_language", required=False, allow_blank=True, default=""
    )

    def to_internal_value(self, data: Any) -> dict[str, Any]:
        # Older clients send the raw document id as `_id`
        if isinstance(data, dict) and "userId" not in data and "_id" in data:
            data = {**data, "userId": data["_id"]}
        return super().to_internal_value(data)


class MessageSendSerializer(serializers.Serializer):
    targetUserId = serializers.IntegerField(source="target_user_id", min_value=1)  # noqa: N815
    senderId = serializers.IntegerField(  # noqa: N815
        source="sender_id", min_value=1, required=False, allow_null=True
    )
    text = serializers.CharField(
        required=False, allow_blank=True, trim_whitespace=False, default=""
    )
    messageType = serializers.ChoiceField(  # noqa: N815
        source="message_type",
        choices=Message.Type.choices,
        required=False,
        default=Message.Type.TEXT,
    )
    fileUrl = serializers.CharField(  # noqa: N815
        source="file_url", required=False, allow_blank=True, allow_null=True
    )
    fileName = serializers.CharField(  # noqa: N815
        source="file_name", required=False, allow_blank=True, allow_null=True
    )
    fileSize = serializers.IntegerField(  # noqa: N815
        source="file_size", required=False, allow_null=True, min_value=0
    )
    replyTo = serializers.IntegerField(  # noqa: N815
        source="reply_to", required=False, allow_null=True, min_value=1
    )

    def to_internal_value(self, data: Any) -> dict[str, Any]:
        # `message` is the field name used by the first web client
        if isinstance(data, dict) and "text" not in data and "message" in data:
            data = {**data, "text": data["message"]}
        return super().to_internal_value(data)


class HistoryRequestSerializer(serializers.Serializer):
    userId = serializers.IntegerField(  # noqa: N815
        source="user_id", min_value=1, required=False, allow_null=True
    )
    targetUserId = serializers.IntegerField(source="target_user_id", min_value=1)  # noqa: N815
    limit = serializers.IntegerField(required=False, allow_null=True, min_value=1)


class ReactionToggleSerializer(serializers.Serializer):
    messageId = serializers.IntegerField(source="message_id", min_value=1)  # noqa: N815
    emoji = serializers.CharField(max_length=32)
    userId = serializers.IntegerField(  # noqa: N815
        source="user_id", min_value=1, required=False, allow_null=True
    )


class EditRequestSerializer(serializers.Serializer):
    messageId = serializers.IntegerField(source="message_id", min_value=1)  # noqa: N815
    newText = serializers.CharField(source="new_text")  # noqa: N815
    userId = serializers.IntegerField(  # noqa: N815
        source="user_id", min_value=1, required=False, allow_null=True
    )


class DeleteRequestSerializer(serializers.Serializer):
    messageId = serializers.IntegerField(source="message_id", min_value=1)  # noqa: N815
    userId = serializers.IntegerField(  # noqa: N815
        source="user_id", min_value=1, required=False, allow_null=True
    )


class ReadMarkSerializer(serializers.Serializer):
    messageIds = serializers.ListField(  # noqa: N815
        source="message_ids",
        child=serializers.IntegerField(min_value=1),
        allow_empty=False,
        max_length=500,
    )
    userId = serializers.IntegerField(  # noqa: N815
        source="user_id", min_value=1, required=False, allow_null=True
    )


class OfferSerializer(serializers.Serializer):
    # The callee's user id; the relay resolves the connection
    targetId = serializers.IntegerField(source="target_user_id", min_value=1)  # noqa: N815
    payload = serializers.JSONField()
    callId = serializers.CharField(  # noqa: N815
        source="call_id", required=False, allow_blank=True, allow_null=True
    )


class DirectSignalSerializer(serializers.Serializer):
    # The peer's connection id, learned from the offer or the room
    targetId = serializers.CharField(source="target_connection_id")  # noqa: N815
    payload = serializers.JSONField(required=False, allow_null=True)
    callId = serializers.CharField(  # noqa: N815
        source="call_id", required=False, allow_blank=True, allow_null=True
    )


class RoomJoinSerializer(serializers.Serializer):
    meetingId = serializers.CharField(source="meeting_id", max_length=200)  # noqa: N815
    displayName = serializers.CharField(  # noqa: N815
        source="display_name", required=False, allow_blank=True, default=""
    )
    locale = serializers.CharField(required=False, allow_blank=True, default="")


class RoomLeaveSerializer(serializers.Serializer):
    meetingId = serializers.CharField(source="meeting_id", max_length=200)  # noqa: N815


CLIENT_EVENTS: dict[str, type[serializers.Serializer]] = {
    JOIN: JoinSerializer,
    MESSAGE_SEND: MessageSendSerializer,
    HISTORY_REQUEST: HistoryRequestSerializer,
    REACTION_TOGGLE: ReactionToggleSerializer,
    EDIT_REQUEST: EditRequestSerializer,
    DELETE_REQUEST: DeleteRequestSerializer,
    READ_MARK: ReadMarkSerializer,
    SIGNAL_OFFER: OfferSerializer,
    SIGNAL_ANSWER: DirectSignalSerializer,
    SIGNAL_CANDIDATE: DirectSignalSerializer,
    SIGNAL_END: DirectSignalSerializer,
    ROOM_JOIN: RoomJoinSerializer,
    ROOM_LEAVE: RoomLeaveSerializer,
}


def _first_error(detail: Any) -> str:
    if isinstance(detail, dict):
        for key, value in detail.items():
            text = _first_error(value)
            return text if key == "non_field_errors" else f"{key}: {text}"
    if isinstance(detail, list) and detail:
        return _first_error(detail[0])
    return str(detail)


def parse(event: str, data: Any) -> dict[str, Any]:
    """Validate a client payload and return its internal representation."""

    serializer_class = CLIENT_EVENTS.get(event)
    if serializer_class is None:
        msg = f"Unknown event: {event}"
        raise ValidationError(msg)
    if not isinstance(data, dict):
        msg = "Payload must be an object"
        raise ValidationError(msg)

    serializer = serializer_class(data=data)
    if not serializer.is_valid():
        raise ValidationError(_first_error(serializer.errors))
    return dict(serializer.validated_data)
