"""Server -> client payload builders.

Builders run in sync context: serializing a message may read the sender
row. Call them inside ``database_sync_to_async`` from async code.
"""

from __future__ import annotations

from typing import TYPE_CHECKING
from typing import Any

from chat_relay.chat.api.serializers import MessageSerializer
from chat_relay.chat.api.serializers import ReactionSerializer

if TYPE_CHECKING:  # import for type checking only
    from collections.abc import Iterable

    from chat_relay.chat.models import Message
    from chat_relay.chat.services import ReactionResult
    from chat_relay.realtime.presence import Session


def build_message_payload(message: Message) -> dict[str, Any]:
    return dict(MessageSerializer(message).data)


def build_history_payload(
    conversation_id: str, messages: Iterable[Message]
) -> dict[str, Any]:
    return {
        "conversationId": conversation_id,
        "messages": list(MessageSerializer(messages, many=True).data),
    }


def build_reaction_payload(
    result: ReactionResult, user_id: int, emoji: str
) -> dict[str, Any]:
    return {
        "messageId": result.message.pk,
        "reactions": list(ReactionSerializer(result.reactions, many=True).data),
        "userId": user_id,
        "emoji": emoji,
        "action": result.action,
    }


def build_edit_payload(message: Message, user_id: int) -> dict[str, Any]:
    return {
        "messageId": message.pk,
        "text": message.text,
        "isEdited": message.is_edited,
        "editedAt": message.edited_at.isoformat() if message.edited_at else None,
        "userId": user_id,
    }


def build_delete_payload(message: Message, user_id: int) -> dict[str, Any]:
    return {
        "messageId": message.pk,
        "text": message.text,
        "isDeleted": message.is_deleted,
        "deletedAt": message.deleted_at.isoformat() if message.deleted_at else None,
        "userId": user_id,
    }


def build_read_payload(messages: Iterable[Message], reader_id: int) -> dict[str, Any]:
    return {
        "messageIds": [m.pk for m in messages],
        "readerId": reader_id,
    }


def build_presence_payload(session: Session) -> dict[str, Any]:
    return {"userId": session.user_id, "connectionId": session.connection_id}
