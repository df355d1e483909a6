"""Publish message mutations made outside a socket handler (REST API).

Same events and payloads as the socket path; each currently online
participant gets one emit, offline participants get nothing.
"""

from __future__ import annotations

from typing import TYPE_CHECKING
from typing import Any

from chat_relay.realtime import protocol
from chat_relay.realtime.payloads import build_delete_payload
from chat_relay.realtime.payloads import build_edit_payload
from chat_relay.realtime.payloads import build_reaction_payload
from chat_relay.realtime.socketio import emit_event_to_user

if TYPE_CHECKING:  # import for type checking only
    from collections.abc import Iterable

    from chat_relay.chat.models import Message
    from chat_relay.chat.services import ReactionResult


def _publish_to_participants(
    user_ids: Iterable[int], event: str, payload: dict[str, Any]
) -> None:
    for user_id in dict.fromkeys(user_ids):
        emit_event_to_user(user_id, event, payload)


def publish_reaction_updated(result: ReactionResult, user_id: int, emoji: str) -> None:
    payload = build_reaction_payload(result, user_id, emoji)
    _publish_to_participants(
        result.message.participant_ids, protocol.REACTION_UPDATED, payload
    )


def publish_message_edited(message: Message, user_id: int) -> None:
    payload = build_edit_payload(message, user_id)
    _publish_to_participants(message.participant_ids, protocol.EDIT_APPLIED, payload)


def publish_message_deleted(message: Message, user_id: int) -> None:
    payload = build_delete_payload(message, user_id)
    _publish_to_participants(message.participant_ids, protocol.DELETE_APPLIED, payload)
