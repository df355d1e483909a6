"""Message store and mutation service.

Every function here is synchronous Django ORM code. The realtime layer calls
it through ``database_sync_to_async``; the REST API calls it directly.

Mutations lock the message row (``select_for_update``) inside a transaction,
so concurrent reactions, edits and deletes of the same message are applied
one after the other instead of overwriting each other.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import transaction
from django.utils import timezone

from chat_relay.chat.conversations import derive_conversation_id
from chat_relay.chat.exceptions import NotFoundError
from chat_relay.chat.exceptions import PermissionDenied
from chat_relay.chat.exceptions import ValidationError
from chat_relay.chat.models import Message
from chat_relay.chat.models import MessageReaction

if TYPE_CHECKING:  # import for type checking only
    from collections.abc import Iterable

logger = logging.getLogger(__name__)

User = get_user_model()

REACTION_ADDED = "added"
REACTION_REMOVED = "removed"


@dataclass(frozen=True)
class MessageDraft:
    sender_id: int | None
    receiver_id: int | None
    text: str = ""
    message_type: str = Message.Type.TEXT
    file_url: str | None = None
    file_name: str | None = None
    file_size: int | None = None
    reply_to_id: int | None = None

    @property
    def has_file(self) -> bool:
        return bool(self.file_url)


@dataclass(frozen=True)
class ReactionResult:
    message: Message
    reactions: list[MessageReaction]
    action: str


def deleted_placeholder() -> str:
    return settings.CHAT_DELETED_PLACEHOLDER


def _ensure_users_exist(*user_ids: int) -> None:
    wanted = set(user_ids)
    found = set(User.objects.filter(pk__in=wanted).values_list("pk", flat=True))
    missing = wanted - found
    if missing:
        msg = "Unknown user"
        raise NotFoundError(msg)


def _locked_message(message_id: int) -> Message:
    """Fetch a message row for update. Call inside ``transaction.atomic``."""
    try:
        return Message.objects.select_for_update().get(pk=message_id)
    except Message.DoesNotExist:
        msg = "Message not found"
        raise NotFoundError(msg) from None


def _check_owner(message: Message, user_id: int, verb: str) -> None:
    if message.sender_id != user_id:
        msg = f"You can only {verb} your own messages"
        raise PermissionDenied(msg)


def append_message(draft: MessageDraft) -> Message:
    """Persist a new message and return it with its id and timestamp."""

    if draft.sender_id is None or draft.receiver_id is None:
        msg = "senderId and targetUserId are required"
        raise ValidationError(msg)
    text = (draft.text or "").strip()
    if not text and not draft.has_file:
        msg = "A message needs text or a file"
        raise ValidationError(msg)
    if draft.message_type not in Message.Type.values:
        msg = f"Unsupported message type: {draft.message_type}"
        raise ValidationError(msg)

    _ensure_users_exist(draft.sender_id, draft.receiver_id)
    conversation_id = derive_conversation_id(draft.sender_id, draft.receiver_id)

    if draft.reply_to_id is not None:
        quoted = Message.objects.filter(
            pk=draft.reply_to_id, conversation_id=conversation_id
        ).exists()
        if not quoted:
            msg = "Replied-to message not found"
            raise NotFoundError(msg)

    message = Message.objects.create(
        sender_id=draft.sender_id,
        receiver_id=draft.receiver_id,
        conversation_id=conversation_id,
        text=text,
        message_type=draft.message_type,
        file_url=draft.file_url or None,
        file_name=draft.file_name or None,
        file_size=draft.file_size,
        reply_to_id=draft.reply_to_id,
    )
    logger.debug(
        "Message stored id=%s conversation=%s type=%s",
        message.pk,
        conversation_id,
        message.message_type,
    )
    # Sender display metadata is read from the user row, never copied
    return Message.objects.select_related("sender").get(pk=message.pk)


def history_limit(limit: int | None) -> int:
    if limit is None:
        return settings.CHAT_HISTORY_DEFAULT_LIMIT
    if limit < 1:
        msg = "limit must be a positive integer"
        raise ValidationError(msg)
    return min(int(limit), settings.CHAT_HISTORY_MAX_LIMIT)


def get_history(conversation_id: str, limit: int | None = None) -> list[Message]:
    """Return the newest ``limit`` messages of a thread, oldest first."""

    newest_first = (
        Message.objects.filter(conversation_id=conversation_id)
        .select_related("sender")
        .prefetch_related("reactions")
        .order_by("-created_at", "-id")[: history_limit(limit)]
    )
    return list(reversed(list(newest_first)))


def get_history_between(
    user_id: int, other_user_id: int, limit: int | None = None
) -> tuple[str, list[Message]]:
    conversation_id = derive_conversation_id(user_id, other_user_id)
    return conversation_id, get_history(conversation_id, limit)


@transaction.atomic
def toggle_reaction(message_id: int, user_id: int, emoji: str) -> ReactionResult:
    """Add the (user, emoji) reaction if absent, remove it if present."""

    if not emoji:
        msg = "emoji is required"
        raise ValidationError(msg)
    message = _locked_message(message_id)
    _ensure_users_exist(user_id)

    removed, _ = MessageReaction.objects.filter(
        message=message, user_id=user_id, emoji=emoji
    ).delete()
    if removed:
        action = REACTION_REMOVED
    else:
        MessageReaction.objects.create(message=message, user_id=user_id, emoji=emoji)
        action = REACTION_ADDED

    reactions = list(message.reactions.order_by("created_at", "id"))
    logger.debug(
        "Reaction %s message=%s user=%s emoji=%s", action, message_id, user_id, emoji
    )
    return ReactionResult(message=message, reactions=reactions, action=action)


@transaction.atomic
def edit_message(message_id: int, user_id: int, new_text: str) -> Message:
    """Replace the text of a message owned by ``user_id``.

    No version history is kept: the previous text is gone.
    """

    message = _locked_message(message_id)
    _check_owner(message, user_id, "edit")
    if message.is_deleted:
        msg = "Deleted messages cannot be edited"
        raise ValidationError(msg)
    text = (new_text or "").strip()
    if not text:
        msg = "newText is required"
        raise ValidationError(msg)

    message.text = text
    message.is_edited = True
    message.edited_at = timezone.now()
    message.save(update_fields=["text", "is_edited", "edited_at", "updated_at"])
    return message


@transaction.atomic
def tombstone_message(message_id: int, user_id: int) -> Message:
    """Mark a message owned by ``user_id`` as deleted.

    The row is kept and its text replaced by the placeholder. There is no
    undelete.
    """

    message = _locked_message(message_id)
    _check_owner(message, user_id, "delete")
    if message.is_deleted:
        return message

    message.text = deleted_placeholder()
    message.is_deleted = True
    message.deleted_at = timezone.now()
    message.save(update_fields=["text", "is_deleted", "deleted_at", "updated_at"])
    return message


@transaction.atomic
def mark_read(message_ids: Iterable[int], reader_id: int) -> list[Message]:
    """Flag unread messages addressed to ``reader_id``; return the ones changed."""

    qs = Message.objects.select_for_update().filter(
        pk__in=list(message_ids), receiver_id=reader_id, is_read=False
    )
    changed = list(qs)
    if changed:
        Message.objects.filter(pk__in=[m.pk for m in changed]).update(
            is_read=True, updated_at=timezone.now()
        )
        for message in changed:
            message.is_read = True
    return changed
