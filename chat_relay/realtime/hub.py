"""Relay hub: the single owner of realtime state.

``RelayHub`` holds the presence registry and the call room table and turns
validated client events into store calls and emits. It talks to clients
only through an emitter with the ``AsyncServer`` emit and room methods, so
tests can drive it without a live Socket.IO server.

Events for a user are addressed to the user's room rather than to a
connection id, so they reach the connection on any worker. Delivery is at
most once. Emits are fire-and-forget; a participant who is offline when a
mutation lands sees the new state on the next history fetch.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING
from typing import Any
from typing import Protocol

from channels.db import database_sync_to_async

from chat_relay.chat import services
from chat_relay.chat.exceptions import PermissionDenied
from chat_relay.chat.exceptions import RelayError
from chat_relay.chat.exceptions import ValidationError
from chat_relay.chat.models import Message
from chat_relay.realtime import protocol
from chat_relay.realtime.payloads import build_delete_payload
from chat_relay.realtime.payloads import build_edit_payload
from chat_relay.realtime.payloads import build_history_payload
from chat_relay.realtime.payloads import build_message_payload
from chat_relay.realtime.payloads import build_presence_payload
from chat_relay.realtime.payloads import build_reaction_payload
from chat_relay.realtime.payloads import build_read_payload
from chat_relay.realtime.presence import PresenceRegistry
from chat_relay.realtime.presence import room_for_user
from chat_relay.realtime.rooms import Role
from chat_relay.realtime.rooms import RoomCoordinator
from chat_relay.realtime.signaling import SignalingRelay

if TYPE_CHECKING:  # import for type checking only
    from collections.abc import Awaitable
    from collections.abc import Callable
    from collections.abc import Iterable

    from chat_relay.realtime.rooms import RoomMember

logger = logging.getLogger(__name__)


class Emitter(Protocol):
    async def emit(self, event: str, data: Any = None, **kwargs: Any) -> None: ...

    async def enter_room(self, sid: str, room: str) -> None: ...

    async def leave_room(self, sid: str, room: str) -> None: ...


FAILURE_MESSAGES = {
    protocol.JOIN: "Failed to join",
    protocol.MESSAGE_SEND: "Failed to send message",
    protocol.HISTORY_REQUEST: "Failed to load chat history",
    protocol.REACTION_TOGGLE: "Failed to add reaction",
    protocol.EDIT_REQUEST: "Failed to edit message",
    protocol.DELETE_REQUEST: "Failed to delete message",
    protocol.READ_MARK: "Failed to mark messages as read",
    protocol.SIGNAL_OFFER: "Failed to send call offer",
    protocol.SIGNAL_ANSWER: "Failed to send call answer",
    protocol.SIGNAL_CANDIDATE: "Failed to send connectivity candidate",
    protocol.SIGNAL_END: "Failed to end call",
    protocol.ROOM_JOIN: "Failed to join call room",
    protocol.ROOM_LEAVE: "Failed to leave call room",
}


@database_sync_to_async
def _store_message(draft: services.MessageDraft) -> dict[str, Any]:
    return build_message_payload(services.append_message(draft))


@database_sync_to_async
def _load_history(user_id: int, other_user_id: int, limit: int | None):
    conversation_id, messages = services.get_history_between(
        user_id, other_user_id, limit
    )
    return build_history_payload(conversation_id, messages)


@database_sync_to_async
def _toggle_reaction(message_id: int, user_id: int, emoji: str):
    result = services.toggle_reaction(message_id, user_id, emoji)
    return (
        result.message.participant_ids,
        build_reaction_payload(result, user_id, emoji),
    )


@database_sync_to_async
def _edit_message(message_id: int, user_id: int, new_text: str):
    message = services.edit_message(message_id, user_id, new_text)
    return message.participant_ids, build_edit_payload(message, user_id)


@database_sync_to_async
def _tombstone_message(message_id: int, user_id: int):
    message = services.tombstone_message(message_id, user_id)
    return message.participant_ids, build_delete_payload(message, user_id)


@database_sync_to_async
def _mark_read(message_ids: list[int], reader_id: int):
    changed = services.mark_read(message_ids, reader_id)
    return {m.sender_id for m in changed}, build_read_payload(changed, reader_id)


def _peer_payload(member: RoomMember) -> dict[str, str]:
    return {
        "connectionId": member.connection_id,
        "displayName": member.display_name,
        "locale": member.locale,
    }


class RelayHub:
    def __init__(self, emitter: Emitter) -> None:
        self.emitter = emitter
        self.presence = PresenceRegistry()
        self.rooms = RoomCoordinator()
        self.signaling = SignalingRelay(self.presence, emitter)
        # connection id -> user id proven by an access token
        self._authenticated: dict[str, int] = {}
        self._handlers: dict[str, Callable[[str, dict[str, Any]], Awaitable[None]]] = {
            protocol.JOIN: self.on_join,
            protocol.MESSAGE_SEND: self.on_message_send,
            protocol.HISTORY_REQUEST: self.on_history_request,
            protocol.REACTION_TOGGLE: self.on_reaction_toggle,
            protocol.EDIT_REQUEST: self.on_edit_request,
            protocol.DELETE_REQUEST: self.on_delete_request,
            protocol.READ_MARK: self.on_read_mark,
            protocol.SIGNAL_OFFER: self.on_signal_offer,
            protocol.SIGNAL_ANSWER: self.on_signal_answer,
            protocol.SIGNAL_CANDIDATE: self.on_signal_candidate,
            protocol.SIGNAL_END: self.on_signal_end,
            protocol.ROOM_JOIN: self.on_room_join,
            protocol.ROOM_LEAVE: self.on_room_leave,
        }

    # Connection lifecycle
    # ------------------------------------------------------------------

    async def connect(self, sid: str, user_id: int | None = None) -> None:
        if user_id is not None:
            self._authenticated[sid] = user_id
        await self.emitter.emit(protocol.ME, {"connectionId": sid}, to=sid)

    async def disconnect(self, sid: str) -> None:
        self._authenticated.pop(sid, None)
        for departure in self.rooms.leave_all(sid):
            await self._notify_departure(departure.meeting_id, sid, departure.remaining)

        session = self.presence.unregister(sid)
        if session is None:
            return
        logger.info("User %s went offline (connection %s)", session.user_id, sid)
        await self.emitter.emit(
            protocol.PRESENCE_OFFLINE, build_presence_payload(session), skip_sid=sid
        )

    async def dispatch(self, event: str, sid: str, data: Any) -> None:
        """Run one client event; failures go back to the sender only."""

        handler = self._handlers.get(event)
        try:
            if handler is None:
                msg = f"Unknown event: {event}"
                raise ValidationError(msg)
            await handler(sid, protocol.parse(event, data))
        except RelayError as exc:
            logger.info("Rejected %s from %s: %s", event, sid, exc.message)
            await self._emit_error(sid, exc.message)
        except Exception:
            logger.exception("Error handling %s from %s", event, sid)
            await self._emit_error(sid, FAILURE_MESSAGES.get(event, "Request failed"))

    # Presence
    # ------------------------------------------------------------------

    async def on_join(self, sid: str, data: dict[str, Any]) -> None:
        user_id = data["user_id"]
        proven = self._authenticated.get(sid)
        if proven is not None and proven != user_id:
            msg = "Cannot join as another user"
            raise PermissionDenied(msg)

        previous = self.presence.session_for(sid)
        registration = self.presence.register(
            sid,
            user_id,
            display_name=data.get("display_name", ""),
            profile={
                "profilePic": data.get("profile_pic", ""),
                "nativeLanguage": data.get("native_language", ""),
            },
        )
        if previous is not None and previous.user_id == user_id:
            return
        if previous is not None:
            # The connection now speaks for someone else
            await self.emitter.leave_room(sid, room_for_user(previous.user_id))
            logger.info("User %s went offline (connection %s)", previous.user_id, sid)
            await self.emitter.emit(
                protocol.PRESENCE_OFFLINE,
                build_presence_payload(previous),
                skip_sid=sid,
            )
        if registration.replaced_connection_id is not None:
            await self.emitter.leave_room(
                registration.replaced_connection_id, room_for_user(user_id)
            )
        await self.emitter.enter_room(sid, room_for_user(user_id))
        logger.info("User %s joined on connection %s", user_id, sid)
        await self.emitter.emit(
            protocol.PRESENCE_ONLINE,
            build_presence_payload(registration.session),
            skip_sid=sid,
        )

    # Messages
    # ------------------------------------------------------------------

    async def on_message_send(self, sid: str, data: dict[str, Any]) -> None:
        sender_id = self._actor(sid, data.get("sender_id"))
        receiver_id = data["target_user_id"]
        draft = services.MessageDraft(
            sender_id=sender_id,
            receiver_id=receiver_id,
            text=data.get("text", ""),
            message_type=data.get("message_type", Message.Type.TEXT),
            file_url=data.get("file_url"),
            file_name=data.get("file_name"),
            file_size=data.get("file_size"),
            reply_to_id=data.get("reply_to"),
        )
        payload = await _store_message(draft)

        # An offline receiver has an empty room and reads it from history
        await self.emitter.emit(
            protocol.MESSAGE_RECEIVE, payload, to=room_for_user(receiver_id)
        )
        await self.emitter.emit(
            protocol.MESSAGE_SENT, {**payload, "targetUserId": receiver_id}, to=sid
        )

    async def on_history_request(self, sid: str, data: dict[str, Any]) -> None:
        user_id = self._actor(sid, data.get("user_id"))
        payload = await _load_history(user_id, data["target_user_id"], data.get("limit"))
        await self.emitter.emit(protocol.HISTORY_RESULT, payload, to=sid)

    async def on_reaction_toggle(self, sid: str, data: dict[str, Any]) -> None:
        user_id = self._actor(sid, data.get("user_id"))
        participants, payload = await _toggle_reaction(
            data["message_id"], user_id, data["emoji"]
        )
        await self._notify_participants(protocol.REACTION_UPDATED, payload, participants)

    async def on_edit_request(self, sid: str, data: dict[str, Any]) -> None:
        user_id = self._actor(sid, data.get("user_id"))
        participants, payload = await _edit_message(
            data["message_id"], user_id, data["new_text"]
        )
        await self._notify_participants(protocol.EDIT_APPLIED, payload, participants)

    async def on_delete_request(self, sid: str, data: dict[str, Any]) -> None:
        user_id = self._actor(sid, data.get("user_id"))
        participants, payload = await _tombstone_message(data["message_id"], user_id)
        await self._notify_participants(protocol.DELETE_APPLIED, payload, participants)

    async def on_read_mark(self, sid: str, data: dict[str, Any]) -> None:
        reader_id = self._actor(sid, data.get("user_id"))
        senders, payload = await _mark_read(data["message_ids"], reader_id)
        await self._notify_participants(protocol.READ_UPDATED, payload, senders)

    # Signaling
    # ------------------------------------------------------------------

    async def on_signal_offer(self, sid: str, data: dict[str, Any]) -> None:
        await self.signaling.relay_offer(
            sid, data["target_user_id"], data["payload"], data.get("call_id")
        )

    async def on_signal_answer(self, sid: str, data: dict[str, Any]) -> None:
        await self.signaling.relay_answer(
            sid, data["target_connection_id"], data.get("payload"), data.get("call_id")
        )

    async def on_signal_candidate(self, sid: str, data: dict[str, Any]) -> None:
        await self.signaling.relay_ice_candidate(
            sid, data["target_connection_id"], data.get("payload"), data.get("call_id")
        )

    async def on_signal_end(self, sid: str, data: dict[str, Any]) -> None:
        await self.signaling.end_call(
            sid, data["target_connection_id"], data.get("call_id")
        )

    # Call rooms
    # ------------------------------------------------------------------

    async def on_room_join(self, sid: str, data: dict[str, Any]) -> None:
        display_name = data.get("display_name") or self._display_name(sid)
        assignment = self.rooms.join(
            data["meeting_id"], sid, display_name, data.get("locale", "")
        )
        role_payload: dict[str, Any] = {
            "meetingId": assignment.meeting_id,
            "role": assignment.role.value,
        }
        if assignment.peer is not None:
            role_payload["peer"] = _peer_payload(assignment.peer)
        await self.emitter.emit(protocol.ROOM_ROLE, role_payload, to=sid)

        if assignment.role is Role.CALLER and not assignment.rejoined:
            # The waiter learns who is about to dial in
            await self.emitter.emit(
                protocol.PEER_INCOMING,
                {"meetingId": assignment.meeting_id, **_peer_payload(assignment.member)},
                to=assignment.peer.connection_id,
            )

    async def on_room_leave(self, sid: str, data: dict[str, Any]) -> None:
        departure = self.rooms.leave(data["meeting_id"], sid)
        if departure is not None:
            await self._notify_departure(departure.meeting_id, sid, departure.remaining)

    # Helpers
    # ------------------------------------------------------------------

    def _actor(self, sid: str, claimed: int | None) -> int:
        """Resolve the acting user of a request made on ``sid``.

        A joined (or token-authenticated) connection may only act as its own
        user; an anonymous one must name the user explicitly.
        """

        known = self._authenticated.get(sid)
        if known is None:
            session = self.presence.session_for(sid)
            known = session.user_id if session is not None else None
        if claimed is None:
            if known is None:
                msg = "userId is required"
                raise ValidationError(msg)
            return known
        if known is not None and claimed != known:
            msg = "Payload user does not match this connection"
            raise PermissionDenied(msg)
        return claimed

    def _display_name(self, sid: str) -> str:
        session = self.presence.session_for(sid)
        return session.display_name if session is not None else ""

    async def _notify_participants(
        self, event: str, payload: dict[str, Any], user_ids: Iterable[int]
    ) -> None:
        for user_id in sorted(set(user_ids)):
            await self.emitter.emit(event, payload, to=room_for_user(user_id))

    async def _notify_departure(
        self, meeting_id: str, sid: str, remaining: Iterable[RoomMember]
    ) -> None:
        for member in remaining:
            await self.emitter.emit(
                protocol.PEER_LEFT,
                {"meetingId": meeting_id, "connectionId": sid},
                to=member.connection_id,
            )

    async def _emit_error(self, sid: str, message: str) -> None:
        await self.emitter.emit(protocol.ERROR, {"message": message}, to=sid)
