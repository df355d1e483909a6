"""Call signaling relay.

Stateless pass-through of WebRTC negotiation messages between two
connections. Only the offer is addressed by user id; the callee answers to
the caller's connection id carried in the offer, and candidates and the end
notice use connection ids as well. ``call_id`` is only echoed back so both
ends can correlate messages of one call.

Client-side handshake (not enforced here):
INITIATING -> OFFER_SENT -> (ANSWER_RECEIVED -> CONNECTED) | TIMEOUT/ERROR -> ENDED
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING
from typing import Any

from chat_relay.realtime import protocol
from chat_relay.realtime.presence import room_for_user

if TYPE_CHECKING:  # import for type checking only
    from chat_relay.realtime.hub import Emitter
    from chat_relay.realtime.presence import PresenceRegistry

logger = logging.getLogger(__name__)


class SignalingRelay:
    def __init__(self, presence: PresenceRegistry, emitter: Emitter) -> None:
        self.presence = presence
        self.emitter = emitter

    async def relay_offer(
        self,
        from_connection_id: str,
        target_user_id: int,
        offer: Any,
        call_id: str | None,
    ) -> None:
        """Forward an offer to the callee's connection.

        An offline callee has an empty room, so the offer is dropped and the
        caller's own ring timeout takes over.
        """

        caller = self.presence.session_for(from_connection_id)
        payload = {
            "offer": offer,
            "callId": call_id,
            "fromUserId": caller.user_id if caller else None,
            "fromConnectionId": from_connection_id,
        }
        await self.emitter.emit(
            protocol.SIGNAL_OFFER, payload, to=room_for_user(target_user_id)
        )
        logger.debug(
            "Relayed offer call=%s %s -> user %s",
            call_id,
            from_connection_id,
            target_user_id,
        )

    async def relay_answer(
        self,
        from_connection_id: str,
        target_connection_id: str,
        answer: Any,
        call_id: str | None,
    ) -> None:
        payload = {
            "answer": answer,
            "callId": call_id,
            "fromConnectionId": from_connection_id,
        }
        await self.emitter.emit(protocol.SIGNAL_ANSWER, payload, to=target_connection_id)

    async def relay_ice_candidate(
        self,
        from_connection_id: str,
        target_connection_id: str,
        candidate: Any,
        call_id: str | None,
    ) -> None:
        # Candidates are idempotent on the receiving side; duplicates are fine
        payload = {
            "candidate": candidate,
            "callId": call_id,
            "fromConnectionId": from_connection_id,
        }
        await self.emitter.emit(
            protocol.SIGNAL_CANDIDATE, payload, to=target_connection_id
        )

    async def end_call(
        self,
        from_connection_id: str,
        target_connection_id: str,
        call_id: str | None,
    ) -> None:
        payload = {"callId": call_id, "endedBy": from_connection_id}
        await self.emitter.emit(protocol.SIGNAL_END, payload, to=target_connection_id)
        logger.debug("Call %s ended by %s", call_id, from_connection_id)
