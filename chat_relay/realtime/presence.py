"""Presence registry: which user holds which Socket.IO connection.

All state lives on one ``PresenceRegistry`` instance owned by the relay hub.
Methods are synchronous and contain no suspension point, so under a single
event loop each call is atomic with respect to other socket events.

One connection per user: a user joining again from a new connection
replaces the previous mapping (last writer wins).

The registry is per process. Events addressed to a user go to the Socket.IO
room ``room_for_user(user_id)``, which the Redis client manager fans out to
whichever worker holds the connection.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from dataclasses import field
from datetime import datetime
from typing import Any

from django.utils import timezone

logger = logging.getLogger(__name__)


def room_for_user(user_id: int) -> str:
    return f"user:{user_id}"


@dataclass(frozen=True)
class Session:
    connection_id: str
    user_id: int
    display_name: str
    profile: dict[str, Any] = field(default_factory=dict)
    joined_at: datetime = field(default_factory=timezone.now)


@dataclass(frozen=True)
class Registration:
    session: Session
    # Connection that held this user before, if any
    replaced_connection_id: str | None = None


class PresenceRegistry:
    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}
        self._connection_by_user: dict[int, str] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, connection_id: object) -> bool:
        return connection_id in self._sessions

    def register(
        self,
        connection_id: str,
        user_id: int,
        *,
        display_name: str = "",
        profile: dict[str, Any] | None = None,
    ) -> Registration:
        """Bind ``connection_id`` to ``user_id``.

        Idempotent for the same pair. A previous connection of the same user
        is forgotten silently, and so is a previous user of the same
        connection.
        """

        previous = self._sessions.get(connection_id)
        if previous is not None and previous.user_id != user_id:
            self._connection_by_user.pop(previous.user_id, None)

        replaced = self._connection_by_user.get(user_id)
        if replaced is not None and replaced != connection_id:
            self._sessions.pop(replaced, None)
            logger.info(
                "User %s moved from connection %s to %s",
                user_id,
                replaced,
                connection_id,
            )
        else:
            replaced = None

        session = Session(
            connection_id=connection_id,
            user_id=user_id,
            display_name=display_name,
            profile=dict(profile or {}),
        )
        self._sessions[connection_id] = session
        self._connection_by_user[user_id] = connection_id
        return Registration(session=session, replaced_connection_id=replaced)

    def lookup(self, user_id: int | None) -> str | None:
        """Connection id of an online user; ``None`` means offline."""
        if user_id is None:
            return None
        return self._connection_by_user.get(user_id)

    def session_for(self, connection_id: str) -> Session | None:
        return self._sessions.get(connection_id)

    def unregister(self, connection_id: str) -> Session | None:
        """Forget a connection. Returns the session only if it was registered."""

        session = self._sessions.pop(connection_id, None)
        if session is None:
            return None
        if self._connection_by_user.get(session.user_id) == connection_id:
            self._connection_by_user.pop(session.user_id, None)
        return session

    def online_user_ids(self) -> list[int]:
        return list(self._connection_by_user)
