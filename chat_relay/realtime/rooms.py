"""Call room negotiation.

Two parties open the same meeting id. Arrival order decides who dials: the
first entrant waits, the second one sends the offer. With exactly one
designated caller both sides never send offers at the same time, so no
tie-break protocol is needed.

Rooms are in memory only. A restart loses them and both sides rejoin.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from chat_relay.chat.exceptions import RelayError
from chat_relay.chat.exceptions import ValidationError

logger = logging.getLogger(__name__)

# 1:1 calls only
ROOM_CAPACITY = 2


class Role(str, Enum):
    WAITER = "waiter"
    CALLER = "caller"


class RoomFull(RelayError):
    default_message = "Room is full"


@dataclass(frozen=True)
class RoomMember:
    connection_id: str
    display_name: str = ""
    locale: str = ""


@dataclass(frozen=True)
class RoomAssignment:
    meeting_id: str
    role: Role
    member: RoomMember
    # The other participant; for a caller this is whom to dial
    peer: RoomMember | None = None
    rejoined: bool = False


@dataclass(frozen=True)
class Departure:
    meeting_id: str
    member: RoomMember
    remaining: tuple[RoomMember, ...]


class RoomCoordinator:
    def __init__(self) -> None:
        # meeting id -> members in arrival order
        self._rooms: dict[str, list[RoomMember]] = {}

    def members(self, meeting_id: str) -> tuple[RoomMember, ...]:
        return tuple(self._rooms.get(meeting_id, ()))

    def rooms_of(self, connection_id: str) -> list[str]:
        return [
            meeting_id
            for meeting_id, members in self._rooms.items()
            if any(m.connection_id == connection_id for m in members)
        ]

    def join(
        self,
        meeting_id: str,
        connection_id: str,
        display_name: str = "",
        locale: str = "",
    ) -> RoomAssignment:
        if not meeting_id:
            msg = "meetingId is required"
            raise ValidationError(msg)

        members = self._rooms.setdefault(meeting_id, [])
        for index, existing in enumerate(members):
            if existing.connection_id == connection_id:
                return self._assignment(meeting_id, members, index, rejoined=True)

        if len(members) >= ROOM_CAPACITY:
            logger.info(
                "Rejected connection %s from full room %s", connection_id, meeting_id
            )
            raise RoomFull

        members.append(
            RoomMember(
                connection_id=connection_id,
                display_name=display_name,
                locale=locale,
            )
        )
        assignment = self._assignment(meeting_id, members, len(members) - 1)
        logger.info(
            "Connection %s joined room %s as %s",
            connection_id,
            meeting_id,
            assignment.role.value,
        )
        return assignment

    def leave(self, meeting_id: str, connection_id: str) -> Departure | None:
        members = self._rooms.get(meeting_id)
        if not members:
            return None
        for index, existing in enumerate(members):
            if existing.connection_id == connection_id:
                del members[index]
                break
        else:
            return None
        if not members:
            del self._rooms[meeting_id]
        return Departure(
            meeting_id=meeting_id, member=existing, remaining=tuple(members)
        )

    def leave_all(self, connection_id: str) -> list[Departure]:
        departures = []
        for meeting_id in self.rooms_of(connection_id):
            departure = self.leave(meeting_id, connection_id)
            if departure is not None:
                departures.append(departure)
        return departures

    def _assignment(
        self,
        meeting_id: str,
        members: list[RoomMember],
        index: int,
        *,
        rejoined: bool = False,
    ) -> RoomAssignment:
        member = members[index]
        others = [m for m in members if m.connection_id != member.connection_id]
        peer = others[0] if others else None
        role = Role.WAITER if index == 0 else Role.CALLER
        return RoomAssignment(
            meeting_id=meeting_id,
            role=role,
            member=member,
            peer=peer,
            rejoined=rejoined,
        )
