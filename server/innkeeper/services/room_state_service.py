"""Room status tracking and operator overrides."""

import logging
from dataclasses import dataclass
from datetime import date
from typing import Any
from uuid import UUID

from ..domain.audit import AuditAction, AuditEvent, EntityType
from ..domain.models import (
    CLAIMING_STATUSES,
    OVERRIDE_STATUSES,
    BookingStatus,
    Room,
    RoomStatus,
    utcnow,
)
from ..domain.results import RejectionReason, Result
from ..domain.status import derive_status
from ..repositories.base import UnitOfWork

logger = logging.getLogger(__name__)


@dataclass
class RoomChange:
    """A persisted change to a room, pending its audit event."""

    room: Room
    before: dict[str, Any]

    def to_event(self, actor: str) -> AuditEvent:
        return AuditEvent(
            actor=actor,
            action=AuditAction.UPDATE,
            entity_type=EntityType.ROOM,
            entity_id=self.room.id,
            before=self.before,
            after=self.room.snapshot(),
        )


class RoomStateTracker:
    """
    Keeps each room's stored status equal to :func:`derive_status`.

    The stored status is a cache for listings; conflict checks never read it.
    All methods work inside the caller's unit of work and leave committing
    to the caller.
    """

    def __init__(self, lookahead_days: int | None = None):
        self.lookahead_days = lookahead_days

    async def refresh(
        self,
        uow: UnitOfWork,
        room_id: UUID,
        as_of: date,
        always: bool = False,
    ) -> RoomChange | None:
        """
        Re-derive one room's status.

        Args:
            uow: Open unit of work
            room_id: Room to refresh
            as_of: Business date
            always: Report a change even when the status did not move

        Returns:
            The change if the status moved (or ``always``), None otherwise
        """
        room = await uow.rooms.get(room_id)
        if room is None:
            return None
        change = await self._apply(uow, room, as_of)
        if change is None and always:
            change = RoomChange(room, room.snapshot())
        return change

    async def block(
        self,
        uow: UnitOfWork,
        room_id: UUID,
        reason: str | None,
        kind: RoomStatus = RoomStatus.BLOCKED,
    ) -> Result[RoomChange]:
        """
        Put an operator override on a room.

        Blocking again replaces the kind and reason of the current override.
        """
        if kind not in OVERRIDE_STATUSES:
            raise ValueError(f"{kind.value} is not an override status")

        room = await uow.rooms.get(room_id)
        if room is None:
            return Result.reject(RejectionReason.ROOM_NOT_FOUND, f"Room {room_id} does not exist", room_id=room_id)

        occupants = await uow.bookings.list_for_room(room_id, frozenset({BookingStatus.CHECKED_IN}))
        if occupants:
            logger.warning(
                "Refusing to block occupied room",
                extra={"room_id": str(room_id), "booking_ids": [str(b.id) for b in occupants]}
            )
            return Result.reject(
                RejectionReason.ROOM_HAS_ACTIVE_OCCUPANT,
                f"Room {room.number} has a checked-in guest",
                room_id=room_id,
                booking_ids=[booking.id for booking in occupants],
            )

        before = room.snapshot()
        room.override_status = kind
        room.override_reason = reason
        room.override_at = utcnow()
        room.status = kind
        room.updated_at = utcnow()
        await uow.rooms.update(room)
        return Result.success(RoomChange(room, before))

    async def unblock(self, uow: UnitOfWork, room_id: UUID, as_of: date) -> Result[RoomChange]:
        """Clear a room's override and re-derive its status from bookings."""
        room = await uow.rooms.get(room_id)
        if room is None:
            return Result.reject(RejectionReason.ROOM_NOT_FOUND, f"Room {room_id} does not exist", room_id=room_id)
        if room.override_status is None:
            return Result.reject(RejectionReason.ROOM_NOT_BLOCKED, f"Room {room.number} is not blocked", room_id=room_id)

        before = room.snapshot()
        room.override_status = None
        room.override_reason = None
        room.override_at = None
        bookings = await uow.bookings.list_for_room(room.id, CLAIMING_STATUSES)
        room.status = derive_status(room, bookings, as_of, self.lookahead_days)
        room.updated_at = utcnow()
        await uow.rooms.update(room)
        return Result.success(RoomChange(room, before))

    async def _apply(self, uow: UnitOfWork, room: Room, as_of: date) -> RoomChange | None:
        bookings = await uow.bookings.list_for_room(room.id, CLAIMING_STATUSES)
        status = derive_status(room, bookings, as_of, self.lookahead_days)
        if status is room.status:
            return None

        before = room.snapshot()
        room.status = status
        room.updated_at = utcnow()
        await uow.rooms.update(room)
        return RoomChange(room, before)
