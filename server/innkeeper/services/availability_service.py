"""Availability decisions for a room and a stay."""

import logging
from uuid import UUID

from ..domain.intervals import DateInterval, IntervalStore
from ..domain.models import Room
from ..domain.results import AvailabilityResult, RejectionReason, Result
from ..repositories.base import RoomRepository

logger = logging.getLogger(__name__)


class AvailabilityChecker:
    """
    Decides whether a room can take a stay.

    Read-only: nothing here mutates the store or persistence, so it is safe
    to call speculatively. Checks run in a fixed order and the first failure
    wins: room exists, room not blocked, date range valid, guest count fits,
    no overlapping claim.
    """

    def __init__(self, store: IntervalStore):
        self.store = store

    async def is_available(
        self,
        rooms: RoomRepository,
        room_id: UUID,
        interval: DateInterval,
        guest_count: int,
        exclude: UUID | None = None,
    ) -> AvailabilityResult:
        """
        Check a room by id.

        Args:
            rooms: Repository to load the room from
            room_id: Room to check
            interval: Requested stay
            guest_count: Number of guests
            exclude: Booking whose own claim is ignored

        Returns:
            ``ok`` or a rejection carrying the first failing reason
        """
        room = await rooms.get(room_id)
        if room is None:
            return Result.reject(
                RejectionReason.ROOM_NOT_FOUND,
                f"Room {room_id} does not exist",
                room_id=room_id,
            )
        return self.check_room(room, interval, guest_count, exclude)

    def check_room(
        self,
        room: Room,
        interval: DateInterval,
        guest_count: int,
        exclude: UUID | None = None,
    ) -> AvailabilityResult:
        """Check an already loaded room."""
        if room.is_blocked:
            return Result.reject(
                RejectionReason.ROOM_BLOCKED,
                f"Room {room.number} is {room.override_status.value}",
                room_id=room.id,
                override_status=room.override_status.value,
            )

        if not interval.is_valid:
            return Result.reject(
                RejectionReason.DATE_RANGE_INVALID,
                f"Check-out must be after check-in, got {interval}",
            )

        if guest_count < 1:
            return Result.reject(
                RejectionReason.GUEST_COUNT_INVALID,
                "At least one guest is required",
                guests=guest_count,
            )

        if guest_count > room.capacity:
            return Result.reject(
                RejectionReason.CAPACITY_EXCEEDED,
                f"Room {room.number} sleeps {room.capacity}, requested {guest_count}",
                capacity=room.capacity,
                guests=guest_count,
            )

        return self.check_conflicts(room, interval, exclude)

    def check_conflicts(
        self,
        room: Room,
        interval: DateInterval,
        exclude: UUID | None = None,
    ) -> AvailabilityResult:
        """
        Check only for overlapping claims.

        Used when a booking that already holds the room grows; overrides and
        capacity were settled when the room was granted.
        """
        conflicts = self.store.conflicts(room.id, interval, exclude=exclude)
        if conflicts:
            logger.info(
                "Interval conflict",
                extra={
                    "room_id": str(room.id),
                    "interval": str(interval),
                    "conflicting_bookings": [str(booking_id) for booking_id in conflicts]
                }
            )
            return Result.reject(
                RejectionReason.INTERVAL_CONFLICT,
                f"Room {room.number} is already claimed during {interval}",
                room_id=room.id,
                conflicting_bookings=conflicts,
            )

        return Result.success()
