"""Entry points of the reservation allocation engine."""

import logging
from collections import Counter
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from ..core.config import Settings
from ..core.locking import RoomLockManager
from ..core.observability import metrics_collector
from ..domain.audit import AuditAction, AuditEvent, AuditSink, EntityType
from ..domain.intervals import Claim, DateInterval, IntervalStore
from ..domain.models import (
    CLAIMING_STATUSES,
    OVERRIDE_STATUSES,
    TERMINAL_STATUSES,
    Booking,
    BookingStatus,
    ReservationRequest,
    Room,
    RoomStatus,
    RoomType,
    utcnow,
)
from ..domain.results import AvailabilityResult, RejectionReason, Result
from ..repositories.base import BookingFilter, UnitOfWork, UnitOfWorkFactory
from .allocation_service import SYSTEM_ACTOR, Changeset, ReservationAllocator, room_key
from .audit_service import AuditEmitter
from .availability_service import AvailabilityChecker
from .idempotency_service import IdempotencyService
from .lifecycle_service import BookingLifecycleManager
from .room_state_service import RoomStateTracker

logger = logging.getLogger(__name__)


@dataclass
class RoomSpec:
    """Attributes of a room to provision."""

    number: str
    building: str
    floor: int
    capacity: int
    room_type: RoomType
    nightly_rate: Decimal
    description: str | None = None
    amenities: list[str] | None = None


class ReservationEngine:
    """
    Facade over the allocator, lifecycle manager and room state tracker.

    Every method returns a :class:`Result`; business rejections and
    infrastructure failures are never raised to the caller.
    """

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        audit_sink: AuditSink,
        *,
        lock_timeout: float = 5.0,
        lookahead_days: int | None = None,
        allow_checked_in_cancellation: bool = False,
        audit_retry_attempts: int = 1,
        idempotency_ttl_seconds: int = 86400,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.uow_factory = uow_factory
        self.clock = clock
        self.store = IntervalStore()
        self.locks = RoomLockManager(timeout=lock_timeout)
        self.checker = AvailabilityChecker(self.store)
        self.tracker = RoomStateTracker(lookahead_days=lookahead_days)
        self.emitter = AuditEmitter(audit_sink, retry_attempts=audit_retry_attempts)
        self.idempotency = IdempotencyService(ttl_seconds=idempotency_ttl_seconds, clock=clock)
        self.allocator = ReservationAllocator(
            store=self.store,
            locks=self.locks,
            uow_factory=uow_factory,
            checker=self.checker,
            tracker=self.tracker,
            emitter=self.emitter,
            idempotency=self.idempotency,
            clock=clock,
            allow_checked_in_cancellation=allow_checked_in_cancellation,
        )
        self.lifecycle = BookingLifecycleManager(self.allocator)

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        uow_factory: UnitOfWorkFactory,
        audit_sink: AuditSink,
        clock: Callable[[], datetime] = utcnow,
    ) -> "ReservationEngine":
        return cls(
            uow_factory,
            audit_sink,
            lock_timeout=settings.lock_timeout_seconds,
            lookahead_days=settings.booked_lookahead_days,
            allow_checked_in_cancellation=settings.allow_checked_in_cancellation,
            audit_retry_attempts=settings.audit_retry_attempts,
            idempotency_ttl_seconds=settings.idempotency_ttl_seconds,
            clock=clock,
        )

    def today(self) -> date:
        return self.clock().date()

    async def start(self) -> Result[int]:
        """
        Hydrate the interval store from persistence and refresh room statuses.

        Returns:
            Number of claims loaded
        """

        async def load(uow: UnitOfWork) -> Result[int]:
            bookings = await uow.bookings.list_by_status(CLAIMING_STATUSES)
            count = self.store.load((b.room_id, b.id, b.interval) for b in bookings)
            return Result.success(count)

        result = await self.allocator.read("start", load)
        if not result.ok:
            return result

        logger.info("Interval store hydrated", extra={"claims": result.value})
        await self.refresh_room_statuses()
        return result

    # Availability

    async def check_availability(
        self,
        room_id: UUID,
        check_in: date,
        check_out: date,
        guest_count: int,
    ) -> AvailabilityResult:
        """Decide whether a room could take a stay right now."""
        interval = DateInterval(check_in, check_out)

        async def body(uow: UnitOfWork) -> AvailabilityResult:
            return await self.checker.is_available(uow.rooms, room_id, interval, guest_count)

        return await self.allocator.read("check_availability", body)

    async def search_available_rooms(
        self,
        check_in: date,
        check_out: date,
        guest_count: int,
        building: str | None = None,
    ) -> Result[list[Room]]:
        """Rooms free for a stay, ordered by building, floor and number."""
        interval = DateInterval(check_in, check_out)
        if not interval.is_valid:
            return Result.reject(RejectionReason.DATE_RANGE_INVALID, f"Check-out must be after check-in, got {interval}")
        if guest_count < 1:
            return Result.reject(RejectionReason.GUEST_COUNT_INVALID, "At least one guest is required")

        async def body(uow: UnitOfWork) -> Result[list[Room]]:
            rooms = await uow.rooms.search(building=building, min_capacity=guest_count)
            return Result.success([
                room for room in rooms
                if self.checker.check_room(room, interval, guest_count).ok
            ])

        return await self.allocator.read("search_available_rooms", body)

    # Bookings

    async def create_booking(self, request: ReservationRequest, actor: str = SYSTEM_ACTOR) -> Result[Booking]:
        return await self.allocator.allocate(request, actor)

    async def cancel_booking(self, booking_id: UUID, reason: str | None = None, actor: str = SYSTEM_ACTOR) -> Result[Booking]:
        return await self.lifecycle.cancel(booking_id, reason, actor)

    async def check_in(self, booking_id: UUID, actor: str = SYSTEM_ACTOR) -> Result[Booking]:
        return await self.lifecycle.check_in(booking_id, actor)

    async def check_out(self, booking_id: UUID, actor: str = SYSTEM_ACTOR) -> Result[Booking]:
        return await self.lifecycle.check_out(booking_id, actor)

    async def extend_booking(self, booking_id: UUID, new_check_out: date, actor: str = SYSTEM_ACTOR) -> Result[Booking]:
        return await self.lifecycle.extend(booking_id, new_check_out, actor)

    async def transfer_booking(self, booking_id: UUID, new_room_id: UUID, actor: str = SYSTEM_ACTOR) -> Result[Booking]:
        return await self.lifecycle.transfer(booking_id, new_room_id, actor)

    async def confirm_booking(self, booking_id: UUID, actor: str = SYSTEM_ACTOR) -> Result[Booking]:
        return await self.lifecycle.confirm(booking_id, actor)

    async def reject_booking(self, booking_id: UUID, reason: str | None = None, actor: str = SYSTEM_ACTOR) -> Result[Booking]:
        return await self.lifecycle.reject(booking_id, reason, actor)

    async def mark_no_show(self, booking_id: UUID, actor: str = SYSTEM_ACTOR) -> Result[Booking]:
        return await self.lifecycle.mark_no_show(booking_id, actor)

    async def record_payment(self, booking_id: UUID, amount: Decimal, actor: str = SYSTEM_ACTOR) -> Result[Booking]:
        return await self.lifecycle.record_payment(booking_id, amount, actor)

    async def get_booking(self, booking_id: UUID) -> Result[Booking]:
        async def body(uow: UnitOfWork) -> Result[Booking]:
            booking = await uow.bookings.get(booking_id)
            if booking is None:
                return Result.reject(
                    RejectionReason.BOOKING_NOT_FOUND, f"Booking {booking_id} does not exist", booking_id=booking_id
                )
            return Result.success(booking)

        return await self.allocator.read("get_booking", body)

    async def list_bookings(self, criteria: BookingFilter | None = None) -> Result[list[Booking]]:
        criteria = criteria or BookingFilter()

        async def body(uow: UnitOfWork) -> Result[list[Booking]]:
            return Result.success(await uow.bookings.search(criteria))

        return await self.allocator.read("list_bookings", body)

    async def sweep_no_shows(self) -> int:
        """
        Mark confirmed bookings whose arrival day has passed as no-shows.

        Returns:
            Number of bookings marked
        """
        today = self.today()

        async def overdue(uow: UnitOfWork) -> Result[list[UUID]]:
            bookings = await uow.bookings.list_by_status(frozenset({BookingStatus.CONFIRMED}))
            return Result.success([b.id for b in bookings if b.check_in < today])

        found = await self.allocator.read("sweep_no_shows", overdue)
        if not found.ok:
            return 0

        marked = 0
        for booking_id in found.value:
            result = await self.lifecycle.mark_no_show(booking_id, SYSTEM_ACTOR)
            if result.ok:
                marked += 1

        if marked:
            logger.info("No-show sweep completed", extra={"marked": marked, "as_of": today.isoformat()})
        return marked

    async def purge_idempotency_records(self) -> int:
        """
        Drop idempotency tokens past their time-to-live.

        Returns:
            Number of tokens removed
        """

        async def body(uow: UnitOfWork) -> Result[int]:
            return Result.success(await self.idempotency.cleanup_expired_records(uow))

        result = await self.allocator.read("purge_idempotency_records", body)
        return result.value if result.ok else 0

    # Rooms

    async def provision_room(self, spec: RoomSpec, actor: str = SYSTEM_ACTOR) -> Result[Room]:
        """Add a room to the inventory."""

        async def body(uow: UnitOfWork, changes: Changeset) -> Result[Room]:
            if await uow.rooms.get_by_number(spec.number) is not None:
                return Result.reject(
                    RejectionReason.ROOM_NUMBER_TAKEN,
                    f"Room number {spec.number} already exists",
                    number=spec.number,
                )
            if spec.capacity < 1:
                return Result.reject(RejectionReason.GUEST_COUNT_INVALID, "Room capacity must be at least 1")

            room = Room(
                number=spec.number,
                building=spec.building,
                floor=spec.floor,
                capacity=spec.capacity,
                room_type=spec.room_type,
                nightly_rate=spec.nightly_rate,
                description=spec.description,
                amenities=list(spec.amenities or []),
            )
            await uow.rooms.add(room)
            changes.events.append(_room_event(changes.actor, AuditAction.CREATE, room.id, None, room.snapshot()))
            return Result.success(room)

        return await self.allocator.transact(
            "provision_room", actor, [f"room-number:{spec.number}"], body
        )

    async def decommission_room(self, room_id: UUID, actor: str = SYSTEM_ACTOR) -> Result[Room]:
        """
        Remove a room from the inventory.

        Only a room that never held a booking can be removed. Open bookings
        are reported as ``ROOM_HAS_ACTIVE_BOOKINGS``; closed ones are kept as
        history and reported as ``ROOM_HAS_HISTORY``.
        """

        async def body(uow: UnitOfWork, changes: Changeset) -> Result[Room]:
            room = await uow.rooms.get(room_id)
            if room is None:
                return Result.reject(RejectionReason.ROOM_NOT_FOUND, f"Room {room_id} does not exist", room_id=room_id)

            bookings = await uow.bookings.list_for_room(room_id)
            active = [b.id for b in bookings if b.status not in TERMINAL_STATUSES]
            if active:
                return Result.reject(
                    RejectionReason.ROOM_HAS_ACTIVE_BOOKINGS,
                    f"Room {room.number} has {len(active)} open booking(s)",
                    room_id=room_id,
                    booking_ids=active,
                )
            if bookings:
                return Result.reject(
                    RejectionReason.ROOM_HAS_HISTORY,
                    f"Room {room.number} has {len(bookings)} closed booking(s) on record",
                    room_id=room_id,
                    booking_ids=[b.id for b in bookings],
                )

            await uow.rooms.delete(room_id)
            changes.events.append(_room_event(changes.actor, AuditAction.DELETE, room.id, room.snapshot(), None))
            return Result.success(room)

        return await self.allocator.transact(
            "decommission_room", actor, [room_key(room_id)], body, rooms=[room_id]
        )

    async def get_room(self, room_id: UUID) -> Result[Room]:
        async def body(uow: UnitOfWork) -> Result[Room]:
            room = await uow.rooms.get(room_id)
            if room is None:
                return Result.reject(RejectionReason.ROOM_NOT_FOUND, f"Room {room_id} does not exist", room_id=room_id)
            return Result.success(room)

        return await self.allocator.read("get_room", body)

    async def list_rooms(
        self,
        building: str | None = None,
        floor: int | None = None,
        status: RoomStatus | None = None,
        min_capacity: int | None = None,
    ) -> Result[list[Room]]:
        async def body(uow: UnitOfWork) -> Result[list[Room]]:
            return Result.success(
                await uow.rooms.search(building=building, floor=floor, status=status, min_capacity=min_capacity)
            )

        return await self.allocator.read("list_rooms", body)

    async def room_calendar(
        self,
        room_id: UUID,
        date_from: date | None = None,
        date_to: date | None = None,
    ) -> Result[list[Claim]]:
        """
        Claimed intervals of a room, optionally limited to a window.

        Read from persistence so that claims granted by other processes
        sharing the database are included.
        """

        async def body(uow: UnitOfWork) -> Result[list[Claim]]:
            if await uow.rooms.get(room_id) is None:
                return Result.reject(RejectionReason.ROOM_NOT_FOUND, f"Room {room_id} does not exist", room_id=room_id)
            bookings = await uow.bookings.list_for_room(room_id, CLAIMING_STATUSES)
            return Result.success(sorted(Claim(b.interval, b.id) for b in bookings))

        result = await self.allocator.read("room_calendar", body)
        if not result.ok or (date_from is None and date_to is None):
            return result

        window = DateInterval(date_from or date.min, date_to or date.max)
        return Result.success([claim for claim in result.value if claim.interval.overlaps(window)])

    async def block_room(
        self,
        room_id: UUID,
        reason: str | None = None,
        kind: RoomStatus = RoomStatus.BLOCKED,
        actor: str = SYSTEM_ACTOR,
    ) -> Result[Room]:
        """Put a blocked, maintenance or reserved override on a room."""
        if kind not in OVERRIDE_STATUSES:
            raise ValueError(f"{kind.value} is not an override status")

        async def body(uow: UnitOfWork, changes: Changeset) -> Result[Room]:
            blocked = await self.tracker.block(uow, room_id, reason, kind)
            if not blocked.ok:
                return blocked
            changes.room(blocked.value)
            return Result.success(blocked.value.room)

        return await self.allocator.transact("block_room", actor, [room_key(room_id)], body, rooms=[room_id])

    async def unblock_room(self, room_id: UUID, actor: str = SYSTEM_ACTOR) -> Result[Room]:
        async def body(uow: UnitOfWork, changes: Changeset) -> Result[Room]:
            unblocked = await self.tracker.unblock(uow, room_id, self.today())
            if not unblocked.ok:
                return unblocked
            changes.room(unblocked.value)
            return Result.success(unblocked.value.room)

        return await self.allocator.transact("unblock_room", actor, [room_key(room_id)], body, rooms=[room_id])

    async def refresh_room_statuses(self) -> dict[str, int]:
        """
        Re-derive every room's status for today.

        Each room is refreshed under its own lock.

        Returns:
            Number of rooms per status
        """
        listed = await self.list_rooms()
        if not listed.ok:
            return {}

        today = self.today()
        counts: Counter[str] = Counter({status.value: 0 for status in RoomStatus})
        for room in listed.value:

            async def body(uow: UnitOfWork, changes: Changeset, room_id: UUID = room.id) -> Result[Room]:
                changes.room(await self.tracker.refresh(uow, room_id, today))
                current = await uow.rooms.get(room_id)
                if current is None:
                    return Result.reject(RejectionReason.ROOM_NOT_FOUND, f"Room {room_id} does not exist")
                return Result.success(current)

            result = await self.allocator.transact(
                "refresh_room_status", SYSTEM_ACTOR, [room_key(room.id)], body, rooms=[room.id]
            )
            if result.ok:
                counts[result.value.status.value] += 1

        metrics_collector.set_rooms_by_status(dict(counts))
        return dict(counts)


def _room_event(actor, action, room_id, before, after) -> AuditEvent:
    return AuditEvent(
        actor=actor,
        action=action,
        entity_type=EntityType.ROOM,
        entity_id=room_id,
        before=before,
        after=after,
    )
