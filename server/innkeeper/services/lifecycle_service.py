"""Booking lifecycle transitions after creation."""

import functools
import logging
from datetime import date
from decimal import Decimal
from uuid import UUID

from ..core.observability import metrics_collector
from ..domain.audit import AuditAction
from ..domain.models import Booking, BookingStatus
from ..domain.results import RejectionReason, Result
from ..repositories.base import UnitOfWork
from .allocation_service import (
    SYSTEM_ACTOR,
    Changeset,
    ReservationAllocator,
    already_terminal,
    invalid_transition,
)

logger = logging.getLogger(__name__)


class BookingLifecycleManager:
    """
    Drives bookings through check-in, confirmation, no-show and the rest.

    Operations that change a booking's claimed interval (cancel, extend,
    transfer, check-out) are delegated to the allocator; the others run
    through the allocator's locking protocol with their own rules.
    """

    def __init__(self, allocator: ReservationAllocator):
        self.allocator = allocator

    async def check_in(self, booking_id: UUID, actor: str = SYSTEM_ACTOR) -> Result[Booking]:
        """Register the guest's arrival."""

        async def body(uow: UnitOfWork, changes: Changeset, booking: Booking) -> Result[Booking]:
            if booking.status.is_terminal:
                return already_terminal(booking)
            if booking.status is not BookingStatus.CONFIRMED:
                return invalid_transition(booking, "check in", "only confirmed bookings can check in")

            today = self.allocator.today()
            if not booking.interval.contains(today):
                return invalid_transition(
                    booking,
                    "check in",
                    f"the stay runs {booking.interval}, today is {today.isoformat()}",
                )

            room = await uow.rooms.get(booking.room_id)
            if room is not None and room.is_blocked:
                return Result.reject(
                    RejectionReason.ROOM_BLOCKED,
                    f"Room {room.number} is {room.override_status.value}",
                    room_id=room.id,
                )

            before = booking.snapshot()
            booking.status = BookingStatus.CHECKED_IN
            booking.actual_check_in_at = self.allocator.clock()
            booking.touch()
            await uow.bookings.update(booking)

            changes.booking(AuditAction.CHECK_IN, booking, before)
            changes.room(await self.allocator.tracker.refresh(uow, booking.room_id, today))
            return Result.success(booking)

        return await self.allocator.for_booking("check_in", booking_id, actor, body)

    async def check_out(self, booking_id: UUID, actor: str = SYSTEM_ACTOR) -> Result[Booking]:
        return await self.allocator.check_out(booking_id, actor)

    async def cancel(self, booking_id: UUID, reason: str | None = None, actor: str = SYSTEM_ACTOR) -> Result[Booking]:
        return await self.allocator.cancel(booking_id, reason, actor)

    async def extend(self, booking_id: UUID, new_check_out: date, actor: str = SYSTEM_ACTOR) -> Result[Booking]:
        return await self.allocator.extend(booking_id, new_check_out, actor)

    async def transfer(self, booking_id: UUID, new_room_id: UUID, actor: str = SYSTEM_ACTOR) -> Result[Booking]:
        return await self.allocator.transfer(booking_id, new_room_id, actor)

    async def confirm(self, booking_id: UUID, actor: str = SYSTEM_ACTOR) -> Result[Booking]:
        """
        Confirm a pending booking.

        Pending bookings never held the room, so the full stay is checked
        again before the claim is taken.
        """

        async def body(uow: UnitOfWork, changes: Changeset, booking: Booking) -> Result[Booking]:
            if booking.status.is_terminal:
                return already_terminal(booking)
            if booking.status is not BookingStatus.PENDING:
                return invalid_transition(booking, "confirm", "only pending bookings need confirmation")

            check = await self.allocator.checker.is_available(
                uow.rooms, booking.room_id, booking.interval, booking.guests, exclude=booking.id
            )
            if not check.ok:
                return check

            before = booking.snapshot()
            booking.status = BookingStatus.CONFIRMED
            booking.touch()
            await uow.bookings.update(booking)

            changes.on_commit(
                functools.partial(self.allocator.store.insert, booking.room_id, booking.id, booking.interval)
            )
            changes.booking(AuditAction.UPDATE, booking, before)
            changes.room(await self.allocator.tracker.refresh(uow, booking.room_id, self.allocator.today()))
            return Result.success(booking)

        return await self.allocator.for_booking("confirm_booking", booking_id, actor, body)

    async def reject(self, booking_id: UUID, reason: str | None = None, actor: str = SYSTEM_ACTOR) -> Result[Booking]:
        """Discard a pending booking; it is deleted rather than kept as cancelled."""

        async def body(uow: UnitOfWork, changes: Changeset, booking: Booking) -> Result[Booking]:
            if booking.status.is_terminal:
                return already_terminal(booking)
            if booking.status is not BookingStatus.PENDING:
                return invalid_transition(booking, "reject", "only pending bookings can be rejected")

            before = booking.snapshot()
            await uow.bookings.delete(booking.id)
            changes.booking(AuditAction.DELETE, None, before, entity_id=booking.id)

            logger.info(
                "Pending booking rejected",
                extra={"booking_id": str(booking.id), "reason": reason or "No reason provided"}
            )
            return Result.success(booking)

        return await self.allocator.for_booking("reject_booking", booking_id, actor, body)

    async def mark_no_show(self, booking_id: UUID, actor: str = SYSTEM_ACTOR) -> Result[Booking]:
        """Close a confirmed booking whose guest never arrived."""

        async def body(uow: UnitOfWork, changes: Changeset, booking: Booking) -> Result[Booking]:
            if booking.status.is_terminal:
                return already_terminal(booking)
            if booking.status is not BookingStatus.CONFIRMED:
                return invalid_transition(booking, "mark no-show", "only confirmed bookings can be no-shows")

            today = self.allocator.today()
            if not today > booking.check_in:
                return Result.reject(
                    RejectionReason.NO_SHOW_TOO_EARLY,
                    f"Arrival day {booking.check_in.isoformat()} has not passed",
                    booking_id=booking.id,
                )

            before = booking.snapshot()
            booking.status = BookingStatus.NO_SHOW
            booking.touch()
            await uow.bookings.update(booking)

            changes.on_commit(functools.partial(self.allocator.store.remove, booking.room_id, booking.id))
            changes.booking(AuditAction.UPDATE, booking, before)
            changes.room(await self.allocator.tracker.refresh(uow, booking.room_id, today))
            return Result.success(booking)

        return await self.allocator.for_booking("mark_no_show", booking_id, actor, body)

    async def record_payment(self, booking_id: UUID, amount: Decimal, actor: str = SYSTEM_ACTOR) -> Result[Booking]:
        """Add a received payment to the booking's paid amount."""
        if amount <= 0:
            metrics_collector.record_rejection("record_payment", RejectionReason.PAYMENT_INVALID.value)
            return Result.reject(
                RejectionReason.PAYMENT_INVALID,
                f"Payment amount must be positive, got {amount}",
                amount=amount,
            )

        async def body(uow: UnitOfWork, changes: Changeset, booking: Booking) -> Result[Booking]:
            if booking.status.is_terminal:
                return already_terminal(booking)

            before = booking.snapshot()
            booking.paid_amount += amount
            booking.touch()
            await uow.bookings.update(booking)

            changes.booking(AuditAction.UPDATE, booking, before)
            return Result.success(booking)

        return await self.allocator.for_booking("record_payment", booking_id, actor, body)
