"""Transactional core: check-then-act on rooms under per-room locks."""

import functools
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any
from uuid import UUID

from ..core.locking import LockTimeoutError, RoomLockManager
from ..core.observability import metrics_collector
from ..domain.audit import AuditAction, AuditEvent, EntityType
from ..domain.intervals import DateInterval, IntervalStore
from ..domain.models import CLAIMING_STATUSES, Booking, BookingStatus, ReservationRequest, utcnow
from ..domain.results import RejectionReason, Result
from ..repositories.base import PersistenceError, UnitOfWork, UnitOfWorkFactory
from .audit_service import AuditEmitter
from .availability_service import AvailabilityChecker
from .idempotency_service import IdempotencyMismatchError, IdempotencyService
from .room_state_service import RoomChange, RoomStateTracker

logger = logging.getLogger(__name__)

CREATE_METHOD = "create_booking"
SYSTEM_ACTOR = "system"

# Attempts to pin a booking to its room when it is moved concurrently
_LOCATE_ATTEMPTS = 3


def room_key(room_id: UUID) -> str:
    return f"room:{room_id}"


def token_key(idempotency_key: str) -> str:
    return f"idempotency:{idempotency_key}"


@dataclass
class Changeset:
    """
    Side effects of one operation that only happen once it commits.

    Interval store mutations run right after the commit while the room locks
    are still held; audit events are emitted after the locks are released.
    """

    actor: str
    events: list[AuditEvent] = field(default_factory=list)
    store_ops: list[Callable[[], Any]] = field(default_factory=list)
    # Set when an idempotent replay returned an existing booking
    replayed: bool = False

    def booking(self, action: AuditAction, booking: Booking | None, before: dict[str, Any] | None, entity_id: UUID | None = None) -> None:
        self.events.append(
            AuditEvent(
                actor=self.actor,
                action=action,
                entity_type=EntityType.BOOKING,
                entity_id=entity_id or booking.id,
                before=before,
                after=booking.snapshot() if booking is not None else None,
            )
        )

    def room(self, change: RoomChange | None) -> None:
        if change is not None:
            self.events.append(change.to_event(self.actor))

    def on_commit(self, op: Callable[[], Any]) -> None:
        self.store_ops.append(op)

    def apply(self) -> None:
        for op in self.store_ops:
            op()


Body = Callable[[UnitOfWork, Changeset], Awaitable[Result]]
BookingBody = Callable[[UnitOfWork, Changeset, Booking], Awaitable[Result]]


class _BookingMoved(Exception):
    """The booking changed rooms between locating and locking it."""


class ReservationAllocator:
    """
    Runs availability checks and writes as one atomic step per room.

    Every mutating operation follows the same protocol: take the room
    locks, open a unit of work, validate, write, commit, update the interval
    store, release the locks, then emit audit events.
    """

    def __init__(
        self,
        store: IntervalStore,
        locks: RoomLockManager,
        uow_factory: UnitOfWorkFactory,
        checker: AvailabilityChecker,
        tracker: RoomStateTracker,
        emitter: AuditEmitter,
        idempotency: IdempotencyService,
        clock: Callable[[], datetime] = utcnow,
        allow_checked_in_cancellation: bool = False,
    ):
        self.store = store
        self.locks = locks
        self.uow_factory = uow_factory
        self.checker = checker
        self.tracker = tracker
        self.emitter = emitter
        self.idempotency = idempotency
        self.clock = clock
        self.allow_checked_in_cancellation = allow_checked_in_cancellation

    def today(self) -> date:
        return self.clock().date()

    async def transact(
        self,
        operation: str,
        actor: str,
        keys: Iterable[str],
        body: Body,
        rooms: Iterable[UUID] = (),
    ) -> Result:
        """
        Run ``body`` under the given locks inside one unit of work.

        The keys are locked in process and then in the backing store, so
        engines in other processes sharing the database are serialized too.
        The claims of ``rooms`` are re-read from persistence under those locks
        before the body runs. The body returns a result; anything but ``ok``
        rolls the unit of work back. Lock timeouts and persistence failures
        become ``failed`` results.
        """
        keys = list(keys)
        changes = Changeset(actor)
        try:
            async with self.locks.acquire(*keys):
                async with self.uow_factory() as uow:
                    await uow.lock_keys(keys)
                    for room_id in dict.fromkeys(rooms):
                        await self._sync_room(uow, room_id)
                    result = await body(uow, changes)
                    if result.ok:
                        await uow.commit()
                if result.ok:
                    changes.apply()
        except LockTimeoutError as e:
            result = Result.reject(RejectionReason.LOCK_TIMEOUT, str(e), lock_key=e.key)
        except PersistenceError as e:
            logger.error(
                "Persistence failure",
                extra={"operation": operation, "error": str(e)},
                exc_info=True
            )
            result = Result.reject(RejectionReason.PERSISTENCE_UNAVAILABLE, str(e))

        if not result.ok:
            logger.info(
                "Operation not applied",
                extra={
                    "operation": operation,
                    "outcome": result.outcome.value,
                    "reason": result.reason.value,
                    "detail": result.detail
                }
            )
            metrics_collector.record_rejection(operation, result.reason.value)
            return result

        if not changes.replayed:
            metrics_collector.record_transition(operation)
        await self.emitter.emit(changes.events)
        return result

    async def read(self, operation: str, body: Callable[[UnitOfWork], Awaitable[Result]]) -> Result:
        """Run a read-only ``body`` in its own unit of work."""
        try:
            async with self.uow_factory() as uow:
                return await body(uow)
        except PersistenceError as e:
            logger.error(
                "Persistence failure",
                extra={"operation": operation, "error": str(e)},
                exc_info=True
            )
            return Result.reject(RejectionReason.PERSISTENCE_UNAVAILABLE, str(e))

    async def _sync_room(self, uow: UnitOfWork, room_id: UUID) -> None:
        # Another process sharing the database may have changed the room's claims
        bookings = await uow.bookings.list_for_room(room_id, CLAIMING_STATUSES)
        self.store.load_room(room_id, ((b.id, b.interval) for b in bookings))

    async def for_booking(
        self,
        operation: str,
        booking_id: UUID,
        actor: str,
        body: BookingBody,
        extra_rooms: Iterable[UUID] = (),
    ) -> Result:
        """
        Run ``body`` on a booking while holding its room's lock.

        The booking's room is looked up first, locked, and then re-checked;
        if a concurrent transfer moved the booking in between, the lookup is
        repeated.
        """
        extra_rooms = list(extra_rooms)
        extra_keys = [room_key(room_id) for room_id in extra_rooms]

        for attempt in range(_LOCATE_ATTEMPTS):
            located = await self._locate(booking_id, fresh=attempt > 0)
            if not located.ok:
                metrics_collector.record_rejection(operation, located.reason.value)
                return located
            room_id = located.value

            async def guarded(uow: UnitOfWork, changes: Changeset) -> Result:
                booking = await uow.bookings.get(booking_id)
                if booking is None:
                    return booking_not_found(booking_id)
                if booking.room_id != room_id:
                    raise _BookingMoved()
                return await body(uow, changes, booking)

            try:
                return await self.transact(
                    operation, actor, [room_key(room_id), *extra_keys], guarded, rooms=[room_id, *extra_rooms]
                )
            except _BookingMoved:
                logger.info(
                    "Booking moved while waiting for its room lock",
                    extra={"booking_id": str(booking_id), "room_id": str(room_id)}
                )

        return Result.reject(
            RejectionReason.LOCK_TIMEOUT,
            f"Booking {booking_id} kept moving between rooms",
            booking_id=booking_id,
        )

    async def _locate(self, booking_id: UUID, fresh: bool = False) -> Result[UUID]:
        room_id = None if fresh else self.store.room_of(booking_id)
        if room_id is not None:
            return Result.success(room_id)

        # Unclaimed bookings and retries after a move are looked up in persistence
        async def lookup(uow: UnitOfWork) -> Result[UUID]:
            booking = await uow.bookings.get(booking_id)
            if booking is None:
                return booking_not_found(booking_id)
            return Result.success(booking.room_id)

        return await self.read("locate_booking", lookup)

    async def allocate(self, request: ReservationRequest, actor: str = SYSTEM_ACTOR) -> Result[Booking]:
        """
        Grant a stay if the room is free and record the booking.

        With an idempotency token, a repeated identical request returns the
        booking created the first time without allocating again.
        """
        request_hash = None
        token_keys: list[str] = []
        if request.idempotency_key:
            request_hash = self.idempotency.compute_request_hash(request.fingerprint())
            token_keys.append(token_key(request.idempotency_key))

        async def body(uow: UnitOfWork, changes: Changeset) -> Result[Booking]:
            if request.idempotency_key:
                try:
                    existing_id = await self.idempotency.check_idempotency(
                        uow, request.idempotency_key, CREATE_METHOD, request_hash
                    )
                except IdempotencyMismatchError as e:
                    return Result.reject(
                        RejectionReason.IDEMPOTENCY_KEY_MISMATCH,
                        str(e),
                        idempotency_key=request.idempotency_key,
                    )
                if existing_id is not None:
                    existing = await uow.bookings.get(existing_id)
                    # A rejected pending booking no longer exists; treat the token as fresh
                    if existing is not None:
                        changes.replayed = True
                        return Result.success(existing)

            check = await self.checker.is_available(
                uow.rooms, request.room_id, request.interval, request.guests
            )
            if not check.ok:
                return check

            booking = Booking(
                room_id=request.room_id,
                guest_ref=request.guest_ref,
                second_guest_ref=request.second_guest_ref,
                check_in=request.check_in,
                check_out=request.check_out,
                guests=request.guests,
                status=BookingStatus.PENDING if request.require_confirmation else BookingStatus.CONFIRMED,
                total_amount=request.total_amount,
                paid_amount=request.paid_amount,
                notes=request.notes,
                special_requests=request.special_requests,
                idempotency_key=request.idempotency_key,
            )
            await uow.bookings.add(booking)
            if request.idempotency_key:
                await self.idempotency.store(
                    uow, request.idempotency_key, CREATE_METHOD, request_hash, booking.id
                )

            if booking.status.claims_room:
                changes.on_commit(functools.partial(self.store.insert, booking.room_id, booking.id, booking.interval))
            changes.booking(AuditAction.CREATE, booking, None)
            changes.room(await self.tracker.refresh(uow, booking.room_id, self.today()))
            return Result.success(booking)

        # The token lock is taken before the room lock
        try:
            async with self.locks.acquire(*token_keys):
                result = await self.transact(
                    CREATE_METHOD, actor, [room_key(request.room_id)], body, rooms=[request.room_id]
                )
        except LockTimeoutError as e:
            metrics_collector.record_rejection(CREATE_METHOD, RejectionReason.LOCK_TIMEOUT.value)
            return Result.reject(RejectionReason.LOCK_TIMEOUT, str(e), lock_key=e.key)

        if result.ok:
            booking = result.value
            logger.info(
                "Booking allocated",
                extra={
                    "booking_id": str(booking.id),
                    "room_id": str(booking.room_id),
                    "interval": str(booking.interval),
                    "status": booking.status.value,
                    "idempotency_key": request.idempotency_key
                }
            )
            metrics_collector.record_booking_created(booking.status.value)
        return result

    async def cancel(self, booking_id: UUID, reason: str | None = None, actor: str = SYSTEM_ACTOR) -> Result[Booking]:
        """Cancel a confirmed (or, when permitted, checked-in) booking and free its room."""

        async def body(uow: UnitOfWork, changes: Changeset, booking: Booking) -> Result[Booking]:
            if booking.status.is_terminal:
                return already_terminal(booking)
            if booking.status is BookingStatus.PENDING:
                return invalid_transition(booking, "cancel", "reject a pending booking instead")
            if booking.status is BookingStatus.CHECKED_IN:
                if not self.allow_checked_in_cancellation:
                    return invalid_transition(booking, "cancel", "the guest is already checked in")
                logger.warning(
                    "Cancelling a checked-in booking",
                    extra={"booking_id": str(booking.id), "room_id": str(booking.room_id), "actor": changes.actor}
                )

            before = booking.snapshot()
            booking.status = BookingStatus.CANCELLED
            booking.append_note(f"Cancellation reason: {reason or 'No reason provided'}")
            booking.touch()
            await uow.bookings.update(booking)

            changes.on_commit(functools.partial(self.store.remove, booking.room_id, booking.id))
            changes.booking(AuditAction.CANCEL_BOOKING, booking, before)
            changes.room(await self.tracker.refresh(uow, booking.room_id, self.today()))
            return Result.success(booking)

        result = await self.for_booking("cancel_booking", booking_id, actor, body)
        if result.ok:
            metrics_collector.record_booking_cancelled()
        return result

    async def extend(self, booking_id: UUID, new_check_out: date, actor: str = SYSTEM_ACTOR) -> Result[Booking]:
        """
        Move a booking's checkout later.

        Only the added nights ``[old checkout, new checkout)`` are checked, and
        only for overlapping claims; an override set after the room was
        granted does not stop the guest from staying longer.
        """

        async def body(uow: UnitOfWork, changes: Changeset, booking: Booking) -> Result[Booking]:
            if booking.status.is_terminal:
                return already_terminal(booking)
            if not booking.status.claims_room:
                return invalid_transition(booking, "extend", "only confirmed or checked-in stays can be extended")
            if new_check_out <= booking.check_in or new_check_out <= booking.check_out:
                return Result.reject(
                    RejectionReason.DATE_RANGE_INVALID,
                    f"New checkout {new_check_out.isoformat()} must be after the current checkout "
                    f"{booking.check_out.isoformat()}",
                    booking_id=booking.id,
                )

            room = await uow.rooms.get(booking.room_id)
            if room is None:
                return Result.reject(
                    RejectionReason.ROOM_NOT_FOUND,
                    f"Room {booking.room_id} does not exist",
                    room_id=booking.room_id,
                )

            delta = DateInterval(booking.check_out, new_check_out)
            check = self.checker.check_conflicts(room, delta, exclude=booking.id)
            if not check.ok:
                return check

            before = booking.snapshot()
            booking.check_out = new_check_out
            booking.touch()
            await uow.bookings.update(booking)

            changes.on_commit(functools.partial(self.store.replace, booking.room_id, booking.id, booking.interval))
            changes.booking(AuditAction.EXTEND_BOOKING, booking, before)
            changes.room(await self.tracker.refresh(uow, booking.room_id, self.today()))
            return Result.success(booking)

        return await self.for_booking("extend_booking", booking_id, actor, body)

    async def transfer(self, booking_id: UUID, new_room_id: UUID, actor: str = SYSTEM_ACTOR) -> Result[Booking]:
        """Move a booking to another room for the same stay."""

        async def body(uow: UnitOfWork, changes: Changeset, booking: Booking) -> Result[Booking]:
            if booking.status.is_terminal:
                return already_terminal(booking)
            if not booking.status.claims_room:
                return invalid_transition(booking, "transfer", "only confirmed or checked-in stays can be transferred")
            if booking.room_id == new_room_id:
                return invalid_transition(booking, "transfer", "the booking is already in that room")

            check = await self.checker.is_available(
                uow.rooms, new_room_id, booking.interval, booking.guests, exclude=booking.id
            )
            if not check.ok:
                return check

            old_room_id = booking.room_id
            before = booking.snapshot()
            booking.room_id = new_room_id
            booking.touch()
            await uow.bookings.update(booking)

            changes.on_commit(functools.partial(self.store.remove, old_room_id, booking.id))
            changes.on_commit(functools.partial(self.store.insert, new_room_id, booking.id, booking.interval))
            today = self.today()
            changes.room(await self.tracker.refresh(uow, old_room_id, today, always=True))
            changes.room(await self.tracker.refresh(uow, new_room_id, today, always=True))
            changes.booking(AuditAction.UPDATE, booking, before)
            return Result.success(booking)

        return await self.for_booking("transfer_booking", booking_id, actor, body, extra_rooms=[new_room_id])

    async def check_out(self, booking_id: UUID, actor: str = SYSTEM_ACTOR) -> Result[Booking]:
        """Close a checked-in stay and release the room."""

        async def body(uow: UnitOfWork, changes: Changeset, booking: Booking) -> Result[Booking]:
            if booking.status.is_terminal:
                return already_terminal(booking)
            if booking.status is not BookingStatus.CHECKED_IN:
                return Result.reject(
                    RejectionReason.NOT_CHECKED_IN,
                    f"Booking {booking.id} is {booking.status.value}, not checked in",
                    booking_id=booking.id,
                )

            before = booking.snapshot()
            booking.status = BookingStatus.CHECKED_OUT
            booking.actual_check_out_at = self.clock()
            booking.touch()
            await uow.bookings.update(booking)

            changes.on_commit(functools.partial(self.store.remove, booking.room_id, booking.id))
            changes.booking(AuditAction.CHECK_OUT, booking, before)
            changes.room(await self.tracker.refresh(uow, booking.room_id, self.today()))
            return Result.success(booking)

        return await self.for_booking("check_out", booking_id, actor, body)


def booking_not_found(booking_id: UUID) -> Result:
    return Result.reject(
        RejectionReason.BOOKING_NOT_FOUND,
        f"Booking {booking_id} does not exist",
        booking_id=booking_id,
    )


def already_terminal(booking: Booking) -> Result:
    return Result.reject(
        RejectionReason.ALREADY_TERMINAL,
        f"Booking {booking.id} is already {booking.status.value}",
        booking_id=booking.id,
        status=booking.status.value,
    )


def invalid_transition(booking: Booking, operation: str, why: str) -> Result:
    return Result.reject(
        RejectionReason.INVALID_TRANSITION,
        f"Cannot {operation} booking {booking.id} in status {booking.status.value}: {why}",
        booking_id=booking.id,
        status=booking.status.value,
    )
