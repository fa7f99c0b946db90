"""Tests for allocation, cancellation, extension, transfer and check-out."""

from datetime import date

import pytest

from innkeeper.domain.audit import AuditAction, EntityType
from innkeeper.domain.models import BookingStatus, ReservationRequest, RoomStatus
from innkeeper.domain.results import Outcome, RejectionReason
from innkeeper.services import ReservationEngine
from innkeeper.services.allocation_service import room_key


@pytest.mark.asyncio
async def test_room_101_scenario(engine, room):
    """Overlap, same-day turnover and extension against a neighbour."""

    def request(guest: str, start: date, end: date) -> ReservationRequest:
        return ReservationRequest(room_id=room.id, check_in=start, check_out=end, guests=2, guest_ref=guest)

    x = await engine.create_booking(request("X", date(2024, 6, 1), date(2024, 6, 5)))
    assert x.ok
    assert x.value.status is BookingStatus.CONFIRMED

    y = await engine.create_booking(request("Y", date(2024, 6, 3), date(2024, 6, 7)))
    assert y.rejected
    assert y.reason is RejectionReason.INTERVAL_CONFLICT

    z = await engine.create_booking(request("Z", date(2024, 6, 5), date(2024, 6, 8)))
    assert z.ok

    extended = await engine.extend_booking(x.value.id, date(2024, 6, 6))
    assert extended.reason is RejectionReason.INTERVAL_CONFLICT
    assert extended.context["conflicting_bookings"] == [z.value.id]

    assert (await engine.cancel_booking(z.value.id, "plans changed")).ok

    extended = await engine.extend_booking(x.value.id, date(2024, 6, 6))
    assert extended.ok
    assert extended.value.check_out == date(2024, 6, 6)
    assert extended.value.nights == 5


class TestCreateBooking:
    @pytest.mark.asyncio
    async def test_confirmed_booking_claims_room(self, engine, room, reservation, audit_sink, day):
        audit_sink.clear()

        result = await engine.create_booking(reservation(room.id, 5, 8, guests=2), actor="frontdesk")

        assert result.ok
        booking = result.value
        assert booking.status is BookingStatus.CONFIRMED
        assert engine.store.room_of(booking.id) == room.id

        actions = [(e.entity_type, e.action) for e in audit_sink.events]
        assert actions == [(EntityType.BOOKING, AuditAction.CREATE), (EntityType.ROOM, AuditAction.UPDATE)]
        assert audit_sink.events[0].before is None
        assert audit_sink.events[0].after["check_in"] == day(5).isoformat()
        assert all(e.actor == "frontdesk" for e in audit_sink.events)

        stored_room = (await engine.get_room(room.id)).value
        assert stored_room.status is RoomStatus.BOOKED

    @pytest.mark.asyncio
    async def test_pending_booking_holds_nothing(self, engine, room, reservation):
        pending = await engine.create_booking(reservation(room.id, 5, 8, require_confirmation=True))
        assert pending.ok
        assert pending.value.status is BookingStatus.PENDING
        assert engine.store.room_of(pending.value.id) is None

        other = await engine.create_booking(reservation(room.id, 5, 8, guest_ref="guest-2"))
        assert other.ok

    @pytest.mark.asyncio
    async def test_capacity_exceeded(self, engine, room, reservation):
        result = await engine.create_booking(reservation(room.id, 1, 3, guests=3))
        assert result.reason is RejectionReason.CAPACITY_EXCEEDED
        assert len(engine.store) == 0

    @pytest.mark.asyncio
    async def test_invalid_dates(self, engine, room, reservation):
        result = await engine.create_booking(reservation(room.id, 3, 3))
        assert result.reason is RejectionReason.DATE_RANGE_INVALID

    @pytest.mark.asyncio
    async def test_unknown_room(self, engine, reservation):
        from uuid import uuid4

        result = await engine.create_booking(reservation(uuid4(), 1, 3))
        assert result.reason is RejectionReason.ROOM_NOT_FOUND

    @pytest.mark.asyncio
    async def test_blocked_room(self, engine, room, reservation):
        assert (await engine.block_room(room.id, "Burst pipe", RoomStatus.MAINTENANCE)).ok

        result = await engine.create_booking(reservation(room.id, 1, 3))

        assert result.reason is RejectionReason.ROOM_BLOCKED
        assert result.reason.retryable

    @pytest.mark.asyncio
    async def test_rejection_leaves_no_trace(self, engine, room, reservation, audit_sink):
        assert (await engine.create_booking(reservation(room.id, 1, 4))).ok
        audit_sink.clear()

        result = await engine.create_booking(reservation(room.id, 2, 3, guest_ref="guest-2"))

        assert result.rejected
        assert audit_sink.events == []
        assert len((await engine.list_bookings()).value) == 1


class TestIdempotency:
    @pytest.mark.asyncio
    async def test_replay_returns_original_booking(self, engine, room, reservation, audit_sink):
        first = await engine.create_booking(reservation(room.id, 5, 8, idempotency_key="req-1"))
        events = len(audit_sink.events)

        replay = await engine.create_booking(reservation(room.id, 5, 8, idempotency_key="req-1"))

        assert replay.ok
        assert replay.value.id == first.value.id
        assert len(audit_sink.events) == events
        assert len(engine.store) == 1

    @pytest.mark.asyncio
    async def test_reused_key_with_different_body(self, engine, room, reservation):
        await engine.create_booking(reservation(room.id, 5, 8, idempotency_key="req-1"))

        result = await engine.create_booking(reservation(room.id, 5, 9, idempotency_key="req-1"))

        assert result.rejected
        assert result.reason is RejectionReason.IDEMPOTENCY_KEY_MISMATCH

    @pytest.mark.asyncio
    async def test_different_key_allocates_again(self, engine, room, reservation):
        await engine.create_booking(reservation(room.id, 5, 8, idempotency_key="req-1"))

        result = await engine.create_booking(reservation(room.id, 5, 8, idempotency_key="req-2"))

        assert result.reason is RejectionReason.INTERVAL_CONFLICT

    @pytest.mark.asyncio
    async def test_key_expires(self, engine, room, other_room, reservation, clock):
        await engine.create_booking(reservation(room.id, 5, 8, idempotency_key="req-1"))
        clock.advance(days=2)

        result = await engine.create_booking(reservation(other_room.id, 5, 8, idempotency_key="req-1"))

        assert result.ok
        assert result.value.room_id == other_room.id

    @pytest.mark.asyncio
    async def test_key_of_rejected_booking_can_be_retried(self, engine, room, reservation):
        pending = await engine.create_booking(
            reservation(room.id, 5, 8, idempotency_key="req-1", require_confirmation=True)
        )
        assert (await engine.reject_booking(pending.value.id, "card declined")).ok

        retried = await engine.create_booking(
            reservation(room.id, 5, 8, idempotency_key="req-1", require_confirmation=True)
        )

        assert retried.ok
        assert retried.value.id != pending.value.id

    @pytest.mark.asyncio
    async def test_purge_drops_expired_keys(self, engine, room, reservation, clock, database):
        await engine.create_booking(reservation(room.id, 5, 8, idempotency_key="req-1"))
        clock.advance(days=2)

        assert await engine.purge_idempotency_records() == 1
        assert database.idempotency == {}


class TestCancel:
    @pytest.mark.asyncio
    async def test_cancel_releases_interval(self, engine, room, reservation, audit_sink):
        booking = (await engine.create_booking(reservation(room.id, 5, 8))).value
        audit_sink.clear()

        result = await engine.cancel_booking(booking.id, "Guest called")

        assert result.ok
        assert result.value.status is BookingStatus.CANCELLED
        assert result.value.notes.endswith("Cancellation reason: Guest called")
        assert engine.store.room_of(booking.id) is None
        assert audit_sink.events[0].action is AuditAction.CANCEL_BOOKING
        assert audit_sink.events[0].before["status"] == "confirmed"
        assert audit_sink.events[0].after["status"] == "cancelled"

        again = await engine.create_booking(reservation(room.id, 5, 8, guest_ref="guest-2"))
        assert again.ok

    @pytest.mark.asyncio
    async def test_cancel_without_reason(self, engine, room, reservation):
        booking = (await engine.create_booking(reservation(room.id, 5, 8, notes="Late arrival"))).value

        result = await engine.cancel_booking(booking.id)

        assert result.value.notes == "Late arrival\n\nCancellation reason: No reason provided"

    @pytest.mark.asyncio
    async def test_cancel_twice(self, engine, room, reservation):
        booking = (await engine.create_booking(reservation(room.id, 5, 8))).value
        await engine.cancel_booking(booking.id)

        result = await engine.cancel_booking(booking.id)

        assert result.reason is RejectionReason.ALREADY_TERMINAL

    @pytest.mark.asyncio
    async def test_cancel_pending_is_invalid(self, engine, room, reservation):
        booking = (await engine.create_booking(reservation(room.id, 5, 8, require_confirmation=True))).value
        result = await engine.cancel_booking(booking.id)
        assert result.reason is RejectionReason.INVALID_TRANSITION

    @pytest.mark.asyncio
    async def test_cancel_unknown_booking(self, engine):
        from uuid import uuid4

        result = await engine.cancel_booking(uuid4())
        assert result.reason is RejectionReason.BOOKING_NOT_FOUND

    @pytest.mark.asyncio
    async def test_checked_in_cancellation_needs_flag(self, engine, room, reservation, database, audit_sink, clock):
        booking = (await engine.create_booking(reservation(room.id, 0, 3))).value
        assert (await engine.check_in(booking.id)).ok

        refused = await engine.cancel_booking(booking.id)
        assert refused.reason is RejectionReason.INVALID_TRANSITION

        permissive = ReservationEngine(
            database.unit_of_work, audit_sink, allow_checked_in_cancellation=True, clock=clock
        )
        assert (await permissive.start()).ok
        allowed = await permissive.cancel_booking(booking.id)
        assert allowed.ok
        assert permissive.store.room_of(booking.id) is None


class TestExtend:
    @pytest.mark.asyncio
    async def test_extend_checks_only_added_nights(self, engine, room, reservation, audit_sink, day):
        booking = (await engine.create_booking(reservation(room.id, 5, 8))).value
        audit_sink.clear()

        result = await engine.extend_booking(booking.id, day(10))

        assert result.ok
        assert [c.interval.end for c in engine.store.intervals_for(room.id)] == [day(10)]
        assert audit_sink.events[0].action is AuditAction.EXTEND_BOOKING
        assert audit_sink.events[0].before["check_out"] == day(8).isoformat()

    @pytest.mark.asyncio
    async def test_extend_into_next_stay(self, engine, room, reservation, day):
        booking = (await engine.create_booking(reservation(room.id, 5, 8))).value
        await engine.create_booking(reservation(room.id, 9, 12, guest_ref="guest-2"))

        assert (await engine.extend_booking(booking.id, day(9))).ok
        assert (await engine.extend_booking(booking.id, day(10))).reason is RejectionReason.INTERVAL_CONFLICT

    @pytest.mark.asyncio
    async def test_extend_cannot_shorten(self, engine, room, reservation, day):
        booking = (await engine.create_booking(reservation(room.id, 5, 8))).value
        result = await engine.extend_booking(booking.id, day(7))
        assert result.reason is RejectionReason.DATE_RANGE_INVALID

    @pytest.mark.asyncio
    async def test_extend_cancelled(self, engine, room, reservation, day):
        booking = (await engine.create_booking(reservation(room.id, 5, 8))).value
        await engine.cancel_booking(booking.id)
        result = await engine.extend_booking(booking.id, day(9))
        assert result.reason is RejectionReason.ALREADY_TERMINAL

    @pytest.mark.asyncio
    async def test_extend_on_room_blocked_after_booking(self, engine, room, reservation, day):
        booking = (await engine.create_booking(reservation(room.id, 5, 8))).value
        await engine.block_room(room.id, "Boiler service", RoomStatus.MAINTENANCE)

        result = await engine.extend_booking(booking.id, day(9))

        assert result.ok
        assert result.value.check_out == day(9)

    @pytest.mark.asyncio
    async def test_extend_on_blocked_room_still_checks_the_added_nights(self, engine, room, reservation, day):
        booking = (await engine.create_booking(reservation(room.id, 5, 8))).value
        await engine.create_booking(reservation(room.id, 8, 10, guest_ref="guest-2"))
        await engine.block_room(room.id, "Boiler service", RoomStatus.MAINTENANCE)

        result = await engine.extend_booking(booking.id, day(9))

        assert result.reason is RejectionReason.INTERVAL_CONFLICT


class TestTransfer:
    @pytest.mark.asyncio
    async def test_transfer_moves_claim(self, engine, room, other_room, reservation, audit_sink):
        booking = (await engine.create_booking(reservation(room.id, 5, 8))).value
        audit_sink.clear()

        result = await engine.transfer_booking(booking.id, other_room.id)

        assert result.ok
        assert result.value.room_id == other_room.id
        assert engine.store.room_of(booking.id) == other_room.id
        assert len(engine.store.intervals_for(room.id)) == 0

        kinds = [(e.entity_type, e.entity_id) for e in audit_sink.events]
        assert kinds == [
            (EntityType.ROOM, room.id),
            (EntityType.ROOM, other_room.id),
            (EntityType.BOOKING, booking.id),
        ]
        assert audit_sink.events[2].before["room_id"] == str(room.id)

    @pytest.mark.asyncio
    async def test_transfer_to_taken_room(self, engine, room, other_room, reservation):
        booking = (await engine.create_booking(reservation(room.id, 5, 8))).value
        await engine.create_booking(reservation(other_room.id, 6, 7, guest_ref="guest-2"))

        result = await engine.transfer_booking(booking.id, other_room.id)

        assert result.reason is RejectionReason.INTERVAL_CONFLICT
        assert engine.store.room_of(booking.id) == room.id

    @pytest.mark.asyncio
    async def test_transfer_to_same_room(self, engine, room, reservation):
        booking = (await engine.create_booking(reservation(room.id, 5, 8))).value
        result = await engine.transfer_booking(booking.id, room.id)
        assert result.reason is RejectionReason.INVALID_TRANSITION

    @pytest.mark.asyncio
    async def test_transfer_to_small_room(self, engine, room, room_spec, reservation):
        single = (await engine.provision_room(room_spec("103", capacity=1))).value
        booking = (await engine.create_booking(reservation(room.id, 5, 8, guests=2))).value

        result = await engine.transfer_booking(booking.id, single.id)

        assert result.reason is RejectionReason.CAPACITY_EXCEEDED


class TestCheckOut:
    @pytest.mark.asyncio
    async def test_check_out_frees_room(self, engine, room, reservation, clock):
        booking = (await engine.create_booking(reservation(room.id, 0, 2))).value
        await engine.check_in(booking.id)
        clock.advance(days=2)

        result = await engine.check_out(booking.id)

        assert result.ok
        assert result.value.status is BookingStatus.CHECKED_OUT
        assert result.value.actual_check_out_at == clock.now
        assert engine.store.room_of(booking.id) is None

    @pytest.mark.asyncio
    async def test_check_out_requires_check_in(self, engine, room, reservation):
        booking = (await engine.create_booking(reservation(room.id, 0, 2))).value
        result = await engine.check_out(booking.id)
        assert result.reason is RejectionReason.NOT_CHECKED_IN


class TestFailures:
    @pytest.mark.asyncio
    async def test_persistence_outage_is_a_failure(self, engine, room, reservation, database):
        database.available = False

        result = await engine.create_booking(reservation(room.id, 5, 8))

        assert result.outcome is Outcome.FAILED
        assert result.reason is RejectionReason.PERSISTENCE_UNAVAILABLE
        assert result.reason.retryable
        assert len(engine.store) == 0

        database.available = True
        assert (await engine.list_bookings()).value == []

    @pytest.mark.asyncio
    async def test_audit_failure_keeps_commit(self, database, clock, room_spec, reservation):
        class BrokenSink:
            calls = 0

            async def record(self, event):
                BrokenSink.calls += 1
                raise RuntimeError("audit store offline")

        broken = ReservationEngine(database.unit_of_work, BrokenSink(), audit_retry_attempts=1, clock=clock)
        room = (await broken.provision_room(room_spec())).value

        result = await broken.create_booking(reservation(room.id, 5, 8))

        assert result.ok
        assert (await broken.get_booking(result.value.id)).ok
        assert broken.store.room_of(result.value.id) == room.id
        assert BrokenSink.calls > 0

    @pytest.mark.asyncio
    async def test_lock_timeout(self, database, audit_sink, clock, room_spec, reservation):
        impatient = ReservationEngine(database.unit_of_work, audit_sink, lock_timeout=0.05, clock=clock)
        room = (await impatient.provision_room(room_spec())).value

        async with impatient.locks.acquire(room_key(room.id)):
            result = await impatient.create_booking(reservation(room.id, 5, 8))

        assert result.failed
        assert result.reason is RejectionReason.LOCK_TIMEOUT
        assert (await impatient.list_bookings()).value == []
