"""Engine tests against the SQLAlchemy repositories on SQLite."""

from decimal import Decimal

import pytest

from innkeeper.core.database import build_session_factory
from innkeeper.domain.models import BookingStatus, RoomStatus, RoomType
from innkeeper.domain.results import RejectionReason
from innkeeper.repositories import SqlAlchemyUnitOfWork
from innkeeper.services import InMemoryAuditSink, ReservationEngine, RoomSpec


def room_spec_for(number: str, capacity: int = 2) -> RoomSpec:
    return RoomSpec(
        number=number,
        building="Main",
        floor=int(number[0]),
        capacity=capacity,
        room_type=RoomType.DOUBLE,
        nightly_rate=Decimal("150.00"),
        amenities=["wifi"],
    )


@pytest.mark.asyncio
async def test_room_round_trip(sql_reservation_engine):
    engine = sql_reservation_engine
    room = (await engine.provision_room(room_spec_for("101"))).value

    loaded = (await engine.get_room(room.id)).value

    assert loaded.number == "101"
    assert loaded.nightly_rate == Decimal("150.00")
    assert loaded.amenities == ["wifi"]
    assert (await engine.provision_room(room_spec_for("101"))).reason is RejectionReason.ROOM_NUMBER_TAKEN


@pytest.mark.asyncio
async def test_create_conflict_and_cancel(sql_reservation_engine, reservation):
    engine = sql_reservation_engine
    room = (await engine.provision_room(room_spec_for("101"))).value

    booking = (await engine.create_booking(reservation(room.id, 2, 5))).value
    clash = await engine.create_booking(reservation(room.id, 4, 6, guest_ref="guest-2"))
    assert clash.reason is RejectionReason.INTERVAL_CONFLICT
    assert len((await engine.list_bookings()).value) == 1

    cancelled = await engine.cancel_booking(booking.id, reason="Flight cancelled")
    assert cancelled.ok

    persisted = (await engine.get_booking(booking.id)).value
    assert persisted.status is BookingStatus.CANCELLED
    assert "Flight cancelled" in persisted.notes
    assert (await engine.create_booking(reservation(room.id, 4, 6, guest_ref="guest-2"))).ok


@pytest.mark.asyncio
async def test_extend_and_transfer(sql_reservation_engine, reservation, day):
    engine = sql_reservation_engine
    room = (await engine.provision_room(room_spec_for("101"))).value
    other = (await engine.provision_room(room_spec_for("102"))).value
    booking = (await engine.create_booking(reservation(room.id, 2, 4))).value

    extended = await engine.extend_booking(booking.id, day(6))
    assert extended.value.check_out == day(6)

    moved = await engine.transfer_booking(booking.id, other.id)
    assert moved.value.room_id == other.id

    persisted = (await engine.get_booking(booking.id)).value
    assert (persisted.room_id, persisted.check_out) == (other.id, day(6))
    assert (await engine.get_room(room.id)).value.status is RoomStatus.AVAILABLE
    assert (await engine.get_room(other.id)).value.status is RoomStatus.BOOKED


@pytest.mark.asyncio
async def test_reject_removes_row(sql_reservation_engine, reservation):
    engine = sql_reservation_engine
    room = (await engine.provision_room(room_spec_for("101"))).value
    pending = (await engine.create_booking(reservation(room.id, 2, 4, require_confirmation=True))).value

    assert (await engine.reject_booking(pending.id)).ok
    assert (await engine.get_booking(pending.id)).reason is RejectionReason.BOOKING_NOT_FOUND


@pytest.mark.asyncio
async def test_idempotent_replay(sql_reservation_engine, reservation):
    engine = sql_reservation_engine
    room = (await engine.provision_room(room_spec_for("101"))).value
    request = reservation(room.id, 2, 4, idempotency_key="sql-key")

    first = await engine.create_booking(request)
    second = await engine.create_booking(request)

    assert second.value.id == first.value.id
    mismatch = await engine.create_booking(reservation(room.id, 2, 5, idempotency_key="sql-key"))
    assert mismatch.reason is RejectionReason.IDEMPOTENCY_KEY_MISMATCH


@pytest.mark.asyncio
async def test_restart_rehydrates_claims(sql_engine, sql_reservation_engine, reservation, clock):
    engine = sql_reservation_engine
    room = (await engine.provision_room(room_spec_for("101"))).value
    kept = (await engine.create_booking(reservation(room.id, 2, 4))).value
    dropped = (await engine.create_booking(reservation(room.id, 6, 8, guest_ref="guest-2"))).value
    await engine.cancel_booking(dropped.id)

    session_factory = build_session_factory(sql_engine)
    restarted = ReservationEngine(
        lambda: SqlAlchemyUnitOfWork(session_factory),
        InMemoryAuditSink(),
        clock=clock,
    )
    loaded = await restarted.start()

    assert loaded.value == 1
    assert restarted.store.room_of(kept.id) == room.id
    clash = await restarted.create_booking(reservation(room.id, 3, 5, guest_ref="guest-3"))
    assert clash.reason is RejectionReason.INTERVAL_CONFLICT


@pytest.mark.asyncio
async def test_decommission(sql_reservation_engine, reservation):
    engine = sql_reservation_engine
    room = (await engine.provision_room(room_spec_for("101"))).value
    booking = (await engine.create_booking(reservation(room.id, 2, 4))).value

    refused = await engine.decommission_room(room.id)
    assert refused.reason is RejectionReason.ROOM_HAS_ACTIVE_BOOKINGS

    await engine.cancel_booking(booking.id)
    kept = await engine.decommission_room(room.id)
    assert kept.reason is RejectionReason.ROOM_HAS_HISTORY
    assert (await engine.get_booking(booking.id)).value.status is BookingStatus.CANCELLED

    spare = (await engine.provision_room(room_spec_for("102"))).value
    assert (await engine.decommission_room(spare.id)).ok
    assert (await engine.get_room(spare.id)).reason is RejectionReason.ROOM_NOT_FOUND


def engine_over(session_factory, clock) -> ReservationEngine:
    return ReservationEngine(
        lambda: SqlAlchemyUnitOfWork(session_factory),
        InMemoryAuditSink(),
        lock_timeout=1.0,
        clock=clock,
    )


@pytest.mark.asyncio
async def test_engines_sharing_a_database_see_each_others_bookings(sql_engine, reservation, clock):
    session_factory = build_session_factory(sql_engine)
    first = engine_over(session_factory, clock)
    second = engine_over(session_factory, clock)
    await first.start()
    await second.start()

    room = (await first.provision_room(room_spec_for("101"))).value
    booking = (await first.create_booking(reservation(room.id, 1, 5))).value

    clash = await second.create_booking(reservation(room.id, 2, 6, guest_ref="guest-2"))
    assert clash.reason is RejectionReason.INTERVAL_CONFLICT
    assert clash.context["conflicting_bookings"] == [booking.id]

    assert (await second.cancel_booking(booking.id)).ok
    moved_in = (await first.create_booking(reservation(room.id, 2, 6, guest_ref="guest-2"))).value
    assert moved_in is not None

    late = await second.create_booking(reservation(room.id, 5, 7, guest_ref="guest-3"))
    assert late.reason is RejectionReason.INTERVAL_CONFLICT
    assert [c.booking_id for c in (await second.room_calendar(room.id)).value] == [moved_in.id]


@pytest.mark.asyncio
async def test_extend_sees_a_booking_made_by_another_engine(sql_engine, reservation, clock, day):
    session_factory = build_session_factory(sql_engine)
    first = engine_over(session_factory, clock)
    second = engine_over(session_factory, clock)
    await first.start()
    await second.start()

    room = (await first.provision_room(room_spec_for("101"))).value
    early = (await first.create_booking(reservation(room.id, 1, 4))).value
    await second.create_booking(reservation(room.id, 4, 6, guest_ref="guest-2"))

    assert (await first.extend_booking(early.id, day(5))).reason is RejectionReason.INTERVAL_CONFLICT
