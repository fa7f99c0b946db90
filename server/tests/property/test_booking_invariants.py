"""Property-based tests for booking system invariants."""

import asyncio
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from itertools import combinations

from hypothesis import given, settings
from hypothesis import strategies as st

from innkeeper.domain.intervals import DateInterval
from innkeeper.domain.models import ReservationRequest, RoomType
from innkeeper.domain.results import RejectionReason
from innkeeper.repositories import InMemoryDatabase
from innkeeper.services import InMemoryAuditSink, ReservationEngine, RoomSpec

START = date(2026, 5, 1)

# Strategies for generating test data
stays = st.tuples(
    st.integers(min_value=0, max_value=30),
    st.integers(min_value=1, max_value=7),
    st.integers(min_value=0, max_value=2),
)
stay_lists = st.lists(stays, min_size=1, max_size=25)


def new_engine(database: InMemoryDatabase) -> ReservationEngine:
    now = datetime(2026, 4, 1, 12, 0, tzinfo=timezone.utc)
    return ReservationEngine(database.unit_of_work, InMemoryAuditSink(), clock=lambda: now)


async def provision_rooms(engine: ReservationEngine, count: int) -> list:
    rooms = []
    for number in range(count):
        result = await engine.provision_room(RoomSpec(
            number=str(100 + number),
            building="A",
            floor=1,
            capacity=2,
            room_type=RoomType.DOUBLE,
            nightly_rate=Decimal("100.00"),
        ))
        rooms.append(result.value)
    return rooms


def to_request(room_id, offset: int, nights: int, index: int) -> ReservationRequest:
    check_in = START + timedelta(days=offset)
    return ReservationRequest(
        room_id=room_id,
        check_in=check_in,
        check_out=check_in + timedelta(days=nights),
        guests=1,
        guest_ref=f"guest-{index}",
    )


def assert_no_overlaps(engine: ReservationEngine, rooms) -> None:
    for room in rooms:
        claims = list(engine.store.intervals_for(room.id))
        for a, b in combinations(claims, 2):
            assert not a.interval.overlaps(b.interval)


@settings(max_examples=50, deadline=None)
@given(requests=stay_lists)
def test_concurrent_creates_never_double_book(requests):
    """Accepted stays never overlap, and every refusal is a real conflict."""

    async def scenario():
        engine = new_engine(InMemoryDatabase())
        await engine.start()
        rooms = await provision_rooms(engine, 3)

        reservations = [
            to_request(rooms[room_index].id, offset, nights, i)
            for i, (offset, nights, room_index) in enumerate(requests)
        ]
        results = await asyncio.gather(*(engine.create_booking(r) for r in reservations))

        assert_no_overlaps(engine, rooms)
        accepted = [r.value for r in results if r.ok]
        assert len(engine.store) == len(accepted)

        for reservation, result in zip(reservations, results):
            if result.ok:
                continue
            assert result.reason is RejectionReason.INTERVAL_CONFLICT
            interval = DateInterval(reservation.check_in, reservation.check_out)
            assert any(
                booking.room_id == reservation.room_id and booking.interval.overlaps(interval)
                for booking in accepted
            )

    asyncio.run(scenario())


@settings(max_examples=30, deadline=None)
@given(requests=stay_lists, cancel_mask=st.lists(st.booleans(), min_size=25, max_size=25))
def test_store_matches_persisted_bookings_after_restart(requests, cancel_mask):
    """A restarted engine rebuilds exactly the claims the running one held."""

    async def scenario():
        database = InMemoryDatabase()
        engine = new_engine(database)
        await engine.start()
        rooms = await provision_rooms(engine, 3)

        booked = []
        for i, (offset, nights, room_index) in enumerate(requests):
            result = await engine.create_booking(to_request(rooms[room_index].id, offset, nights, i))
            if result.ok:
                booked.append(result.value)

        for booking, cancel in zip(booked, cancel_mask):
            if cancel:
                assert (await engine.cancel_booking(booking.id)).ok

        restarted = new_engine(database)
        assert (await restarted.start()).ok

        assert_no_overlaps(restarted, rooms)
        for room in rooms:
            assert list(restarted.store.intervals_for(room.id)) == list(engine.store.intervals_for(room.id))

    asyncio.run(scenario())


@settings(max_examples=50, deadline=None)
@given(
    first=st.tuples(st.integers(0, 20), st.integers(1, 10)),
    second=st.tuples(st.integers(0, 20), st.integers(1, 10)),
)
def test_overlap_is_symmetric_and_half_open(first, second):
    a = DateInterval(START + timedelta(days=first[0]), START + timedelta(days=sum(first)))
    b = DateInterval(START + timedelta(days=second[0]), START + timedelta(days=sum(second)))

    assert a.overlaps(b) == b.overlaps(a)
    shared_nights = set(a.days()) & set(b.days())
    assert a.overlaps(b) == bool(shared_nights)
