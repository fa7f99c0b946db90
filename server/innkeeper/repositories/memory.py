"""In-memory repositories for tests and single-process demos."""

import asyncio
import logging
from collections.abc import Iterable
from copy import deepcopy
from datetime import datetime
from typing import Any, Generic, TypeVar
from uuid import UUID

from ..domain.models import Booking, BookingStatus, Room, RoomStatus
from .base import (
    BookingFilter,
    BookingRepository,
    IdempotencyEntry,
    IdempotencyRepository,
    PersistenceError,
    RoomRepository,
    UnitOfWork,
)

logger = logging.getLogger(__name__)

K = TypeVar("K")
V = TypeVar("V")

_DELETED: Any = object()


class InMemoryDatabase:
    """Committed state shared by every unit of work created from it."""

    def __init__(self) -> None:
        self.rooms: dict[UUID, Room] = {}
        self.bookings: dict[UUID, Booking] = {}
        self.idempotency: dict[tuple[str, str], IdempotencyEntry] = {}
        # Flip to simulate an outage of the backing store
        self.available = True
        self._locks: dict[str, asyncio.Lock] = {}

    def unit_of_work(self) -> "InMemoryUnitOfWork":
        return InMemoryUnitOfWork(self)

    def lock_for(self, key: str) -> asyncio.Lock:
        """Lock shared by every engine that uses this database."""
        return self._locks.setdefault(key, asyncio.Lock())


class _StagedTable(Generic[K, V]):
    """Per-transaction overlay over a committed dict."""

    def __init__(self, committed: dict[K, V]):
        self._committed = committed
        self._staged: dict[K, V] = {}

    def get(self, key: K) -> V | None:
        if key in self._staged:
            value = self._staged[key]
            return None if value is _DELETED else deepcopy(value)
        value = self._committed.get(key)
        return deepcopy(value) if value is not None else None

    def put(self, key: K, value: V) -> None:
        self._staged[key] = deepcopy(value)

    def delete(self, key: K) -> None:
        self._staged[key] = _DELETED

    def values(self) -> list[V]:
        merged = dict(self._committed)
        merged.update(self._staged)
        return [deepcopy(value) for value in merged.values() if value is not _DELETED]

    def apply(self) -> None:
        for key, value in self._staged.items():
            if value is _DELETED:
                self._committed.pop(key, None)
            else:
                self._committed[key] = value
        self._staged.clear()

    def discard(self) -> None:
        self._staged.clear()


class InMemoryRoomRepository(RoomRepository):
    def __init__(self, table: _StagedTable[UUID, Room]):
        self._table = table

    async def get(self, room_id: UUID) -> Room | None:
        return self._table.get(room_id)

    async def get_by_number(self, number: str) -> Room | None:
        return next((room for room in self._table.values() if room.number == number), None)

    async def add(self, room: Room) -> None:
        self._table.put(room.id, room)

    async def update(self, room: Room) -> None:
        self._table.put(room.id, room)

    async def delete(self, room_id: UUID) -> None:
        self._table.delete(room_id)

    async def search(
        self,
        building: str | None = None,
        floor: int | None = None,
        status: RoomStatus | None = None,
        min_capacity: int | None = None,
    ) -> list[Room]:
        rooms = [
            room for room in self._table.values()
            if (building is None or room.building == building)
            and (floor is None or room.floor == floor)
            and (status is None or room.status == status)
            and (min_capacity is None or room.capacity >= min_capacity)
        ]
        return sorted(rooms, key=lambda room: (room.building, room.floor, room.number))


class InMemoryBookingRepository(BookingRepository):
    def __init__(self, table: _StagedTable[UUID, Booking]):
        self._table = table

    async def get(self, booking_id: UUID) -> Booking | None:
        return self._table.get(booking_id)

    async def add(self, booking: Booking) -> None:
        self._table.put(booking.id, booking)

    async def update(self, booking: Booking) -> None:
        self._table.put(booking.id, booking)

    async def delete(self, booking_id: UUID) -> None:
        self._table.delete(booking_id)

    async def list_for_room(
        self,
        room_id: UUID,
        statuses: frozenset[BookingStatus] | None = None,
    ) -> list[Booking]:
        bookings = [
            booking for booking in self._table.values()
            if booking.room_id == room_id and (statuses is None or booking.status in statuses)
        ]
        return sorted(bookings, key=lambda booking: booking.check_in)

    async def list_by_status(self, statuses: frozenset[BookingStatus]) -> list[Booking]:
        bookings = [booking for booking in self._table.values() if booking.status in statuses]
        return sorted(bookings, key=lambda booking: (booking.check_in, str(booking.id)))

    async def search(self, criteria: BookingFilter) -> list[Booking]:
        matches = [
            booking for booking in self._table.values()
            if (criteria.room_id is None or booking.room_id == criteria.room_id)
            and (criteria.guest_ref is None or criteria.guest_ref in (booking.guest_ref, booking.second_guest_ref))
            and (criteria.status is None or booking.status == criteria.status)
            and (criteria.date_from is None or booking.check_out > criteria.date_from)
            and (criteria.date_to is None or booking.check_in < criteria.date_to)
        ]
        matches.sort(key=lambda booking: (booking.check_in, str(booking.id)))
        return matches[criteria.offset:criteria.offset + criteria.limit]


class InMemoryIdempotencyRepository(IdempotencyRepository):
    def __init__(self, table: _StagedTable[tuple[str, str], IdempotencyEntry]):
        self._table = table

    async def get(self, key: str, method: str, now: datetime) -> IdempotencyEntry | None:
        entry = self._table.get((key, method))
        if entry is None or entry.expires_at <= now:
            return None
        return entry

    async def add(self, entry: IdempotencyEntry) -> None:
        self._table.put((entry.key, entry.method), entry)

    async def purge_expired(self, now: datetime) -> int:
        expired = [entry for entry in self._table.values() if entry.expires_at <= now]
        for entry in expired:
            self._table.delete((entry.key, entry.method))
        return len(expired)


class InMemoryUnitOfWork(UnitOfWork):
    """Unit of work that stages writes until commit."""

    def __init__(self, database: InMemoryDatabase):
        self._database = database
        self._tables: list[_StagedTable[Any, Any]] = []
        self._held: list[asyncio.Lock] = []

    async def begin(self) -> None:
        if not self._database.available:
            raise PersistenceError("In-memory database is unavailable")
        room_table = _StagedTable(self._database.rooms)
        booking_table = _StagedTable(self._database.bookings)
        idempotency_table = _StagedTable(self._database.idempotency)
        self._tables = [room_table, booking_table, idempotency_table]
        self.rooms = InMemoryRoomRepository(room_table)
        self.bookings = InMemoryBookingRepository(booking_table)
        self.idempotency = InMemoryIdempotencyRepository(idempotency_table)

    async def commit(self) -> None:
        if not self._database.available:
            raise PersistenceError("In-memory database is unavailable")
        for table in self._tables:
            table.apply()

    async def rollback(self) -> None:
        for table in self._tables:
            table.discard()

    async def lock_keys(self, keys: Iterable[str]) -> None:
        for key in sorted(set(keys)):
            lock = self._database.lock_for(key)
            await lock.acquire()
            self._held.append(lock)

    async def close(self) -> None:
        while self._held:
            self._held.pop().release()
