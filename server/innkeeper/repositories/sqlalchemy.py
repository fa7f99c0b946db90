"""SQLAlchemy-backed repositories and unit of work."""

import functools
import logging
from collections.abc import Iterable
from datetime import datetime, timezone
from decimal import Decimal
from uuid import UUID

from sqlalchemy import delete, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..domain.models import Booking, BookingStatus, Room, RoomStatus, RoomType
from ..models.booking import BookingModel
from ..models.idempotency import IdempotencyRecord
from ..models.room import RoomModel
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


def _translate_errors(method):
    """Re-raise driver and ORM failures as PersistenceError."""

    @functools.wraps(method)
    async def wrapper(*args, **kwargs):
        try:
            return await method(*args, **kwargs)
        except SQLAlchemyError as e:
            logger.error(
                "Database operation failed",
                extra={"operation": method.__qualname__, "error": str(e)}
            )
            raise PersistenceError(str(e)) from e

    return wrapper


def _aware(value: datetime | None) -> datetime | None:
    """SQLite drops tzinfo; values are always written in UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _room_from_row(row: RoomModel) -> Room:
    return Room(
        id=row.id,
        number=row.number,
        building=row.building,
        floor=row.floor,
        capacity=row.capacity,
        room_type=RoomType(row.room_type),
        nightly_rate=Decimal(row.nightly_rate),
        status=RoomStatus(row.status),
        override_status=RoomStatus(row.override_status) if row.override_status else None,
        override_reason=row.override_reason,
        override_at=_aware(row.override_at),
        description=row.description,
        amenities=list(row.amenities or []),
        created_at=_aware(row.created_at),
        updated_at=_aware(row.updated_at),
    )


def _copy_room_to_row(room: Room, row: RoomModel) -> None:
    row.number = room.number
    row.building = room.building
    row.floor = room.floor
    row.capacity = room.capacity
    row.room_type = room.room_type.value
    row.nightly_rate = room.nightly_rate
    row.status = room.status.value
    row.override_status = room.override_status.value if room.override_status else None
    row.override_reason = room.override_reason
    row.override_at = room.override_at
    row.description = room.description
    row.amenities = list(room.amenities)
    row.created_at = room.created_at
    row.updated_at = room.updated_at


def _booking_from_row(row: BookingModel) -> Booking:
    return Booking(
        id=row.id,
        room_id=row.room_id,
        guest_ref=row.guest_ref,
        second_guest_ref=row.second_guest_ref,
        check_in=row.check_in,
        check_out=row.check_out,
        guests=row.guests,
        status=BookingStatus(row.status),
        total_amount=Decimal(row.total_amount),
        paid_amount=Decimal(row.paid_amount),
        notes=row.notes,
        special_requests=row.special_requests,
        idempotency_key=row.idempotency_key,
        actual_check_in_at=_aware(row.actual_check_in_at),
        actual_check_out_at=_aware(row.actual_check_out_at),
        created_at=_aware(row.created_at),
        updated_at=_aware(row.updated_at),
    )


def _copy_booking_to_row(booking: Booking, row: BookingModel) -> None:
    row.room_id = booking.room_id
    row.guest_ref = booking.guest_ref
    row.second_guest_ref = booking.second_guest_ref
    row.check_in = booking.check_in
    row.check_out = booking.check_out
    row.guests = booking.guests
    row.status = booking.status.value
    row.total_amount = booking.total_amount
    row.paid_amount = booking.paid_amount
    row.notes = booking.notes
    row.special_requests = booking.special_requests
    row.idempotency_key = booking.idempotency_key
    row.actual_check_in_at = booking.actual_check_in_at
    row.actual_check_out_at = booking.actual_check_out_at
    row.created_at = booking.created_at
    row.updated_at = booking.updated_at


class SqlAlchemyRoomRepository(RoomRepository):
    def __init__(self, session: AsyncSession):
        self.session = session

    @_translate_errors
    async def get(self, room_id: UUID) -> Room | None:
        row = await self.session.get(RoomModel, room_id)
        return _room_from_row(row) if row else None

    @_translate_errors
    async def get_by_number(self, number: str) -> Room | None:
        stmt = select(RoomModel).where(RoomModel.number == number)
        result = await self.session.execute(stmt)
        row = result.scalar_one_or_none()
        return _room_from_row(row) if row else None

    @_translate_errors
    async def add(self, room: Room) -> None:
        row = RoomModel(id=room.id)
        _copy_room_to_row(room, row)
        self.session.add(row)
        await self.session.flush()

    @_translate_errors
    async def update(self, room: Room) -> None:
        row = await self.session.get(RoomModel, room.id)
        if row is None:
            raise PersistenceError(f"Room {room.id} vanished during update")
        _copy_room_to_row(room, row)
        await self.session.flush()

    @_translate_errors
    async def delete(self, room_id: UUID) -> None:
        await self.session.execute(delete(RoomModel).where(RoomModel.id == room_id))

    @_translate_errors
    async def search(
        self,
        building: str | None = None,
        floor: int | None = None,
        status: RoomStatus | None = None,
        min_capacity: int | None = None,
    ) -> list[Room]:
        stmt = select(RoomModel)
        if building is not None:
            stmt = stmt.where(RoomModel.building == building)
        if floor is not None:
            stmt = stmt.where(RoomModel.floor == floor)
        if status is not None:
            stmt = stmt.where(RoomModel.status == status.value)
        if min_capacity is not None:
            stmt = stmt.where(RoomModel.capacity >= min_capacity)
        stmt = stmt.order_by(RoomModel.building, RoomModel.floor, RoomModel.number)
        result = await self.session.execute(stmt)
        return [_room_from_row(row) for row in result.scalars()]


class SqlAlchemyBookingRepository(BookingRepository):
    def __init__(self, session: AsyncSession):
        self.session = session

    @_translate_errors
    async def get(self, booking_id: UUID) -> Booking | None:
        row = await self.session.get(BookingModel, booking_id)
        return _booking_from_row(row) if row else None

    @_translate_errors
    async def add(self, booking: Booking) -> None:
        row = BookingModel(id=booking.id)
        _copy_booking_to_row(booking, row)
        self.session.add(row)
        await self.session.flush()

    @_translate_errors
    async def update(self, booking: Booking) -> None:
        row = await self.session.get(BookingModel, booking.id)
        if row is None:
            raise PersistenceError(f"Booking {booking.id} vanished during update")
        _copy_booking_to_row(booking, row)
        await self.session.flush()

    @_translate_errors
    async def delete(self, booking_id: UUID) -> None:
        await self.session.execute(delete(BookingModel).where(BookingModel.id == booking_id))

    @_translate_errors
    async def list_for_room(
        self,
        room_id: UUID,
        statuses: frozenset[BookingStatus] | None = None,
    ) -> list[Booking]:
        stmt = select(BookingModel).where(BookingModel.room_id == room_id)
        if statuses is not None:
            stmt = stmt.where(BookingModel.status.in_([status.value for status in statuses]))
        stmt = stmt.order_by(BookingModel.check_in)
        result = await self.session.execute(stmt)
        return [_booking_from_row(row) for row in result.scalars()]

    @_translate_errors
    async def list_by_status(self, statuses: frozenset[BookingStatus]) -> list[Booking]:
        stmt = (
            select(BookingModel)
            .where(BookingModel.status.in_([status.value for status in statuses]))
            .order_by(BookingModel.check_in, BookingModel.id)
        )
        result = await self.session.execute(stmt)
        return [_booking_from_row(row) for row in result.scalars()]

    @_translate_errors
    async def search(self, criteria: BookingFilter) -> list[Booking]:
        stmt = select(BookingModel)
        if criteria.room_id is not None:
            stmt = stmt.where(BookingModel.room_id == criteria.room_id)
        if criteria.guest_ref is not None:
            stmt = stmt.where(
                (BookingModel.guest_ref == criteria.guest_ref)
                | (BookingModel.second_guest_ref == criteria.guest_ref)
            )
        if criteria.status is not None:
            stmt = stmt.where(BookingModel.status == criteria.status.value)
        # Same half-open rule as the interval store
        if criteria.date_from is not None:
            stmt = stmt.where(BookingModel.check_out > criteria.date_from)
        if criteria.date_to is not None:
            stmt = stmt.where(BookingModel.check_in < criteria.date_to)
        stmt = (
            stmt.order_by(BookingModel.check_in, BookingModel.id)
            .offset(criteria.offset)
            .limit(criteria.limit)
        )
        result = await self.session.execute(stmt)
        return [_booking_from_row(row) for row in result.scalars()]


class SqlAlchemyIdempotencyRepository(IdempotencyRepository):
    def __init__(self, session: AsyncSession):
        self.session = session

    @_translate_errors
    async def get(self, key: str, method: str, now: datetime) -> IdempotencyEntry | None:
        stmt = select(IdempotencyRecord).where(
            IdempotencyRecord.idempotency_key == key,
            IdempotencyRecord.method == method,
            IdempotencyRecord.expires_at > now
        )
        result = await self.session.execute(stmt)
        record = result.scalar_one_or_none()
        if record is None:
            return None
        return IdempotencyEntry(
            key=record.idempotency_key,
            method=record.method,
            request_hash=record.request_body_hash,
            booking_id=record.booking_id,
            expires_at=_aware(record.expires_at),
        )

    @_translate_errors
    async def add(self, entry: IdempotencyEntry) -> None:
        # An expired record for the same key would trip the unique constraint
        await self.session.execute(
            delete(IdempotencyRecord).where(
                IdempotencyRecord.idempotency_key == entry.key,
                IdempotencyRecord.method == entry.method,
            )
        )
        self.session.add(
            IdempotencyRecord(
                idempotency_key=entry.key,
                method=entry.method,
                request_body_hash=entry.request_hash,
                booking_id=entry.booking_id,
                expires_at=entry.expires_at,
            )
        )

    @_translate_errors
    async def purge_expired(self, now: datetime) -> int:
        result = await self.session.execute(
            delete(IdempotencyRecord).where(IdempotencyRecord.expires_at <= now)
        )
        return result.rowcount or 0


class SqlAlchemyUnitOfWork(UnitOfWork):
    """Unit of work over one ``AsyncSession`` transaction."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory
        self.session: AsyncSession | None = None

    async def begin(self) -> None:
        self.session = self.session_factory()
        self.rooms = SqlAlchemyRoomRepository(self.session)
        self.bookings = SqlAlchemyBookingRepository(self.session)
        self.idempotency = SqlAlchemyIdempotencyRepository(self.session)

    async def commit(self) -> None:
        try:
            await self.session.commit()
        except SQLAlchemyError as e:
            logger.error(
                "Database commit failed",
                extra={"error": str(e)},
                exc_info=True
            )
            await self.session.rollback()
            raise PersistenceError(str(e)) from e

    async def rollback(self) -> None:
        if self.session is not None:
            await self.session.rollback()

    async def lock_keys(self, keys: Iterable[str]) -> None:
        """
        Serialize engines sharing the database with PostgreSQL advisory locks.

        The locks are released automatically at transaction end. Other
        dialects are run by a single engine process and take no lock.
        """
        if self.session.bind is None or self.session.bind.dialect.name != "postgresql":
            return
        try:
            for key in sorted(set(keys)):
                await self.session.execute(
                    text("SELECT pg_advisory_xact_lock(hashtext(:key))"),
                    {"key": key}
                )
        except SQLAlchemyError as e:
            logger.error(
                "Advisory lock failed",
                extra={"error": str(e)},
                exc_info=True
            )
            raise PersistenceError(str(e)) from e

    async def close(self) -> None:
        if self.session is not None:
            await self.session.close()
            self.session = None
