"""Persistence interfaces the reservation engine depends on."""

from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import date, datetime
from types import TracebackType
from uuid import UUID

from ..domain.models import Booking, BookingStatus, Room, RoomStatus


class PersistenceError(Exception):
    """Raised by repositories when the backing store cannot serve a request."""


@dataclass
class IdempotencyEntry:
    """Booking created under a client-supplied idempotency token."""

    key: str
    method: str
    request_hash: str
    booking_id: UUID
    expires_at: datetime


@dataclass
class BookingFilter:
    """Criteria for listing bookings."""

    room_id: UUID | None = None
    guest_ref: str | None = None
    status: BookingStatus | None = None
    date_from: date | None = None
    date_to: date | None = None
    limit: int = 50
    offset: int = 0


class RoomRepository(ABC):
    """Repository for rooms."""

    @abstractmethod
    async def get(self, room_id: UUID) -> Room | None:
        raise NotImplementedError

    @abstractmethod
    async def get_by_number(self, number: str) -> Room | None:
        raise NotImplementedError

    @abstractmethod
    async def add(self, room: Room) -> None:
        raise NotImplementedError

    @abstractmethod
    async def update(self, room: Room) -> None:
        raise NotImplementedError

    @abstractmethod
    async def delete(self, room_id: UUID) -> None:
        raise NotImplementedError

    @abstractmethod
    async def search(
        self,
        building: str | None = None,
        floor: int | None = None,
        status: RoomStatus | None = None,
        min_capacity: int | None = None,
    ) -> list[Room]:
        """Rooms ordered by building, floor and number."""
        raise NotImplementedError


class BookingRepository(ABC):
    """Repository for bookings."""

    @abstractmethod
    async def get(self, booking_id: UUID) -> Booking | None:
        raise NotImplementedError

    @abstractmethod
    async def add(self, booking: Booking) -> None:
        raise NotImplementedError

    @abstractmethod
    async def update(self, booking: Booking) -> None:
        raise NotImplementedError

    @abstractmethod
    async def delete(self, booking_id: UUID) -> None:
        """Physically remove a booking; only used for discarded pending bookings."""
        raise NotImplementedError

    @abstractmethod
    async def list_for_room(
        self,
        room_id: UUID,
        statuses: frozenset[BookingStatus] | None = None,
    ) -> list[Booking]:
        raise NotImplementedError

    @abstractmethod
    async def list_by_status(self, statuses: frozenset[BookingStatus]) -> list[Booking]:
        raise NotImplementedError

    @abstractmethod
    async def search(self, criteria: BookingFilter) -> list[Booking]:
        """Bookings matching the filter ordered by check-in date."""
        raise NotImplementedError


class IdempotencyRepository(ABC):
    """Repository for idempotency tokens."""

    @abstractmethod
    async def get(self, key: str, method: str, now: datetime) -> IdempotencyEntry | None:
        """Return the unexpired entry for the key and method."""
        raise NotImplementedError

    @abstractmethod
    async def add(self, entry: IdempotencyEntry) -> None:
        raise NotImplementedError

    @abstractmethod
    async def purge_expired(self, now: datetime) -> int:
        raise NotImplementedError


class UnitOfWork(ABC):
    """
    Transaction boundary over the repositories.

    Used as an async context manager; leaving the block without calling
    :meth:`commit` rolls back every change made through it.
    """

    rooms: RoomRepository
    bookings: BookingRepository
    idempotency: IdempotencyRepository

    async def __aenter__(self) -> "UnitOfWork":
        await self.begin()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.rollback()
        await self.close()

    @abstractmethod
    async def begin(self) -> None:
        raise NotImplementedError

    @abstractmethod
    async def commit(self) -> None:
        raise NotImplementedError

    @abstractmethod
    async def rollback(self) -> None:
        """Discard uncommitted changes; a no-op after commit."""
        raise NotImplementedError

    async def lock_keys(self, keys: Iterable[str]) -> None:
        """
        Take store-level locks on ``keys`` for the rest of the transaction.

        The locks are held until the unit of work ends. Backends that are
        never shared between processes may leave this as a no-op.
        """

    async def close(self) -> None:
        """Release resources held by the unit of work."""


UnitOfWorkFactory = Callable[[], UnitOfWork]
