"""Half-open date intervals and the per-room interval store."""

from bisect import insort
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from datetime import date, timedelta
from uuid import UUID


@dataclass(frozen=True, order=True)
class DateInterval:
    """
    A stay expressed as the half-open date range ``[start, end)``.

    The end date is the checkout day and is never occupied, so a checkout
    and a check-in on the same calendar day do not overlap.
    """

    start: date
    end: date

    @property
    def is_valid(self) -> bool:
        """Return True if the interval covers at least one night."""
        return self.end > self.start

    @property
    def nights(self) -> int:
        """Number of nights covered by the interval."""
        return max((self.end - self.start).days, 0)

    def overlaps(self, other: "DateInterval") -> bool:
        """Return True if both intervals share at least one night."""
        return self.start < other.end and other.start < self.end

    def contains(self, day: date) -> bool:
        """Return True if ``day`` is one of the nights of this interval."""
        return self.start <= day < self.end

    def days(self) -> Iterator[date]:
        """Iterate over the occupied nights."""
        for offset in range(self.nights):
            yield self.start + timedelta(days=offset)

    def __str__(self) -> str:
        return f"[{self.start.isoformat()}, {self.end.isoformat()})"


@dataclass(frozen=True, order=True)
class Claim:
    """A booking's hold on a room for an interval."""

    interval: DateInterval
    booking_id: UUID


class IntervalView:
    """Restartable, read-only iterable over a snapshot of a room's claims."""

    def __init__(self, claims: list[Claim]):
        self._claims = tuple(claims)

    def __iter__(self) -> Iterator[Claim]:
        return iter(self._claims)

    def __len__(self) -> int:
        return len(self._claims)


class IntervalStore:
    """
    Authoritative record of claimed intervals per room.

    Only bookings in ``confirmed`` or ``checked_in`` state are stored. The
    store performs no locking of its own; callers mutate it only while
    holding the room's lock.
    """

    def __init__(self) -> None:
        self._claims: dict[UUID, list[Claim]] = {}
        self._index: dict[UUID, UUID] = {}

    def __len__(self) -> int:
        return len(self._index)

    def load(self, claims: Iterable[tuple[UUID, UUID, DateInterval]]) -> int:
        """
        Replace the store contents with the given ``(room_id, booking_id, interval)`` rows.

        Returns:
            Number of claims loaded
        """
        self._claims.clear()
        self._index.clear()
        count = 0
        for room_id, booking_id, interval in claims:
            self.insert(room_id, booking_id, interval)
            count += 1
        return count

    def load_room(self, room_id: UUID, claims: Iterable[tuple[UUID, DateInterval]]) -> int:
        """
        Replace one room's claims with freshly read ``(booking_id, interval)`` rows.

        A booking indexed under another room is moved, since it can only
        claim one room at a time.

        Returns:
            Number of claims loaded
        """
        for claim in self._claims.pop(room_id, []):
            self._index.pop(claim.booking_id, None)
        count = 0
        for booking_id, interval in claims:
            previous = self._index.get(booking_id)
            if previous is not None:
                self.remove(previous, booking_id)
            self.insert(room_id, booking_id, interval)
            count += 1
        return count

    def intervals_for(self, room_id: UUID) -> IntervalView:
        """Return the room's claims ordered by start date."""
        return IntervalView(self._claims.get(room_id, []))

    def overlaps(
        self,
        room_id: UUID,
        interval: DateInterval,
        exclude: UUID | None = None,
    ) -> bool:
        """Return True if any claim on the room intersects ``interval``."""
        return any(True for _ in self._overlapping(room_id, interval, exclude))

    def conflicts(
        self,
        room_id: UUID,
        interval: DateInterval,
        exclude: UUID | None = None,
    ) -> list[UUID]:
        """Return ids of the bookings whose claims intersect ``interval``."""
        return [claim.booking_id for claim in self._overlapping(room_id, interval, exclude)]

    def room_of(self, booking_id: UUID) -> UUID | None:
        """Return the room a booking currently claims, if any."""
        return self._index.get(booking_id)

    def insert(self, room_id: UUID, booking_id: UUID, interval: DateInterval) -> None:
        """Add a claim; a booking may hold at most one claim."""
        if booking_id in self._index:
            raise ValueError(f"Booking {booking_id} already holds a claim")
        insort(self._claims.setdefault(room_id, []), Claim(interval, booking_id))
        self._index[booking_id] = room_id

    def remove(self, room_id: UUID, booking_id: UUID) -> DateInterval | None:
        """Drop a booking's claim on a room and return its interval."""
        claims = self._claims.get(room_id, [])
        for position, claim in enumerate(claims):
            if claim.booking_id == booking_id:
                del claims[position]
                if not claims:
                    del self._claims[room_id]
                self._index.pop(booking_id, None)
                return claim.interval
        return None

    def replace(self, room_id: UUID, booking_id: UUID, new_interval: DateInterval) -> None:
        """Swap a booking's interval on the same room."""
        self.remove(room_id, booking_id)
        self.insert(room_id, booking_id, new_interval)

    def _overlapping(
        self,
        room_id: UUID,
        interval: DateInterval,
        exclude: UUID | None,
    ) -> Iterator[Claim]:
        for claim in self._claims.get(room_id, []):
            # Claims are sorted by start, nothing later can overlap
            if claim.interval.start >= interval.end:
                break
            if claim.booking_id != exclude and claim.interval.overlaps(interval):
                yield claim
