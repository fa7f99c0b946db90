"""Room and booking domain entities."""

from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from .intervals import DateInterval


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


class RoomType(str, Enum):
    """Room category."""
    SINGLE = "single"
    DOUBLE = "double"
    DOUBLE_WITH_BALCONY = "double_with_balcony"
    FAMILY = "family"
    LUXURY = "luxury"
    LUXURY_2X = "luxury_2x"


class RoomStatus(str, Enum):
    """Room status enumeration."""
    AVAILABLE = "available"
    BOOKED = "booked"
    OCCUPIED = "occupied"
    RESERVED = "reserved"
    BLOCKED = "blocked"
    MAINTENANCE = "maintenance"


# Statuses an operator sets by hand; booking activity never clears them
OVERRIDE_STATUSES = frozenset({RoomStatus.BLOCKED, RoomStatus.MAINTENANCE, RoomStatus.RESERVED})


class BookingStatus(str, Enum):
    """Booking status enumeration."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CHECKED_IN = "checked_in"
    CHECKED_OUT = "checked_out"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @property
    def claims_room(self) -> bool:
        """Whether bookings in this status hold their interval in the store."""
        return self in CLAIMING_STATUSES


TERMINAL_STATUSES = frozenset({BookingStatus.CHECKED_OUT, BookingStatus.CANCELLED, BookingStatus.NO_SHOW})
CLAIMING_STATUSES = frozenset({BookingStatus.CONFIRMED, BookingStatus.CHECKED_IN})


@dataclass
class Room:
    """A bookable hotel room."""

    number: str
    building: str
    floor: int
    capacity: int
    room_type: RoomType
    nightly_rate: Decimal
    id: UUID = field(default_factory=uuid4)
    status: RoomStatus = RoomStatus.AVAILABLE
    override_status: RoomStatus | None = None
    override_reason: str | None = None
    override_at: datetime | None = None
    description: str | None = None
    amenities: list[str] = field(default_factory=list)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def is_blocked(self) -> bool:
        return self.override_status is not None

    def snapshot(self) -> dict[str, Any]:
        """JSON-friendly view used in audit events."""
        return {
            "id": str(self.id),
            "number": self.number,
            "status": self.status.value,
            "override_status": self.override_status.value if self.override_status else None,
            "override_reason": self.override_reason,
        }


@dataclass
class Booking:
    """A guest's stay in a room."""

    room_id: UUID
    guest_ref: str
    check_in: date
    check_out: date
    guests: int
    id: UUID = field(default_factory=uuid4)
    status: BookingStatus = BookingStatus.CONFIRMED
    second_guest_ref: str | None = None
    total_amount: Decimal = Decimal("0")
    paid_amount: Decimal = Decimal("0")
    notes: str | None = None
    special_requests: str | None = None
    idempotency_key: str | None = None
    actual_check_in_at: datetime | None = None
    actual_check_out_at: datetime | None = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def interval(self) -> DateInterval:
        return DateInterval(self.check_in, self.check_out)

    @property
    def nights(self) -> int:
        return self.interval.nights

    @property
    def remaining_amount(self) -> Decimal:
        return self.total_amount - self.paid_amount

    def append_note(self, line: str) -> None:
        """Append a line to the free-text notes."""
        self.notes = f"{self.notes}\n\n{line}" if self.notes else line

    def touch(self) -> None:
        self.updated_at = utcnow()

    def snapshot(self) -> dict[str, Any]:
        """JSON-friendly view used in audit events."""
        return _jsonable(asdict(self))


@dataclass
class ReservationRequest:
    """A caller's request for a room over a stay."""

    room_id: UUID
    check_in: date
    check_out: date
    guests: int
    guest_ref: str
    second_guest_ref: str | None = None
    total_amount: Decimal = Decimal("0")
    paid_amount: Decimal = Decimal("0")
    notes: str | None = None
    special_requests: str | None = None
    idempotency_key: str | None = None
    # Create the booking pending instead of confirmed
    require_confirmation: bool = False

    @property
    def interval(self) -> DateInterval:
        return DateInterval(self.check_in, self.check_out)

    def fingerprint(self) -> dict[str, Any]:
        """Payload compared when an idempotency token is reused."""
        data = _jsonable(asdict(self))
        data.pop("idempotency_key")
        return data


def _jsonable(data: dict[str, Any]) -> dict[str, Any]:
    for key, value in data.items():
        if isinstance(value, (UUID, Decimal)):
            data[key] = str(value)
        elif isinstance(value, (date, datetime)):
            data[key] = value.isoformat()
        elif isinstance(value, Enum):
            data[key] = value.value
    return data
