"""Domain entities, value objects and pure rules of the reservation engine."""

from .audit import AuditAction, AuditEvent, AuditSink, EntityType
from .intervals import Claim, DateInterval, IntervalStore
from .models import (
    Booking,
    BookingStatus,
    ReservationRequest,
    Room,
    RoomStatus,
    RoomType,
)
from .results import Outcome, ReasonCategory, RejectionReason, Result
from .status import derive_status

__all__ = [
    # Intervals
    "Claim",
    "DateInterval",
    "IntervalStore",

    # Entities
    "Booking",
    "BookingStatus",
    "ReservationRequest",
    "Room",
    "RoomStatus",
    "RoomType",
    "derive_status",

    # Results
    "Outcome",
    "ReasonCategory",
    "RejectionReason",
    "Result",

    # Audit
    "AuditAction",
    "AuditEvent",
    "AuditSink",
    "EntityType",
]
