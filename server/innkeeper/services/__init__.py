"""Service layer package."""

from .allocation_service import ReservationAllocator
from .audit_service import AuditEmitter, InMemoryAuditSink, LoggingAuditSink
from .availability_service import AvailabilityChecker
from .idempotency_service import IdempotencyService
from .lifecycle_service import BookingLifecycleManager
from .reservation_engine import ReservationEngine, RoomSpec
from .room_state_service import RoomStateTracker

__all__ = [
    "AuditEmitter",
    "AvailabilityChecker",
    "BookingLifecycleManager",
    "IdempotencyService",
    "InMemoryAuditSink",
    "LoggingAuditSink",
    "ReservationAllocator",
    "ReservationEngine",
    "RoomSpec",
    "RoomStateTracker",
]
