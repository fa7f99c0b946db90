"""Audit events emitted after committed mutations."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Protocol, runtime_checkable
from uuid import UUID, uuid4

from .models import utcnow


class AuditAction(str, Enum):
    """Closed set of audited actions."""
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    CHECK_IN = "check_in"
    CHECK_OUT = "check_out"
    CANCEL_BOOKING = "cancel_booking"
    EXTEND_BOOKING = "extend_booking"
    LOGIN = "login"
    LOGOUT = "logout"


class EntityType(str, Enum):
    ROOM = "Room"
    BOOKING = "Booking"


@dataclass(frozen=True)
class AuditEvent:
    """Immutable record of who changed what."""

    actor: str
    action: AuditAction
    entity_type: EntityType
    entity_id: UUID
    before: dict[str, Any] | None
    after: dict[str, Any] | None
    timestamp: datetime = field(default_factory=utcnow)
    id: UUID = field(default_factory=uuid4)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "actor": self.actor,
            "action": self.action.value,
            "entity_type": self.entity_type.value,
            "entity_id": str(self.entity_id),
            "before": self.before,
            "after": self.after,
            "timestamp": self.timestamp.isoformat(),
        }


@runtime_checkable
class AuditSink(Protocol):
    """Audit storage owned outside the engine."""

    async def record(self, event: AuditEvent) -> None:
        ...
