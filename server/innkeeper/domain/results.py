"""Tagged operation results and rejection reasons."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, TypeVar

T = TypeVar("T")


class ReasonCategory(str, Enum):
    """How a caller should react to a rejection."""
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    STATE = "state"
    INFRASTRUCTURE = "infrastructure"


class RejectionReason(str, Enum):
    """Reason codes returned by the engine."""

    # Validation
    DATE_RANGE_INVALID = "DATE_RANGE_INVALID"
    CAPACITY_EXCEEDED = "CAPACITY_EXCEEDED"
    GUEST_COUNT_INVALID = "GUEST_COUNT_INVALID"
    PAYMENT_INVALID = "PAYMENT_INVALID"

    # Not found
    ROOM_NOT_FOUND = "ROOM_NOT_FOUND"
    BOOKING_NOT_FOUND = "BOOKING_NOT_FOUND"

    # Conflict
    INTERVAL_CONFLICT = "INTERVAL_CONFLICT"
    ROOM_BLOCKED = "ROOM_BLOCKED"
    IDEMPOTENCY_KEY_MISMATCH = "IDEMPOTENCY_KEY_MISMATCH"

    # State
    ALREADY_TERMINAL = "ALREADY_TERMINAL"
    NOT_CHECKED_IN = "NOT_CHECKED_IN"
    ROOM_HAS_ACTIVE_OCCUPANT = "ROOM_HAS_ACTIVE_OCCUPANT"
    ROOM_NOT_BLOCKED = "ROOM_NOT_BLOCKED"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    NO_SHOW_TOO_EARLY = "NO_SHOW_TOO_EARLY"
    ROOM_HAS_ACTIVE_BOOKINGS = "ROOM_HAS_ACTIVE_BOOKINGS"
    ROOM_NUMBER_TAKEN = "ROOM_NUMBER_TAKEN"
    ROOM_HAS_HISTORY = "ROOM_HAS_HISTORY"

    # Infrastructure
    LOCK_TIMEOUT = "LOCK_TIMEOUT"
    PERSISTENCE_UNAVAILABLE = "PERSISTENCE_UNAVAILABLE"

    @property
    def category(self) -> ReasonCategory:
        return _CATEGORIES[self]

    @property
    def retryable(self) -> bool:
        return self.category in (ReasonCategory.CONFLICT, ReasonCategory.INFRASTRUCTURE)


_CATEGORIES = {
    RejectionReason.DATE_RANGE_INVALID: ReasonCategory.VALIDATION,
    RejectionReason.CAPACITY_EXCEEDED: ReasonCategory.VALIDATION,
    RejectionReason.GUEST_COUNT_INVALID: ReasonCategory.VALIDATION,
    RejectionReason.PAYMENT_INVALID: ReasonCategory.VALIDATION,
    RejectionReason.ROOM_NOT_FOUND: ReasonCategory.NOT_FOUND,
    RejectionReason.BOOKING_NOT_FOUND: ReasonCategory.NOT_FOUND,
    RejectionReason.INTERVAL_CONFLICT: ReasonCategory.CONFLICT,
    RejectionReason.ROOM_BLOCKED: ReasonCategory.CONFLICT,
    RejectionReason.IDEMPOTENCY_KEY_MISMATCH: ReasonCategory.CONFLICT,
    RejectionReason.ALREADY_TERMINAL: ReasonCategory.STATE,
    RejectionReason.NOT_CHECKED_IN: ReasonCategory.STATE,
    RejectionReason.ROOM_HAS_ACTIVE_OCCUPANT: ReasonCategory.STATE,
    RejectionReason.ROOM_NOT_BLOCKED: ReasonCategory.STATE,
    RejectionReason.INVALID_TRANSITION: ReasonCategory.STATE,
    RejectionReason.NO_SHOW_TOO_EARLY: ReasonCategory.STATE,
    RejectionReason.ROOM_HAS_ACTIVE_BOOKINGS: ReasonCategory.STATE,
    RejectionReason.ROOM_NUMBER_TAKEN: ReasonCategory.STATE,
    RejectionReason.ROOM_HAS_HISTORY: ReasonCategory.STATE,
    RejectionReason.LOCK_TIMEOUT: ReasonCategory.INFRASTRUCTURE,
    RejectionReason.PERSISTENCE_UNAVAILABLE: ReasonCategory.INFRASTRUCTURE,
}


class Outcome(str, Enum):
    """Result tag."""
    OK = "ok"
    REJECTED = "rejected"
    FAILED = "failed"


@dataclass(frozen=True)
class Result(Generic[T]):
    """
    Outcome of an engine operation.

    ``REJECTED`` means the business said no; ``FAILED`` means the engine
    could not decide (lock timeout, persistence outage) and the caller may
    try again later.
    """

    outcome: Outcome
    value: T | None = None
    reason: RejectionReason | None = None
    detail: str | None = None
    context: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def success(cls, value: T | None = None) -> "Result[T]":
        return cls(Outcome.OK, value=value)

    @classmethod
    def reject(cls, reason: RejectionReason, detail: str | None = None, **context: Any) -> "Result[T]":
        outcome = Outcome.FAILED if reason.category is ReasonCategory.INFRASTRUCTURE else Outcome.REJECTED
        return cls(outcome, reason=reason, detail=detail, context=context)

    @property
    def ok(self) -> bool:
        return self.outcome is Outcome.OK

    @property
    def rejected(self) -> bool:
        return self.outcome is Outcome.REJECTED

    @property
    def failed(self) -> bool:
        return self.outcome is Outcome.FAILED

    def unwrap(self) -> T:
        """Return the value of a successful result."""
        if not self.ok:
            raise ValueError(f"Result is {self.outcome.value}: {self.reason}")
        return self.value  # type: ignore[return-value]


AvailabilityResult = Result[None]
