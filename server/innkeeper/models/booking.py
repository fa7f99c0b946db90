"""Booking model definition."""

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, Date, DateTime, ForeignKey, Integer, Numeric, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database import Base

if TYPE_CHECKING:
    from .room import RoomModel


class BookingModel(Base):
    """Booking row; cancelled and completed stays are kept for history."""

    __tablename__ = "bookings"

    # Primary key
    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    # Foreign key to room
    room_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("rooms.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )

    # Guests are owned by another system
    guest_ref: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    second_guest_ref: Mapped[str | None] = mapped_column(String(128), nullable=True)

    # Stay
    check_in: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    check_out: Mapped[date] = mapped_column(Date, nullable=False)
    guests: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending", index=True)
    actual_check_in_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    actual_check_out_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Amounts are recorded only
    total_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    paid_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0"))

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    special_requests: Mapped[str | None] = mapped_column(Text, nullable=True)
    idempotency_key: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        server_onupdate=func.now()
    )

    # Constraints
    __table_args__ = (
        CheckConstraint("check_out > check_in", name="ck_booking_check_out_after_check_in"),
        CheckConstraint("guests > 0", name="ck_booking_guests_positive"),
        CheckConstraint("total_amount >= 0", name="ck_booking_total_amount_non_negative"),
        CheckConstraint("paid_amount >= 0", name="ck_booking_paid_amount_non_negative"),
        CheckConstraint("length(guest_ref) > 0", name="ck_booking_guest_ref_not_empty"),
    )

    # Relationships
    room: Mapped["RoomModel"] = relationship("RoomModel", back_populates="bookings")

    def __repr__(self) -> str:
        return (
            f"<BookingModel(id={self.id}, room_id={self.room_id}, "
            f"check_in={self.check_in}, check_out={self.check_out}, status={self.status})>"
        )
