"""Room model definition."""

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import JSON, CheckConstraint, DateTime, Integer, Numeric, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database import Base

if TYPE_CHECKING:
    from .booking import BookingModel


class RoomModel(Base):
    """Room row; ``status`` caches the derived status."""

    __tablename__ = "rooms"

    # Primary key
    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    # Room identity and layout
    number: Mapped[str] = mapped_column(String(16), nullable=False, unique=True, index=True)
    building: Mapped[str] = mapped_column(String(16), nullable=False)
    floor: Mapped[int] = mapped_column(Integer, nullable=False)
    capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    room_type: Mapped[str] = mapped_column(String(32), nullable=False)
    nightly_rate: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    amenities: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    # Cached status and operator override
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="available", index=True)
    override_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    override_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    override_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

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
        CheckConstraint("capacity > 0", name="ck_room_capacity_positive"),
        CheckConstraint("nightly_rate >= 0", name="ck_room_nightly_rate_non_negative"),
        CheckConstraint("length(number) > 0", name="ck_room_number_not_empty"),
    )

    # Relationships
    bookings: Mapped[list["BookingModel"]] = relationship("BookingModel", back_populates="room")

    def __repr__(self) -> str:
        return f"<RoomModel(id={self.id}, number='{self.number}', status={self.status})>"
