"""Booking-related Pydantic schemas."""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from ..domain.models import BookingStatus


class CheckAvailabilityRequest(BaseModel):
    """Request schema for checking a room over a stay."""

    room_id: UUID = Field(..., description="Room to check")
    check_in: date = Field(..., description="Arrival date")
    check_out: date = Field(..., description="Departure date")
    guests: int = Field(..., description="Number of guests")


class AvailabilityResponse(BaseModel):
    """Availability decision."""

    available: bool = Field(..., description="Whether the room can take the stay")
    reason: Optional[str] = Field(None, description="Reason code when not available")
    detail: Optional[str] = Field(None, description="Human-readable explanation")


class CreateBookingRequest(BaseModel):
    """Request schema for creating a booking."""

    room_id: UUID = Field(..., description="Room to book")
    check_in: date = Field(..., description="Arrival date")
    check_out: date = Field(..., description="Departure date")
    guests: int = Field(..., description="Number of guests")
    guest_ref: str = Field(..., min_length=1, max_length=128, description="Primary guest reference")
    second_guest_ref: Optional[str] = Field(None, max_length=128, description="Second guest reference")
    total_amount: Decimal = Field(Decimal("0"), ge=0, max_digits=10, decimal_places=2, description="Agreed total")
    paid_amount: Decimal = Field(Decimal("0"), ge=0, max_digits=10, decimal_places=2, description="Amount already paid")
    notes: Optional[str] = Field(None, max_length=4000, description="Free-text notes")
    special_requests: Optional[str] = Field(None, max_length=2000, description="Guest requests")
    require_confirmation: bool = Field(False, description="Create as pending until confirmed")


class BookingIdRequest(BaseModel):
    """Request schema addressing a single booking."""

    booking_id: UUID = Field(..., description="Booking ID")


class CancelBookingRequest(BookingIdRequest):
    """Request schema for cancelling a booking."""

    reason: Optional[str] = Field(None, max_length=500, description="Cancellation reason")


class RejectBookingRequest(BookingIdRequest):
    """Request schema for rejecting a pending booking."""

    reason: Optional[str] = Field(None, max_length=500, description="Rejection reason")


class ExtendBookingRequest(BookingIdRequest):
    """Request schema for extending a stay."""

    new_check_out: date = Field(..., description="New departure date")


class TransferBookingRequest(BookingIdRequest):
    """Request schema for moving a booking to another room."""

    new_room_id: UUID = Field(..., description="Destination room")


class RecordPaymentRequest(BookingIdRequest):
    """Request schema for recording a payment."""

    amount: Decimal = Field(..., max_digits=10, decimal_places=2, description="Amount received")


class ListBookingsRequest(BaseModel):
    """Request schema for listing bookings."""

    room_id: Optional[UUID] = Field(None, description="Only bookings for this room")
    guest_ref: Optional[str] = Field(None, description="Only bookings for this guest")
    status: Optional[BookingStatus] = Field(None, description="Only bookings in this status")
    date_from: Optional[date] = Field(None, description="Only stays ending after this date")
    date_to: Optional[date] = Field(None, description="Only stays starting before this date")
    limit: int = Field(50, ge=1, le=200, description="Page size")
    offset: int = Field(0, ge=0, description="Items to skip")


class Booking(BaseModel):
    """Booking response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(..., description="Unique booking ID")
    room_id: UUID = Field(..., description="Booked room")
    guest_ref: str = Field(..., description="Primary guest reference")
    second_guest_ref: Optional[str] = Field(None, description="Second guest reference")
    check_in: date = Field(..., description="Arrival date")
    check_out: date = Field(..., description="Departure date")
    nights: int = Field(..., description="Number of nights")
    guests: int = Field(..., description="Number of guests")
    status: BookingStatus = Field(..., description="Booking status")
    total_amount: Decimal = Field(..., description="Agreed total")
    paid_amount: Decimal = Field(..., description="Amount paid so far")
    remaining_amount: Decimal = Field(..., description="Amount still due")
    notes: Optional[str] = Field(None, description="Free-text notes")
    special_requests: Optional[str] = Field(None, description="Guest requests")
    actual_check_in_at: Optional[datetime] = Field(None, description="When the guest checked in")
    actual_check_out_at: Optional[datetime] = Field(None, description="When the guest checked out")
    created_at: datetime = Field(..., description="Creation time (ISO 8601)")
    updated_at: datetime = Field(..., description="Last update time (ISO 8601)")


class BookingList(BaseModel):
    """List of bookings."""

    items: List[Booking] = Field(..., description="Bookings ordered by check-in")
