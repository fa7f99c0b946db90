"""Room-related Pydantic schemas."""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from ..domain.models import RoomStatus, RoomType


class ProvisionRoomRequest(BaseModel):
    """Request schema for adding a room to the inventory."""

    number: str = Field(..., min_length=1, max_length=20, description="Human-facing room number")
    building: str = Field(..., min_length=1, max_length=50, description="Building name")
    floor: int = Field(..., ge=0, le=200, description="Floor")
    capacity: int = Field(..., ge=1, le=20, description="Maximum number of guests")
    room_type: RoomType = Field(..., description="Room category")
    nightly_rate: Decimal = Field(..., ge=0, max_digits=10, decimal_places=2, description="Rate per night")
    description: Optional[str] = Field(None, max_length=2000, description="Free-text description")
    amenities: List[str] = Field(default_factory=list, description="Amenity labels")


class RoomIdRequest(BaseModel):
    """Request schema addressing a single room."""

    room_id: UUID = Field(..., description="Room ID")


class ListRoomsRequest(BaseModel):
    """Request schema for listing rooms."""

    building: Optional[str] = Field(None, description="Only rooms in this building")
    floor: Optional[int] = Field(None, description="Only rooms on this floor")
    status: Optional[RoomStatus] = Field(None, description="Only rooms with this derived status")
    min_capacity: Optional[int] = Field(None, ge=1, description="Only rooms sleeping at least this many")


class BlockRoomRequest(BaseModel):
    """Request schema for putting an override on a room."""

    room_id: UUID = Field(..., description="Room to block")
    reason: Optional[str] = Field(None, max_length=500, description="Why the room is taken out of service")
    kind: Literal["blocked", "maintenance", "reserved"] = Field("blocked", description="Override status to apply")


class RoomCalendarRequest(BaseModel):
    """Request schema for a room's claimed intervals."""

    room_id: UUID = Field(..., description="Room ID")
    date_from: Optional[date] = Field(None, description="Window start (inclusive)")
    date_to: Optional[date] = Field(None, description="Window end (exclusive)")


class SearchRoomsRequest(BaseModel):
    """Request schema for finding rooms free over a stay."""

    check_in: date = Field(..., description="Arrival date")
    check_out: date = Field(..., description="Departure date")
    guests: int = Field(..., description="Number of guests")
    building: Optional[str] = Field(None, description="Only rooms in this building")


class Room(BaseModel):
    """Room response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(..., description="Unique room ID")
    number: str = Field(..., description="Room number")
    building: str = Field(..., description="Building name")
    floor: int = Field(..., description="Floor")
    capacity: int = Field(..., description="Maximum number of guests")
    room_type: RoomType = Field(..., description="Room category")
    nightly_rate: Decimal = Field(..., description="Rate per night")
    status: RoomStatus = Field(..., description="Derived room status")
    override_status: Optional[RoomStatus] = Field(None, description="Operator override, if any")
    override_reason: Optional[str] = Field(None, description="Reason given for the override")
    override_at: Optional[datetime] = Field(None, description="When the override was set")
    description: Optional[str] = Field(None, description="Free-text description")
    amenities: List[str] = Field(default_factory=list, description="Amenity labels")
    created_at: datetime = Field(..., description="Creation time (ISO 8601)")
    updated_at: datetime = Field(..., description="Last update time (ISO 8601)")


class RoomList(BaseModel):
    """List of rooms."""

    items: List[Room] = Field(..., description="Rooms ordered by building, floor and number")


class CalendarEntry(BaseModel):
    """A claimed interval on a room."""

    booking_id: UUID = Field(..., description="Booking holding the interval")
    check_in: date = Field(..., description="First night")
    check_out: date = Field(..., description="Departure day, not occupied")


class RoomCalendar(BaseModel):
    """Claimed intervals of a room."""

    room_id: UUID = Field(..., description="Room ID")
    entries: List[CalendarEntry] = Field(..., description="Claims ordered by check-in")
