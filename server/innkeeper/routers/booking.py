"""Booking router for reservation and lifecycle operations."""

import logging
from typing import Optional

from fastapi import APIRouter, Request

from ..core.dependencies import Actor, Engine, IdempotencyKey
from ..core.exceptions import raise_for_result
from ..domain.models import ReservationRequest
from ..repositories.base import BookingFilter
from ..schemas.booking import (
    AvailabilityResponse,
    Booking,
    BookingIdRequest,
    BookingList,
    CancelBookingRequest,
    CheckAvailabilityRequest,
    CreateBookingRequest,
    ExtendBookingRequest,
    ListBookingsRequest,
    RecordPaymentRequest,
    RejectBookingRequest,
    TransferBookingRequest,
)
from ..schemas.common import PROBLEM_RESPONSES
from ..services.reservation_engine import ReservationEngine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/booking", tags=["booking"], responses=PROBLEM_RESPONSES)


def _to_schema(result, request: Request) -> Booking:
    return Booking.model_validate(raise_for_result(result, instance=request.url.path))


@router.post("/availability", response_model=AvailabilityResponse)
async def check_availability(
    body: CheckAvailabilityRequest,
    engine: ReservationEngine = Engine,
) -> AvailabilityResponse:
    """
    Check whether a room can take a stay.

    Business rejections are reported in the body; only infrastructure
    failures produce an error response.
    """
    result = await engine.check_availability(body.room_id, body.check_in, body.check_out, body.guests)
    if result.failed:
        raise_for_result(result)
    return AvailabilityResponse(
        available=result.ok,
        reason=result.reason.value if result.reason else None,
        detail=result.detail,
    )


@router.post("/create", response_model=Booking, status_code=201)
async def create_booking(
    body: CreateBookingRequest,
    request: Request,
    engine: ReservationEngine = Engine,
    actor: str = Actor,
    idempotency_key: Optional[str] = IdempotencyKey,
) -> Booking:
    """
    Create a booking.

    This operation is idempotent based on the Idempotency-Key header: a
    retry with the same key and body returns the original booking.
    """
    reservation = ReservationRequest(
        room_id=body.room_id,
        check_in=body.check_in,
        check_out=body.check_out,
        guests=body.guests,
        guest_ref=body.guest_ref,
        second_guest_ref=body.second_guest_ref,
        total_amount=body.total_amount,
        paid_amount=body.paid_amount,
        notes=body.notes,
        special_requests=body.special_requests,
        idempotency_key=idempotency_key,
        require_confirmation=body.require_confirmation,
    )
    result = await engine.create_booking(reservation, actor=actor)
    return _to_schema(result, request)


@router.post("/get", response_model=Booking)
async def get_booking(
    body: BookingIdRequest,
    request: Request,
    engine: ReservationEngine = Engine,
) -> Booking:
    """Get a booking by ID."""
    return _to_schema(await engine.get_booking(body.booking_id), request)


@router.post("/list", response_model=BookingList)
async def list_bookings(
    body: ListBookingsRequest,
    request: Request,
    engine: ReservationEngine = Engine,
) -> BookingList:
    """List bookings matching the filter, ordered by check-in."""
    criteria = BookingFilter(**body.model_dump())
    bookings = raise_for_result(await engine.list_bookings(criteria), instance=request.url.path)
    return BookingList(items=[Booking.model_validate(booking) for booking in bookings])


@router.post("/confirm", response_model=Booking)
async def confirm_booking(
    body: BookingIdRequest,
    request: Request,
    engine: ReservationEngine = Engine,
    actor: str = Actor,
) -> Booking:
    """Confirm a pending booking after re-checking the room."""
    return _to_schema(await engine.confirm_booking(body.booking_id, actor=actor), request)


@router.post("/reject", response_model=Booking)
async def reject_booking(
    body: RejectBookingRequest,
    request: Request,
    engine: ReservationEngine = Engine,
    actor: str = Actor,
) -> Booking:
    """Discard a pending booking. Returns the booking as it was."""
    return _to_schema(await engine.reject_booking(body.booking_id, body.reason, actor=actor), request)


@router.post("/cancel", response_model=Booking)
async def cancel_booking(
    body: CancelBookingRequest,
    request: Request,
    engine: ReservationEngine = Engine,
    actor: str = Actor,
) -> Booking:
    """Cancel a booking and release its room."""
    result = await engine.cancel_booking(body.booking_id, body.reason, actor=actor)
    booking = _to_schema(result, request)

    logger.info(
        "Booking cancelled",
        extra={"booking_id": str(body.booking_id), "actor": actor}
    )
    return booking


@router.post("/check-in", response_model=Booking)
async def check_in(
    body: BookingIdRequest,
    request: Request,
    engine: ReservationEngine = Engine,
    actor: str = Actor,
) -> Booking:
    """Register the guest's arrival."""
    return _to_schema(await engine.check_in(body.booking_id, actor=actor), request)


@router.post("/check-out", response_model=Booking)
async def check_out(
    body: BookingIdRequest,
    request: Request,
    engine: ReservationEngine = Engine,
    actor: str = Actor,
) -> Booking:
    """Close a checked-in stay."""
    return _to_schema(await engine.check_out(body.booking_id, actor=actor), request)


@router.post("/extend", response_model=Booking)
async def extend_booking(
    body: ExtendBookingRequest,
    request: Request,
    engine: ReservationEngine = Engine,
    actor: str = Actor,
) -> Booking:
    """Move the departure date later."""
    return _to_schema(await engine.extend_booking(body.booking_id, body.new_check_out, actor=actor), request)


@router.post("/transfer", response_model=Booking)
async def transfer_booking(
    body: TransferBookingRequest,
    request: Request,
    engine: ReservationEngine = Engine,
    actor: str = Actor,
) -> Booking:
    """Move the booking to another room for the same stay."""
    return _to_schema(await engine.transfer_booking(body.booking_id, body.new_room_id, actor=actor), request)


@router.post("/no-show", response_model=Booking)
async def mark_no_show(
    body: BookingIdRequest,
    request: Request,
    engine: ReservationEngine = Engine,
    actor: str = Actor,
) -> Booking:
    """Mark a confirmed booking whose arrival day has passed as a no-show."""
    return _to_schema(await engine.mark_no_show(body.booking_id, actor=actor), request)


@router.post("/payment", response_model=Booking)
async def record_payment(
    body: RecordPaymentRequest,
    request: Request,
    engine: ReservationEngine = Engine,
    actor: str = Actor,
) -> Booking:
    """Record a payment against the booking."""
    return _to_schema(await engine.record_payment(body.booking_id, body.amount, actor=actor), request)
