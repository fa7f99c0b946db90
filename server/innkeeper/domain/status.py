"""Room status derivation."""

from collections.abc import Iterable
from datetime import date, timedelta

from .models import Booking, BookingStatus, Room, RoomStatus


def derive_status(
    room: Room,
    bookings: Iterable[Booking],
    as_of: date,
    lookahead_days: int | None = None,
) -> RoomStatus:
    """
    Compute a room's status from its bookings and operator override.

    Args:
        room: Room whose status is derived
        bookings: The room's bookings; only confirmed and checked-in ones count
        as_of: Business date to evaluate
        lookahead_days: How far ahead a confirmed arrival marks the room booked;
            None means any future confirmed booking does

    Returns:
        The derived status
    """
    if room.override_status is not None:
        return room.override_status

    horizon = as_of + timedelta(days=lookahead_days) if lookahead_days is not None else None
    booked = False

    for booking in bookings:
        if booking.room_id != room.id:
            continue
        if booking.status is BookingStatus.CHECKED_IN and booking.interval.contains(as_of):
            return RoomStatus.OCCUPIED
        if booking.status is BookingStatus.CONFIRMED and booking.check_out > as_of:
            if booking.interval.contains(as_of) or horizon is None or booking.check_in <= horizon:
                booked = True

    return RoomStatus.BOOKED if booked else RoomStatus.AVAILABLE
