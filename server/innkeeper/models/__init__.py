"""Models module exporting all database models."""

from .booking import BookingModel
from .idempotency import IdempotencyRecord
from .room import RoomModel

__all__ = [
    # Core entities
    "RoomModel",
    "BookingModel",

    # Idempotency entity
    "IdempotencyRecord",
]
