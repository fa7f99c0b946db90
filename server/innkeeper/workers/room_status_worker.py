"""Background worker that keeps derived room statuses current."""

import logging

from ..services.reservation_engine import ReservationEngine
from .base import BaseWorker

logger = logging.getLogger(__name__)


class RoomStatusWorker(BaseWorker):
    """
    Re-derives every room's status.

    Statuses depend on the date as well as on bookings, so a room flips from
    booked to available (or the reverse) when the day changes even if no
    booking was touched.
    """

    def __init__(self, engine: ReservationEngine, interval_seconds: int = 300):
        super().__init__(name="RoomStatus", engine=engine, interval_seconds=interval_seconds)

    async def process(self) -> int:
        counts = await self.engine.refresh_room_statuses()
        logger.debug("Room statuses refreshed", extra={"counts": counts, "worker": self.name})
        return sum(counts.values())
