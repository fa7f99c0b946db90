"""Background worker for marking missed arrivals."""

import logging

from ..services.reservation_engine import ReservationEngine
from .base import BaseWorker

logger = logging.getLogger(__name__)


class NoShowWorker(BaseWorker):
    """
    Background worker that marks no-shows.

    Confirmed bookings whose arrival day has passed without a check-in are
    moved to ``no_show`` and their nights released.
    """

    def __init__(self, engine: ReservationEngine, interval_seconds: int = 900):
        super().__init__(name="NoShow", engine=engine, interval_seconds=interval_seconds)

    async def process(self) -> int:
        marked = await self.engine.sweep_no_shows()

        if marked > 0:
            logger.info(
                f"Marked {marked} bookings as no-show",
                extra={"marked_count": marked, "worker": self.name}
            )
        return marked
