"""Background worker for expiring idempotency tokens."""

from ..services.reservation_engine import ReservationEngine
from .base import BaseWorker


class IdempotencyCleanupWorker(BaseWorker):
    """Deletes idempotency tokens past their time-to-live."""

    def __init__(self, engine: ReservationEngine, interval_seconds: int = 3600):
        super().__init__(name="IdempotencyCleanup", engine=engine, interval_seconds=interval_seconds)

    async def process(self) -> int:
        return await self.engine.purge_idempotency_records()
