"""Worker manager for coordinating background tasks."""

import asyncio
import logging
from typing import Dict

from ..core.config import Settings
from ..services.reservation_engine import ReservationEngine
from .base import BaseWorker
from .idempotency_worker import IdempotencyCleanupWorker
from .no_show_worker import NoShowWorker
from .room_status_worker import RoomStatusWorker

logger = logging.getLogger(__name__)


class WorkerManager:
    """
    Manages background workers for the application.

    Coordinates starting, stopping, and monitoring of all background workers.
    """

    def __init__(self, engine: ReservationEngine, settings: Settings):
        self.workers: Dict[str, BaseWorker] = {
            "no_show": NoShowWorker(engine, interval_seconds=settings.no_show_sweep_interval_seconds),
            "room_status": RoomStatusWorker(engine, interval_seconds=settings.room_status_refresh_interval_seconds),
            "idempotency_cleanup": IdempotencyCleanupWorker(engine),
        }
        logger.info(f"Initialized {len(self.workers)} workers")

    async def start_all(self) -> None:
        """Start all workers."""
        logger.info("Starting all workers")

        for name, worker in self.workers.items():
            try:
                await worker.start()
                logger.info(f"Started worker: {name}")
            except Exception as e:
                logger.error(f"Failed to start worker {name}: {str(e)}", exc_info=True)

        logger.info(f"Started {len(self.workers)} workers")

    async def stop_all(self) -> None:
        """Stop all workers gracefully."""
        logger.info("Stopping all workers")

        names = list(self.workers)
        results = await asyncio.gather(
            *(self.workers[name].stop() for name in names),
            return_exceptions=True,
        )

        for name, result in zip(names, results):
            if isinstance(result, Exception):
                logger.error(f"Error stopping worker {name}: {str(result)}")
            else:
                logger.info(f"Stopped worker: {name}")

        logger.info("All workers stopped")

    def get_worker(self, name: str) -> BaseWorker:
        """
        Get a specific worker by name.

        Raises:
            KeyError: If worker not found
        """
        return self.workers[name]

    def get_worker_status(self) -> Dict[str, bool]:
        """Map worker names to their running status."""
        return {name: worker.running for name, worker in self.workers.items()}
