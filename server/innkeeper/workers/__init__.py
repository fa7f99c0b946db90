"""Background workers package."""

from .base import BaseWorker
from .idempotency_worker import IdempotencyCleanupWorker
from .manager import WorkerManager
from .no_show_worker import NoShowWorker
from .room_status_worker import RoomStatusWorker

__all__ = [
    "BaseWorker",
    "IdempotencyCleanupWorker",
    "NoShowWorker",
    "RoomStatusWorker",
    "WorkerManager",
]
