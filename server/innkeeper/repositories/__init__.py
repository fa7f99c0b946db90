"""Persistence layer: repository interfaces and their implementations."""

from .base import (
    BookingFilter,
    BookingRepository,
    IdempotencyEntry,
    IdempotencyRepository,
    PersistenceError,
    RoomRepository,
    UnitOfWork,
    UnitOfWorkFactory,
)
from .memory import InMemoryDatabase, InMemoryUnitOfWork
from .sqlalchemy import SqlAlchemyUnitOfWork

__all__ = [
    # Interfaces
    "BookingFilter",
    "BookingRepository",
    "IdempotencyEntry",
    "IdempotencyRepository",
    "PersistenceError",
    "RoomRepository",
    "UnitOfWork",
    "UnitOfWorkFactory",

    # Implementations
    "InMemoryDatabase",
    "InMemoryUnitOfWork",
    "SqlAlchemyUnitOfWork",
]
