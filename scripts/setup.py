#!/usr/bin/env python3
"""Setup script for the innkeeper reservation API."""

import asyncio
import logging
from decimal import Decimal
from pathlib import Path

from alembic import command
from alembic.config import Config

from innkeeper.core.config import settings
from innkeeper.core.database import async_session_factory, close_db
from innkeeper.domain.models import RoomType
from innkeeper.domain.results import RejectionReason
from innkeeper.repositories import SqlAlchemyUnitOfWork
from innkeeper.services import LoggingAuditSink, ReservationEngine, RoomSpec

server_dir = Path(__file__).parent.parent / "server"

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

SAMPLE_ROOMS = [
    RoomSpec("101", "A", 1, 2, RoomType.DOUBLE, Decimal("120.00"), amenities=["wifi", "tv"]),
    RoomSpec("102", "A", 1, 1, RoomType.SINGLE, Decimal("80.00"), amenities=["wifi"]),
    RoomSpec("103", "A", 1, 2, RoomType.DOUBLE_WITH_BALCONY, Decimal("140.00"), amenities=["wifi", "tv", "balcony"]),
    RoomSpec("201", "A", 2, 4, RoomType.FAMILY, Decimal("180.00"), amenities=["wifi", "tv", "kitchenette"]),
    RoomSpec("301", "B", 3, 2, RoomType.LUXURY, Decimal("260.00"), description="Corner room with terrace"),
]


def migrate_database() -> None:
    """Run Alembic migrations up to head."""
    logger.info("Running database migrations...")
    alembic_cfg = Config(str(server_dir / "db" / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(server_dir / "db" / "alembic"))
    command.upgrade(alembic_cfg, "head")
    logger.info("Database migrations completed")


async def create_sample_data() -> None:
    """Provision a handful of demo rooms through the engine."""
    logger.info("Creating sample data...")

    engine = ReservationEngine.from_settings(
        settings,
        lambda: SqlAlchemyUnitOfWork(async_session_factory),
        LoggingAuditSink(),
    )
    try:
        for spec in SAMPLE_ROOMS:
            result = await engine.provision_room(spec, actor="setup")
            if result.ok:
                logger.info(f"Provisioned room {spec.number}")
            elif result.reason is RejectionReason.ROOM_NUMBER_TAKEN:
                logger.info(f"Room {spec.number} already exists, skipping...")
            else:
                raise RuntimeError(f"Could not provision room {spec.number}: {result.detail}")
    finally:
        await close_db()

    logger.info("Sample data created successfully!")


def main() -> None:
    """Main setup function."""
    logger.info("Starting innkeeper setup...")

    migrate_database()
    asyncio.run(create_sample_data())

    logger.info("Setup completed successfully!")
    logger.info("You can now start the API server with: uvicorn innkeeper.main:app --reload")


if __name__ == "__main__":
    main()
