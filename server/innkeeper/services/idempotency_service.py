"""Idempotency service for handling duplicate booking requests."""

import hashlib
import json
import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

from ..domain.models import utcnow
from ..repositories.base import IdempotencyEntry, UnitOfWork

logger = logging.getLogger(__name__)


class IdempotencyMismatchError(Exception):
    """Exception when idempotency key is reused with a different request body."""

    def __init__(self, idempotency_key: str, method: str):
        self.idempotency_key = idempotency_key
        self.method = method
        super().__init__(
            f"Idempotency key '{idempotency_key}' was already used for method '{method}' with different request body"
        )


class IdempotencyService:
    """Service for handling idempotent operations."""

    def __init__(self, ttl_seconds: int = 86400, clock: Callable[[], datetime] = utcnow):
        self.ttl = timedelta(seconds=ttl_seconds)
        self.clock = clock

    def compute_request_hash(self, request_body: dict[str, Any]) -> str:
        """Compute SHA-256 hash of normalized request body."""
        # Sort keys recursively to ensure consistent hash
        normalized = json.dumps(request_body, sort_keys=True, separators=(',', ':'))
        return hashlib.sha256(normalized.encode('utf-8')).hexdigest()

    async def check_idempotency(
        self,
        uow: UnitOfWork,
        idempotency_key: str,
        method: str,
        request_hash: str,
    ) -> UUID | None:
        """
        Return the booking a previous identical request produced.

        Args:
            uow: Open unit of work
            idempotency_key: Client-supplied token
            method: Operation name
            request_hash: Hash from :meth:`compute_request_hash`

        Returns:
            The original booking id, or None if this is a new request

        Raises:
            IdempotencyMismatchError: If the key exists with a different request body
        """
        existing = await uow.idempotency.get(idempotency_key, method, self.clock())

        if existing is None:
            logger.info(
                "No existing idempotency record found",
                extra={
                    "idempotency_key": idempotency_key,
                    "method": method,
                    "request_hash": request_hash[:8]  # First 8 chars for logging
                }
            )
            return None

        if existing.request_hash != request_hash:
            logger.warning(
                "Idempotency key mismatch",
                extra={
                    "idempotency_key": idempotency_key,
                    "method": method,
                    "existing_hash": existing.request_hash[:8],
                    "new_hash": request_hash[:8]
                }
            )
            raise IdempotencyMismatchError(idempotency_key, method)

        logger.info(
            "Returning original booking for idempotent request",
            extra={
                "idempotency_key": idempotency_key,
                "method": method,
                "booking_id": str(existing.booking_id)
            }
        )
        return existing.booking_id

    async def store(
        self,
        uow: UnitOfWork,
        idempotency_key: str,
        method: str,
        request_hash: str,
        booking_id: UUID,
    ) -> None:
        """Record the booking produced for a token in the caller's transaction."""
        expires_at = self.clock() + self.ttl
        await uow.idempotency.add(
            IdempotencyEntry(
                key=idempotency_key,
                method=method,
                request_hash=request_hash,
                booking_id=booking_id,
                expires_at=expires_at,
            )
        )

    async def cleanup_expired_records(self, uow: UnitOfWork) -> int:
        """
        Delete expired idempotency records.

        Returns:
            Number of records deleted
        """
        deleted_count = await uow.idempotency.purge_expired(self.clock())
        await uow.commit()

        if deleted_count > 0:
            logger.info(
                "Cleaned up expired idempotency records",
                extra={"deleted_count": deleted_count}
            )

        return deleted_count
