"""Audit emission after committed mutations."""

import logging
from collections.abc import Iterable

from ..core.observability import get_logger, metrics_collector
from ..domain.audit import AuditEvent, AuditSink

logger = logging.getLogger(__name__)


class LoggingAuditSink:
    """Writes audit events as structured log lines."""

    def __init__(self, logger_name: str = "innkeeper.audit"):
        self.log = get_logger(logger_name)

    async def record(self, event: AuditEvent) -> None:
        self.log.info("audit_event", **event.to_dict())


class InMemoryAuditSink:
    """Keeps every recorded event in a list."""

    def __init__(self) -> None:
        self.events: list[AuditEvent] = []

    async def record(self, event: AuditEvent) -> None:
        self.events.append(event)

    def clear(self) -> None:
        self.events.clear()


class AuditEmitter:
    """
    Forwards audit events to the sink once their transaction has committed.

    Sink failures are retried ``retry_attempts`` times and then logged and
    counted; they never propagate to the caller, whose mutation is already
    durable.
    """

    def __init__(self, sink: AuditSink, retry_attempts: int = 1):
        self.sink = sink
        # Negative counts still make the first delivery attempt
        self.retry_attempts = max(retry_attempts, 0)

    async def emit(self, events: Iterable[AuditEvent]) -> int:
        """
        Deliver events in order.

        Returns:
            Number of events the sink accepted
        """
        delivered = 0
        for event in events:
            if await self._deliver(event):
                delivered += 1
        return delivered

    async def _deliver(self, event: AuditEvent) -> bool:
        last_error: Exception | None = None
        for attempt in range(self.retry_attempts + 1):
            try:
                await self.sink.record(event)
                return True
            except Exception as e:
                logger.warning(
                    "Audit sink rejected event",
                    extra={
                        "audit_event_id": str(event.id),
                        "action": event.action.value,
                        "entity_type": event.entity_type.value,
                        "entity_id": str(event.entity_id),
                        "attempt": attempt + 1,
                        "error": str(e)
                    }
                )
                last_error = e

        logger.error(
            "Audit event dropped after retries",
            extra={
                "audit_event_id": str(event.id),
                "action": event.action.value,
                "entity_id": str(event.entity_id),
            },
            exc_info=last_error
        )
        metrics_collector.record_audit_failure()
        return False
