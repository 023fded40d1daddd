"""
Idempotency ledger for inbound webhook events.

Records which event ids have been fully processed, with their terminal
status. Capacity is bounded with FIFO eviction (oldest insertion first), so
an event evicted long ago may be processed again if it is redelivered; the
HubSpot upserts are idempotent by natural key, which keeps that safe.

The webhook route does check -> process -> mark, which is not atomic. Two
truly concurrent deliveries of the same event can both be processed.
"""

import json
import threading
from datetime import UTC, datetime
from typing import Protocol

from app.infrastructure.observability.logging import get_logger
from app.models.domain.sync_domain import EventStatus, ProcessedEvent
from app.services.infrastructure.redis_client import RedisClient

logger = get_logger(__name__)

DEFAULT_MAX_SIZE = 10000


class IdempotencyStore(Protocol):
    async def has_processed(self, event_id: str) -> bool: ...

    async def mark_processed(
        self, event_id: str, status: EventStatus | str, error: str | None = None
    ) -> None: ...

    async def get(self, event_id: str) -> ProcessedEvent | None: ...


def _build_record(event_id: str, status: EventStatus | str, error: str | None) -> ProcessedEvent:
    return ProcessedEvent(
        event_id=event_id,
        processed_at=datetime.now(UTC),
        status=EventStatus(status),
        error=error,
    )


class InMemoryIdempotencyStore:
    """Bounded, insertion-ordered in-process ledger. Single instance only."""

    def __init__(self, max_size: int = DEFAULT_MAX_SIZE):
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.max_size = max_size
        self._store: dict[str, ProcessedEvent] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._store)

    async def has_processed(self, event_id: str) -> bool:
        with self._lock:
            return event_id in self._store

    async def mark_processed(
        self, event_id: str, status: EventStatus | str, error: str | None = None
    ) -> None:
        record = _build_record(event_id, status, error)

        with self._lock:
            # Entries are never updated after creation
            if event_id in self._store:
                return

            while len(self._store) >= self.max_size:
                oldest = next(iter(self._store))
                del self._store[oldest]
                logger.debug("Evicted oldest idempotency record", event_id=oldest)

            self._store[event_id] = record

    async def get(self, event_id: str) -> ProcessedEvent | None:
        with self._lock:
            return self._store.get(event_id)


class RedisIdempotencyStore:
    """
    Redis-backed ledger for multi-instance deployments.

    One JSON value per event (with TTL) plus an insertion-order list that is
    trimmed from the head, giving the same FIFO capacity bound as the
    in-memory store.
    """

    KEY_PREFIX = "sync:event:"
    ORDER_KEY = "sync:event-order"

    def __init__(
        self,
        client: RedisClient,
        max_size: int = DEFAULT_MAX_SIZE,
        ttl_seconds: int | None = None,
    ):
        self.client = client
        self.max_size = max_size
        self.ttl_seconds = ttl_seconds

    def _key(self, event_id: str) -> str:
        return f"{self.KEY_PREFIX}{event_id}"

    async def has_processed(self, event_id: str) -> bool:
        return await self.client.get(self._key(event_id)) is not None

    async def mark_processed(
        self, event_id: str, status: EventStatus | str, error: str | None = None
    ) -> None:
        if await self.has_processed(event_id):
            return

        record = _build_record(event_id, status, error)
        stored = await self.client.set_with_ttl(
            self._key(event_id), json.dumps(record.to_dict()), self.ttl_seconds
        )
        if not stored:
            logger.warning("Failed to persist idempotency record", event_id=event_id)
            return

        evicted = await self.client.push_bounded(self.ORDER_KEY, event_id, self.max_size)
        if evicted:
            await self.client.delete(*(self._key(e) for e in evicted))
            logger.debug("Evicted oldest idempotency records", count=len(evicted))

    async def get(self, event_id: str) -> ProcessedEvent | None:
        raw = await self.client.get(self._key(event_id))
        if raw is None:
            return None
        try:
            return ProcessedEvent.from_dict(json.loads(raw))
        except (ValueError, KeyError) as e:
            logger.error("Corrupt idempotency record", event_id=event_id, error=str(e))
            return None
