"""
agenda/realtime/hub.py
In-memory pubsub hub for company live updates.

Each open event stream owns one bounded queue; publishing fans a message out
to every queue registered for the company at publish time.
"""

from dataclasses import dataclass, field
from typing import Dict, Optional, Set
from uuid import uuid4
import asyncio
import logging

from agenda.core.config import settings
from agenda.core.metrics import (
    sse_active_connections,
    sse_connections_total,
    sse_events_dropped_total,
    sse_events_published_total,
)

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class HubSubscription:
    """One event-stream consumer registered with the hub."""
    company_id: int
    queue: asyncio.Queue
    subscription_id: str = field(default_factory=lambda: str(uuid4()))

    async def get(self) -> dict:
        return await self.queue.get()


class EventHub:
    """
    In-memory room-per-company broadcast hub.

    Maps company_id -> Set[HubSubscription]; register, publish, unregister.
    """

    def __init__(self, queue_max: Optional[int] = None):
        self._rooms: Dict[int, Set[HubSubscription]] = {}
        self._global_count: int = 0
        self._queue_max = queue_max if queue_max is not None else settings.SSE_QUEUE_MAX
        self._lock = asyncio.Lock()

    async def register(self, company_id: int) -> HubSubscription:
        """Register a new consumer for a company and return its subscription."""
        subscription = HubSubscription(company_id=company_id, queue=asyncio.Queue(maxsize=self._queue_max))
        async with self._lock:
            self._rooms.setdefault(company_id, set()).add(subscription)
            self._global_count += 1
            sse_connections_total.inc()
            sse_active_connections.set(self._global_count)
        logger.debug(f"[HUB] Registered subscriber for company {company_id}. Total: {len(self._rooms[company_id])}")
        return subscription

    async def unregister(self, subscription: HubSubscription) -> None:
        """Remove a consumer. Safe to call more than once."""
        async with self._lock:
            room = self._rooms.get(subscription.company_id)
            if not room or subscription not in room:
                return
            room.discard(subscription)
            self._global_count = max(0, self._global_count - 1)
            if not room:
                del self._rooms[subscription.company_id]
                logger.debug(f"[HUB] Cleaned up empty room for company {subscription.company_id}")
            sse_active_connections.set(self._global_count)

    async def publish(self, company_id: int, message: dict) -> int:
        """
        Broadcast message to every consumer of a company.

        A consumer whose queue is full misses this message; the others
        still receive it.

        Returns:
            Number of consumers the message was queued for
        """
        async with self._lock:
            subscribers = list(self._rooms.get(company_id, ()))

        event_type = message.get("type") if isinstance(message, dict) else None
        delivered = 0
        for subscription in subscribers:
            try:
                subscription.queue.put_nowait(message)
                delivered += 1
            except asyncio.QueueFull:
                sse_events_dropped_total.inc()
                logger.warning(
                    f"[HUB] Dropped {event_type} for slow subscriber {subscription.subscription_id}",
                    extra={"company_id": company_id},
                )
        sse_events_published_total.inc(labels={"event_type": str(event_type or "unknown")})
        return delivered

    async def get_subscriber_count(self, company_id: int) -> int:
        async with self._lock:
            return len(self._rooms.get(company_id, ()))

    async def get_global_count(self) -> int:
        async with self._lock:
            return self._global_count


# Global singleton hub instance
hub = EventHub()
