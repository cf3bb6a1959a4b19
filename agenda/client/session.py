"""
agenda/client/session.py

Per-tenant client context.

A PlanSession is created when a company logs in and closed when it logs
out. It owns the HTTP client, the query cache, the plan resolver, the
appointment list query and every live-update channel opened through it, so
nothing about the tenant lives in module globals.

    async with PlanSession.open(company_id=42) as session:
        guard = FeatureGuard(session.resolver, "reports", children=page)
        session.appointments.subscribe(redraw_calendar)
        await session.appointments.load()
        channel = session.live_updates(on_new_appointment=notify)
        await channel.start()
"""

from typing import Dict, List, Optional
import logging

import httpx

from agenda.client.appointments import AppointmentListQuery
from agenda.client.live_updates import AppointmentHandler, LiveUpdateChannel
from agenda.client.plans import PlanAccessResolver
from agenda.client.query_cache import QueryCache
from agenda.core.auth import COMPANY_HEADER
from agenda.core.config import settings

logger = logging.getLogger(__name__)


class PlanSession:
    def __init__(
        self,
        company_id: int,
        client: httpx.AsyncClient,
        *,
        cache: Optional[QueryCache] = None,
        stale_time: Optional[float] = None,
        owns_client: bool = False,
    ):
        self.company_id = company_id
        self.client = client
        self.cache = cache or QueryCache()
        self.resolver = PlanAccessResolver(client, self.cache, stale_time=stale_time)
        self.appointments = AppointmentListQuery(client, self.cache, stale_time=stale_time)
        self._owns_client = owns_client
        self._channels: List[LiveUpdateChannel] = []
        self._closed = False

    @classmethod
    def open(
        cls,
        company_id: int,
        *,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        headers: Optional[Dict[str, str]] = None,
        stale_time: Optional[float] = None,
    ) -> "PlanSession":
        """Build a session with its own HTTP client for a logged-in company."""
        client = httpx.AsyncClient(
            base_url=base_url or settings.API_BASE_URL,
            headers={COMPANY_HEADER: str(company_id), **(headers or {})},
            timeout=settings.HTTP_TIMEOUT_SECONDS,
            transport=transport,
        )
        logger.info("[session] opened", extra={"company_id": company_id})
        return cls(company_id, client, stale_time=stale_time, owns_client=True)

    @property
    def closed(self) -> bool:
        return self._closed

    def live_updates(
        self,
        on_new_appointment: Optional[AppointmentHandler] = None,
        **kwargs,
    ) -> LiveUpdateChannel:
        """Create a live-update channel that closes with this session."""
        if self._closed:
            raise RuntimeError("PlanSession is closed")
        channel = LiveUpdateChannel(self.client, self.cache, on_new_appointment=on_new_appointment, **kwargs)
        self._channels.append(channel)
        return channel

    async def close(self) -> None:
        """Tenant logout: stop channels, drop cached data, close the client."""
        if self._closed:
            return
        self._closed = True
        channels, self._channels = self._channels, []
        for channel in channels:
            await channel.stop()
        self.resolver.cancel_background()
        self.cache.clear()
        if self._owns_client:
            await self.client.aclose()
        logger.info("[session] closed", extra={"company_id": self.company_id})

    async def __aenter__(self) -> "PlanSession":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
