"""
agenda/client/appointments.py

Cached appointment list for calendar views.

The list lives under APPOINTMENTS_QUERY_KEY, the key a LiveUpdateChannel
invalidates on "new_appointment", so a view subscribed here is refetched as
soon as another client books.
"""

from typing import Callable, List, Optional
import logging

import httpx
from pydantic import TypeAdapter

from agenda.client.query_cache import QueryCache, QueryState, Subscription
from agenda.core.config import settings
from agenda.core.errors import AppointmentFetchError
from agenda.models.appointment import Appointment

logger = logging.getLogger(__name__)

APPOINTMENTS_QUERY_KEY = ("appointments",)

_appointment_list = TypeAdapter(List[Appointment])


class AppointmentListQuery:
    def __init__(
        self,
        client: httpx.AsyncClient,
        cache: QueryCache,
        *,
        path: Optional[str] = None,
        stale_time: Optional[float] = None,
        query_key=APPOINTMENTS_QUERY_KEY,
    ):
        self._client = client
        self._cache = cache
        self._path = path or settings.APPOINTMENTS_PATH
        self._stale_time = stale_time if stale_time is not None else settings.PLAN_STALE_SECONDS
        self._query_key = query_key

    @property
    def query_key(self):
        return self._query_key

    async def _fetch_appointments(self) -> List[Appointment]:
        try:
            response = await self._client.get(self._path)
        except httpx.HTTPError as exc:
            logger.warning(f"[appointments] list request failed: {exc.__class__.__name__}")
            raise AppointmentFetchError("Failed to load appointments") from exc

        if not response.is_success:
            logger.warning(f"[appointments] list returned {response.status_code}")
            raise AppointmentFetchError("Failed to load appointments", status_code=response.status_code)

        try:
            return _appointment_list.validate_python(response.json())
        except ValueError as exc:
            raise AppointmentFetchError("Failed to load appointments") from exc

    async def load(self) -> QueryState:
        """Return the cached list, fetching when it is stale or invalidated."""
        return await self._cache.fetch(self._query_key, self._fetch_appointments, stale_time=self._stale_time)

    async def refetch(self) -> QueryState:
        return await self._cache.fetch(
            self._query_key, self._fetch_appointments, stale_time=self._stale_time, force=True
        )

    def subscribe(self, listener: Callable[[QueryState], None]) -> Subscription:
        return self._cache.subscribe(self._query_key, lambda _key, state: listener(state))

    @property
    def state(self) -> QueryState:
        return self._cache.get_state(self._query_key)

    @property
    def appointments(self) -> List[Appointment]:
        return self.state.data or []
