"""
agenda/client/plans.py

Plan Access Resolver.

Fetches the company's plan and professional usage from the plan-info
endpoint, caches it for a freshness window, and answers permission and
headcount questions. Every read is fail-closed: no data, an error, or an
unknown feature means "not allowed".
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Set
import asyncio
import logging

import httpx

from agenda.client.query_cache import QueryCache, QueryState, QueryStatus, Subscription
from agenda.core.config import settings
from agenda.core.errors import PlanFetchError
from agenda.models.plan import LimitInfo, PlanData, PlanInfo, PlanPermissions, PlanUsage, is_known_feature

logger = logging.getLogger(__name__)

PLAN_INFO_QUERY_KEY = ("plan-info",)
UNKNOWN_PLAN_NAME = "Unidentified plan"


class ResolverStatus(str, Enum):
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


def degraded_plan_data() -> PlanData:
    """Plan used when the real one can't be fetched: nothing allowed, no usage."""
    return PlanData(
        plan=PlanInfo(id=None, name=UNKNOWN_PLAN_NAME, max_professionals=0, permissions=PlanPermissions.deny_all()),
        usage=None,
    )


@dataclass(frozen=True)
class PlanSnapshot:
    """One consistent view of the resolver; guards read a single snapshot per render."""
    status: ResolverStatus
    plan_data: Optional[PlanData] = None
    error: Optional[BaseException] = None

    @classmethod
    def from_query_state(cls, state: QueryState) -> "PlanSnapshot":
        if state.status is QueryStatus.SUCCESS:
            return cls(status=ResolverStatus.READY, plan_data=state.data)
        if state.status is QueryStatus.ERROR:
            return cls(status=ResolverStatus.ERROR, error=state.error)
        return cls(status=ResolverStatus.LOADING)

    @property
    def is_loading(self) -> bool:
        return self.status is ResolverStatus.LOADING

    @property
    def effective_plan_data(self) -> PlanData:
        if self.status is ResolverStatus.READY and self.plan_data is not None:
            return self.plan_data
        return degraded_plan_data()

    @property
    def usage(self) -> Optional[PlanUsage]:
        if self.status is not ResolverStatus.READY or self.plan_data is None:
            return None
        return self.plan_data.usage

    @property
    def permissions(self) -> PlanPermissions:
        return self.effective_plan_data.plan.permissions

    @property
    def plan_name(self) -> str:
        return self.effective_plan_data.plan.name or UNKNOWN_PLAN_NAME

    def has_permission(self, feature: str) -> bool:
        if self.status is not ResolverStatus.READY or self.plan_data is None:
            return False
        if not is_known_feature(feature):
            logger.debug(f"[plan] unknown feature {feature!r} denied")
            return False
        return self.plan_data.plan.permissions.get(feature)

    def can_add_professional(self) -> bool:
        usage = self.usage
        if usage is None:
            return False
        # Reaching the limit blocks the next addition
        return usage.professionals_count < usage.professionals_limit

    def get_limit_info(self) -> Optional[LimitInfo]:
        usage = self.usage
        if usage is None:
            return None
        return LimitInfo(
            current=usage.professionals_count,
            limit=usage.professionals_limit,
            can_add=self.can_add_professional(),
            remaining=usage.professionals_limit - usage.professionals_count,
        )


class PlanAccessResolver:
    """
    Resolves the current company's plan through a shared QueryCache.

    Failed fetches are not retried; call refetch() to try again.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        cache: QueryCache,
        *,
        path: Optional[str] = None,
        stale_time: Optional[float] = None,
        query_key=PLAN_INFO_QUERY_KEY,
    ):
        self._client = client
        self._cache = cache
        self._path = path or settings.PLAN_INFO_PATH
        self._stale_time = stale_time if stale_time is not None else settings.PLAN_STALE_SECONDS
        self._query_key = query_key
        self._background: Set[asyncio.Task] = set()

    @property
    def query_key(self):
        return self._query_key

    async def _fetch_plan_data(self) -> PlanData:
        try:
            response = await self._client.get(self._path)
        except httpx.HTTPError as exc:
            logger.warning(f"[plan] plan-info request failed: {exc.__class__.__name__}")
            raise PlanFetchError("Failed to load plan information") from exc

        if not response.is_success:
            logger.warning(f"[plan] plan-info returned {response.status_code}")
            raise PlanFetchError("Failed to load plan information", status_code=response.status_code)

        try:
            return PlanData.model_validate(response.json())
        except ValueError as exc:
            logger.warning("[plan] plan-info payload malformed")
            raise PlanFetchError("Failed to load plan information", status_code=response.status_code) from exc

    async def resolve(self) -> PlanData:
        """Return the plan, fetching only when the cached one is stale."""
        state = await self._cache.fetch(self._query_key, self._fetch_plan_data, stale_time=self._stale_time)
        return PlanSnapshot.from_query_state(state).effective_plan_data

    async def refetch(self) -> PlanData:
        """Manual refetch, ignoring freshness."""
        state = await self._cache.fetch(
            self._query_key, self._fetch_plan_data, stale_time=self._stale_time, force=True
        )
        return PlanSnapshot.from_query_state(state).effective_plan_data

    def prefetch(self) -> asyncio.Task:
        """Start resolve() in the background (needs a running event loop)."""
        task = asyncio.get_running_loop().create_task(self.resolve())
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    def invalidate(self) -> None:
        self._cache.invalidate(self._query_key)

    def subscribe(self, listener: Callable[[PlanSnapshot], None]) -> Subscription:
        """Call listener with a fresh snapshot whenever the plan entry changes."""
        return self._cache.subscribe(
            self._query_key,
            lambda _key, state: listener(PlanSnapshot.from_query_state(state)),
        )

    def cancel_background(self) -> None:
        for task in list(self._background):
            task.cancel()

    @property
    def snapshot(self) -> PlanSnapshot:
        return PlanSnapshot.from_query_state(self._cache.get_state(self._query_key))

    @property
    def is_loading(self) -> bool:
        return self.snapshot.is_loading

    @property
    def error(self) -> Optional[BaseException]:
        return self.snapshot.error

    @property
    def plan_data(self) -> Optional[PlanData]:
        return self.snapshot.plan_data

    @property
    def plan_name(self) -> str:
        return self.snapshot.plan_name

    @property
    def permissions(self) -> PlanPermissions:
        return self.snapshot.permissions

    def has_permission(self, feature: str) -> bool:
        return self.snapshot.has_permission(feature)

    def can_add_professional(self) -> bool:
        return self.snapshot.can_add_professional()

    def get_limit_info(self) -> Optional[LimitInfo]:
        return self.snapshot.get_limit_info()
