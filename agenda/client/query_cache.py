"""
agenda/client/query_cache.py

Keyed client-side query cache.

Each key holds one immutable QueryState that is replaced whole on every
transition, so readers never observe a half-updated entry. Concurrent
fetches of the same key share a single in-flight task. Failed fetches are
stored as an error state and never retried here. Invalidating a key that has
subscribers refetches it in the background with the last fetcher used for it.
"""

from dataclasses import dataclass, replace
from enum import Enum
from itertools import count
from typing import Any, Awaitable, Callable, Dict, Hashable, Optional, Set, Tuple
import asyncio
import logging
import time

logger = logging.getLogger(__name__)

QueryKey = Hashable
Listener = Callable[[QueryKey, "QueryState"], None]
Fetcher = Callable[[], Awaitable[Any]]


class QueryStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class QueryState:
    status: QueryStatus = QueryStatus.PENDING
    data: Any = None
    error: Optional[BaseException] = None
    # clock() reading when the last fetch settled
    updated_at: Optional[float] = None
    is_invalidated: bool = False
    is_fetching: bool = False

    def is_fresh(self, now: float, stale_time: float) -> bool:
        if self.status is QueryStatus.PENDING or self.updated_at is None:
            return False
        if self.is_invalidated:
            return False
        return now - self.updated_at < stale_time


class Subscription:
    """Handle returned by subscribe(); unsubscribe() is idempotent."""

    def __init__(self, unsubscribe: Callable[[], None]):
        self._unsubscribe = unsubscribe
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self) -> None:
        if not self._active:
            return
        self._active = False
        self._unsubscribe()


class QueryCache:
    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._states: Dict[QueryKey, QueryState] = {}
        self._listeners: Dict[QueryKey, Dict[int, Listener]] = {}
        self._inflight: Dict[QueryKey, asyncio.Task] = {}
        self._fetchers: Dict[QueryKey, Tuple[Fetcher, float]] = {}
        self._background: Set[asyncio.Task] = set()
        self._ids = count()

    def get_state(self, key: QueryKey) -> QueryState:
        return self._states.get(key, QueryState())

    def subscribe(self, key: QueryKey, listener: Listener) -> Subscription:
        listener_id = next(self._ids)
        self._listeners.setdefault(key, {})[listener_id] = listener

        def _remove() -> None:
            listeners = self._listeners.get(key)
            if listeners is None:
                return
            listeners.pop(listener_id, None)
            if not listeners:
                del self._listeners[key]

        return Subscription(_remove)

    def listener_count(self, key: QueryKey) -> int:
        return len(self._listeners.get(key, ()))

    def _notify(self, key: QueryKey, state: QueryState) -> int:
        listeners = self._listeners.get(key)
        if not listeners:
            return 0
        notified = 0
        for listener_id in list(listeners):
            # Skip listeners removed by an earlier callback in this pass
            listener = listeners.get(listener_id)
            if listener is None:
                continue
            try:
                listener(key, state)
            except Exception:
                logger.exception(f"[cache] listener failed for {key!r}")
            notified += 1
        return notified

    def _set_state(self, key: QueryKey, state: QueryState) -> None:
        self._states[key] = state
        self._notify(key, state)

    def set_data(self, key: QueryKey, data: Any) -> QueryState:
        state = QueryState(status=QueryStatus.SUCCESS, data=data, updated_at=self._clock())
        self._set_state(key, state)
        return state

    async def fetch(
        self,
        key: QueryKey,
        fn: Fetcher,
        *,
        stale_time: float,
        force: bool = False,
    ) -> QueryState:
        """
        Return the state for key, running fn when the entry isn't fresh.

        Callers arriving while a fetch is running await that same fetch.
        Cancelling one caller does not cancel the shared fetch.
        """
        self._fetchers[key] = (fn, stale_time)
        state = self._states.get(key)
        if not force and state is not None and state.is_fresh(self._clock(), stale_time):
            return state

        task = self._inflight.get(key)
        if task is None:
            task = asyncio.get_running_loop().create_task(self._run(key, fn))
            self._inflight[key] = task
            task.add_done_callback(lambda _t, k=key: self._inflight.pop(k, None))
        return await asyncio.shield(task)

    async def _run(self, key: QueryKey, fn: Fetcher) -> QueryState:
        previous = self.get_state(key)
        if previous.status is QueryStatus.SUCCESS:
            # Background refresh keeps serving the previous data
            self._set_state(key, replace(previous, is_fetching=True))
        else:
            self._set_state(key, QueryState(status=QueryStatus.PENDING, is_fetching=True))

        try:
            data = await fn()
        except asyncio.CancelledError:
            # remove()/clear() already dropped the entry
            if self._inflight.get(key) is asyncio.current_task():
                self._set_state(key, replace(previous, is_fetching=False))
            raise
        except Exception as exc:
            state = QueryState(status=QueryStatus.ERROR, error=exc, updated_at=self._clock())
        else:
            state = QueryState(status=QueryStatus.SUCCESS, data=data, updated_at=self._clock())

        self._set_state(key, state)
        return state

    def invalidate(self, key: QueryKey) -> int:
        """
        Mark key stale and notify its current subscribers.

        When the key has subscribers and was fetched before, a refetch starts
        in the background. Without a running event loop the entry just stays
        stale until the next fetch().

        Returns:
            Number of listeners notified
        """
        state = self._states.get(key)
        if state is not None and not state.is_invalidated:
            state = replace(state, is_invalidated=True)
            self._states[key] = state
        notified = self._notify(key, state or QueryState(is_invalidated=True))
        if notified:
            self._refetch_in_background(key)
        return notified

    def _refetch_in_background(self, key: QueryKey) -> Optional[asyncio.Task]:
        fetcher = self._fetchers.get(key)
        if fetcher is None or key in self._inflight:
            return None
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug(f"[cache] no running loop, {key!r} refetches on next read")
            return None
        fn, stale_time = fetcher
        task = loop.create_task(self.fetch(key, fn, stale_time=stale_time, force=True))
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    def remove(self, key: QueryKey) -> None:
        self._states.pop(key, None)
        self._fetchers.pop(key, None)
        task = self._inflight.pop(key, None)
        if task is not None:
            task.cancel()

    def clear(self) -> None:
        """Drop every entry, in-flight fetch and listener."""
        for task in list(self._inflight.values()) + list(self._background):
            task.cancel()
        self._inflight.clear()
        self._background.clear()
        self._states.clear()
        self._fetchers.clear()
        self._listeners.clear()
