"""
agenda/client/live_updates.py

Live Update Channel: one server-sent-events connection per consumer.

A "new_appointment" message invalidates the cached appointment list (views
subscribed to it refetch) and is handed to every active subscriber.
Malformed messages are logged and dropped; they never close the stream.
Recovery after a dropped connection is left to the EventSource transport.
"""

from enum import Enum
from itertools import count
from typing import Any, Callable, Dict, Optional, Tuple
import asyncio
import json
import logging

import httpx

from agenda.client.appointments import APPOINTMENTS_QUERY_KEY
from agenda.client.query_cache import QueryCache
from agenda.client.sse import EventSource
from agenda.core.config import settings
from agenda.core.errors import EventStreamError
from agenda.models.appointment import NEW_APPOINTMENT

logger = logging.getLogger(__name__)

AppointmentHandler = Callable[[Any], None]


class ChannelStatus(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    OPEN = "open"
    # Transport lost; data may be stale until the stream reopens
    DISCONNECTED = "disconnected"
    CLOSED = "closed"


class CancellationToken:
    """Returned by subscribe(); after cancel() the handler is never invoked."""

    def __init__(self, on_cancel: Optional[Callable[[], None]] = None):
        self._cancelled = False
        self._on_cancel = on_cancel

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        on_cancel, self._on_cancel = self._on_cancel, None
        if on_cancel is not None:
            on_cancel()


class LiveUpdateChannel:
    def __init__(
        self,
        client: httpx.AsyncClient,
        cache: QueryCache,
        *,
        path: Optional[str] = None,
        on_new_appointment: Optional[AppointmentHandler] = None,
        on_status_change: Optional[Callable[[ChannelStatus], None]] = None,
        retry_ms: Optional[int] = None,
        query_key=APPOINTMENTS_QUERY_KEY,
    ):
        self._client = client
        self._cache = cache
        self._path = path or settings.EVENTS_PATH
        self._on_status_change = on_status_change
        self._retry_ms = retry_ms
        self._query_key = query_key
        self._handlers: Dict[int, Tuple[CancellationToken, AppointmentHandler]] = {}
        self._ids = count()
        self._source: Optional[EventSource] = None
        self._task: Optional[asyncio.Task] = None
        self._started = False
        self._closing = False
        self.status = ChannelStatus.IDLE
        if on_new_appointment is not None:
            self.subscribe(on_new_appointment)

    def subscribe(self, handler: AppointmentHandler) -> CancellationToken:
        handler_id = next(self._ids)
        token = CancellationToken(lambda: self._handlers.pop(handler_id, None))
        if self._closing:
            token.cancel()
            return token
        self._handlers[handler_id] = (token, handler)
        return token

    def _set_status(self, status: ChannelStatus) -> None:
        if status == self.status:
            return
        self.status = status
        if self._on_status_change is not None:
            try:
                self._on_status_change(status)
            except Exception:
                logger.exception("[live] status listener failed")

    def _handle_open(self) -> None:
        if not self._closing:
            logger.info("[live] event stream open")
            self._set_status(ChannelStatus.OPEN)

    def _handle_error(self, exc: Optional[BaseException]) -> None:
        if self._closing:
            return
        logger.error(f"[live] SSE connection error: {exc!r}" if exc else "[live] SSE connection closed by server")
        self._set_status(ChannelStatus.DISCONNECTED)

    async def start(self) -> None:
        """Open the event stream. A channel connects once and never after stop()."""
        if self._closing:
            raise RuntimeError("LiveUpdateChannel is closed")
        if self._started:
            raise RuntimeError("LiveUpdateChannel can only be started once")
        self._started = True
        self._source = EventSource(
            self._client,
            self._path,
            retry_ms=self._retry_ms,
            on_open=self._handle_open,
            on_error=self._handle_error,
        )
        self._set_status(ChannelStatus.CONNECTING)
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def _run(self) -> None:
        try:
            async for event in self._source:
                # Named events are not delivered to the message handler
                if event.event != "message":
                    continue
                self.handle_message(event.data)
        except EventStreamError as exc:
            logger.error(f"[live] event stream refused: {exc}")
            # EventSource does not retry a refused handshake
            if not self._closing:
                self._set_status(ChannelStatus.CLOSED)

    async def stop(self) -> None:
        """Close the stream. No handler runs once this has been called."""
        if self._closing:
            return
        self._closing = True
        for token, _handler in list(self._handlers.values()):
            token.cancel()
        if self._source is not None:
            self._source.close()
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._set_status(ChannelStatus.CLOSED)

    @property
    def closed(self) -> bool:
        return self._closing

    async def __aenter__(self) -> "LiveUpdateChannel":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    def handle_message(self, raw: str) -> bool:
        """
        Process one message payload.

        Returns:
            True when the message was a new_appointment and was acted on
        """
        if self._closing:
            return False
        try:
            envelope = json.loads(raw)
        except ValueError:
            logger.error("[live] Error parsing SSE message", extra={"error_code": "malformed_event"})
            return False
        if not isinstance(envelope, dict) or "type" not in envelope:
            logger.error("[live] SSE message without type", extra={"error_code": "malformed_event"})
            return False
        if envelope["type"] != NEW_APPOINTMENT:
            logger.debug(f"[live] ignoring event type {envelope['type']!r}")
            return False

        self._cache.invalidate(self._query_key)
        logger.info("[live] New appointment detected, refreshing calendar")

        appointment = envelope.get("appointment")
        if appointment is not None:
            self._dispatch(appointment)
        return True

    def _dispatch(self, appointment: Any) -> None:
        for token, handler in list(self._handlers.values()):
            # A handler may stop the channel or cancel later handlers
            if self._closing:
                return
            if token.cancelled:
                continue
            try:
                handler(appointment)
            except Exception:
                logger.exception("[live] new_appointment handler failed")
