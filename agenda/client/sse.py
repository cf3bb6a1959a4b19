"""
agenda/client/sse.py

text/event-stream client over httpx.

EventSource behaves like the browser object of the same name: a dropped
connection or network error is reported through on_error and the stream is
reopened after the reconnection delay (the server may change it with a
"retry:" field), sending Last-Event-ID. A refused handshake (non-200 status
or a content type other than text/event-stream) is fatal.
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import AsyncIterator, Awaitable, Callable, Dict, List, Optional
import asyncio
import logging

import httpx

from agenda.core.config import settings
from agenda.core.errors import EventStreamError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ServerSentEvent:
    event: str = "message"
    data: str = ""
    id: Optional[str] = None


class ReadyState(IntEnum):
    CONNECTING = 0
    OPEN = 1
    CLOSED = 2


class SSEDecoder:
    """Line-at-a-time decoder; decode() returns an event on dispatch."""

    def __init__(self, last_event_id: Optional[str] = None):
        self.last_event_id = last_event_id
        self.retry: Optional[int] = None
        self._event = ""
        self._data: List[str] = []

    def decode(self, line: str) -> Optional[ServerSentEvent]:
        if line == "":
            if not self._data:
                self._event = ""
                return None
            event = ServerSentEvent(
                event=self._event or "message",
                data="\n".join(self._data),
                id=self.last_event_id,
            )
            self._event = ""
            self._data = []
            return event

        if line.startswith(":"):
            return None

        name, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]

        if name == "data":
            self._data.append(value)
        elif name == "event":
            self._event = value
        elif name == "id":
            if "\0" not in value:
                self.last_event_id = value
        elif name == "retry":
            if value.isdigit():
                self.retry = int(value)
        return None


class EventSource:
    def __init__(
        self,
        client: httpx.AsyncClient,
        url: str,
        *,
        retry_ms: Optional[int] = None,
        headers: Optional[Dict[str, str]] = None,
        on_open: Optional[Callable[[], None]] = None,
        on_error: Optional[Callable[[Optional[BaseException]], None]] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._client = client
        self.url = url
        self.retry_ms = retry_ms if retry_ms is not None else settings.SSE_RETRY_MS
        self._headers = dict(headers or {})
        self._on_open = on_open
        self._on_error = on_error
        self._sleep = sleep
        # Streams stay open indefinitely; only connecting is bounded
        self._timeout = httpx.Timeout(settings.HTTP_TIMEOUT_SECONDS, read=None)
        self.last_event_id: Optional[str] = None
        self.ready_state = ReadyState.CONNECTING
        self._closed = False

    def close(self) -> None:
        self._closed = True
        self.ready_state = ReadyState.CLOSED

    def _request_headers(self) -> Dict[str, str]:
        headers = {"Accept": "text/event-stream", "Cache-Control": "no-cache", **self._headers}
        if self.last_event_id:
            headers["Last-Event-ID"] = self.last_event_id
        return headers

    @staticmethod
    def _check_handshake(response: httpx.Response) -> None:
        if response.status_code != 200:
            raise EventStreamError(
                f"Event stream refused with status {response.status_code}",
                status_code=response.status_code,
            )
        content_type = response.headers.get("content-type", "")
        if not content_type.split(";")[0].strip().lower() == "text/event-stream":
            raise EventStreamError(
                f"Event stream has unexpected content type {content_type!r}",
                status_code=response.status_code,
            )

    def _report_error(self, exc: Optional[BaseException]) -> None:
        if self._on_error is not None:
            self._on_error(exc)

    def __aiter__(self) -> AsyncIterator[ServerSentEvent]:
        return self.events()

    async def events(self) -> AsyncIterator[ServerSentEvent]:
        while not self._closed:
            self.ready_state = ReadyState.CONNECTING
            error: Optional[BaseException] = None
            try:
                async with self._client.stream(
                    "GET", self.url, headers=self._request_headers(), timeout=self._timeout
                ) as response:
                    self._check_handshake(response)
                    self.ready_state = ReadyState.OPEN
                    if self._on_open is not None:
                        self._on_open()
                    decoder = SSEDecoder(self.last_event_id)
                    async for line in response.aiter_lines():
                        if self._closed:
                            return
                        event = decoder.decode(line)
                        if decoder.retry is not None:
                            self.retry_ms = decoder.retry
                        self.last_event_id = decoder.last_event_id
                        if event is not None:
                            yield event
            except EventStreamError as exc:
                self.close()
                self._report_error(exc)
                raise
            except httpx.HTTPError as exc:
                error = exc

            if self._closed:
                return
            # Server ended the stream or the connection failed; reopen after the delay
            self.ready_state = ReadyState.CONNECTING
            self._report_error(error)
            await self._sleep(self.retry_ms / 1000)
