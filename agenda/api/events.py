"""
agenda/api/events.py

Server-sent events endpoint for company live updates.

Frames:
- "retry: <ms>" once, so clients know the reconnection delay
- "data: <json>" per hub message (e.g. {"type": "new_appointment", ...})
- ": keepalive" comment when the stream has been idle
"""

from typing import AsyncIterator, Awaitable, Callable, Optional
import asyncio
import json
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from agenda.core.auth import get_company_id
from agenda.core.config import settings
from agenda.core.logging import log_event
from agenda.realtime.hub import EventHub, hub

logger = logging.getLogger(__name__)

router = APIRouter()

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def format_sse(message: dict, event: Optional[str] = None) -> str:
    """Encode one message as a text/event-stream frame."""
    lines = []
    if event:
        lines.append(f"event: {event}")
    payload = json.dumps(message, default=str)
    for line in payload.splitlines() or [""]:
        lines.append(f"data: {line}")
    return "\n".join(lines) + "\n\n"


async def company_event_stream(
    company_id: int,
    is_disconnected: Callable[[], Awaitable[bool]],
    *,
    event_hub: EventHub,
    keepalive_seconds: float,
    retry_ms: int,
) -> AsyncIterator[str]:
    """Yield SSE frames for a company until the client goes away."""
    subscription = await event_hub.register(company_id)
    log_event("info", "sse.connected", company_id=company_id, event_type="sse.connected",
              extra={"subscription_id": subscription.subscription_id})
    try:
        yield f"retry: {retry_ms}\n\n"
        while True:
            if await is_disconnected():
                break
            try:
                message = await asyncio.wait_for(subscription.get(), timeout=keepalive_seconds)
            except asyncio.TimeoutError:
                yield ": keepalive\n\n"
                continue
            yield format_sse(message)
    finally:
        await event_hub.unregister(subscription)
        log_event("info", "sse.disconnected", company_id=company_id, event_type="sse.disconnected",
                  extra={"subscription_id": subscription.subscription_id})


@router.get("/api/events")
async def stream_events(request: Request, company_id: int = Depends(get_company_id)):
    """Open a live-update stream for the current company."""
    return StreamingResponse(
        company_event_stream(
            company_id,
            request.is_disconnected,
            event_hub=hub,
            keepalive_seconds=settings.SSE_KEEPALIVE_SECONDS,
            retry_ms=settings.SSE_RETRY_MS,
        ),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
