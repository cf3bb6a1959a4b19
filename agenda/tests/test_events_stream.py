"""Tests for the server-sent events stream."""

import asyncio
import json

import pytest
from fastapi.testclient import TestClient

from agenda.api.events import company_event_stream, format_sse
from agenda.main import app
from agenda.realtime.hub import EventHub


def _connected():
    async def is_disconnected() -> bool:
        return False
    return is_disconnected


def test_format_sse_frame():
    frame = format_sse({"type": "new_appointment", "appointment": {"id": 3}})
    assert frame.startswith("data: ")
    assert frame.endswith("\n\n")
    assert json.loads(frame[len("data: "):].strip()) == {
        "type": "new_appointment",
        "appointment": {"id": 3},
    }


def test_format_sse_named_event():
    frame = format_sse({"ok": True}, event="ping")
    assert frame.splitlines()[0] == "event: ping"


@pytest.mark.asyncio
async def test_stream_announces_retry_then_relays_messages():
    event_hub = EventHub(queue_max=10)
    stream = company_event_stream(
        5, _connected(), event_hub=event_hub, keepalive_seconds=5, retry_ms=1500
    )

    assert await stream.__anext__() == "retry: 1500\n\n"
    assert await event_hub.get_subscriber_count(5) == 1

    await event_hub.publish(5, {"type": "new_appointment", "appointment": {"id": 9}})
    frame = await stream.__anext__()
    assert json.loads(frame[len("data: "):]) == {"type": "new_appointment", "appointment": {"id": 9}}

    await stream.aclose()
    assert await event_hub.get_subscriber_count(5) == 0


@pytest.mark.asyncio
async def test_idle_stream_sends_keepalive():
    event_hub = EventHub(queue_max=10)
    stream = company_event_stream(
        5, _connected(), event_hub=event_hub, keepalive_seconds=0.01, retry_ms=1000
    )
    await stream.__anext__()
    assert await stream.__anext__() == ": keepalive\n\n"
    await stream.aclose()


@pytest.mark.asyncio
async def test_disconnected_client_is_unregistered():
    event_hub = EventHub(queue_max=10)
    disconnected = asyncio.Event()

    async def is_disconnected() -> bool:
        return disconnected.is_set()

    stream = company_event_stream(
        5, is_disconnected, event_hub=event_hub, keepalive_seconds=0.01, retry_ms=1000
    )
    await stream.__anext__()
    disconnected.set()

    with pytest.raises(StopAsyncIteration):
        await stream.__anext__()
    assert await event_hub.get_global_count() == 0


def test_events_endpoint_requires_company():
    client = TestClient(app)
    resp = client.get("/api/events")
    assert resp.status_code == 401
    assert resp.json()["error"]["code"] == "unauthorized"
