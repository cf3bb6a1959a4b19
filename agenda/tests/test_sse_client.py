"""Tests for the text/event-stream decoder and EventSource client."""

import httpx
import pytest

from agenda.client.sse import EventSource, ReadyState, SSEDecoder, ServerSentEvent
from agenda.core.errors import EventStreamError


def decode_all(lines):
    decoder = SSEDecoder()
    events = [decoder.decode(line) for line in lines]
    return [event for event in events if event is not None], decoder


def test_decoder_dispatches_on_blank_line():
    events, _ = decode_all(['data: {"type": "new_appointment"}', ""])
    assert events == [ServerSentEvent(data='{"type": "new_appointment"}')]


def test_decoder_joins_multiline_data():
    events, _ = decode_all(["data: first", "data: second", ""])
    assert events[0].data == "first\nsecond"


def test_decoder_ignores_comments_and_empty_blocks():
    events, _ = decode_all([": keepalive", "", "", "data:x", ""])
    assert [event.data for event in events] == ["x"]


def test_decoder_reads_event_name_id_and_retry():
    events, decoder = decode_all(["retry: 2500", "id: 41", "event: ping", "data: {}", ""])
    assert events == [ServerSentEvent(event="ping", data="{}", id="41")]
    assert decoder.retry == 2500
    assert decoder.last_event_id == "41"


def test_decoder_ignores_non_numeric_retry():
    _, decoder = decode_all(["retry: soon", ""])
    assert decoder.retry is None


def _stream_response(body: bytes) -> httpx.Response:
    return httpx.Response(200, headers={"content-type": "text/event-stream"}, content=body)


@pytest.mark.asyncio
async def test_event_source_reconnects_with_last_event_id():
    requests = []
    sleeps = []
    responses = [
        _stream_response(b"retry: 50\nid: 7\ndata: first\n\n"),
        httpx.Response(204),
    ]

    def handler(request):
        requests.append(request)
        return responses.pop(0)

    async def fake_sleep(seconds):
        sleeps.append(seconds)

    errors = []
    client = httpx.AsyncClient(base_url="http://agenda.test", transport=httpx.MockTransport(handler))
    source = EventSource(client, "/api/events", retry_ms=3000, on_error=errors.append, sleep=fake_sleep)

    received = []
    with pytest.raises(EventStreamError):
        async for event in source:
            received.append(event.data)

    assert received == ["first"]
    assert sleeps == [0.05]
    assert requests[0].headers["accept"] == "text/event-stream"
    assert "last-event-id" not in requests[0].headers
    assert requests[1].headers["last-event-id"] == "7"
    # Server closing the stream is reported without an exception, the refusal with one
    assert errors[0] is None
    assert isinstance(errors[1], EventStreamError)
    assert source.ready_state is ReadyState.CLOSED


@pytest.mark.asyncio
async def test_event_source_rejects_wrong_content_type():
    client = httpx.AsyncClient(
        base_url="http://agenda.test",
        transport=httpx.MockTransport(lambda _r: httpx.Response(200, json={"ok": True})),
    )
    source = EventSource(client, "/api/events")

    with pytest.raises(EventStreamError):
        async for _event in source:
            pass


@pytest.mark.asyncio
async def test_event_source_retries_after_network_error():
    attempts = []

    def handler(request):
        attempts.append(request)
        if len(attempts) == 1:
            raise httpx.ConnectError("refused", request=request)
        return _stream_response(b"data: back\n\n")

    async def fake_sleep(_seconds):
        return None

    errors = []
    client = httpx.AsyncClient(base_url="http://agenda.test", transport=httpx.MockTransport(handler))
    source = EventSource(client, "/api/events", retry_ms=10, on_error=errors.append, sleep=fake_sleep)

    async for event in source:
        assert event.data == "back"
        source.close()

    assert len(attempts) == 2
    assert isinstance(errors[0], httpx.ConnectError)
