"""Tests for the streaming completion client."""

import asyncio
import json
import logging
from pathlib import Path

import httpx
import pytest

from codechat.llm.client import LLMClient
from codechat.llm.errors import (
    MalformedResponseError,
    StreamUnavailableError,
    TransportError,
)
from codechat.log import JsonlHandler, logger
from codechat.settings import LLMSettings
from codechat.util.cancellation import CancellationEvent, OperationCancelledError
from tests.llm_utils import (
    RecordingTransport,
    anthropic_event,
    json_transport,
    openai_chunk,
    sse_body,
    streaming_transport,
)

pytestmark = pytest.mark.unit

MESSAGES = [
    {"role": "system", "content": "be brief"},
    {"role": "user", "content": "hello?"},
]


def _collect(client: LLMClient, **kwargs) -> tuple[str, list[str]]:
    seen: list[str] = []
    result = asyncio.run(client.send(MESSAGES, seen.append, **kwargs))
    return result, seen


def test_missing_endpoint_rejected() -> None:
    with pytest.raises(ValueError):
        LLMClient(LLMSettings(endpoint=""))


def test_stream_reports_cumulative_text_and_stops_at_done(llm_settings) -> None:
    body = (
        b'data: {"choices":[{"delta":{"content":"Hel"}}]}\n\n'
        b'data: {"choices":[{"delta":{"content":"lo"}}]}\n\n'
        b"data: [DONE]\n\n"
        b'data: {"choices":[{"delta":{"content":"ignored"}}]}\n\n'
    )
    transport = streaming_transport([body])
    client = LLMClient(llm_settings, transport=transport)

    result, seen = _collect(client)

    assert seen == ["Hel", "Hello"]
    assert result == "Hello"


def test_last_delta_equals_returned_text(llm_settings) -> None:
    body = sse_body([openai_chunk(part) for part in ("a", "b", "c")], done=False)
    client = LLMClient(llm_settings, transport=streaming_transport([body]))

    result, seen = _collect(client)

    assert seen[-1] == result == "abc"


def test_request_body_and_headers(llm_settings) -> None:
    transport = streaming_transport([sse_body([openai_chunk("ok")])])
    client = LLMClient(llm_settings, transport=transport)

    _collect(client)

    request = transport.requests[-1]
    assert request.method == "POST"
    assert str(request.url) == llm_settings.endpoint
    assert request.headers["authorization"] == "Bearer sk-test-secret"
    body = transport.last_json
    assert body == {
        "model": "test-model",
        "messages": MESSAGES,
        "temperature": 0.7,
        "max_tokens": 4000,
        "stream": True,
    }


def test_multibyte_character_split_across_chunks(llm_settings) -> None:
    body = sse_body([openai_chunk("naïve ✓")])
    split_at = body.index("✓".encode()) + 1
    chunks = [body[:split_at], body[split_at:]]
    client = LLMClient(llm_settings, transport=streaming_transport(chunks))

    result, _ = _collect(client)

    assert result == "naïve ✓"


def test_line_split_across_chunks_is_reassembled(llm_settings) -> None:
    body = sse_body([openai_chunk("first"), openai_chunk(" second")])
    chunks = [body[i : i + 7] for i in range(0, len(body), 7)]
    client = LLMClient(llm_settings, transport=streaming_transport(chunks))

    result, seen = _collect(client)

    assert seen == ["first", "first second"]
    assert result == "first second"


def test_carriage_return_delimited_stream(llm_settings) -> None:
    body = (
        b'data: {"choices":[{"delta":{"content":"Hel"}}]}\r'
        b'data: {"choices":[{"delta":{"content":"lo"}}]}\r'
        b"data: [DONE]\r"
    )
    client = LLMClient(llm_settings, transport=streaming_transport([body[:50], body[50:]]))

    result, seen = _collect(client)

    assert seen == ["Hel", "Hello"]
    assert result == "Hello"


def test_stream_without_sentinel_returns_at_end(llm_settings) -> None:
    body = b'data: {"choices":[{"delta":{"content":"tail"}}]}'
    client = LLMClient(llm_settings, transport=streaming_transport([body]))

    result, seen = _collect(client)

    assert result == "tail"
    assert seen == ["tail"]


def test_malformed_line_is_skipped(llm_settings, caplog) -> None:
    body = sse_body(
        [openai_chunk("one"), "data: {not json", openai_chunk(" two")]
    )
    client = LLMClient(llm_settings, transport=streaming_transport([body]))

    with caplog.at_level(logging.WARNING, logger="codechat"):
        result, seen = _collect(client)

    assert result == "one two"
    assert seen == ["one", "one two"]
    assert any("Failed to decode stream chunk" in r.getMessage() for r in caplog.records)


def test_non_data_lines_and_shapes_without_content_ignored(llm_settings) -> None:
    body = sse_body(
        [
            ": keep-alive",
            "event: ping",
            'data: {"choices":[{"delta":{"role":"assistant"}}]}',
            'data: {"choices":[]}',
            openai_chunk("x"),
        ]
    )
    client = LLMClient(llm_settings, transport=streaming_transport([body]))

    result, seen = _collect(client)

    assert result == "x"
    assert seen == ["x"]


def test_error_status_uses_structured_error_message(llm_settings) -> None:
    transport = json_transport(429, {"error": {"message": "rate limited"}})
    client = LLMClient(llm_settings, transport=transport)

    with pytest.raises(TransportError) as excinfo:
        _collect(client)

    assert excinfo.value.status_code == 429
    assert "rate limited" in str(excinfo.value)


def test_error_status_falls_back_to_status_text(llm_settings) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(502, content=b"<html>bad gateway</html>")

    client = LLMClient(llm_settings, transport=RecordingTransport(handler))

    with pytest.raises(TransportError) as excinfo:
        _collect(client)

    assert excinfo.value.status_code == 502
    assert str(excinfo.value) == "API error: Bad Gateway"


def test_no_content_response_raises_stream_unavailable(llm_settings) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(204)

    client = LLMClient(llm_settings, transport=RecordingTransport(handler))

    with pytest.raises(StreamUnavailableError):
        _collect(client)


def test_network_failure_becomes_transport_error(llm_settings) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = LLMClient(llm_settings, transport=RecordingTransport(handler))

    with pytest.raises(TransportError) as excinfo:
        _collect(client)

    assert excinfo.value.status_code is None
    assert "connection refused" in str(excinfo.value)


def test_cancellation_stops_deltas(llm_settings) -> None:
    gate = asyncio.Event()
    chunks = [
        sse_body([openai_chunk("first")], done=False),
        sse_body([openai_chunk(" second")]),
    ]
    cancellation = CancellationEvent()
    seen: list[str] = []

    async def scenario() -> None:
        client = LLMClient(
            llm_settings, transport=streaming_transport(chunks, gate=gate)
        )
        task = asyncio.create_task(
            client.send(MESSAGES, seen.append, cancellation=cancellation)
        )
        while not seen:
            await asyncio.sleep(0)
        cancellation.set()
        gate.set()
        with pytest.raises(OperationCancelledError):
            await task

    asyncio.run(scenario())

    assert seen == ["first"]


def test_already_cancelled_sends_nothing(llm_settings) -> None:
    transport = streaming_transport([sse_body([openai_chunk("x")])])
    client = LLMClient(llm_settings, transport=transport)
    cancellation = CancellationEvent()
    cancellation.set()

    with pytest.raises(OperationCancelledError):
        _collect(client, cancellation=cancellation)

    assert transport.requests == []


def test_anthropic_stream(llm_settings) -> None:
    settings = llm_settings.model_copy(update={"message_format": "anthropic"})
    body = sse_body(
        [
            anthropic_event({"type": "message_start", "message": {}}),
            anthropic_event(
                {"type": "content_block_delta", "delta": {"type": "text_delta", "text": "Hi"}}
            ),
            anthropic_event(
                {"type": "content_block_delta", "delta": {"type": "text_delta", "text": "!"}}
            ),
            anthropic_event({"type": "message_stop"}),
            anthropic_event(
                {"type": "content_block_delta", "delta": {"text": "late"}}
            ),
        ],
        done=False,
    )
    transport = streaming_transport([body])
    client = LLMClient(settings, transport=transport)

    result, seen = _collect(client)

    assert seen == ["Hi", "Hi!"]
    assert result == "Hi!"
    request = transport.requests[-1]
    assert request.headers["x-api-key"] == "sk-test-secret"
    assert "authorization" not in request.headers
    payload = transport.last_json
    assert payload["system"] == "be brief"
    assert payload["messages"] == [{"role": "user", "content": "hello?"}]


def test_complete_returns_content(llm_settings) -> None:
    transport = json_transport(
        200, {"choices": [{"message": {"role": "assistant", "content": "done"}}]}
    )
    client = LLMClient(llm_settings, transport=transport)

    assert asyncio.run(client.complete(MESSAGES)) == "done"
    assert transport.last_json["stream"] is False


def test_complete_without_content_is_malformed(llm_settings) -> None:
    client = LLMClient(llm_settings, transport=json_transport(200, {"choices": []}))

    with pytest.raises(MalformedResponseError):
        asyncio.run(client.complete(MESSAGES))


def test_complete_anthropic_content(llm_settings) -> None:
    settings = llm_settings.model_copy(update={"message_format": "anthropic"})
    transport = json_transport(200, {"content": [{"type": "text", "text": "hey"}]})
    client = LLMClient(settings, transport=transport)

    assert asyncio.run(client.complete(MESSAGES)) == "hey"


def test_check_reports_failure(llm_settings) -> None:
    client = LLMClient(
        llm_settings,
        transport=json_transport(401, {"error": {"message": "bad key"}}),
    )

    result = asyncio.run(client.check())

    assert result["ok"] is False
    assert result["error"]["status_code"] == 401
    assert "bad key" in result["error"]["message"]


def test_check_logs_without_secrets(tmp_path: Path, llm_settings) -> None:
    transport = json_transport(200, {"choices": [{"message": {"content": "pong"}}]})
    client = LLMClient(llm_settings, transport=transport)
    log_file = tmp_path / "llm.jsonl"
    handler = JsonlHandler(str(log_file))
    logger.addHandler(handler)
    prev_level = logger.level
    logger.setLevel(logging.INFO)
    try:
        result = asyncio.run(client.check())
    finally:
        logger.setLevel(prev_level)
        logger.removeHandler(handler)
        handler.close()

    assert result == {"ok": True}
    entries = [json.loads(line) for line in log_file.read_text().splitlines()]
    req = next(e for e in entries if e.get("event") == "LLM_REQUEST")
    res = next(e for e in entries if e.get("event") == "LLM_RESPONSE")
    assert req["payload"]["model"] == "test-model"
    assert "estimated_prompt_tokens" in req["payload"]
    assert res["payload"]["ok"] is True
    assert "duration_ms" in res
    assert "sk-test-secret" not in log_file.read_text()
