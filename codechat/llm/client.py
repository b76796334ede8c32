"""Client for streaming completions from an OpenAI-compatible endpoint."""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable, Mapping, Sequence
from contextlib import aclosing, suppress
from typing import TYPE_CHECKING, Any

import httpx

from ..util.cancellation import (
    CancellationEvent,
    OperationCancelledError,
    raise_if_cancelled,
)
from .errors import (
    ChunkDecodeError,
    LLMError,
    MalformedResponseError,
    StreamUnavailableError,
    TransportError,
)
from .logging import log_request, log_response, log_stream_event
from .request_builder import LLMRequestBuilder
from .response_parser import (
    extract_error_detail,
    extract_stream_fragment,
    is_stream_stop,
    parse_completion,
)
from .stream import DONE_SENTINEL, SSELineDecoder, parse_data_line

if TYPE_CHECKING:  # pragma: no cover - import for type checking only
    from ..settings import LLMSettings

__all__ = ["DeltaCallback", "LLMClient"]

logger = logging.getLogger(__name__)

DeltaCallback = Callable[[str], None]


class _StreamState:
    """Accumulated text and bookkeeping for one streamed response."""

    __slots__ = ("text", "finished", "fragments", "skipped_lines")

    def __init__(self) -> None:
        self.text = ""
        self.finished = False
        self.fragments = 0
        self.skipped_lines = 0


def _describe_error(exc: BaseException) -> dict[str, Any]:
    payload: dict[str, Any] = {"type": type(exc).__name__, "message": str(exc)}
    status_code = getattr(exc, "status_code", None)
    if status_code is not None:
        payload["status_code"] = status_code
    return payload


class LLMClient:
    """Send chat messages to the configured endpoint and collect the reply."""

    def __init__(
        self,
        settings: LLMSettings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize client with LLM ``settings``.

        ``transport`` replaces the network layer of :mod:`httpx`; tests pass
        an :class:`httpx.MockTransport`.
        """
        if not settings.endpoint:
            raise ValueError("LLM endpoint is not configured")
        self.settings = settings
        self._transport = transport
        self._request_builder = LLMRequestBuilder(settings)

    # ------------------------------------------------------------------
    async def send(
        self,
        messages: Sequence[Mapping[str, Any]],
        on_delta: DeltaCallback,
        *,
        cancellation: CancellationEvent | None = None,
    ) -> str:
        """Stream a completion for *messages*, reporting progress via *on_delta*.

        *on_delta* receives the whole text accumulated so far after every
        fragment.  The returned value equals the last text passed to it.
        """
        payload = self._request_builder.build_payload(messages, stream=True)
        start = time.monotonic()
        log_request(payload)
        state = _StreamState()
        try:
            await self._stream(payload, state, on_delta, cancellation)
        except OperationCancelledError:
            log_response(
                {"cancelled": True, "chars": len(state.text)}, start_time=start
            )
            raise
        except LLMError as exc:
            log_response(
                {"error": _describe_error(exc), "chars": len(state.text)},
                start_time=start,
            )
            raise
        log_response(
            {
                "ok": True,
                "stream": True,
                "chars": len(state.text),
                "fragments": state.fragments,
                "skipped_lines": state.skipped_lines,
            },
            start_time=start,
        )
        return state.text

    async def complete(self, messages: Sequence[Mapping[str, Any]]) -> str:
        """Request a non-streamed completion and return its content field."""
        payload = self._request_builder.build_payload(messages, stream=False)
        start = time.monotonic()
        log_request(payload)
        try:
            try:
                async with self._http_client() as client:
                    response = await client.post(
                        self.settings.endpoint,
                        json=payload,
                        headers=self._request_builder.build_headers(),
                    )
            except httpx.HTTPError as exc:
                raise TransportError(f"API error: {exc}") from exc
            if not response.is_success:
                raise self._transport_error(response)
            try:
                data = response.json()
            except ValueError as exc:
                raise MalformedResponseError("Response body is not valid JSON") from exc
            text = parse_completion(data, self.settings.message_format)
        except LLMError as exc:
            log_response({"error": _describe_error(exc)}, start_time=start)
            raise
        log_response({"ok": True, "stream": False, "chars": len(text)}, start_time=start)
        return text

    async def check(self) -> dict[str, Any]:
        """Perform a minimal request to verify connectivity."""
        try:
            await self.complete([{"role": "user", "content": "ping"}])
        except LLMError as exc:
            return {"ok": False, "error": _describe_error(exc)}
        return {"ok": True}

    # ------------------------------------------------------------------
    def _http_client(self) -> httpx.AsyncClient:
        # Only connecting is bounded here; callers bound the whole exchange.
        timeout = httpx.Timeout(None, connect=self.settings.connect_timeout)
        return httpx.AsyncClient(timeout=timeout, transport=self._transport)

    async def _stream(
        self,
        payload: Mapping[str, Any],
        state: _StreamState,
        on_delta: DeltaCallback,
        cancellation: CancellationEvent | None,
    ) -> None:
        raise_if_cancelled(cancellation)
        try:
            async with self._http_client() as client:
                async with client.stream(
                    "POST",
                    self.settings.endpoint,
                    json=payload,
                    headers=self._request_builder.build_headers(),
                ) as response:
                    if not response.is_success:
                        await response.aread()
                        raise self._transport_error(response)
                    if response.status_code == httpx.codes.NO_CONTENT or not isinstance(
                        response.stream, httpx.AsyncByteStream
                    ):
                        raise StreamUnavailableError(
                            "Response did not include a readable body stream"
                        )
                    await self._consume(response, state, on_delta, cancellation)
        except httpx.HTTPError as exc:
            raise TransportError(f"API error: {exc}") from exc

    async def _consume(
        self,
        response: httpx.Response,
        state: _StreamState,
        on_delta: DeltaCallback,
        cancellation: CancellationEvent | None,
    ) -> None:
        decoder = SSELineDecoder()
        async with aclosing(response.aiter_bytes()) as chunks:
            async for chunk in chunks:
                raise_if_cancelled(cancellation)
                for line in decoder.feed(chunk):
                    self._handle_line(line, state, on_delta, cancellation)
                    if state.finished:
                        return
        raise_if_cancelled(cancellation)
        for line in decoder.flush():
            self._handle_line(line, state, on_delta, cancellation)
            if state.finished:
                return

    def _handle_line(
        self,
        line: str,
        state: _StreamState,
        on_delta: DeltaCallback,
        cancellation: CancellationEvent | None,
    ) -> None:
        payload = parse_data_line(line)
        if not payload:
            return
        if payload == DONE_SENTINEL:
            state.finished = True
            return
        try:
            event = json.loads(payload)
        except json.JSONDecodeError as exc:
            error = ChunkDecodeError(payload, exc)
            state.skipped_lines += 1
            logger.warning("%s", error)
            log_stream_event(
                "LLM_STREAM_CHUNK_SKIPPED",
                {"line": payload[:160], "error": str(exc)},
            )
            return
        message_format = self.settings.message_format
        if is_stream_stop(event, message_format):
            state.finished = True
            return
        fragment = extract_stream_fragment(event, message_format)
        if fragment is None:
            return
        raise_if_cancelled(cancellation)
        state.text += fragment
        state.fragments += 1
        on_delta(state.text)

    @staticmethod
    def _transport_error(response: httpx.Response) -> TransportError:
        detail: str | None = None
        # A body that is not JSON falls back to the status text.
        with suppress(ValueError):
            detail = extract_error_detail(response.json())
        reason = detail or response.reason_phrase or f"HTTP {response.status_code}"
        return TransportError(
            f"API error: {reason}",
            status_code=response.status_code,
            detail=detail,
        )
