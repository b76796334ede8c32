from __future__ import annotations

import pytest

from codechat.llm.errors import MalformedResponseError
from codechat.llm.response_parser import (
    extract_error_detail,
    extract_stream_fragment,
    is_stream_stop,
    parse_completion,
)
from codechat.llm.stream import SSELineDecoder, parse_data_line

pytestmark = pytest.mark.unit


def test_openai_fragment_extraction():
    event = {"choices": [{"delta": {"content": "abc"}}]}

    assert extract_stream_fragment(event, "openai-chat") == "abc"
    assert extract_stream_fragment({"choices": [{"delta": {}}]}, "openai-chat") is None
    assert extract_stream_fragment({"choices": []}, "openai-chat") is None
    assert extract_stream_fragment([1, 2], "openai-chat") is None
    assert extract_stream_fragment({"choices": [{"delta": {"content": ""}}]}, "openai-chat") is None


def test_anthropic_fragment_extraction_and_stop():
    delta = {"type": "content_block_delta", "delta": {"type": "text_delta", "text": "x"}}

    assert extract_stream_fragment(delta, "anthropic") == "x"
    assert extract_stream_fragment({"type": "message_start"}, "anthropic") is None
    assert is_stream_stop({"type": "message_stop"}, "anthropic")
    assert not is_stream_stop({"type": "message_stop"}, "openai-chat")


def test_parse_completion_reads_content_field():
    data = {"choices": [{"message": {"role": "assistant", "content": "answer"}}]}

    assert parse_completion(data, "openai-chat") == "answer"
    assert parse_completion({"content": [{"text": "hi"}]}, "anthropic") == "hi"


@pytest.mark.parametrize(
    "data",
    [
        {},
        {"choices": []},
        {"choices": [{"message": {"content": None}}]},
        {"choices": [{"message": {"content": ""}}]},
        "not a mapping",
    ],
)
def test_parse_completion_rejects_missing_content(data):
    with pytest.raises(MalformedResponseError, match="Invalid response format"):
        parse_completion(data, "openai-chat")


def test_extract_error_detail_variants():
    assert extract_error_detail({"error": {"message": "quota"}}) == "quota"
    assert extract_error_detail({"error": {"type": "overloaded_error"}}) == "overloaded_error"
    assert extract_error_detail({"error": "plain"}) == "plain"
    assert extract_error_detail({"detail": "other"}) is None
    assert extract_error_detail(None) is None


def test_parse_data_line():
    assert parse_data_line('data:  {"a": 1}  ') == '{"a": 1}'
    assert parse_data_line("data: [DONE]") == "[DONE]"
    assert parse_data_line("data:") == ""
    assert parse_data_line("event: ping") is None
    assert parse_data_line(": comment") is None


def test_decoder_holds_partial_lines_and_skips_blank_ones():
    decoder = SSELineDecoder()

    assert decoder.feed(b"data: one\r\n\r\ndata: tw") == ["data: one"]
    assert decoder.feed(b"o\n\n\n") == ["data: two"]
    assert decoder.feed(b"data: three") == []
    assert decoder.flush() == ["data: three"]
    assert decoder.flush() == []


def test_decoder_accepts_bare_carriage_returns():
    decoder = SSELineDecoder()

    assert decoder.feed(b'data: {"a":1}\rdata: [DONE]\r') == [
        'data: {"a":1}',
        "data: [DONE]",
    ]
    assert decoder.flush() == []


def test_decoder_handles_crlf_split_between_chunks():
    decoder = SSELineDecoder()

    assert decoder.feed(b"data: one\r") == ["data: one"]
    assert decoder.feed(b"\ndata: two\r\n") == ["data: two"]
    assert decoder.flush() == []


def test_decoder_joins_split_multibyte_characters():
    raw = "data: привет\n".encode("utf-8")
    decoder = SSELineDecoder()
    lines: list[str] = []

    for index in range(len(raw)):
        lines.extend(decoder.feed(raw[index : index + 1]))
    lines.extend(decoder.flush())

    assert lines == ["data: привет"]


def test_decoder_replaces_invalid_bytes():
    decoder = SSELineDecoder()

    lines = decoder.feed(b"data: \xff\n")

    assert lines == ["data: �"]
