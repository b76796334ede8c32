"""Tests for :mod:`codechat.util.json`."""

from __future__ import annotations

import re

from codechat.util.json import make_json_safe, truncate_text
from codechat.util.time import utc_now_iso


def test_make_json_safe_basic_conversion() -> None:
    value = {
        1: ("a", {"b"}),
        "bytes": b"\xffok",
        "nested": [None, 1.5, True],
        "object": object,
    }

    safe = make_json_safe(value)

    assert safe["1"] == ["a", ["b"]]
    assert safe["bytes"] == "�ok"
    assert safe["nested"] == [None, 1.5, True]
    assert safe["object"] == repr(object)


def test_make_json_safe_truncates_long_strings() -> None:
    safe = make_json_safe({"text": "x" * 10}, max_string_length=4)

    assert safe["text"] == "xxxx... (truncated)"


def test_truncate_text_ignores_missing_limit() -> None:
    assert truncate_text("abc", None) == "abc"
    assert truncate_text("abc", 0) == "abc"
    assert truncate_text("abc", 3) == "abc"


def test_utc_now_iso_format() -> None:
    assert re.fullmatch(r"\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\+00:00", utc_now_iso())
