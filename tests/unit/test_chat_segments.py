import pytest

from codechat.chat.segments import (
    CodeBlockActions,
    CodeSegment,
    TextSegment,
    extract_code_block,
    join_segments,
    segment_response,
)

pytestmark = pytest.mark.unit


def test_rust_fence_example() -> None:
    segments = segment_response("fix:\n```rust\nfn a(){}\n```")

    assert len(segments) == 2
    assert segments[0] == TextSegment("fix:\n")
    code = segments[1]
    assert isinstance(code, CodeSegment)
    assert code.language == "rust"
    assert code.value == "fn a(){}"
    assert code.terminated


def test_plain_text_is_single_segment() -> None:
    assert segment_response("no code here") == [TextSegment("no code here")]
    assert segment_response("") == []


def test_body_keeps_indentation_and_drops_blank_edges() -> None:
    text = "```python\n\n    return 1\n  \n```"

    (code,) = segment_response(text)

    assert code.value == "    return 1"
    assert code.language == "python"


def test_unterminated_fence_streams_progressively() -> None:
    partial = "Here:\n```ts\nconst a = 1;\nconst b"

    segments = segment_response(partial)

    assert segments[0] == TextSegment("Here:\n")
    code = segments[1]
    assert isinstance(code, CodeSegment)
    assert code.value == "const a = 1;\nconst b"
    assert not code.terminated


def test_tag_line_only_yields_empty_body() -> None:
    segments = segment_response("look ```rus")

    assert segments[-1] == CodeSegment("rus", "", "rus", terminated=False)


def test_missing_language_tag() -> None:
    (code,) = segment_response("```\nplain\n```")

    assert code.language == ""
    assert code.value == "plain"


@pytest.mark.parametrize(
    "text",
    [
        "fix:\n```rust\nfn a(){}\n```",
        "a ```py\nx\n``` b ```js\ny\n``` c",
        "```one``````two```",
        "prefix\n```go\n\n\tfunc main() {}\n\n```\nsuffix",
        "streaming ```rust\nfn",
        "",
    ],
)
def test_join_restores_original_text(text: str) -> None:
    assert join_segments(segment_response(text)) == text


def test_join_builds_fences_for_new_segments() -> None:
    segments = [TextSegment("Use:\n"), CodeSegment("rust", "fn a(){}")]

    assert join_segments(segments) == "Use:\n```rust\nfn a(){}\n```"


def test_extract_code_block() -> None:
    assert extract_code_block("text\n```rust\n  fn a(){}\n```\nmore") == "fn a(){}"
    assert extract_code_block("```\nbare\n```") == "bare"
    assert extract_code_block("nothing fenced") == "nothing fenced"


def test_actions_address_segments_by_position() -> None:
    copied: list[str] = []
    applied: list[str] = []
    actions = CodeBlockActions.for_text(
        "a\n```py\nx = 1\n```\nb\n```js\nlet y\n```",
        clipboard=copied.append,
        apply_code=applied.append,
    )

    assert actions.code_indices() == [1, 3]
    assert actions.copy(3)
    assert actions.apply(1)
    assert copied == ["let y"]
    assert applied == ["x = 1"]


def test_actions_ignore_prose_and_out_of_range() -> None:
    applied: list[str] = []
    actions = CodeBlockActions.for_text("a\n```py\nx\n```", apply_code=applied.append)

    assert not actions.apply(0)
    assert not actions.apply(7)
    assert not actions.copy(1)
    assert applied == []


def test_apply_ignores_blank_code() -> None:
    applied: list[str] = []
    actions = CodeBlockActions.for_text("```py\n   \n```", apply_code=applied.append)

    assert not actions.apply(0)
    assert applied == []


def test_copy_failure_is_silent() -> None:
    def broken_clipboard(_text: str) -> None:
        raise OSError("no clipboard")

    actions = CodeBlockActions.for_text("```py\nx\n```", clipboard=broken_clipboard)

    assert actions.copy(0) is False
