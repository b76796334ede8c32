"""Pytest configuration for the codechat test suite."""

from __future__ import annotations

from pathlib import Path

import pytest

from codechat.chat.history_store import HistoryStore
from codechat.llm import tokenizer
from codechat.llm.logging import _reset_prompt_log_state
from codechat.settings import ChatSettings, LLMSettings
from tests.chat_utils import FakeEditor


@pytest.fixture(autouse=True)
def _fresh_prompt_log_state() -> None:
    _reset_prompt_log_state()


@pytest.fixture(autouse=True)
def _offline_tokenizer(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(tokenizer, "_encoding", lambda model: None)


@pytest.fixture
def llm_settings() -> LLMSettings:
    return LLMSettings(
        endpoint="https://llm.test/v1/chat/completions",
        model="test-model",
        api_key="sk-test-secret",
    )


@pytest.fixture
def chat_settings() -> ChatSettings:
    return ChatSettings(history_window=4, request_timeout=None)


@pytest.fixture
def history_store(tmp_path: Path) -> HistoryStore:
    return HistoryStore(tmp_path / "chat_history.sqlite")


@pytest.fixture
def fake_editor() -> FakeEditor:
    return FakeEditor("fn main() {}\n", "Rust")
