"""Typed application settings with Pydantic validation."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Literal

import tomllib
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .llm.constants import (
    DEFAULT_CONNECT_TIMEOUT,
    DEFAULT_HISTORY_WINDOW,
    DEFAULT_LLM_ENDPOINT,
    DEFAULT_LLM_MODEL,
    DEFAULT_LLM_TEMPERATURE,
    DEFAULT_MAX_TOKENS,
    DEFAULT_REQUEST_TIMEOUT,
)

MessageFormat = Literal["openai-chat", "anthropic"]

_UNSET = object()


def _coerce_number(value: Any, cast: type[int] | type[float], field: str) -> Any:
    """Parse *value* with *cast*, returning ``_UNSET`` for ``None`` or blanks.

    Unparsable strings are passed through so Pydantic reports them.
    """
    if value is None:
        return _UNSET
    if isinstance(value, bool):
        raise ValueError(f"boolean is not a valid {field} value")
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return _UNSET
        try:
            return cast(value)
        except ValueError:
            return value
    return cast(value)


def _blank_to_none(value: Any) -> str | None:
    if value is None:
        return None
    return str(value).strip() or None


class LLMSettings(BaseModel):
    """Settings for connecting to an LLM completion endpoint."""

    model_config = ConfigDict(populate_by_name=True, validate_assignment=True)

    endpoint: str = Field(DEFAULT_LLM_ENDPOINT, alias="url")
    model: str = DEFAULT_LLM_MODEL
    message_format: MessageFormat = "openai-chat"
    api_key: str | None = None
    temperature: float = Field(DEFAULT_LLM_TEMPERATURE, ge=0.0, le=2.0)
    max_tokens: int = Field(DEFAULT_MAX_TOKENS, ge=1)
    connect_timeout: float = Field(DEFAULT_CONNECT_TIMEOUT, gt=0.0)

    @field_validator("endpoint", mode="before")
    @classmethod
    def _strip_endpoint(cls, value: Any) -> str:
        return _blank_to_none(value) or ""

    @field_validator("api_key", mode="before")
    @classmethod
    def _strip_api_key(cls, value: Any) -> str | None:
        return _blank_to_none(value)

    @field_validator("max_tokens", mode="before")
    @classmethod
    def _default_max_tokens(cls, value: Any) -> Any:
        """Blank or non-positive caps mean the default cap."""
        number = _coerce_number(value, int, "max_tokens")
        if number is _UNSET or (isinstance(number, int) and number <= 0):
            return DEFAULT_MAX_TOKENS
        return number

    @field_validator("temperature", mode="before")
    @classmethod
    def _clamp_temperature(cls, value: Any) -> Any:
        number = _coerce_number(value, float, "temperature")
        if number is _UNSET:
            return DEFAULT_LLM_TEMPERATURE
        if isinstance(number, float):
            return min(max(number, 0.0), 2.0)
        return number


class ChatSettings(BaseModel):
    """Settings controlling the chat session engine."""

    model_config = ConfigDict(validate_assignment=True)

    history_window: int = Field(DEFAULT_HISTORY_WINDOW, ge=0)
    include_code_context: bool = True
    request_timeout: float | None = DEFAULT_REQUEST_TIMEOUT
    history_path: str | None = None

    @field_validator("request_timeout", mode="before")
    @classmethod
    def _optional_timeout(cls, value: Any) -> Any:
        """Blank and non-positive values disable the timeout."""
        number = _coerce_number(value, float, "request_timeout")
        if number is _UNSET or (isinstance(number, float) and number <= 0):
            return None
        return number

    @field_validator("history_path", mode="before")
    @classmethod
    def _strip_history_path(cls, value: Any) -> str | None:
        return _blank_to_none(value)


class AppSettings(BaseModel):
    """Top-level settings file: an ``[llm]`` and a ``[chat]`` section."""

    model_config = ConfigDict(validate_assignment=True)

    llm: LLMSettings = Field(default_factory=LLMSettings)
    chat: ChatSettings = Field(default_factory=ChatSettings)

    def to_dict(self) -> dict:
        return self.model_dump()


def load_app_settings(path: str | Path) -> AppSettings:
    """Read settings from a ``.toml`` or JSON file.

    Validation problems surface as :class:`ValueError`.
    """
    source = Path(path)
    with source.open("rb") as fh:
        if source.suffix.lower() == ".toml":
            data = tomllib.load(fh)
        else:
            data = json.load(fh)
    try:
        return AppSettings.model_validate(data)
    except ValidationError as exc:
        raise ValueError(str(exc)) from exc


__all__ = [
    "AppSettings",
    "ChatSettings",
    "LLMSettings",
    "MessageFormat",
    "load_app_settings",
]
