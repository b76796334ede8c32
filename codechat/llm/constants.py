"""Shared constants for LLM configuration limits and defaults."""

DEFAULT_LLM_ENDPOINT = "http://localhost:3001/api/openai"
"""Local proxy forwarding chat completions to the upstream provider."""

DEFAULT_LLM_MODEL = "gpt-4"
"""Model requested from the completion service."""

DEFAULT_LLM_TEMPERATURE = 0.7
"""Sampling temperature sent with every request."""

DEFAULT_MAX_TOKENS = 4000
"""Completion length cap sent with every request."""

DEFAULT_CONNECT_TIMEOUT = 10.0
"""Seconds allowed for establishing the HTTP connection."""

DEFAULT_HISTORY_WINDOW = 4
"""Number of most recent prompt/response pairs replayed as context."""

DEFAULT_REQUEST_TIMEOUT = 300.0
"""Seconds a whole streamed completion may take before it counts as failed."""

UNKNOWN_LANGUAGE = "Unknown"
"""Language name used when the editor reports no language for the file."""

ANTHROPIC_API_VERSION = "2023-06-01"
"""Value of the ``anthropic-version`` header for the Messages API."""
