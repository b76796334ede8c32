"""System prompts selected by the language of the file being discussed."""

from __future__ import annotations

from typing import Literal

from .constants import UNKNOWN_LANGUAGE

LanguageFamily = Literal["systems", "scripting", "unknown"]

SYSTEMS_LANGUAGES = frozenset({"rust", "c", "c++", "cpp", "go", "zig", "move"})
SCRIPTING_LANGUAGES = frozenset(
    {"typescript", "javascript", "tsx", "jsx", "python"}
)

_PREAMBLE = "You are an expert Solana development assistant. Follow these guidelines:"

_PROGRAM_GUIDELINES = """\
SOLANA PROGRAM GUIDELINES:
- Ensure account validation and security checks
- Consider compute unit limits (200k per transaction)
- Follow rent-exemption requirements
- Check for proper error handling with custom errors
- Validate cross-program invocation (CPI) safety
- Consider account size and data packing efficiency"""

_CLIENT_GUIDELINES = """\
CLIENT-SIDE GUIDELINES:
- Verify transaction confirmation strategy
- Implement proper error handling for RPC failures
- Consider wallet connection states
- Handle account data serialization correctly
- Implement proper transaction retry logic"""

_GENERAL_GUIDELINES = """\
GENERAL GUIDELINES:
- Identify whether the code is on-chain program code or client code
- Point out security-sensitive operations and missing checks
- Prefer small, self-contained changes over rewrites
- Ask for the missing context when the request is ambiguous"""

_RESPONSE_FORMAT = """\
RESPONSE FORMAT:
1. For code analysis:
   - Explain issues or improvements briefly
   - Provide complete code solutions
   - Include error handling
   - Reference Solana documentation

2. For general questions:
   - Provide clear, concise explanations
   - Include practical examples
   - Reference official Solana concepts"""

_GUIDELINES: dict[LanguageFamily, str] = {
    "systems": _PROGRAM_GUIDELINES,
    "scripting": _CLIENT_GUIDELINES,
    "unknown": _GENERAL_GUIDELINES,
}


def language_family(language: str | None) -> LanguageFamily:
    """Classify *language* (an editor language name) into a prompt family."""
    name = (language or "").strip().lower()
    if not name or name == UNKNOWN_LANGUAGE.lower():
        return "unknown"
    if name in SYSTEMS_LANGUAGES:
        return "systems"
    if name in SCRIPTING_LANGUAGES:
        return "scripting"
    return "unknown"


def system_prompt_for(language: str | None) -> str:
    """Return the system prompt for a file written in *language*."""
    guidelines = _GUIDELINES[language_family(language)]
    return "\n\n".join((_PREAMBLE, guidelines, _RESPONSE_FORMAT))


__all__ = [
    "LanguageFamily",
    "SCRIPTING_LANGUAGES",
    "SYSTEMS_LANGUAGES",
    "language_family",
    "system_prompt_for",
]
