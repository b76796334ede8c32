"""Streaming chat session engine."""

from .chat_entry import ChatEntry
from .editor import EditorBridge, FileEditor, FileLanguage, detect_language
from .history_store import HistoryStore
from .segments import (
    CodeBlockActions,
    CodeSegment,
    TextSegment,
    extract_code_block,
    join_segments,
    segment_response,
)
from .session import (
    ChatSessionEvents,
    ChatSessionManager,
    EntryUpdate,
    SessionEvent,
    SubmissionHandle,
)

__all__ = [
    "ChatEntry",
    "ChatSessionEvents",
    "ChatSessionManager",
    "CodeBlockActions",
    "CodeSegment",
    "EditorBridge",
    "EntryUpdate",
    "FileEditor",
    "FileLanguage",
    "HistoryStore",
    "SessionEvent",
    "SubmissionHandle",
    "TextSegment",
    "detect_language",
    "extract_code_block",
    "join_segments",
    "segment_response",
]
