"""State management for streaming chat sessions."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from contextlib import suppress
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Literal, Protocol

from ..llm.constants import UNKNOWN_LANGUAGE
from ..llm.errors import LLMError
from ..llm.request_builder import build_messages
from ..settings import ChatSettings
from ..util.cancellation import CancellationEvent, OperationCancelledError
from .chat_entry import ChatEntry
from .paths import normalize_context_id

if TYPE_CHECKING:  # pragma: no cover - import for type checking only
    from ..llm.client import DeltaCallback
    from .editor import EditorBridge
    from .history_store import HistoryStore

logger = logging.getLogger(__name__)

SubmissionOutcome = Literal["pending", "completed", "failed", "cancelled", "timeout"]


class StreamingClient(Protocol):
    """Subset of :class:`~codechat.llm.client.LLMClient` used by sessions."""

    async def send(
        self,
        messages: list[dict[str, str]],
        on_delta: DeltaCallback,
        *,
        cancellation: CancellationEvent | None = None,
    ) -> str:  # pragma: no cover - protocol
        ...


class SessionEvent:
    """Simple signal implementation for the session model."""

    __slots__ = ("_listeners",)

    def __init__(self) -> None:
        self._listeners: list[Callable[[Any], None]] = []

    def connect(self, callback: Callable[[Any], None]) -> None:
        self._listeners.append(callback)

    def disconnect(self, callback: Callable[[Any], None]) -> None:
        with suppress(ValueError):
            self._listeners.remove(callback)

    def emit(self, payload: Any) -> None:
        for listener in list(self._listeners):
            listener(payload)


@dataclass(frozen=True, slots=True)
class EntryUpdate:
    """Payload of :attr:`ChatSessionEvents.entry_updated`."""

    identity: int
    text: str


@dataclass(slots=True)
class ChatSessionEvents:
    """Expose observable hooks for the session lifecycle."""

    entry_updated: SessionEvent = field(default_factory=SessionEvent)
    loading_changed: SessionEvent = field(default_factory=SessionEvent)
    history_changed: SessionEvent = field(default_factory=SessionEvent)


@dataclass(slots=True)
class SubmissionHandle:
    """Track one in-flight submission."""

    identity: int
    context_id: str
    cancellation: CancellationEvent
    task: asyncio.Task[None] | None = None
    outcome: SubmissionOutcome = "pending"
    error: BaseException | None = None

    @property
    def done(self) -> bool:
        return self.task is not None and self.task.done()

    def cancel(self) -> None:
        """Stop streaming into this submission's entry."""
        self.cancellation.set()

    async def wait(self) -> SubmissionOutcome:
        """Wait for the submission to settle and return its outcome."""
        if self.task is not None:
            await asyncio.wait({self.task})
        return self.outcome


class ChatSessionManager:
    """Own the transcript of the active context and drive submissions.

    Entries are addressed by an integer identity assigned on creation.
    Streaming updates always target that identity, so concurrent
    submissions never write into each other's entries.

    Store access runs on a single worker thread, so writes reach the
    database in the order they were issued and never stall the event loop.
    """

    def __init__(
        self,
        client: StreamingClient,
        store: HistoryStore,
        settings: ChatSettings | None = None,
        *,
        editor: EditorBridge | None = None,
        writer: ThreadPoolExecutor | None = None,
    ) -> None:
        self._client = client
        self._store = store
        if writer is None:
            writer = ThreadPoolExecutor(
                max_workers=1,
                thread_name_prefix="ChatHistoryWriter",
            )
        self._writer = writer
        self.settings = settings if settings is not None else ChatSettings()
        self.editor = editor
        self._entries: dict[int, ChatEntry] = {}
        self._loading: set[int] = set()
        self._handles: dict[int, SubmissionHandle] = {}
        self._next_index = 0
        self._generation = 0
        self._context_id: str | None = None
        self.events = ChatSessionEvents()

    # ------------------------------------------------------------------
    @property
    def context_id(self) -> str | None:
        return self._context_id

    @property
    def entries(self) -> list[ChatEntry]:
        """Return the transcript in insertion order."""
        return list(self._entries.values())

    @property
    def identities(self) -> list[int]:
        return list(self._entries)

    @property
    def next_message_index(self) -> int:
        return self._next_index

    @property
    def loading(self) -> frozenset[int]:
        """Return identities whose responses are still streaming."""
        return frozenset(self._loading)

    @property
    def is_loading(self) -> bool:
        return bool(self._loading)

    def entry(self, identity: int) -> ChatEntry | None:
        return self._entries.get(identity)

    def position_of(self, identity: int) -> int | None:
        """Return the transcript position of *identity*, if present."""
        for position, candidate in enumerate(self._entries):
            if candidate == identity:
                return position
        return None

    def handle(self, identity: int) -> SubmissionHandle | None:
        return self._handles.get(identity)

    # ------------------------------------------------------------------
    def load_session(self, context_id: Path | str) -> list[ChatEntry]:
        """Replace the transcript with the stored history of *context_id*."""
        self._reset(normalize_context_id(context_id))
        # queued writes for this context land before the read
        entries = self._writer.submit(self._store.load, self._context_id).result()
        self._entries = dict(enumerate(entries))
        self._next_index = len(entries)
        logger.debug(
            "Loaded %d chat entries for %s", len(entries), self._context_id
        )
        self._notify_loading()
        self._notify_history()
        return self.entries

    def clear_session(self, context_id: Path | str | None = None) -> None:
        """Forget the history of *context_id* (the active one by default).

        Clearing another context only touches the store; the active
        transcript and its streams are left alone.
        """
        target = (
            self._context_id
            if context_id is None
            else normalize_context_id(context_id)
        )
        if target is None:
            return
        if target == self._context_id:
            self._reset(target)
        self._writer.submit(self._store.clear, target).result()
        logger.debug("Cleared chat history for %s", target)
        if target == self._context_id:
            self._notify_loading()
            self._notify_history()

    def cancel_all(self) -> None:
        """Cancel every submission that is still streaming."""
        for handle in list(self._handles.values()):
            handle.cancel()

    def flush(self) -> None:
        """Block until every queued history write has been applied."""
        self._writer.submit(lambda: None).result()

    def close(self) -> None:
        """Cancel streams and wait for pending history writes."""
        self.cancel_all()
        self._writer.shutdown(wait=True)

    def _reset(self, context_id: str) -> None:
        self.cancel_all()
        self._handles.clear()
        self._generation += 1
        self._context_id = context_id
        self._entries = {}
        self._loading.clear()
        self._next_index = 0

    # ------------------------------------------------------------------
    def submit(
        self,
        request: str,
        current_code: str | None = None,
        use_code_context: bool | None = None,
    ) -> SubmissionHandle:
        """Append *request* to the transcript and stream its response.

        Must be called from a running event loop. The returned handle can be
        used to cancel the submission or wait for it to settle; failures are
        logged and recorded on the handle, never raised.
        """
        if self._context_id is None:
            raise RuntimeError("No chat session is loaded")
        loop = asyncio.get_running_loop()

        include_code = (
            self.settings.include_code_context
            if use_code_context is None
            else use_code_context
        )
        language: str | None = None
        if self.editor is not None:
            if current_code is None and include_code:
                current_code = self.editor.get_current_code()
            file_language = self.editor.get_current_file_language()
            if file_language is not None:
                language = file_language.name
        history = self.entries

        identity = self._next_index
        self._next_index += 1
        self._entries[identity] = ChatEntry(prompt=request)
        self._persist(self._context_id)
        self._notify_history()

        self._loading.add(identity)
        self._notify_loading()

        messages = build_messages(
            request,
            current_code,
            history,
            self.settings.history_window,
            language=language or UNKNOWN_LANGUAGE,
            include_code_context=include_code,
        )
        handle = SubmissionHandle(
            identity=identity,
            context_id=self._context_id,
            cancellation=CancellationEvent(),
        )
        self._handles[identity] = handle
        task = loop.create_task(self._run(handle, messages, self._generation))
        handle.task = task
        dispose = handle.cancellation.register(
            lambda: loop.call_soon_threadsafe(task.cancel)
        )
        generation = self._generation

        def on_done(_task: asyncio.Task[None]) -> None:
            dispose()
            self._settle(handle, generation)

        task.add_done_callback(on_done)
        return handle

    # ------------------------------------------------------------------
    async def _run(
        self,
        handle: SubmissionHandle,
        messages: list[dict[str, str]],
        generation: int,
    ) -> None:
        identity = handle.identity

        def on_delta(text: str) -> None:
            if handle.cancellation.is_set():
                return
            self._update_entry(identity, text, generation)

        try:
            async with asyncio.timeout(self.settings.request_timeout):
                text = await self._client.send(
                    messages, on_delta, cancellation=handle.cancellation
                )
        except (OperationCancelledError, asyncio.CancelledError):
            handle.outcome = "cancelled"
            logger.info("Chat submission %s cancelled", identity)
            if not handle.cancellation.is_set():
                raise
        except TimeoutError as exc:
            handle.outcome = "timeout"
            handle.error = exc
            logger.warning(
                "Chat submission %s timed out after %s seconds",
                identity,
                self.settings.request_timeout,
            )
        except LLMError as exc:
            handle.outcome = "failed"
            handle.error = exc
            logger.error("Chat submission %s failed: %s", identity, exc)
        except Exception as exc:
            handle.outcome = "failed"
            handle.error = exc
            logger.exception("Chat submission %s failed unexpectedly", identity)
        else:
            if handle.cancellation.is_set():
                handle.outcome = "cancelled"
            else:
                handle.outcome = "completed"
                if self._update_entry(identity, text, generation):
                    await asyncio.wrap_future(self._persist(handle.context_id))
        finally:
            self._settle(handle, generation)

    def _settle(self, handle: SubmissionHandle, generation: int) -> None:
        if handle.outcome == "pending":
            # Cancelled before the coroutine got to run.
            handle.outcome = "cancelled"
        if generation != self._generation:
            return
        self._handles.pop(handle.identity, None)
        if handle.identity in self._loading:
            self._loading.discard(handle.identity)
            self._notify_loading()

    def _update_entry(self, identity: int, text: str, generation: int) -> bool:
        if generation != self._generation:
            return False
        entry = self._entries.get(identity)
        if entry is None:
            return False
        entry.response = text
        self.events.entry_updated.emit(EntryUpdate(identity, text))
        return True

    def _persist(self, context_id: str) -> Future[None]:
        # entries keep changing while streams run
        snapshot = [ChatEntry(e.prompt, e.response) for e in self._entries.values()]
        return self._writer.submit(self._store.save, context_id, snapshot)

    def _notify_loading(self) -> None:
        self.events.loading_changed.emit(self.loading)

    def _notify_history(self) -> None:
        self.events.history_changed.emit(self.entries)


__all__ = [
    "ChatSessionEvents",
    "ChatSessionManager",
    "EntryUpdate",
    "SessionEvent",
    "StreamingClient",
    "SubmissionHandle",
    "SubmissionOutcome",
]
