"""Command implementations for the CLI interface."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import TextIO

from codechat.chat.editor import FileEditor
from codechat.chat.history_store import HistoryStore
from codechat.chat.segments import CodeBlockActions
from codechat.chat.session import ChatSessionManager, EntryUpdate, SubmissionOutcome
from codechat.llm.client import LLMClient
from codechat.settings import AppSettings


@dataclass
class Command:
    """Describe a CLI command and its argument handler."""

    func: Callable[[argparse.Namespace], int]
    help: str
    add_arguments: Callable[[argparse.ArgumentParser], None]


def _history_store(settings: AppSettings) -> HistoryStore:
    return HistoryStore(settings.chat.history_path)


class _DeltaPrinter:
    """Write the growing response of one entry to *out* as it streams."""

    def __init__(self, identity: int, out: TextIO) -> None:
        self.identity = identity
        self.out = out
        self._written = ""

    def __call__(self, update: EntryUpdate) -> None:
        if update.identity != self.identity:
            return
        text = update.text
        if text.startswith(self._written):
            self.out.write(text[len(self._written):])
        else:
            self.out.write("\n" + text)
        self.out.flush()
        self._written = text


def cmd_ask(args: argparse.Namespace) -> int:
    """Send a request about a file and stream the answer."""
    settings: AppSettings = args.app_settings
    editor = FileEditor(args.file)
    manager = ChatSessionManager(
        LLMClient(settings.llm),
        _history_store(settings),
        settings.chat,
        editor=editor,
    )
    request = " ".join(args.request)

    async def run() -> tuple[int, SubmissionOutcome]:
        handle = manager.submit(request, use_code_context=not args.no_context)
        printer = _DeltaPrinter(handle.identity, sys.stdout)
        manager.events.entry_updated.connect(printer)
        try:
            return handle.identity, await handle.wait()
        finally:
            manager.events.entry_updated.disconnect(printer)

    try:
        manager.load_session(editor.path)
        identity, outcome = asyncio.run(run())
    finally:
        manager.close()
    sys.stdout.write("\n")
    if outcome != "completed":
        sys.stderr.write(f"request {outcome}\n")
        return 1

    if args.apply is None:
        return 0
    entry = manager.entry(identity)
    actions = CodeBlockActions.for_text(
        entry.response if entry is not None else "",
        apply_code=editor.replace_code,
    )
    code_indices = actions.code_indices()
    if not 1 <= args.apply <= len(code_indices):
        sys.stderr.write(
            f"code block {args.apply} not found ({len(code_indices)} available)\n"
        )
        return 1
    if not actions.apply(code_indices[args.apply - 1]):
        sys.stderr.write(f"code block {args.apply} is empty\n")
        return 1
    sys.stdout.write(f"applied code block {args.apply} to {editor.path}\n")
    return 0


def add_ask_arguments(p: argparse.ArgumentParser) -> None:
    """Configure parser for the ``ask`` command."""
    p.add_argument("file", help="file the request is about")
    p.add_argument("request", nargs="+", help="request text")
    p.add_argument(
        "--no-context",
        action="store_true",
        help="do not send the file contents",
    )
    p.add_argument(
        "--apply",
        type=int,
        metavar="N",
        help="write code block N of the answer back to the file",
    )


def cmd_history(args: argparse.Namespace) -> int:
    """Print the stored conversation for a file or list known contexts."""
    store = _history_store(args.app_settings)
    if args.file is None:
        contexts = store.contexts()
        if args.json:
            sys.stdout.write(json.dumps(contexts, ensure_ascii=False, indent=2) + "\n")
        else:
            for context_id in contexts:
                sys.stdout.write(f"{context_id}\n")
        return 0

    entries = store.load(Path(args.file))
    if args.json:
        payload = [entry.to_dict() for entry in entries]
        sys.stdout.write(json.dumps(payload, ensure_ascii=False, indent=2) + "\n")
        return 0
    for entry in entries:
        sys.stdout.write(f"> {entry.prompt}\n{entry.response}\n\n")
    return 0


def add_history_arguments(p: argparse.ArgumentParser) -> None:
    """Configure parser for the ``history`` command."""
    p.add_argument("file", nargs="?", help="file whose conversation to print")
    p.add_argument("--json", action="store_true", help="print JSON")


def cmd_clear(args: argparse.Namespace) -> int:
    """Forget stored conversations."""
    store = _history_store(args.app_settings)
    if args.all:
        store.clear_all()
        return 0
    if args.file is None:
        sys.stderr.write("either a file or --all is required\n")
        return 2
    store.clear(Path(args.file))
    return 0


def add_clear_arguments(p: argparse.ArgumentParser) -> None:
    """Configure parser for the ``clear`` command."""
    p.add_argument("file", nargs="?", help="file whose conversation to forget")
    p.add_argument("--all", action="store_true", help="forget every conversation")


def cmd_check(args: argparse.Namespace) -> int:
    """Verify connectivity of the configured completion endpoint."""
    client = LLMClient(args.app_settings.llm)
    result = asyncio.run(client.check())
    sys.stdout.write(
        json.dumps({"llm": result}, ensure_ascii=False, indent=2, sort_keys=True) + "\n",
    )
    return 0 if result.get("ok") else 1


def add_check_arguments(p: argparse.ArgumentParser) -> None:
    """Configure parser for the ``check`` command."""


COMMANDS: dict[str, Command] = {
    "ask": Command(cmd_ask, "ask about a file", add_ask_arguments),
    "history": Command(cmd_history, "show stored conversations", add_history_arguments),
    "clear": Command(cmd_clear, "forget stored conversations", add_clear_arguments),
    "check": Command(cmd_check, "verify LLM settings", add_check_arguments),
}
