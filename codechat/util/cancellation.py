"""Cancellation tokens shared between the event loop and other threads."""

from __future__ import annotations

import threading
from collections.abc import Callable

__all__ = ["CancellationEvent", "OperationCancelledError", "raise_if_cancelled"]

Callback = Callable[[], None]


class OperationCancelledError(RuntimeError):
    """The operation observed a cancellation request and stopped."""

    def __init__(self, message: str = "operation cancelled") -> None:
        super().__init__(message)


class CancellationEvent:
    """A one-shot flag with optional callbacks.

    :meth:`set` may be called from any thread. Callbacks registered before it
    run exactly once, on the thread that called :meth:`set`.
    """

    __slots__ = ("_flag", "_pending", "_guard")

    def __init__(self) -> None:
        self._flag = threading.Event()
        self._pending: dict[int, Callback] = {}
        self._guard = threading.Lock()

    @property
    def cancelled(self) -> bool:
        return self._flag.is_set()

    def is_set(self) -> bool:
        return self._flag.is_set()

    def set(self) -> None:
        with self._guard:
            if self._flag.is_set():
                return
            self._flag.set()
            pending, self._pending = list(self._pending.values()), {}
        for callback in pending:
            callback()

    def register(self, callback: Callback) -> Callback:
        """Call *callback* on cancellation; return a function that unregisters it.

        When cancellation already happened *callback* runs right away.
        """
        with self._guard:
            if self._flag.is_set():
                armed = False
            else:
                key = id(callback)
                self._pending[key] = callback
                armed = True
        if not armed:
            callback()
            return lambda: None

        def dispose() -> None:
            with self._guard:
                if self._pending.get(key) is callback:
                    del self._pending[key]

        return dispose

    def wait(self, timeout: float | None = None) -> bool:
        return self._flag.wait(timeout)

    def raise_if_cancelled(self) -> None:
        if self._flag.is_set():
            raise OperationCancelledError()


def raise_if_cancelled(cancellation: CancellationEvent | None) -> None:
    """Raise :class:`OperationCancelledError` if *cancellation* is set."""
    if cancellation is not None:
        cancellation.raise_if_cancelled()
