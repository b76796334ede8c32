"""Command-line interface package for codechat.

:func:`main` is exposed via attribute access (``from codechat.cli import
main``) and imported lazily so that ``codechat.cli.main`` can still be
imported as a module.
"""

from importlib import import_module
from typing import Any


def __getattr__(name: str) -> Any:
    if name == "main":
        return import_module(".main", __name__).main
    raise AttributeError(f"module {__name__!r} has no attribute {name}")


__all__ = ["main"]
