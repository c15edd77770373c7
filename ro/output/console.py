"""Console output abstraction.

Services print through ``ConsoleProtocol`` so they never depend on Rich
directly. Channels run on worker threads, so every implementation here is
safe to call concurrently, and ``ChannelConsole`` tags each line with the
channel that produced it.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Protocol

from rich.console import Console
from rich.markup import escape

__all__ = [
    "Style",
    "ConsoleProtocol",
    "RichConsole",
    "MockConsole",
    "ChannelConsole",
]


class Style(Enum):
    """Text styles for console output."""

    DEFAULT = auto()
    SUCCESS = auto()
    ERROR = auto()
    WARNING = auto()
    INFO = auto()
    DIM = auto()  # echoed commands, secondary details
    BOLD = auto()
    HEADER = auto()

    def __str__(self) -> str:
        return self.name.lower()


class ConsoleProtocol(Protocol):
    """Protocol for console output."""

    def print(self, message: str, style: Style = Style.DEFAULT) -> None:
        """Print a message with optional styling."""
        ...

    def success(self, message: str) -> None: ...

    def error(self, message: str) -> None: ...

    def warning(self, message: str) -> None: ...

    def info(self, message: str) -> None: ...

    def header(self, message: str) -> None:
        """Print a section header."""
        ...

    def newline(self) -> None: ...


class RichConsole:
    """Production console backed by Rich."""

    def __init__(self) -> None:
        self._console = Console(highlight=False)
        self._lock = threading.Lock()
        self._style_map = {
            Style.DEFAULT: "",
            Style.SUCCESS: "green",
            Style.ERROR: "red bold",
            Style.WARNING: "yellow",
            Style.INFO: "cyan",
            Style.DIM: "dim",
            Style.BOLD: "bold",
            Style.HEADER: "blue bold",
        }

    def _emit(self, message: str, style: str = "") -> None:
        with self._lock:
            if style:
                self._console.print(message, style=style)
            else:
                self._console.print(message)

    # Channel prefixes and echoed commands contain brackets; keep them literal.

    def print(self, message: str, style: Style = Style.DEFAULT) -> None:
        self._emit(escape(message), self._style_map.get(style, ""))

    def success(self, message: str) -> None:
        self._emit(f"[green]OK[/green] {escape(message)}")

    def error(self, message: str) -> None:
        self._emit(f"[red bold]error:[/red bold] {escape(message)}")

    def warning(self, message: str) -> None:
        self._emit(f"[yellow]warning:[/yellow] {escape(message)}")

    def info(self, message: str) -> None:
        self._emit(f"[cyan]info:[/cyan] {escape(message)}")

    def header(self, message: str) -> None:
        self._emit(f"\n[blue bold]{escape(message)}[/blue bold]")

    def newline(self) -> None:
        self._emit("")


@dataclass
class OutputRecord:
    """A single output record for MockConsole."""

    message: str
    style: Style


def _empty_outputs() -> list[OutputRecord]:
    return []


@dataclass
class MockConsole:
    """Console that captures output for tests."""

    outputs: list[OutputRecord] = field(default_factory=_empty_outputs)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def _add(self, message: str, style: Style) -> None:
        with self._lock:
            self.outputs.append(OutputRecord(message, style))

    def print(self, message: str, style: Style = Style.DEFAULT) -> None:
        self._add(message, style)

    def success(self, message: str) -> None:
        self._add(f"OK {message}", Style.SUCCESS)

    def error(self, message: str) -> None:
        self._add(f"error: {message}", Style.ERROR)

    def warning(self, message: str) -> None:
        self._add(f"warning: {message}", Style.WARNING)

    def info(self, message: str) -> None:
        self._add(f"info: {message}", Style.INFO)

    def header(self, message: str) -> None:
        self._add(message, Style.HEADER)

    def newline(self) -> None:
        self._add("", Style.DEFAULT)

    # Test helper methods

    def clear(self) -> None:
        with self._lock:
            self.outputs.clear()

    @property
    def messages(self) -> list[str]:
        return [o.message for o in self.outputs]

    @property
    def text(self) -> str:
        return "\n".join(self.messages)

    def has_error(self) -> bool:
        return any(o.style == Style.ERROR for o in self.outputs)

    def has_warning(self) -> bool:
        return any(o.style == Style.WARNING for o in self.outputs)

    def find(self, substring: str) -> list[OutputRecord]:
        """Find all outputs containing a substring."""
        return [o for o in self.outputs if substring in o.message]


class ChannelConsole:
    """Console view that prefixes every line with ``[channel]``."""

    def __init__(self, inner: ConsoleProtocol, channel: str) -> None:
        self._inner = inner
        self._prefix = f"[{channel}]"

    @property
    def prefix(self) -> str:
        return self._prefix

    def print(self, message: str, style: Style = Style.DEFAULT) -> None:
        self._inner.print(f"{self._prefix} {message}", style)

    def success(self, message: str) -> None:
        self._inner.success(f"{self._prefix} {message}")

    def error(self, message: str) -> None:
        self._inner.error(f"{self._prefix} {message}")

    def warning(self, message: str) -> None:
        self._inner.warning(f"{self._prefix} {message}")

    def info(self, message: str) -> None:
        self._inner.info(f"{self._prefix} {message}")

    def header(self, message: str) -> None:
        self._inner.header(f"{self._prefix} {message}")

    def newline(self) -> None:
        self._inner.newline()
