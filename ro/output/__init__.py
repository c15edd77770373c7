"""Output abstraction layer."""

from .console import (
    ChannelConsole,
    ConsoleProtocol,
    MockConsole,
    RichConsole,
    Style,
)

__all__ = [
    "ChannelConsole",
    "ConsoleProtocol",
    "MockConsole",
    "RichConsole",
    "Style",
]
