"""Shared helpers for CLI commands."""

from __future__ import annotations

from typing import TYPE_CHECKING, NoReturn, TypeVar

import typer

from ro.core.errors import ErrorCode
from ro.core.result import Ok, Result
from ro.output.console import Style

if TYPE_CHECKING:
    from ro.output.console import ConsoleProtocol

T = TypeVar("T")
E = TypeVar("E")


def unwrap_or_exit(
    result: Result[T, E],
    console: ConsoleProtocol,
    error_code: ErrorCode = ErrorCode.USER_ERROR,
) -> T:
    """Return the value of ``result`` or print its error and exit.

    Expects error objects to have 'message' and optional 'hint' attributes.
    """
    if isinstance(result, Ok):
        return result.value

    error = result.error
    message: str = getattr(error, "message", str(error))
    hint: str | None = getattr(error, "hint", None)
    console.error(message)
    if hint:
        console.print(f"hint: {hint}", Style.DIM)
    exit_with_code(int(error_code))


def exit_with_code(code: int) -> NoReturn:
    """Exit with given code. Explicit helper for clarity."""
    raise typer.Exit(code=code)
