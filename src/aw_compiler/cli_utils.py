"""Shared console, logging and message helpers for the awc CLI."""

import logging

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from aw_compiler.core.config import is_debug_enabled

# Exit codes
EXIT_SUCCESS = 0
EXIT_ERROR = 1
EXIT_CONFIG_ERROR = 2

console = Console()
err_console = Console(stderr=True)


def _setup_logging(verbose: bool = False) -> None:
    """Configure root logging with a RichHandler on stderr.

    Args:
        verbose: Log at DEBUG level (also enabled by the DEBUG env var).

    """
    # Compile warnings are printed by the commands, not the log handler
    level = logging.DEBUG if verbose or is_debug_enabled() else logging.ERROR
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, rich_tracebacks=True, show_path=False)],
        force=True,
    )


def _error(message: str) -> None:
    err_console.print(f"[red]✗[/red] {escape(message)}", highlight=False)


def _warning(message: str) -> None:
    err_console.print(f"[yellow]⚠[/yellow] {escape(message)}", style="yellow", highlight=False)


def _success(message: str) -> None:
    console.print(f"[green]✓[/green] {escape(message)}", highlight=False)


def _info(message: str) -> None:
    console.print(escape(message), highlight=False)
