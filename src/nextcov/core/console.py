"""User-facing console output.

Usage::

    from nextcov.core.console import get_console, status

    status("Merged 12 files", style="success")  # ✓ Merged 12 files
    get_console().print(table)
"""

from __future__ import annotations

from rich.console import Console

from nextcov.core.logging import get_logger

_console = Console(stderr=True)

_STYLES = {
    "success": "[green]✓[/green] ",
    "error": "[red]✗[/red] ",
    "warning": "[yellow]![/yellow] ",
    "info": "  ",
    "none": "",
}


def get_console() -> Console:
    """Get the shared Rich console instance."""
    return _console


def status(message: str, *, style: str = "info", indent: int = 0) -> None:
    """Print a styled status message to stderr."""
    prefix = _STYLES.get(style, "")
    padding = " " * indent
    _console.print(f"{padding}{prefix}{message}", highlight=False)
    get_logger("console").debug("status", message=message, style=style)


def pluralize(count: int, singular: str, plural: str | None = None) -> str:
    """Return "1 file" / "3 files"."""
    if count == 1:
        return f"{count} {singular}"
    return f"{count} {plural or singular + 's'}"
