"""Rich console utilities for styled terminal output.

All user facing output of the reconciler goes through these helpers so the
command line has one consistent look.
"""

from collections.abc import Generator, Iterable, Mapping
from contextlib import contextmanager
from typing import Any

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.theme import Theme

_THEME = Theme(
    {
        "info": "cyan",
        "success": "green",
        "warning": "yellow",
        "error": "red bold",
        "highlight": "cyan bold",
        "muted": "dim",
        "added": "green",
        "removed": "red",
    }
)

# Shared console instance
console = Console(theme=_THEME)


def info(message: str) -> None:
    """Print an informational message."""
    console.print(f"[info]ℹ[/info] {message}")


def success(message: str) -> None:
    """Print a success message."""
    console.print(f"[success]✓[/success] {message}")


def warning(message: str) -> None:
    """Print a warning message."""
    console.print(f"[warning]⚠[/warning] {message}")


def error(message: str) -> None:
    """Print an error message."""
    console.print(f"[error]✗[/error] {message}")


def action(message: str) -> None:
    """Print an action/progress message."""
    console.print(f"[info]→[/info] {message}")


def step(message: str) -> None:
    """Print a sub-step message."""
    console.print(f"[muted]•[/muted] {message}")


def highlight(text: str) -> str:
    """Return text wrapped in highlight markup.

    Args:
        text: The text to highlight.

    Returns:
        Text wrapped in Rich markup for highlighting.

    """
    return f"[highlight]{text}[/highlight]"


@contextmanager
def spinner(message: str) -> Generator[None, None, None]:
    """Display a spinner while waiting on the API server.

    Args:
        message: The status message to display.

    Yields:
        None

    """
    with console.status(f"[info]{message}[/info]", spinner="dots"):
        yield


def _render(value: Any) -> str:
    if value is None:
        return "[muted]unset[/muted]"
    if isinstance(value, Mapping):
        if not value:
            return "[muted]none[/muted]"
        return escape(", ".join(f"{key}={val}" for key, val in sorted(value.items())))
    if isinstance(value, (list, tuple)):
        if not value:
            return "[muted]none[/muted]"
        return escape(", ".join(str(item) for item in value))
    if isinstance(value, bool):
        return str(value).lower()
    return escape(str(value))


def changes_table(title: str, changes: Iterable[Any]) -> None:
    """Print field changes as a before/after table.

    Args:
        title: Title for the table.
        changes: Items with field, old and new attributes.

    """
    table = Table(title=f"[bold]{title}[/bold]", show_lines=False)
    table.add_column("Field", style="bold")
    table.add_column("Current", style="removed")
    table.add_column("Desired", style="added")

    for change in changes:
        table.add_row(change.field, _render(change.old), _render(change.new))

    console.print(table)


def summary_panel(title: str, items: dict[str, Any]) -> None:
    """Print a summary panel with key-value pairs.

    Args:
        title: Title for the panel.
        items: Dictionary of label -> value pairs to display.

    """
    table = Table.grid(padding=(0, 2))
    table.add_column(style="bold")
    table.add_column(style="cyan")

    for label, value in items.items():
        table.add_row(f"{label}:", _render(value))

    console.print(Panel(table, title=f"[bold]{title}[/bold]", border_style="green"))


def newline() -> None:
    """Print an empty line."""
    console.print()
