"""Rich console output utilities for the dweb CLI.

Success/error/warning/info lines are printed through one module-level
Rich console. ``NO_COLOR`` and ``--no-color`` both disable styling.
"""

from __future__ import annotations

import os
from typing import Any

from rich.console import Console
from rich.table import Table

_force_no_color = os.environ.get("NO_COLOR") is not None


def create_console(no_color: bool = False) -> Console:
    """Create a Rich Console instance with appropriate color settings.

    Args:
        no_color: If True, disable colored output. Also respects NO_COLOR env var.

    Returns:
        Configured Console instance.
    """
    force_terminal = None
    if no_color or _force_no_color:
        force_terminal = False
    return Console(force_terminal=force_terminal, no_color=no_color or _force_no_color)


console = create_console()


def success(message: str, **kwargs: Any) -> None:
    """Print a success message with green checkmark.

    Example:
        >>> success("Build finished")
        ✓ Build finished
    """
    console.print(f"[green]✓[/green] {message}", **kwargs)


def error(message: str, **kwargs: Any) -> None:
    """Print an error message with red X."""
    console.print(f"[red]✗[/red] {message}", **kwargs)


def warning(message: str, **kwargs: Any) -> None:
    """Print a warning message with yellow triangle."""
    console.print(f"[yellow]⚠[/yellow] {message}", **kwargs)


def info(message: str, **kwargs: Any) -> None:
    """Print an informational message."""
    console.print(message, **kwargs)


def build_summary(rows: list[dict[str, Any]]) -> None:
    """Print one table row per built app.

    Args:
        rows: Dicts with ``app``, ``out_dir``, ``files``, ``routes`` and
            ``duration_ms`` keys.
    """
    table = Table(title="Build summary", show_lines=False)
    table.add_column("App")
    table.add_column("Output")
    table.add_column("Files", justify="right")
    table.add_column("Routes (server/client)", justify="right")
    table.add_column("Time", justify="right")
    for row in rows:
        table.add_row(
            str(row["app"]),
            str(row["out_dir"]),
            str(row["files"]),
            str(row["routes"]),
            f"{row['duration_ms']} ms",
        )
    console.print(table)


def set_no_color(no_color: bool) -> None:
    """Update the global console to enable/disable colors.

    Args:
        no_color: If True, disable colored output.
    """
    global console
    console = create_console(no_color=no_color)
