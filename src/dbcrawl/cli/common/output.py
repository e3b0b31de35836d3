"""Output formatting utilities for the CLI."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable

from rich.console import Console
from rich.table import Table
from rich.theme import Theme

THEME = Theme(
    {
        "ok": "bold green",
        "warn": "yellow",
        "err": "bold red",
        "title": "bold cyan",
        "meta": "dim",
        "key": "bold yellow",
    }
)

console = Console(theme=THEME)
# Messages go to stderr so a report on stdout can be redirected cleanly.
err_console = Console(theme=THEME, stderr=True)


@dataclass(frozen=True)
class Out:
    """Output formatter for CLI messages and tables."""

    def warn(self, msg: str) -> None:
        """Print a warning message."""
        err_console.print(f"[warn]⚠[/] {msg}")

    def error(self, msg: str) -> None:
        """Print an error message."""
        err_console.print(f"[err]✗[/] {msg}")

    def sources_table(self, connectors: Iterable[Any], title: str = "Sources") -> None:
        """
        Expects objects with .identifier .description .url_schemes
        (like dbcrawl.core.registry.SourceConnector)
        """
        t = Table(title=title, show_lines=False)
        t.add_column("Source", style="ok", no_wrap=True)
        t.add_column("Description")
        t.add_column("URL schemes", style="meta")

        for c in connectors:
            t.add_row(
                c.identifier or "(any)",
                c.description,
                ", ".join(f"{s}://" for s in c.url_schemes),
            )

        console.print(t)


out = Out()
