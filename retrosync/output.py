"""Console output formatting."""

import json
from datetime import datetime
from typing import Any, Optional

from rich.console import Console
from rich.markup import escape
from rich.table import Table


class OutputFormatter:
    """Writes user-facing progress and status lines.

    All human-readable output goes through this class so ``quiet`` and
    ``json_output`` are honoured everywhere. Errors are always shown.
    """

    def __init__(
        self,
        json_output: bool = False,
        quiet: bool = False,
        console: Optional[Console] = None,
        err_console: Optional[Console] = None,
    ):
        self.json_output = json_output
        self.quiet = quiet
        self.console = console or Console(highlight=False)
        self.err_console = err_console or Console(stderr=True, highlight=False)

    def print(self, message: str = "") -> None:
        if not self.quiet and not self.json_output:
            self.console.print(message, markup=False)

    def info(self, message: str) -> None:
        if not self.quiet and not self.json_output:
            self.console.print(message, markup=False)

    def success(self, message: str) -> None:
        if not self.quiet and not self.json_output:
            self.console.print(f"[green]✓[/green] {escape(message)}")

    def warning(self, message: str) -> None:
        if not self.quiet:
            self.err_console.print(f"[yellow]Warning:[/yellow] {escape(message)}")

    def error(self, message: str) -> None:
        self.err_console.print(f"[red]Error:[/red] {escape(message)}")

    def timestamp(self) -> None:
        """Print the current local time, as a separator between runs."""
        self.info(f"[{datetime.now().strftime('%a %d %b %Y %H:%M:%S')}]")

    def output_json(self, data: Any) -> None:
        self.console.print_json(json.dumps(data, default=str))

    def output_table(
        self, columns: list[str], rows: list[list[str]], title: Optional[str] = None
    ) -> None:
        """Render rows as a table (or JSON objects in JSON mode)."""
        if self.json_output:
            self.output_json([dict(zip(columns, row)) for row in rows])
            return
        if self.quiet:
            return
        table = Table(title=title)
        for column in columns:
            table.add_column(column)
        for row in rows:
            table.add_row(*row)
        self.console.print(table)

    def print_summary(self, title: str, stats: dict[str, int]) -> None:
        """Print a statistics dictionary."""
        if self.json_output:
            self.output_json({"title": title, **stats})
            return
        if self.quiet:
            return
        self.console.print(f"[bold]{escape(title)}[/bold]")
        for key, value in stats.items():
            self.console.print(f"  {key.replace('_', ' ').capitalize()}: {value}")
