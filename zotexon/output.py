"""Console output helpers for the zotexon CLI."""

import json
from typing import Any, Optional

from rich.console import Console
from rich.table import Table


class OutputFormatter:
    """Formats user-facing CLI output as rich text or JSON."""

    def __init__(
        self,
        json_output: bool = False,
        quiet: bool = False,
        console: Optional[Console] = None,
        err_console: Optional[Console] = None,
    ):
        """Initialize the formatter.

        Args:
            json_output: Print results as JSON instead of tables
            quiet: Suppress informational messages (errors are still shown)
            console: Console for regular output
            err_console: Console for warnings and errors
        """
        self.json_output = json_output
        self.quiet = quiet
        self.console = console or Console()
        self.err_console = err_console or Console(stderr=True)

    def print(self, message: str) -> None:
        if not self.quiet and not self.json_output:
            self.console.print(message)

    def info(self, message: str) -> None:
        if not self.quiet and not self.json_output:
            self.console.print(f"[blue]{message}[/blue]")

    def success(self, message: str) -> None:
        if not self.quiet and not self.json_output:
            self.console.print(f"[green]{message}[/green]")

    def warning(self, message: str) -> None:
        if not self.quiet:
            self.err_console.print(f"[yellow]Warning:[/yellow] {message}")

    def error(self, message: str) -> None:
        self.err_console.print(f"[red]Error:[/red] {message}")

    def print_json(self, data: Any) -> None:
        self.console.print_json(json.dumps(data))

    def print_summary(self, title: str, rows: list[tuple[str, str]]) -> None:
        """Print a two-column key/value summary."""
        if self.json_output:
            self.print_json({key: value for key, value in rows})
            return
        if self.quiet:
            return

        table = Table(title=title, show_header=False)
        table.add_column("Key", style="cyan")
        table.add_column("Value")
        for key, value in rows:
            table.add_row(key, value)
        self.console.print(table)
