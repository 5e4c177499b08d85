"""
CLI-specific implementation of the progress reporter.
"""

from __future__ import annotations

import shlex
from typing import List

from rich.console import Console
from rich.markup import escape

from .models import CommandResult
from .progress_interface import CascadeReporter


class CliReporter(CascadeReporter):
    """Prints cascade progress to the terminal using rich."""

    def __init__(self, console: Console = None):
        self.console = console or Console(stderr=True)

    def switching(self, label: str, summary: str) -> None:
        self.console.print(
            f"[green]Switching[/green] to [bold]{escape(label)}[/bold]: [dim]{escape(summary)}[/dim]",
            highlight=False,
        )

    def command_succeeded(self) -> None:
        self.console.print("[green]Success[/green]")

    def command_failed(self, label: str, command: List[str], result: CommandResult) -> None:
        self.console.print(
            f"[bold red]Failed[/bold red]: {escape(result.describe())} "
            f"[dim]({escape(label)}: {escape(shlex.join(command))})[/dim]",
            highlight=False,
        )

    def warning(self, message: str) -> None:
        self.console.print(f"[yellow]warning[/yellow]: {escape(message)}", highlight=False)

    def error(self, message: str) -> None:
        self.console.print(f"[bold red]error[/bold red]: {escape(message)}", highlight=False)
