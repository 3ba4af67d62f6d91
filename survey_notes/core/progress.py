"""
Progress reporting for the Survey Notes CLI.

A single module-level reporter shows a rich status line and prints a check
mark for each finished step. Core code calls it unconditionally; without an
initialized console it does nothing.
"""

from typing import List, Optional

from rich.console import Console
from rich.status import Status


class ProgressReporter:
    """Spinner line for the running pipeline stage plus a tick per finished stage."""

    def __init__(self):
        self.console: Optional[Console] = None
        self.status: Optional[Status] = None
        self.active: Optional[str] = None
        self.done: List[str] = []

    def initialize(self, console: Console, first_stage: str = "Starting…") -> Status:
        """
        Bind the reporter to a console for one CLI run.

        Returns:
            The rich Status, for use as a context manager
        """
        self.console = console
        self.status = console.status(f"[dim]{first_stage}[/dim]")
        self.active = first_stage
        self.done = []
        return self.status

    def reset(self) -> None:
        """Unbind from the console; later calls become no-ops."""
        self.console = None
        self.status = None
        self.active = None

    def _tick(self, label: str, indent: str = "") -> None:
        if self.console is not None:
            self.console.print(f"{indent}[green]✓[/green] [dim]{label}[/dim]")

    def step(self, stage: str) -> None:
        """Finish the active stage and show the next one on the spinner."""
        if self.status is None:
            return
        if self.active is not None:
            self.done.append(self.active)
            self._tick(self.active)
        self.active = stage
        self.status.update(f"[dim]{stage}[/dim]")

    def complete_step(self, label: Optional[str] = None) -> None:
        """Finish the active stage, optionally under a different label."""
        if self.active is None:
            return
        finished = label or self.active
        self.done.append(finished)
        self._tick(finished)
        self.active = None

    def complete_sub_step(self, detail: str) -> None:
        """Print an indented tick for a detail of the active stage."""
        self._tick(detail, indent="  ")


reporter = ProgressReporter()
