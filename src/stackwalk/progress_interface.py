"""
UI-agnostic progress reporting for cascade runs.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List

from .models import CommandResult


class CascadeReporter(ABC):
    """Receives per-commit events as a cascade runs, so feedback is incremental."""

    @abstractmethod
    def switching(self, label: str, summary: str) -> None:
        """
        Announce the commit about to be processed.

        Args:
            label: Branch names at the commit, or its short id
            summary: First line of the commit message
        """
        pass

    @abstractmethod
    def command_succeeded(self) -> None:
        pass

    @abstractmethod
    def command_failed(self, label: str, command: List[str], result: CommandResult) -> None:
        """
        Report a failed command immediately.

        Args:
            label: Branch names at the commit, or its short id
            command: The command vector that was run
            result: Exit status, signal or spawn error
        """
        pass

    @abstractmethod
    def warning(self, message: str) -> None:
        pass

    @abstractmethod
    def error(self, message: str) -> None:
        """Report a non-fatal error condition (e.g. a dirty tree during a dry run)."""
        pass


class NoOpReporter(CascadeReporter):
    """Reporter that discards every event."""

    def switching(self, label: str, summary: str) -> None:
        pass

    def command_succeeded(self) -> None:
        pass

    def command_failed(self, label: str, command: List[str], result: CommandResult) -> None:
        pass

    def warning(self, message: str) -> None:
        pass

    def error(self, message: str) -> None:
        pass
