"""
Data models for the stack cascade tool.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


@dataclass(frozen=True)
class CommitInfo:
    """Information about a Git commit."""

    hash: str
    summary: str
    parents: List[str] = field(default_factory=list)
    message: str = ""
    author: str = ""

    @property
    def short_hash(self) -> str:
        return self.hash[:7]


@dataclass
class BranchInfo:
    """A local branch and the commit it points at."""

    name: str
    commit: str
    protected: bool = False
    pull_target: Optional[str] = None  # e.g. "origin/main"
    push_target: Optional[str] = None


class Action(Enum):
    """What a rewrite operation may do with a commit in the stack."""

    PICK = "pick"
    PROTECTED = "protected"
    DELETE = "delete"

    def is_pick(self) -> bool:
        return self is Action.PICK

    def is_protected(self) -> bool:
        return self is Action.PROTECTED

    def is_delete(self) -> bool:
        return self is Action.DELETE


@dataclass
class RunOptions:
    """Caller-selected policy for one cascade run."""

    fail_fast: bool = True
    switch: bool = False
    dry_run: bool = False
    base: Optional[str] = None


@dataclass(frozen=True)
class CommandResult:
    """Outcome of one spawned command.

    Exactly one of ``returncode``, ``signal`` or ``error`` describes a failure;
    a zero ``returncode`` is the only success.
    """

    returncode: Optional[int] = None
    signal: Optional[int] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.returncode == 0

    def describe(self) -> str:
        if self.error is not None:
            return self.error
        if self.signal is not None:
            return "signal caught"
        return f"exit code {self.returncode}"


@dataclass
class OperationFailure:
    """A cascaded command that did not succeed on one commit."""

    commit_id: str
    label: str
    command: List[str]
    result: CommandResult


@dataclass
class RunResult:
    """Overall result of a cascade run."""

    success: bool = True
    visited: List[str] = field(default_factory=list)
    failures: List[OperationFailure] = field(default_factory=list)
    first_failure: Optional[str] = None
    stash_id: Optional[str] = None
    final_position: Optional[str] = None

    def record_failure(self, failure: OperationFailure) -> None:
        """Record a failure; only the first one becomes ``first_failure``."""
        self.success = False
        self.failures.append(failure)
        if self.first_failure is None:
            self.first_failure = failure.commit_id


class StackError(Exception):
    """Base exception for stack operations."""

    pass


class UsageError(StackError):
    """The command was invoked in a context where it cannot proceed."""

    pass


class RepositoryNotFoundError(UsageError):
    """No Git repository could be discovered."""

    pass


class DirtyWorkingTreeError(UsageError):
    """The working tree has uncommitted changes and would be moved."""

    pass


class ConfigError(StackError):
    """Invalid repository configuration."""

    pass


class GraphError(StackError):
    """The stack graph could not be built from commit ancestry."""

    pass


class GitRepositoryError(StackError):
    """A Git primitive (checkout, stash, lookup) failed."""

    pass
