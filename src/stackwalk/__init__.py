"""
Stackwalk - run a command on every commit of a stack of dependent branches.

This package discovers the branches stacked on top of a protected base, builds
the commit graph between them and walks it parent-first, checking out each
commit and running a command there.
"""

__version__ = "0.1.0"

from .cascade_orchestrator import CascadeOrchestrator, StackSnapshot, run_command
from .models import Action, BranchInfo, CommitInfo, CommandResult, RunOptions, RunResult
from .git_manager import GitManager
from .config import RepoConfig
from .branch_registry import BranchRegistry, ProtectedBranches
from .stack_graph import StackGraph
from .cursor import TraversalCursor

__all__ = [
    "CascadeOrchestrator",
    "StackSnapshot",
    "run_command",
    "Action",
    "BranchInfo",
    "CommitInfo",
    "CommandResult",
    "RunOptions",
    "RunResult",
    "GitManager",
    "RepoConfig",
    "BranchRegistry",
    "ProtectedBranches",
    "StackGraph",
    "TraversalCursor",
]
