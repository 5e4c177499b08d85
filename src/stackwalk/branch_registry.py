"""
Local branch enumeration, protection and dependency resolution.
"""

from __future__ import annotations

import fnmatch
import logging
from typing import Dict, Iterable, List, Optional

from .config import DEFAULT_PROTECTED_MATCH, MATCH_MODES, RepoConfig
from .git_manager import GitManager
from .models import BranchInfo, ConfigError, GraphError


logger = logging.getLogger(__name__)


class ProtectedBranches:
    """Branch-name patterns excluded from history rewriting.

    Matching modes:
        exact:  the name equals a pattern
        prefix: the name equals a pattern or lives under it (``release`` matches
                ``release/1.0``; a trailing ``/`` only matches names beneath it)
        glob:   shell-style wildcards (``release/*``, ``v[0-9]*``)
    """

    def __init__(self, patterns: Iterable[str], match: str = DEFAULT_PROTECTED_MATCH) -> None:
        if match not in MATCH_MODES:
            raise ConfigError(f"Unknown protected branch match mode: {match}")
        self.match = match
        self.patterns: List[str] = []
        for pattern in patterns:
            pattern = pattern.strip()
            if not pattern:
                raise ConfigError("Empty protected-branch pattern")
            self.patterns.append(pattern)

    @classmethod
    def from_config(cls, config: RepoConfig) -> ProtectedBranches:
        return cls(config.protected_branches, match=config.protected_match)

    def is_protected(self, name: str) -> bool:
        return any(self._matches(pattern, name) for pattern in self.patterns)

    def _matches(self, pattern: str, name: str) -> bool:
        if self.match == "exact":
            return name == pattern
        if self.match == "glob":
            return fnmatch.fnmatchcase(name, pattern)
        if pattern.endswith("/"):
            return name.startswith(pattern)
        return name == pattern or name.startswith(pattern + "/")

    def __repr__(self) -> str:
        return f"ProtectedBranches({self.patterns!r}, match={self.match!r})"


class BranchRegistry:
    """Snapshot of local branches taken once per run."""

    def __init__(self, branches: Iterable[BranchInfo], protected: ProtectedBranches) -> None:
        self.protected = protected
        self._branches: Dict[str, BranchInfo] = {}
        for branch in branches:
            self._branches[branch.name] = branch

    @classmethod
    def from_repo(
        cls, git_manager: GitManager, protected: ProtectedBranches, push_remote: str = "origin"
    ) -> BranchRegistry:
        """Enumerate local branches from the ref store.

        Raises:
            GitRepositoryError: if the refs cannot be listed
        """
        branches = []
        for name, commit in git_manager.list_local_branches():
            push_target = (
                f"{push_remote}/{name}" if git_manager.remote_branch_exists(name, push_remote) else None
            )
            branches.append(
                BranchInfo(
                    name=name,
                    commit=commit,
                    protected=protected.is_protected(name),
                    pull_target=git_manager.tracking_branch(name),
                    push_target=push_target,
                )
            )
        registry = cls(branches, protected)
        logger.info(
            f"Found {len(branches)} local branches ({len(registry.protected_branches())} protected)"
        )
        return registry

    def list(self) -> List[BranchInfo]:
        return list(self._branches.values())

    def get(self, name: str) -> Optional[BranchInfo]:
        return self._branches.get(name)

    def is_protected(self, name: str) -> bool:
        branch = self._branches.get(name)
        if branch is not None:
            return branch.protected
        return self.protected.is_protected(name)

    def protected_branches(self) -> List[BranchInfo]:
        return [b for b in self._branches.values() if b.protected]

    def names_at(self, commit_id: str) -> List[str]:
        """Names of the branches whose tip is ``commit_id``, in registry order."""
        return [b.name for b in self._branches.values() if b.commit == commit_id]

    def __len__(self) -> int:
        return len(self._branches)

    def __iter__(self):
        return iter(self._branches.values())


def dependents(
    git_manager: GitManager, registry: BranchRegistry, merge_base: str, head: str
) -> List[BranchInfo]:
    """Return the branches that make up the stack HEAD is on.

    A branch belongs to the stack when its tip descends from ``merge_base`` and
    it is on HEAD's line: its tip is an ancestor of HEAD, HEAD is an ancestor
    of its tip, or it forks from HEAD's line above ``merge_base``. A protected
    branch whose tip is not an ancestor of HEAD is left out, so a base branch
    that has moved on does not drag its new commits into the stack.

    Branches sharing a tip are all included, in registry order. A branch whose
    tip cannot be resolved is skipped.
    """
    result: List[BranchInfo] = []
    for branch in registry.list():
        try:
            if _on_head_line(git_manager, branch, merge_base, head):
                result.append(branch)
        except GraphError as e:
            logger.warning(f"Skipping branch {branch.name}: {e}")
    logger.debug(
        f"{len(result)} dependent branches of {merge_base[:8]} (HEAD {head[:8]}): "
        f"{', '.join(b.name for b in result)}"
    )
    return result


def _on_head_line(git_manager: GitManager, branch: BranchInfo, merge_base: str, head: str) -> bool:
    tip = branch.commit
    if not git_manager.is_ancestor(merge_base, tip):
        return False
    if git_manager.is_ancestor(tip, head):
        return True
    if branch.protected:
        logger.debug(f"Skipping protected branch {branch.name}: not below HEAD")
        return False
    if git_manager.is_ancestor(head, tip):
        return True
    fork_point = git_manager.merge_base(tip, head)
    if fork_point is None or fork_point == merge_base:
        logger.debug(f"Skipping branch {branch.name}: forks from HEAD's line at the base")
        return False
    return git_manager.is_ancestor(merge_base, fork_point)
