"""
Git repository access for stack operations.
"""

from __future__ import annotations

import configparser
import logging
from pathlib import Path
from typing import List, Optional, Set, Tuple

from git import Repo, InvalidGitRepositoryError, NoSuchPathError
from git.exc import BadName, BadObject, GitCommandError

from .models import (
    CommitInfo,
    GitRepositoryError,
    GraphError,
    RepositoryNotFoundError,
    UsageError,
)


logger = logging.getLogger(__name__)


class GitManager:
    """Wraps the object/ref store primitives the stack core relies on."""

    def __init__(self, repo_path: Optional[Path] = None) -> None:
        """Initialize Git manager with optional repository path."""
        self.repo_path = (repo_path or Path.cwd()).resolve()
        self._repo: Optional[Repo] = None

    @property
    def repo(self) -> Repo:
        """Get the Git repository instance."""
        if self._repo is None:
            self._repo = self._discover_repository()
        return self._repo

    def _discover_repository(self) -> Repo:
        """Discover the Git repository from the configured path or any parent."""
        logger.debug(f"Discovering repository in: {self.repo_path}")
        try:
            repo = Repo(self.repo_path, search_parent_directories=True)
        except (InvalidGitRepositoryError, NoSuchPathError) as e:
            raise RepositoryNotFoundError(
                f"No Git repository found at {self.repo_path} or any parent directory"
            ) from e
        logger.info(f"Found Git repository at: {repo.working_dir}")
        return repo

    @property
    def working_dir(self) -> Path:
        return Path(self.repo.working_dir)

    # --- Commits and ancestry ---
    def find_commit(self, commitish: str) -> CommitInfo:
        """Look up a commit; raises GraphError if the object is missing."""
        try:
            commit = self.repo.commit(commitish)
        except (BadName, BadObject, ValueError) as e:
            raise GraphError(f"Commit {commitish} could not be found: {e}") from e
        return CommitInfo(
            hash=commit.hexsha,
            summary=str(commit.summary).strip(),
            parents=[parent.hexsha for parent in commit.parents],
            message=str(commit.message).strip(),
            author=commit.author.name or "",
        )

    def resolve_commit(self, ref: str) -> Optional[str]:
        """Return the full commit id a ref points at, or None if it does not resolve."""
        try:
            return self.repo.commit(ref).hexsha
        except (BadName, BadObject, ValueError, GitCommandError):
            return None

    def merge_base(self, first: str, second: str) -> Optional[str]:
        """Return the best common ancestor of two commits, or None if unrelated."""
        try:
            output = self.repo.git.merge_base(first, second).strip()
        except GitCommandError as e:
            logger.debug(f"No merge-base between {first} and {second}: {e}")
            return None
        return output or None

    def is_ancestor(self, ancestor: str, descendant: str) -> bool:
        """Return True if ``ancestor`` is reachable from ``descendant`` (inclusive)."""
        try:
            return self.repo.is_ancestor(ancestor, descendant)
        except GitCommandError as e:
            raise GraphError(f"Failed to compare {ancestor} and {descendant}: {e}") from e

    def commits_between(self, base: str, tip: str) -> Set[str]:
        """Commits on the ancestry path from ``base`` (exclusive) to ``tip`` (inclusive)."""
        try:
            output = self.repo.git.rev_list("--ancestry-path", f"{base}..{tip}")
        except GitCommandError as e:
            raise GraphError(f"Failed to list commits {base}..{tip}: {e}") from e
        return {line.strip() for line in output.splitlines() if line.strip()}

    def count_commits(self, base: str, tip: str) -> int:
        try:
            return int(self.repo.git.rev_list("--count", f"{base}..{tip}").strip())
        except (GitCommandError, ValueError) as e:
            raise GraphError(f"Failed to count commits {base}..{tip}: {e}") from e

    def is_empty_commit(self, commitish: str) -> bool:
        """Return True if the commit introduces no change relative to its first parent."""
        try:
            commit = self.repo.commit(commitish)
        except (BadName, BadObject, ValueError) as e:
            raise GraphError(f"Commit {commitish} could not be found: {e}") from e
        if not commit.parents:
            return False
        return commit.tree.hexsha == commit.parents[0].tree.hexsha

    # --- Branches ---
    def list_local_branches(self) -> List[Tuple[str, str]]:
        """List local branches as (name, commit id) pairs in ref-store order."""
        try:
            return [(head.name, head.commit.hexsha) for head in self.repo.heads]
        except (GitCommandError, ValueError) as e:
            logger.error(f"Error listing local branches: {e}")
            raise GitRepositoryError(f"Failed to list local branches: {e}") from e

    def tracking_branch(self, branch_name: str) -> Optional[str]:
        """Return the upstream ref of a local branch (e.g. 'origin/main'), if configured."""
        try:
            tracking = self.repo.heads[branch_name].tracking_branch()
        except (IndexError, ValueError):
            return None
        return tracking.name if tracking is not None else None

    def remote_branch_exists(self, branch_name: str, remote_name: str = "origin") -> bool:
        """Check if a remote branch exists (e.g., origin/feature/x)."""
        try:
            remote = self.repo.remote(remote_name)
            return f"{remote_name}/{branch_name}" in [ref.name for ref in remote.refs]
        except (ValueError, AssertionError, GitCommandError):
            # Unknown remote, or a remote with no fetched refs yet
            return False

    # --- HEAD and working tree ---
    def head_branch(self) -> Optional[str]:
        """Return the checked-out branch name, or None when HEAD is detached."""
        if self.repo.head.is_detached:
            return None
        return self.repo.active_branch.name

    def head_commit(self) -> str:
        try:
            return self.repo.head.commit.hexsha
        except ValueError as e:
            # Unborn branch: nothing has been committed yet
            raise UsageError(f"HEAD does not point at a commit yet: {e}") from e

    def is_dirty(self) -> bool:
        """Return True if there are staged or unstaged changes (untracked ignored)."""
        return self.repo.is_dirty(index=True, working_tree=True, untracked_files=False)

    def get_dirty_paths(self) -> List[str]:
        """Return list of paths that are staged or unstaged (untracked ignored)."""
        output = self.repo.git.status("--porcelain")
        dirty: List[str] = []
        for line in output.splitlines():
            if not line.strip() or line.startswith("??"):
                continue
            path = line[3:].strip()
            if path:
                dirty.append(path)
        return dirty

    def checkout_commit(self, commitish: str) -> None:
        """Move the working tree to a commit, detaching HEAD."""
        try:
            self.repo.git.checkout("--detach", commitish)
            logger.debug(f"Checked out commit: {commitish}")
        except GitCommandError as e:
            logger.error(f"Failed to checkout {commitish} in {self.repo.working_dir}: {e}")
            raise GitRepositoryError(f"Failed to checkout {commitish}: {e}") from e

    def checkout_branch(self, branch_name: str) -> None:
        """Checkout a specific branch."""
        try:
            self.repo.git.checkout(branch_name)
            logger.info(f"Checked out branch: {branch_name}")
        except GitCommandError as e:
            logger.error(f"Error checking out branch {branch_name}: {e}")
            raise GitRepositoryError(f"Failed to checkout branch {branch_name}: {e}") from e

    # --- Stash ---
    def stash_push(self, message: str) -> Optional[str]:
        """Stash uncommitted changes.

        Returns:
            The stash commit id, or None if there was nothing to stash or stashing failed
        """
        if not self.is_dirty():
            return None
        try:
            self.repo.git.stash("push", "-m", message)
            stash_id = self.repo.git.rev_parse("--verify", "refs/stash").strip()
        except GitCommandError as e:
            logger.warning(f"Failed to stash changes: {e}")
            return None
        logger.info(f"Saved working directory and index state as {stash_id[:8]}: {message}")
        return stash_id

    def stash_pop(self, stash_id: Optional[str]) -> bool:
        """Re-apply and drop a stash created by ``stash_push``.

        Returns:
            True if the stash was popped, False if there was none or popping failed
        """
        if stash_id is None:
            return False
        try:
            listing = self.repo.git.stash("list", "--format=%H")
            ids = [line.strip() for line in listing.splitlines() if line.strip()]
            if stash_id not in ids:
                logger.warning(f"Stash {stash_id[:8]} no longer exists; nothing to restore")
                return False
            self.repo.git.stash("pop", f"stash@{{{ids.index(stash_id)}}}")
        except GitCommandError as e:
            logger.warning(
                f"Failed to pop stash {stash_id[:8]}; restore it with `git stash apply {stash_id}`: {e}"
            )
            return False
        logger.info(f"Restored stash {stash_id[:8]}")
        return True

    # --- Configuration ---
    def get_config_values(self, section: str, option: str) -> List[str]:
        """Return every value of a (possibly multi-valued) git config key across all levels."""
        with self.repo.config_reader() as reader:
            try:
                values = reader.get_values(section, option)
            except (KeyError, configparser.Error):
                return []
        return [str(v) for v in values]
