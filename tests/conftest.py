"""
Shared fixtures: an in-memory git manager and real temporary repositories.
"""

import shutil
from types import SimpleNamespace
from pathlib import Path
from typing import Dict, List, Optional, Set

import pytest

from stackwalk.models import CommandResult, CommitInfo, GitRepositoryError, GraphError
from stackwalk.progress_interface import CascadeReporter


class FakeGitManager:
    """Commit DAG, refs, working-tree state and stash held in memory."""

    def __init__(self):
        self.repo_path = Path("/fake/repo")
        self.commits: Dict[str, CommitInfo] = {}
        self.branches: Dict[str, str] = {}
        self.upstreams: Dict[str, str] = {}
        self.remote_refs: Dict[str, str] = {}
        self.empty: Set[str] = set()
        self.config: Dict[str, List[str]] = {}
        self.head: Optional[str] = None
        self.detached_at: Optional[str] = None
        self.dirty = False
        self.stash_fails = False
        self.fail_checkout: Set[str] = set()
        self.stashes: List[str] = []
        self.popped: List[str] = []
        self.checkouts: List[str] = []

    # --- Builders ---
    def commit(self, commit_id: str, *parents: str, summary: Optional[str] = None) -> str:
        self.commits[commit_id] = CommitInfo(
            hash=commit_id, summary=summary or f"commit {commit_id}", parents=list(parents)
        )
        return commit_id

    def branch(self, name: str, commit_id: str) -> None:
        self.branches[name] = commit_id

    def checkout(self, name: str) -> None:
        self.head = name
        self.detached_at = None

    # --- Ancestry ---
    def _ancestry(self, commit_id: str) -> Set[str]:
        if commit_id not in self.commits:
            raise GraphError(f"Commit {commit_id} could not be found")
        seen = set()
        pending = [commit_id]
        while pending:
            current = pending.pop()
            if current in seen:
                continue
            seen.add(current)
            pending.extend(self.commits[current].parents)
        return seen

    def _depth(self, commit_id: str) -> int:
        parents = self.commits[commit_id].parents
        return 0 if not parents else 1 + max(self._depth(p) for p in parents)

    def find_commit(self, commitish: str) -> CommitInfo:
        if commitish not in self.commits:
            raise GraphError(f"Commit {commitish} could not be found")
        return self.commits[commitish]

    def resolve_commit(self, ref: str) -> Optional[str]:
        if ref in self.branches:
            return self.branches[ref]
        if ref in self.remote_refs:
            return self.remote_refs[ref]
        return ref if ref in self.commits else None

    def merge_base(self, first: str, second: str) -> Optional[str]:
        common = self._ancestry(first) & self._ancestry(second)
        if not common:
            return None
        return max(common, key=self._depth)

    def is_ancestor(self, ancestor: str, descendant: str) -> bool:
        return ancestor in self._ancestry(descendant)

    def commits_between(self, base: str, tip: str) -> Set[str]:
        excluded = self._ancestry(base)
        return {
            c for c in self._ancestry(tip) - excluded if base in self._ancestry(c)
        }

    def count_commits(self, base: str, tip: str) -> int:
        return len(self._ancestry(tip) - self._ancestry(base))

    def is_empty_commit(self, commitish: str) -> bool:
        return commitish in self.empty

    # --- Branches ---
    def list_local_branches(self):
        return list(self.branches.items())

    def tracking_branch(self, branch_name: str) -> Optional[str]:
        return self.upstreams.get(branch_name)

    def remote_branch_exists(self, branch_name: str, remote_name: str = "origin") -> bool:
        return f"{remote_name}/{branch_name}" in self.remote_refs

    # --- HEAD and working tree ---
    def head_branch(self) -> Optional[str]:
        return self.head

    def head_commit(self) -> str:
        if self.head is not None:
            return self.branches[self.head]
        return self.detached_at

    def is_dirty(self) -> bool:
        return self.dirty

    def get_dirty_paths(self) -> List[str]:
        return ["file.txt"] if self.dirty else []

    def checkout_commit(self, commitish: str) -> None:
        if commitish in self.fail_checkout:
            raise GitRepositoryError(f"Failed to checkout {commitish}")
        self.checkouts.append(commitish)
        self.head = None
        self.detached_at = commitish

    def checkout_branch(self, branch_name: str) -> None:
        self.checkouts.append(branch_name)
        self.checkout(branch_name)

    def stash_push(self, message: str) -> Optional[str]:
        if not self.dirty or self.stash_fails:
            return None
        stash_id = f"stash{len(self.stashes)}"
        self.stashes.append(stash_id)
        self.dirty = False
        return stash_id

    def stash_pop(self, stash_id: Optional[str]) -> bool:
        if stash_id is None:
            return False
        self.popped.append(stash_id)
        self.dirty = True
        return True

    def get_config_values(self, section: str, option: str) -> List[str]:
        return list(self.config.get(option, []))


class RecordingReporter(CascadeReporter):
    """Collects reporter events as (kind, detail) tuples."""

    def __init__(self):
        self.events = []

    def switching(self, label, summary):
        self.events.append(("switching", label))

    def command_succeeded(self):
        self.events.append(("success", None))

    def command_failed(self, label, command, result):
        self.events.append(("failed", label, result.describe()))

    def warning(self, message):
        self.events.append(("warning", message))

    def error(self, message):
        self.events.append(("error", message))

    def labels(self):
        return [e[1] for e in self.events if e[0] == "switching"]


class FakeRunner:
    """Command runner that fails on chosen commits and records where it ran."""

    def __init__(self, git_manager: FakeGitManager, failing=None):
        self.git_manager = git_manager
        self.failing: Dict[str, CommandResult] = dict(failing or {})
        self.calls: List[Optional[str]] = []

    def __call__(self, command, cwd=None) -> CommandResult:
        current = self.git_manager.detached_at
        self.calls.append(current)
        return self.failing.get(current, CommandResult(returncode=0))


@pytest.fixture
def linear_stack():
    """base(main) -> A -> B(feat1) -> C(feat2), HEAD on feat2."""
    gm = FakeGitManager()
    gm.commit("base")
    gm.commit("A", "base", summary="add parser")
    gm.commit("B", "A", summary="use parser")
    gm.commit("C", "B", summary="document parser")
    gm.branch("main", "base")
    gm.branch("feat1", "B")
    gm.branch("feat2", "C")
    gm.checkout("feat2")
    return gm


@pytest.fixture
def forked_stack():
    """
    base(main) -> A -> B(left) -> D(left2)
                    \\-> C(right)
    HEAD on left.
    """
    gm = FakeGitManager()
    gm.commit("base")
    gm.commit("A", "base")
    gm.commit("B", "A")
    gm.commit("C", "A")
    gm.commit("D", "B")
    gm.branch("main", "base")
    gm.branch("left", "B")
    gm.branch("right", "C")
    gm.branch("left2", "D")
    gm.checkout("left")
    return gm


@pytest.fixture(autouse=True)
def isolated_log(tmp_path, monkeypatch):
    """Keep CLI log files out of the home directory."""
    log_path = tmp_path / "logs" / "stackwalk.log"
    monkeypatch.setenv("STACKWALK_LOG", str(log_path))
    return log_path


@pytest.fixture
def git_repo(tmp_path):
    """A real repository: main -> A -> B(feat1) -> C(feat2), HEAD on feat2.

    Commit B adds a ``fail`` marker file which later commits inherit.
    """
    if shutil.which("git") is None:
        pytest.skip("git executable not available")
    from git import Repo

    path = tmp_path / "repo"
    path.mkdir()
    repo = Repo.init(path)
    with repo.config_writer() as writer:
        writer.set_value("user", "name", "Test User")
        writer.set_value("user", "email", "test@example.com")

    def commit(filename, content, message):
        (path / filename).write_text(content)
        repo.index.add([filename])
        return repo.index.commit(message).hexsha

    shas = {}
    shas["base"] = commit("README", "base\n", "initial")
    repo.git.branch("-M", "main")
    repo.git.checkout("-b", "feat1")
    shas["A"] = commit("a.txt", "a\n", "add a")
    shas["B"] = commit("fail", "x\n", "add failure marker")
    repo.git.checkout("-b", "feat2")
    shas["C"] = commit("c.txt", "c\n", "add c")
    yield SimpleNamespace(repo=repo, path=path, shas=shas)
    repo.close()
