"""
Cascade orchestration: run a command on every commit of the current stack.
"""

from __future__ import annotations

import logging
import shlex
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from .actions import classify_actions
from .branch_registry import BranchRegistry, ProtectedBranches, dependents
from .config import RepoConfig
from .git_manager import GitManager
from .models import (
    CommandResult,
    DirtyWorkingTreeError,
    GitRepositoryError,
    OperationFailure,
    RunOptions,
    RunResult,
    UsageError,
)
from .progress_interface import CascadeReporter, NoOpReporter
from .stack_graph import StackGraph


logger = logging.getLogger(__name__)

STASH_MESSAGE = "stackwalk run"

CommandRunner = Callable[[Sequence[str], Optional[Path]], CommandResult]


def run_command(command: Sequence[str], cwd: Optional[Path] = None) -> CommandResult:
    """Run a command to completion, inheriting stdio.

    A process killed by a signal reports the signal; a command that cannot be
    spawned reports the OS error instead of raising.
    """
    logger.debug(f"Running: {shlex.join(command)}")
    try:
        completed = subprocess.run(list(command), cwd=cwd)
    except OSError as e:
        logger.debug(f"Failed to spawn {command[0]}: {e}")
        return CommandResult(error=str(e))
    if completed.returncode < 0:
        return CommandResult(signal=-completed.returncode)
    return CommandResult(returncode=completed.returncode)


def resolve_implicit_base(
    git_manager: GitManager,
    head_id: str,
    registry: BranchRegistry,
    max_commits: Optional[int],
    pull_remote: str,
) -> Optional[str]:
    """Pick the protected branch tip nearest to HEAD.

    Each protected branch is considered both locally and through its upstream
    (the configured tracking branch, else ``<pull_remote>/<name>``). The
    candidate whose merge-base with HEAD has the fewest commits up to HEAD
    wins; ties go to the first candidate found. Candidates further than
    ``max_commits`` away are ignored.

    Returns:
        The commit id of the chosen tip, or None if no candidate qualifies
    """
    candidates: List[tuple] = []
    for branch in registry.protected_branches():
        candidates.append((branch.name, branch.commit))
        upstream = branch.pull_target or f"{pull_remote}/{branch.name}"
        upstream_id = git_manager.resolve_commit(upstream)
        if upstream_id is not None and upstream_id != branch.commit:
            candidates.append((upstream, upstream_id))

    best: Optional[tuple] = None
    for name, commit_id in candidates:
        merge_base = git_manager.merge_base(commit_id, head_id)
        if merge_base is None:
            continue
        distance = git_manager.count_commits(merge_base, head_id)
        if max_commits is not None and distance > max_commits:
            logger.debug(f"Ignoring base candidate {name}: {distance} commits from HEAD")
            continue
        if best is None or distance < best[2]:
            best = (name, commit_id, distance)

    if best is None:
        return None
    logger.info(f"Using {best[0]} as base ({best[2]} commits behind HEAD)")
    return best[1]


@dataclass
class StackSnapshot:
    """Everything pre-flight learns about the repository, before anything moves."""

    head_id: str
    head_branch: Optional[str]
    registry: BranchRegistry
    base_id: str
    merge_base: str
    graph: StackGraph

    def label(self, commit_id: str) -> str:
        """Branch names at a commit, else its short id."""
        names = self.graph.get(commit_id).branches if commit_id in self.graph else []
        return ", ".join(names) if names else commit_id[:7]


class CascadeOrchestrator:
    """Runs a command against every commit of the stack HEAD belongs to."""

    def __init__(
        self,
        git_manager: GitManager,
        config: Optional[RepoConfig] = None,
        reporter: Optional[CascadeReporter] = None,
        runner: CommandRunner = run_command,
    ) -> None:
        self.git_manager = git_manager
        self.config = config or RepoConfig()
        self.reporter = reporter or NoOpReporter()
        self.runner = runner

    @classmethod
    def from_path(
        cls, path: Optional[Path] = None, reporter: Optional[CascadeReporter] = None
    ) -> CascadeOrchestrator:
        """Discover the repository at ``path`` and load its configuration.

        Raises:
            RepositoryNotFoundError: if no repository contains ``path``
            ConfigError: if the ``[stack]`` configuration is invalid
        """
        git_manager = GitManager(path)
        logger.debug(f"Repository root: {git_manager.working_dir}")
        config = RepoConfig.from_repo(git_manager)
        return cls(git_manager, config, reporter)

    # --- Pre-flight ---
    def build_stack(self, base: Optional[str] = None, classify: bool = False) -> StackSnapshot:
        """Snapshot HEAD, branches and the stack graph without changing anything.

        With ``classify``, each node is also given its rewrite action; this
        inspects every commit's tree, so only callers that display actions ask.

        Raises:
            UsageError: if the base cannot be resolved or shares no history with HEAD
            GraphError: if the graph cannot be built
        """
        gm = self.git_manager
        head_id = gm.head_commit()
        head_branch = gm.head_branch()
        protected = ProtectedBranches.from_config(self.config)
        registry = BranchRegistry.from_repo(gm, protected, push_remote=self.config.push_remote)

        if base is not None:
            base_id = gm.resolve_commit(base)
            if base_id is None:
                raise UsageError(f"Could not resolve base '{base}'")
        else:
            base_id = resolve_implicit_base(
                gm,
                head_id,
                registry,
                self.config.auto_base_commit_count,
                self.config.pull_remote,
            )
            if base_id is None:
                self.reporter.warning(
                    "Could not find protected branch for HEAD, assuming HEAD is on a protected branch"
                )
                base_id = head_id

        merge_base = gm.merge_base(base_id, head_id)
        if merge_base is None:
            raise UsageError(f"Could not find merge-base between {base or base_id[:7]} and HEAD")

        branches = dependents(gm, registry, merge_base, head_id)
        graph = StackGraph.from_branches(gm, merge_base, branches)
        if classify:
            classify_actions(graph, registry, gm.is_empty_commit)
        return StackSnapshot(
            head_id=head_id,
            head_branch=head_branch,
            registry=registry,
            base_id=base_id,
            merge_base=merge_base,
            graph=graph,
        )

    # --- Run ---
    def run(self, command: Sequence[str], options: Optional[RunOptions] = None) -> RunResult:
        """
        Run ``command`` on each commit of the stack, parents before children.

        Args:
            command: Program and arguments, spawned directly without a shell
            options: Fail-fast, switch, dry-run and base selection

        Returns:
            RunResult; ``success`` is False if any command failed

        Raises:
            UsageError: for an empty command, an unresolvable base or a dirty tree
            GraphError: if the stack graph cannot be built
            GitRepositoryError: if a checkout fails mid-walk (after restoring)
        """
        options = options or RunOptions()
        command = list(command)
        if not command:
            raise UsageError("No command given")

        stack = self.build_stack(options.base)
        result = RunResult()
        logger.info(
            f"Running {shlex.join(command)} on {len(stack.graph) - 1} commits "
            f"above {stack.merge_base[:8]} (fail_fast={options.fail_fast}, "
            f"switch={options.switch}, dry_run={options.dry_run})"
        )

        if not options.dry_run and not options.switch:
            result.stash_id = self.git_manager.stash_push(STASH_MESSAGE)
        if self.git_manager.is_dirty():
            if options.dry_run:
                self.reporter.error("Working tree is dirty, aborting")
            else:
                paths = self.git_manager.get_dirty_paths()
                self.git_manager.stash_pop(result.stash_id)
                raise DirtyWorkingTreeError(
                    f"Working tree is dirty ({', '.join(paths) or 'unknown paths'}); "
                    "commit or stash your changes first"
                )

        try:
            self._walk(stack, command, options, result)
        except BaseException:
            logger.error("Cascade aborted; restoring original position")
            self._restore(stack, result, options, on_error=True)
            raise

        first_failure = result.first_failure
        if (
            not result.success
            and options.switch
            and first_failure is not None
            and first_failure != stack.head_id
        ):
            self._switch_to_failure(stack, first_failure, options)
            if options.dry_run:
                result.final_position = stack.head_branch or stack.head_id
            else:
                result.final_position = first_failure
        else:
            self._restore(stack, result, options)

        logger.info(
            f"Cascade finished: {len(result.visited)} visited, {len(result.failures)} failed"
        )
        return result

    def _walk(
        self, stack: StackSnapshot, command: List[str], options: RunOptions, result: RunResult
    ) -> None:
        cursor = stack.graph.descendants_of(stack.merge_base).into_cursor()
        while True:
            commit_id = cursor.next(stack.graph)
            if commit_id is None:
                break
            node = stack.graph.get(commit_id)
            label = stack.label(commit_id)
            self.reporter.switching(label, node.commit.summary)
            if not options.dry_run:
                self.git_manager.checkout_commit(commit_id)
            result.visited.append(commit_id)

            outcome = self.runner(command, self.git_manager.repo_path)
            if outcome.success:
                self.reporter.command_succeeded()
                continue

            self.reporter.command_failed(label, command, outcome)
            result.record_failure(
                OperationFailure(commit_id=commit_id, label=label, command=command, result=outcome)
            )
            if options.fail_fast:
                cursor.stop()

    # --- Post-flight ---
    def _switch_to_failure(self, stack: StackSnapshot, commit_id: str, options: RunOptions) -> None:
        """Leave the working tree on the first failing commit; the stash stays put."""
        label = stack.label(commit_id)
        if options.dry_run:
            self.reporter.switching(label, stack.graph.get(commit_id).commit.summary)
            logger.info(f"Dry run: would leave HEAD at first failure {label}")
            return
        self.git_manager.checkout_commit(commit_id)
        logger.info(f"Left HEAD at first failure {label}")

    def _restore(
        self, stack: StackSnapshot, result: RunResult, options: RunOptions, on_error: bool = False
    ) -> None:
        if not options.dry_run:
            try:
                if stack.head_branch is not None:
                    self.git_manager.checkout_branch(stack.head_branch)
                else:
                    self.git_manager.checkout_commit(stack.head_id)
            except GitRepositoryError as e:
                if not on_error:
                    raise
                logger.error(f"Could not restore original position: {e}")
        result.final_position = stack.head_branch or stack.head_id
        self.git_manager.stash_pop(result.stash_id)
