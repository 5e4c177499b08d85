"""
Tree of commits between a merge-base and the tips of its dependent branches.

Nodes are stored in an arena keyed by commit id; parent and child links are
ids rather than object references.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Sequence, TYPE_CHECKING

from .cursor import TraversalCursor
from .models import Action, BranchInfo, CommitInfo, GraphError

if TYPE_CHECKING:
    from .git_manager import GitManager


logger = logging.getLogger(__name__)


@dataclass
class StackNode:
    """A commit in the stack and the branches pointing at it."""

    commit: CommitInfo
    parent: Optional[str] = None
    children: List[str] = field(default_factory=list)
    branches: List[str] = field(default_factory=list)
    action: Action = Action.PICK

    @property
    def id(self) -> str:
        return self.commit.hash


class StackGraph:
    """Single-rooted tree of stack commits."""

    def __init__(self, root: CommitInfo) -> None:
        self.root_id = root.hash
        self._nodes: Dict[str, StackNode] = {root.hash: StackNode(commit=root)}

    @classmethod
    def from_branches(
        cls, git_manager: GitManager, merge_base: str, branches: Sequence[BranchInfo]
    ) -> StackGraph:
        """Build the graph by walking each branch back to the merge-base.

        Each branch is walked from its tip until reaching a commit already in
        the graph, so shared history is only visited once. Where a commit has
        several parents, the first one that still descends from the merge-base
        is followed.

        Raises:
            GraphError: if a commit cannot be read or a branch does not descend
                from the merge-base
        """
        graph = cls(git_manager.find_commit(merge_base))
        for branch in branches:
            if branch.commit not in graph:
                in_range = git_manager.commits_between(graph.root_id, branch.commit)
                graph._walk_branch(git_manager, branch, in_range)
            graph._nodes[branch.commit].branches.append(branch.name)

        logger.info(
            f"Built stack graph rooted at {graph.root_id[:8]}: "
            f"{len(graph)} commits, {len(branches)} branches"
        )
        return graph

    def _walk_branch(self, git_manager: GitManager, branch: BranchInfo, in_range: set) -> None:
        pending: List[CommitInfo] = []
        current = git_manager.find_commit(branch.commit)
        while current.hash not in self._nodes:
            pending.append(current)
            parent_id = next(
                (p for p in current.parents if p == self.root_id or p in in_range),
                None,
            )
            if parent_id is None:
                raise GraphError(
                    f"Branch {branch.name} does not descend from {self.root_id[:8]} "
                    f"(stopped at {current.hash[:8]})"
                )
            if parent_id in self._nodes:
                current = self._nodes[parent_id].commit
            else:
                current = git_manager.find_commit(parent_id)

        # Link oldest first so each parent exists before its child
        parent_id = current.hash
        for commit in reversed(pending):
            self._nodes[commit.hash] = StackNode(commit=commit, parent=parent_id)
            self._nodes[parent_id].children.append(commit.hash)
            parent_id = commit.hash

    # --- Queries ---
    def __contains__(self, commit_id: object) -> bool:
        return commit_id in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def __iter__(self) -> Iterator[StackNode]:
        return iter(self._nodes.values())

    @property
    def root(self) -> StackNode:
        return self._nodes[self.root_id]

    def get(self, commit_id: str) -> StackNode:
        try:
            return self._nodes[commit_id]
        except KeyError:
            raise GraphError(f"Commit {commit_id[:8]} is not part of the stack") from None

    def parent_of(self, commit_id: str) -> Optional[str]:
        return self.get(commit_id).parent

    def children_of(self, commit_id: str) -> List[str]:
        return list(self.get(commit_id).children)

    def ancestors(self, commit_id: str) -> List[str]:
        """Ancestors of a node, nearest first, ending at the root."""
        result = []
        parent = self.get(commit_id).parent
        while parent is not None:
            result.append(parent)
            parent = self._nodes[parent].parent
        return result

    def descendants(self, commit_id: str) -> List[str]:
        """All descendants of a node in pre-order (the node itself excluded)."""
        result = []
        stack = list(reversed(self.get(commit_id).children))
        while stack:
            current = stack.pop()
            result.append(current)
            stack.extend(reversed(self._nodes[current].children))
        return result

    def branch_nodes(self) -> List[StackNode]:
        """Nodes with at least one branch attached."""
        return [node for node in self._nodes.values() if node.branches]

    def is_bare(self, commit_id: str) -> bool:
        """True if neither the node nor any descendant carries a branch."""
        if self.get(commit_id).branches:
            return False
        return not any(self._nodes[d].branches for d in self.descendants(commit_id))

    def descendants_of(self, commit_id: str) -> StackGraphView:
        """Read-only view of the sub-tree rooted at ``commit_id``."""
        self.get(commit_id)
        return StackGraphView(self, commit_id)


class StackGraphView:
    """A sub-tree of a StackGraph, used as the starting point of a walk."""

    def __init__(self, graph: StackGraph, root_id: str) -> None:
        self.graph = graph
        self.root_id = root_id

    def __contains__(self, commit_id: object) -> bool:
        return commit_id == self.root_id or commit_id in self.graph.descendants(self.root_id)

    def node_ids(self) -> List[str]:
        return [self.root_id] + self.graph.descendants(self.root_id)

    def into_cursor(self) -> TraversalCursor:
        return TraversalCursor(self.graph.children_of(self.root_id))
