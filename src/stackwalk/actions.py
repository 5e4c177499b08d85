"""
Per-commit action classification consumed by rewrite operations.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict

from .branch_registry import BranchRegistry
from .models import Action
from .stack_graph import StackGraph


logger = logging.getLogger(__name__)


def classify_actions(
    graph: StackGraph,
    registry: BranchRegistry,
    is_redundant: Callable[[str], bool],
) -> Dict[str, Action]:
    """
    Assign an Action to every node of the graph.

    Rules, in priority order:
        1. The root is the anchor of the stack and is always PROTECTED.
        2. A node carrying a protected branch, or any ancestor of such a node,
           is PROTECTED; rewriting stops at the protection boundary.
        3. A node whose change is empty relative to its parent is DELETE.
        4. Everything else is PICK.

    Args:
        graph: The stack graph; each node's ``action`` is updated in place
        registry: Branch registry answering whether a branch is protected
        is_redundant: Returns True if a commit has an empty diff against its parent

    Returns:
        Mapping of commit id to its Action
    """
    protected_ids = set()
    for node in graph.branch_nodes():
        if any(registry.is_protected(name) for name in node.branches):
            protected_ids.add(node.id)
            protected_ids.update(graph.ancestors(node.id))
    protected_ids.add(graph.root_id)

    actions: Dict[str, Action] = {}
    for node in graph:
        if node.id in protected_ids:
            action = Action.PROTECTED
        elif is_redundant(node.id):
            action = Action.DELETE
        else:
            action = Action.PICK
        node.action = action
        actions[node.id] = action

    counts = {a: sum(1 for v in actions.values() if v is a) for a in Action}
    logger.debug(
        "Classified stack: "
        + ", ".join(f"{count} {action.value}" for action, count in counts.items())
    )
    return actions
