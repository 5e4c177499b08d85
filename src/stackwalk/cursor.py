"""
Stateful, single-use walk over a stack graph.
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Set, TYPE_CHECKING

if TYPE_CHECKING:
    from .stack_graph import StackGraph


logger = logging.getLogger(__name__)


class TraversalCursor:
    """Yields commits parent-before-child so each can be mutated in turn.

    The walk is depth-first: a lineage is followed to its end before the next
    sibling is started, and siblings come out in the order their branches were
    attached to the graph. ``stop()`` prunes the subtree of the node most
    recently returned by ``next()``.

    The cursor owns its frontier and stopped set. It does not hold the graph;
    the caller passes it to every ``next()`` call.
    """

    def __init__(self, initial: Iterable[str]) -> None:
        # Top of the stack is the end of the list
        self._frontier: List[str] = list(reversed(list(initial)))
        self._stopped: Set[str] = set()
        self._current: Optional[str] = None

    def next(self, graph: StackGraph) -> Optional[str]:
        """Return the next ready commit id, or None once the walk is exhausted."""
        while self._frontier:
            candidate = self._frontier.pop()
            parent = graph.parent_of(candidate)
            if parent in self._stopped:
                # Propagate so deeper descendants are skipped too
                self._stopped.add(candidate)
                continue
            self._frontier.extend(reversed(graph.children_of(candidate)))
            self._current = candidate
            return candidate
        self._current = None
        return None

    def stop(self) -> None:
        """Skip every descendant of the commit last returned by ``next()``."""
        if self._current is None:
            logger.debug("stop() called with no current commit; ignoring")
            return
        logger.debug(f"Stopping walk below {self._current[:8]}")
        self._stopped.add(self._current)

    @property
    def current(self) -> Optional[str]:
        return self._current
