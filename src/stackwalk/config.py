"""
Repository configuration for stack operations, read from git config.

Keys live in the ``[stack]`` section and may be set at any git config level::

    [stack]
        protected-branch = main
        protected-branch = release/
        protected-match = prefix
        push-remote = origin
        pull-remote = upstream
        auto-base-commit-count = 50
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, TYPE_CHECKING

from .models import ConfigError

if TYPE_CHECKING:
    from .git_manager import GitManager


logger = logging.getLogger(__name__)


CONFIG_SECTION = "stack"

DEFAULT_PROTECTED_BRANCHES = ("main", "master", "dev", "stable")
DEFAULT_PROTECTED_MATCH = "prefix"
DEFAULT_REMOTE = "origin"
DEFAULT_AUTO_BASE_COMMIT_COUNT = 50

MATCH_MODES = ("exact", "prefix", "glob")

_REMOTE_NAME_RE = re.compile(r"^[A-Za-z0-9._/-]+$")


@dataclass(frozen=True)
class RepoConfig:
    """Validated, read-only settings for one run."""

    protected_branches: List[str] = field(default_factory=lambda: list(DEFAULT_PROTECTED_BRANCHES))
    protected_match: str = DEFAULT_PROTECTED_MATCH
    push_remote: str = DEFAULT_REMOTE
    pull_remote: str = DEFAULT_REMOTE
    auto_base_commit_count: Optional[int] = DEFAULT_AUTO_BASE_COMMIT_COUNT

    def __post_init__(self) -> None:
        if self.protected_match not in MATCH_MODES:
            raise ConfigError(
                f"Invalid protected-match '{self.protected_match}'; expected one of {', '.join(MATCH_MODES)}"
            )
        for pattern in self.protected_branches:
            if not pattern or not pattern.strip():
                raise ConfigError("Empty protected-branch pattern")
        for key, remote in (("push-remote", self.push_remote), ("pull-remote", self.pull_remote)):
            if not remote or not _REMOTE_NAME_RE.match(remote):
                raise ConfigError(f"Invalid {key} '{remote}'")
        if self.auto_base_commit_count is not None and self.auto_base_commit_count < 0:
            raise ConfigError(
                f"auto-base-commit-count must be non-negative, got {self.auto_base_commit_count}"
            )

    @classmethod
    def from_values(cls, values: Dict[str, Sequence[str]]) -> RepoConfig:
        """Build a config from raw ``key -> [values]`` pairs; the last value of a single-valued key wins."""

        def last(key: str) -> Optional[str]:
            found = values.get(key) or []
            return str(found[-1]).strip() if found else None

        protected = [str(v).strip() for v in values.get("protected-branch") or []]

        count_raw = last("auto-base-commit-count")
        count: Optional[int] = DEFAULT_AUTO_BASE_COMMIT_COUNT
        if count_raw is not None:
            if count_raw.lower() in ("", "none", "off"):
                count = None
            else:
                try:
                    count = int(count_raw)
                except ValueError as e:
                    raise ConfigError(f"auto-base-commit-count must be an integer, got '{count_raw}'") from e

        return cls(
            protected_branches=protected or list(DEFAULT_PROTECTED_BRANCHES),
            protected_match=(last("protected-match") or DEFAULT_PROTECTED_MATCH).lower(),
            push_remote=last("push-remote") or DEFAULT_REMOTE,
            pull_remote=last("pull-remote") or DEFAULT_REMOTE,
            auto_base_commit_count=count,
        )

    @classmethod
    def from_repo(cls, git_manager: GitManager) -> RepoConfig:
        """Load the ``[stack]`` section from all git config levels."""
        keys = (
            "protected-branch",
            "protected-match",
            "push-remote",
            "pull-remote",
            "auto-base-commit-count",
        )
        values = {key: git_manager.get_config_values(CONFIG_SECTION, key) for key in keys}
        config = cls.from_values(values)
        logger.debug(f"Loaded repository config: {config}")
        return config
