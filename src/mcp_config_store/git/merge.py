"""Three-way merge capability used by the repository client.

The engine only merges and reports. What happens to a conflicted merge
(discarding local commits) is decided by RepositoryClient.sync().
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from ..errors import RepositoryError
from .command import run_git, stderr_text

logger = logging.getLogger(__name__)


@dataclass
class MergeOutcome:
    """Result of merging a target ref into the current branch."""
    merged: bool
    conflicts: list[str] = field(default_factory=list)


class MergeEngine(ABC):
    """Three-way merge that never resolves content collisions on its own."""

    @abstractmethod
    def merge(
        self,
        repo_path: Path,
        target: str,
        timeout: Optional[float] = None,
    ) -> MergeOutcome:
        """Merge ``target`` into the checked-out branch of ``repo_path``.

        A clean merge (fast-forward or merge commit) returns merged=True.
        Colliding edits return merged=False with the conflicting paths and
        may leave the working tree mid-merge; the caller must reset it.

        Raises:
            RepositoryError: If the merge fails for any other reason
        """


class GitCliMergeEngine(MergeEngine):
    """MergeEngine backed by ``git merge``.

    Equivalent to ``git merge --ff --no-edit <target>`` with the default
    strategy, which marks overlapping hunks as conflicts.
    """

    def merge(
        self,
        repo_path: Path,
        target: str,
        timeout: Optional[float] = None,
    ) -> MergeOutcome:
        result = run_git(
            repo_path,
            "merge",
            "--ff",
            "--no-edit",
            "--no-stat",
            "--no-rerere-autoupdate",
            target,
            check=False,
            timeout=timeout,
        )
        if result.returncode == 0:
            return MergeOutcome(merged=True)

        conflicts = self.conflicting_paths(repo_path)
        if conflicts:
            logger.debug(f"Merge of {target} conflicted in: {conflicts}")
            return MergeOutcome(merged=False, conflicts=conflicts)

        stderr = stderr_text(result) or result.stdout.strip()
        raise RepositoryError(
            f"Could not merge {target}: {stderr}",
            command=["git", "merge", target],
            stderr=stderr,
        )

    @staticmethod
    def conflicting_paths(repo_path: Path) -> list[str]:
        """List unmerged paths left in the index by a failed merge."""
        result = run_git(
            repo_path, "diff", "--name-only", "--diff-filter=U", check=False
        )
        if result.returncode != 0:
            return []
        return sorted(p for p in result.stdout.strip().split("\n") if p)
