"""Git layer: one local clone of one remote branch.

This package provides:
- RepositoryClient: clone, sync, commit, push and per-path fingerprints
- SyncResult: outcome of a sync (merged / discarded / remote empty)
- MergeEngine / GitCliMergeEngine: three-way merge with conflict detection
- CommitInfo: commit metadata for history views
"""

from .client import RepositoryClient, SyncResult, CommitInfo
from .merge import MergeEngine, GitCliMergeEngine, MergeOutcome

__all__ = [
    "RepositoryClient",
    "SyncResult",
    "CommitInfo",
    "MergeEngine",
    "GitCliMergeEngine",
    "MergeOutcome",
]
