"""Index health schemas.

Reports comparing the repository's watched files against the paths
that actually hold vectors in Qdrant.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Literal

from codebase_index.schemas.base import StrictModel

__all__ = [
    'HealthIssue',
    'IndexHealthReport',
    'RepairReport',
]

# missing_files: watched file on disk with no vectors
# orphaned_paths: vectors for a path no longer on disk
type HealthIssue = Literal['missing_files', 'orphaned_paths']


class IndexHealthReport(StrictModel):
    """Result of an index consistency check."""

    repo_files: int
    indexed_files: int  # Repo files with vectors
    vector_count: int
    missing_files: Sequence[str]
    orphaned_paths: Sequence[str]
    indexing_in_progress: bool

    @property
    def coverage_percent(self) -> float:
        if self.repo_files == 0:
            return 100.0
        return round(self.indexed_files / self.repo_files * 100, 1)

    @property
    def is_healthy(self) -> bool:
        return not self.missing_files and not self.orphaned_paths


class RepairReport(StrictModel):
    """Result of an index repair."""

    issues: Sequence[HealthIssue]
    auto_fix: bool
    missing_files: Sequence[str]
    orphaned_paths: Sequence[str]
    files_requeued: int = 0
    orphans_removed: int = 0
    run_outcome: str | None = None  # Outcome of the follow-up index run

    @property
    def total_fixed(self) -> int:
        return self.files_requeued + self.orphans_removed
