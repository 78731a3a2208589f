"""Indexing operation schemas.

Models for run results, progress, status snapshots, and the rolling error log.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Literal

from codebase_index.schemas.base import JsonDatetime, StrictModel
from codebase_index.schemas.ledger import CategoryStats, DailyQuota

__all__ = [
    'IndexStatus',
    'IndexingError',
    'IndexingProgress',
    'IndexingRunResult',
    'PipelinePhase',
    'RunOutcome',
]

type PipelinePhase = Literal[
    'idle',
    'scanning',
    'categorizing',
    'draining_deletions',
    'prioritizing',
    'processing',
    'checkpointing',
    'finalizing',
]

# busy: refused because another run is active (paths deferred to next run)
# quota_exhausted: stopped early, remaining work moved to pending queue
type RunOutcome = Literal['completed', 'quota_exhausted', 'busy']


class IndexingError(StrictModel):
    """Single file processing failure in the rolling error log."""

    file_path: str
    error_type: str  # e.g., "UnicodeDecodeError", "ResponseHandlingException"
    message: str
    timestamp: JsonDatetime


class IndexingProgress(StrictModel):
    """Progress of the active (or last) run."""

    total_files: int
    processed_files: int = 0
    current_file: str | None = None
    chunks_processed: int = 0
    elapsed_seconds: float = 0.0

    @property
    def percent_complete(self) -> float:
        """Completion percentage (0-100)."""
        if self.total_files == 0:
            return 100.0
        return round(self.processed_files / self.total_files * 100, 1)

    @property
    def files_per_second(self) -> float:
        if self.elapsed_seconds <= 0:
            return 0.0
        return self.processed_files / self.elapsed_seconds

    @property
    def average_seconds_per_file(self) -> float | None:
        if self.processed_files == 0:
            return None
        return self.elapsed_seconds / self.processed_files

    @property
    def estimated_remaining_seconds(self) -> float | None:
        """Estimated time remaining based on current rate."""
        rate = self.files_per_second
        if rate <= 0:
            return None
        return (self.total_files - self.processed_files) / rate


class IndexingRunResult(StrictModel):
    """Result of one trigger_scan_and_index() call."""

    outcome: RunOutcome

    # Scan and categorization
    files_scanned: int = 0
    new_files: int = 0
    modified_files: int = 0
    unchanged_files: int = 0
    deleted_files: int = 0
    files_resumed: int = 0  # Already indexed by an interrupted run

    # Processing outcomes
    files_indexed: int = 0
    files_no_content: int = 0
    files_failed: int = 0
    files_deferred: int = 0  # Moved to pending queue by quota
    chunks_indexed: int = 0

    elapsed_seconds: float = 0.0
    errors: Sequence[IndexingError] = ()

    @property
    def error_summary(self) -> str:
        """Human-readable error summary."""
        if not self.errors:
            return 'All files indexed successfully'

        grouped: dict[str, int] = {}
        for err in self.errors:
            grouped[err.error_type] = grouped.get(err.error_type, 0) + 1

        lines = [f'{len(self.errors)} errors:']
        for err_type, count in sorted(grouped.items()):
            lines.append(f'  {err_type}: {count}')
        return '\n'.join(lines)


class IndexStatus(StrictModel):
    """Read-only engine snapshot for observability tooling."""

    is_indexing: bool
    phase: PipelinePhase
    queue_depth: int  # Paths deferred by concurrent triggers (in-memory)
    pending_count: int  # Paths deferred by quota (persisted)
    indexed_files: int
    quota: DailyQuota
    stats: CategoryStats
    recent_errors: Sequence[IndexingError]
    progress: IndexingProgress | None = None
    last_updated: JsonDatetime | None = None
    embedding_concurrency: int
