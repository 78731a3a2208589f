"""Index health - cross-references repository files with stored vectors.

Unlike the startup reconciler's count comparison, this enumerates the
distinct filePath tags in the store and diffs them against a fresh scan.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence

from codebase_index.protocols import VectorStore
from codebase_index.schemas.health import HealthIssue, IndexHealthReport, RepairReport
from codebase_index.services.pipeline import IndexingInProgressError, IndexingPipeline

__all__ = [
    'ALL_ISSUES',
    'IndexHealthService',
]

logger = logging.getLogger(__name__)

ALL_ISSUES: Sequence[HealthIssue] = ('missing_files', 'orphaned_paths')


class IndexHealthService:
    """Checks and repairs disagreement between disk and the vector store."""

    def __init__(self, pipeline: IndexingPipeline, vector_store: VectorStore) -> None:
        self._pipeline = pipeline
        self._vector_store = vector_store

    async def check(self) -> IndexHealthReport:
        in_progress = self._pipeline.is_indexing
        if in_progress:
            logger.warning('[HEALTH] Indexing in progress, results may be transient')

        scanner = self._pipeline.scanner
        repo_files = set(await asyncio.to_thread(lambda: list(scanner.iter_watched_files())))
        indexed_paths = await self._vector_store.list_indexed_paths()
        vector_count = await self._vector_store.point_count()

        # Zero-chunk files legitimately hold no vectors
        empty_files = {
            path
            for path, record in self._pipeline.records.items()
            if record.status == 'indexed' and record.chunk_count == 0
        }

        missing = sorted(repo_files - indexed_paths - empty_files)
        orphaned = sorted(indexed_paths - repo_files)

        report = IndexHealthReport(
            repo_files=len(repo_files),
            indexed_files=len(repo_files & (indexed_paths | empty_files)),
            vector_count=vector_count,
            missing_files=missing,
            orphaned_paths=orphaned,
            indexing_in_progress=in_progress,
        )
        logger.info(
            f'[HEALTH] {report.indexed_files:,}/{report.repo_files:,} files indexed '
            f'({report.coverage_percent}%), {len(missing)} missing, {len(orphaned)} orphaned'
        )
        return report

    async def repair(
        self,
        issues: Sequence[HealthIssue] = ALL_ISSUES,
        *,
        auto_fix: bool = False,
    ) -> RepairReport:
        """Report issues, and with auto_fix, remove orphans and re-queue missing files.

        Raises:
            IndexingInProgressError: A run is active.
        """
        if self._pipeline.is_indexing:
            raise IndexingInProgressError('Cannot repair while indexing is in progress')

        report = await self.check()
        missing = report.missing_files if 'missing_files' in issues else []
        orphaned = report.orphaned_paths if 'orphaned_paths' in issues else []

        if not auto_fix or not (missing or orphaned):
            return RepairReport(issues=issues, auto_fix=auto_fix, missing_files=missing, orphaned_paths=orphaned)

        for path in orphaned:
            await self._vector_store.delete_by_path(path)
        await self._pipeline.forget_files([*missing, *orphaned])
        logger.info(f'[HEALTH] Removed {len(orphaned)} orphaned paths, re-queued {len(missing)} missing files')

        result = await self._pipeline.trigger_scan_and_index(missing)
        return RepairReport(
            issues=issues,
            auto_fix=auto_fix,
            missing_files=missing,
            orphaned_paths=orphaned,
            files_requeued=len(missing),
            orphans_removed=len(orphaned),
            run_outcome=result.outcome,
        )
