"""Indexing pipeline - checkpointed incremental indexing state machine.

Per run: scan -> categorize -> drain deletions -> prioritize -> process
files sequentially -> checkpoint every N files -> finalize.

Consistency rules:
- A ledger record says 'indexed' only after its vectors are upserted.
- The scanner's committed hash for a path is updated only after the
  ledger record is written, never at scan time. A crash between upsert and
  commit re-processes the file; delete-by-path before upsert keeps that
  re-run free of duplicates.
- Quota is charged only after a successful upsert, with the number of
  points actually written.
- One run at a time. A trigger arriving mid-run is absorbed into a
  deferred set that the next run drains.

Single-threaded asyncio: the is_indexing check-and-set has no await
between test and assignment, so no lock is needed.
"""

from __future__ import annotations

import asyncio
import collections
import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Literal

from codebase_index.protocols import ChunkParser, EmbeddingGateway, LedgerStore, VectorStore
from codebase_index.schemas.config import CHECKPOINT_INTERVAL
from codebase_index.schemas.indexing import (
    IndexingError,
    IndexingProgress,
    IndexingRunResult,
    IndexStatus,
    PipelinePhase,
    RunOutcome,
)
from codebase_index.schemas.ledger import CategoryStats, FileRecord, IndexLedger
from codebase_index.services.categorizer import categorize
from codebase_index.services.quota import QuotaController
from codebase_index.services.scanner import ChangeScanner
from codebase_index.utils import Timer, humanize_seconds

__all__ = [
    'MAX_ERRORS_STORED',
    'EmbeddingFailedError',
    'IndexingInProgressError',
    'IndexingPipeline',
]

logger = logging.getLogger(__name__)

MAX_ERRORS_STORED = 10

type _FileOutcome = Literal['indexed', 'no_content', 'failed', 'deferred']


class IndexingInProgressError(RuntimeError):
    """Raised when a state mutation is requested while a run is active."""


class EmbeddingFailedError(RuntimeError):
    """Every chunk of a file came back without a vector."""


class IndexingPipeline:
    """Owns the ledger, quota, pending queue and error log for one repository.

    Status readers may call get_status() at any time; only the active run
    mutates state.
    """

    def __init__(
        self,
        *,
        scanner: ChangeScanner,
        parser: ChunkParser,
        embedder: EmbeddingGateway,
        vector_store: VectorStore,
        ledger_store: LedgerStore,
        quota: QuotaController,
        ledger: IndexLedger | None = None,
        checkpoint_interval: int = CHECKPOINT_INTERVAL,
        max_errors: int = MAX_ERRORS_STORED,
    ) -> None:
        if checkpoint_interval < 1:
            raise ValueError(f'checkpoint_interval must be >= 1, got {checkpoint_interval}')

        self._scanner = scanner
        self._parser = parser
        self._embedder = embedder
        self._vector_store = vector_store
        self._ledger_store = ledger_store
        self._quota = quota
        self._checkpoint_interval = checkpoint_interval

        self._records: dict[str, FileRecord] = dict(ledger.indexed_files) if ledger else {}
        self._pending: list[str] = list(ledger.pending_queue) if ledger else []
        self._stats: CategoryStats = ledger.stats if ledger else CategoryStats()
        self._last_updated: datetime | None = ledger.last_updated if ledger else None

        self._errors: collections.deque[IndexingError] = collections.deque(maxlen=max_errors)
        self._deferred: dict[str, None] = {}  # Insertion-ordered set
        self._is_indexing = False
        self._phase: PipelinePhase = 'idle'
        self._run: _RunState | None = None

    @classmethod
    def from_store(
        cls,
        *,
        repo_root: Path,
        parser: ChunkParser,
        embedder: EmbeddingGateway,
        vector_store: VectorStore,
        ledger_store: LedgerStore,
        quota_limit: int,
        checkpoint_interval: int = CHECKPOINT_INTERVAL,
        scanner: ChangeScanner | None = None,
    ) -> IndexingPipeline:
        """Restore a pipeline from persisted ledger and scan hashes."""
        ledger = ledger_store.load_ledger()
        hashes = ledger_store.load_scan_hashes()

        if scanner is None:
            scanner = ChangeScanner(repo_root, committed=hashes)
        else:
            for path, digest in hashes.items():
                scanner.commit_hash(path, digest)

        if ledger is not None:
            quota = QuotaController.from_document(ledger.daily_quota, limit=quota_limit)
            logger.info(
                f'[PIPELINE] Restored ledger: {len(ledger.indexed_files):,} files, '
                f'{len(ledger.pending_queue)} pending, {ledger.daily_quota.units_consumed_today:,} units used'
            )
        else:
            quota = QuotaController(quota_limit)
            logger.info('[PIPELINE] No ledger found, starting fresh')

        return cls(
            scanner=scanner,
            parser=parser,
            embedder=embedder,
            vector_store=vector_store,
            ledger_store=ledger_store,
            quota=quota,
            ledger=ledger,
            checkpoint_interval=checkpoint_interval,
        )

    # --- Read-only accessors ---

    @property
    def is_indexing(self) -> bool:
        return self._is_indexing

    @property
    def scanner(self) -> ChangeScanner:
        return self._scanner

    @property
    def ledger_file_count(self) -> int:
        """Number of paths with a ledger record, any status."""
        return len(self._records)

    @property
    def records(self) -> Mapping[str, FileRecord]:
        return dict(self._records)

    @property
    def pending_queue(self) -> Sequence[str]:
        return tuple(self._pending)

    def get_status(self) -> IndexStatus:
        """Snapshot of engine state. Never mutates."""
        return IndexStatus(
            is_indexing=self._is_indexing,
            phase=self._phase,
            queue_depth=len(self._deferred),
            pending_count=len(self._pending),
            indexed_files=sum(1 for record in self._records.values() if record.status == 'indexed'),
            quota=self._quota.snapshot(),
            stats=self._stats,
            recent_errors=list(self._errors),
            progress=self._run.progress() if self._run else None,
            last_updated=self._last_updated,
            embedding_concurrency=self._embedder.preferred_concurrency,
        )

    def to_ledger(self) -> IndexLedger:
        return IndexLedger(
            last_updated=datetime.now(UTC),
            indexed_files=dict(self._records),
            pending_queue=list(self._pending),
            daily_quota=self._quota.snapshot(),
            stats=self._stats,
        )

    # --- Mutations outside a run ---

    async def forget_files(self, paths: Iterable[str]) -> int:
        """Drop ledger records and committed hashes so the next run re-indexes.

        Returns:
            Number of ledger records removed.

        Raises:
            IndexingInProgressError: A run is active.
        """
        self._require_idle('forget files')
        targets = set(paths)
        removed = 0
        for path in targets:
            if self._records.pop(path, None) is not None:
                removed += 1
            self._scanner.forget(path)
        self._pending = [p for p in self._pending if p not in targets]
        await self._save()
        logger.info(f'[PIPELINE] Forgot {len(targets)} paths ({removed} ledger records)')
        return removed

    async def reset_after_drift(self) -> int:
        """Clear all local bookkeeping so the next run re-indexes everything.

        Returns:
            Number of ledger records cleared.
        """
        self._require_idle('reset state')
        cleared = len(self._records)
        self._records.clear()
        self._pending.clear()
        self._quota.reset()
        self._stats = CategoryStats()
        self._scanner.clear_committed()
        await self._save()
        return cleared

    async def adopt_stored_files(self, stored: Mapping[str, int]) -> int:
        """Rebuild ledger records for files that already hold vectors.

        Used when the ledger is lost but the store and the committed scanner
        hashes survived. A path is adopted only if it has a committed hash, so
        its content is known to match what was embedded.

        Args:
            stored: Points per file path currently in the vector store.

        Returns:
            Number of records rebuilt.
        """
        self._require_idle('adopt stored files')
        committed = self._scanner.committed_hashes
        now = datetime.now(UTC)
        adopted = 0
        for path, chunk_count in stored.items():
            digest = committed.get(path)
            if digest is None or path in self._records:
                continue
            self._records[path] = FileRecord(content_hash=digest, last_indexed_at=now, chunk_count=chunk_count)
            adopted += 1
        if adopted:
            await self._save()
        return adopted

    # --- Run ---

    async def trigger_scan_and_index(self, paths: Iterable[str] = ()) -> IndexingRunResult:
        """Run one incremental indexing pass, or defer paths if a run is active.

        Args:
            paths: Repo-relative paths known to have changed. Optional: the
                full scan finds every change; these only go to the front of
                the work list.
        """
        if self._is_indexing:
            for path in paths:
                self._deferred[path] = None
            logger.info(f'[PIPELINE] Run in progress, {len(self._deferred)} paths deferred to next run')
            return IndexingRunResult(outcome='busy')

        self._is_indexing = True
        try:
            return await self._execute(list(paths))
        finally:
            self._is_indexing = False
            self._phase = 'idle'

    async def _execute(self, paths: Sequence[str]) -> IndexingRunResult:
        timer = Timer()
        run = _RunState(timer=timer)
        self._run = run

        # 1. Drain pending queue and deferred triggers into the working set
        working = [*self._pending, *self._deferred, *paths]
        if self._pending:
            logger.info(f'[PIPELINE] Draining {len(self._pending)} pending paths from previous run')
        self._pending = []
        self._deferred.clear()

        # 2. Scan and categorize
        self._phase = 'scanning'
        scan = await asyncio.to_thread(self._scanner.scan)

        self._phase = 'categorizing'
        categories = categorize([*working, *scan.changed], scan.current_hashes, self._records, scan.skipped)
        self._stats = categories.to_stats()

        # 3. Deletions, never subject to quota
        self._phase = 'draining_deletions'
        for path in categories.deleted:
            await self._delete_file(path, run)

        # 4. New before modified
        self._phase = 'prioritizing'
        attempts = [*categories.new, *categories.modified]

        # 5. Committed records are already categorized unchanged; only their scanner hash may trail
        # the ledger after a crash between the two saves.
        stale = [p for p in categories.unchanged if self._scanner.committed_hashes.get(p) != scan.current_hashes[p]]
        for path in stale:
            self._scanner.commit_hash(path, scan.current_hashes[path])
        run.files_resumed = len(stale)

        run.total_files = len(attempts)
        outcome: RunOutcome = 'completed'

        # 6. Pre-pass quota gate
        if attempts and not self._quota.has_remaining(0):
            logger.warning(
                f'[QUOTA] Daily limit reached ({self._quota.consumed:,}/{self._quota.limit:,}), '
                f'deferring {len(attempts)} files'
            )
            self._pending = list(attempts)
            run.files_deferred = len(attempts)
            outcome = 'quota_exhausted'
            attempts = []

        # 7. Process sequentially
        if attempts:
            logger.info(
                f'[PIPELINE] Processing {len(attempts)} files '
                f'({len(categories.new)} new, {len(categories.modified)} modified)'
            )
        for index, path in enumerate(attempts):
            self._phase = 'processing'
            run.current_file = path

            file_outcome = await self._process_file(path, scan.current_hashes[path], run)
            if file_outcome == 'deferred':
                self._pending = list(attempts[index:])
                run.files_deferred = len(self._pending)
                outcome = 'quota_exhausted'
                logger.warning(f'[QUOTA] Budget exhausted at {path}, {len(self._pending)} files pending')
                break

            run.processed_files += 1
            if run.processed_files % self._checkpoint_interval == 0:
                self._phase = 'checkpointing'
                await self._save()
                logger.info(f'[CHECKPOINT] {run.processed_files}/{run.total_files} files committed')

        # 8. Final save
        self._phase = 'finalizing'
        run.current_file = None
        await self._save()

        result = IndexingRunResult(
            outcome=outcome,
            files_scanned=scan.files_scanned,
            new_files=len(categories.new),
            modified_files=len(categories.modified),
            unchanged_files=len(categories.unchanged),
            deleted_files=len(categories.deleted),
            files_resumed=run.files_resumed,
            files_indexed=run.files_indexed,
            files_no_content=run.files_no_content,
            files_failed=run.files_failed,
            files_deferred=run.files_deferred,
            chunks_indexed=run.chunks_processed,
            elapsed_seconds=run.finish(),
            errors=run.errors,
        )
        logger.info(
            f'[PIPELINE] Run {outcome}: {result.files_indexed} indexed, {result.files_failed} failed, '
            f'{result.deleted_files} deleted, {result.files_deferred} deferred, '
            f'{result.chunks_indexed:,} chunks in {humanize_seconds(result.elapsed_seconds)}'
        )
        return result

    async def _delete_file(self, path: str, run: _RunState) -> None:
        try:
            await self._vector_store.delete_by_path(path)
        except Exception as e:
            # Record kept so the next run retries the delete
            self._record_error(path, e, run)
            return
        self._records.pop(path, None)
        self._scanner.forget(path)
        logger.info(f'[PIPELINE] Removed deleted file {path}')

    async def _process_file(self, path: str, content_hash: str, run: _RunState) -> _FileOutcome:
        """Index one file: delete old vectors, parse, gate, embed, upsert, record, charge, commit."""
        try:
            await self._vector_store.delete_by_path(path)

            chunks = await asyncio.to_thread(self._parser.parse, self._scanner.repo_root / path)
            if not chunks:
                self._commit(path, content_hash, chunk_count=0)
                run.files_no_content += 1
                return 'no_content'

            if len(chunks) >= self._quota.limit:
                raise ValueError(f'{len(chunks):,} chunks exceed the daily quota limit of {self._quota.limit:,}')
            if not self._quota.has_remaining(len(chunks)):
                self._mark(path, 'pending')
                return 'deferred'

            vectors = await self._embedder.embed_chunks(chunks)
            pairs = [(chunk, vector) for chunk, vector in zip(chunks, vectors, strict=True) if vector is not None]
            if not pairs:
                raise EmbeddingFailedError(f'All {len(chunks)} chunks failed to embed')
            if len(pairs) < len(chunks):
                logger.warning(f'[PIPELINE] {path}: dropped {len(chunks) - len(pairs)} chunks without vectors')

            kept_chunks = [chunk for chunk, _ in pairs]
            kept_vectors = [vector for _, vector in pairs]
            await self._vector_store.upsert(kept_chunks, kept_vectors)

            self._commit(path, content_hash, chunk_count=len(pairs))
            self._quota.charge(len(pairs))
        except Exception as e:
            self._mark(path, 'failed')
            self._record_error(path, e, run)
            run.files_failed += 1
            return 'failed'

        run.files_indexed += 1
        run.chunks_processed += len(pairs)
        return 'indexed'

    def _commit(self, path: str, content_hash: str, *, chunk_count: int) -> None:
        """Write the ledger record, then commit the scanner hash."""
        self._records[path] = FileRecord(
            content_hash=content_hash,
            last_indexed_at=datetime.now(UTC),
            chunk_count=chunk_count,
            status='indexed',
        )
        self._scanner.commit_hash(path, content_hash)

    def _mark(self, path: str, status: Literal['pending', 'failed']) -> None:
        """Downgrade an existing record whose vectors were removed."""
        record = self._records.get(path)
        if record is not None:
            self._records[path] = record.model_copy(update={'status': status, 'chunk_count': 0})

    def _record_error(self, path: str, error: Exception, run: _RunState) -> None:
        entry = IndexingError(
            file_path=path,
            error_type=type(error).__name__,
            message=str(error),
            timestamp=datetime.now(UTC),
        )
        self._errors.appendleft(entry)
        run.errors.append(entry)
        logger.error(f'[PIPELINE] Failed {path}: {entry.error_type}: {entry.message}')

    async def _save(self) -> None:
        """Persist ledger then scan hashes. I/O errors are logged, never raised."""
        ledger = self.to_ledger()
        hashes = dict(self._scanner.committed_hashes)
        try:
            await asyncio.to_thread(self._ledger_store.save_ledger, ledger)
            await asyncio.to_thread(self._ledger_store.save_scan_hashes, hashes)
        except OSError as e:
            logger.error(f'[CHECKPOINT] Failed to persist state, continuing in memory: {e}')
            return
        self._last_updated = ledger.last_updated

    def _require_idle(self, action: str) -> None:
        if self._is_indexing:
            raise IndexingInProgressError(f'Cannot {action} while indexing is in progress')


@dataclass
class _RunState:
    """Per-run mutable counters. Kept after the run for status reporting."""

    timer: Timer
    total_files: int = 0
    processed_files: int = 0
    current_file: str | None = None
    chunks_processed: int = 0
    files_indexed: int = 0
    files_no_content: int = 0
    files_failed: int = 0
    files_deferred: int = 0
    files_resumed: int = 0
    errors: list[IndexingError] = field(default_factory=list)
    elapsed_seconds: float | None = None  # Frozen by finish()

    def finish(self) -> float:
        self.elapsed_seconds = self.timer.elapsed()
        return self.elapsed_seconds

    def progress(self) -> IndexingProgress:
        elapsed = self.elapsed_seconds if self.elapsed_seconds is not None else self.timer.elapsed()
        return IndexingProgress(
            total_files=self.total_files,
            processed_files=self.processed_files,
            current_file=self.current_file,
            chunks_processed=self.chunks_processed,
            elapsed_seconds=elapsed,
        )
