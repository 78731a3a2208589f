"""Index ledger schemas.

The ledger is the persisted single source of truth for what is indexed.
Serialized as one JSON document:

    {version, lastUpdated, indexedFiles: {path: FileRecord}, pendingQueue: [path],
     dailyQuota: {date, unitsConsumedToday, limit}, stats}

All paths are repo-relative POSIX paths.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from datetime import UTC, datetime
from typing import Literal

import pydantic

from codebase_index.schemas.base import CamelModel, JsonDatetime

__all__ = [
    'LEDGER_VERSION',
    'CategoryStats',
    'DailyQuota',
    'FileRecord',
    'FileStatus',
    'IndexLedger',
]

LEDGER_VERSION = 1

# indexed: vectors for content_hash are believed to exist remotely
# pending: old vectors removed, deferred by quota before re-upsert
# failed: old vectors removed, last attempt raised
type FileStatus = Literal['indexed', 'pending', 'failed']


class FileRecord(CamelModel):
    """Ledger entry for one indexed path."""

    content_hash: str
    last_indexed_at: JsonDatetime
    chunk_count: int
    status: FileStatus = 'indexed'


class DailyQuota(CamelModel):
    """Daily admission budget, counted in upserted chunks."""

    date: str  # Calendar day, ISO format (YYYY-MM-DD)
    units_consumed_today: int = 0
    limit: int

    @property
    def remaining(self) -> int:
        return max(self.limit - self.units_consumed_today, 0)

    @property
    def percent_used(self) -> float:
        if self.limit <= 0:
            return 100.0
        return round(self.units_consumed_today / self.limit * 100, 1)


class CategoryStats(CamelModel):
    """Last-run categorization counts. Observability only."""

    new_files: int = 0
    modified_files: int = 0
    unchanged_files: int = 0
    deleted_files: int = 0


class IndexLedger(CamelModel):
    """Persisted ledger document."""

    version: int = LEDGER_VERSION
    last_updated: JsonDatetime = pydantic.Field(default_factory=lambda: datetime.now(UTC))
    indexed_files: Mapping[str, FileRecord] = {}
    pending_queue: Sequence[str] = ()
    daily_quota: DailyQuota
    stats: CategoryStats = CategoryStats()
