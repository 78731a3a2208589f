"""File categorizer - partitions paths into new/modified/unchanged/deleted."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence, Set
from dataclasses import dataclass

from codebase_index.schemas.ledger import CategoryStats, FileRecord

__all__ = [
    'Categorization',
    'categorize',
]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Categorization:
    """Four disjoint path groups. new and modified keep candidate order."""

    new: Sequence[str]
    modified: Sequence[str]
    unchanged: Sequence[str]
    deleted: Sequence[str]

    def to_stats(self) -> CategoryStats:
        return CategoryStats(
            new_files=len(self.new),
            modified_files=len(self.modified),
            unchanged_files=len(self.unchanged),
            deleted_files=len(self.deleted),
        )


def categorize(
    candidates: Iterable[str],
    current_hashes: Mapping[str, str],
    records: Mapping[str, FileRecord],
    skipped: Set[str] = frozenset(),
) -> Categorization:
    """Partition paths against the ledger.

    Args:
        candidates: Paths to classify, in priority order. Duplicates are ignored.
            Candidates absent from current_hashes are only meaningful if the
            ledger knows them (then they are deleted).
        current_hashes: Full scan result, path -> current content hash.
            Every path here is classified even if not listed in candidates.
        records: Ledger records keyed by path.
        skipped: Paths that exist but could not be hashed. Never deleted.

    Returns:
        Categorization covering every scanned path and every ledger path
        missing from the scan.
    """
    new: list[str] = []
    modified: list[str] = []
    unchanged: list[str] = []
    seen: set[str] = set()

    ordered = [*candidates, *current_hashes]
    for path in ordered:
        if path in seen or path not in current_hashes:
            continue
        seen.add(path)

        record = records.get(path)
        if record is None:
            new.append(path)
        elif record.status != 'indexed' or record.content_hash != current_hashes[path]:
            modified.append(path)
        else:
            unchanged.append(path)

    deleted = sorted(path for path in records if path not in current_hashes and path not in skipped)

    result = Categorization(new=new, modified=modified, unchanged=unchanged, deleted=deleted)
    logger.info(
        f'[CATEGORIZE] new={len(new)} modified={len(modified)} unchanged={len(unchanged)} deleted={len(deleted)}'
    )
    return result
