"""Sync reconciler - startup drift check between ledger and vector store.

Runs once before the first indexing run. Compares the store's point count
with the ledger's file count:

    remote  ledger   outcome
    0       0        fresh_start
    >0      >0       in_sync (optimistic, no cross-reference)
    0       >0       repaired (collection was reset externally)
    >0      0        ledger_missing (records rebuilt from the store's paths
                              and the committed scan hashes)
"""

from __future__ import annotations

import logging
from typing import Literal

from codebase_index.protocols import VectorStore
from codebase_index.services.pipeline import IndexingPipeline

__all__ = [
    'ReconcileOutcome',
    'SyncReconciler',
]

logger = logging.getLogger(__name__)

type ReconcileOutcome = Literal['fresh_start', 'in_sync', 'repaired', 'ledger_missing', 'error']


class SyncReconciler:
    """Detects and repairs a vector store emptied behind the ledger's back."""

    def __init__(self, pipeline: IndexingPipeline, vector_store: VectorStore) -> None:
        self._pipeline = pipeline
        self._vector_store = vector_store

    async def reconcile(self) -> ReconcileOutcome:
        """Classify and repair. Never raises."""
        try:
            return await self._reconcile()
        except Exception as e:
            logger.exception(f'[SYNC] Reconciliation failed, continuing startup: {e}')
            return 'error'

    async def _reconcile(self) -> ReconcileOutcome:
        remote = await self._vector_store.point_count()
        local = self._pipeline.ledger_file_count
        logger.info(f'[SYNC] Vector store: {remote:,} points, ledger: {local:,} files')

        if remote > 0 and local > 0:
            return 'in_sync'
        if remote > 0:
            stored = await self._vector_store.indexed_path_counts()
            adopted = await self._pipeline.adopt_stored_files(stored)
            logger.warning(
                f'[SYNC] Ledger is empty but the store holds {remote:,} points in {len(stored):,} files. '
                f'Rebuilt {adopted:,} ledger records from committed scan hashes; '
                f'{len(stored) - adopted:,} files without a committed hash will be re-embedded.'
            )
            return 'ledger_missing'
        if local == 0:
            logger.info('[SYNC] Fresh start')
            return 'fresh_start'

        # Collection metadata may lag behind a checkpoint just written
        exact = await self._vector_store.point_count(exact=True)
        if exact > 0:
            logger.info(f'[SYNC] Exact count found {exact:,} points, in sync')
            return 'in_sync'

        cleared = await self._pipeline.reset_after_drift()
        logger.warning('[SYNC] ' + '=' * 60)
        logger.warning(f'[SYNC] VECTOR STORE IS EMPTY BUT LEDGER LISTS {cleared:,} FILES')
        logger.warning('[SYNC] Cleared ledger, pending queue, quota and scan hashes')
        logger.warning('[SYNC] A FULL RE-INDEX WILL RUN NEXT')
        logger.warning('[SYNC] ' + '=' * 60)
        return 'repaired'
