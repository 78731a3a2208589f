"""Domain services for codebase indexing."""

from __future__ import annotations

from codebase_index.services.categorizer import Categorization, categorize
from codebase_index.services.chunking import ChunkParser
from codebase_index.services.embedding import EmbeddingService
from codebase_index.services.health import IndexHealthService
from codebase_index.services.pipeline import IndexingInProgressError, IndexingPipeline
from codebase_index.services.quota import QuotaController
from codebase_index.services.reconciler import ReconcileOutcome, SyncReconciler
from codebase_index.services.scanner import ChangeScanner, IgnoreRules, ScanResult
from codebase_index.services.trigger import DebouncedTrigger
from codebase_index.services.watcher import RepositoryWatcher

__all__ = [
    'Categorization',
    'ChangeScanner',
    'ChunkParser',
    'DebouncedTrigger',
    'EmbeddingService',
    'IgnoreRules',
    'IndexHealthService',
    'IndexingInProgressError',
    'IndexingPipeline',
    'QuotaController',
    'ReconcileOutcome',
    'RepositoryWatcher',
    'ScanResult',
    'SyncReconciler',
    'categorize',
]
