"""Pydantic schemas for codebase indexing operations."""

from __future__ import annotations

from codebase_index.schemas.base import CamelModel, JsonDatetime, StrictModel
from codebase_index.schemas.chunking import (
    LANGUAGE_MAP,
    WATCHED_EXTENSIONS,
    ChunkType,
    CodeChunk,
    Language,
    get_language,
)
from codebase_index.schemas.config import ConfigError, IndexerConfig, load_config
from codebase_index.schemas.embeddings import MAX_BATCH_SIZE, MAX_TEXT_CHARS, TaskIntent
from codebase_index.schemas.health import HealthIssue, IndexHealthReport, RepairReport
from codebase_index.schemas.indexing import (
    IndexingError,
    IndexingProgress,
    IndexingRunResult,
    IndexStatus,
    PipelinePhase,
    RunOutcome,
)
from codebase_index.schemas.ledger import CategoryStats, DailyQuota, FileRecord, FileStatus, IndexLedger
from codebase_index.schemas.vectors import SearchHit

__all__ = [
    # Base
    'CamelModel',
    'JsonDatetime',
    'StrictModel',
    # Config
    'ConfigError',
    'IndexerConfig',
    'load_config',
    # Chunking
    'LANGUAGE_MAP',
    'WATCHED_EXTENSIONS',
    'ChunkType',
    'CodeChunk',
    'Language',
    'get_language',
    # Embeddings
    'MAX_BATCH_SIZE',
    'MAX_TEXT_CHARS',
    'TaskIntent',
    # Ledger
    'CategoryStats',
    'DailyQuota',
    'FileRecord',
    'FileStatus',
    'IndexLedger',
    # Indexing
    'IndexStatus',
    'IndexingError',
    'IndexingProgress',
    'IndexingRunResult',
    'PipelinePhase',
    'RunOutcome',
    # Health
    'HealthIssue',
    'IndexHealthReport',
    'RepairReport',
    # Vectors
    'SearchHit',
]
