"""Shared fixtures for codebase index tests.

Pipelines are assembled from in-memory fakes (tests/codebase_index/fakes.py)
around a real ChangeScanner and ChunkParser working on a tmp_path repository.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import date
from pathlib import Path

import pytest

from codebase_index.protocols import ChunkParser as ChunkParserProtocol
from codebase_index.services.chunking import ChunkParser
from codebase_index.services.pipeline import IndexingPipeline
from codebase_index.services.quota import QuotaController
from codebase_index.services.scanner import ChangeScanner
from tests.codebase_index import fakes

type PipelineFactory = Callable[..., IndexingPipeline]


@pytest.fixture
def repo(tmp_path: Path) -> Path:
    """Empty repository root."""
    root = tmp_path / 'repo'
    root.mkdir()
    return root


@pytest.fixture
def vector_store() -> fakes.InMemoryVectorStore:
    return fakes.InMemoryVectorStore()


@pytest.fixture
def embedder() -> fakes.FakeEmbedder:
    return fakes.FakeEmbedder()


@pytest.fixture
def ledger_store() -> fakes.InMemoryLedgerStore:
    return fakes.InMemoryLedgerStore()


@pytest.fixture
def today() -> list[date]:
    """Mutable clock: tests advance the day by replacing today[0]."""
    return [date(2026, 3, 2)]


@pytest.fixture
def make_pipeline(
    repo: Path,
    vector_store: fakes.InMemoryVectorStore,
    embedder: fakes.FakeEmbedder,
    ledger_store: fakes.InMemoryLedgerStore,
    today: list[date],
) -> PipelineFactory:
    """Build a pipeline restored from ledger_store, like a process restart."""

    def factory(
        *,
        quota_limit: int = 10_000,
        checkpoint_interval: int = 10,
        parser: ChunkParserProtocol | None = None,
    ) -> IndexingPipeline:
        ledger = ledger_store.load_ledger()
        scanner = ChangeScanner(repo, committed=ledger_store.load_scan_hashes())
        if ledger is not None:
            quota = QuotaController.from_document(ledger.daily_quota, limit=quota_limit, today=lambda: today[0])
        else:
            quota = QuotaController(quota_limit, today=lambda: today[0])
        return IndexingPipeline(
            scanner=scanner,
            parser=parser or ChunkParser(repo),
            embedder=embedder,
            vector_store=vector_store,
            ledger_store=ledger_store,
            quota=quota,
            ledger=ledger,
            checkpoint_interval=checkpoint_interval,
        )

    return factory
