"""Tests for IndexHealthService -- disk versus vector store consistency."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from pathlib import Path

import pytest

from codebase_index.services.health import IndexHealthService
from codebase_index.services.pipeline import IndexingInProgressError, IndexingPipeline
from tests.codebase_index import fakes

type PipelineFactory = Callable[..., IndexingPipeline]


async def _drifted_index(repo: Path, make_pipeline: PipelineFactory) -> IndexingPipeline:
    """Index a.py, gone.py and empty.py, then delete gone.py and add new.py on disk."""
    fakes.write_files(
        repo,
        {
            'a.py': fakes.python_module(2, tag='_a'),
            'gone.py': fakes.python_module(1, tag='_gone'),
            'empty.py': '',
        },
    )
    pipeline = make_pipeline()
    await pipeline.trigger_scan_and_index()

    (repo / 'gone.py').unlink()
    fakes.write_files(repo, {'new.py': fakes.python_module(1, tag='_new')})
    return pipeline


class TestCheck:
    """Read-only consistency report."""

    async def test_healthy_index(
        self,
        repo: Path,
        make_pipeline: PipelineFactory,
        vector_store: fakes.InMemoryVectorStore,
    ) -> None:
        fakes.write_files(repo, {'a.py': fakes.python_module(2), 'empty.py': ''})
        pipeline = make_pipeline()
        await pipeline.trigger_scan_and_index()

        report = await IndexHealthService(pipeline, vector_store).check()

        assert report.is_healthy
        assert report.repo_files == 2
        assert report.indexed_files == 2
        assert report.coverage_percent == 100.0
        assert report.vector_count == 2

    async def test_detects_missing_and_orphaned(
        self,
        repo: Path,
        make_pipeline: PipelineFactory,
        vector_store: fakes.InMemoryVectorStore,
    ) -> None:
        pipeline = await _drifted_index(repo, make_pipeline)

        report = await IndexHealthService(pipeline, vector_store).check()

        assert list(report.missing_files) == ['new.py']
        assert list(report.orphaned_paths) == ['gone.py']
        assert report.repo_files == 3
        assert report.indexed_files == 2
        assert not report.indexing_in_progress


class TestRepair:
    """Report-only and auto-fix repair."""

    async def test_report_only_changes_nothing(
        self,
        repo: Path,
        make_pipeline: PipelineFactory,
        vector_store: fakes.InMemoryVectorStore,
    ) -> None:
        pipeline = await _drifted_index(repo, make_pipeline)
        deletes_before = list(vector_store.deleted_paths)

        report = await IndexHealthService(pipeline, vector_store).repair()

        assert list(report.missing_files) == ['new.py']
        assert list(report.orphaned_paths) == ['gone.py']
        assert report.total_fixed == 0
        assert report.run_outcome is None
        assert vector_store.deleted_paths == deletes_before

    async def test_issue_filter(
        self,
        repo: Path,
        make_pipeline: PipelineFactory,
        vector_store: fakes.InMemoryVectorStore,
    ) -> None:
        pipeline = await _drifted_index(repo, make_pipeline)

        report = await IndexHealthService(pipeline, vector_store).repair(['orphaned_paths'])

        assert list(report.missing_files) == []
        assert list(report.orphaned_paths) == ['gone.py']

    async def test_auto_fix(
        self,
        repo: Path,
        make_pipeline: PipelineFactory,
        vector_store: fakes.InMemoryVectorStore,
    ) -> None:
        pipeline = await _drifted_index(repo, make_pipeline)
        health = IndexHealthService(pipeline, vector_store)

        report = await health.repair(auto_fix=True)

        assert report.orphans_removed == 1
        assert report.files_requeued == 1
        assert report.run_outcome == 'completed'
        assert 'gone.py' in vector_store.deleted_paths
        assert set(vector_store.points) == {'a.py', 'new.py'}
        assert 'gone.py' not in pipeline.records
        assert (await health.check()).is_healthy

    async def test_refused_while_indexing(
        self,
        repo: Path,
        make_pipeline: PipelineFactory,
        vector_store: fakes.InMemoryVectorStore,
        embedder: fakes.FakeEmbedder,
    ) -> None:
        fakes.write_files(repo, {'a.py': fakes.python_module(1)})
        pipeline = make_pipeline()
        health = IndexHealthService(pipeline, vector_store)
        embedder.gate = asyncio.Event()

        run = asyncio.create_task(pipeline.trigger_scan_and_index())
        await embedder.entered.wait()

        assert (await health.check()).indexing_in_progress
        with pytest.raises(IndexingInProgressError):
            await health.repair(auto_fix=True)

        embedder.gate.set()
        result = await run
        assert result.files_indexed == 1
