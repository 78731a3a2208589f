"""Tests for DebouncedTrigger -- coalescing change bursts into runs."""

from __future__ import annotations

import asyncio
from collections.abc import Iterable, Sequence

import pytest

from codebase_index.schemas.indexing import IndexingRunResult, RunOutcome
from codebase_index.services.trigger import DebouncedTrigger

DELAY = 0.05


class RecordingPipeline:
    """Stands in for IndexingPipeline.trigger_scan_and_index."""

    def __init__(self, outcomes: Sequence[RunOutcome | Exception] = ()) -> None:
        self.calls: list[list[str]] = []
        self._outcomes = list(outcomes)

    async def trigger_scan_and_index(self, paths: Iterable[str] = ()) -> IndexingRunResult:
        self.calls.append(list(paths))
        await asyncio.sleep(0)
        outcome = self._outcomes.pop(0) if self._outcomes else 'completed'
        if isinstance(outcome, Exception):
            raise outcome
        return IndexingRunResult(outcome=outcome)


async def _settle(trigger: DebouncedTrigger, cycles: int = 4) -> None:
    for _ in range(cycles):
        await asyncio.sleep(DELAY * 2)
        await trigger.wait_idle()


class TestDebounce:
    """Burst coalescing."""

    async def test_burst_produces_single_run(self) -> None:
        pipeline = RecordingPipeline()
        trigger = DebouncedTrigger(pipeline, delay=DELAY)  # type: ignore[arg-type]

        for name in ['a.py', 'b.py', 'a.py', 'c.py']:
            trigger.notify(name)
            await asyncio.sleep(DELAY / 5)
        await _settle(trigger)

        assert pipeline.calls == [['a.py', 'b.py', 'c.py']]
        assert trigger.runs_started == 1

    async def test_separate_bursts_produce_separate_runs(self) -> None:
        pipeline = RecordingPipeline()
        trigger = DebouncedTrigger(pipeline, delay=DELAY)  # type: ignore[arg-type]

        trigger.notify('a.py')
        await _settle(trigger)
        trigger.notify('b.py')
        await _settle(trigger)

        assert pipeline.calls == [['a.py'], ['b.py']]

    async def test_flush_fires_immediately(self) -> None:
        pipeline = RecordingPipeline()
        trigger = DebouncedTrigger(pipeline, delay=60)  # type: ignore[arg-type]

        trigger.notify('a.py')
        trigger.flush()
        await trigger.wait_idle()

        assert pipeline.calls == [['a.py']]
        assert not trigger.has_pending


class TestBusyAndFailures:
    """Re-arming on busy, surviving failures, shutdown."""

    async def test_busy_rearms(self) -> None:
        pipeline = RecordingPipeline(['busy', 'completed'])
        trigger = DebouncedTrigger(pipeline, delay=DELAY)  # type: ignore[arg-type]

        trigger.notify('a.py')
        await _settle(trigger)

        # Second run drains the paths the pipeline deferred internally
        assert pipeline.calls == [['a.py'], []]

    async def test_run_failure_does_not_kill_trigger(self, caplog: pytest.LogCaptureFixture) -> None:
        pipeline = RecordingPipeline([RuntimeError('qdrant down'), 'completed'])
        trigger = DebouncedTrigger(pipeline, delay=DELAY)  # type: ignore[arg-type]

        trigger.notify('a.py')
        await _settle(trigger)
        trigger.notify('b.py')
        await _settle(trigger)

        assert pipeline.calls == [['a.py'], ['b.py']]
        assert 'Indexing run failed' in caplog.text

    async def test_close_cancels_pending_timer(self) -> None:
        pipeline = RecordingPipeline()
        trigger = DebouncedTrigger(pipeline, delay=DELAY)  # type: ignore[arg-type]

        trigger.notify('a.py')
        await trigger.close()
        await asyncio.sleep(DELAY * 2)
        trigger.notify('b.py')

        assert pipeline.calls == []

    async def test_close_waits_for_in_flight_run(self) -> None:
        pipeline = RecordingPipeline()
        trigger = DebouncedTrigger(pipeline, delay=DELAY)  # type: ignore[arg-type]

        trigger.notify('a.py')
        trigger.flush()
        await trigger.close()

        assert pipeline.calls == [['a.py']]
