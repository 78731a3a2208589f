"""Debounced trigger - collapses change bursts into one indexing run."""

from __future__ import annotations

import asyncio
import logging

from codebase_index.services.pipeline import IndexingPipeline

__all__ = [
    'DEBOUNCE_SECONDS',
    'DebouncedTrigger',
]

logger = logging.getLogger(__name__)

DEBOUNCE_SECONDS = 0.5


class DebouncedTrigger:
    """Runs the pipeline once per quiet period after change notifications.

    Every notify() re-arms the timer, so a burst of edits produces a single
    run DEBOUNCE_SECONDS after the last one. Must be used from the event loop
    thread; watchdog threads go through loop.call_soon_threadsafe.
    """

    def __init__(self, pipeline: IndexingPipeline, delay: float = DEBOUNCE_SECONDS) -> None:
        self._pipeline = pipeline
        self._delay = delay
        self._paths: dict[str, None] = {}
        self._handle: asyncio.TimerHandle | None = None
        self._task: asyncio.Task[None] | None = None
        self._closed = False
        self.runs_started = 0

    @property
    def has_pending(self) -> bool:
        return self._handle is not None or bool(self._paths)

    def notify(self, path: str) -> None:
        """Record a changed repo-relative path and re-arm the timer."""
        if self._closed:
            return
        self._paths[path] = None
        self._arm()

    def flush(self) -> None:
        """Fire immediately, skipping the remaining debounce window."""
        if self._closed:
            return
        self._cancel_timer()
        self._fire()

    async def wait_idle(self) -> None:
        """Wait for the in-flight run, if any."""
        while self._task is not None and not self._task.done():
            await asyncio.shield(self._task)

    async def close(self) -> None:
        """Cancel the pending timer and wait for an in-flight run."""
        self._closed = True
        self._cancel_timer()
        await self.wait_idle()

    def _arm(self) -> None:
        self._cancel_timer()
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self._delay, self._fire)

    def _cancel_timer(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self) -> None:
        self._handle = None
        if self._task is not None and not self._task.done():
            # Previous run still going; the pipeline defers our paths, retry after
            self._arm()
            return
        paths = list(self._paths)
        self._paths.clear()
        self.runs_started += 1
        self._task = asyncio.create_task(self._run(paths))

    async def _run(self, paths: list[str]) -> None:
        try:
            result = await self._pipeline.trigger_scan_and_index(paths)
        except Exception as e:
            logger.exception(f'[TRIGGER] Indexing run failed: {e}')
            return

        if result.outcome == 'busy' and not self._closed:
            logger.debug(f'[TRIGGER] Pipeline busy, re-arming for {len(paths)} deferred paths')
            self._arm()
        else:
            logger.info(f'[TRIGGER] Run {result.outcome} for {len(paths)} notified paths')
