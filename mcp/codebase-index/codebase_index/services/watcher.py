"""Repository watcher - filesystem events into the debounced trigger.

watchdog delivers events on its observer thread. Each relevant path is
handed to the event loop with call_soon_threadsafe; the trigger itself is
only ever touched from the loop thread.

Deletions are not applied here. The next run's full scan notices the
missing file, so the pipeline stays the only writer.
"""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path

from watchdog.events import FileSystemEvent, FileSystemEventHandler, FileSystemMovedEvent
from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver

from codebase_index.services.scanner import IgnoreRules
from codebase_index.services.trigger import DebouncedTrigger

__all__ = [
    'RepositoryWatcher',
]

logger = logging.getLogger(__name__)

_RELEVANT_EVENTS = frozenset({'created', 'modified', 'deleted', 'moved'})


class RepositoryWatcher(FileSystemEventHandler):
    """Forwards watched-file events under repo_root to a DebouncedTrigger."""

    def __init__(
        self,
        repo_root: Path,
        trigger: DebouncedTrigger,
        loop: asyncio.AbstractEventLoop,
        rules: IgnoreRules | None = None,
    ) -> None:
        super().__init__()
        self._root = repo_root.resolve()
        self._trigger = trigger
        self._loop = loop
        self._rules = rules or IgnoreRules()
        self._observer: BaseObserver | None = None

    @property
    def is_running(self) -> bool:
        return self._observer is not None

    def start(self) -> None:
        if self._observer is not None:
            return
        observer = Observer()
        observer.schedule(self, str(self._root), recursive=True)
        observer.start()
        self._observer = observer
        logger.info(f'[WATCH] Watching {self._root}')

    def stop(self) -> None:
        if self._observer is None:
            return
        self._observer.stop()
        self._observer.join(timeout=5)
        self._observer = None
        logger.info('[WATCH] Stopped')

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory or event.event_type not in _RELEVANT_EVENTS:
            return

        paths = [event.src_path]
        if isinstance(event, FileSystemMovedEvent):
            paths.append(event.dest_path)

        for raw in paths:
            rel_path = self._relevant_path(os.fsdecode(raw))
            if rel_path is None:
                continue
            logger.debug(f'[WATCH] {event.event_type}: {rel_path}')
            self._loop.call_soon_threadsafe(self._trigger.notify, rel_path)

    def _relevant_path(self, raw: str) -> str | None:
        try:
            rel_path = Path(raw).relative_to(self._root).as_posix()
        except ValueError:
            return None
        return rel_path if self._rules.is_watched_file(rel_path) else None
