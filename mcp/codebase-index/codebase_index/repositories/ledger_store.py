"""JSON-file ledger persistence with file locking.

Two documents live in the memory directory:
- incremental_state.json: the IndexLedger (camelCase layout)
- index-metadata.json: the scanner's committed {path: content_hash} map

Every write goes to a .tmp sibling under a file lock, then renames over
the target, so readers never observe a partially written document.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import filelock
import pydantic
from pydantic import TypeAdapter

from codebase_index.paths import ledger_path, scan_hashes_path
from codebase_index.schemas.ledger import IndexLedger

__all__ = [
    'JsonLedgerStore',
]

logger = logging.getLogger(__name__)

_hashes_adapter: TypeAdapter[dict[str, str]] = TypeAdapter(dict[str, str])


class JsonLedgerStore:
    """Ledger and scan-hash documents stored as JSON files.

    Undecodable or unparseable documents are moved aside to *.corrupt and
    treated as absent. Unreadable ones (I/O or permission errors) are logged and
    treated as absent in place. Either way the engine starts from empty state.
    """

    def __init__(self, memory_dir: Path) -> None:
        self._memory_dir = memory_dir
        self._ledger_path = ledger_path(memory_dir)
        self._hashes_path = scan_hashes_path(memory_dir)
        self._lock = filelock.FileLock(memory_dir / '.state.lock')

    @property
    def ledger_path(self) -> Path:
        return self._ledger_path

    @property
    def hashes_path(self) -> Path:
        return self._hashes_path

    def load_ledger(self) -> IndexLedger | None:
        """Load ledger from file. Returns None if missing or corrupt."""
        data = self._read_json(self._ledger_path)
        if data is None:
            return None
        try:
            return IndexLedger.model_validate(data)
        except pydantic.ValidationError as e:
            self._quarantine(self._ledger_path, e)
            return None

    def save_ledger(self, ledger: IndexLedger) -> None:
        """Save ledger atomically with lock."""
        self._write_json(self._ledger_path, ledger.model_dump(mode='json', by_alias=True))

    def load_scan_hashes(self) -> Mapping[str, str]:
        """Load committed scan hashes. Returns empty mapping if missing or corrupt."""
        data = self._read_json(self._hashes_path)
        if data is None:
            return {}
        try:
            return _hashes_adapter.validate_python(data)
        except pydantic.ValidationError as e:
            self._quarantine(self._hashes_path, e)
            return {}

    def save_scan_hashes(self, hashes: Mapping[str, str]) -> None:
        """Save scan hashes atomically with lock."""
        self._write_json(self._hashes_path, dict(sorted(hashes.items())))

    def _read_json(self, path: Path) -> Any:
        if not path.exists():
            return None
        try:
            with self._lock:
                text = path.read_text(encoding='utf-8')
        except UnicodeDecodeError as e:
            self._quarantine(path, e)
            return None
        except OSError as e:
            # Kept in place for the next read
            logger.error(f'[STATE] Cannot read state file {path}: {e}. Treating as absent')
            return None
        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            self._quarantine(path, e)
            return None

    def _write_json(self, path: Path, data: Any) -> None:
        # Lock file lives in the memory directory, so it must exist first
        path.parent.mkdir(parents=True, exist_ok=True)
        with self._lock:
            temp_path = path.with_suffix('.tmp')
            temp_path.write_text(json.dumps(data, indent=2) + '\n')
            temp_path.replace(path)

    def _quarantine(self, path: Path, error: Exception) -> None:
        """Move an unreadable document aside so the next save starts clean."""
        corrupt_path = path.with_suffix('.corrupt')
        logger.error(f'[STATE] Unreadable state file {path}: {error}. Moved to {corrupt_path}')
        with self._lock:
            path.replace(corrupt_path)
