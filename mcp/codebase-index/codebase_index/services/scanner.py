"""Change scanner - repository walk and content fingerprinting.

Enumerates the full watched-file universe on every scan so that absence
implies deletion. Ignored directories are pruned from the walk itself,
never descended into.

Committed hashes record the content last fully indexed for each path.
scan() only reads them; the pipeline commits a hash after the file's
vectors are upserted and its ledger record is written.
"""

from __future__ import annotations

import hashlib
import logging
import os
from collections.abc import Iterable, Iterator, Mapping, Sequence, Set
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType

from codebase_index.schemas.chunking import WATCHED_EXTENSIONS

__all__ = [
    'DEFAULT_IGNORE_PATTERNS',
    'ChangeScanner',
    'IgnoreRules',
    'ScanResult',
    'file_hash',
]

logger = logging.getLogger(__name__)

DEFAULT_IGNORE_PATTERNS: Sequence[str] = (
    '.git',
    '.venv',
    'node_modules',
    '__pycache__',
    '.env',
    'build',
    'dist',
    '.next',
    'target',
    'vendor',
    'coverage',
    '.pytest_cache',
    '.fvm',
    '.dart_tool',
    'ios/Pods',
    'android/.gradle',
)


@dataclass(frozen=True)
class ScanResult:
    """Outcome of one full repository scan.

    current_hashes covers every readable watched file. changed is the subset
    whose hash differs from (or is absent in) the committed hash map.
    skipped holds watched files that exist but could not be read.
    """

    current_hashes: Mapping[str, str]
    changed: Sequence[str]
    skipped: Set[str]

    @property
    def files_scanned(self) -> int:
        return len(self.current_hashes)


class IgnoreRules:
    """Directory ignore rules and watched extensions.

    Single-segment patterns match a directory name anywhere in the tree.
    Multi-segment patterns (ios/Pods) match a consecutive run of directory names.
    """

    def __init__(
        self,
        patterns: Iterable[str] = DEFAULT_IGNORE_PATTERNS,
        extensions: Set[str] = WATCHED_EXTENSIONS,
    ) -> None:
        cleaned = [p.strip('/') for p in patterns if p.strip('/')]
        self._names = frozenset(p for p in cleaned if '/' not in p)
        self._segment_runs = tuple(p for p in cleaned if '/' in p)
        self._extensions = frozenset(ext.lower() for ext in extensions)

    def is_ignored_dir(self, rel_dir: str) -> bool:
        """Check a repo-relative POSIX directory path."""
        parts = rel_dir.split('/')
        if any(part in self._names for part in parts):
            return True
        padded = f'/{rel_dir}/'
        return any(f'/{run}/' in padded for run in self._segment_runs)

    def is_watched_file(self, rel_path: str) -> bool:
        """Check a repo-relative POSIX file path against extensions and ignored dirs."""
        if os.path.splitext(rel_path)[1].lower() not in self._extensions:
            return False
        parent = rel_path.rpartition('/')[0]
        return not parent or not self.is_ignored_dir(parent)


class ChangeScanner:
    """Walks a repository and detects content changes against committed hashes."""

    def __init__(
        self,
        repo_root: Path,
        rules: IgnoreRules | None = None,
        committed: Mapping[str, str] | None = None,
    ) -> None:
        self._root = repo_root.resolve()
        self._rules = rules or IgnoreRules()
        self._committed: dict[str, str] = dict(committed or {})

    @property
    def repo_root(self) -> Path:
        return self._root

    @property
    def rules(self) -> IgnoreRules:
        return self._rules

    @property
    def committed_hashes(self) -> Mapping[str, str]:
        """Read-only view of committed hashes."""
        return MappingProxyType(self._committed)

    def scan(self) -> ScanResult:
        """Walk the repository, hash every watched file, report changes.

        Blocking I/O - call via asyncio.to_thread from async code.
        Never mutates committed hashes.
        """
        current: dict[str, str] = {}
        changed: list[str] = []
        skipped: set[str] = set()

        for rel_path in self.iter_watched_files():
            try:
                digest = file_hash(self._root / rel_path)
            except OSError as e:
                logger.warning(f'[SCAN] Skipping unreadable file {rel_path}: {e}')
                skipped.add(rel_path)
                continue
            current[rel_path] = digest
            if self._committed.get(rel_path) != digest:
                changed.append(rel_path)

        logger.info(f'[SCAN] {len(current):,} files, {len(changed):,} changed, {len(skipped)} unreadable')
        return ScanResult(current_hashes=current, changed=changed, skipped=frozenset(skipped))

    def iter_watched_files(self) -> Iterator[str]:
        """Yield repo-relative POSIX paths of watched files, pruning ignored dirs."""
        for root, dirnames, filenames in os.walk(self._root, onerror=_log_walk_error):
            rel_root = Path(root).relative_to(self._root).as_posix()
            prefix = '' if rel_root == '.' else f'{rel_root}/'

            # Prune in place so os.walk never descends into ignored subtrees
            dirnames[:] = sorted(d for d in dirnames if not self._rules.is_ignored_dir(f'{prefix}{d}'))

            for filename in sorted(filenames):
                rel_path = f'{prefix}{filename}'
                if self._rules.is_watched_file(rel_path):
                    yield rel_path

    def relative_path(self, path: Path) -> str | None:
        """Repo-relative POSIX path for an absolute path, or None if outside the repo."""
        try:
            return path.resolve().relative_to(self._root).as_posix()
        except ValueError:
            return None

    def commit_hash(self, rel_path: str, digest: str) -> None:
        """Record the hash of content that is now fully indexed."""
        self._committed[rel_path] = digest

    def forget(self, rel_path: str) -> None:
        self._committed.pop(rel_path, None)

    def clear_committed(self) -> None:
        """Drop every committed hash, forcing all files to be seen as changed."""
        self._committed.clear()


def file_hash(path: Path) -> str:
    """Compute SHA256 hash of file contents."""
    hasher = hashlib.sha256()
    with open(path, 'rb') as f:
        for chunk in iter(lambda: f.read(8192), b''):
            hasher.update(chunk)
    return hasher.hexdigest()


def _log_walk_error(error: OSError) -> None:
    logger.warning(f'[SCAN] Skipping unreadable directory {error.filename}: {error.strerror}')
