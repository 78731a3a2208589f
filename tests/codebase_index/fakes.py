"""In-memory collaborators for engine tests.

Each fake satisfies the matching protocol in codebase_index.protocols and
records calls, so tests can assert on what the engine did to the remote
store without Qdrant or Gemini.

Usage in tests::

    from tests.codebase_index import fakes

    store = fakes.InMemoryVectorStore()
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping, Sequence, Set
from pathlib import Path

from codebase_index.schemas.chunking import CodeChunk
from codebase_index.schemas.embeddings import TaskIntent
from codebase_index.schemas.ledger import IndexLedger
from codebase_index.services.chunking import ChunkParser


class SimulatedCrash(BaseException):
    """Stands in for the process being killed mid-run.

    BaseException so the pipeline's per-file error handling cannot absorb it.
    """


# -- Vector store --


class InMemoryVectorStore:
    """Points grouped by file path, keyed by chunk id."""

    def __init__(self) -> None:
        self.points: dict[str, dict[str, Sequence[float]]] = {}
        self.deleted_paths: list[str] = []
        self.upserted_paths: list[str] = []
        self.fail_upsert_for: set[str] = set()
        self.fail_delete_for: set[str] = set()
        self.reported_count: int | None = None  # Overrides approximate count
        self.exact_count_calls = 0

    async def upsert(self, chunks: Sequence[CodeChunk], vectors: Sequence[Sequence[float]]) -> int:
        if len(chunks) != len(vectors):
            raise ValueError('length mismatch')
        for chunk in chunks:
            if chunk.file_path in self.fail_upsert_for:
                raise ConnectionError(f'upsert failed for {chunk.file_path}')
        for chunk, vector in zip(chunks, vectors, strict=True):
            self.points.setdefault(chunk.file_path, {})[chunk.id] = vector
        if chunks:
            self.upserted_paths.append(chunks[0].file_path)
        return len(chunks)

    async def delete_by_path(self, file_path: str) -> None:
        if file_path in self.fail_delete_for:
            raise ConnectionError(f'delete failed for {file_path}')
        self.deleted_paths.append(file_path)
        self.points.pop(file_path, None)

    async def point_count(self, *, exact: bool = False) -> int:
        if exact:
            self.exact_count_calls += 1
            return self.total_points
        if self.reported_count is not None:
            return self.reported_count
        return self.total_points

    async def list_indexed_paths(self) -> Set[str]:
        return frozenset(path for path, points in self.points.items() if points)

    async def indexed_path_counts(self) -> Mapping[str, int]:
        return {path: len(points) for path, points in self.points.items() if points}

    @property
    def total_points(self) -> int:
        return sum(len(points) for points in self.points.values())

    def chunk_count(self, file_path: str) -> int:
        return len(self.points.get(file_path, {}))


# -- Embedding --


class FakeEmbedder:
    """EmbeddingGateway returning a tiny deterministic vector per chunk.

    Chunks whose content contains a null_marker come back as None.
    Files in fail_for raise from embed_chunks.
    """

    def __init__(self, *, preferred_concurrency: int = 1) -> None:
        self._concurrency = preferred_concurrency
        self.null_markers: set[str] = set()
        self.fail_for: set[str] = set()
        self.calls: list[str] = []
        self.gate: asyncio.Event | None = None  # When set, embed waits on it
        self.entered = asyncio.Event()

    @property
    def preferred_concurrency(self) -> int:
        return self._concurrency

    async def embed_chunks(self, chunks: Sequence[CodeChunk]) -> Sequence[Sequence[float] | None]:
        file_path = chunks[0].file_path
        self.calls.append(file_path)
        self.entered.set()
        if self.gate is not None:
            await self.gate.wait()
        if file_path in self.fail_for:
            raise TimeoutError(f'embedding timed out for {file_path}')
        return [
            None if any(marker in chunk.content for marker in self.null_markers) else [float(len(chunk.content)), 1.0]
            for chunk in chunks
        ]


class FakeEmbeddingClient:
    """EmbeddingClient where any batch containing a poisoned text fails."""

    def __init__(self, *, poisoned: Set[str] = frozenset(), concurrency: int = 2) -> None:
        self.poisoned = set(poisoned)
        self._concurrency = concurrency
        self.batches: list[Sequence[str]] = []
        self.intents: list[TaskIntent] = []
        self.closed = False

    async def embed(self, texts: Sequence[str], *, intent: TaskIntent) -> Sequence[Sequence[float]]:
        self.batches.append(list(texts))
        self.intents.append(intent)
        if any(text in self.poisoned for text in texts):
            raise RuntimeError('400 INVALID_ARGUMENT')
        return [[float(len(text)), 0.5] for text in texts]

    async def close(self) -> None:
        self.closed = True

    @property
    def preferred_concurrency(self) -> int:
        return self._concurrency


# -- Ledger store --


class InMemoryLedgerStore:
    """LedgerStore keeping the last saved documents in memory."""

    def __init__(self) -> None:
        self.ledger: IndexLedger | None = None
        self.hashes: dict[str, str] = {}
        self.save_count = 0
        self.fail_saves = False

    def load_ledger(self) -> IndexLedger | None:
        return self.ledger

    def save_ledger(self, ledger: IndexLedger) -> None:
        if self.fail_saves:
            raise PermissionError('read-only filesystem')
        self.ledger = ledger
        self.save_count += 1

    def load_scan_hashes(self) -> Mapping[str, str]:
        return dict(self.hashes)

    def save_scan_hashes(self, hashes: Mapping[str, str]) -> None:
        if self.fail_saves:
            raise PermissionError('read-only filesystem')
        self.hashes = dict(hashes)


# -- Parser --


class CrashingParser:
    """Real ChunkParser that simulates a process kill on the Nth parse call."""

    def __init__(self, repo_root: Path, *, crash_on_call: int) -> None:
        self._parser = ChunkParser(repo_root)
        self._crash_on_call = crash_on_call
        self.calls = 0

    def parse(self, path: Path) -> Sequence[CodeChunk]:
        self.calls += 1
        if self.calls == self._crash_on_call:
            raise SimulatedCrash(f'killed while parsing {path.name}')
        return self._parser.parse(path)


# -- Source files --


def python_module(functions: int, *, tag: str = '') -> str:
    """Python source with one chunk per function and no module preamble."""
    return ''.join(f'def func_{i}{tag}():\n    return {i}\n\n' for i in range(functions))


def write_files(root: Path, files: Mapping[str, str | bytes]) -> None:
    for rel_path, content in files.items():
        path = root / rel_path
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            path.write_bytes(content)
        else:
            path.write_text(content)
