"""Collaborator interfaces consumed by the indexing engine.

The pipeline, reconciler and health service depend only on these protocols.
Concrete implementations: ChunkParser (services.chunking), EmbeddingService
(services.embedding), CodeVectorRepository (repositories.code_vector),
JsonLedgerStore (repositories.ledger_store). EmbeddingClient is the seam
between EmbeddingService and the Gemini API client.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence, Set
from pathlib import Path
from typing import Protocol

from codebase_index.schemas.chunking import CodeChunk
from codebase_index.schemas.embeddings import TaskIntent
from codebase_index.schemas.ledger import IndexLedger

__all__ = [
    'ChunkParser',
    'EmbeddingClient',
    'EmbeddingGateway',
    'LedgerStore',
    'VectorStore',
]


class ChunkParser(Protocol):
    """Turns one source file into code chunks. Pure with respect to file content."""

    def parse(self, path: Path) -> Sequence[CodeChunk]:
        """Parse an absolute file path into chunks. Zero chunks is valid."""
        ...


class EmbeddingClient(Protocol):
    """Raw text embedding API."""

    async def embed(self, texts: Sequence[str], *, intent: TaskIntent) -> Sequence[Sequence[float]]:
        """Embed texts into vectors, one per input text, in order.

        intent is 'document' for indexing and 'query' for search; the client
        maps it to its provider's task type.
        """
        ...

    async def close(self) -> None: ...

    @property
    def preferred_concurrency(self) -> int:
        """Concurrent embed calls the client is tuned for (1 = sequential)."""
        ...


class EmbeddingGateway(Protocol):
    """Converts chunk text to vectors.

    Owns batching, rate limiting and retries. The engine only sees one
    vector-or-None per chunk, in input order.
    """

    @property
    def preferred_concurrency(self) -> int:
        """Concurrent embed calls the gateway runs internally (1 = sequential)."""
        ...

    async def embed_chunks(self, chunks: Sequence[CodeChunk]) -> Sequence[Sequence[float] | None]:
        """Embed chunks. None marks a permanently failed chunk."""
        ...


class VectorStore(Protocol):
    """Remote vector persistence, tagged by repo-relative file path.

    All calls are idempotent from the engine's perspective.
    """

    async def upsert(self, chunks: Sequence[CodeChunk], vectors: Sequence[Sequence[float]]) -> int:
        """Store chunk vectors. Returns number of points written."""
        ...

    async def delete_by_path(self, file_path: str) -> None:
        """Delete every point whose file path tag equals file_path."""
        ...

    async def point_count(self, *, exact: bool = False) -> int:
        """Total points. exact=True bypasses cached collection metadata."""
        ...

    async def list_indexed_paths(self) -> Set[str]:
        """Distinct file paths that currently hold vectors."""
        ...

    async def indexed_path_counts(self) -> Mapping[str, int]:
        """Points held per file path. Paths with no points are absent."""
        ...


class LedgerStore(Protocol):
    """Durable storage for the ledger and the scanner's hash map.

    Writes are atomic: a crash leaves either the old or the new document.
    """

    def load_ledger(self) -> IndexLedger | None:
        """Load the ledger, or None if absent."""
        ...

    def save_ledger(self, ledger: IndexLedger) -> None: ...

    def load_scan_hashes(self) -> Mapping[str, str]:
        """Load committed scanner hashes (path -> content hash). Empty if absent."""
        ...

    def save_scan_hashes(self, hashes: Mapping[str, str]) -> None: ...
