"""Repository for code chunk vectors.

Translates between domain types (CodeChunk, SearchHit) and raw Qdrant
payloads. Points are tagged with the chunk's repo-relative filePath so a
whole file can be replaced or removed with one filtered delete.
"""

from __future__ import annotations

import hashlib
import logging
from collections.abc import Mapping, Sequence, Set
from typing import Any
from uuid import UUID

from codebase_index.clients.qdrant import QdrantClient
from codebase_index.schemas.chunking import CodeChunk
from codebase_index.schemas.vectors import SearchHit

__all__ = [
    'FILE_PATH_FIELD',
    'CodeVectorRepository',
    'chunk_point_id',
]

logger = logging.getLogger(__name__)

# Payload key for the file tag. Keyword-indexed; deletes filter on it.
FILE_PATH_FIELD = 'filePath'


class CodeVectorRepository:
    """Code chunk storage in a single Qdrant collection.

    Implements the engine's VectorStore protocol plus search.
    """

    def __init__(self, client: QdrantClient, collection_name: str, vector_dimension: int) -> None:
        self._client = client
        self._collection = collection_name
        self._dimension = vector_dimension

    @property
    def collection_name(self) -> str:
        return self._collection

    async def ensure_collection(self) -> None:
        """Create the collection and filePath index if missing."""
        await self._client.ensure_collection(self._collection, self._dimension, {FILE_PATH_FIELD})

    async def upsert(self, chunks: Sequence[CodeChunk], vectors: Sequence[Sequence[float]]) -> int:
        """Store chunks with their vectors.

        Raises:
            ValueError: If chunks and vectors differ in length.
        """
        if len(chunks) != len(vectors):
            raise ValueError(f'Chunk/vector count mismatch: {len(chunks)} chunks, {len(vectors)} vectors')
        if not chunks:
            return 0

        points = [
            (chunk_point_id(chunk.id), vector, _chunk_payload(chunk))
            for chunk, vector in zip(chunks, vectors, strict=True)
        ]
        count = await self._client.upsert(self._collection, points)
        logger.debug(f'[UPSERT] {count} points for {chunks[0].file_path}')
        return count

    async def delete_by_path(self, file_path: str) -> None:
        """Delete all points for a file. No-op if the collection doesn't exist."""
        if not await self._client.collection_exists(self._collection):
            return
        await self._client.delete_by_field(self._collection, FILE_PATH_FIELD, file_path)

    async def point_count(self, *, exact: bool = False) -> int:
        return await self._client.count(self._collection, exact=exact)

    async def list_indexed_paths(self) -> Set[str]:
        return frozenset(await self.indexed_path_counts())

    async def indexed_path_counts(self) -> Mapping[str, int]:
        return await self._client.payload_value_counts(self._collection, FILE_PATH_FIELD)

    async def search(
        self,
        vector: Sequence[float],
        *,
        limit: int = 10,
        score_threshold: float | None = None,
    ) -> Sequence[SearchHit]:
        """Search chunks nearest to a query vector."""
        hits = await self._client.search(self._collection, vector, limit=limit, score_threshold=score_threshold)
        return [_payload_to_hit(hit['score'], hit['payload']) for hit in hits]


def chunk_point_id(chunk_id: str) -> UUID:
    """Deterministic point UUID from a chunk id.

    Same chunk id = same UUID, so re-upserting overwrites rather than duplicates.
    """
    return UUID(bytes=hashlib.sha256(chunk_id.encode()).digest()[:16])


def _chunk_payload(chunk: CodeChunk) -> Mapping[str, Any]:
    return {
        'chunkId': chunk.id,
        'content': chunk.content,
        'type': chunk.type,
        'name': chunk.name,
        FILE_PATH_FIELD: chunk.file_path,
        'startLine': chunk.start_line,
        'endLine': chunk.end_line,
        'language': chunk.language,
        'imports': list(chunk.imports),
        'complexity': chunk.complexity,
    }


def _payload_to_hit(score: float, payload: Mapping[str, Any]) -> SearchHit:
    return SearchHit(
        score=score,
        file_path=payload[FILE_PATH_FIELD],
        name=payload.get('name', 'anonymous'),
        type=payload.get('type', 'function'),
        language=payload.get('language', 'unknown'),
        start_line=payload.get('startLine', 0),
        end_line=payload.get('endLine', 0),
        content=payload.get('content', ''),
    )
