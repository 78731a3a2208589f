"""Embedding service - typed interface over embedding clients.

Splits chunk texts into API-sized batches and runs them with bounded
concurrency. A batch that still fails after the client's own retries is
re-tried one text at a time, so one poisoned text cannot sink its 99
neighbours. Texts that fail individually come back as None.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence

import more_itertools

from codebase_index.protocols import EmbeddingClient
from codebase_index.schemas.chunking import CodeChunk
from codebase_index.schemas.embeddings import MAX_BATCH_SIZE, MAX_TEXT_CHARS

__all__ = [
    'EmbeddingService',
]

logger = logging.getLogger(__name__)


class EmbeddingService:
    """Order-preserving chunk embedding with per-text fallback."""

    def __init__(self, client: EmbeddingClient, *, batch_size: int = MAX_BATCH_SIZE) -> None:
        """Initialize service.

        Args:
            client: Embedding client.
            batch_size: Max texts per API batch (capped at MAX_BATCH_SIZE).
        """
        self._client = client
        self._batch_size = min(batch_size, MAX_BATCH_SIZE)
        self._semaphore = asyncio.Semaphore(client.preferred_concurrency)

    @property
    def preferred_concurrency(self) -> int:
        return self._client.preferred_concurrency

    async def embed_chunks(self, chunks: Sequence[CodeChunk]) -> Sequence[Sequence[float] | None]:
        """Embed chunk contents. One entry per chunk, None for permanent failures."""
        if not chunks:
            return []
        texts = [_truncate(chunk.content) for chunk in chunks]
        batches = list(more_itertools.chunked(texts, self._batch_size))
        results = await asyncio.gather(*(self._embed_batch(batch) for batch in batches))
        return [vector for batch_result in results for vector in batch_result]

    async def embed_query(self, text: str) -> Sequence[float]:
        """Embed a search query. Raises on failure."""
        vectors = await self._client.embed([_truncate(text)], intent='query')
        return vectors[0]

    async def close(self) -> None:
        await self._client.close()

    async def _embed_batch(self, texts: Sequence[str]) -> Sequence[Sequence[float] | None]:
        async with self._semaphore:
            try:
                vectors = await self._client.embed(texts, intent='document')
                if len(vectors) != len(texts):
                    raise ValueError(f'Embedding count mismatch: sent {len(texts)}, got {len(vectors)}')
                return vectors
            except Exception as e:
                logger.warning(f'[EMBED] Batch of {len(texts)} failed ({type(e).__name__}: {e}), retrying per text')

        return await asyncio.gather(*(self._embed_single(text) for text in texts))

    async def _embed_single(self, text: str) -> Sequence[float] | None:
        async with self._semaphore:
            try:
                vectors = await self._client.embed([text], intent='document')
            except Exception as e:
                logger.warning(f'[EMBED] Text of {len(text)} chars failed permanently: {type(e).__name__}: {e}')
                return None
        if not vectors:
            return None
        return vectors[0]


def _truncate(text: str) -> str:
    return text[:MAX_TEXT_CHARS]
