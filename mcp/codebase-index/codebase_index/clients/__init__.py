"""API clients for external services."""

from __future__ import annotations

from codebase_index.clients.gemini import GeminiClient
from codebase_index.protocols import EmbeddingClient
from codebase_index.clients.qdrant import QdrantClient
from codebase_index.schemas.config import IndexerConfig

__all__ = [
    'EmbeddingClient',
    'GeminiClient',
    'QdrantClient',
    'create_embedding_client',
    'create_qdrant_client',
]


def create_embedding_client(config: IndexerConfig) -> EmbeddingClient:
    """Create the Gemini embedding client from configuration."""
    return GeminiClient(
        model=config.embedding_model,
        output_dimensionality=config.embedding_dimensions,
        api_key=config.gemini_api_key,
        max_concurrent=config.embedding_concurrency,
    )


def create_qdrant_client(config: IndexerConfig) -> QdrantClient:
    """Create the Qdrant client from configuration."""
    return QdrantClient(url=config.qdrant_url, api_key=config.qdrant_api_key)
