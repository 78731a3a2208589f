"""Low-level Qdrant vector database client.

Thin wrapper around qdrant-client. Handles API calls only - no business logic.
Type translation happens in the repository layer.

Uses AsyncQdrantClient for non-blocking I/O in async contexts. Writes and
counts retry transient faults with tenacity, and writes pass through a
circuit breaker that opens after repeated transient failures.
"""

from __future__ import annotations

import logging
import os
from collections import Counter
from collections.abc import Mapping, Sequence, Set
from typing import Any, TypedDict
from uuid import UUID

import circuitbreaker
import httpx
import tenacity
from qdrant_client import AsyncQdrantClient
from qdrant_client.http.exceptions import ResponseHandlingException, UnexpectedResponse
from qdrant_client.http.models import (
    Distance,
    FieldCondition,
    Filter,
    FilterSelector,
    MatchValue,
    PayloadSchemaType,
    PointStruct,
    VectorParams,
)

__all__ = [
    'DENSE_VECTOR_NAME',
    'QdrantClient',
    'ScoredPayloadDict',
    'is_transient_qdrant_error',
]

logger = logging.getLogger(__name__)

DENSE_VECTOR_NAME = 'dense'

# Gateway and timeout statuses only. A Qdrant 500 is a malformed request.
TRANSIENT_STATUS_CODES = frozenset({408, 502, 503, 504})

# Transport failures qdrant-client wraps in ResponseHandlingException
TRANSIENT_TRANSPORT_ERRORS = (httpx.TimeoutException, httpx.NetworkError, httpx.RemoteProtocolError)


class ScoredPayloadDict(TypedDict):
    """Raw search hit from Qdrant."""

    id: str
    score: float
    payload: Mapping[str, Any]


def is_transient_qdrant_error(exc: BaseException) -> bool:
    """True for dropped connections and gateway statuses."""
    if isinstance(exc, ResponseHandlingException):
        return isinstance(exc.source, TRANSIENT_TRANSPORT_ERRORS)
    if isinstance(exc, UnexpectedResponse):
        return exc.status_code in TRANSIENT_STATUS_CODES
    return False


def _log_retry(retry_state: tenacity.RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    if exc is None:
        return
    operation = getattr(retry_state.fn, '__name__', 'call')
    cause = exc.source if isinstance(exc, ResponseHandlingException) and exc.source else exc
    logger.warning(
        f'[RETRY] Qdrant {operation} attempt {retry_state.attempt_number} failed: {type(cause).__name__}: {cause}'
    )


_retry_transient = tenacity.retry(
    retry=tenacity.retry_if_exception(is_transient_qdrant_error),
    stop=tenacity.stop_after_attempt(3),
    wait=tenacity.wait_exponential(multiplier=0.5, max=5),
    before_sleep=_log_retry,
    reraise=True,
)

# Opens after 5 consecutive transient failures; bad requests never count.
_write_breaker = circuitbreaker.CircuitBreaker(
    failure_threshold=5,
    recovery_timeout=30,
    expected_exception=lambda _type, value: is_transient_qdrant_error(value),
    name='qdrant-writes',
)


class QdrantClient:
    """Low-level async Qdrant client for vector operations.

    Collection name is passed explicitly to each method - no default collection.
    """

    DEFAULT_URL = 'http://localhost:6333'

    # Connection pool and timeout tuning
    # - Must pass explicit limits to override qdrant-client's localhost defaults
    #   which disable keep-alive (max_keepalive_connections=0)
    DEFAULT_TIMEOUT = 10
    DEFAULT_POOL_SIZE = (os.cpu_count() or 8) * 2

    # Points per scroll page when enumerating indexed paths
    SCROLL_PAGE_SIZE = 1000

    def __init__(
        self,
        url: str = DEFAULT_URL,
        *,
        api_key: str | None = None,
        timeout: int = DEFAULT_TIMEOUT,
        pool_size: int = DEFAULT_POOL_SIZE,
    ) -> None:
        """Initialize client.

        Args:
            url: Qdrant server URL.
            api_key: Qdrant Cloud API key. None for local servers.
            timeout: HTTP timeout in seconds (default 10).
            pool_size: HTTP connection pool size (default 2x CPU count).
        """
        self._url = url

        # REST pool serves management calls; upsert/query/delete route through gRPC.
        limits = httpx.Limits(max_connections=pool_size, max_keepalive_connections=pool_size)
        self._client = AsyncQdrantClient(
            url=url,
            api_key=api_key,
            prefer_grpc=True,
            timeout=timeout,
            limits=limits,
        )

    async def ensure_collection(self, collection_name: str, vector_dimension: int, keyword_fields: Set[str]) -> None:
        """Create collection with a dense cosine vector if it doesn't exist.

        Also ensures keyword payload indexes exist, which Qdrant requires
        for filter-based deletes on indexed collections.

        Args:
            collection_name: Collection name.
            vector_dimension: Size of dense embedding vectors (e.g., 768).
            keyword_fields: Payload fields to index as keywords.
        """
        if not await self.collection_exists(collection_name):
            await self._client.create_collection(
                collection_name=collection_name,
                vectors_config={
                    DENSE_VECTOR_NAME: VectorParams(size=vector_dimension, distance=Distance.COSINE),
                },
            )
            logger.info(f'Created collection {collection_name} ({vector_dimension}d)')

        for field in sorted(keyword_fields):
            await self._ensure_keyword_index(collection_name, field)

    async def collection_exists(self, collection_name: str) -> bool:
        """Check if collection exists."""
        return await self._client.collection_exists(collection_name)

    @_write_breaker
    @_retry_transient
    async def upsert(
        self,
        collection_name: str,
        points: Sequence[tuple[UUID, Sequence[float], Mapping[str, Any]]],
    ) -> int:
        """Insert or update points.

        Args:
            collection_name: Collection name.
            points: Sequence of (id, dense_vector, payload) tuples.

        Returns:
            Number of points upserted.
        """
        point_structs = [
            PointStruct(
                id=str(point_id),
                vector={DENSE_VECTOR_NAME: list(dense_vector)},
                payload=dict(payload),
            )
            for point_id, dense_vector, payload in points
        ]
        await self._client.upsert(collection_name=collection_name, points=point_structs, wait=True)
        return len(point_structs)

    @_write_breaker
    @_retry_transient
    async def delete_by_field(self, collection_name: str, field: str, value: str) -> None:
        """Delete all points whose keyword payload field equals value.

        Idempotent - deleting a value with no points is a no-op.
        """
        await self._client.delete(
            collection_name=collection_name,
            points_selector=FilterSelector(
                filter=Filter(must=[FieldCondition(key=field, match=MatchValue(value=value))]),
            ),
            wait=True,
        )

    @_retry_transient
    async def count(self, collection_name: str, *, exact: bool = False) -> int:
        """Get point count in collection. Zero if the collection doesn't exist.

        Args:
            collection_name: Collection name.
            exact: True runs a full count query. False reads collection info,
                which may lag behind recent writes.
        """
        if not await self.collection_exists(collection_name):
            return 0
        if exact:
            result = await self._client.count(collection_name=collection_name, exact=True)
            return result.count
        info = await self._client.get_collection(collection_name)
        return info.points_count or 0

    @_retry_transient
    async def payload_value_counts(self, collection_name: str, field: str) -> Mapping[str, int]:
        """Count points per distinct value of a payload field by scrolling all points.

        Returns an empty mapping if the collection doesn't exist.
        """
        if not await self.collection_exists(collection_name):
            return {}

        counts: Counter[str] = Counter()
        offset: Any = None
        while True:
            records, offset = await self._client.scroll(
                collection_name=collection_name,
                limit=self.SCROLL_PAGE_SIZE,
                offset=offset,
                with_payload=[field],
                with_vectors=False,
            )
            for record in records:
                value = (record.payload or {}).get(field)
                if isinstance(value, str):
                    counts[value] += 1
            if offset is None:
                break
        return dict(counts)

    async def search(
        self,
        collection_name: str,
        dense_vector: Sequence[float],
        *,
        limit: int = 10,
        score_threshold: float | None = None,
    ) -> Sequence[ScoredPayloadDict]:
        """Nearest-neighbour search on the dense vector.

        Args:
            collection_name: Collection name.
            dense_vector: Query embedding.
            limit: Maximum results.
            score_threshold: Minimum cosine similarity.

        Returns:
            Hits with id, score, and payload.
        """
        results = await self._client.query_points(
            collection_name=collection_name,
            query=list(dense_vector),
            using=DENSE_VECTOR_NAME,
            limit=limit,
            score_threshold=score_threshold,
            with_payload=True,
        )
        return [
            ScoredPayloadDict(id=str(hit.id), score=hit.score, payload=hit.payload)
            for hit in results.points
            if hit.payload is not None
        ]

    async def close(self) -> None:
        """Close underlying HTTP/gRPC connections."""
        await self._client.close()

    async def _ensure_keyword_index(self, collection_name: str, field: str) -> None:
        """Create keyword payload index on field if not exists.

        Index creation happens asynchronously in the background.
        """
        info = await self._client.get_collection(collection_name)
        payload_schema = getattr(info, 'payload_schema', {}) or {}
        if field in payload_schema:
            logger.debug(f'{field} index already exists')
            return

        await self._client.create_payload_index(
            collection_name=collection_name,
            field_name=field,
            field_schema=PayloadSchemaType.KEYWORD,
        )
        logger.debug(f'Created {field} keyword index')
