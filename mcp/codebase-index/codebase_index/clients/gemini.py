"""Low-level Gemini API client.

Thin wrapper around google-genai. Handles API calls only - no business logic.
Type translation happens in the service layer.

Uses native async API (client.aio) for true concurrent requests.
Rate limiting via pyrate_limiter to respect API quotas. Transient failures
retry with tenacity behind a circuit breaker.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping, Sequence
from typing import Literal

import circuitbreaker
import httpx
import pyrate_limiter
import tenacity
from google import genai
from google.genai.errors import APIError
from google.genai.types import EmbedContentConfig, HttpOptions

from codebase_index.paths import GEMINI_API_KEY_PATH
from codebase_index.schemas.embeddings import TaskIntent

__all__ = [
    'GeminiClient',
    'is_transient_gemini_error',
]

logger = logging.getLogger(__name__)

type GeminiTaskType = Literal['RETRIEVAL_DOCUMENT', 'RETRIEVAL_QUERY']

# 429 is RESOURCE_EXHAUSTED; the rest are server-side faults
TRANSIENT_STATUS_CODES = frozenset({429, 500, 502, 503, 504})

# google-genai lets httpx transport errors escape unwrapped
TRANSIENT_TRANSPORT_ERRORS = (httpx.TimeoutException, httpx.NetworkError, httpx.RemoteProtocolError)


def is_transient_gemini_error(exc: BaseException) -> bool:
    """True for transport failures and for rate-limit or server-side statuses."""
    if isinstance(exc, TRANSIENT_TRANSPORT_ERRORS):
        return True
    return isinstance(exc, APIError) and exc.code in TRANSIENT_STATUS_CODES


def _log_retry(retry_state: tenacity.RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    if exc is not None:
        logger.warning(f'[RETRY] Gemini embed attempt {retry_state.attempt_number} failed: {type(exc).__name__}: {exc}')


# Opens after 10 consecutive transient failures; client errors never count.
_embed_breaker = circuitbreaker.CircuitBreaker(
    failure_threshold=10,
    recovery_timeout=60,
    expected_exception=lambda _type, value: is_transient_gemini_error(value),
    name='gemini-embed',
)


class GeminiClient:
    """Low-level Gemini API client with rate limiting.

    Rate limited via pyrate_limiter, concurrency controlled via semaphore.
    Advertises preferred_concurrency so callers size their fan-out without
    knowing which model is behind the client.
    """

    # Rate limiting - Tier 1 limits
    DEFAULT_REQUESTS_PER_MINUTE = 3000
    DEFAULT_TOKENS_PER_MINUTE = 1_000_000

    # Concurrent embed_content calls
    DEFAULT_MAX_CONCURRENT = 4

    # HTTP client configuration
    DEFAULT_TIMEOUT_MS = 30_000  # Batches of 100 code chunks run longer than short texts
    DEFAULT_KEEPALIVE_EXPIRY = 30  # seconds before idle close

    INTENT_TO_GEMINI_TASK: Mapping[TaskIntent, GeminiTaskType] = {
        'document': 'RETRIEVAL_DOCUMENT',
        'query': 'RETRIEVAL_QUERY',
    }

    def __init__(
        self,
        model: str,
        output_dimensionality: int,
        *,
        api_key: str | None = None,
        requests_per_minute: int = DEFAULT_REQUESTS_PER_MINUTE,
        tokens_per_minute: int = DEFAULT_TOKENS_PER_MINUTE,
        max_concurrent: int = DEFAULT_MAX_CONCURRENT,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
    ) -> None:
        """Initialize client.

        Args:
            model: Embedding model name (e.g., 'gemini-embedding-001').
            output_dimensionality: Output vector dimensions (e.g., 768).
            api_key: Gemini API key. If None, loads from standard location.
            requests_per_minute: Texts per minute budget (default 3000 for Tier 1).
            tokens_per_minute: Estimated tokens per minute budget.
            max_concurrent: Max concurrent API requests (semaphore limit).
            timeout_ms: Request timeout in milliseconds.
        """
        self._model = model
        self._output_dimensionality = output_dimensionality
        self._api_key = api_key or _load_api_key()
        self._max_concurrent = max_concurrent

        # RPM limiter counts texts; one minute window
        self._rpm_limiter = pyrate_limiter.Limiter(
            pyrate_limiter.Rate(requests_per_minute, pyrate_limiter.Duration.MINUTE),
        )
        # TPM limiter: 12-second windows smooth bursts (1/5 of the minute budget each)
        self._tpm_limiter = pyrate_limiter.Limiter(
            pyrate_limiter.Rate(tokens_per_minute // 5, 12 * pyrate_limiter.Duration.SECOND),
        )

        limits = httpx.Limits(
            max_connections=max_concurrent * 2,
            max_keepalive_connections=max_concurrent * 2,
            keepalive_expiry=self.DEFAULT_KEEPALIVE_EXPIRY,
        )
        http_options = HttpOptions(
            timeout=timeout_ms,
            async_client_args={'limits': limits},
        )
        self._client = genai.Client(api_key=self._api_key, http_options=http_options)
        self._semaphore = asyncio.Semaphore(max_concurrent)

    @property
    def preferred_concurrency(self) -> int:
        """Number of concurrent embed calls this client is tuned for."""
        return self._max_concurrent

    @_embed_breaker
    @tenacity.retry(
        retry=tenacity.retry_if_exception(is_transient_gemini_error),
        stop=tenacity.stop_after_attempt(3),
        wait=tenacity.wait_exponential(multiplier=0.5, max=5),
        before_sleep=_log_retry,
        reraise=True,
    )
    async def embed(self, texts: Sequence[str], *, intent: TaskIntent) -> Sequence[Sequence[float]]:
        """Embed texts using Gemini API.

        Args:
            texts: Texts to embed (max 100 per API call).
            intent: 'document' for indexing, 'query' for search.

        Returns:
            List of embedding vectors, one per text.

        Raises:
            APIError: On non-retryable API errors or exhausted retries.
        """
        # ~0.513 tokens/char matches Google's dashboard
        estimated_tokens = max(int(sum(len(t) for t in texts) / 1.95), 1)

        await self._rpm_limiter.try_acquire_async('rpm', weight=len(texts))
        await self._tpm_limiter.try_acquire_async('tpm', weight=estimated_tokens)

        async with self._semaphore:
            result = await self._client.aio.models.embed_content(
                model=self._model,
                contents=list(texts),
                config=EmbedContentConfig(
                    task_type=self.INTENT_TO_GEMINI_TASK[intent],
                    output_dimensionality=self._output_dimensionality,
                ),
            )
        embeddings = result.embeddings or []
        return [list(e.values or []) for e in embeddings]

    async def close(self) -> None:
        """No-op: google-genai Client manages its own HTTP lifecycle."""


def _load_api_key() -> str:
    """Load API key from standard location."""
    if not GEMINI_API_KEY_PATH.exists():
        raise FileNotFoundError(f'GEMINI_API_KEY not set and no key file at {GEMINI_API_KEY_PATH}')
    return GEMINI_API_KEY_PATH.read_text().strip()
