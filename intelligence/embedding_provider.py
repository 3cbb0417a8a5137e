"""
Embedding Provider - Vector Representation Layer
=================================================

Turns requests and learned patterns into fixed-width unit vectors:
- Pluggable strategy chosen from configuration (deterministic or OpenAI)
- Memoization by text hash and by pattern id
- Automatic fallback to the deterministic strategy on backend errors
- Cosine similarity helper shared by the vector store fallback path

Design: callers never see an embedding failure; a degraded vector is
always preferable to aborting similarity search or pattern learning.
"""

import hashlib
from abc import ABC, abstractmethod
from collections import OrderedDict
from typing import Optional

import httpx
import numpy as np
from loguru import logger
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from config.settings import EmbeddingSettings
from core.exceptions import EmbeddingError
from core.models import ContentRequest, UserPattern
from infrastructure.monitoring import MetricsCollector


def request_embedding_text(request: ContentRequest) -> str:
    """Text projection of a request used for similarity search."""
    parts = [
        request.content,
        request.purpose,
        request.format,
        request.tone,
        request.target_audience,
        *request.keywords,
    ]
    return " ".join(p for p in parts if p)


def cosine_similarity(vec1: np.ndarray, vec2: np.ndarray) -> float:
    """
    Cosine similarity in [-1, 1]; 0.0 when either vector has zero norm.

    Raises:
        EmbeddingError: On dimension mismatch
    """
    if vec1.shape != vec2.shape:
        raise EmbeddingError(f"Vector shape mismatch: {vec1.shape} vs {vec2.shape}")

    norm1 = np.linalg.norm(vec1)
    norm2 = np.linalg.norm(vec2)
    if norm1 == 0 or norm2 == 0:
        return 0.0

    return float(np.dot(vec1, vec2) / (norm1 * norm2))


# =============================================================================
# STRATEGIES
# =============================================================================


class EmbeddingStrategy(ABC):
    """Backend that maps text to a vector of ``dimension`` floats."""

    name: str = "abstract"

    def __init__(self, dimension: int):
        self.dimension = dimension

    @abstractmethod
    async def embed(self, text: str) -> np.ndarray:
        ...


class DeterministicEmbeddingStrategy(EmbeddingStrategy):
    """
    Hash-seeded unit vectors.

    Same text always yields the same vector, so similarity search and the
    cache behave reproducibly with no model configured.
    """

    name = "deterministic"

    async def embed(self, text: str) -> np.ndarray:
        return self.vector_for(text)

    def vector_for(self, text: str) -> np.ndarray:
        seed = int.from_bytes(hashlib.sha256(text.encode("utf-8")).digest()[:8], "big")
        rng = np.random.default_rng(seed)
        vector = rng.standard_normal(self.dimension)
        return vector / np.linalg.norm(vector)


def _log_retry(retry_state) -> None:
    logger.warning(
        f"Embedding request timed out, retrying (attempt {retry_state.attempt_number}): "
        f"{retry_state.outcome.exception()}"
    )


class OpenAIEmbeddingStrategy(EmbeddingStrategy):
    """
    OpenAI ``/embeddings`` endpoint over httpx.

    Timeouts are retried with exponential backoff; HTTP errors and malformed
    bodies fail immediately.
    """

    name = "openai"

    def __init__(
        self,
        api_key: str,
        model: str = "text-embedding-ada-002",
        base_url: str = "https://api.openai.com/v1",
        dimension: int = 1536,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
        max_retries: int = 3,
        retry_backoff: float = 1.0,
    ):
        super().__init__(dimension)
        self._api_key = api_key
        self._model = model
        self._url = f"{base_url.rstrip('/')}/embeddings"
        self._timeout = timeout
        self._client = client
        self.max_retries = max_retries
        self.retry_backoff = retry_backoff

    async def _post(self, payload: dict, headers: dict) -> httpx.Response:
        @retry(
            stop=stop_after_attempt(self.max_retries),
            wait=wait_exponential(multiplier=self.retry_backoff, max=30 * self.retry_backoff),
            retry=retry_if_exception_type(httpx.TimeoutException),
            before_sleep=_log_retry,
            reraise=True,
        )
        async def _execute():
            if self._client is not None:
                return await self._client.post(
                    self._url, json=payload, headers=headers, timeout=self._timeout
                )
            async with httpx.AsyncClient() as client:
                return await client.post(self._url, json=payload, headers=headers, timeout=self._timeout)

        return await _execute()

    async def embed(self, text: str) -> np.ndarray:
        headers = {"Authorization": f"Bearer {self._api_key}"}
        payload = {"input": text, "model": self._model}

        try:
            response = await self._post(payload, headers)
            response.raise_for_status()
            data = response.json()["data"][0]["embedding"]
        except httpx.HTTPError as e:
            raise EmbeddingError(f"Embedding request failed: {e}", model_name=self._model, cause=e) from e
        except (KeyError, IndexError, ValueError) as e:
            raise EmbeddingError(
                f"Malformed embedding response: {e}", model_name=self._model, cause=e
            ) from e

        vector = np.asarray(data, dtype=np.float64)
        if vector.shape != (self.dimension,):
            raise EmbeddingError(
                f"Expected {self.dimension} dimensions, got {vector.shape}", model_name=self._model
            )
        return vector


def build_strategy(settings: EmbeddingSettings) -> EmbeddingStrategy:
    """Select the embedding strategy from configuration."""
    if settings.provider == "openai":
        if settings.openai_api_key is None:
            logger.warning("EMBEDDING_PROVIDER=openai without API key, using deterministic embeddings")
            return DeterministicEmbeddingStrategy(settings.dimension)
        return OpenAIEmbeddingStrategy(
            api_key=settings.openai_api_key.get_secret_value(),
            model=settings.model,
            base_url=settings.openai_base_url,
            dimension=settings.dimension,
            timeout=settings.request_timeout,
            max_retries=settings.max_retries,
        )
    return DeterministicEmbeddingStrategy(settings.dimension)


# =============================================================================
# PROVIDER
# =============================================================================


class EmbeddingProvider:
    """
    Memoizing embedding front-end.

    Text embeddings are keyed by the SHA-256 of the text, pattern embeddings
    by ``pattern_{id}``. The memo is LRU-bounded at ``memo_size``.
    """

    def __init__(
        self,
        settings: Optional[EmbeddingSettings] = None,
        strategy: Optional[EmbeddingStrategy] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self._settings = settings or EmbeddingSettings()
        self._strategy = strategy or build_strategy(self._settings)
        self._fallback = DeterministicEmbeddingStrategy(self._strategy.dimension)
        self._metrics = metrics
        self._memo: "OrderedDict[str, np.ndarray]" = OrderedDict()
        self._memo_size = self._settings.memo_size

        self._hits = 0
        self._misses = 0
        self._fallbacks = 0

        logger.info(
            f"Embedding provider initialized: {self._strategy.name} ({self._strategy.dimension}d)"
        )

    @property
    def dimension(self) -> int:
        return self._strategy.dimension

    @property
    def strategy_name(self) -> str:
        return self._strategy.name

    async def embed_text(self, text: str) -> np.ndarray:
        key = hashlib.sha256(text.encode("utf-8")).hexdigest()
        return await self._embed(key, text)

    async def embed_request(self, request: ContentRequest) -> np.ndarray:
        return await self.embed_text(request_embedding_text(request))

    async def embed_pattern(self, pattern: UserPattern) -> np.ndarray:
        return await self._embed(f"pattern_{pattern.id}", pattern.pattern_data.embedding_text())

    async def _embed(self, memo_key: str, text: str) -> np.ndarray:
        cached = self._memo.get(memo_key)
        if cached is not None:
            self._memo.move_to_end(memo_key)
            self._hits += 1
            return cached

        self._misses += 1
        try:
            vector = await self._strategy.embed(text)
        except EmbeddingError as e:
            logger.warning(f"Embedding backend failed, using deterministic fallback: {e.message}")
            self._fallbacks += 1
            if self._metrics:
                self._metrics.record_embedding_fallback()
            vector = await self._fallback.embed(text)

        self._memo[memo_key] = vector
        while len(self._memo) > self._memo_size:
            self._memo.popitem(last=False)

        return vector

    def sweep_memo(self) -> int:
        """
        Periodic reset: drop the memo once it has filled up.

        Returns:
            Number of entries removed
        """
        size = len(self._memo)
        if size < self._memo_size:
            return 0
        self._memo.clear()
        logger.debug(f"Embedding memo cleared ({size} entries)")
        return size

    def get_stats(self) -> dict:
        total = self._hits + self._misses
        return {
            "strategy": self._strategy.name,
            "dimension": self._strategy.dimension,
            "memo_entries": len(self._memo),
            "memo_hit_rate": self._hits / total if total else 0.0,
            "fallbacks": self._fallbacks,
        }


__all__ = [
    "EmbeddingStrategy",
    "DeterministicEmbeddingStrategy",
    "OpenAIEmbeddingStrategy",
    "EmbeddingProvider",
    "build_strategy",
    "cosine_similarity",
    "request_embedding_text",
]
