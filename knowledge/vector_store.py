"""
Vector Store: Pattern Embedding Persistence and Similarity Search

Stores one embedding per learned pattern in ``pattern_embeddings``.

Search strategy:
1. Native backend function ``search_similar_patterns`` (server-side scan)
2. Client-side fallback: fetch every candidate row, cosine in numpy,
   keep ``similarity >= threshold``, sort descending, truncate to ``top_k``

Both paths apply the same inclusive threshold so results agree.
"""

import asyncio
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
from loguru import logger

from core.exceptions import (
    BackendFunctionUnavailableError,
    PersistenceError,
    VectorStoreError,
)
from core.models import UserPattern, VectorDocument, VectorSearchResult
from infrastructure.persistence import SIMILARITY_FUNCTION, PersistenceBackend
from intelligence.embedding_provider import EmbeddingProvider, cosine_similarity

TABLE = "pattern_embeddings"
BATCH_SIZE = 10


class VectorStore:
    """Embedding rows keyed by pattern id, searchable by cosine similarity."""

    def __init__(
        self,
        backend: PersistenceBackend,
        default_threshold: float = 0.7,
        default_top_k: int = 10,
        query_timeout: float = 5.0,
    ):
        self._backend = backend
        self._default_threshold = default_threshold
        self._default_top_k = default_top_k
        self._timeout = query_timeout
        self._native_available: Optional[bool] = None

    @staticmethod
    def _to_row(document: VectorDocument) -> Dict[str, Any]:
        return {
            "id": document.id,
            "pattern_id": document.pattern_id,
            "user_id": document.user_id,
            "embedding": [float(x) for x in document.embedding],
            "metadata": {
                **document.metadata,
                "pattern_id": document.pattern_id,
                "user_id": document.user_id,
            },
            "updated_at": datetime.utcnow(),
        }

    async def upsert(self, documents: Sequence[VectorDocument]) -> int:
        """
        Insert or replace embeddings (one row per pattern id).

        Raises:
            VectorStoreError: If the backend write fails
        """
        try:
            for document in documents:
                await self._backend.upsert(TABLE, self._to_row(document), conflict_key="pattern_id")
        except PersistenceError as e:
            raise VectorStoreError(f"Failed to upsert embeddings: {e.message}", operation="upsert", cause=e) from e

        return len(documents)

    async def upsert_patterns(
        self, patterns: Sequence[UserPattern], embedder: EmbeddingProvider
    ) -> int:
        """
        Embed and store patterns in batches of ten.

        Returns:
            Number of embeddings written
        """
        written = 0
        for start in range(0, len(patterns), BATCH_SIZE):
            batch = patterns[start : start + BATCH_SIZE]
            vectors = await asyncio.gather(*(embedder.embed_pattern(p) for p in batch))
            documents = [
                VectorDocument(
                    pattern_id=pattern.id,
                    user_id=pattern.user_id,
                    embedding=vector.tolist(),
                    metadata={"pattern_type": pattern.pattern_type.value},
                )
                for pattern, vector in zip(batch, vectors)
            ]
            written += await self.upsert(documents)

        logger.debug(f"Upserted {written} pattern embeddings")
        return written

    async def search(
        self,
        query_embedding: Sequence[float],
        threshold: Optional[float] = None,
        top_k: Optional[int] = None,
        user_id: Optional[str] = None,
    ) -> List[VectorSearchResult]:
        """
        Find stored embeddings similar to ``query_embedding``.

        Args:
            query_embedding: Query vector
            threshold: Inclusive minimum cosine similarity (default 0.7)
            top_k: Maximum results (default 10)
            user_id: Restrict to one user's patterns

        Returns:
            Matches sorted by similarity, highest first. Empty on timeout.
        """
        threshold = self._default_threshold if threshold is None else threshold
        top_k = top_k or self._default_top_k
        query = [float(x) for x in query_embedding]

        try:
            return await asyncio.wait_for(
                self._search(query, threshold, top_k, user_id), timeout=self._timeout
            )
        except asyncio.TimeoutError:
            logger.warning(f"Vector search timed out after {self._timeout}s")
            return []

    async def _search(
        self, query: List[float], threshold: float, top_k: int, user_id: Optional[str]
    ) -> List[VectorSearchResult]:
        if self._native_available is not False:
            try:
                rows = await self._backend.rpc(
                    SIMILARITY_FUNCTION,
                    {
                        "query_embedding": query,
                        "match_threshold": threshold,
                        "match_count": top_k,
                        "filter_user_id": user_id,
                    },
                )
                self._native_available = True
                return [VectorSearchResult(**self._result_fields(row)) for row in rows]
            except BackendFunctionUnavailableError:
                logger.info("Native similarity function unavailable, using client-side search")
                self._native_available = False
            except PersistenceError as e:
                logger.warning(f"Native similarity search failed, using fallback: {e.message}")

        return await self._fallback_search(query, threshold, top_k, user_id)

    async def _fallback_search(
        self, query: List[float], threshold: float, top_k: int, user_id: Optional[str]
    ) -> List[VectorSearchResult]:
        try:
            rows = await self._backend.select(TABLE, where={"user_id": user_id} if user_id else None)
        except PersistenceError as e:
            raise VectorStoreError(f"Fallback search failed: {e.message}", operation="search", cause=e) from e

        query_vec = np.asarray(query, dtype=np.float64)
        results = []
        for row in rows:
            similarity = cosine_similarity(query_vec, np.asarray(row["embedding"], dtype=np.float64))
            if similarity >= threshold:
                results.append(
                    VectorSearchResult(
                        pattern_id=row["pattern_id"],
                        user_id=row.get("user_id"),
                        similarity=similarity,
                        metadata=row.get("metadata") or {},
                    )
                )

        results.sort(key=lambda r: r.similarity, reverse=True)
        return results[:top_k]

    @staticmethod
    def _result_fields(row: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "pattern_id": str(row["pattern_id"]),
            "user_id": row.get("user_id"),
            "similarity": float(row["similarity"]),
            "metadata": row.get("metadata") or {},
        }

    async def delete(self, pattern_ids: Sequence[str]) -> int:
        try:
            return await self._backend.delete(TABLE, pattern_ids, key="pattern_id")
        except PersistenceError as e:
            raise VectorStoreError(f"Failed to delete embeddings: {e.message}", operation="delete", cause=e) from e

    async def get_embedding(self, pattern_id: str) -> Optional[List[float]]:
        try:
            rows = await self._backend.select(TABLE, where={"pattern_id": pattern_id}, limit=1)
        except PersistenceError as e:
            logger.warning(f"Failed to load embedding for {pattern_id}: {e.message}")
            return None
        return rows[0]["embedding"] if rows else None

    async def update_metadata(self, pattern_id: str, metadata: Dict[str, Any]) -> bool:
        try:
            rows = await self._backend.select(TABLE, where={"pattern_id": pattern_id}, limit=1)
            if not rows:
                return False
            updated = await self._backend.update(
                TABLE, rows[0]["id"], {"metadata": metadata, "updated_at": datetime.utcnow()}
            )
        except PersistenceError as e:
            raise VectorStoreError(
                f"Failed to update metadata: {e.message}", operation="update_metadata", cause=e
            ) from e
        return updated is not None


__all__ = ["VectorStore"]
