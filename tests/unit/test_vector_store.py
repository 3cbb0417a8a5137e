"""
Vector Store Unit Tests

- Native and client-side search agree
- Native availability is probed once
- Timeouts degrade to empty results
- Embedding CRUD and batch indexing
"""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from core.enums import PatternType
from core.exceptions import BackendFunctionUnavailableError
from core.models import PatternData, UserPattern, VectorDocument
from infrastructure.persistence import SIMILARITY_FUNCTION, InMemoryBackend
from knowledge.vector_store import VectorStore


def document(pattern_id: str, embedding, user_id: str = "user-1") -> VectorDocument:
    return VectorDocument(pattern_id=pattern_id, user_id=user_id, embedding=embedding)


async def seed(store: VectorStore) -> None:
    await store.upsert(
        [
            document("close", [1.0, 0.0, 0.0]),
            document("near", [0.9, 0.1, 0.0]),
            document("far", [0.0, 1.0, 0.0]),
            document("other-user", [1.0, 0.0, 0.0], user_id="user-2"),
        ]
    )


# ============================================================================
# SEARCH
# ============================================================================


@pytest.mark.unit
@pytest.mark.asyncio
async def test_search_returns_matches_above_threshold_sorted(vector_store):
    await seed(vector_store)

    results = await vector_store.search([1.0, 0.0, 0.0], threshold=0.75, user_id="user-1")

    assert [r.pattern_id for r in results] == ["close", "near"]
    assert results[0].similarity == pytest.approx(1.0)
    assert results[0].metadata["pattern_id"] == "close"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_native_and_fallback_search_agree():
    native = VectorStore(InMemoryBackend(native_similarity=True))
    fallback = VectorStore(InMemoryBackend(native_similarity=False))
    await seed(native)
    await seed(fallback)

    for user_id in (None, "user-1"):
        a = await native.search([1.0, 0.1, 0.0], threshold=0.5, top_k=10, user_id=user_id)
        b = await fallback.search([1.0, 0.1, 0.0], threshold=0.5, top_k=10, user_id=user_id)

        assert [r.pattern_id for r in a] == [r.pattern_id for r in b]
        assert [r.similarity for r in a] == pytest.approx([r.similarity for r in b])


@pytest.mark.unit
@pytest.mark.asyncio
async def test_threshold_is_inclusive_and_top_k_truncates(vector_store):
    await seed(vector_store)

    results = await vector_store.search([1.0, 0.0, 0.0], threshold=1.0, user_id="user-1")
    assert [r.pattern_id for r in results] == ["close"]

    results = await vector_store.search([1.0, 0.0, 0.0], threshold=0.0, top_k=1)
    assert len(results) == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_missing_native_function_is_probed_once():
    backend = InMemoryBackend()
    store = VectorStore(backend)
    await seed(store)
    rpc = AsyncMock(side_effect=BackendFunctionUnavailableError(SIMILARITY_FUNCTION))

    with patch.object(backend, "rpc", rpc):
        first = await store.search([1.0, 0.0, 0.0], user_id="user-1")
        second = await store.search([1.0, 0.0, 0.0], user_id="user-1")

    assert rpc.await_count == 1
    assert [r.pattern_id for r in first] == [r.pattern_id for r in second] == ["close", "near"]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_slow_search_times_out_to_empty():
    backend = InMemoryBackend()

    async def slow_search(_backend, _params):
        await asyncio.sleep(5)
        return []

    backend.register_function(SIMILARITY_FUNCTION, slow_search)
    store = VectorStore(backend, query_timeout=0.05)

    assert await store.search([1.0, 0.0, 0.0]) == []


# ============================================================================
# CRUD
# ============================================================================


@pytest.mark.unit
@pytest.mark.asyncio
async def test_upsert_replaces_row_for_same_pattern(vector_store, backend):
    await vector_store.upsert([document("p1", [1.0, 0.0])])
    await vector_store.upsert([document("p1", [0.0, 1.0])])

    assert len(backend.tables["pattern_embeddings"]) == 1
    assert await vector_store.get_embedding("p1") == [0.0, 1.0]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_delete_and_missing_embedding(vector_store):
    await vector_store.upsert([document("p1", [1.0, 0.0])])

    assert await vector_store.delete(["p1"]) == 1
    assert await vector_store.get_embedding("p1") is None


@pytest.mark.unit
@pytest.mark.asyncio
async def test_update_metadata(vector_store, backend):
    await vector_store.upsert([document("p1", [1.0, 0.0])])

    assert await vector_store.update_metadata("p1", {"pattern_type": "template"})
    assert await vector_store.update_metadata("missing", {}) is False

    (row,) = backend.tables["pattern_embeddings"].values()
    assert row["metadata"] == {"pattern_type": "template"}


@pytest.mark.unit
@pytest.mark.asyncio
async def test_upsert_patterns_embeds_in_batches(vector_store, backend, embedder, embedding_strategy):
    patterns = [
        UserPattern(
            user_id="user-1",
            pattern_type=PatternType.SUCCESSFUL_POST,
            pattern_data=PatternData(purpose="value", keywords=[f"healthcare-{i}"]),
            confidence_score=0.6,
        )
        for i in range(12)
    ]

    written = await vector_store.upsert_patterns(patterns, embedder)

    assert written == 12
    assert embedding_strategy.calls == 12
    rows = list(backend.tables["pattern_embeddings"].values())
    assert len(rows) == 12
    assert rows[0]["metadata"]["pattern_type"] == "successful_post"
