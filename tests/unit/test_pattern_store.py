"""
Pattern Store Unit Tests

- Listing filters by confidence and type, ordered by confidence
- Per-user list cache with write invalidation and sweeps
- Backend failures surface as PatternStoreError
- Timeouts degrade listing without poisoning the cache, and fail writes
"""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from config.settings import PatternSettings
from core.enums import PatternType
from core.exceptions import PatternStoreError, PersistenceError
from core.models import PatternData, UserPattern
from knowledge.pattern_store import PatternStore


def pattern(
    confidence: float,
    pattern_type: PatternType = PatternType.SUCCESSFUL_POST,
    user_id: str = "user-1",
    **data,
) -> UserPattern:
    return UserPattern(
        user_id=user_id,
        pattern_type=pattern_type,
        pattern_data=PatternData(**data),
        confidence_score=confidence,
    )


async def stalled(*args, **kwargs):
    await asyncio.sleep(1)
    return []


@pytest.fixture
def bounded_store(backend) -> PatternStore:
    return PatternStore(backend, PatternSettings(query_timeout_seconds=0.1))


# ============================================================================
# READS
# ============================================================================


@pytest.mark.unit
@pytest.mark.asyncio
async def test_list_filters_low_confidence_and_orders_desc(pattern_store):
    await pattern_store.create(pattern(0.6))
    await pattern_store.create(pattern(0.9))
    await pattern_store.create(pattern(0.3))
    await pattern_store.create(pattern(0.8, user_id="user-2"))

    patterns = await pattern_store.list_user_patterns("user-1")

    assert [p.confidence_score for p in patterns] == [0.9, 0.6]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_list_filters_by_type(pattern_store):
    await pattern_store.create(pattern(0.7))
    await pattern_store.create(pattern(0.7, PatternType.TEMPLATE))

    templates = await pattern_store.list_user_patterns("user-1", [PatternType.TEMPLATE])

    assert [p.pattern_type for p in templates] == [PatternType.TEMPLATE]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_missing_user_lists_nothing(pattern_store):
    assert await pattern_store.list_user_patterns(None) == []


@pytest.mark.unit
@pytest.mark.asyncio
async def test_pattern_data_round_trips_unknown_keys(pattern_store):
    created = await pattern_store.create(
        pattern(0.7, purpose="value", character_range=(300, 500), extra={"campaign": "q3"})
    )

    loaded = await pattern_store.get(created.id)

    assert loaded.pattern_data.character_range == (300, 500)
    assert loaded.pattern_data.extra == {"campaign": "q3"}


@pytest.mark.unit
@pytest.mark.asyncio
async def test_find_existing_matches_purpose_format_tone(pattern_store):
    target = await pattern_store.create(
        pattern(0.7, purpose="value", format="story", tone="casual")
    )
    await pattern_store.create(pattern(0.9, purpose="value", format="list", tone="casual"))

    found = await pattern_store.find_existing(
        "user-1", PatternData(purpose="value", format="story", tone="casual")
    )
    missing = await pattern_store.find_existing(
        "user-1", PatternData(purpose="question", format="story", tone="casual")
    )

    assert found.id == target.id
    assert missing is None


@pytest.mark.unit
@pytest.mark.asyncio
async def test_top_patterns_and_get_many(pattern_store):
    created = [await pattern_store.create(pattern(c)) for c in (0.6, 0.9, 0.7, 0.8)]

    top = await pattern_store.top_patterns("user-1", limit=3)
    many = await pattern_store.get_many([created[0].id, created[1].id])

    assert [p.confidence_score for p in top] == [0.9, 0.8, 0.7]
    assert {p.id for p in many} == {created[0].id, created[1].id}
    assert await pattern_store.get_many([]) == []


# ============================================================================
# LIST CACHE
# ============================================================================


@pytest.mark.unit
@pytest.mark.asyncio
async def test_list_is_cached_until_a_write(pattern_store, backend):
    await pattern_store.create(pattern(0.7))

    with patch.object(backend, "select", wraps=backend.select) as select:
        await pattern_store.list_user_patterns("user-1")
        await pattern_store.list_user_patterns("user-1")
        assert select.call_count == 1

        await pattern_store.create(pattern(0.8))
        patterns = await pattern_store.list_user_patterns("user-1")
        assert select.call_count == 2

    assert len(patterns) == 2


@pytest.mark.unit
@pytest.mark.asyncio
async def test_cache_keys_are_per_type_selection(pattern_store):
    await pattern_store.list_user_patterns("user-1")
    await pattern_store.list_user_patterns("user-1", [PatternType.TEMPLATE])

    assert pattern_store.cached_lists == 2
    assert pattern_store.cache_key("user-1") == "user_user-1_all"
    assert pattern_store.invalidate_user("user-1") == 2


@pytest.mark.unit
@pytest.mark.asyncio
async def test_sweep_clears_a_full_cache(backend):
    store = PatternStore(backend, PatternSettings(pattern_cache_max_entries=2))
    await store.list_user_patterns("a")
    assert store.sweep() == 0

    await store.list_user_patterns("b")
    assert store.sweep() == 2
    assert store.cached_lists == 0


# ============================================================================
# WRITES & FAILURES
# ============================================================================


@pytest.mark.unit
@pytest.mark.asyncio
async def test_update_persists_changes(pattern_store):
    created = await pattern_store.create(pattern(0.6))

    updated = await pattern_store.update(created.model_copy(update={"confidence_score": 0.7}))

    assert updated.confidence_score == 0.7
    assert (await pattern_store.get(created.id)).confidence_score == 0.7


@pytest.mark.unit
@pytest.mark.asyncio
async def test_update_missing_pattern_raises(pattern_store):
    with pytest.raises(PatternStoreError):
        await pattern_store.update(pattern(0.6))


@pytest.mark.unit
@pytest.mark.asyncio
async def test_backend_failure_raises_pattern_store_error(pattern_store, backend):
    failing = AsyncMock(side_effect=PersistenceError("connection reset"))

    with patch.object(backend, "select", failing):
        with pytest.raises(PatternStoreError):
            await pattern_store.list_user_patterns("user-1")


# ============================================================================
# TIMEOUTS
# ============================================================================


@pytest.mark.unit
@pytest.mark.asyncio
async def test_list_timeout_is_not_cached(bounded_store, backend):
    await bounded_store.create(pattern(0.7))

    with patch.object(backend, "select", stalled):
        assert await bounded_store.list_user_patterns("user-1") == []

    assert bounded_store.cached_lists == 0
    assert len(await bounded_store.list_user_patterns("user-1")) == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_find_existing_timeout_raises(bounded_store, backend):
    await bounded_store.create(pattern(0.7, purpose="value"))

    with patch.object(backend, "select", stalled):
        with pytest.raises(PatternStoreError, match="timed out") as exc_info:
            await bounded_store.find_existing("user-1", PatternData(purpose="value"))

    assert exc_info.value.context["operation"] == "find_existing"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_top_patterns_timeout_degrades(bounded_store, backend):
    with patch.object(backend, "select", stalled):
        assert await bounded_store.top_patterns("user-1") == []


@pytest.mark.unit
@pytest.mark.asyncio
async def test_stalled_create_raises(bounded_store, backend):
    with patch.object(backend, "insert", stalled):
        with pytest.raises(PatternStoreError, match="timed out"):
            await bounded_store.create(pattern(0.7))


@pytest.mark.unit
@pytest.mark.asyncio
async def test_stalled_update_raises(bounded_store, backend):
    created = await bounded_store.create(pattern(0.6))

    with patch.object(backend, "update", stalled):
        with pytest.raises(PatternStoreError, match="timed out"):
            await bounded_store.update(created.model_copy(update={"confidence_score": 0.7}))


@pytest.mark.unit
@pytest.mark.asyncio
async def test_stalled_ping_raises(bounded_store, backend):
    with patch.object(backend, "select", stalled):
        with pytest.raises(PatternStoreError):
            await bounded_store.ping()
