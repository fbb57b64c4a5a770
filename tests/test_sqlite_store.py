"""Tests for the SQLite durable tier."""

import pytest
import pytest_asyncio

from dialogue_memory.models import Interaction
from dialogue_memory.storage.sqlite_store import SQLiteStore


@pytest_asyncio.fixture
async def store(tmp_path):
    s = SQLiteStore(tmp_path / "test.db")
    await s.initialize()
    yield s
    await s.close()


def _make_interaction(i: int, **kwargs) -> Interaction:
    defaults = dict(
        id=f"int-{i}",
        input=f"question {i}",
        response=f"answer {i}",
        timestamp=f"2026-01-01T00:00:{i:02d}+00:00",
        session_id="sess-1",
        category=3,
        confidence=0.75,
    )
    defaults.update(kwargs)
    return Interaction(**defaults)


@pytest.mark.asyncio
async def test_insert_and_get(store):
    record = _make_interaction(1, transition_phrase="Similar theme…")
    record.semantics.topics = ["question"]
    assert await store.insert_many([record]) == 1

    result = await store.get_interaction("int-1")
    assert result == record


@pytest.mark.asyncio
async def test_get_nonexistent(store):
    assert await store.get_interaction("missing") is None


@pytest.mark.asyncio
async def test_insert_is_idempotent(store):
    batch = [_make_interaction(i) for i in range(3)]
    await store.insert_many(batch)
    await store.insert_many(batch)
    assert await store.count() == 3


@pytest.mark.asyncio
async def test_insert_empty_batch(store):
    assert await store.insert_many([]) == 0


@pytest.mark.asyncio
async def test_load_recent_newest_first(store):
    await store.insert_many([_make_interaction(i) for i in range(5)])
    recent = await store.load_recent(limit=3)
    assert [r.id for r in recent] == ["int-4", "int-3", "int-2"]


@pytest.mark.asyncio
async def test_count_by_session(store):
    await store.insert_many([
        _make_interaction(1),
        _make_interaction(2, session_id="sess-2"),
    ])
    assert await store.count("sess-2") == 1
    assert await store.count() == 2
