"""
Unit tests for the SQLite memory store.

Tests cover:
- Insert / lookup round trips
- Category scans in insertion order
- Vector search with tier filter and similarity floor
- Access bookkeeping, re-scoring and deletion
"""

from datetime import datetime, timezone

import pytest

from tiered_memory.errors import StorageError
from tiered_memory.memory_store import SQLiteMemoryStore, cosine_similarity
from tiered_memory.schemas import MemoryCategory

from memory_mocks import make_record


class TestCosineSimlarity:
    """Tests for cosine similarity function."""

    def test_identical_vectors(self):
        vec = [1.0, 2.0, 3.0]
        assert abs(cosine_similarity(vec, vec) - 1.0) < 0.001

    def test_orthogonal_vectors(self):
        assert abs(cosine_similarity([1.0, 0.0], [0.0, 1.0])) < 0.001

    def test_opposite_vectors(self):
        assert abs(cosine_similarity([1.0, 0.0], [-1.0, 0.0]) - (-1.0)) < 0.001

    def test_empty_vectors(self):
        assert cosine_similarity([], []) == 0.0

    def test_mismatched_dimensions(self):
        assert cosine_similarity([1.0, 2.0], [1.0]) == 0.0


class TestSQLiteMemoryStore:
    """Tests for SQLiteMemoryStore operations."""

    @pytest.mark.asyncio
    async def test_insert_and_find_by_id(self, store):
        """Round trip keeps id, content and category."""
        record = make_record(
            "User prefers morning meetings",
            MemoryCategory.CORE,
            importance=0.9,
            embedding=[0.5, 0.25, 0.125],
            metadata={"tags": ["preference"]},
        )
        await store.insert(record)

        retrieved = await store.find_by_id(record.id)

        assert retrieved is not None
        assert retrieved.id == record.id
        assert retrieved.content == record.content
        assert retrieved.category is MemoryCategory.CORE
        assert retrieved.importance == pytest.approx(0.9)
        assert retrieved.created_at == record.created_at
        assert retrieved.embedding == pytest.approx(record.embedding)
        assert retrieved.metadata == {"tags": ["preference"]}

    @pytest.mark.asyncio
    async def test_find_missing_returns_none(self, store):
        assert await store.find_by_id("does-not-exist") is None

    @pytest.mark.asyncio
    async def test_duplicate_id_raises_storage_error(self, store):
        record = make_record("once")
        await store.insert(record)

        with pytest.raises(StorageError):
            await store.insert(record)

    @pytest.mark.asyncio
    async def test_find_by_category_in_insertion_order(self, store):
        records = [make_record(f"working {i}", importance=1 - i / 10) for i in range(4)]
        for r in records:
            await store.insert(r)
        await store.insert(make_record("core fact", MemoryCategory.CORE))

        working = await store.find_by_category(MemoryCategory.WORKING)

        assert [r.id for r in working] == [r.id for r in records]

    @pytest.mark.asyncio
    async def test_count(self, store):
        for i in range(3):
            await store.insert(make_record(f"working {i}"))
        await store.insert(make_record("archived", MemoryCategory.ARCHIVAL))

        assert await store.count() == 4
        assert await store.count(MemoryCategory.WORKING) == 3
        assert await store.count(MemoryCategory.CORE) == 0

    @pytest.mark.asyncio
    async def test_delete(self, store):
        record = make_record("to be deleted")
        await store.insert(record)

        assert await store.delete(record.id) is True
        assert await store.find_by_id(record.id) is None
        assert await store.delete(record.id) is False

    @pytest.mark.asyncio
    async def test_update_access_count(self, store):
        record = make_record("frequently used")
        await store.insert(record)

        await store.update_access_count(record.id)
        await store.update_access_count(record.id)

        retrieved = await store.find_by_id(record.id)
        assert retrieved.access_count == 2
        assert retrieved.last_accessed is not None

    @pytest.mark.asyncio
    async def test_naive_timestamps_read_back_as_utc(self, store):
        record = make_record("written by an older version")
        await store.insert(record)
        conn = store._get_connection()
        conn.execute(
            "UPDATE memories SET created_at = ?, last_accessed = ? WHERE id = ?",
            ("2024-01-01T12:00:00", "2024-01-02T08:30:00", record.id),
        )
        conn.commit()

        retrieved = await store.find_by_id(record.id)

        assert retrieved.created_at == datetime(2024, 1, 1, 12, tzinfo=timezone.utc)
        assert retrieved.last_accessed == datetime(2024, 1, 2, 8, 30, tzinfo=timezone.utc)


    @pytest.mark.asyncio
    async def test_update_importance(self, store):
        record = make_record("rescored", importance=0.2)
        await store.insert(record)

        assert await store.update_importance(record.id, 0.75) is True
        assert (await store.find_by_id(record.id)).importance == pytest.approx(0.75)
        assert await store.update_importance("missing", 0.5) is False

    @pytest.mark.asyncio
    async def test_persists_across_connections(self, temp_db_path):
        first = SQLiteMemoryStore(temp_db_path)
        record = make_record("durable", MemoryCategory.ARCHIVAL)
        await first.insert(record)
        first.close()

        second = SQLiteMemoryStore(temp_db_path)
        try:
            retrieved = await second.find_by_id(record.id)
            assert retrieved is not None
            assert retrieved.content == "durable"
        finally:
            second.close()


class TestSemanticSearch:
    """Tests for vector similarity search."""

    @pytest.mark.asyncio
    async def test_ranked_by_similarity(self, store):
        close = make_record("close", embedding=[1.0, 0.1])
        far = make_record("far", embedding=[0.0, 1.0])
        exact = make_record("exact", embedding=[1.0, 0.0])
        for r in (close, far, exact):
            await store.insert(r)

        results = await store.semantic_search([1.0, 0.0], limit=3)

        assert [r.item.id for r in results] == [exact.id, close.id, far.id]
        assert results[0].score == pytest.approx(1.0)

    @pytest.mark.asyncio
    async def test_category_filter(self, store):
        await store.insert(make_record("core", MemoryCategory.CORE, embedding=[1.0, 0.0]))
        working = make_record("working", MemoryCategory.WORKING, embedding=[1.0, 0.0])
        await store.insert(working)

        results = await store.semantic_search([1.0, 0.0], category=MemoryCategory.WORKING)

        assert [r.item.id for r in results] == [working.id]

    @pytest.mark.asyncio
    async def test_min_similarity_applied_before_limit(self, store):
        await store.insert(make_record("a", embedding=[1.0, 0.0]))
        await store.insert(make_record("b", embedding=[0.9, 0.1]))
        await store.insert(make_record("orthogonal", embedding=[0.0, 1.0]))

        results = await store.semantic_search([1.0, 0.0], limit=5, min_similarity=0.5)

        assert len(results) == 2
        assert all(r.score >= 0.5 for r in results)

    @pytest.mark.asyncio
    async def test_records_without_embedding_are_skipped(self, store):
        await store.insert(make_record("no vector"))
        with_vector = make_record("vector", embedding=[1.0, 0.0])
        await store.insert(with_vector)

        results = await store.semantic_search([1.0, 0.0], limit=5)

        assert [r.item.id for r in results] == [with_vector.id]
