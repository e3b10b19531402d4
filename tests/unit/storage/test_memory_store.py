"""Tests for the in-memory vector store."""

import pytest

from kb_index.errors import VectorStoreError
from kb_index.models import IndexedRecord


def record(record_id, vector, text="x"):
    return IndexedRecord(
        id=record_id,
        vector=tuple(vector),
        metadata={"source_path": "/kb/a.md", "start_line": 0, "end_line": 9, "text": text},
    )


class TestInMemoryVectorStore:
    """Test suite for InMemoryVectorStore."""

    def test_upsert_replaces_by_id(self, memory_store):
        memory_store.upsert([record("a", [1.0, 0.0], text="old")])
        memory_store.upsert([record("a", [0.0, 1.0], text="new")])

        assert memory_store.count() == 1
        vector, metadata = memory_store.get("a")
        assert vector == (0.0, 1.0)
        assert metadata["text"] == "new"

    def test_nearest_neighbors_ordered_by_distance(self, memory_store):
        memory_store.upsert(
            [
                record("far", [0.0, 1.0]),
                record("near", [1.0, 0.1]),
                record("exact", [2.0, 0.0]),
            ]
        )

        hits = memory_store.nearest_neighbors([1.0, 0.0], 3)

        assert [h.id for h in hits] == ["exact", "near", "far"]
        assert hits[0].score == pytest.approx(0.0)
        assert hits[2].score == pytest.approx(1.0)
        assert hits[0].metadata["source_path"] == "/kb/a.md"

    def test_equal_distances_break_ties_by_id(self, memory_store):
        memory_store.upsert([record(i, [1.0, 0.0]) for i in ("c", "a", "b")])

        hits = memory_store.nearest_neighbors([1.0, 0.0], 3)

        assert [h.id for h in hits] == ["a", "b", "c"]

    def test_returns_at_most_k(self, memory_store):
        memory_store.upsert([record(str(i), [1.0, float(i)]) for i in range(5)])

        assert len(memory_store.nearest_neighbors([1.0, 0.0], 2)) == 2
        assert len(memory_store.nearest_neighbors([1.0, 0.0], 50)) == 5
        assert memory_store.nearest_neighbors([1.0, 0.0], 0) == []

    def test_empty_store(self, memory_store):
        assert memory_store.nearest_neighbors([1.0, 0.0], 5) == []
        assert memory_store.count() == 0

    def test_zero_vector_has_unit_distance(self, memory_store):
        memory_store.upsert([record("zero", [0.0, 0.0])])

        hits = memory_store.nearest_neighbors([1.0, 0.0], 1)

        assert hits[0].score == pytest.approx(1.0)

    def test_dimension_mismatch(self, memory_store):
        memory_store.upsert([record("a", [1.0, 0.0, 0.0])])

        with pytest.raises(VectorStoreError):
            memory_store.nearest_neighbors([1.0, 0.0], 1)

    def test_empty_vector_is_rejected(self, memory_store):
        with pytest.raises(VectorStoreError):
            memory_store.upsert([record("a", [])])

    def test_delete_ignores_unknown_ids(self, memory_store):
        memory_store.upsert([record("a", [1.0]), record("b", [1.0])])

        memory_store.delete(["a", "missing"])

        assert memory_store.ids() == ["b"]

    def test_returned_metadata_is_a_copy(self, memory_store):
        memory_store.upsert([record("a", [1.0])])

        hit = memory_store.nearest_neighbors([1.0], 1)[0]
        hit.metadata["text"] = "changed"

        assert memory_store.get("a")[1]["text"] == "x"
