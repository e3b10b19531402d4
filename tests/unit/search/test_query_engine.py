"""Tests for QueryEngine ranking and argument validation."""

import pytest

from kb_index.errors import InvalidArgumentError
from kb_index.models import IndexedRecord, StoreHit
from kb_index.search.query import QueryEngine, QueryResult
from kb_index.storage.vector_store import VectorStore


class ScriptedStore(VectorStore):
    """Store returning fixed hits in whatever order they were given."""

    def __init__(self, hits):
        self.hits = hits
        self.requests = []

    def upsert(self, records):
        raise NotImplementedError

    def nearest_neighbors(self, vector, k):
        self.requests.append((list(vector), k))
        return list(self.hits)

    def delete(self, ids):
        raise NotImplementedError

    def count(self):
        return len(self.hits)


def hit(record_id, score, path="/kb/a.md", start=0):
    metadata = {"source_path": path, "start_line": start, "end_line": start + 9, "text": "t"}
    return StoreHit(id=record_id, metadata=metadata, score=score)


class TestQueryEngine:
    """Test suite for QueryEngine."""

    def test_results_ranked_best_first_with_id_tiebreak(self, embedding_client, embed):
        store = ScriptedStore([hit("c", 0.3), hit("b", 0.1), hit("a", 0.1)])

        results = QueryEngine(embedding_client, store).query("deploy", 3)

        assert [r.score for r in results] == [0.1, 0.1, 0.3]
        assert [r.rank for r in results] == [1, 2, 3]
        assert store.requests[0][0] == pytest.approx(embed("deploy"))
        assert store.requests[0][1] == 3

    def test_truncates_to_top_k(self, embedding_client):
        store = ScriptedStore([hit(str(i), i / 10) for i in range(5)])

        results = QueryEngine(embedding_client, store).query("x", 2)

        assert len(results) == 2

    @pytest.mark.parametrize("top_k", [0, -1])
    def test_rejects_non_positive_top_k(self, embedding_client, fake_provider, top_k):
        engine = QueryEngine(embedding_client, ScriptedStore([]))

        with pytest.raises(InvalidArgumentError):
            engine.query("x", top_k)
        assert fake_provider.calls == []

    @pytest.mark.parametrize("text", ["", "   \n"])
    def test_rejects_blank_query(self, embedding_client, fake_provider, text):
        engine = QueryEngine(embedding_client, ScriptedStore([]))

        with pytest.raises(InvalidArgumentError):
            engine.query(text, 5)
        assert fake_provider.calls == []

    def test_empty_store_returns_no_results(self, embedding_client, memory_store):
        assert QueryEngine(embedding_client, memory_store).query("anything", 5) == []

    def test_nearest_chunk_is_found_end_to_end(self, embedding_client, memory_store, embed):
        texts = {"deploy": "how to deploy", "test": "how to test", "lint": "how to lint"}
        memory_store.upsert(
            [
                IndexedRecord(
                    id=name,
                    vector=tuple(embed(text)),
                    metadata={
                        "source_path": f"/kb/{name}.md",
                        "start_line": 0,
                        "end_line": 0,
                        "text": text,
                    },
                )
                for name, text in texts.items()
            ]
        )

        results = QueryEngine(embedding_client, memory_store).query("how to test", 1)

        assert results[0].source_path == "/kb/test.md"
        assert results[0].score == pytest.approx(0.0)

    def test_result_from_hit(self):
        result = QueryResult.from_store_hit(hit("x", 0.42, path="/kb/b.md", start=10), 4)

        assert result.to_dict() == {
            "source_path": "/kb/b.md",
            "start_line": 10,
            "end_line": 19,
            "text": "t",
            "score": 0.42,
            "rank": 4,
        }
