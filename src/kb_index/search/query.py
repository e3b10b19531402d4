"""Query engine: embed a question and retrieve the nearest chunks."""

import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, List

from ..errors import InvalidArgumentError
from ..services.embedding_client import EmbeddingClient
from ..storage.vector_store import StoreHit, VectorStore

logger = logging.getLogger(__name__)


@dataclass
class QueryResult:
    """A single ranked result; ``score`` is a distance (lower is closer)."""

    source_path: str
    start_line: int
    end_line: int
    text: str
    score: float
    rank: int

    @classmethod
    def from_store_hit(cls, hit: StoreHit, rank: int) -> "QueryResult":
        """Create QueryResult from a vector store hit."""
        metadata = hit.metadata
        return cls(
            source_path=str(metadata.get("source_path", "unknown")),
            start_line=int(metadata.get("start_line", 0)),
            end_line=int(metadata.get("end_line", 0)),
            text=str(metadata.get("text", "")),
            score=hit.score,
            rank=rank,
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class QueryEngine:
    """Runs one query: embed, search, rank."""

    def __init__(self, embedding_client: EmbeddingClient, store: VectorStore):
        self.embedding_client = embedding_client
        self.store = store

    def query(self, text: str, top_k: int) -> List[QueryResult]:
        """Return up to ``top_k`` results ordered best-first.

        Raises:
            InvalidArgumentError: If ``top_k`` is not positive or ``text`` is blank
        """
        if top_k <= 0:
            raise InvalidArgumentError(f"top_k must be greater than 0, got {top_k}")
        if not text or not text.strip():
            raise InvalidArgumentError("Query text must not be empty")

        vector = self.embedding_client.embed_query(text)
        hits = self.store.nearest_neighbors(vector, top_k)

        # Stable ordering for equal distances
        ordered = sorted(hits, key=lambda hit: (hit.score, hit.id))[:top_k]
        logger.debug("Query returned %d hits", len(ordered))

        return [
            QueryResult.from_store_hit(hit, rank)
            for rank, hit in enumerate(ordered, start=1)
        ]
