"""Abstract base class for vector stores.

Defines the interface the indexer and query engine use, allowing kb-index
to work with different stores:
- ChromaVectorStore: a Chroma server reached over its REST API
- InMemoryVectorStore: process-local store used by tests and dry runs
"""

from abc import ABC, abstractmethod
from typing import List, Sequence

from ..models import IndexedRecord, StoreHit


class VectorStore(ABC):
    """Abstract interface for vector stores.

    Scores returned by ``nearest_neighbors`` are distances: lower is closer.
    Hits are ordered best-first, ties broken by id ascending. Stores never
    retry; connection failures raise ``StoreUnavailableError``.
    """

    @abstractmethod
    def upsert(self, records: Sequence[IndexedRecord]) -> None:
        """Insert or replace records by id.

        Upserting the same id twice leaves a single record holding the
        latest vector and metadata.
        """
        pass

    @abstractmethod
    def nearest_neighbors(self, vector: Sequence[float], k: int) -> List[StoreHit]:
        """Return at most ``k`` hits, fewer if the store holds fewer records."""
        pass

    @abstractmethod
    def delete(self, ids: Sequence[str]) -> None:
        """Delete records by id; unknown ids are ignored."""
        pass

    @abstractmethod
    def count(self) -> int:
        """Number of records currently stored."""
        pass

    def health_check(self) -> bool:
        """Check if the store can be reached."""
        return True

    def close(self) -> None:
        """Release any resources held by the store."""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


__all__ = ["VectorStore", "StoreHit"]
