"""Process-local vector store using exact cosine distance."""

import threading
from typing import Any, Dict, List, Sequence, Tuple

import numpy as np

from ..errors import VectorStoreError
from ..models import IndexedRecord, StoreHit
from .vector_store import VectorStore


class InMemoryVectorStore(VectorStore):
    """Brute-force store keeping every record in a dict.

    Distances are ``1 - cosine_similarity``, matching Chroma's cosine space.
    """

    def __init__(self):
        self._records: Dict[str, Tuple[np.ndarray, Dict[str, Any]]] = {}
        self._lock = threading.Lock()

    def upsert(self, records: Sequence[IndexedRecord]) -> None:
        with self._lock:
            for record in records:
                vector = np.asarray(record.vector, dtype=np.float64)
                if vector.ndim != 1 or vector.size == 0:
                    raise VectorStoreError(f"Invalid vector for record {record.id}")
                self._records[record.id] = (vector, dict(record.metadata))

    def nearest_neighbors(self, vector: Sequence[float], k: int) -> List[StoreHit]:
        if k <= 0:
            return []

        query = np.asarray(vector, dtype=np.float64)
        with self._lock:
            items = list(self._records.items())
        if not items:
            return []

        ids = [record_id for record_id, _ in items]
        try:
            matrix = np.vstack([vec for _, (vec, _) in items])
        except ValueError as e:
            raise VectorStoreError(f"Stored vectors have mixed dimensions: {e}") from e
        if matrix.shape[1] != query.shape[0]:
            raise VectorStoreError(
                f"Query dimension {query.shape[0]} does not match store "
                f"dimension {matrix.shape[1]}"
            )

        norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
        similarities = np.divide(
            matrix @ query, norms, out=np.zeros(len(ids)), where=norms > 0
        )
        distances = 1.0 - similarities

        metadata_by_id = {record_id: metadata for record_id, (_, metadata) in items}
        ranked = sorted(zip(distances.tolist(), ids))
        return [
            StoreHit(
                id=record_id,
                metadata=dict(metadata_by_id[record_id]),
                score=float(distance),
            )
            for distance, record_id in ranked[:k]
        ]

    def delete(self, ids: Sequence[str]) -> None:
        with self._lock:
            for record_id in ids:
                self._records.pop(record_id, None)

    def count(self) -> int:
        with self._lock:
            return len(self._records)

    def get(self, record_id: str) -> Tuple[Tuple[float, ...], Dict[str, Any]]:
        """Return the stored vector and metadata for an id."""
        with self._lock:
            vector, metadata = self._records[record_id]
        return tuple(vector.tolist()), dict(metadata)

    def ids(self) -> List[str]:
        with self._lock:
            return sorted(self._records)
