"""Vector store backed by a Chroma collection."""

import logging
from typing import List, Sequence

from ..config import Config
from ..models import IndexedRecord, StoreHit
from ..services.chroma import ChromaClient
from .vector_store import VectorStore

logger = logging.getLogger(__name__)


class ChromaVectorStore(VectorStore):
    """Adapts ChromaClient to the VectorStore interface.

    Record metadata goes to Chroma's ``metadatas`` except for the chunk text,
    which is stored as the document and merged back on query.
    """

    def __init__(self, client: ChromaClient):
        self.client = client

    @classmethod
    def from_config(cls, config: Config) -> "ChromaVectorStore":
        return cls(ChromaClient(config.chroma_host, config.chroma))

    def upsert(self, records: Sequence[IndexedRecord]) -> None:
        if not records:
            return

        ids: List[str] = []
        embeddings: List[List[float]] = []
        documents: List[str] = []
        metadatas: List[dict] = []
        for record in records:
            metadata = dict(record.metadata)
            documents.append(str(metadata.pop("text", "")))
            ids.append(record.id)
            embeddings.append(list(record.vector))
            metadatas.append(metadata)

        self.client.upsert(ids, embeddings, documents, metadatas)
        logger.debug("Upserted %d records into Chroma", len(ids))

    def nearest_neighbors(self, vector: Sequence[float], k: int) -> List[StoreHit]:
        if k <= 0:
            return []

        result = self.client.query(vector, k)
        hits = []
        for record_id, distance, document, metadata in zip(
            result["ids"], result["distances"], result["documents"], result["metadatas"]
        ):
            merged = dict(metadata or {})
            merged["text"] = document if document is not None else ""
            hits.append(StoreHit(id=record_id, metadata=merged, score=float(distance)))

        # Chroma orders by distance; make equal distances deterministic
        hits.sort(key=lambda hit: (hit.score, hit.id))
        return hits[:k]

    def delete(self, ids: Sequence[str]) -> None:
        self.client.delete(list(ids))

    def count(self) -> int:
        return self.client.count()

    def health_check(self) -> bool:
        return self.client.health_check()

    def close(self) -> None:
        self.client.close()
