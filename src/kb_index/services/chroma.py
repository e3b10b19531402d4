"""Chroma vector database client (v2 REST API)."""

import logging
from typing import Any, Dict, List, Optional, Sequence

import httpx

from ..config import ChromaConfig
from ..errors import StoreUnavailableError, VectorStoreError

logger = logging.getLogger(__name__)

DISTANCE_SPACE = "cosine"


class ChromaClient:
    """Client for interacting with a Chroma server over HTTP.

    Collections are created with cosine space, so query distances are
    ``1 - cosine_similarity``.
    """

    def __init__(self, host: str, config: Optional[ChromaConfig] = None):
        self.host = host.rstrip("/")
        self.config = config or ChromaConfig()
        self.client = httpx.Client(base_url=self.host, timeout=self.config.timeout)
        self._collection_id: Optional[str] = None

    @property
    def collections_path(self) -> str:
        return (
            f"/api/v2/tenants/{self.config.tenant}"
            f"/databases/{self.config.database}/collections"
        )

    def _request(
        self, method: str, path: str, json: Optional[Dict[str, Any]] = None
    ) -> httpx.Response:
        try:
            response = self.client.request(method, path, json=json)
            response.raise_for_status()
            return response
        except httpx.RequestError as e:
            raise StoreUnavailableError(
                f"Failed to connect to Chroma at {self.host}: {e}"
            ) from e
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            detail = e.response.text
            if status >= 500:
                raise StoreUnavailableError(
                    f"Chroma server error (HTTP {status}): {detail}", status_code=status
                ) from e
            raise VectorStoreError(
                f"Chroma API error (HTTP {status}): {detail}", status_code=status
            ) from e

    def health_check(self) -> bool:
        """Check if Chroma service is accessible."""
        try:
            self._request("GET", "/api/v2/heartbeat")
            return True
        except VectorStoreError as e:
            logger.debug("Chroma heartbeat failed: %s", e)
            return False

    def ensure_collection(self) -> str:
        """Get or create the configured collection and return its id."""
        if self._collection_id is not None:
            return self._collection_id

        response = self._request(
            "POST",
            self.collections_path,
            json={
                "name": self.config.collection,
                "metadata": {"hnsw:space": DISTANCE_SPACE},
                "get_or_create": True,
            },
        )
        data = response.json()
        collection_id = data.get("id") if isinstance(data, dict) else None
        if not collection_id:
            raise VectorStoreError(
                f"Chroma did not return an id for collection '{self.config.collection}'"
            )

        space = self._distance_space(data)
        if space is None:
            logger.warning(
                "Collection '%s' does not report its distance space; "
                "scores assume cosine",
                self.config.collection,
            )
        elif space != DISTANCE_SPACE:
            raise VectorStoreError(
                f"Collection '{self.config.collection}' uses '{space}' distance, "
                f"expected '{DISTANCE_SPACE}'. Configure a different collection name "
                "or delete the existing collection."
            )

        self._collection_id = str(collection_id)
        logger.debug(
            "Using Chroma collection %s (%s)", self.config.collection, self._collection_id
        )
        return self._collection_id

    @staticmethod
    def _distance_space(collection: Dict[str, Any]) -> Optional[str]:
        """Read the HNSW space from collection metadata or configuration."""
        metadata = collection.get("metadata") or {}
        if metadata.get("hnsw:space"):
            return str(metadata["hnsw:space"])

        configuration = (
            collection.get("configuration_json") or collection.get("configuration") or {}
        )
        hnsw = configuration.get("hnsw") or {}
        space = hnsw.get("space")
        return str(space) if space else None

    def _collection_path(self, action: str) -> str:
        return f"{self.collections_path}/{self.ensure_collection()}/{action}"

    def upsert(
        self,
        ids: Sequence[str],
        embeddings: Sequence[Sequence[float]],
        documents: Sequence[str],
        metadatas: Sequence[Dict[str, Any]],
    ) -> None:
        """Insert or replace records by id."""
        if not ids:
            return
        self._request(
            "POST",
            self._collection_path("upsert"),
            json={
                "ids": list(ids),
                "embeddings": [list(e) for e in embeddings],
                "documents": list(documents),
                "metadatas": list(metadatas),
            },
        )

    def query(self, embedding: Sequence[float], n_results: int) -> Dict[str, List[Any]]:
        """Nearest-neighbour query for one embedding.

        Returns:
            Dict with ``ids``, ``distances``, ``documents`` and ``metadatas``
            lists for the single query
        """
        response = self._request(
            "POST",
            self._collection_path("query"),
            json={
                "query_embeddings": [list(embedding)],
                "n_results": n_results,
                "include": ["documents", "metadatas", "distances"],
            },
        )
        result = response.json()

        def first(key: str) -> List[Any]:
            rows = result.get(key) or [[]]
            return list(rows[0] or [])

        return {
            "ids": first("ids"),
            "distances": first("distances"),
            "documents": first("documents"),
            "metadatas": first("metadatas"),
        }

    def delete(self, ids: Sequence[str]) -> None:
        """Delete records by id; unknown ids are ignored by Chroma."""
        if not ids:
            return
        self._request("POST", self._collection_path("delete"), json={"ids": list(ids)})

    def count(self) -> int:
        """Count records in the collection."""
        response = self._request("GET", self._collection_path("count"))
        return int(response.json())

    def close(self) -> None:
        """Close the HTTP client."""
        self.client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
