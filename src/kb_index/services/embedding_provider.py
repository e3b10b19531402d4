"""Abstract base class for embedding providers."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ..errors import EmbeddingError

logger = logging.getLogger(__name__)


@dataclass
class BatchEmbeddingResult:
    """Result from batch embedding generation."""

    embeddings: List[List[float]]
    model: str
    total_tokens_used: Optional[int] = None
    provider: str = ""


class EmbeddingProvider(ABC):
    """Abstract base class for embedding providers.

    A provider performs exactly one remote call per ``get_embeddings_batch``
    and raises ``EmbeddingError`` (or a subclass) on failure. Retrying,
    sub-batching and concurrency belong to ``EmbeddingClient``.
    """

    @abstractmethod
    def get_embeddings_batch(
        self, texts: List[str], model: Optional[str] = None
    ) -> List[List[float]]:
        """Generate embeddings for multiple texts in one request.

        Args:
            texts: List of texts to embed
            model: Optional model override

        Returns:
            List of embedding vectors (one per input text, same order)
        """
        pass

    def get_embeddings_batch_with_metadata(
        self, texts: List[str], model: Optional[str] = None
    ) -> BatchEmbeddingResult:
        """Generate batch embeddings with metadata."""
        return BatchEmbeddingResult(
            embeddings=self.get_embeddings_batch(texts, model),
            model=model or self.get_current_model(),
            provider=self.get_provider_name(),
        )

    def health_check(self, test_api: bool = False) -> bool:
        """Check if the provider is configured well enough to be called.

        Args:
            test_api: If True, embed one short text to test connectivity.
        """
        if not self.get_current_model():
            return False
        if not test_api:
            return True

        try:
            self.get_embeddings_batch(["test"])
            return True
        except EmbeddingError as e:
            logger.warning("%s health check failed: %s", self.get_provider_name(), e)
            return False

    @abstractmethod
    def get_model_info(self) -> Dict[str, Any]:
        """Get information about the current model.

        Returns:
            Dictionary with model information (dimensions, max_tokens, etc.)
        """
        pass

    @abstractmethod
    def get_provider_name(self) -> str:
        """Get the name of this embedding provider."""
        pass

    @abstractmethod
    def get_current_model(self) -> str:
        """Get the current active model name."""
        pass
