"""Service clients for external APIs."""

from .chroma import ChromaClient
from .embedding_client import BatchOutcome, EmbeddingClient
from .embedding_provider import EmbeddingProvider
from .openai_client import OpenAIClient

__all__ = [
    "BatchOutcome",
    "ChromaClient",
    "EmbeddingClient",
    "EmbeddingProvider",
    "OpenAIClient",
]
