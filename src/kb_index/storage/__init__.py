"""Vector store adapters."""

from .chroma_store import ChromaVectorStore
from .memory_store import InMemoryVectorStore
from .vector_store import VectorStore

__all__ = ["ChromaVectorStore", "InMemoryVectorStore", "VectorStore"]
