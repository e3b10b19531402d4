"""
Shared pytest fixtures for kb-index tests.

Provides in-memory fakes for the remote embedding service and the vector
store, plus helpers for building small file trees.
"""

import hashlib
import threading
from pathlib import Path
from typing import Callable, Dict, List, Optional

import pytest

from kb_index.config import Config, IndexingConfig, OpenAIConfig
from kb_index.services.embedding_client import EmbeddingClient
from kb_index.services.embedding_provider import EmbeddingProvider
from kb_index.storage.memory_store import InMemoryVectorStore


def vector_for(text: str, dimension: int = 8) -> List[float]:
    """Deterministic, non-zero vector for a text."""
    digest = hashlib.sha256(text.encode("utf-8")).digest()
    return [0.01 + b / 255.0 for b in digest[:dimension]]


class FakeEmbeddingProvider(EmbeddingProvider):
    """Embedding provider that never touches the network.

    ``failures`` are raised by successive calls before any vector is
    returned. ``fail_when`` can reject specific batches by content.
    """

    def __init__(
        self,
        dimension: int = 8,
        failures: Optional[List[Exception]] = None,
        fail_when: Optional[Callable[[List[str]], Optional[Exception]]] = None,
        model: str = "fake-embedding-model",
    ):
        self.dimension = dimension
        self.failures = list(failures or [])
        self.fail_when = fail_when
        self.model = model
        self.calls: List[List[str]] = []
        self._lock = threading.Lock()

    def get_embeddings_batch(self, texts, model=None):
        with self._lock:
            self.calls.append(list(texts))
            if self.failures:
                raise self.failures.pop(0)
        if self.fail_when is not None:
            error = self.fail_when(list(texts))
            if error is not None:
                raise error
        return [vector_for(t, self.dimension) for t in texts]

    def get_model_info(self) -> Dict[str, object]:
        return {"name": self.model, "provider": "fake", "dimensions": self.dimension}

    def get_provider_name(self) -> str:
        return "fake"

    def get_current_model(self) -> str:
        return self.model

    @property
    def embedded_texts(self) -> List[str]:
        return [text for call in self.calls for text in call]


@pytest.fixture
def provider_class():
    """The fake provider class, for tests that need custom failure scripts."""
    return FakeEmbeddingProvider


@pytest.fixture
def embed():
    """The deterministic text -> vector function used by the fake provider."""
    return vector_for


@pytest.fixture
def fast_openai_config() -> OpenAIConfig:
    """Retry settings without real waiting."""
    return OpenAIConfig(
        parallel_requests=2,
        batch_size=4,
        max_retries=3,
        retry_delay=0.0,
        max_retry_delay=0.0,
    )


@pytest.fixture
def kb_config(fast_openai_config) -> Config:
    return Config(
        openai=fast_openai_config,
        indexing=IndexingConfig(chunk_lines=10),
    )


@pytest.fixture
def fake_provider() -> FakeEmbeddingProvider:
    return FakeEmbeddingProvider()


@pytest.fixture
def embedding_client(fake_provider, fast_openai_config):
    client = EmbeddingClient(fake_provider, fast_openai_config)
    client.start()
    yield client
    client.shutdown()


@pytest.fixture
def memory_store() -> InMemoryVectorStore:
    return InMemoryVectorStore()


@pytest.fixture
def write_lines():
    """Write ``count`` numbered lines to ``path`` and return the path."""

    def _write(path: Path, count: int, prefix: str = "line") -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("".join(f"{prefix} {i}\n" for i in range(count)))
        return path

    return _write
