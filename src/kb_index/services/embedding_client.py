"""
Multi-threaded embedding client for batched, retried embedding requests.

Provides thread pool management for embedding requests while keeping file
I/O, chunking and vector store writes on the caller's thread. Every batch
result carries its own chunks, so vectors are always regrouped with the exact
texts they were computed from.
"""

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, replace
from typing import List, Optional, Sequence, Tuple

from ..config import OpenAIConfig
from ..errors import ChunkRange, EmbeddingError, RateLimitError
from ..models import Chunk, EmbeddedChunk
from .embedding_provider import EmbeddingProvider

logger = logging.getLogger(__name__)

Vector = Tuple[float, ...]


class _Cancelled(Exception):
    """Raised inside a worker when cancellation interrupts a batch."""


@dataclass(frozen=True)
class BatchOutcome:
    """Result of one sub-batch: its chunks plus either vectors or an error."""

    batch_id: str
    chunks: Tuple[Chunk, ...]
    vectors: Tuple[Vector, ...] = ()
    error: Optional[EmbeddingError] = None
    cancelled: bool = False
    attempts: int = 0
    processing_time: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.error is None and not self.cancelled

    @property
    def ranges(self) -> Tuple[ChunkRange, ...]:
        return tuple(chunk.range for chunk in self.chunks)

    def embedded_chunks(self) -> List[EmbeddedChunk]:
        if not self.succeeded:
            return []
        return [
            EmbeddedChunk(chunk=chunk, vector=vector)
            for chunk, vector in zip(self.chunks, self.vectors)
        ]


@dataclass
class EmbeddingStats:
    """Statistics for embedding request performance."""

    total_batches_submitted: int = 0
    total_batches_completed: int = 0
    total_batches_failed: int = 0
    total_batches_cancelled: int = 0
    total_embeddings_processed: int = 0
    total_retries: int = 0
    rate_limited_count: int = 0
    total_processing_time: float = 0.0
    average_processing_time: float = 0.0


class EmbeddingClient:
    """Manages batched, parallel and retried embedding requests.

    At most ``parallel_requests`` remote calls are in flight at once. A call
    that fails with a retryable error is retried with exponential backoff up
    to ``max_retries`` times; non-retryable errors surface immediately.
    """

    def __init__(self, provider: EmbeddingProvider, config: OpenAIConfig):
        """
        Initialize the embedding client.

        Args:
            provider: Provider performing single embedding requests
            config: Batch size, concurrency and retry settings
        """
        self.provider = provider
        self.config = config
        self.thread_count = config.parallel_requests
        self.batch_size = config.batch_size

        self.executor: Optional[ThreadPoolExecutor] = None
        self.is_running = False

        # Cancellation support
        self.cancellation_event = threading.Event()

        self.stats = EmbeddingStats()
        self.stats_lock = threading.Lock()

        self.batch_counter = 0
        self.batch_counter_lock = threading.Lock()

        # Every vector of a run must have the same dimensionality
        self._dimension: Optional[int] = None
        self._dimension_lock = threading.Lock()

    @property
    def dimension(self) -> Optional[int]:
        return self._dimension

    def start(self):
        """Start the thread pool."""
        if self.is_running:
            return

        self.executor = ThreadPoolExecutor(
            max_workers=self.thread_count, thread_name_prefix="Embedding"
        )
        self.is_running = True
        logger.debug("Started embedding thread pool with %d workers", self.thread_count)

    def request_cancellation(self):
        """Stop issuing new requests; pending batches resolve as cancelled."""
        self.cancellation_event.set()
        logger.info("Embedding cancellation requested")

    def reset_cancellation(self):
        """Accept work again after a cancelled or aborted run."""
        self.cancellation_event.clear()

    @property
    def cancelled(self) -> bool:
        return self.cancellation_event.is_set()

    def _next_batch_id(self) -> str:
        with self.batch_counter_lock:
            self.batch_counter += 1
            return f"batch_{self.batch_counter}"

    def _split(self, items: Sequence) -> List[Sequence]:
        return [
            items[i : i + self.batch_size] for i in range(0, len(items), self.batch_size)
        ]

    def submit_chunks(self, chunks: Sequence[Chunk]) -> "List[Future[BatchOutcome]]":
        """
        Submit chunks for embedding, one future per sub-batch.

        Args:
            chunks: Chunks to embed, in any order

        Returns:
            Futures resolving to BatchOutcome; they never raise
        """
        if not self.is_running:
            self.start()
        if not self.executor:
            raise RuntimeError("Thread pool not started")

        futures: "List[Future[BatchOutcome]]" = []
        for group in self._split(list(chunks)):
            batch_id = self._next_batch_id()
            group = tuple(group)

            if self.cancellation_event.is_set():
                cancelled_future: "Future[BatchOutcome]" = Future()
                cancelled_future.set_result(
                    BatchOutcome(batch_id=batch_id, chunks=group, cancelled=True)
                )
                futures.append(cancelled_future)
                continue

            with self.stats_lock:
                self.stats.total_batches_submitted += 1
            futures.append(self.executor.submit(self._process_batch, batch_id, group))

        return futures

    def _process_batch(self, batch_id: str, chunks: Tuple[Chunk, ...]) -> BatchOutcome:
        """Embed one sub-batch (runs in worker thread)."""
        start_time = time.time()

        try:
            vectors, attempts = self._embed_with_retry([c.text for c in chunks])
        except _Cancelled:
            with self.stats_lock:
                self.stats.total_batches_cancelled += 1
            return BatchOutcome(
                batch_id=batch_id,
                chunks=chunks,
                cancelled=True,
                processing_time=time.time() - start_time,
            )
        except EmbeddingError as e:
            processing_time = time.time() - start_time
            with self.stats_lock:
                self.stats.total_batches_failed += 1
                self.stats.total_batches_completed += 1
            logger.error("Embedding failed for %s: %s", batch_id, e)
            return BatchOutcome(
                batch_id=batch_id,
                chunks=chunks,
                error=e.with_ranges([c.range for c in chunks]),
                attempts=e.attempts,
                processing_time=processing_time,
            )

        processing_time = time.time() - start_time
        with self.stats_lock:
            self.stats.total_batches_completed += 1
            self.stats.total_embeddings_processed += len(vectors)
            self.stats.total_processing_time += processing_time
            self.stats.average_processing_time = (
                self.stats.total_processing_time / self.stats.total_batches_completed
            )

        return BatchOutcome(
            batch_id=batch_id,
            chunks=chunks,
            vectors=tuple(vectors),
            attempts=attempts,
            processing_time=processing_time,
        )

    def _retry_delay(self, attempt: int, error: EmbeddingError) -> float:
        if isinstance(error, RateLimitError) and error.retry_after is not None:
            delay = error.retry_after
        elif self.config.exponential_backoff:
            delay = self.config.retry_delay * (2**attempt)
        else:
            delay = self.config.retry_delay
        return min(delay, self.config.max_retry_delay)

    def _embed_with_retry(self, texts: List[str]) -> Tuple[List[Vector], int]:
        """Call the provider, retrying retryable failures.

        Returns:
            The vectors and the number of attempts made

        Raises:
            EmbeddingError: Non-retryable failure or retries exhausted
            _Cancelled: Cancellation was requested before or between attempts
        """
        attempt = 0
        while True:
            if self.cancellation_event.is_set():
                raise _Cancelled()

            try:
                raw = self.provider.get_embeddings_batch(texts)
            except EmbeddingError as e:
                error = e
            except Exception as e:
                wrapped = EmbeddingError(f"Embedding request failed: {e}")
                wrapped.__cause__ = e
                error = wrapped
            else:
                return self._validate(texts, raw), attempt + 1

            if not error.retryable or attempt >= self.config.max_retries:
                error.attempts = attempt + 1
                raise error

            delay = self._retry_delay(attempt, error)
            with self.stats_lock:
                self.stats.total_retries += 1
                if isinstance(error, RateLimitError):
                    self.stats.rate_limited_count += 1
            logger.warning(
                "Retryable embedding error (attempt %d/%d), retrying in %.1fs: %s",
                attempt + 1,
                self.config.max_retries + 1,
                delay,
                error,
            )

            # Returns True as soon as cancellation is requested
            if self.cancellation_event.wait(delay):
                raise _Cancelled()
            attempt += 1

    def _validate(self, texts: List[str], raw: List[List[float]]) -> List[Vector]:
        if len(raw) != len(texts):
            raise EmbeddingError(
                f"Provider returned {len(raw)} embeddings for {len(texts)} inputs"
            )

        vectors = [tuple(float(x) for x in v) for v in raw]
        with self._dimension_lock:
            for vector in vectors:
                if self._dimension is None:
                    self._dimension = len(vector)
                elif len(vector) != self._dimension:
                    raise EmbeddingError(
                        f"Embedding dimension changed from {self._dimension} "
                        f"to {len(vector)}"
                    )
        return vectors

    def embed_batch(self, texts: Sequence[str]) -> List[List[float]]:
        """Embed texts, preserving input order one-to-one.

        Raises:
            EmbeddingError: If any sub-batch fails or the client was cancelled
        """
        if not texts:
            return []
        if not self.is_running:
            self.start()
        if not self.executor:
            raise RuntimeError("Thread pool not started")

        futures = [
            self.executor.submit(self._embed_with_retry, list(group))
            for group in self._split(list(texts))
        ]

        vectors: List[List[float]] = []
        for future in futures:
            try:
                batch_vectors, _ = future.result()
            except _Cancelled:
                raise EmbeddingError("Embedding cancelled") from None
            vectors.extend(list(v) for v in batch_vectors)
        return vectors

    def embed_query(self, text: str) -> List[float]:
        """Embed a single query text on the calling thread."""
        try:
            vectors, _ = self._embed_with_retry([text])
        except _Cancelled:
            raise EmbeddingError("Embedding cancelled") from None
        return list(vectors[0])

    def get_stats(self) -> EmbeddingStats:
        """Get a snapshot of the current statistics."""
        with self.stats_lock:
            return replace(self.stats)

    def shutdown(self, wait: bool = True):
        """Shutdown the thread pool."""
        if not self.is_running or not self.executor:
            return

        self.is_running = False
        self.executor.shutdown(wait=wait)
        self.executor = None
        logger.debug("Embedding thread pool shut down")

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.shutdown(wait=True)
