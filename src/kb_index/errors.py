"""Exception hierarchy shared by the indexing and query pipelines."""

from typing import Optional, Sequence, Tuple

# (source_path, start_line, end_line)
ChunkRange = Tuple[str, int, int]


class KbIndexError(Exception):
    """Base exception for kb-index errors."""

    pass


class ConfigurationError(KbIndexError):
    """Raised when required configuration (API key, host) is missing or invalid."""

    pass


class NotFoundError(KbIndexError):
    """Raised when the path to index does not exist."""

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.path = path


class DecodeError(KbIndexError):
    """Raised when a file is binary or cannot be decoded as UTF-8 text."""

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.path = path


class InvalidArgumentError(KbIndexError):
    """Raised when query parameters are rejected before any network call."""

    pass


class EmbeddingError(KbIndexError):
    """Exception raised when the embedding service fails for a batch.

    ``retryable`` marks transient conditions (rate limits, 5xx, transport
    errors). ``ranges`` lists the chunk ranges of the batch that failed, so a
    run can report exactly what was not indexed.
    """

    def __init__(
        self,
        message: str,
        retryable: bool = False,
        status_code: Optional[int] = None,
        ranges: Sequence[ChunkRange] = (),
    ):
        super().__init__(message)
        self.retryable = retryable
        self.status_code = status_code
        self.ranges: Tuple[ChunkRange, ...] = tuple(ranges)
        # Number of requests made before giving up
        self.attempts = 0

    def with_ranges(self, ranges: Sequence[ChunkRange]) -> "EmbeddingError":
        """Attach the failing batch's chunk ranges and return self."""
        self.ranges = tuple(ranges)
        return self


class RateLimitError(EmbeddingError):
    """Exception raised for rate limiting errors (429 responses)."""

    def __init__(self, message: str, retry_after: Optional[float] = None):
        super().__init__(message, retryable=True, status_code=429)
        self.retry_after = retry_after


class AuthenticationError(EmbeddingError):
    """Exception raised when the embedding service rejects the credentials.

    Always fatal for an indexing run.
    """

    def __init__(self, message: str, status_code: Optional[int] = 401):
        super().__init__(message, retryable=False, status_code=status_code)


class VectorStoreError(KbIndexError):
    """Exception raised when the vector store rejects a request."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class StoreUnavailableError(VectorStoreError):
    """Exception raised when the vector store cannot be reached."""

    pass
