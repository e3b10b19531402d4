"""OpenAI API client for embeddings generation."""

import logging
from typing import Any, Dict, List, Optional

import httpx

from ..config import OpenAIConfig
from ..errors import AuthenticationError, EmbeddingError, RateLimitError
from .embedding_provider import BatchEmbeddingResult, EmbeddingProvider

logger = logging.getLogger(__name__)

# OpenAI model dimensions (as of API documentation)
MODEL_DIMENSIONS = {
    "text-embedding-3-large": 3072,
    "text-embedding-3-small": 1536,
    "text-embedding-ada-002": 1536,
}


def _parse_retry_after(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


class OpenAIClient(EmbeddingProvider):
    """Client for interacting with the OpenAI embeddings API.

    Each call is a single HTTP request; failures are classified into the
    ``EmbeddingError`` hierarchy so the caller can decide whether to retry.
    """

    def __init__(self, config: OpenAIConfig, api_key: str):
        if not api_key:
            raise AuthenticationError("An OpenAI API key is required", status_code=None)
        self.config = config
        self.api_key = api_key

        # HTTP client is created per request so worker threads never share one

    def health_check(self, test_api: bool = False) -> bool:
        """Check if the client is configured correctly.

        Args:
            test_api: If True, make an actual API call to test connectivity.
        """
        config_valid = bool(self.api_key and self.config.model and self.config.api_endpoint)
        if not config_valid or not test_api:
            return config_valid

        try:
            self._make_sync_request(["test"])
            return True
        except EmbeddingError as e:
            logger.warning("OpenAI health check failed: %s", e)
            return False

    def _make_sync_request(
        self, texts: List[str], model: Optional[str] = None
    ) -> Dict[str, Any]:
        """Make one synchronous request to the embeddings endpoint."""
        payload = {"input": texts, "model": model or self.config.model}

        try:
            with httpx.Client(
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                timeout=self.config.timeout,
            ) as client:
                response = client.post(self.config.api_endpoint, json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise self._classify_status_error(e.response) from e
        except httpx.RequestError as e:
            raise EmbeddingError(
                f"Failed to connect to OpenAI: {e}", retryable=True
            ) from e

        try:
            result = response.json()
        except ValueError as e:
            raise EmbeddingError(f"Malformed response from OpenAI: {e}") from e

        if not isinstance(result, dict):
            raise EmbeddingError(f"Unexpected response format: {type(result)}")
        return result

    @staticmethod
    def _classify_status_error(response: httpx.Response) -> EmbeddingError:
        status = response.status_code
        try:
            body = response.json()
            detail = body.get("error", {}) if isinstance(body, dict) else {}
        except ValueError:
            detail = {}
        message = detail.get("message") or response.text or response.reason_phrase

        if status in (401, 403):
            return AuthenticationError(
                f"OpenAI rejected the API key (HTTP {status}): {message}",
                status_code=status,
            )
        if status == 429:
            # Exhausted quota also comes back as 429 but will not clear by waiting
            if detail.get("code") == "insufficient_quota":
                return EmbeddingError(
                    f"OpenAI quota exhausted: {message}", status_code=status
                )
            return RateLimitError(
                f"OpenAI rate limit exceeded: {message}",
                retry_after=_parse_retry_after(response.headers.get("retry-after")),
            )
        if status >= 500:
            return EmbeddingError(
                f"OpenAI server error (HTTP {status}): {message}",
                retryable=True,
                status_code=status,
            )
        return EmbeddingError(
            f"OpenAI API error (HTTP {status}): {message}", status_code=status
        )

    def get_embeddings_batch(
        self, texts: List[str], model: Optional[str] = None
    ) -> List[List[float]]:
        """Generate embeddings for multiple texts in one request."""
        return self.get_embeddings_batch_with_metadata(texts, model).embeddings

    def get_embeddings_batch_with_metadata(
        self, texts: List[str], model: Optional[str] = None
    ) -> BatchEmbeddingResult:
        """Generate batch embeddings with metadata."""
        model_name = model or self.config.model
        if not texts:
            return BatchEmbeddingResult(embeddings=[], model=model_name, provider="openai")

        result = self._make_sync_request(texts, model)
        data = result.get("data")
        if not isinstance(data, list) or len(data) != len(texts):
            got = len(data) if isinstance(data, list) else 0
            raise EmbeddingError(
                f"OpenAI returned {got} embeddings for {len(texts)} inputs"
            )

        # The API documents data[i].index; do not rely on response order
        ordered = sorted(data, key=lambda item: item.get("index", 0))
        usage = result.get("usage", {})

        return BatchEmbeddingResult(
            embeddings=[list(item["embedding"]) for item in ordered],
            model=model_name,
            total_tokens_used=usage.get("total_tokens"),
            provider="openai",
        )

    def get_model_info(self) -> Dict[str, Any]:
        """Get information about the current model."""
        model_name = self.config.model
        return {
            "name": model_name,
            "provider": "openai",
            "dimensions": MODEL_DIMENSIONS.get(model_name, 1536),
            "max_tokens": 8191,
            "supports_batch": True,
            "api_endpoint": self.config.api_endpoint,
        }

    def get_provider_name(self) -> str:
        return "openai"

    def get_current_model(self) -> str:
        return self.config.model
