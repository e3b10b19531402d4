"""Configuration management for kb-index."""

import json
import logging
import os
from pathlib import Path
from typing import Any, List, Optional

from pydantic import BaseModel, Field, field_validator

from .errors import ConfigurationError
from .models import SUPPORTED_EXTENSIONS

logger = logging.getLogger(__name__)

CONFIG_DIR_ENV = "KB_INDEX_CONFIG_DIR"
API_KEY_ENV = "OPENAI_API_KEY"


class OpenAIConfig(BaseModel):
    """Configuration for the OpenAI embeddings API.

    API documentation: https://platform.openai.com/docs/api-reference/embeddings
    """

    # API key lives on the top-level Config or in the OPENAI_API_KEY environment variable
    api_endpoint: str = Field(
        default="https://api.openai.com/v1/embeddings",
        description="OpenAI embeddings endpoint URL",
    )
    model: str = Field(
        default="text-embedding-3-large",
        description="Embedding model name (e.g., text-embedding-3-large, text-embedding-3-small)",
    )
    timeout: int = Field(default=30, description="Request timeout in seconds")

    # Parallel processing configuration
    parallel_requests: int = Field(
        default=4, description="Number of concurrent requests to the embeddings API"
    )
    batch_size: int = Field(
        default=64,
        description="Maximum number of texts to send in a single batch request",
    )

    # Retry configuration for rate limits, server errors and transient failures
    max_retries: int = Field(
        default=3, description="Maximum number of retries for failed requests"
    )
    retry_delay: float = Field(
        default=1.0, description="Initial delay between retries in seconds"
    )
    max_retry_delay: float = Field(
        default=60.0, description="Upper bound for a single retry delay in seconds"
    )
    exponential_backoff: bool = Field(
        default=True, description="Use exponential backoff for retries"
    )

    @field_validator("parallel_requests", "batch_size")
    @classmethod
    def must_be_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("must be greater than 0")
        return v

    @field_validator("max_retries")
    @classmethod
    def must_not_be_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("must be 0 or greater")
        return v


class ChromaConfig(BaseModel):
    """Configuration for the Chroma collection that stores chunk vectors."""

    tenant: str = Field(default="default_tenant", description="Chroma tenant")
    database: str = Field(default="default_database", description="Chroma database")
    collection: str = Field(default="kb_index", description="Collection name")
    timeout: int = Field(default=30, description="Request timeout in seconds")


class IndexingConfig(BaseModel):
    """Configuration for indexing behavior."""

    chunk_lines: int = Field(default=10, description="Number of lines per chunk")
    max_file_size: int = Field(
        default=1048576, description="Maximum file size to index in bytes"
    )
    # text-embedding-3 models accept 8191 tokens per input
    max_chunk_chars: int = Field(
        default=24000,
        description="Chunks longer than this are reported and not embedded",
    )

    @field_validator("chunk_lines")
    @classmethod
    def chunk_lines_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("chunk_lines must be greater than 0")
        return v


class Config(BaseModel):
    """Main configuration for kb-index."""

    chroma_host: str = Field(
        default="http://localhost:8000", description="Chroma server URL"
    )
    openai_api_key: Optional[str] = Field(
        default=None,
        description="OpenAI API key (OPENAI_API_KEY environment variable takes precedence)",
    )
    file_extensions: List[str] = Field(
        default=list(SUPPORTED_EXTENSIONS),
        description="File extensions to index",
    )
    exclude_dirs: List[str] = Field(
        default=[
            "node_modules",
            ".git",
            "target",
            "dist",
            "build",
            ".next",
            ".idea",
            ".vscode",
            "coverage",
        ],
        description="Directories to exclude from indexing",
    )
    syntax_theme: str = Field(
        default="gruvbox-dark", description="Pygments theme for pretty query output"
    )

    openai: OpenAIConfig = Field(default_factory=OpenAIConfig)
    chroma: ChromaConfig = Field(default_factory=ChromaConfig)
    indexing: IndexingConfig = Field(default_factory=IndexingConfig)

    @field_validator("chroma_host")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        v = v.strip()
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"chroma_host must be an http(s) URL, got {v!r}")
        return v.rstrip("/")

    @field_validator("file_extensions")
    @classmethod
    def normalize_extensions(cls, v: List[str]) -> List[str]:
        """Remove dots from file extensions."""
        return [ext.lstrip(".").lower() for ext in v if ext.strip(".")]


def default_config_dir() -> Path:
    """Directory holding config.json and the index state."""
    override = os.environ.get(CONFIG_DIR_ENV)
    if override:
        return Path(override).expanduser()
    return Path.home() / ".config" / "kb-index"


class ConfigManager:
    """Manages configuration loading, saving, and validation."""

    CONFIG_FILENAME = "config.json"
    STATE_FILENAME = "index-state.json"

    def __init__(self, config_path: Optional[Path] = None):
        self.config_path = config_path or default_config_dir() / self.CONFIG_FILENAME
        self._config: Optional[Config] = None

    @property
    def config_dir(self) -> Path:
        return self.config_path.parent

    @property
    def state_path(self) -> Path:
        return self.config_dir / self.STATE_FILENAME

    def load(self) -> Config:
        """Load configuration from file, or defaults when no file exists yet."""
        if self.config_path.exists():
            try:
                with open(self.config_path, "r") as f:
                    data = json.load(f)
                self._config = Config(**data)
            except Exception as e:
                raise ConfigurationError(
                    f"Failed to load config from {self.config_path}: {e}"
                ) from e
        else:
            logger.debug("No config at %s, using defaults", self.config_path)
            self._config = Config()

        return self._config

    def save(self, config: Optional[Config] = None) -> None:
        """Save configuration to file."""
        if config is None:
            config = self._config

        if config is None:
            raise ValueError("No configuration to save")

        self.config_path.parent.mkdir(parents=True, exist_ok=True)

        with open(self.config_path, "w") as f:
            json.dump(config.model_dump(), f, indent=2)

        # The file may hold an API key
        try:
            os.chmod(self.config_path, 0o600)
        except OSError as e:
            logger.warning("Could not restrict permissions on %s: %s", self.config_path, e)

        self._config = config

    def get_config(self) -> Config:
        """Get current configuration, loading if necessary."""
        if self._config is None:
            self.load()
        if self._config is None:
            raise RuntimeError("Failed to load configuration")
        return self._config

    def update_config(self, **kwargs: Any) -> Config:
        """Update configuration with new values and persist it."""
        config = self.get_config()

        config_dict = config.model_dump()
        config_dict.update(kwargs)

        try:
            new_config = Config(**config_dict)
        except ValueError as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e
        self.save(new_config)
        return new_config

    def resolve_api_key(self) -> str:
        """Return the API key from the environment, falling back to the config file."""
        env_key = os.environ.get(API_KEY_ENV, "").strip()
        if env_key:
            return env_key

        stored = self.get_config().openai_api_key
        if stored and stored.strip():
            return stored.strip()

        raise ConfigurationError(
            f"OpenAI API key not found. Set {API_KEY_ENV} or run "
            "'kb-index config --set-api-key KEY'"
        )
