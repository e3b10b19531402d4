"""Tests for configuration models and ConfigManager."""

import json
import os
import stat

import pytest
from pydantic import ValidationError

from kb_index.config import (
    API_KEY_ENV,
    CONFIG_DIR_ENV,
    Config,
    ConfigManager,
    IndexingConfig,
    OpenAIConfig,
    default_config_dir,
)
from kb_index.errors import ConfigurationError


class TestConfigModels:
    """Test suite for the pydantic configuration models."""

    def test_defaults(self):
        config = Config()

        assert config.chroma_host == "http://localhost:8000"
        assert config.file_extensions == ["md", "rs", "ts", "tsx", "js", "jsx"]
        assert config.openai.model == "text-embedding-3-large"
        assert config.chroma.collection == "kb_index"
        assert config.indexing.chunk_lines == 10

    def test_extensions_are_normalized(self):
        config = Config(file_extensions=[".MD", "ts", "."])
        assert config.file_extensions == ["md", "ts"]

    def test_chroma_host_validation(self):
        assert Config(chroma_host=" https://chroma:8000/ ").chroma_host == "https://chroma:8000"
        with pytest.raises(ValidationError):
            Config(chroma_host="localhost:8000")

    @pytest.mark.parametrize(
        "field,value",
        [("parallel_requests", 0), ("batch_size", 0), ("max_retries", -1)],
    )
    def test_openai_limits(self, field, value):
        with pytest.raises(ValidationError):
            OpenAIConfig(**{field: value})

    def test_chunk_lines_must_be_positive(self):
        with pytest.raises(ValidationError):
            IndexingConfig(chunk_lines=0)


class TestConfigManager:
    """Test suite for ConfigManager."""

    @pytest.fixture
    def manager(self, tmp_path):
        return ConfigManager(tmp_path / "config.json")

    def test_missing_file_gives_defaults(self, manager):
        assert manager.get_config() == Config()
        assert not manager.config_path.exists()

    def test_state_path_next_to_config(self, manager, tmp_path):
        assert manager.state_path == tmp_path / "index-state.json"

    def test_update_persists_and_restricts_permissions(self, manager):
        manager.update_config(chroma_host="http://chroma:9000", openai_api_key="sk-abc")

        data = json.loads(manager.config_path.read_text())
        assert data["chroma_host"] == "http://chroma:9000"
        assert data["openai_api_key"] == "sk-abc"
        assert stat.S_IMODE(os.stat(manager.config_path).st_mode) == 0o600

        assert ConfigManager(manager.config_path).get_config().chroma_host == (
            "http://chroma:9000"
        )

    def test_invalid_update_is_rejected(self, manager):
        with pytest.raises(ConfigurationError):
            manager.update_config(chroma_host="not-a-url")
        assert not manager.config_path.exists()

    def test_unreadable_config(self, manager):
        manager.config_path.write_text("{broken")

        with pytest.raises(ConfigurationError, match="Failed to load config"):
            manager.load()

    def test_nested_sections_load_from_file(self, manager):
        manager.config_path.write_text(
            json.dumps({"openai": {"batch_size": 16}, "chroma": {"collection": "docs"}})
        )

        config = manager.load()

        assert config.openai.batch_size == 16
        assert config.chroma.collection == "docs"

    def test_environment_api_key_takes_precedence(self, manager, monkeypatch):
        manager.update_config(openai_api_key="sk-file")
        monkeypatch.setenv(API_KEY_ENV, "sk-env")

        assert manager.resolve_api_key() == "sk-env"

    def test_api_key_from_file(self, manager, monkeypatch):
        monkeypatch.delenv(API_KEY_ENV, raising=False)
        manager.update_config(openai_api_key="sk-file")

        assert manager.resolve_api_key() == "sk-file"

    def test_missing_api_key(self, manager, monkeypatch):
        monkeypatch.delenv(API_KEY_ENV, raising=False)

        with pytest.raises(ConfigurationError, match=API_KEY_ENV):
            manager.resolve_api_key()

    def test_config_dir_override(self, tmp_path, monkeypatch):
        monkeypatch.setenv(CONFIG_DIR_ENV, str(tmp_path / "custom"))

        assert default_config_dir() == tmp_path / "custom"
        assert ConfigManager().config_path == tmp_path / "custom" / "config.json"
