"""Tests for YAML + .env configuration loading."""

import pytest

from tooltalk.config import load_config
from tooltalk.core.types import EndpointBackend, EvictionPolicy, StorageBackend
from tooltalk.errors import ConfigError


def write(path, text):
    path.write_text(text, encoding="utf-8")
    return path


class TestLoadConfig:
    def test_defaults_from_minimal_file(self, tmp_path):
        config = load_config(write(tmp_path / "config.yaml", "{}\n"), tmp_path / "missing.env")
        assert config.ai.backend == EndpointBackend.OPENAI
        assert config.ai.max_turns == 10
        assert config.manager.max_cached_sessions == 100
        assert config.manager.eviction == EvictionPolicy.INSERTION
        assert config.storage.backend == StorageBackend.SQLITE
        assert config.openai is None

    def test_env_file_and_data_dir_interpolation(self, tmp_path, monkeypatch):
        monkeypatch.delenv("TOOLTALK_TEST_KEY", raising=False)
        env = write(tmp_path / ".env", "TOOLTALK_TEST_KEY=sk-from-env\n")
        config_file = write(
            tmp_path / "config.yaml",
            "data_dir: /srv/tooltalk\n"
            "openai:\n"
            "  api_key: ${TOOLTALK_TEST_KEY}\n"
            "storage:\n"
            "  backend: memory\n"
            "  db_path: ${data_dir}/chat.db\n"
            "manager:\n"
            "  eviction: access\n",
        )
        config = load_config(config_file, env)
        assert config.openai.api_key == "sk-from-env"
        assert config.storage.db_path == "/srv/tooltalk/chat.db"
        assert config.storage.backend == StorageBackend.MEMORY
        assert config.manager.eviction == EvictionPolicy.ACCESS

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            load_config(tmp_path / "nope.yaml", tmp_path / ".env")

    def test_invalid_yaml(self, tmp_path):
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_config(write(tmp_path / "config.yaml", "ai: [unclosed\n"), tmp_path / ".env")

    def test_non_mapping_root(self, tmp_path):
        with pytest.raises(ConfigError, match="mapping"):
            load_config(write(tmp_path / "config.yaml", "- a\n- b\n"), tmp_path / ".env")

    @pytest.mark.parametrize(
        "body",
        [
            "ai:\n  max_turns: 0\n",
            "ai:\n  backend: cohere\n",
            "manager:\n  max_cached_sessions: 0\n",
            "manager:\n  eviction: random\n",
        ],
    )
    def test_validation_errors(self, tmp_path, body):
        with pytest.raises(ConfigError, match="Invalid configuration"):
            load_config(write(tmp_path / "config.yaml", body), tmp_path / ".env")
