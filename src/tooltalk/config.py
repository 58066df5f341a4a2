"""Configuration loader with YAML parsing, env-var interpolation, and Pydantic validation."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError

from tooltalk.core.types import EndpointBackend, EvictionPolicy, StorageBackend
from tooltalk.errors import ConfigError


class AIConfig(BaseModel):
    backend: EndpointBackend = EndpointBackend.OPENAI
    model: str = "gpt-4o"
    max_tokens: int = Field(default=1024, ge=1)
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    system_prompt: str = ""
    max_turns: int = Field(default=10, ge=1)
    json_mode: bool = False
    tools: list[str] = Field(default_factory=list)


class OpenAIConfig(BaseModel):
    api_key: str = ""
    base_url: str = "https://api.openai.com/v1"
    organization: Optional[str] = None
    timeout: float = 30.0
    max_retries: int = Field(default=0, ge=0)
    retry_delay: float = Field(default=0.5, ge=0.0)  # seconds, doubled per attempt


class AnthropicConfig(BaseModel):
    api_key: str = ""
    base_url: Optional[str] = None
    max_retries: int = 3
    timeout: int = 120


class ManagerConfig(BaseModel):
    max_cached_sessions: int = Field(default=100, ge=1)
    eviction: EvictionPolicy = EvictionPolicy.INSERTION


class StorageConfig(BaseModel):
    backend: StorageBackend = StorageBackend.SQLITE
    db_path: str = "./data/tooltalk.db"


class AppConfig(BaseModel):
    log_level: str = "INFO"
    log_json: bool = False
    data_dir: str = "./data"
    ai: AIConfig = Field(default_factory=AIConfig)
    openai: Optional[OpenAIConfig] = None
    anthropic: Optional[AnthropicConfig] = None
    manager: ManagerConfig = Field(default_factory=ManagerConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)


_ENV_VAR_PATTERN = re.compile(r"\$\{(\w+)\}")


def _interpolate_env_vars(text: str, extra: dict[str, str] | None = None) -> str:
    """Replace ${VAR_NAME} patterns with environment variable values."""

    def _replace(match: re.Match) -> str:
        var_name = match.group(1)
        if extra and var_name in extra:
            return extra[var_name]
        value = os.environ.get(var_name)
        if value is None:
            return match.group(0)
        return value

    return _ENV_VAR_PATTERN.sub(_replace, text)


def load_config(config_path: str | Path = "config.yaml", env_path: str | Path = ".env") -> AppConfig:
    """Load and validate configuration from YAML file with env-var interpolation."""
    env_file = Path(env_path)
    if env_file.exists():
        load_dotenv(env_file)

    config_file = Path(config_path)
    if not config_file.exists():
        raise ConfigError(f"Configuration file not found: {config_file}")

    raw_text = config_file.read_text(encoding="utf-8")

    try:
        # First pass: extract data_dir for self-referencing
        raw_data = yaml.safe_load(raw_text) or {}
        if not isinstance(raw_data, dict):
            raise ConfigError(f"Configuration root must be a mapping: {config_file}")
        data_dir = _interpolate_env_vars(str(raw_data.get("data_dir", "./data")))

        # Second pass: interpolate all env vars
        interpolated = _interpolate_env_vars(raw_text, extra={"data_dir": data_dir})
        data = yaml.safe_load(interpolated) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {config_file}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Configuration root must be a mapping: {config_file}")

    try:
        return AppConfig(**data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration in {config_file}: {e}") from e
