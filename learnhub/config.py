"""
Centralized Configuration for LearnHub

This module provides the configuration system for the assessment core.
Values come from defaults, an optional YAML or JSON config file, a ``.env``
file and environment variables (highest priority). Nested sections are
addressed with a double underscore, e.g. ``LLM__FALLBACK_MODEL``.
"""

import os
import json
import logging
import functools
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class LLMConfig(BaseModel):
    """LLM gateway configuration"""
    primary_model: str = "gpt-4o"
    light_model: str = "gpt-4o-mini"
    fallback_model: str = "gpt-4o-mini"
    base_url: Optional[str] = None
    timeout_seconds: float = 60.0
    max_retries: int = 3
    max_context_tokens: int = 3500
    response_cache_ttl: int = 300
    response_cache_size: int = 100

    @field_validator('max_retries', 'max_context_tokens')
    @classmethod
    def validate_non_negative(cls, v):
        """Validate counters are not negative"""
        if v < 0:
            raise ValueError(f"Value must not be negative, got {v}")
        return v


class AssessmentConfig(BaseModel):
    """Assessment session configuration"""
    default_question_count: int = 10
    abandon_after_hours: int = 24


class CacheConfig(BaseModel):
    """Cache configuration"""
    enabled: bool = True
    use_redis: bool = False
    redis_url: str = "redis://localhost:6379/0"
    key_prefix: str = "learnhub:"


class DatabaseConfig(BaseModel):
    """Database configuration"""
    url: str = "sqlite+aiosqlite:///./learnhub.db"
    echo: bool = False
    pool_size: int = 5


class LoggingConfig(BaseModel):
    """Logging configuration"""
    level: str = "INFO"
    json_format: bool = Field(default=False, alias="json")
    file: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)

    @field_validator('level')
    @classmethod
    def validate_level(cls, v):
        """Validate log level"""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v.upper()


class Settings(BaseSettings):
    """Application settings."""

    app_name: str = "LearnHub Assessments"
    environment: str = "development"
    openai_api_key: Optional[str] = None

    llm: LLMConfig = Field(default_factory=LLMConfig)
    assessment: AssessmentConfig = Field(default_factory=AssessmentConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_nested_delimiter="__",
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        # Environment beats .env beats config-file values passed to __init__
        return env_settings, dotenv_settings, init_settings, file_secret_settings

    @property
    def is_testing(self) -> bool:
        """Check if environment is testing"""
        return self.environment.lower() == "testing"


def _load_config_file(path: str) -> Dict[str, Any]:
    """
    Load configuration values from a YAML or JSON file.

    Args:
        path: Path to config file

    Returns:
        Loaded configuration dictionary (empty when the file is unusable)
    """
    config_path = Path(path)
    if not config_path.exists():
        logger.warning(f"Config file not found: {config_path}")
        return {}

    suffix = config_path.suffix.lower()
    with open(config_path, 'r') as f:
        if suffix in ['.yaml', '.yml']:
            return yaml.safe_load(f) or {}
        if suffix == '.json':
            return json.load(f)

    logger.warning(f"Unsupported config file format: {suffix}")
    return {}


def load_settings(config_path: Optional[str] = None) -> Settings:
    """
    Build a Settings instance, layering an optional config file under the environment.

    Args:
        config_path: Path to a YAML or JSON config file

    Returns:
        Loaded settings
    """
    file_values = _load_config_file(config_path) if config_path else {}
    return Settings(**file_values)


@functools.lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Get the process-wide settings.

    Returns:
        Loaded settings, read once per process
    """
    return load_settings(os.environ.get("LEARNHUB_CONFIG_PATH"))
