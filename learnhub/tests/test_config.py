"""
Tests for settings loading and application wiring.
"""

from unittest.mock import MagicMock

import pytest
from pydantic import ValidationError

from learnhub.bootstrap import build_cache, start_application
from learnhub.common.cache import MemoryCacheBackend
from learnhub.config import Settings, load_settings


def test_defaults():
    settings = Settings()

    assert settings.llm.primary_model == "gpt-4o"
    assert settings.llm.fallback_model == "gpt-4o-mini"
    assert settings.llm.max_retries == 3
    assert settings.assessment.abandon_after_hours == 24
    assert settings.logging.level == "INFO"


def test_nested_environment_override(monkeypatch):
    monkeypatch.setenv("LLM__FALLBACK_MODEL", "gpt-3.5-turbo")
    monkeypatch.setenv("ASSESSMENT__ABANDON_AFTER_HOURS", "12")

    settings = Settings()

    assert settings.llm.fallback_model == "gpt-3.5-turbo"
    assert settings.assessment.abandon_after_hours == 12


def test_yaml_file_is_layered_under_environment(tmp_path, monkeypatch):
    config_file = tmp_path / "learnhub.yaml"
    config_file.write_text(
        "environment: testing\n"
        "llm:\n"
        "  primary_model: gpt-4.1\n"
        "  max_retries: 1\n"
        "logging:\n"
        "  level: debug\n"
    )
    monkeypatch.setenv("LLM__MAX_RETRIES", "5")

    settings = load_settings(str(config_file))

    assert settings.is_testing
    assert settings.llm.primary_model == "gpt-4.1"
    assert settings.llm.max_retries == 5
    assert settings.logging.level == "DEBUG"


def test_missing_config_file_falls_back_to_defaults(tmp_path):
    settings = load_settings(str(tmp_path / "absent.yaml"))

    assert settings.environment == "development"


@pytest.mark.parametrize("section, values", [
    ("logging", {"level": "LOUD"}),
    ("llm", {"max_retries": -1}),
])
def test_invalid_values_are_rejected(section, values):
    with pytest.raises(ValidationError):
        Settings(**{section: values})


@pytest.mark.asyncio
async def test_build_cache_respects_settings():
    assert build_cache(Settings(cache={"enabled": False})) is None

    cache = build_cache(Settings(llm={"response_cache_size": 7}))
    assert isinstance(cache, MemoryCacheBackend)
    assert (await cache.get_stats())["max_size"] == 7


@pytest.mark.asyncio
async def test_start_application_with_in_memory_storage():
    settings = Settings(llm={"fallback_model": "gpt-4o-mini", "max_retries": 2})

    app = await start_application(settings, client=MagicMock(), use_database=False)

    assert app.engine is None
    assert app.gateway._fallback_model == "gpt-4o-mini"
    assert app.gateway._max_retries == 2
    assert [c.name for c in app.collaborators] == ["completion_log"]
    assert app.service.abandon_after_hours == 24
    await app.shutdown()
