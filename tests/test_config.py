"""Tests for environment-driven settings."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from search_chat.config import (
    DEFAULT_LLM_BASE_URL,
    DEFAULT_ORCHESTRATOR_MODEL,
    DEFAULT_PORT,
    DEFAULT_RESPONSE_MODEL,
    Settings,
    get_settings,
)


class TestSettingsFromEnv:
    """Tests for Settings.from_env."""

    def test__empty_environment__uses_defaults(self) -> None:
        settings = Settings.from_env()

        assert settings.llm_base_url == DEFAULT_LLM_BASE_URL
        assert settings.orchestrator_model == DEFAULT_ORCHESTRATOR_MODEL
        assert settings.response_model == DEFAULT_RESPONSE_MODEL
        assert settings.port == DEFAULT_PORT
        assert settings.llm_disable_thinking is True
        assert settings.llm_enabled is False
        assert settings.search_enabled is False

    def test__values__are_read_and_normalized(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("LLM_API_KEY", "  sk-llm  ")
        monkeypatch.setenv("LLM_BASE_URL", "https://llm.example.com/v1/")
        monkeypatch.setenv("TAVILY_API_KEY", "tvly-key")
        monkeypatch.setenv("ORCHESTRATOR_MODEL", "small-model")
        monkeypatch.setenv("PORT", "8080")

        settings = Settings.from_env()

        assert settings.llm_api_key == "sk-llm"
        assert settings.llm_base_url == "https://llm.example.com/v1"
        assert settings.orchestrator_model == "small-model"
        assert settings.port == 8080
        assert settings.llm_enabled is True
        assert settings.search_enabled is True

    @pytest.mark.parametrize(
        "raw,expected",
        [("false", False), ("0", False), ("off", False), ("true", True), ("YES", True), ("", True)],
    )
    def test__disable_thinking_flag__is_parsed(self, monkeypatch: pytest.MonkeyPatch, raw: str, expected: bool) -> None:
        monkeypatch.setenv("LLM_DISABLE_THINKING", raw)

        assert Settings.from_env().llm_disable_thinking is expected

    def test__invalid_port__fails_at_startup(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PORT", "not-a-port")

        with pytest.raises(ValidationError, match="port"):
            Settings.from_env()

    def test__whitespace_key__counts_as_missing(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TAVILY_API_KEY", "   ")

        assert Settings.from_env().search_enabled is False

    def test__dotenv_file__is_read(self, tmp_path: Path) -> None:
        env_file = tmp_path / ".env"
        env_file.write_text("LLM_API_KEY=from-dotenv\nRESPONSE_MODEL=big-model\nUNRELATED=1\n", encoding="utf-8")

        settings = Settings(_env_file=env_file)

        assert settings.llm_api_key == "from-dotenv"
        assert settings.response_model == "big-model"

    def test__environment__overrides_dotenv_file(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        env_file = tmp_path / ".env"
        env_file.write_text("PORT=4000\n", encoding="utf-8")
        monkeypatch.setenv("PORT", "5000")

        assert Settings(_env_file=env_file).port == 5000


class TestGetSettings:
    """Tests for get_settings caching."""

    def test__returns_cached_instance(self) -> None:
        get_settings.cache_clear()
        try:
            assert get_settings() is get_settings()
        finally:
            get_settings.cache_clear()

    def test__settings__are_immutable(self) -> None:
        settings = Settings()

        with pytest.raises(ValidationError):
            settings.port = 1  # type: ignore[misc]
