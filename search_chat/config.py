"""Runtime configuration for the search chat service."""

from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_LLM_BASE_URL = "https://open.bigmodel.cn/api/paas/v4"
DEFAULT_ORCHESTRATOR_MODEL = "glm-4.7-flash"
DEFAULT_RESPONSE_MODEL = "glm-5"
DEFAULT_TAVILY_SEARCH_URL = "https://api.tavily.com/search"
DEFAULT_PORT = 3001


class Settings(BaseSettings):
    """Immutable service settings, built once at startup and injected everywhere.

    Field names map to upper-case environment variables (``LLM_API_KEY``,
    ``TAVILY_API_KEY``, ``PORT`` ...); a ``.env`` file in the working directory
    is read too. Blank variables keep the default.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_ignore_empty=True,
        extra="ignore",
        frozen=True,
    )

    llm_api_key: str = ""
    llm_base_url: str = DEFAULT_LLM_BASE_URL
    orchestrator_model: str = DEFAULT_ORCHESTRATOR_MODEL
    response_model: str = DEFAULT_RESPONSE_MODEL
    tavily_api_key: str = ""
    tavily_search_url: str = DEFAULT_TAVILY_SEARCH_URL
    llm_disable_thinking: bool = True
    port: int = DEFAULT_PORT

    @field_validator("llm_api_key", "tavily_api_key")
    @classmethod
    def _strip_key(cls, value: str) -> str:
        return value.strip()

    @field_validator("llm_base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @property
    def llm_enabled(self) -> bool:
        return bool(self.llm_api_key)

    @property
    def search_enabled(self) -> bool:
        return bool(self.tavily_api_key)

    @classmethod
    def from_env(cls) -> "Settings":
        """Read settings from the process environment and `.env`."""
        return cls()


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Cached getter for production."""
    return Settings.from_env()
