from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings validated via Pydantic.

    Values are loaded from environment variables and/or a .env file.
    """

    # LLM provider: "anthropic" (Messages API) or "openai" (any OpenAI-compatible
    # chat completions endpoint, e.g. DeepSeek via openai_base_url)
    llm_provider: str = "anthropic"
    anthropic_api_key: str = ""
    llm_model: str = "claude-sonnet-4-20250514"
    openai_api_key: str = ""
    openai_base_url: str | None = None
    openai_model: str = "gpt-4o-mini"
    llm_timeout_seconds: float = 120.0

    # Extraction pipeline
    context_temperature: float = 0.1
    extraction_temperature: float = 0.2
    context_max_chars: int = 8000
    extraction_workers: int = 4
    extraction_queue_size: int = 100

    # Storage
    database_url: str = "sqlite:///./meeting_tasks.db"

    # Supabase (token verification only)
    supabase_url: str = ""
    supabase_key: str = ""
    allow_dev_tokens: bool = True  # accept "dev_<user-id>" tokens when Supabase is unset

    # App config
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    log_level: str = "INFO"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    @property
    def llm_configured(self) -> bool:
        """True when the selected provider has an API key."""
        if self.llm_provider == "openai":
            return bool(self.openai_api_key)
        return bool(self.anthropic_api_key)

    @property
    def supabase_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_key)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance.

    Gracefully handles missing .env files (e.g. in CI/testing) by falling
    back to environment variables and defaults.
    """
    try:
        return Settings()
    except Exception:
        # If .env is missing or unreadable, build settings from env vars only.
        return Settings(_env_file=None)  # type: ignore[call-arg]


settings = get_settings()
