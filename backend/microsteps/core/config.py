"""Application configuration managed via environment variables."""
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = "Microsteps Backend"
    debug: bool = False
    log_level: str = "INFO"

    openrouter_api_key: str | None = None
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    openrouter_model: str = "moonshotai/kimi-k2-0905"
    openrouter_temperature: float = 0.7
    openrouter_timeout_ms: int = 10_000
    openrouter_max_retries: int = 2

    # Task breakdown quota: points per user per window.
    rate_limit_points: int = 10
    rate_limit_window_seconds: int = 3600
    rate_limit_backend: str = "memory"
    redis_url: str | None = None

    title_max_length: int = 500

    opik_enabled: bool = False
    opik_api_key: str | None = None
    opik_project: str = "microsteps"
    opik_workspace: str | None = None

    @property
    def openrouter_timeout_seconds(self) -> float:
        return self.openrouter_timeout_ms / 1000


@lru_cache
def get_settings() -> Settings:
    """Return a cached Settings instance."""
    return Settings()


settings = get_settings()
