"""Application configuration using Pydantic settings."""

from functools import lru_cache
from typing import Literal

from pydantic import RedisDsn, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = True

    # API
    api_v1_prefix: str = "/api/v1"
    project_name: str = "Commerce Assistant API"
    version: str = "0.1.0"

    # Redis (conversation history, voice settings, session memory)
    redis_url: RedisDsn = RedisDsn("redis://localhost:6379/0")

    # Storefront REST API (catalog + cart)
    storefront_api_url: str = "http://localhost:5000/api"
    storefront_timeout: float = 10.0

    # Completion service: Azure OpenAI takes precedence over plain OpenAI
    openai_api_key: str = ""
    chat_model: str = "gpt-4o"
    azure_openai_api_key: str = ""
    azure_openai_endpoint: str = ""
    azure_openai_deployment: str = ""
    azure_openai_api_version: str = "2024-02-15-preview"
    completion_temperature: float = 0.6
    completion_max_tokens: int = 800

    # Assistant tuning
    history_window: int = 20
    candidate_limit: int = 5
    fallback_product_limit: int = 3
    assist_rate_limit: str = "10/minute"

    # Live sessions: idle ones are closed, and the oldest go past the cap
    session_idle_ttl: float = 1800.0
    max_sessions: int = 1000

    # Voice I/O timing (seconds)
    capture_restart_delay: float = 1.0
    speech_resume_delay: float = 0.5
    visualizer_bar_count: int = 20
    visualizer_interval: float = 0.05

    # Delayed suggestion messages
    related_suggestion_delay: float = 5.0
    upsell_suggestion_delay: float = 3.0
    related_suggestion_rate: float = 0.3
    upsell_suggestion_rate: float = 0.5

    # CORS
    cors_origins: list[str] = [
        "http://localhost:3000",  # storefront dev server
        "http://localhost:5173",  # Vite dev
    ]

    @computed_field  # type: ignore[prop-decorator]
    @property
    def azure_configured(self) -> bool:
        """Whether all Azure OpenAI credentials are present."""
        return bool(
            self.azure_openai_api_key
            and self.azure_openai_endpoint
            and self.azure_openai_deployment
        )

    @computed_field  # type: ignore[prop-decorator]
    @property
    def completion_available(self) -> bool:
        """Whether any completion backend has credentials configured."""
        return self.azure_configured or bool(self.openai_api_key)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
