"""Application configuration using pydantic-settings."""

from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_DEFAULT_PROMPTS_FILE = Path(__file__).parent / "prompts" / "default.yaml"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "Agent Console"
    environment: str = "development"
    log_level: str = "info"

    # Upstream chat-completion model
    openai_api_key: str | None = None
    openai_model: str = "gpt-4.1-mini"
    openai_api_base_url: str = "https://api.openai.com/v1"
    completion_idle_timeout_seconds: float = 30.0

    # Local fallback generator
    fallback_token_delay_ms: int = 50

    # Conversation context sent upstream
    conversation_window: int = 30

    # Speech synthesis
    tts_model: str = "gpt-4o-mini-tts"
    tts_voice: str = "alloy"
    tts_format: str = "mp3"

    # Persistence (blank URI keeps everything in process memory)
    mongodb_uri: str = ""
    mongodb_database: str = "agent_console"

    # Prompt catalog seed
    prompts_file: Path = _DEFAULT_PROMPTS_FILE

    # CORS
    frontend_url: str = "http://localhost:3000"

    @field_validator("openai_api_key", mode="before")
    @classmethod
    def _blank_key_is_unset(cls, value: str | None) -> str | None:
        if value is None:
            return None
        value = str(value).strip()
        return value or None

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @property
    def upstream_configured(self) -> bool:
        return self.openai_api_key is not None


settings = Settings()


def get_settings() -> Settings:
    """FastAPI dependency for injecting settings."""
    return settings
