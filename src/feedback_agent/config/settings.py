"""
Configuration management for the feedback agent.

All configuration comes from environment variables or .env file.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator
from typing import Optional
from functools import lru_cache

from feedback_agent.config.constants import ADJUDICATOR_TIMEOUT_S, ASSESSMENT_TIMEOUT_S


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="FEEDBACK_AGENT_",
        case_sensitive=False
    )

    # Security
    jwt_secret: str = ""
    api_key: str = ""

    # Provider API keys
    gemini_api_key: str = ""
    openai_api_key: str = ""
    mistral_api_key: str = ""

    # Storage
    data_dir: str = "data"
    database_url: Optional[str] = None
    chroma_dir: Optional[str] = None
    vector_index_enabled: bool = True
    vector_collection: str = "material_chunks"

    # Timeouts (seconds)
    assessment_timeout_s: float = ASSESSMENT_TIMEOUT_S
    adjudicator_timeout_s: float = ADJUDICATOR_TIMEOUT_S

    # Access sessions
    access_session_ttl_hours: float = 6.0

    # Observability
    sentry_dsn: str = ""
    environment: str = "development"
    log_level: str = "INFO"
    log_file: Optional[str] = None

    # CORS
    cors_origins: list[str] = ["http://localhost:5173", "http://127.0.0.1:5173"]

    @field_validator('jwt_secret')
    @classmethod
    def reject_default_values(cls, v: str) -> str:
        """Reject default/weak JWT secrets."""
        forbidden = ['secret', 'test', 'password', 'change-me', 'default-secret']
        if v and v.lower() in forbidden:
            raise ValueError("JWT_SECRET cannot be a default value. Generate with: openssl rand -base64 32")
        return v

    @field_validator('environment')
    @classmethod
    def validate_environment(cls, v: str) -> str:
        valid = ['development', 'staging', 'production', 'test']
        if v.lower() not in valid:
            raise ValueError(f"environment must be one of: {', '.join(valid)}")
        return v.lower()

    @property
    def resolved_database_url(self) -> str:
        """SQLite file under data_dir unless an explicit URL is configured."""
        return self.database_url or f"sqlite:///{self.data_dir}/feedback_agent.db"

    @property
    def resolved_chroma_dir(self) -> str:
        return self.chroma_dir or f"{self.data_dir}/chroma"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def reload_settings() -> Settings:
    """Reload settings from environment."""
    get_settings.cache_clear()
    return get_settings()
