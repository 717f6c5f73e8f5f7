"""
MealStamp - Configuration Management

Loads and validates environment variables for API keys and settings.
"""

from functools import lru_cache
from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # API Keys
    gemini_api_key: str = Field(
        default="",
        alias="GEMINI_API_KEY",
        description="Google Gemini API key (seeds the preferences store)"
    )
    opik_api_key: str = Field(
        default="",
        alias="OPIK_API_KEY",
        description="Comet Opik API key for observability"
    )

    # Gemini Settings
    gemini_model: str = Field(
        default="gemini-2.5-pro",
        alias="GEMINI_MODEL"
    )
    request_timeout_seconds: float = Field(
        default=120.0,
        gt=0,
        alias="GEMINI_REQUEST_TIMEOUT_SECONDS",
        description="Overall bound for a single generate_content call"
    )

    # Application Settings
    environment: str = Field(
        default="development",
        alias="ENVIRONMENT"
    )
    debug: bool = Field(
        default=True,
        alias="DEBUG"
    )
    log_level: str = Field(
        default="INFO",
        alias="LOG_LEVEL"
    )
    timezone: str = Field(
        default="",
        alias="TIMEZONE",
        description="IANA zone used for day phases and day ids (empty = system local time)"
    )
    preferences_path: str = Field(
        default="",
        alias="PREFERENCES_PATH",
        description="JSON file for persisted preferences (empty = in-memory only)"
    )

    # Opik Settings
    opik_project_name: str = Field(
        default="mealstamp",
        alias="OPIK_PROJECT_NAME"
    )

    # API Settings
    api_host: str = Field(default="0.0.0.0", alias="API_HOST")
    api_port: int = Field(default=8000, alias="API_PORT")

    # CORS Settings (for frontend communication)
    cors_origins: list[str] = Field(
        default=["http://localhost:3000", "http://localhost:8081"],
        alias="CORS_ORIGINS"
    )

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"
        populate_by_name = True

    def validate_required_keys(self) -> dict[str, bool]:
        """Check which API keys are configured."""
        return {
            "gemini_api_key": bool(self.gemini_api_key),
            "opik_api_key": bool(self.opik_api_key),
        }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
