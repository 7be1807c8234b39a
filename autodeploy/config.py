"""Application configuration using pydantic-settings."""

from functools import lru_cache
from typing import Literal

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env file without clobbering variables set by the supervisor
load_dotenv(override=False)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_env: Literal["development", "staging", "production"] = "development"
    app_debug: bool = True

    # API Server
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    admin_prefix: str = "/api/admin"

    # Deployment
    deploy_build_command: str = "npm run build"
    deploy_working_directory: str | None = None
    deploy_build_timeout_seconds: float = Field(default=300.0, gt=0)
    deploy_build_max_buffer_bytes: int = Field(default=10 * 1024 * 1024, gt=0)
    deploy_min_interval_ms: int = Field(default=10_000, ge=0)
    deploy_history_size: int = Field(default=50, ge=1)
    deploy_start_delay_seconds: float = Field(default=0.5, ge=0)
    deploy_exit_delay_seconds: float = Field(default=0.5, ge=0)
    deploy_build_only_delay_seconds: float = Field(default=0.1, ge=0)

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["console", "json"] = "console"
    log_directory: str | None = None
    log_file_name: str = "autodeploy.log"

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.app_env == "development"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()
