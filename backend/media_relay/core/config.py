"""Application configuration using pydantic-settings."""
from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Instances are frozen: build one at startup and hand it to
    :func:`media_relay.main.create_app`.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    # Environment
    ENV: Literal["development", "production", "test"] = "development"
    HOST: str = "0.0.0.0"
    PORT: int = Field(default=3000, ge=1, le=65535)

    # API Configuration
    API_PREFIX: str = "/api"

    # CORS Configuration
    CORS_ORIGINS: str = Field(
        default="*",
        description="Comma-separated list of allowed CORS origins",
    )

    # Request limits
    MAX_BODY_BYTES: int = Field(
        default=1024 * 1024,
        ge=1,
        description="Maximum accepted JSON body size for /info requests",
    )

    # Logging
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"

    # Static frontend
    SERVE_STATIC: bool = Field(
        default=True,
        description="Serve the bundled frontend from STATIC_DIR at /",
    )
    STATIC_DIR: str = Field(
        default="public",
        description="Directory holding index.html and frontend assets",
    )

    # yt-dlp invocation
    YTDLP_BINARY: str = Field(
        default="yt-dlp",
        min_length=1,
        description="yt-dlp executable name (looked up on PATH) or absolute path",
    )
    YTDLP_INFO_TIMEOUT: float = Field(
        default=0,
        ge=0,
        description="Deadline in seconds for metadata extraction (0 disables)",
    )
    YTDLP_STREAM_CHUNK_SIZE: int = Field(
        default=65536,
        ge=1024,
        le=16777216,
        description="Maximum bytes read from yt-dlp stdout per relayed chunk",
    )

    @field_validator("CORS_ORIGINS")
    @classmethod
    def parse_cors_origins(cls, v: str) -> str:
        """Ensure CORS_ORIGINS is properly formatted."""
        return v.strip()

    @field_validator("API_PREFIX")
    @classmethod
    def normalize_prefix(cls, v: str) -> str:
        """Strip trailing slashes so routes join cleanly."""
        v = v.strip().rstrip("/")
        if v and not v.startswith("/"):
            v = f"/{v}"
        return v

    @property
    def cors_origins_list(self) -> list[str]:
        """Get CORS origins as a list."""
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.ENV == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.ENV == "production"


@lru_cache
def get_settings() -> Settings:
    """Return the settings built from the process environment."""
    return Settings()
