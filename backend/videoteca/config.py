"""
Application configuration loaded from environment variables.

Uses Pydantic Settings to:
1. Read from .env file automatically
2. Validate required values (database URL, token secret) at startup
3. Provide type-safe access to every component

Components never read settings themselves. The app factory reads them once
and hands explicit values to each component it builds (storage gateway,
video service, transport stages).

Usage:
    from videoteca.config import get_settings
    settings = get_settings()
    print(settings.DATABASE_URL)
"""

from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

GIB = 1024 * 1024 * 1024


class Settings(BaseSettings):
    """All application configuration in one place."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    @model_validator(mode="before")
    @classmethod
    def prefer_dotenv_over_empty_env(cls, data):
        """If an env var is empty but .env has a value, use the .env value.

        Pydantic Settings gives real env vars priority over .env values, so an
        exported-but-empty variable would shadow a real value in .env.
        """
        from dotenv import dotenv_values

        dotenv_vals = dotenv_values(".env")
        for key, dotenv_value in dotenv_vals.items():
            if dotenv_value and (key not in data or not data.get(key)):
                data[key] = dotenv_value
        return data

    # --- Database ---
    DATABASE_URL: str
    DB_POOL_SIZE: int = 5
    DB_MAX_OVERFLOW: int = 10

    # --- Security ---
    SECRET_KEY: str
    JWT_ALGORITHM: str = "HS256"

    # --- Object storage (S3 or S3-compatible) ---
    AWS_ACCESS_KEY_ID: str = ""
    AWS_SECRET_ACCESS_KEY: str = ""
    AWS_REGION: str = "us-east-1"
    AWS_S3_BUCKET: str = "nursing-videos"
    AWS_S3_ENDPOINT_URL: str = ""
    STORAGE_MOCK_MODE: bool = False
    SIGNED_URL_TTL_SECONDS: int = 3600

    # --- Uploads ---
    MAX_UPLOAD_BYTES: int = 2 * GIB

    # --- Transport ---
    REQUEST_TIMEOUT_SECONDS: float = 30.0
    UPLOAD_TIMEOUT_SECONDS: float = 600.0
    RATE_LIMIT_ENABLED: bool = True
    DEFAULT_RATE_LIMIT: str = "100/15 minutes"
    UPLOAD_RATE_LIMIT: str = "10/hour"
    # Peers allowed to set X-Forwarded-For (comma list); empty trusts nobody
    TRUSTED_PROXIES: str = ""
    CORS_ORIGINS: str = (
        "https://videoteca-web-enfermeria.vercel.app,"
        "http://localhost:3000,http://localhost:3001,"
        "http://localhost:5173,http://localhost:5174,"
        "http://localhost:8080"
    )

    # --- Application ---
    APP_ENV: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    API_PREFIX: str = "/api/v1"

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse comma-separated CORS origins into a list."""
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    @property
    def trusted_proxies_list(self) -> list[str]:
        return [ip.strip() for ip in self.TRUSTED_PROXIES.split(",") if ip.strip()]

    @property
    def upload_path(self) -> str:
        return f"{self.API_PREFIX}/videos/upload"


@lru_cache
def get_settings() -> Settings:
    """Load settings once per process."""
    return Settings()
