"""
Application Configuration
=========================

Centralized configuration using Pydantic Settings.
Loads from environment variables with validation.
"""

from functools import lru_cache
from typing import List

from pydantic import Field, field_validator
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
    ENVIRONMENT: str = Field(default="development")

    # Server
    PORT: int = Field(default=8000, description="Port uvicorn binds to when run directly")

    # Development Settings
    DEV_AUTH_DISABLED: bool = Field(
        default=False,
        description="Disable authentication for local development/testing"
    )

    # Database
    DATABASE_URL: str = Field(default="")

    # Redis
    REDIS_URL: str = Field(default="redis://localhost:6379/0")

    # JWT Authentication (tokens issued by this API)
    JWT_SECRET: str = Field(default="change-this-secret-in-production")
    JWT_ALGORITHM: str = Field(default="HS256")
    JWT_ACCESS_TOKEN_EXPIRE_MINUTES: int = Field(default=1440)  # 24 hours
    JWT_REFRESH_TOKEN_EXPIRE_DAYS: int = Field(default=30)

    # Supabase Auth (tokens issued by the identity provider)
    SUPABASE_JWT_SECRET: str = Field(default="")
    SUPABASE_JWT_AUDIENCE: str = Field(default="authenticated")

    # RevenueCat
    REVENUECAT_API_KEY: str = Field(default="")
    REVENUECAT_API_URL: str = Field(default="https://api.revenuecat.com/v1")
    REVENUECAT_WEBHOOK_SECRET: str = Field(default="")
    REVENUECAT_VERIFY_WEBHOOK_AUTH: bool = Field(
        default=False,
        description="Require the webhook Authorization header to match the secret",
    )
    REVENUECAT_REJECT_STALE_EVENTS: bool = Field(
        default=False,
        description="Ignore webhook events older than the stored subscription state",
    )
    REVENUECAT_TIMEOUT_SECONDS: float = Field(default=10.0)
    APP_USER_ID_PREFIX: str = Field(default="tenderguard_")

    # CORS
    ALLOWED_ORIGINS: str = Field(default="http://localhost:5173,http://localhost:8000")

    @property
    def allowed_origins_list(self) -> List[str]:
        """Parse ALLOWED_ORIGINS into a list."""
        return [origin.strip() for origin in self.ALLOWED_ORIGINS.split(",")]

    @property
    def database_url_async(self) -> str:
        """
        DATABASE_URL with the asyncpg driver filled in.

        Supabase hands out ``postgres://`` and ``postgresql://`` URLs; URLs that
        already name a driver (``sqlite+aiosqlite://``) pass through.
        """
        url = self.DATABASE_URL
        for scheme in ("postgres://", "postgresql://"):
            if url.startswith(scheme):
                return url.replace(scheme, "postgresql+asyncpg://", 1)
        return url

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.ENVIRONMENT.lower() == "development"

    @property
    def auth_disabled(self) -> bool:
        """Check if auth is disabled (only allowed in development)."""
        return self.is_development and self.DEV_AUTH_DISABLED

    @field_validator("JWT_SECRET")
    @classmethod
    def validate_jwt_secret(cls, v: str) -> str:
        """Ensure JWT secret is sufficiently long."""
        if len(v) < 32:
            raise ValueError("JWT_SECRET must be at least 32 characters long")
        return v


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are loaded only once.
    """
    return Settings()


# Export a default settings instance
settings = get_settings()
