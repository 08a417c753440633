"""
Application configuration using Pydantic Settings.
Loads from environment variables and .env file.
"""

from __future__ import annotations

from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "Piper Dispatch Tracking"
    app_version: str = "0.1.0"
    debug: bool = False
    environment: str = "development"

    # API
    api_v1_prefix: str = "/api/v1"

    # PostgreSQL (campaigns and tracking events)
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_user: str = "piper"
    postgres_password: str = "piper_dev"
    postgres_db: str = "piper_tracking"
    database_url: str = ""  # Full SQLAlchemy URL, overrides the postgres_* fields

    # JWT Authentication
    jwt_secret_key: str = "your-secret-key-change-in-production"
    jwt_algorithm: str = "HS256"

    # Tracking
    tracking_secret: str = ""  # Keys the tracking token checksum; falls back to the JWT secret
    tracking_base_url: str = "http://localhost:8000"  # Public URL embedded in emails
    frontend_url: str = "http://localhost:3000"  # Frontend URL for CORS

    # Rate limiting (unauthenticated unsubscribe/spam endpoints)
    rate_limit_enabled: bool = True
    rate_limit_default: str = "100/minute"
    rate_limit_feedback: str = "30/minute"

    # Campaign recipients
    recipient_batch_size: int = 500
    max_recipients_per_request: int = 5000

    @property
    def postgres_url(self) -> str:
        """Build PostgreSQL async connection URL."""
        return f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"

    @property
    def sqlalchemy_url(self) -> str:
        """URL used by the async engine."""
        return self.database_url or self.postgres_url

    @property
    def tracking_signing_key(self) -> str:
        return self.tracking_secret or self.jwt_secret_key

    @property
    def tracking_url_prefix(self) -> str:
        """Absolute prefix of the public tracking routes."""
        return f"{self.tracking_base_url.rstrip('/')}{self.api_v1_prefix}/track"

    def validate_production_settings(self) -> None:
        """
        Validate critical settings for production deployment.
        Raises ValueError if any critical settings are using default/insecure values.
        """
        if self.environment == "production":
            errors = []

            # Check JWT secret
            if self.jwt_secret_key == "your-secret-key-change-in-production":
                errors.append("JWT_SECRET_KEY must be changed from default value in production")

            if len(self.jwt_secret_key) < 32:
                errors.append("JWT_SECRET_KEY must be at least 32 characters long")

            # Check database password
            if not self.database_url and (not self.postgres_password or self.postgres_password == "piper_dev"):
                errors.append("POSTGRES_PASSWORD must be set to a secure value in production")

            # Tracking tokens are keyed separately so the JWT secret can rotate
            if not self.tracking_secret:
                errors.append("TRACKING_SECRET should be set so tracking links survive JWT secret rotation")

            if self.tracking_base_url.startswith("http://localhost"):
                errors.append("TRACKING_BASE_URL must point at the public tracking host in production")

            if errors:
                raise ValueError(
                    "Production configuration validation failed:\n" +
                    "\n".join(f"  - {error}" for error in errors)
                )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
