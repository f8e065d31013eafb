"""Application settings loaded from environment variables."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    APP_NAME: str = "Placement Pipeline API"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    ENVIRONMENT: str = "development"  # development, staging, production

    # Database
    DATABASE_URL: str = "sqlite:///./placement.db"
    DATABASE_POOL_SIZE: int = 5
    DATABASE_MAX_OVERFLOW: int = 10

    # Internal Token (HS256) - issued by the accounts service
    SECRET_KEY: str = "change-me-in-production"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 720  # 12 hours
    ALGORITHM: str = "HS256"
    COOKIE_NAME: str = "placement_access_token"

    # CORS
    CORS_ORIGINS: list[str] = ["http://localhost:3000"]

    # Result ingestion
    MAX_UPLOAD_BYTES: int = 5 * 1024 * 1024
    DEFAULT_TOTAL_MARKS: float = 100.0

    # Pipeline policy
    # True: application status changes as soon as a result is evaluated;
    # False: it changes only when the stage is published
    APPLICATION_STATUS_ON_EVALUATION: bool = True
    # False: reject new results for candidates already eliminated/selected
    ALLOW_RESULTS_AFTER_TERMINAL: bool = False

    # Audit
    AUDIT_OUTBOX_MAX: int = 1000

    @property
    def is_sqlite(self) -> bool:
        return self.DATABASE_URL.startswith("sqlite")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
