"""
Application Configuration
Environment-driven settings for the API process, database and Celery
Source: https://docs.pydantic.dev/latest/concepts/pydantic_settings/
Verified: 2026-10-19
"""

from functools import lru_cache
from typing import Annotated, Any, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    """
    Process-level settings. Claim rules live in claimflow.core.config.

    Values come from the environment or a local .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ============================================================================
    # Application
    # ============================================================================
    ENVIRONMENT: Literal["development", "staging", "production", "testing"] = Field(default="development")
    DEBUG: bool = Field(default=False, description="Echo SQL; never in production")
    LOG_LEVEL: str = Field(default="INFO")
    LOG_FILE: str | None = Field(default=None, description="Optional rotating log file path")

    # ============================================================================
    # Database
    # ============================================================================
    DATABASE_URL: str | None = Field(default=None, description="Overrides the POSTGRES_* parts")
    POSTGRES_HOST: str = Field(default="db")
    POSTGRES_PORT: int = Field(default=5432)
    POSTGRES_DB: str = Field(default="claimflow")
    POSTGRES_USER: str = Field(default="claimflow")
    POSTGRES_PASSWORD: str = Field(default="")

    DB_POOL_SIZE: int = Field(default=20, gt=0)
    DB_MAX_OVERFLOW: int = Field(default=10, ge=0)
    DB_POOL_TIMEOUT: int = Field(default=30, gt=0, description="Seconds to wait for a pooled connection")

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    # ============================================================================
    # CORS
    # ============================================================================
    CORS_ORIGINS: Annotated[list[str], NoDecode] = Field(default=["http://localhost:3000"])
    CORS_CREDENTIALS: bool = Field(default=True)
    CORS_METHODS: Annotated[list[str], NoDecode] = Field(default=["*"])
    CORS_HEADERS: Annotated[list[str], NoDecode] = Field(default=["*"])

    @field_validator("CORS_ORIGINS", "CORS_METHODS", "CORS_HEADERS", mode="before")
    @classmethod
    def split_comma_list(cls, v: Any) -> Any:
        """CORS_ORIGINS=https://a.example,https://b.example"""
        if isinstance(v, str):
            return [item.strip() for item in v.split(",") if item.strip()]
        return v

    # ============================================================================
    # Redis / Celery
    # ============================================================================
    REDIS_HOST: str = Field(default="redis")
    REDIS_PORT: int = Field(default=6379)
    REDIS_PASSWORD: str | None = Field(default=None)
    CELERY_BROKER_DB: int = Field(default=1, ge=0)
    CELERY_RESULT_DB: int = Field(default=2, ge=0)
    CELERY_BROKER_URL: str | None = Field(default=None)
    CELERY_RESULT_BACKEND: str | None = Field(default=None)
    CLAIM_REFRESH_INTERVAL_MINUTES: int = Field(
        default=60, gt=0, description="Interval for the periodic open-claim status refresh"
    )

    def _redis_url(self, db: int) -> str:
        auth = f":{self.REDIS_PASSWORD}@" if self.REDIS_PASSWORD else ""
        return f"redis://{auth}{self.REDIS_HOST}:{self.REDIS_PORT}/{db}"

    @property
    def celery_broker_url(self) -> str:
        return self.CELERY_BROKER_URL or self._redis_url(self.CELERY_BROKER_DB)

    @property
    def celery_result_backend(self) -> str:
        return self.CELERY_RESULT_BACKEND or self._redis_url(self.CELERY_RESULT_DB)

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    @property
    def is_testing(self) -> bool:
        return self.ENVIRONMENT == "testing"


@lru_cache
def get_settings() -> Settings:
    """Settings are read once per process."""
    return Settings()


settings = get_settings()
