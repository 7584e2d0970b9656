"""
Claims Lifecycle Configuration
Engine-level settings for validation, submission and aging.
Source: https://docs.pydantic.dev/latest/concepts/pydantic_settings/
Verified: 2026-10-19
"""

from typing import Annotated, Any, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from claimflow.core.enums import IntegrationMode


class ClaimsSettings(BaseSettings):
    """
    Claim lifecycle configuration settings.

    All values can be overridden through CLAIMS_-prefixed environment variables.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_prefix="CLAIMS_",  # All claims settings prefixed with CLAIMS_
    )

    # =========================================================================
    # Integration Mode
    # =========================================================================
    INTEGRATION_MODE: IntegrationMode = Field(
        default=IntegrationMode.DEMO,
        description="Integration mode: demo (in-memory clearinghouse) or live",
    )
    CLEARINGHOUSE_BASE_URL: Optional[str] = Field(
        default=None,
        description="Clearinghouse API base URL (live mode only)",
    )
    CLEARINGHOUSE_TIMEOUT_SECONDS: float = Field(
        default=30.0,
        gt=0,
        description="Upper bound for a single clearinghouse call",
    )

    # =========================================================================
    # Validation
    # =========================================================================
    DEFAULT_TIMELY_FILING_DAYS: int = Field(
        default=90,
        gt=0,
        description="Filing window used when the payer does not configure one",
    )
    FILING_WARNING_DAYS: int = Field(
        default=14,
        ge=0,
        description="Warn when fewer than this many days remain in the filing window",
    )

    # =========================================================================
    # Batch Limits
    # =========================================================================
    BATCH_MAX_ITEMS: int = Field(
        default=500,
        gt=0,
        description="Maximum claims processed by one batch invocation",
    )
    BATCH_MAX_SECONDS: Optional[float] = Field(
        default=None,
        description="Optional elapsed-time bound for one batch invocation",
    )
    AUTO_REFRESH_ENABLED: bool = Field(
        default=True,
        description="Periodically refresh open claims from the clearinghouse",
    )

    # =========================================================================
    # Aging
    # =========================================================================
    AGING_BUCKETS: Annotated[list[int], NoDecode] = Field(
        default=[30, 60, 90],
        description="Upper bounds (days, inclusive) of the aging buckets; last bucket is open-ended",
    )
    RISK_CRITICAL_SCORE: int = Field(default=80, description="Score above which risk is critical")
    RISK_HIGH_SCORE: int = Field(default=50, description="Score above which risk is high")
    RISK_MEDIUM_SCORE: int = Field(default=20, description="Score above which risk is medium")

    @field_validator("AGING_BUCKETS", mode="before")
    @classmethod
    def parse_aging_buckets(cls, v: Any) -> Any:
        """Allow comma-separated bucket bounds from env strings."""
        if isinstance(v, str):
            v = [int(item) for item in v.split(",") if item.strip()]
        return v

    @field_validator("AGING_BUCKETS")
    @classmethod
    def validate_aging_buckets(cls, v: list[int]) -> list[int]:
        """Bucket bounds must be positive and strictly increasing."""
        if not v:
            raise ValueError("At least one aging bucket bound is required")
        if any(b <= 0 for b in v) or any(a >= b for a, b in zip(v, v[1:])):
            raise ValueError("Aging bucket bounds must be positive and increasing")
        return v

    @property
    def is_demo_mode(self) -> bool:
        """Check if running in demo mode."""
        return self.INTEGRATION_MODE == IntegrationMode.DEMO

    @property
    def is_live_mode(self) -> bool:
        """Check if running in live mode."""
        return self.INTEGRATION_MODE == IntegrationMode.LIVE


# Singleton instance
_claims_settings: Optional[ClaimsSettings] = None


def get_claims_settings() -> ClaimsSettings:
    """
    Get cached claims settings instance.

    Returns:
        ClaimsSettings instance
    """
    global _claims_settings
    if _claims_settings is None:
        _claims_settings = ClaimsSettings()
    return _claims_settings
