"""
SQLAlchemy Models for the Claim Lifecycle Engine.

This module exports all database models for the application.
"""

from claimflow.models.base import Base, TimeStampedModel, UUIDModel
from claimflow.models.reference import (
    Authorization,
    Client,
    Payer,
    Service,
    ServiceCode,
)
from claimflow.models.claim import (
    TERMINAL_STATUSES,
    Claim,
    ClaimServiceLine,
    ClaimStatusHistory,
    HistoryImmutableError,
)

__all__ = [
    "Base",
    "TimeStampedModel",
    "UUIDModel",
    # Reference data
    "Client",
    "Payer",
    "Service",
    "ServiceCode",
    "Authorization",
    # Claims
    "Claim",
    "ClaimServiceLine",
    "ClaimStatusHistory",
    "HistoryImmutableError",
    "TERMINAL_STATUSES",
]
