"""
Core Enumerations for the Claim Lifecycle Engine.
Source: Claim lifecycle design, Sections 3-4
Verified: 2026-10-19
"""

from enum import Enum


# =============================================================================
# Integration Mode Enums
# =============================================================================


class IntegrationMode(str, Enum):
    """System integration mode."""

    DEMO = "demo"  # Demo mode: simulated clearinghouse
    LIVE = "live"  # Live mode: real clearinghouse integration


class ProviderStatus(str, Enum):
    """Health status of an external integration."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


# =============================================================================
# Claim Enums
# =============================================================================


class ClaimType(str, Enum):
    """Type of claim relative to its original."""

    ORIGINAL = "ORIGINAL"
    ADJUSTMENT = "ADJUSTMENT"
    REPLACEMENT = "REPLACEMENT"
    VOID = "VOID"


class ClaimStatus(str, Enum):
    """Claim lifecycle status."""

    DRAFT = "DRAFT"  # Created, not yet checked
    VALIDATED = "VALIDATED"  # Passed validation, ready to submit
    SUBMITTED = "SUBMITTED"  # Sent to payer / clearinghouse
    ACKNOWLEDGED = "ACKNOWLEDGED"  # Receipt confirmed by payer
    PENDING = "PENDING"  # Under payer adjudication
    PAID = "PAID"  # Paid in full (terminal)
    PARTIAL_PAID = "PARTIAL_PAID"  # Paid in part
    DENIED = "DENIED"  # Denied, appealable
    APPEALED = "APPEALED"  # Appeal filed
    FINAL_DENIED = "FINAL_DENIED"  # Denial upheld (terminal)
    VOID = "VOID"  # Soft-deleted (terminal)


class SubmissionMethod(str, Enum):
    """How a claim is delivered to the payer."""

    ELECTRONIC = "ELECTRONIC"
    PAPER = "PAPER"
    PORTAL = "PORTAL"
    CLEARINGHOUSE = "CLEARINGHOUSE"
    DIRECT = "DIRECT"


class DenialReason(str, Enum):
    """Closed set of payer denial reasons."""

    DUPLICATE_CLAIM = "DUPLICATE_CLAIM"
    SERVICE_NOT_COVERED = "SERVICE_NOT_COVERED"
    AUTHORIZATION_MISSING = "AUTHORIZATION_MISSING"
    AUTHORIZATION_INVALID = "AUTHORIZATION_INVALID"
    CLIENT_INELIGIBLE = "CLIENT_INELIGIBLE"
    PROVIDER_INELIGIBLE = "PROVIDER_INELIGIBLE"
    TIMELY_FILING = "TIMELY_FILING"
    INVALID_CODING = "INVALID_CODING"
    MISSING_INFORMATION = "MISSING_INFORMATION"
    OTHER = "OTHER"


class PayerType(str, Enum):
    """Payer program category."""

    MEDICAID = "MEDICAID"
    MEDICARE = "MEDICARE"
    PRIVATE_INSURANCE = "PRIVATE_INSURANCE"
    SELF_PAY = "SELF_PAY"
    OTHER = "OTHER"


class RecordStatus(str, Enum):
    """Active flag for reference data owned outside the engine."""

    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


class DocumentationStatus(str, Enum):
    """Documentation completeness of a delivered service."""

    INCOMPLETE = "INCOMPLETE"
    COMPLETE = "COMPLETE"
    APPROVED = "APPROVED"


class AuthorizationStatus(str, Enum):
    """Outcome of a prior-authorization lookup."""

    NOT_REQUIRED = "NOT_REQUIRED"
    AUTHORIZED = "AUTHORIZED"
    MISSING = "MISSING"
    INVALID = "INVALID"


class AgingRiskLevel(str, Enum):
    """Collection risk of an open claim."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"
