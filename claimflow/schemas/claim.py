"""
Pydantic Schemas for the Claims API.
Source: Claim lifecycle design, Section 6 - External Interfaces
Verified: 2026-10-19
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from claimflow.core.enums import (
    AgingRiskLevel,
    ClaimStatus,
    ClaimType,
    DenialReason,
    SubmissionMethod,
)


# =============================================================================
# Service Line and History Schemas
# =============================================================================


class ClaimServiceLineResponse(BaseModel):
    """Billed service line."""

    model_config = ConfigDict(from_attributes=True)

    service_line_number: int
    service_id: UUID
    service_code: str
    service_date: date
    billed_units: Decimal
    billed_amount: Decimal


class ClaimStatusHistoryResponse(BaseModel):
    """Timeline entry."""

    sequence: int
    status: ClaimStatus
    previous_status: Optional[ClaimStatus] = None
    label: str
    timestamp: datetime
    notes: Optional[str] = None
    user_id: Optional[str] = None
    is_active: bool


# =============================================================================
# Claim Schemas
# =============================================================================


class ClaimCreate(BaseModel):
    """Schema for creating a claim from delivered services."""

    client_id: UUID
    payer_id: UUID
    service_ids: list[UUID] = Field(..., min_length=1, description="Delivered services to bill")
    claim_type: ClaimType = Field(default=ClaimType.ORIGINAL)
    original_claim_id: Optional[UUID] = None
    service_start_date: Optional[date] = Field(None, description="Defaults to the earliest service date")
    service_end_date: Optional[date] = Field(None, description="Defaults to the latest service date")
    notes: Optional[str] = Field(None, max_length=2000)

    @model_validator(mode="after")
    def validate_dates(self) -> "ClaimCreate":
        """Ensure service_start_date <= service_end_date when both are given."""
        if self.service_start_date and self.service_end_date and self.service_start_date > self.service_end_date:
            raise ValueError("service_start_date must not be after service_end_date")
        return self


class ClaimUpdate(BaseModel):
    """Editable fields of a DRAFT claim."""

    total_amount: Optional[Decimal] = Field(None, ge=0, description="Manual override of the billed total")
    service_start_date: Optional[date] = None
    service_end_date: Optional[date] = None
    notes: Optional[str] = Field(None, max_length=2000)


class ClaimResponse(BaseModel):
    """Schema for claim response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    claim_number: str
    external_claim_id: Optional[str] = None
    client_id: UUID
    payer_id: UUID
    original_claim_id: Optional[UUID] = None
    claim_type: ClaimType
    claim_status: ClaimStatus
    version: int
    total_amount: Decimal
    service_start_date: date
    service_end_date: date
    submission_date: Optional[date] = None
    submission_method: Optional[SubmissionMethod] = None
    adjudication_date: Optional[date] = None
    denial_reason: Optional[DenialReason] = None
    denial_details: Optional[str] = None
    adjustment_codes: Optional[dict[str, str]] = None
    appeal_reason: Optional[str] = None
    appeal_documents: Optional[list[str]] = None
    notes: Optional[str] = None
    service_lines: list[ClaimServiceLineResponse] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime
    created_by: Optional[str] = None
    updated_by: Optional[str] = None


class ClaimListResponse(BaseModel):
    """Paginated claim list."""

    items: list[ClaimResponse]
    total: int
    page: int
    size: int
    pages: int


# =============================================================================
# Action Schemas
# =============================================================================


class ClaimSubmitRequest(BaseModel):
    submission_method: SubmissionMethod
    submission_date: Optional[date] = Field(None, description="Defaults to today")
    external_claim_id: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = None


class ClaimResubmitRequest(BaseModel):
    submission_method: SubmissionMethod
    submission_date: Optional[date] = None
    notes: Optional[str] = None


class BatchClaimsRequest(BaseModel):
    """Claim IDs plus optional bounds on the work done by one call."""

    claim_ids: list[UUID] = Field(..., min_length=1)
    max_items: Optional[int] = Field(None, gt=0)
    max_seconds: Optional[float] = Field(None, gt=0)


class BatchSubmitRequest(BatchClaimsRequest):
    submission_method: SubmissionMethod
    submission_date: Optional[date] = None


class ClaimVoidRequest(BaseModel):
    notes: str = Field(..., min_length=1, description="Reason for voiding")


class ClaimAppealRequest(BaseModel):
    appeal_reason: str = Field(..., min_length=1)
    supporting_documents: list[str] = Field(default_factory=list)


class ClaimFinalDenyRequest(BaseModel):
    notes: Optional[str] = None


class ClaimAdjudicationRequest(BaseModel):
    """Payer decision recorded against a claim."""

    status: ClaimStatus
    adjudication_date: date
    denial_reason: Optional[DenialReason] = None
    denial_details: Optional[str] = None
    adjustment_codes: Optional[dict[str, str]] = None
    notes: Optional[str] = None

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: ClaimStatus) -> ClaimStatus:
        allowed = {ClaimStatus.PAID, ClaimStatus.PARTIAL_PAID, ClaimStatus.DENIED, ClaimStatus.FINAL_DENIED}
        if v not in allowed:
            raise ValueError(f"status must be one of {sorted(s.value for s in allowed)}")
        return v


class AdjustmentClaimRequest(BaseModel):
    claim_type: ClaimType = Field(default=ClaimType.ADJUSTMENT)
    service_ids: Optional[list[UUID]] = Field(None, min_length=1, description="Defaults to the original's services")
    service_start_date: Optional[date] = None
    service_end_date: Optional[date] = None
    notes: Optional[str] = None

    @field_validator("claim_type")
    @classmethod
    def validate_claim_type(cls, v: ClaimType) -> ClaimType:
        if v not in (ClaimType.ADJUSTMENT, ClaimType.REPLACEMENT):
            raise ValueError("claim_type must be ADJUSTMENT or REPLACEMENT")
        return v


# =============================================================================
# Result Schemas
# =============================================================================


class ValidationIssueResponse(BaseModel):
    code: str
    message: str
    field: Optional[str] = None
    context: Optional[dict[str, Any]] = None


class ValidationResultResponse(BaseModel):
    claim_id: str
    is_valid: bool
    errors: list[ValidationIssueResponse]
    warnings: list[ValidationIssueResponse]


class BatchErrorResponse(BaseModel):
    claim_id: str
    message: str
    kind: Optional[str] = None


class BatchValidationResponse(BaseModel):
    results: dict[str, ValidationResultResponse]
    is_valid: bool
    total_errors: int
    total_warnings: int
    errors: list[BatchErrorResponse] = Field(default_factory=list)
    skipped_claims: list[str] = Field(default_factory=list)


class BatchResultResponse(BaseModel):
    total_processed: int
    success_count: int
    error_count: int
    updated_count: int
    errors: list[BatchErrorResponse]
    processed_claims: list[str]
    skipped_claims: list[str]


class RefreshStatusResponse(BaseModel):
    updated: bool
    previous_status: ClaimStatus
    current_status: ClaimStatus
    payer_status: ClaimStatus
    claim: ClaimResponse


class TransitionOption(BaseModel):
    event: str
    to_status: ClaimStatus
    label: str
    requires_reason: bool


class ClaimStatusResponse(BaseModel):
    claim_id: str
    claim_number: str
    status: ClaimStatus
    label: str
    last_updated: Optional[datetime] = None
    is_terminal: bool
    next_actions: list[TransitionOption]
    details: dict[str, Any]


class ClaimProgressResponse(BaseModel):
    claim_id: str
    status: ClaimStatus
    days_in_status: int
    total_age_days: int
    next_milestone: Optional[str] = None
    transitions: int


class RiskAssessmentResponse(BaseModel):
    risk_score: int
    risk_level: AgingRiskLevel
    factors: list[str]


class ClaimLifecycleResponse(BaseModel):
    claim: ClaimResponse
    timeline: list[ClaimStatusHistoryResponse]
    age_days: int
    next_actions: list[TransitionOption]
    risk: RiskAssessmentResponse


class AgingBucketResponse(BaseModel):
    range: str
    count: int
    amount: Decimal


class PayerAgingResponse(BaseModel):
    payer_id: str
    payer_name: str
    buckets: list[AgingBucketResponse]
    total_count: int
    total_amount: Decimal


class AgingReportResponse(BaseModel):
    as_of: date
    buckets: list[AgingBucketResponse]
    by_payer: list[PayerAgingResponse]
    total_count: int
    total_amount: Decimal


class ClaimMetricsResponse(BaseModel):
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    total_claims: int
    total_amount: Decimal
    submitted_count: int
    denied_count: int
    denial_rate: float
    adjudicated_count: int
    average_processing_time: float
    status_breakdown: dict[str, dict[str, Any]]
    payer_breakdown: list[dict[str, Any]]


class PriorityItemResponse(BaseModel):
    claim: ClaimResponse
    age_days: int
    risk: RiskAssessmentResponse
    recommended_actions: list[str]


class FilingDeadlineResponse(BaseModel):
    claim: ClaimResponse
    filing_deadline: date
    days_remaining: int
    is_overdue: bool


class ActionItemResponse(BaseModel):
    claim: ClaimResponse
    reason: str
    action: str
    age_days: int


class TransitionCountResponse(BaseModel):
    from_status: ClaimStatus
    to_status: ClaimStatus
    count: int
    average_days: float


class TransitionReportResponse(BaseModel):
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    transitions: list[TransitionCountResponse]
    total_transitions: int
