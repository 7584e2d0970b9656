"""
Pydantic Schemas for the Claim Lifecycle API.

This module exports all request/response schemas for the API.
"""

from claimflow.schemas.claim import (
    ActionItemResponse,
    AdjustmentClaimRequest,
    AgingBucketResponse,
    AgingReportResponse,
    BatchClaimsRequest,
    BatchErrorResponse,
    BatchResultResponse,
    BatchSubmitRequest,
    BatchValidationResponse,
    ClaimAdjudicationRequest,
    ClaimAppealRequest,
    ClaimCreate,
    ClaimFinalDenyRequest,
    ClaimLifecycleResponse,
    ClaimListResponse,
    ClaimMetricsResponse,
    ClaimProgressResponse,
    ClaimResponse,
    ClaimResubmitRequest,
    ClaimServiceLineResponse,
    ClaimStatusHistoryResponse,
    ClaimStatusResponse,
    ClaimSubmitRequest,
    ClaimUpdate,
    ClaimVoidRequest,
    FilingDeadlineResponse,
    PayerAgingResponse,
    PriorityItemResponse,
    RefreshStatusResponse,
    RiskAssessmentResponse,
    TransitionCountResponse,
    TransitionOption,
    TransitionReportResponse,
    ValidationIssueResponse,
    ValidationResultResponse,
)

__all__ = [
    # Claim records
    "ClaimCreate",
    "ClaimUpdate",
    "ClaimResponse",
    "ClaimListResponse",
    "ClaimServiceLineResponse",
    "ClaimStatusHistoryResponse",
    # Actions
    "ClaimSubmitRequest",
    "ClaimResubmitRequest",
    "BatchClaimsRequest",
    "BatchSubmitRequest",
    "ClaimVoidRequest",
    "ClaimAppealRequest",
    "ClaimFinalDenyRequest",
    "ClaimAdjudicationRequest",
    "AdjustmentClaimRequest",
    # Results
    "ValidationIssueResponse",
    "ValidationResultResponse",
    "BatchValidationResponse",
    "BatchErrorResponse",
    "BatchResultResponse",
    "RefreshStatusResponse",
    "TransitionOption",
    "ClaimStatusResponse",
    "ClaimProgressResponse",
    "RiskAssessmentResponse",
    "ClaimLifecycleResponse",
    # Reports
    "AgingBucketResponse",
    "PayerAgingResponse",
    "AgingReportResponse",
    "ClaimMetricsResponse",
    "PriorityItemResponse",
    "FilingDeadlineResponse",
    "ActionItemResponse",
    "TransitionCountResponse",
    "TransitionReportResponse",
]
