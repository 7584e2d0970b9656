"""
Claim Lifecycle API Endpoints.

Provides:
- Claim listing, creation, retrieval and draft updates
- Validation, submission, resubmission and status refresh (single and batch)
- Adjudication, void, appeal, final denial and adjustment claims
- Status, timeline, progress and lifecycle views
- Aging report, metrics, priority list and follow-up lists

Source: Claim lifecycle design, Section 6 - External Interfaces
Verified: 2026-10-19
"""

import logging
import math
from datetime import date
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from claimflow.api.deps import get_claims_engine, get_current_user_id
from claimflow.api.errors import to_http_exception, unwrap_or_raise
from claimflow.core.enums import ClaimStatus, ClaimType
from claimflow.core.errors import InvalidInputError
from claimflow.core.results import BatchLimits, BatchResult
from claimflow.models.claim import Claim
from claimflow.schemas.claim import (
    ActionItemResponse,
    AdjustmentClaimRequest,
    AgingReportResponse,
    BatchClaimsRequest,
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
    ClaimStatusHistoryResponse,
    ClaimStatusResponse,
    ClaimSubmitRequest,
    ClaimUpdate,
    ClaimVoidRequest,
    FilingDeadlineResponse,
    PriorityItemResponse,
    RefreshStatusResponse,
    RiskAssessmentResponse,
    TransitionReportResponse,
    ValidationResultResponse,
)
from claimflow.services.claim_lifecycle import AdjustmentClaimDTO
from claimflow.services.claim_tracking import TimelineEntry
from claimflow.services.claims_service import ClaimCreateDTO, ClaimUpdateDTO
from claimflow.services.dependencies import ClaimEngine

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/v1/claims",
    tags=["claims"],
)


# =============================================================================
# Helpers
# =============================================================================


def _claim(claim: Claim) -> ClaimResponse:
    return ClaimResponse.model_validate(claim)


def _batch(result: BatchResult) -> BatchResultResponse:
    return BatchResultResponse.model_validate(result.to_dict())


def _timeline(entries: list[TimelineEntry]) -> list[ClaimStatusHistoryResponse]:
    return [
        ClaimStatusHistoryResponse(
            sequence=entry.sequence,
            status=entry.status,
            previous_status=entry.previous_status,
            label=entry.label,
            timestamp=entry.timestamp,
            notes=entry.notes,
            user_id=entry.user_id,
            is_active=entry.is_active,
        )
        for entry in entries
    ]


def _limits(engine: ClaimEngine, request: BatchClaimsRequest) -> Optional[BatchLimits]:
    """Caller bounds, never looser than the configured item cap."""
    if request.max_items is None and request.max_seconds is None:
        return None
    cap = engine.deps.settings.BATCH_MAX_ITEMS
    return BatchLimits(
        max_items=min(request.max_items or cap, cap),
        max_seconds=request.max_seconds,
    )


def _parse_bounds(buckets: Optional[str]) -> Optional[list[int]]:
    if not buckets:
        return None
    try:
        return [int(item) for item in buckets.split(",") if item.strip()]
    except ValueError:
        raise to_http_exception(InvalidInputError(
            "buckets must be comma-separated integers",
            context={"buckets": buckets},
        ))


# =============================================================================
# Claim Records
# =============================================================================


@router.get("", response_model=ClaimListResponse)
async def list_claims(
    status_filter: Optional[ClaimStatus] = Query(None, alias="status"),
    client_id: Optional[UUID] = None,
    payer_id: Optional[UUID] = None,
    claim_type: Optional[ClaimType] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
    engine: ClaimEngine = Depends(get_claims_engine),
) -> ClaimListResponse:
    """List claims filtered by status, client, payer, type and service dates."""
    claims, total = await engine.claims.list_claims(
        skip=(page - 1) * size,
        limit=size,
        status=status_filter,
        client_id=client_id,
        payer_id=payer_id,
        claim_type=claim_type,
        date_from=date_from,
        date_to=date_to,
    )
    return ClaimListResponse(
        items=[_claim(c) for c in claims],
        total=total,
        page=page,
        size=size,
        pages=math.ceil(total / size) if total else 0,
    )


@router.post("", response_model=ClaimResponse, status_code=status.HTTP_201_CREATED)
async def create_claim(
    request: ClaimCreate,
    engine: ClaimEngine = Depends(get_claims_engine),
    user_id: Optional[str] = Depends(get_current_user_id),
) -> ClaimResponse:
    """Create a DRAFT claim from delivered services."""
    result = await engine.claims.create_claim(
        ClaimCreateDTO(
            client_id=request.client_id,
            payer_id=request.payer_id,
            service_ids=request.service_ids,
            claim_type=request.claim_type,
            original_claim_id=request.original_claim_id,
            service_start_date=request.service_start_date,
            service_end_date=request.service_end_date,
            notes=request.notes,
        ),
        created_by=user_id,
    )
    return _claim(unwrap_or_raise(result))


# =============================================================================
# Reports (static paths before /{claim_id})
# =============================================================================


@router.get("/aging-report", response_model=AgingReportResponse)
async def get_aging_report(
    as_of: Optional[date] = None,
    payer_id: Optional[UUID] = None,
    buckets: Optional[str] = Query(None, description="Comma-separated inclusive upper bounds, e.g. 30,60,90"),
    include_payers: bool = True,
    engine: ClaimEngine = Depends(get_claims_engine),
) -> AgingReportResponse:
    """Open claims bucketed by age with per-payer totals."""
    result = await engine.aging.get_aging_report(
        as_of=as_of,
        payer_id=payer_id,
        bucket_bounds=_parse_bounds(buckets),
        include_payers=include_payers,
    )
    return AgingReportResponse.model_validate(unwrap_or_raise(result).to_dict())


@router.get("/metrics", response_model=ClaimMetricsResponse)
async def get_metrics(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    payer_id: Optional[UUID] = None,
    engine: ClaimEngine = Depends(get_claims_engine),
) -> ClaimMetricsResponse:
    """Denial rate, processing time and status / payer breakdowns."""
    result = await engine.aging.get_metrics(start_date=start_date, end_date=end_date, payer_id=payer_id)
    return ClaimMetricsResponse.model_validate(unwrap_or_raise(result).to_dict())


@router.get("/priority-list", response_model=list[PriorityItemResponse])
async def get_priority_list(
    payer_id: Optional[UUID] = None,
    limit: Optional[int] = Query(None, ge=1, le=500),
    engine: ClaimEngine = Depends(get_claims_engine),
) -> list[PriorityItemResponse]:
    items = await engine.aging.get_priority_list(payer_id=payer_id, limit=limit)
    return [
        PriorityItemResponse(
            claim=_claim(item.claim),
            age_days=item.age_days,
            risk=RiskAssessmentResponse.model_validate(item.risk.to_dict()),
            recommended_actions=item.recommended_actions,
        )
        for item in items
    ]


@router.get("/transition-report", response_model=TransitionReportResponse)
async def get_transition_report(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    payer_id: Optional[UUID] = None,
    engine: ClaimEngine = Depends(get_claims_engine),
) -> TransitionReportResponse:
    result = await engine.tracking.get_status_transition_report(
        start_date=start_date, end_date=end_date, payer_id=payer_id
    )
    return TransitionReportResponse.model_validate(unwrap_or_raise(result))


@router.get("/filing-deadlines", response_model=list[FilingDeadlineResponse])
async def get_filing_deadlines(
    days_threshold: Optional[int] = Query(None, ge=0),
    payer_id: Optional[UUID] = None,
    engine: ClaimEngine = Depends(get_claims_engine),
) -> list[FilingDeadlineResponse]:
    """Unsubmitted claims close to (or past) their timely filing deadline."""
    items = await engine.aging.get_claims_approaching_filing_deadline(
        days_threshold=days_threshold, payer_id=payer_id
    )
    return [
        FilingDeadlineResponse(
            claim=_claim(item.claim),
            filing_deadline=item.filing_deadline,
            days_remaining=item.days_remaining,
            is_overdue=item.is_overdue,
        )
        for item in items
    ]


@router.get("/requiring-action", response_model=list[ActionItemResponse])
async def get_claims_requiring_action(
    payer_id: Optional[UUID] = None,
    stalled_days: int = Query(30, ge=1),
    engine: ClaimEngine = Depends(get_claims_engine),
) -> list[ActionItemResponse]:
    items = await engine.aging.get_claims_requiring_action(payer_id=payer_id, stalled_days=stalled_days)
    return [
        ActionItemResponse(
            claim=_claim(item.claim),
            reason=item.reason,
            action=item.action,
            age_days=item.age_days,
        )
        for item in items
    ]


# =============================================================================
# Batch Operations
# =============================================================================


@router.post("/batch/validate", response_model=BatchValidationResponse)
async def batch_validate(
    request: BatchClaimsRequest,
    engine: ClaimEngine = Depends(get_claims_engine),
) -> BatchValidationResponse:
    """Validate every claim; one invalid claim never stops the others."""
    result = await engine.submission.batch_validate(request.claim_ids, limits=_limits(engine, request))
    return BatchValidationResponse.model_validate(result.to_dict())


@router.post("/batch/submit", response_model=BatchResultResponse)
async def batch_submit(
    request: BatchSubmitRequest,
    engine: ClaimEngine = Depends(get_claims_engine),
    user_id: Optional[str] = Depends(get_current_user_id),
) -> BatchResultResponse:
    result = await engine.submission.batch_submit(
        request.claim_ids,
        request.submission_method,
        request.submission_date,
        limits=_limits(engine, request),
        user_id=user_id,
    )
    return _batch(result)


@router.post("/batch/validate-and-submit", response_model=BatchResultResponse)
async def batch_validate_and_submit(
    request: BatchSubmitRequest,
    engine: ClaimEngine = Depends(get_claims_engine),
    user_id: Optional[str] = Depends(get_current_user_id),
) -> BatchResultResponse:
    result = await engine.submission.batch_validate_and_submit(
        request.claim_ids,
        request.submission_method,
        request.submission_date,
        limits=_limits(engine, request),
        user_id=user_id,
    )
    return _batch(result)


@router.post("/batch/refresh-status", response_model=BatchResultResponse)
async def batch_refresh_status(
    request: BatchClaimsRequest,
    engine: ClaimEngine = Depends(get_claims_engine),
) -> BatchResultResponse:
    result = await engine.submission.batch_refresh_status(
        request.claim_ids,
        limits=_limits(engine, request),
    )
    return _batch(result)


# =============================================================================
# Single Claim
# =============================================================================


@router.get("/{claim_id}", response_model=ClaimResponse)
async def get_claim(
    claim_id: str,
    engine: ClaimEngine = Depends(get_claims_engine),
) -> ClaimResponse:
    return _claim(unwrap_or_raise(await engine.claims.get_claim(claim_id)))


@router.patch("/{claim_id}", response_model=ClaimResponse)
async def update_claim(
    claim_id: str,
    request: ClaimUpdate,
    engine: ClaimEngine = Depends(get_claims_engine),
    user_id: Optional[str] = Depends(get_current_user_id),
) -> ClaimResponse:
    """Update a DRAFT claim. Any other status is a 409."""
    fields_set = set(request.model_fields_set)
    result = await engine.claims.update_claim(
        claim_id,
        ClaimUpdateDTO(**request.model_dump(include=fields_set), fields_set=fields_set),
        updated_by=user_id,
    )
    return _claim(unwrap_or_raise(result))


@router.post("/{claim_id}/validate", response_model=ValidationResultResponse)
async def validate_claim(
    claim_id: str,
    advance: bool = Query(False, description="Move a passing DRAFT claim to VALIDATED"),
    engine: ClaimEngine = Depends(get_claims_engine),
    user_id: Optional[str] = Depends(get_current_user_id),
) -> ValidationResultResponse:
    """
    Validate a claim.

    Without advance the result is returned as-is and nothing changes.
    With advance a failing claim yields 422 and stays DRAFT.
    """
    if advance:
        result = await engine.submission.validate_and_advance(claim_id, user_id=user_id)
    else:
        result = await engine.submission.validate(claim_id)
    return ValidationResultResponse.model_validate(unwrap_or_raise(result).to_dict())


@router.post("/{claim_id}/submit", response_model=ClaimResponse)
async def submit_claim(
    claim_id: str,
    request: ClaimSubmitRequest,
    engine: ClaimEngine = Depends(get_claims_engine),
    user_id: Optional[str] = Depends(get_current_user_id),
) -> ClaimResponse:
    """
    Submit a VALIDATED claim.

    Transitions: VALIDATED -> SUBMITTED
    """
    result = await engine.submission.submit(
        claim_id,
        request.submission_method,
        request.submission_date,
        external_claim_id=request.external_claim_id,
        notes=request.notes,
        user_id=user_id,
    )
    return _claim(unwrap_or_raise(result))


@router.post("/{claim_id}/validate-and-submit", response_model=ClaimResponse)
async def validate_and_submit_claim(
    claim_id: str,
    request: ClaimSubmitRequest,
    engine: ClaimEngine = Depends(get_claims_engine),
    user_id: Optional[str] = Depends(get_current_user_id),
) -> ClaimResponse:
    result = await engine.submission.validate_and_submit(
        claim_id,
        request.submission_method,
        request.submission_date,
        notes=request.notes,
        user_id=user_id,
    )
    return _claim(unwrap_or_raise(result))


@router.post("/{claim_id}/resubmit", response_model=ClaimResponse)
async def resubmit_claim(
    claim_id: str,
    request: ClaimResubmitRequest,
    engine: ClaimEngine = Depends(get_claims_engine),
    user_id: Optional[str] = Depends(get_current_user_id),
) -> ClaimResponse:
    """
    Resubmit a denied or appealed claim.

    Transitions: DENIED | APPEALED -> SUBMITTED
    """
    result = await engine.submission.resubmit(
        claim_id,
        request.submission_method,
        request.submission_date,
        notes=request.notes,
        user_id=user_id,
    )
    return _claim(unwrap_or_raise(result))


@router.post("/{claim_id}/refresh-status", response_model=RefreshStatusResponse)
async def refresh_claim_status(
    claim_id: str,
    engine: ClaimEngine = Depends(get_claims_engine),
) -> RefreshStatusResponse:
    outcome = unwrap_or_raise(await engine.submission.refresh_status(claim_id))
    return RefreshStatusResponse(
        updated=outcome.changed,
        previous_status=outcome.previous_status,
        current_status=outcome.claim.claim_status,
        payer_status=outcome.payer_status,
        claim=_claim(outcome.claim),
    )


@router.post("/{claim_id}/adjudication", response_model=ClaimResponse)
async def record_adjudication(
    claim_id: str,
    request: ClaimAdjudicationRequest,
    engine: ClaimEngine = Depends(get_claims_engine),
    user_id: Optional[str] = Depends(get_current_user_id),
) -> ClaimResponse:
    """Record a payer decision (PAID, PARTIAL_PAID, DENIED, FINAL_DENIED)."""
    result = await engine.lifecycle.record_adjudication(
        claim_id,
        request.status,
        request.adjudication_date,
        denial_reason=request.denial_reason,
        denial_details=request.denial_details,
        adjustment_codes=request.adjustment_codes,
        notes=request.notes,
        user_id=user_id,
    )
    return _claim(unwrap_or_raise(result))


@router.post("/{claim_id}/void", response_model=ClaimResponse)
async def void_claim(
    claim_id: str,
    request: ClaimVoidRequest,
    engine: ClaimEngine = Depends(get_claims_engine),
    user_id: Optional[str] = Depends(get_current_user_id),
) -> ClaimResponse:
    result = await engine.lifecycle.void_claim(claim_id, request.notes, user_id=user_id)
    return _claim(unwrap_or_raise(result))


@router.post("/{claim_id}/appeal", response_model=ClaimResponse)
async def appeal_claim(
    claim_id: str,
    request: ClaimAppealRequest,
    engine: ClaimEngine = Depends(get_claims_engine),
    user_id: Optional[str] = Depends(get_current_user_id),
) -> ClaimResponse:
    result = await engine.lifecycle.appeal_claim(
        claim_id,
        request.appeal_reason,
        request.supporting_documents,
        user_id=user_id,
    )
    return _claim(unwrap_or_raise(result))


@router.post("/{claim_id}/final-deny", response_model=ClaimResponse)
async def final_deny_claim(
    claim_id: str,
    request: ClaimFinalDenyRequest,
    engine: ClaimEngine = Depends(get_claims_engine),
    user_id: Optional[str] = Depends(get_current_user_id),
) -> ClaimResponse:
    result = await engine.lifecycle.final_deny(claim_id, request.notes, user_id=user_id)
    return _claim(unwrap_or_raise(result))


@router.post("/{claim_id}/adjustments", response_model=ClaimResponse, status_code=status.HTTP_201_CREATED)
async def create_adjustment_claim(
    claim_id: str,
    request: AdjustmentClaimRequest,
    engine: ClaimEngine = Depends(get_claims_engine),
    user_id: Optional[str] = Depends(get_current_user_id),
) -> ClaimResponse:
    """Create an ADJUSTMENT or REPLACEMENT claim for an adjudicated original."""
    result = await engine.lifecycle.create_adjustment_claim(
        claim_id,
        AdjustmentClaimDTO(
            claim_type=request.claim_type,
            service_ids=request.service_ids,
            service_start_date=request.service_start_date,
            service_end_date=request.service_end_date,
            notes=request.notes,
        ),
        created_by=user_id,
    )
    return _claim(unwrap_or_raise(result))


# =============================================================================
# Tracking
# =============================================================================


@router.get("/{claim_id}/status", response_model=ClaimStatusResponse)
async def get_claim_status(
    claim_id: str,
    engine: ClaimEngine = Depends(get_claims_engine),
) -> ClaimStatusResponse:
    info = unwrap_or_raise(await engine.tracking.get_status(claim_id))
    return ClaimStatusResponse(
        claim_id=info.claim_id,
        claim_number=info.claim_number,
        status=info.status,
        label=info.label,
        last_updated=info.last_updated,
        is_terminal=info.is_terminal,
        next_actions=info.next_actions,
        details=info.details,
    )


@router.get("/{claim_id}/timeline", response_model=list[ClaimStatusHistoryResponse])
async def get_claim_timeline(
    claim_id: str,
    engine: ClaimEngine = Depends(get_claims_engine),
) -> list[ClaimStatusHistoryResponse]:
    return _timeline(unwrap_or_raise(await engine.tracking.get_timeline(claim_id)))


@router.get("/{claim_id}/progress", response_model=ClaimProgressResponse)
async def get_claim_progress(
    claim_id: str,
    engine: ClaimEngine = Depends(get_claims_engine),
) -> ClaimProgressResponse:
    progress = unwrap_or_raise(await engine.tracking.monitor_progress(claim_id))
    return ClaimProgressResponse(
        claim_id=progress.claim_id,
        status=progress.status,
        days_in_status=progress.days_in_status,
        total_age_days=progress.total_age_days,
        next_milestone=progress.next_milestone,
        transitions=progress.transitions,
    )


@router.get("/{claim_id}/lifecycle", response_model=ClaimLifecycleResponse)
async def get_claim_lifecycle(
    claim_id: str,
    engine: ClaimEngine = Depends(get_claims_engine),
) -> ClaimLifecycleResponse:
    """Claim, timeline, age, next actions and risk in one response."""
    view = unwrap_or_raise(await engine.tracking.get_lifecycle(claim_id))
    return ClaimLifecycleResponse(
        claim=_claim(view.claim),
        timeline=_timeline(view.timeline),
        age_days=view.age_days,
        next_actions=view.next_actions,
        risk=RiskAssessmentResponse.model_validate(view.risk.to_dict()),
    )


@router.get("/{claim_id}/risk", response_model=RiskAssessmentResponse)
async def get_claim_risk(
    claim_id: str,
    engine: ClaimEngine = Depends(get_claims_engine),
) -> RiskAssessmentResponse:
    risk = unwrap_or_raise(await engine.aging.get_claim_risk(claim_id))
    return RiskAssessmentResponse.model_validate(risk.to_dict())
