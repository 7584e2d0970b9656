"""
Claim Submission Coordinator.

Provides:
- Standalone and gating validation (single and batch)
- Submission to payers, directly or through the clearinghouse
- Validate-and-submit flows (single and batch)
- Resubmission of denied / appealed claims
- Payer status refresh (single and batch)

Each claim is handled in its own transaction scope. Batch operations never
stop early: per-claim failures are collected into the BatchResult.

Source: Claim lifecycle design, Section 4.3 - Submission
Verified: 2026-10-19
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Iterable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from claimflow.core.enums import ClaimStatus, DenialReason, SubmissionMethod
from claimflow.core.errors import (
    ClaimNotFoundError,
    ClaimStateConflictError,
    ClaimsServiceError,
    ClaimValidationError,
    IntegrationError,
)
from claimflow.core.results import BatchItemError, BatchLimits, BatchResult, OperationResult
from claimflow.db.connection import transaction
from claimflow.models.claim import Claim
from claimflow.models.reference import Payer
from claimflow.services.claim_state_machine import (
    REFRESHABLE_STATUSES,
    TransitionContext,
    TransitionEvent,
    get_claim_state_machine,
    is_refreshable_status,
)
from claimflow.services.claim_validation import (
    ClaimValidationResult,
    ClaimValidationService,
    ValidationCategory,
    ValidationIssue,
    ValidationSeverity,
)
from claimflow.services.clearinghouse import ClaimSubmission, StatusResponse, SubmissionLine
from claimflow.services.dependencies import ClaimEngineDeps
from claimflow.services.notifications import ClaimNotification, NotificationType, publish

logger = logging.getLogger(__name__)


# Methods transmitted through the clearinghouse; the rest are recorded only
TRANSMITTED_METHODS = frozenset({
    SubmissionMethod.ELECTRONIC,
    SubmissionMethod.CLEARINGHOUSE,
    SubmissionMethod.DIRECT,
})

RESUBMITTABLE_STATUSES = frozenset({ClaimStatus.DENIED, ClaimStatus.APPEALED})

# Payer statuses that predate adjudication; a late report of one is not an error
_PRE_ADJUDICATION = frozenset({
    ClaimStatus.SUBMITTED,
    ClaimStatus.ACKNOWLEDGED,
    ClaimStatus.PENDING,
})


@dataclass
class BatchValidationResult:
    """Outcome of validating many claims independently."""

    results: dict[str, ClaimValidationResult] = field(default_factory=dict)
    errors: list[BatchItemError] = field(default_factory=list)
    skipped_claims: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors and all(r.is_valid for r in self.results.values())

    @property
    def total_errors(self) -> int:
        return len(self.errors) + sum(r.error_count for r in self.results.values())

    @property
    def total_warnings(self) -> int:
        return sum(r.warning_count for r in self.results.values())

    def to_dict(self) -> dict[str, Any]:
        return {
            "results": {claim_id: r.to_dict() for claim_id, r in self.results.items()},
            "is_valid": self.is_valid,
            "total_errors": self.total_errors,
            "total_warnings": self.total_warnings,
            "errors": [
                {"claim_id": e.claim_id, "message": e.message, "kind": e.kind}
                for e in self.errors
            ],
            "skipped_claims": list(self.skipped_claims),
        }


@dataclass
class RefreshOutcome:
    """Result of one payer status refresh."""

    claim: Claim
    previous_status: ClaimStatus
    payer_status: ClaimStatus

    @property
    def changed(self) -> bool:
        return self.claim.claim_status != self.previous_status


class ClaimSubmissionService:
    """
    Orchestrates validation, submission and status refresh.

    Validation runs read-only; every status change goes through the claim
    store so the status update and its history row commit together.
    """

    def __init__(self, deps: ClaimEngineDeps, validation: ClaimValidationService):
        self.deps = deps
        self.store = deps.store
        self.validation = validation
        self.gateway = deps.gateway

    def _default_limits(self) -> BatchLimits:
        return BatchLimits(
            max_items=self.deps.settings.BATCH_MAX_ITEMS,
            max_seconds=self.deps.settings.BATCH_MAX_SECONDS,
        )

    # =========================================================================
    # Validation
    # =========================================================================

    async def validate(
        self,
        claim_id,
        filing_date: Optional[date] = None,
    ) -> OperationResult[ClaimValidationResult]:
        """Validate a claim without changing its status."""
        async with self.deps.session_maker() as session:
            claim = await self.store.get(session, claim_id)
            if claim is None:
                return OperationResult.fail(ClaimNotFoundError(claim_id))
            result = await self.validation.validate_claim(session, claim, filing_date=filing_date)
        return OperationResult.ok(result)

    async def validate_and_advance(
        self,
        claim_id,
        user_id: Optional[str] = None,
    ) -> OperationResult[ClaimValidationResult]:
        """
        Validate a DRAFT claim and move it to VALIDATED when it passes.

        A failing claim stays DRAFT and the full result is carried in the
        ClaimValidationError.
        """
        async with transaction(self.deps.session_maker) as session:
            claim = await self.store.lock(session, claim_id)
            if claim is None:
                return OperationResult.fail(ClaimNotFoundError(claim_id))
            return await self._advance_in_session(session, claim, user_id=user_id)

    async def _advance_in_session(
        self,
        session: AsyncSession,
        claim: Claim,
        user_id: Optional[str] = None,
        filing_date: Optional[date] = None,
    ) -> OperationResult[ClaimValidationResult]:
        if claim.claim_status != ClaimStatus.DRAFT:
            logger.warning(f"Rejected validation of claim {claim.claim_number} in {claim.claim_status.value}")
            return OperationResult.fail(ClaimStateConflictError(claim.claim_status, "validate"))

        result = await self.validation.validate_claim(session, claim, filing_date=filing_date)
        if not result.is_valid:
            logger.info(f"Claim {claim.claim_number} failed validation: {result.error_codes}")
            return OperationResult.fail(ClaimValidationError(
                f"Claim {claim.claim_number} failed validation",
                result,
            ))

        transitioned = await self.store.transition(
            session,
            claim,
            TransitionContext(
                claim_id=str(claim.id),
                current_status=claim.claim_status,
                target_status=ClaimStatus.VALIDATED,
                event=TransitionEvent.VALIDATE,
                triggered_by=user_id,
                validation_passed=True,
            ),
            notes="Validation passed",
        )
        if not transitioned.success:
            return OperationResult.fail(transitioned.error)
        return OperationResult.ok(result)

    async def batch_validate(
        self,
        claim_ids: Iterable,
        limits: Optional[BatchLimits] = None,
    ) -> BatchValidationResult:
        """
        Validate each claim independently; never stops early.

        A fault while validating one claim is recorded against that claim and
        the batch moves on. Claims beyond the batch bound are listed as skipped.
        """
        batch = BatchValidationResult()
        budget = (limits or self._default_limits()).start()

        for claim_id in claim_ids:
            key = str(claim_id)
            if budget.exhausted():
                batch.skipped_claims.append(key)
                continue
            budget.consume()

            try:
                outcome = await self.validate(claim_id)
            except ClaimsServiceError as e:
                batch.errors.append(BatchItemError(claim_id=key, message=e.message, kind=e.kind.value))
                continue
            except Exception as e:
                logger.exception(f"batch_validate: unexpected failure for claim {key}")
                batch.errors.append(BatchItemError(claim_id=key, message=str(e)))
                continue

            if outcome.success:
                batch.results[key] = outcome.value
                continue

            missing = ClaimValidationResult(claim_id=key)
            missing.add_issue(ValidationIssue(
                code="CLAIM_NOT_FOUND",
                message=outcome.error_message or f"Claim not found: {key}",
                severity=ValidationSeverity.ERROR,
                category=ValidationCategory.REFERENTIAL,
                field="claim_id",
            ))
            batch.results[key] = missing

        if batch.skipped_claims:
            logger.warning(f"batch_validate: batch bound reached, {len(batch.skipped_claims)} claims skipped")
        logger.info(
            f"Batch validation: {len(batch.results)} claims, "
            f"{batch.total_errors} errors, {batch.total_warnings} warnings"
        )
        return batch

    # =========================================================================
    # Submission
    # =========================================================================

    async def submit(
        self,
        claim_id,
        submission_method: SubmissionMethod,
        submission_date: Optional[date] = None,
        external_claim_id: Optional[str] = None,
        notes: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> OperationResult[Claim]:
        """
        Submit a VALIDATED claim.

        Raises:
            IntegrationError: clearinghouse failure or timeout; the claim
                stays VALIDATED
        """
        return await self._submit(
            claim_id,
            TransitionEvent.SUBMIT,
            submission_method,
            submission_date,
            external_claim_id=external_claim_id,
            notes=notes,
            user_id=user_id,
        )

    async def resubmit(
        self,
        claim_id,
        submission_method: SubmissionMethod,
        submission_date: Optional[date] = None,
        notes: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> OperationResult[Claim]:
        """
        Resubmit a DENIED or APPEALED claim under the same claim identity.

        The claim re-enters SUBMITTED and a second SUBMITTED history row is
        appended; prior denial and adjudication fields are cleared.
        """
        return await self._submit(
            claim_id,
            TransitionEvent.RESUBMIT,
            submission_method,
            submission_date,
            notes=notes or "Claim resubmitted",
            user_id=user_id,
        )

    async def _submit(
        self,
        claim_id,
        event: TransitionEvent,
        submission_method: SubmissionMethod,
        submission_date: Optional[date],
        external_claim_id: Optional[str] = None,
        notes: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> OperationResult[Claim]:
        submission_date = submission_date or self.deps.clock()
        claim_number: Optional[str] = None
        try:
            async with transaction(self.deps.session_maker) as session:
                claim = await self.store.lock(session, claim_id)
                if claim is None:
                    return OperationResult.fail(ClaimNotFoundError(claim_id))
                claim_number = claim.claim_number

                result = await self._submit_in_session(
                    session,
                    claim,
                    event,
                    submission_method,
                    submission_date,
                    external_claim_id=external_claim_id,
                    notes=notes,
                    user_id=user_id,
                )
                if not result.success:
                    return result
        except IntegrationError as e:
            await publish(self.deps.notifier, ClaimNotification(
                type=NotificationType.SUBMISSION_FAILED,
                claim_id=str(claim_id),
                claim_number=claim_number,
                message=e.message,
            ))
            raise

        await publish(self.deps.notifier, ClaimNotification(
            type=NotificationType.SUBMISSION_COMPLETED,
            claim_id=str(claim.id),
            claim_number=claim.claim_number,
            message=f"Submitted via {submission_method.value}",
            data={"external_claim_id": claim.external_claim_id, "event": event.value},
        ))
        return OperationResult.ok(claim)

    async def _submit_in_session(
        self,
        session: AsyncSession,
        claim: Claim,
        event: TransitionEvent,
        submission_method: SubmissionMethod,
        submission_date: date,
        external_claim_id: Optional[str] = None,
        notes: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> OperationResult[Claim]:
        action = "resubmit" if event == TransitionEvent.RESUBMIT else "submit"
        if get_claim_state_machine().get_transition(claim.claim_status, event) is None:
            logger.warning(f"Rejected {action} of claim {claim.claim_number} in {claim.claim_status.value}")
            return OperationResult.fail(ClaimStateConflictError(claim.claim_status, action))

        if submission_method in TRANSMITTED_METHODS:
            payer = await session.get(Payer, claim.payer_id)
            if payer is None:
                return OperationResult.fail(ClaimNotFoundError(claim.payer_id, entity="Payer"))
            if not payer.is_electronic:
                return OperationResult.fail(ClaimStateConflictError(
                    claim.claim_status,
                    action,
                    detail=f"Payer {payer.name} does not accept {submission_method.value} submissions",
                ))

            payload = await self._build_submission(session, claim, payer, submission_method, submission_date)
            response = await self.gateway.submit(payload)
            external_claim_id = response.external_id

        return await self.store.transition(
            session,
            claim,
            TransitionContext(
                claim_id=str(claim.id),
                current_status=claim.claim_status,
                target_status=ClaimStatus.SUBMITTED,
                event=event,
                triggered_by=user_id,
                submission_method=submission_method,
                submission_date=submission_date,
                external_claim_id=external_claim_id,
            ),
            notes=notes or f"Submitted via {submission_method.value}",
        )

    async def _build_submission(
        self,
        session: AsyncSession,
        claim: Claim,
        payer: Payer,
        submission_method: SubmissionMethod,
        submission_date: date,
    ) -> ClaimSubmission:
        original_external_id = None
        if claim.original_claim_id is not None:
            original = await session.get(Claim, claim.original_claim_id)
            original_external_id = original.external_claim_id if original else None

        return ClaimSubmission(
            claim_id=str(claim.id),
            claim_number=claim.claim_number,
            claim_type=claim.claim_type,
            client_id=str(claim.client_id),
            payer_id=str(claim.payer_id),
            payer_reference=payer.clearinghouse_payer_id,
            original_external_id=original_external_id,
            total_amount=claim.total_amount,
            service_start_date=claim.service_start_date,
            service_end_date=claim.service_end_date,
            submission_method=submission_method,
            submission_date=submission_date,
            lines=[
                SubmissionLine(
                    line_number=line.service_line_number,
                    service_code=line.service_code,
                    service_date=line.service_date,
                    units=line.billed_units,
                    amount=line.billed_amount,
                )
                for line in claim.service_lines
            ],
        )

    async def validate_and_submit(
        self,
        claim_id,
        submission_method: SubmissionMethod,
        submission_date: Optional[date] = None,
        notes: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> OperationResult[Claim]:
        """
        Validate a DRAFT claim against the submission date and submit it.

        The VALIDATED transition commits before transmission, so a
        clearinghouse failure leaves the claim VALIDATED.
        """
        submission_date = submission_date or self.deps.clock()

        async with transaction(self.deps.session_maker) as session:
            claim = await self.store.lock(session, claim_id)
            if claim is None:
                return OperationResult.fail(ClaimNotFoundError(claim_id))

            if claim.claim_status == ClaimStatus.DRAFT:
                advanced = await self._advance_in_session(
                    session, claim, user_id=user_id, filing_date=submission_date
                )
                if not advanced.success:
                    return OperationResult.fail(advanced.error)
            elif claim.claim_status == ClaimStatus.VALIDATED:
                # Re-check against the actual filing date
                result = await self.validation.validate_claim(session, claim, filing_date=submission_date)
                if not result.is_valid:
                    return OperationResult.fail(ClaimValidationError(
                        f"Claim {claim.claim_number} failed validation",
                        result,
                    ))
            else:
                return OperationResult.fail(ClaimStateConflictError(claim.claim_status, "submit"))

        return await self.submit(
            claim_id,
            submission_method,
            submission_date,
            notes=notes,
            user_id=user_id,
        )

    # =========================================================================
    # Batch Submission
    # =========================================================================

    async def batch_submit(
        self,
        claim_ids: Iterable,
        submission_method: SubmissionMethod,
        submission_date: Optional[date] = None,
        limits: Optional[BatchLimits] = None,
        user_id: Optional[str] = None,
    ) -> BatchResult:
        """Submit each claim independently; one failure never aborts the batch."""
        submission_date = submission_date or self.deps.clock()
        return await self._run_batch(
            "batch_submit",
            claim_ids,
            limits,
            lambda claim_id: self.submit(
                claim_id, submission_method, submission_date, user_id=user_id
            ),
        )

    async def batch_validate_and_submit(
        self,
        claim_ids: Iterable,
        submission_method: SubmissionMethod,
        submission_date: Optional[date] = None,
        limits: Optional[BatchLimits] = None,
        user_id: Optional[str] = None,
    ) -> BatchResult:
        """Validate each claim and submit the ones that pass."""
        submission_date = submission_date or self.deps.clock()
        return await self._run_batch(
            "batch_validate_and_submit",
            claim_ids,
            limits,
            lambda claim_id: self.validate_and_submit(
                claim_id, submission_method, submission_date, user_id=user_id
            ),
        )

    async def _run_batch(self, operation: str, claim_ids: Iterable, limits, handler) -> BatchResult:
        result = BatchResult()
        budget = (limits or self._default_limits()).start()

        for claim_id in claim_ids:
            key = str(claim_id)
            if budget.exhausted():
                result.skipped_claims.append(key)
                continue
            budget.consume()

            try:
                outcome = await handler(claim_id)
            except ClaimsServiceError as e:
                result.record_failure(key, e)
                continue
            except Exception as e:
                logger.exception(f"{operation}: unexpected failure for claim {key}")
                result.record_failure(key, e)
                continue

            if outcome.success:
                updated = outcome.value.changed if isinstance(outcome.value, RefreshOutcome) else True
                result.record_success(key, updated=updated)
            else:
                result.record_failure(key, outcome.error)

        if result.skipped_claims:
            logger.warning(f"{operation}: batch bound reached, {len(result.skipped_claims)} claims skipped")
        logger.info(
            f"{operation}: processed={result.total_processed} "
            f"success={result.success_count} errors={result.error_count}"
        )
        await publish(self.deps.notifier, ClaimNotification(
            type=NotificationType.BATCH_COMPLETED,
            message=f"{operation} completed",
            data=result.to_dict(),
        ))
        return result

    # =========================================================================
    # Status Refresh
    # =========================================================================

    async def refresh_status(self, claim_id) -> OperationResult[RefreshOutcome]:
        """
        Pull the payer-side status and apply it through the state machine.

        Intermediate hops (e.g. SUBMITTED -> ACKNOWLEDGED before PAID) are
        recorded in the same transaction as the final status.

        Raises:
            IntegrationError: clearinghouse failure or timeout; the claim is
                left unchanged
        """
        async with transaction(self.deps.session_maker) as session:
            claim = await self.store.lock(session, claim_id)
            if claim is None:
                return OperationResult.fail(ClaimNotFoundError(claim_id))

            previous = claim.claim_status
            if not is_refreshable_status(previous):
                logger.warning(f"Rejected status refresh of claim {claim.claim_number} in {previous.value}")
                return OperationResult.fail(ClaimStateConflictError(previous, "refresh status of"))
            if not claim.external_claim_id:
                return OperationResult.fail(ClaimStateConflictError(
                    previous,
                    "refresh status of",
                    detail=f"Claim {claim.claim_number} has no clearinghouse reference to query",
                ))

            response = await self.gateway.fetch_status(claim.external_claim_id)
            applied = await self._apply_payer_status(session, claim, response)
            if not applied.success:
                return OperationResult.fail(applied.error)

        outcome = RefreshOutcome(claim=claim, previous_status=previous, payer_status=response.status)
        if outcome.changed:
            await self._notify_outcome(claim, previous)
        return OperationResult.ok(outcome)

    def _target_status(self, current: ClaimStatus, reported: ClaimStatus) -> ClaimStatus:
        # A denial reported on an appealed claim upholds the original denial
        if current == ClaimStatus.APPEALED and reported == ClaimStatus.DENIED:
            return ClaimStatus.FINAL_DENIED
        return reported

    async def _apply_payer_status(
        self,
        session: AsyncSession,
        claim: Claim,
        response: StatusResponse,
    ) -> OperationResult[Claim]:
        current = claim.claim_status
        target = self._target_status(current, response.status)
        path = get_claim_state_machine().forward_path(current, target)

        if path is None:
            if target in _PRE_ADJUDICATION:
                logger.debug(f"Claim {claim.claim_number}: payer status {target.value} is not newer than {current.value}")
                return OperationResult.ok(claim)
            return OperationResult.fail(ClaimStateConflictError(
                current,
                "refresh status of",
                detail=f"Payer reported {target.value}, which cannot follow {current.value}",
            ))

        adjudication_date = response.adjudication_date or self.deps.clock()
        for hop in path:
            result = await self.store.transition(
                session,
                claim,
                TransitionContext(
                    claim_id=str(claim.id),
                    current_status=claim.claim_status,
                    target_status=hop.to_status,
                    event=hop.event,
                    adjudication_date=adjudication_date if hop.requires_adjudication_date else None,
                    denial_reason=(response.denial_reason or DenialReason.OTHER)
                    if hop.requires_denial_reason else None,
                    denial_details=response.denial_details,
                    adjustment_codes=response.adjustment_codes,
                ),
                notes=f"Payer status {response.status.value} reported by clearinghouse",
            )
            if not result.success:
                return result
        return OperationResult.ok(claim)

    async def _notify_outcome(self, claim: Claim, previous: ClaimStatus) -> None:
        if previous == ClaimStatus.APPEALED:
            await publish(self.deps.notifier, ClaimNotification(
                type=NotificationType.APPEAL_OUTCOME,
                claim_id=str(claim.id),
                claim_number=claim.claim_number,
                message=f"Appeal resolved as {claim.claim_status.value}",
            ))
        elif claim.claim_status == ClaimStatus.DENIED:
            await publish(self.deps.notifier, ClaimNotification(
                type=NotificationType.CLAIM_DENIED,
                claim_id=str(claim.id),
                claim_number=claim.claim_number,
                message=f"Denied: {claim.denial_reason.value if claim.denial_reason else 'unspecified'}",
            ))

    async def batch_refresh_status(
        self,
        claim_ids: Iterable,
        limits: Optional[BatchLimits] = None,
    ) -> BatchResult:
        """Refresh each claim independently; updated_count counts status changes."""
        return await self._run_batch("batch_refresh_status", claim_ids, limits, self.refresh_status)

    async def refresh_open_claims(self, limits: Optional[BatchLimits] = None) -> BatchResult:
        """Refresh every claim still awaiting a payer outcome."""
        limits = limits or self._default_limits()
        async with self.deps.session_maker() as session:
            claims = await self.store.find_by_status(session, sorted(REFRESHABLE_STATUSES))
        claim_ids = [claim.id for claim in claims if claim.external_claim_id]
        return await self.batch_refresh_status(claim_ids, limits=limits)
