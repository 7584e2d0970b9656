"""
Claim Lifecycle Actions.

Provides:
- Void (soft delete) of any non-terminal claim
- Appeal of denied claims
- Manual adjudication outcomes (paid, partially paid, denied, final denial)
- Final denial
- Adjustment / replacement claims referencing an original

Source: Claim lifecycle design, Section 4.4 - Lifecycle Actions
Verified: 2026-10-19
"""

import logging
from dataclasses import dataclass
from datetime import date
from typing import Optional
from uuid import UUID

from claimflow.core.enums import ClaimStatus, ClaimType, DenialReason
from claimflow.core.errors import ClaimNotFoundError, ClaimStateConflictError, InvalidInputError
from claimflow.core.results import OperationResult
from claimflow.db.connection import transaction
from claimflow.models.claim import Claim
from claimflow.services.claim_state_machine import (
    TransitionContext,
    TransitionEvent,
    get_claim_state_machine,
)
from claimflow.services.claims_service import ClaimCreateDTO, ClaimsService
from claimflow.services.dependencies import ClaimEngineDeps
from claimflow.services.notifications import ClaimNotification, NotificationType, publish

logger = logging.getLogger(__name__)


ADJUDICATION_OUTCOMES = frozenset({
    ClaimStatus.PAID,
    ClaimStatus.PARTIAL_PAID,
    ClaimStatus.DENIED,
    ClaimStatus.FINAL_DENIED,
})

# Original claims that may be corrected by a new claim
ADJUSTABLE_STATUSES = frozenset({ClaimStatus.PAID, ClaimStatus.PARTIAL_PAID, ClaimStatus.DENIED})


@dataclass
class AdjustmentClaimDTO:
    """Data for a correction claim; unset fields are copied from the original."""

    claim_type: ClaimType = ClaimType.ADJUSTMENT
    service_ids: Optional[list[UUID]] = None
    service_start_date: Optional[date] = None
    service_end_date: Optional[date] = None
    notes: Optional[str] = None


class ClaimLifecycleService:
    """Handlers for user-initiated lifecycle actions."""

    def __init__(self, deps: ClaimEngineDeps, claims: ClaimsService):
        self.deps = deps
        self.store = deps.store
        self.claims = claims

    async def _apply(
        self,
        claim_id,
        event: TransitionEvent,
        target: ClaimStatus,
        **context_fields,
    ) -> OperationResult[tuple[Claim, ClaimStatus]]:
        """Lock, transition and record one claim; returns the claim and its prior status."""
        notes = context_fields.pop("notes", None)
        async with transaction(self.deps.session_maker) as session:
            claim = await self.store.lock(session, claim_id)
            if claim is None:
                return OperationResult.fail(ClaimNotFoundError(claim_id))

            previous = claim.claim_status
            result = await self.store.transition(
                session,
                claim,
                TransitionContext(
                    claim_id=str(claim.id),
                    current_status=previous,
                    target_status=target,
                    event=event,
                    **context_fields,
                ),
                notes=notes,
            )
            if not result.success:
                return OperationResult.fail(result.error)

        return OperationResult.ok((claim, previous))

    # =========================================================================
    # Void
    # =========================================================================

    async def void_claim(
        self,
        claim_id,
        notes: str,
        user_id: Optional[str] = None,
    ) -> OperationResult[Claim]:
        """Void a non-terminal claim. PAID, FINAL_DENIED and VOID claims are rejected."""
        result = await self._apply(
            claim_id,
            TransitionEvent.VOID,
            ClaimStatus.VOID,
            reason=notes,
            triggered_by=user_id,
        )
        if not result.success:
            return OperationResult.fail(result.error)

        claim, _ = result.value
        await publish(self.deps.notifier, ClaimNotification(
            type=NotificationType.CLAIM_VOIDED,
            claim_id=str(claim.id),
            claim_number=claim.claim_number,
            message=notes,
        ))
        return OperationResult.ok(claim)

    # =========================================================================
    # Appeals
    # =========================================================================

    async def appeal_claim(
        self,
        claim_id,
        appeal_reason: str,
        supporting_documents: Optional[list[str]] = None,
        user_id: Optional[str] = None,
    ) -> OperationResult[Claim]:
        """File an appeal for a DENIED claim; the billed amount is unchanged."""
        result = await self._apply(
            claim_id,
            TransitionEvent.APPEAL,
            ClaimStatus.APPEALED,
            reason=appeal_reason,
            documents=list(supporting_documents or []),
            triggered_by=user_id,
        )
        if not result.success:
            return OperationResult.fail(result.error)

        claim, _ = result.value
        await publish(self.deps.notifier, ClaimNotification(
            type=NotificationType.APPEAL_FILED,
            claim_id=str(claim.id),
            claim_number=claim.claim_number,
            message=appeal_reason,
            data={"documents": list(claim.appeal_documents or [])},
        ))
        return OperationResult.ok(claim)

    # =========================================================================
    # Adjudication
    # =========================================================================

    async def record_adjudication(
        self,
        claim_id,
        status: ClaimStatus,
        adjudication_date: date,
        denial_reason: Optional[DenialReason] = None,
        denial_details: Optional[str] = None,
        adjustment_codes: Optional[dict[str, str]] = None,
        notes: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> OperationResult[Claim]:
        """
        Record a payer decision.

        A DENIED decision on an APPEALED claim is recorded as FINAL_DENIED.
        """
        if status not in ADJUDICATION_OUTCOMES:
            return OperationResult.fail(InvalidInputError(
                f"{status.value} is not an adjudication outcome",
                context={"allowed": sorted(s.value for s in ADJUDICATION_OUTCOMES)},
            ))

        state_machine = get_claim_state_machine()
        async with transaction(self.deps.session_maker) as session:
            claim = await self.store.lock(session, claim_id)
            if claim is None:
                return OperationResult.fail(ClaimNotFoundError(claim_id))

            previous = claim.claim_status
            target = status
            if previous == ClaimStatus.APPEALED and status == ClaimStatus.DENIED:
                target = ClaimStatus.FINAL_DENIED

            event = state_machine.find_event(previous, target)
            if event is None:
                logger.warning(
                    f"Rejected adjudication {target.value} for claim {claim.claim_number} in {previous.value}"
                )
                return OperationResult.fail(ClaimStateConflictError(previous, "record adjudication for"))

            result = await self.store.transition(
                session,
                claim,
                TransitionContext(
                    claim_id=str(claim.id),
                    current_status=previous,
                    target_status=target,
                    event=event,
                    triggered_by=user_id,
                    adjudication_date=adjudication_date,
                    denial_reason=denial_reason,
                    denial_details=denial_details,
                    adjustment_codes=adjustment_codes,
                ),
                notes=notes or f"Adjudicated {target.value}",
            )
            if not result.success:
                return result

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
                message=f"Denied: {claim.denial_reason.value}",
            ))
        return OperationResult.ok(claim)

    async def final_deny(
        self,
        claim_id,
        notes: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> OperationResult[Claim]:
        """Accept a denial as final (DENIED -> FINAL_DENIED)."""
        result = await self._apply(
            claim_id,
            TransitionEvent.FINAL_DENY,
            ClaimStatus.FINAL_DENIED,
            reason=notes,
            denial_details=notes,
            triggered_by=user_id,
            notes=notes or "Denial accepted as final",
        )
        if not result.success:
            return OperationResult.fail(result.error)

        claim, previous = result.value
        if previous == ClaimStatus.APPEALED:
            await publish(self.deps.notifier, ClaimNotification(
                type=NotificationType.APPEAL_OUTCOME,
                claim_id=str(claim.id),
                claim_number=claim.claim_number,
                message="Appeal closed with final denial",
            ))
        return OperationResult.ok(claim)

    # =========================================================================
    # Adjustments
    # =========================================================================

    async def create_adjustment_claim(
        self,
        original_claim_id,
        data: Optional[AdjustmentClaimDTO] = None,
        created_by: Optional[str] = None,
    ) -> OperationResult[Claim]:
        """
        Create a DRAFT correction claim pointing at an adjudicated original.

        The original claim and its history are not modified.
        """
        data = data or AdjustmentClaimDTO()
        if data.claim_type not in (ClaimType.ADJUSTMENT, ClaimType.REPLACEMENT):
            return OperationResult.fail(InvalidInputError(
                "Correction claims must be ADJUSTMENT or REPLACEMENT",
                context={"field": "claim_type"},
            ))

        async with transaction(self.deps.session_maker) as session:
            original = await self.store.get(session, original_claim_id)
            if original is None:
                return OperationResult.fail(ClaimNotFoundError(original_claim_id))
            if original.claim_status not in ADJUSTABLE_STATUSES:
                logger.warning(
                    f"Rejected adjustment of claim {original.claim_number} in {original.claim_status.value}"
                )
                return OperationResult.fail(ClaimStateConflictError(
                    original.claim_status, "create adjustment for"
                ))

            result = await self.claims.create_in_session(
                session,
                ClaimCreateDTO(
                    client_id=original.client_id,
                    payer_id=original.payer_id,
                    service_ids=list(data.service_ids or original.service_ids),
                    claim_type=data.claim_type,
                    original_claim_id=original.id,
                    service_start_date=data.service_start_date,
                    service_end_date=data.service_end_date,
                    notes=data.notes or f"{data.claim_type.value.title()} of {original.claim_number}",
                ),
                created_by=created_by,
            )
            if not result.success:
                return result
            claim = result.value

        logger.info(f"Created {claim.claim_type.value} claim {claim.claim_number} for {original.claim_number}")
        return OperationResult.ok(claim)
