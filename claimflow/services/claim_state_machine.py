"""
Claim Status State Machine.

Provides:
- Valid status transitions and their gates
- Transition side effects (submission, adjudication, denial, appeal fields)
- Clearinghouse forward paths (SUBMITTED -> ACKNOWLEDGED -> PAID, ...)
- Status helpers for timelines and UIs

Source: Claim lifecycle design, Section 4.1
Verified: 2026-10-19

State Diagram:
    DRAFT -> VALIDATED
    VALIDATED -> SUBMITTED
    SUBMITTED -> ACKNOWLEDGED | PENDING | DENIED
    ACKNOWLEDGED -> PENDING | PAID | PARTIAL_PAID | DENIED
    PENDING -> PAID | PARTIAL_PAID | DENIED
    PARTIAL_PAID -> PAID
    DENIED -> APPEALED | FINAL_DENIED | SUBMITTED (resubmit)
    APPEALED -> PAID | PARTIAL_PAID | FINAL_DENIED | SUBMITTED (resubmit)
    any non-terminal -> VOID
    PAID, VOID, FINAL_DENIED are terminal
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional

from claimflow.core.enums import ClaimStatus, DenialReason, SubmissionMethod
from claimflow.models.claim import TERMINAL_STATUSES

if TYPE_CHECKING:
    from claimflow.models.claim import Claim

logger = logging.getLogger(__name__)


class TransitionEvent(str, Enum):
    """Events that trigger state transitions."""

    VALIDATE = "validate"
    SUBMIT = "submit"
    ACKNOWLEDGE = "acknowledge"
    MARK_PENDING = "mark_pending"
    PAY = "pay"
    PARTIAL_PAY = "partial_pay"
    DENY = "deny"
    APPEAL = "appeal"
    FINAL_DENY = "final_deny"
    RESUBMIT = "resubmit"
    VOID = "void"


@dataclass
class Transition:
    """Represents a valid state transition."""

    from_status: ClaimStatus
    to_status: ClaimStatus
    event: TransitionEvent
    requires_reason: bool = False
    requires_validation: bool = False
    requires_submission: bool = False
    requires_adjudication_date: bool = False
    requires_denial_reason: bool = False
    auto_transition: bool = False  # Can be driven by a clearinghouse status refresh


@dataclass
class TransitionContext:
    """Context for a transition attempt."""

    claim_id: str
    current_status: ClaimStatus
    target_status: ClaimStatus
    event: TransitionEvent
    triggered_by: Optional[str] = None
    reason: Optional[str] = None
    validation_passed: Optional[bool] = None
    submission_method: Optional[SubmissionMethod] = None
    submission_date: Optional[date] = None
    external_claim_id: Optional[str] = None
    adjudication_date: Optional[date] = None
    denial_reason: Optional[DenialReason] = None
    denial_details: Optional[str] = None
    adjustment_codes: Optional[dict[str, str]] = None
    documents: Optional[list[str]] = None
    metadata: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class TransitionResult:
    """Result of a transition attempt."""

    success: bool
    from_status: ClaimStatus
    to_status: Optional[ClaimStatus] = None
    error: Optional[str] = None
    transition: Optional[Transition] = None


# =============================================================================
# Valid Transitions Definition
# =============================================================================


# Statuses whose payer-side outcome can still change
REFRESHABLE_STATUSES = frozenset({
    ClaimStatus.SUBMITTED,
    ClaimStatus.ACKNOWLEDGED,
    ClaimStatus.PENDING,
    ClaimStatus.PARTIAL_PAID,
    ClaimStatus.APPEALED,
})


def _adjudication(from_status: ClaimStatus) -> list[Transition]:
    return [
        Transition(
            from_status=from_status,
            to_status=ClaimStatus.PAID,
            event=TransitionEvent.PAY,
            requires_adjudication_date=True,
            auto_transition=True,
        ),
        Transition(
            from_status=from_status,
            to_status=ClaimStatus.PARTIAL_PAID,
            event=TransitionEvent.PARTIAL_PAY,
            requires_adjudication_date=True,
            auto_transition=True,
        ),
    ]


def _deny(from_status: ClaimStatus) -> Transition:
    return Transition(
        from_status=from_status,
        to_status=ClaimStatus.DENIED,
        event=TransitionEvent.DENY,
        requires_adjudication_date=True,
        requires_denial_reason=True,
        auto_transition=True,
    )


def _resubmit(from_status: ClaimStatus) -> Transition:
    return Transition(
        from_status=from_status,
        to_status=ClaimStatus.SUBMITTED,
        event=TransitionEvent.RESUBMIT,
        requires_submission=True,
    )


VALID_TRANSITIONS: list[Transition] = [
    # From DRAFT
    Transition(
        from_status=ClaimStatus.DRAFT,
        to_status=ClaimStatus.VALIDATED,
        event=TransitionEvent.VALIDATE,
        requires_validation=True,
    ),

    # From VALIDATED
    Transition(
        from_status=ClaimStatus.VALIDATED,
        to_status=ClaimStatus.SUBMITTED,
        event=TransitionEvent.SUBMIT,
        requires_submission=True,
    ),

    # From SUBMITTED
    Transition(
        from_status=ClaimStatus.SUBMITTED,
        to_status=ClaimStatus.ACKNOWLEDGED,
        event=TransitionEvent.ACKNOWLEDGE,
        auto_transition=True,
    ),
    Transition(
        from_status=ClaimStatus.SUBMITTED,
        to_status=ClaimStatus.PENDING,
        event=TransitionEvent.MARK_PENDING,
        auto_transition=True,
    ),
    _deny(ClaimStatus.SUBMITTED),

    # From ACKNOWLEDGED
    Transition(
        from_status=ClaimStatus.ACKNOWLEDGED,
        to_status=ClaimStatus.PENDING,
        event=TransitionEvent.MARK_PENDING,
        auto_transition=True,
    ),
    *_adjudication(ClaimStatus.ACKNOWLEDGED),
    _deny(ClaimStatus.ACKNOWLEDGED),

    # From PENDING
    *_adjudication(ClaimStatus.PENDING),
    _deny(ClaimStatus.PENDING),

    # From PARTIAL_PAID: remaining balance settled
    Transition(
        from_status=ClaimStatus.PARTIAL_PAID,
        to_status=ClaimStatus.PAID,
        event=TransitionEvent.PAY,
        requires_adjudication_date=True,
        auto_transition=True,
    ),

    # From DENIED
    Transition(
        from_status=ClaimStatus.DENIED,
        to_status=ClaimStatus.APPEALED,
        event=TransitionEvent.APPEAL,
        requires_reason=True,
    ),
    Transition(
        from_status=ClaimStatus.DENIED,
        to_status=ClaimStatus.FINAL_DENIED,
        event=TransitionEvent.FINAL_DENY,
    ),
    _resubmit(ClaimStatus.DENIED),

    # From APPEALED: appeal outcome
    *_adjudication(ClaimStatus.APPEALED),
    Transition(
        from_status=ClaimStatus.APPEALED,
        to_status=ClaimStatus.FINAL_DENIED,
        event=TransitionEvent.FINAL_DENY,
        auto_transition=True,
    ),
    _resubmit(ClaimStatus.APPEALED),

    # VOID from every non-terminal state
    *[
        Transition(
            from_status=status,
            to_status=ClaimStatus.VOID,
            event=TransitionEvent.VOID,
            requires_reason=True,
        )
        for status in ClaimStatus
        if status not in TERMINAL_STATUSES
    ],
]


# =============================================================================
# State Machine
# =============================================================================


class ClaimStateMachine:
    """
    State machine for claim status transitions.

    Validates transition requests and applies their side effects to a claim
    row. Persisting the row and its history entry is the caller's job and
    happens in one transaction.
    """

    def __init__(self):
        """Initialize state machine with transition map."""
        self._transitions: dict[tuple[ClaimStatus, TransitionEvent], Transition] = {}
        self._from_status_map: dict[ClaimStatus, list[Transition]] = {}

        self._build_transition_maps()

    def _build_transition_maps(self) -> None:
        """Build lookup maps for transitions."""
        for transition in VALID_TRANSITIONS:
            key = (transition.from_status, transition.event)
            self._transitions[key] = transition

            if transition.from_status not in self._from_status_map:
                self._from_status_map[transition.from_status] = []
            self._from_status_map[transition.from_status].append(transition)

    def get_valid_transitions(self, status: ClaimStatus) -> list[Transition]:
        """Get all valid transitions from a given status."""
        return self._from_status_map.get(status, [])

    def get_valid_events(self, status: ClaimStatus) -> list[TransitionEvent]:
        """Get all valid events for a given status."""
        return [t.event for t in self.get_valid_transitions(status)]

    def get_next_statuses(self, status: ClaimStatus) -> list[ClaimStatus]:
        """Get all possible next statuses from current status."""
        return [t.to_status for t in self.get_valid_transitions(status)]

    def can_transition(
        self,
        from_status: ClaimStatus,
        to_status: ClaimStatus,
    ) -> bool:
        """Check if transition from one status to another is valid."""
        for transition in self.get_valid_transitions(from_status):
            if transition.to_status == to_status:
                return True
        return False

    def get_transition(
        self,
        from_status: ClaimStatus,
        event: TransitionEvent,
    ) -> Optional[Transition]:
        """Get transition for a status and event combination."""
        return self._transitions.get((from_status, event))

    def find_event(
        self,
        from_status: ClaimStatus,
        to_status: ClaimStatus,
    ) -> Optional[TransitionEvent]:
        """Event that moves a claim directly between two statuses, if any."""
        for transition in self.get_valid_transitions(from_status):
            if transition.to_status == to_status:
                return transition.event
        return None

    def forward_path(
        self,
        from_status: ClaimStatus,
        to_status: ClaimStatus,
    ) -> Optional[list[Transition]]:
        """
        Shortest chain of clearinghouse-driven transitions between two statuses.

        A payer may report PAID for a claim we still hold as SUBMITTED; the
        intermediate ACKNOWLEDGED hop is recorded rather than skipped.

        Returns:
            List of transitions (empty when the statuses are equal), or None
            when no forward path exists.
        """
        if from_status == to_status:
            return []

        queue: deque[tuple[ClaimStatus, list[Transition]]] = deque([(from_status, [])])
        seen = {from_status}
        while queue:
            status, path = queue.popleft()
            for transition in self.get_valid_transitions(status):
                if not transition.auto_transition or transition.to_status in seen:
                    continue
                next_path = path + [transition]
                if transition.to_status == to_status:
                    return next_path
                seen.add(transition.to_status)
                queue.append((transition.to_status, next_path))
        return None

    def validate_transition(self, context: TransitionContext) -> TransitionResult:
        """
        Validate a transition attempt.

        Args:
            context: Transition context with all details

        Returns:
            TransitionResult indicating success/failure
        """
        transition = self.get_transition(context.current_status, context.event)

        if not transition:
            return TransitionResult(
                success=False,
                from_status=context.current_status,
                error=f"Invalid transition: {context.current_status.value} + {context.event.value}",
            )

        if context.target_status != transition.to_status:
            return TransitionResult(
                success=False,
                from_status=context.current_status,
                error=f"Target status mismatch. Expected {transition.to_status.value}, got {context.target_status.value}",
            )

        if transition.requires_reason and not (context.reason and context.reason.strip()):
            return TransitionResult(
                success=False,
                from_status=context.current_status,
                error="Reason is required for this transition",
            )

        if transition.requires_validation and not context.validation_passed:
            return TransitionResult(
                success=False,
                from_status=context.current_status,
                error="Claim must pass validation before it can be marked VALIDATED",
            )

        if transition.requires_submission and (
            context.submission_method is None or context.submission_date is None
        ):
            return TransitionResult(
                success=False,
                from_status=context.current_status,
                error="Submission method and submission date are required",
            )

        if transition.requires_adjudication_date and context.adjudication_date is None:
            return TransitionResult(
                success=False,
                from_status=context.current_status,
                error="Adjudication date is required for this transition",
            )

        if transition.requires_denial_reason and context.denial_reason is None:
            return TransitionResult(
                success=False,
                from_status=context.current_status,
                error="Denial reason is required for this transition",
            )

        return TransitionResult(
            success=True,
            from_status=context.current_status,
            to_status=transition.to_status,
            transition=transition,
        )

    def apply_transition(self, claim: "Claim", context: TransitionContext) -> TransitionResult:
        """
        Validate a transition and apply its effects to the claim in memory.

        The claim is left untouched when validation fails.
        """
        result = self.validate_transition(context)
        if not result.success:
            logger.warning(
                f"Transition failed for claim {context.claim_id}: {result.error}"
            )
            return result

        event = context.event
        if event in (TransitionEvent.SUBMIT, TransitionEvent.RESUBMIT):
            claim.submission_method = context.submission_method
            claim.submission_date = context.submission_date
            if context.external_claim_id:
                claim.external_claim_id = context.external_claim_id
            if event == TransitionEvent.RESUBMIT:
                claim.adjudication_date = None
                claim.denial_reason = None
                claim.denial_details = None
        elif event == TransitionEvent.ACKNOWLEDGE:
            if context.external_claim_id:
                claim.external_claim_id = context.external_claim_id
        elif event == TransitionEvent.DENY:
            claim.adjudication_date = context.adjudication_date
            claim.denial_reason = context.denial_reason
            claim.denial_details = context.denial_details
            if context.adjustment_codes is not None:
                claim.adjustment_codes = dict(context.adjustment_codes)
        elif event in (TransitionEvent.PAY, TransitionEvent.PARTIAL_PAY):
            claim.adjudication_date = context.adjudication_date
            claim.denial_reason = None
            claim.denial_details = None
            if context.adjustment_codes is not None:
                claim.adjustment_codes = dict(context.adjustment_codes)
        elif event == TransitionEvent.FINAL_DENY:
            if context.adjudication_date is not None:
                claim.adjudication_date = context.adjudication_date
            if context.denial_details:
                claim.denial_details = context.denial_details
        elif event == TransitionEvent.APPEAL:
            claim.appeal_reason = context.reason
            claim.appeal_documents = list(context.documents or [])

        claim.claim_status = result.to_status
        if context.triggered_by:
            claim.updated_by = context.triggered_by

        logger.info(
            f"Claim {context.claim_id} transitioned: "
            f"{context.current_status.value} -> {result.to_status.value} "
            f"(event: {event.value})"
        )
        return result


# =============================================================================
# Status Helpers
# =============================================================================


def is_terminal_status(status: ClaimStatus) -> bool:
    """Check if status is terminal (no further transitions)."""
    return status in TERMINAL_STATUSES


def is_open_status(status: ClaimStatus) -> bool:
    """Check if a claim still counts as outstanding receivable."""
    return status not in TERMINAL_STATUSES


def is_refreshable_status(status: ClaimStatus) -> bool:
    """Check if the payer-side status of a claim can still change."""
    return status in REFRESHABLE_STATUSES


STATUS_LABELS: dict[ClaimStatus, str] = {
    ClaimStatus.DRAFT: "Draft",
    ClaimStatus.VALIDATED: "Validated",
    ClaimStatus.SUBMITTED: "Submitted",
    ClaimStatus.ACKNOWLEDGED: "Acknowledged by Payer",
    ClaimStatus.PENDING: "Pending Adjudication",
    ClaimStatus.PAID: "Paid",
    ClaimStatus.PARTIAL_PAID: "Partially Paid",
    ClaimStatus.DENIED: "Denied",
    ClaimStatus.APPEALED: "Under Appeal",
    ClaimStatus.FINAL_DENIED: "Final Denial",
    ClaimStatus.VOID: "Voided",
}


def get_status_label(status: ClaimStatus) -> str:
    """Get human-readable status name."""
    return STATUS_LABELS.get(status, status.value)


_EVENT_LABELS: dict[TransitionEvent, str] = {
    TransitionEvent.VALIDATE: "Validate claim",
    TransitionEvent.SUBMIT: "Submit to payer",
    TransitionEvent.ACKNOWLEDGE: "Record payer acknowledgement",
    TransitionEvent.MARK_PENDING: "Mark pending adjudication",
    TransitionEvent.PAY: "Record payment",
    TransitionEvent.PARTIAL_PAY: "Record partial payment",
    TransitionEvent.DENY: "Record denial",
    TransitionEvent.APPEAL: "File appeal",
    TransitionEvent.FINAL_DENY: "Accept final denial",
    TransitionEvent.RESUBMIT: "Resubmit claim",
    TransitionEvent.VOID: "Void claim",
}


def get_transition_options(status: ClaimStatus) -> list[dict[str, Any]]:
    """Next actions a user can take from a status, in display order."""
    return [
        {
            "event": t.event.value,
            "to_status": t.to_status.value,
            "label": _EVENT_LABELS[t.event],
            "requires_reason": t.requires_reason,
        }
        for t in get_claim_state_machine().get_valid_transitions(status)
    ]


# =============================================================================
# Singleton Instance
# =============================================================================


_state_machine: Optional[ClaimStateMachine] = None


def get_claim_state_machine() -> ClaimStateMachine:
    """Get singleton state machine instance."""
    global _state_machine
    if _state_machine is None:
        _state_machine = ClaimStateMachine()
    return _state_machine
