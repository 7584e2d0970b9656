"""
Claim State Machine Tests.

Tests for:
- Transition table (legal and illegal moves)
- Transition gates (reason, validation, submission, adjudication data)
- Side effects applied to the claim row
- Clearinghouse forward paths
- Status helpers and next-action options
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from claimflow.core.enums import ClaimStatus, ClaimType, DenialReason, SubmissionMethod
from claimflow.models.claim import TERMINAL_STATUSES, Claim
from claimflow.services.claim_state_machine import (
    ClaimStateMachine,
    TransitionContext,
    TransitionEvent,
    get_claim_state_machine,
    get_status_label,
    get_transition_options,
    is_open_status,
    is_refreshable_status,
    is_terminal_status,
)


def make_claim(status: ClaimStatus) -> Claim:
    return Claim(
        id=uuid4(),
        claim_number="CLM-20240110-00001",
        client_id=uuid4(),
        payer_id=uuid4(),
        claim_type=ClaimType.ORIGINAL,
        claim_status=status,
        total_amount=Decimal("150.00"),
        service_start_date=date(2024, 1, 2),
        service_end_date=date(2024, 1, 3),
    )


def context(status: ClaimStatus, event: TransitionEvent, target: ClaimStatus, **kwargs) -> TransitionContext:
    return TransitionContext(
        claim_id="claim-1",
        current_status=status,
        target_status=target,
        event=event,
        **kwargs,
    )


@pytest.fixture
def machine() -> ClaimStateMachine:
    return ClaimStateMachine()


@pytest.mark.unit
class TestTransitionTable:
    """The set of legal moves between statuses."""

    @pytest.mark.parametrize(
        "from_status,to_status",
        [
            (ClaimStatus.DRAFT, ClaimStatus.VALIDATED),
            (ClaimStatus.VALIDATED, ClaimStatus.SUBMITTED),
            (ClaimStatus.SUBMITTED, ClaimStatus.ACKNOWLEDGED),
            (ClaimStatus.SUBMITTED, ClaimStatus.PENDING),
            (ClaimStatus.SUBMITTED, ClaimStatus.DENIED),
            (ClaimStatus.ACKNOWLEDGED, ClaimStatus.PAID),
            (ClaimStatus.PENDING, ClaimStatus.PARTIAL_PAID),
            (ClaimStatus.PARTIAL_PAID, ClaimStatus.PAID),
            (ClaimStatus.DENIED, ClaimStatus.APPEALED),
            (ClaimStatus.DENIED, ClaimStatus.SUBMITTED),
            (ClaimStatus.DENIED, ClaimStatus.FINAL_DENIED),
            (ClaimStatus.APPEALED, ClaimStatus.PAID),
            (ClaimStatus.APPEALED, ClaimStatus.FINAL_DENIED),
        ],
    )
    def test_legal_transitions(self, machine, from_status, to_status):
        assert machine.can_transition(from_status, to_status)

    @pytest.mark.parametrize(
        "from_status,to_status",
        [
            (ClaimStatus.DRAFT, ClaimStatus.SUBMITTED),
            (ClaimStatus.SUBMITTED, ClaimStatus.PAID),
            (ClaimStatus.PENDING, ClaimStatus.SUBMITTED),
            (ClaimStatus.DENIED, ClaimStatus.PAID),
            (ClaimStatus.PAID, ClaimStatus.VOID),
        ],
    )
    def test_illegal_transitions(self, machine, from_status, to_status):
        assert not machine.can_transition(from_status, to_status)

    @pytest.mark.parametrize("status", sorted(TERMINAL_STATUSES))
    def test_terminal_statuses_have_no_exits(self, machine, status):
        assert machine.get_valid_transitions(status) == []
        assert is_terminal_status(status)

    @pytest.mark.parametrize("status", [s for s in ClaimStatus if s not in TERMINAL_STATUSES])
    def test_every_open_status_can_be_voided(self, machine, status):
        assert TransitionEvent.VOID in machine.get_valid_events(status)

    def test_singleton(self):
        assert get_claim_state_machine() is get_claim_state_machine()


@pytest.mark.unit
class TestTransitionGates:
    """Preconditions enforced before a transition is applied."""

    def test_validate_requires_passing_validation(self, machine):
        result = machine.validate_transition(
            context(ClaimStatus.DRAFT, TransitionEvent.VALIDATE, ClaimStatus.VALIDATED)
        )
        assert not result.success
        assert "validation" in result.error

    def test_unknown_event_for_status(self, machine):
        result = machine.validate_transition(
            context(ClaimStatus.DRAFT, TransitionEvent.PAY, ClaimStatus.PAID)
        )
        assert not result.success
        assert "Invalid transition" in result.error

    def test_target_status_must_match_event(self, machine):
        result = machine.validate_transition(
            context(ClaimStatus.DENIED, TransitionEvent.APPEAL, ClaimStatus.SUBMITTED, reason="x")
        )
        assert not result.success
        assert "mismatch" in result.error

    def test_appeal_requires_reason(self, machine):
        result = machine.validate_transition(
            context(ClaimStatus.DENIED, TransitionEvent.APPEAL, ClaimStatus.APPEALED, reason="   ")
        )
        assert not result.success
        assert "Reason" in result.error

    def test_void_requires_reason(self, machine):
        result = machine.validate_transition(
            context(ClaimStatus.DRAFT, TransitionEvent.VOID, ClaimStatus.VOID)
        )
        assert not result.success

    def test_submit_requires_method_and_date(self, machine):
        result = machine.validate_transition(
            context(
                ClaimStatus.VALIDATED,
                TransitionEvent.SUBMIT,
                ClaimStatus.SUBMITTED,
                submission_method=SubmissionMethod.ELECTRONIC,
            )
        )
        assert not result.success
        assert "Submission" in result.error

    def test_deny_requires_reason_code(self, machine):
        result = machine.validate_transition(
            context(
                ClaimStatus.PENDING,
                TransitionEvent.DENY,
                ClaimStatus.DENIED,
                adjudication_date=date(2024, 2, 1),
            )
        )
        assert not result.success
        assert "Denial reason" in result.error

    def test_pay_requires_adjudication_date(self, machine):
        result = machine.validate_transition(
            context(ClaimStatus.PENDING, TransitionEvent.PAY, ClaimStatus.PAID)
        )
        assert not result.success
        assert "Adjudication date" in result.error


@pytest.mark.unit
class TestApplyTransition:
    """Side effects on the claim row."""

    def test_submit_records_submission(self, machine):
        claim = make_claim(ClaimStatus.VALIDATED)
        result = machine.apply_transition(claim, context(
            ClaimStatus.VALIDATED,
            TransitionEvent.SUBMIT,
            ClaimStatus.SUBMITTED,
            submission_method=SubmissionMethod.ELECTRONIC,
            submission_date=date(2024, 1, 10),
            external_claim_id="EXT-1",
            triggered_by="biller-1",
        ))

        assert result.success
        assert claim.claim_status == ClaimStatus.SUBMITTED
        assert claim.submission_method == SubmissionMethod.ELECTRONIC
        assert claim.submission_date == date(2024, 1, 10)
        assert claim.external_claim_id == "EXT-1"
        assert claim.updated_by == "biller-1"

    def test_deny_records_reason(self, machine):
        claim = make_claim(ClaimStatus.PENDING)
        machine.apply_transition(claim, context(
            ClaimStatus.PENDING,
            TransitionEvent.DENY,
            ClaimStatus.DENIED,
            adjudication_date=date(2024, 2, 1),
            denial_reason=DenialReason.TIMELY_FILING,
            denial_details="Filed late",
            adjustment_codes={"CO": "29"},
        ))

        assert claim.claim_status == ClaimStatus.DENIED
        assert claim.denial_reason == DenialReason.TIMELY_FILING
        assert claim.denial_details == "Filed late"
        assert claim.adjustment_codes == {"CO": "29"}

    def test_resubmit_clears_prior_decision(self, machine):
        claim = make_claim(ClaimStatus.DENIED)
        claim.adjudication_date = date(2024, 2, 1)
        claim.denial_reason = DenialReason.MISSING_INFORMATION
        claim.denial_details = "Missing NPI"

        machine.apply_transition(claim, context(
            ClaimStatus.DENIED,
            TransitionEvent.RESUBMIT,
            ClaimStatus.SUBMITTED,
            submission_method=SubmissionMethod.ELECTRONIC,
            submission_date=date(2024, 2, 5),
        ))

        assert claim.claim_status == ClaimStatus.SUBMITTED
        assert claim.denial_reason is None
        assert claim.adjudication_date is None
        assert claim.submission_date == date(2024, 2, 5)

    def test_appeal_keeps_amount(self, machine):
        claim = make_claim(ClaimStatus.DENIED)
        machine.apply_transition(claim, context(
            ClaimStatus.DENIED,
            TransitionEvent.APPEAL,
            ClaimStatus.APPEALED,
            reason="Documentation attached",
            documents=["notes.pdf"],
        ))

        assert claim.claim_status == ClaimStatus.APPEALED
        assert claim.appeal_reason == "Documentation attached"
        assert claim.appeal_documents == ["notes.pdf"]
        assert claim.total_amount == Decimal("150.00")

    def test_rejected_transition_leaves_claim_untouched(self, machine):
        claim = make_claim(ClaimStatus.PAID)
        result = machine.apply_transition(claim, context(
            ClaimStatus.PAID, TransitionEvent.VOID, ClaimStatus.VOID, reason="duplicate"
        ))

        assert not result.success
        assert claim.claim_status == ClaimStatus.PAID

    def test_context_timestamp_is_utc(self):
        ctx = context(ClaimStatus.DRAFT, TransitionEvent.VOID, ClaimStatus.VOID)
        assert ctx.timestamp.tzinfo == timezone.utc
        assert ctx.timestamp <= datetime.now(timezone.utc)


@pytest.mark.unit
class TestForwardPath:
    """Chains of clearinghouse-driven transitions."""

    def test_paid_reported_for_submitted_claim_passes_through_acknowledged(self, machine):
        path = machine.forward_path(ClaimStatus.SUBMITTED, ClaimStatus.PAID)
        assert [t.to_status for t in path] == [ClaimStatus.ACKNOWLEDGED, ClaimStatus.PAID]

    def test_direct_denial(self, machine):
        path = machine.forward_path(ClaimStatus.SUBMITTED, ClaimStatus.DENIED)
        assert [t.event for t in path] == [TransitionEvent.DENY]

    def test_same_status_is_empty_path(self, machine):
        assert machine.forward_path(ClaimStatus.PENDING, ClaimStatus.PENDING) == []

    def test_backwards_has_no_path(self, machine):
        assert machine.forward_path(ClaimStatus.PENDING, ClaimStatus.SUBMITTED) is None

    def test_user_actions_are_not_driven_by_refresh(self, machine):
        # Appeals and voids are never inferred from payer status
        assert machine.forward_path(ClaimStatus.DENIED, ClaimStatus.APPEALED) is None
        assert machine.forward_path(ClaimStatus.SUBMITTED, ClaimStatus.VOID) is None


@pytest.mark.unit
class TestStatusHelpers:
    def test_labels(self):
        assert get_status_label(ClaimStatus.APPEALED) == "Under Appeal"
        assert get_status_label(ClaimStatus.PARTIAL_PAID) == "Partially Paid"

    def test_open_and_refreshable(self):
        assert is_open_status(ClaimStatus.PARTIAL_PAID)
        assert not is_open_status(ClaimStatus.VOID)
        assert is_refreshable_status(ClaimStatus.APPEALED)
        assert not is_refreshable_status(ClaimStatus.DRAFT)

    def test_denied_options(self):
        options = get_transition_options(ClaimStatus.DENIED)
        events = {o["event"] for o in options}
        assert events == {"appeal", "final_deny", "resubmit", "void"}
        appeal = next(o for o in options if o["event"] == "appeal")
        assert appeal["requires_reason"] is True
        assert appeal["to_status"] == "APPEALED"

    def test_terminal_has_no_options(self):
        assert get_transition_options(ClaimStatus.PAID) == []
