"""
Unit tests for result types, error mapping and request schemas.
"""

import pytest
from datetime import date
from fastapi import HTTPException
from pydantic import ValidationError

from claimflow.api.errors import to_http_exception, unwrap_or_raise
from claimflow.core.enums import ClaimStatus, ClaimType
from claimflow.core.errors import (
    ClaimNotFoundError,
    ClaimStateConflictError,
    ErrorKind,
    IntegrationError,
    InvalidInputError,
)
from claimflow.core.results import BatchLimits, BatchResult, OperationResult
from claimflow.schemas.claim import (
    AdjustmentClaimRequest,
    BatchClaimsRequest,
    ClaimAdjudicationRequest,
    ClaimCreate,
)


class TestOperationResult:
    def test_ok(self):
        result = OperationResult.ok(42)

        assert result.success
        assert result.unwrap() == 42
        assert result.error_message is None

    def test_fail_unwrap_raises_carried_error(self):
        error = ClaimStateConflictError(ClaimStatus.PAID, "void")
        result = OperationResult.fail(error)

        assert not result.success
        assert result.error_message == "Cannot void claim in PAID status"
        with pytest.raises(ClaimStateConflictError):
            result.unwrap()


class TestErrorMapping:
    @pytest.mark.parametrize(
        "error, status_code, kind",
        [
            (ClaimNotFoundError("abc"), 404, "not_found"),
            (ClaimStateConflictError(ClaimStatus.VOID, "appeal"), 409, "state_conflict"),
            (InvalidInputError("bad"), 400, "invalid_input"),
            (IntegrationError("down", adapter="demo"), 502, "integration"),
        ],
    )
    def test_status_codes(self, error, status_code, kind):
        exc = to_http_exception(error)

        assert exc.status_code == status_code
        assert exc.detail["error"] == kind
        assert exc.detail["message"] == error.message

    def test_unwrap_or_raise(self):
        assert unwrap_or_raise(OperationResult.ok("claim")) == "claim"

        with pytest.raises(HTTPException) as exc_info:
            unwrap_or_raise(OperationResult.fail(ClaimNotFoundError("abc")))
        assert exc_info.value.status_code == 404

    def test_conflict_context(self):
        error = ClaimStateConflictError(ClaimStatus.SUBMITTED, "update")

        assert error.kind == ErrorKind.STATE_CONFLICT
        assert error.to_dict()["context"] == {"current_status": "SUBMITTED", "action": "update"}


class TestBatchResult:
    def test_counts(self):
        result = BatchResult()
        result.record_success("a")
        result.record_success("b", updated=False)
        result.record_failure("c", ClaimNotFoundError("c"))
        result.record_failure("d", RuntimeError("boom"))

        data = result.to_dict()

        assert data["total_processed"] == 4
        assert data["success_count"] == 2
        assert data["updated_count"] == 1
        assert data["error_count"] == 2
        assert data["errors"][0]["kind"] == "not_found"
        assert data["errors"][1] == {"claim_id": "d", "message": "boom", "kind": None}
        assert data["processed_claims"] == ["a", "b"]


class TestBatchLimits:
    def test_unbounded(self):
        budget = BatchLimits().start()
        for _ in range(100):
            budget.consume()
        assert not budget.exhausted()

    def test_item_limit(self):
        budget = BatchLimits(max_items=2).start()
        budget.consume()
        assert not budget.exhausted()
        budget.consume()
        assert budget.exhausted()

    def test_time_limit(self):
        budget = BatchLimits(max_seconds=60).start()
        assert not budget.exhausted()

        budget.started -= 61
        assert budget.exhausted()


class TestRequestSchemas:
    def test_create_rejects_inverted_dates(self):
        with pytest.raises(ValidationError):
            ClaimCreate(
                client_id="3f8a5c1e-0000-4000-8000-000000000001",
                payer_id="3f8a5c1e-0000-4000-8000-000000000002",
                service_ids=["3f8a5c1e-0000-4000-8000-000000000003"],
                service_start_date=date(2024, 1, 5),
                service_end_date=date(2024, 1, 1),
            )

    def test_adjudication_status_must_be_an_outcome(self):
        request = ClaimAdjudicationRequest(status="PARTIAL_PAID", adjudication_date=date(2024, 1, 20))
        assert request.status == ClaimStatus.PARTIAL_PAID

        with pytest.raises(ValidationError):
            ClaimAdjudicationRequest(status="SUBMITTED", adjudication_date=date(2024, 1, 20))

    def test_adjustment_type(self):
        assert AdjustmentClaimRequest().claim_type == ClaimType.ADJUSTMENT
        with pytest.raises(ValidationError):
            AdjustmentClaimRequest(claim_type="ORIGINAL")

    def test_batch_bounds_must_be_positive(self):
        with pytest.raises(ValidationError):
            BatchClaimsRequest(claim_ids=["3f8a5c1e-0000-4000-8000-000000000001"], max_items=0)
