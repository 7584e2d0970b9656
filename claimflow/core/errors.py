"""
Claim Lifecycle Error Taxonomy.

Provides:
- ClaimsServiceError base with an error kind and HTTP status mapping
- Expected outcomes: not found, validation failure, state conflict, bad input
- Faults: integration (clearinghouse) and concurrency (lost update) errors

Expected outcomes are carried inside OperationResult values; faults are raised.
"""

from enum import Enum
from typing import TYPE_CHECKING, Any, Optional

if TYPE_CHECKING:
    from claimflow.services.claim_validation import ClaimValidationResult


class ErrorKind(str, Enum):
    """Machine-readable error category."""

    NOT_FOUND = "not_found"
    VALIDATION = "validation"
    STATE_CONFLICT = "state_conflict"
    INVALID_INPUT = "invalid_input"
    INTEGRATION = "integration"
    CONCURRENCY = "concurrency"


class ClaimsServiceError(Exception):
    """Base exception for claims service errors."""

    kind: ErrorKind = ErrorKind.INVALID_INPUT
    status_code: int = 400

    def __init__(self, message: str, context: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.kind.value,
            "message": self.message,
            "context": self.context,
        }


class ClaimNotFoundError(ClaimsServiceError):
    """Raised when a claim (or a referenced client/payer) does not exist."""

    kind = ErrorKind.NOT_FOUND
    status_code = 404

    def __init__(self, claim_id: Any, entity: str = "Claim"):
        super().__init__(
            f"{entity} not found: {claim_id}",
            context={"entity": entity, "id": str(claim_id)},
        )
        self.claim_id = claim_id


class ClaimValidationError(ClaimsServiceError):
    """Raised when business-rule validation blocks an operation."""

    kind = ErrorKind.VALIDATION
    status_code = 422

    def __init__(self, message: str, result: Optional["ClaimValidationResult"] = None):
        context: dict[str, Any] = {}
        if result is not None:
            context = result.to_dict()
        super().__init__(message, context=context)
        self.result = result

    @property
    def errors(self) -> list[str]:
        if self.result is None:
            return []
        return [issue.code for issue in self.result.errors]


class ClaimStateConflictError(ClaimsServiceError):
    """Raised when a transition is illegal from the claim's current status."""

    kind = ErrorKind.STATE_CONFLICT
    status_code = 409

    def __init__(self, current_status: Any, action: str, detail: Optional[str] = None):
        status_value = getattr(current_status, "value", current_status)
        message = detail or f"Cannot {action} claim in {status_value} status"
        super().__init__(
            message,
            context={"current_status": status_value, "action": action},
        )
        self.current_status = current_status
        self.action = action


class InvalidInputError(ClaimsServiceError):
    """Raised for malformed or missing request data."""

    kind = ErrorKind.INVALID_INPUT
    status_code = 400


class IntegrationError(ClaimsServiceError):
    """Raised when the clearinghouse adapter fails or times out."""

    kind = ErrorKind.INTEGRATION
    status_code = 502

    def __init__(
        self,
        message: str,
        adapter: Optional[str] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message, context=context)
        self.adapter = adapter
        self.original_error = original_error


class ConcurrencyError(ClaimsServiceError):
    """Raised when a transition lost a race with another writer."""

    kind = ErrorKind.CONCURRENCY
    status_code = 409
