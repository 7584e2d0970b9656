"""
Result types shared by the lifecycle services.

OperationResult wraps expected outcomes of a single-claim operation.
BatchResult aggregates per-claim outcomes of a batch run.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Generic, Optional, TypeVar

from claimflow.core.errors import ClaimsServiceError

T = TypeVar("T")


@dataclass
class OperationResult(Generic[T]):
    """Result wrapper for expected outcomes (success, not found, invalid, conflict)."""

    success: bool
    value: Optional[T] = None
    error: Optional[ClaimsServiceError] = None

    @classmethod
    def ok(cls, value: T) -> "OperationResult[T]":
        return cls(success=True, value=value)

    @classmethod
    def fail(cls, error: ClaimsServiceError) -> "OperationResult[T]":
        return cls(success=False, error=error)

    @property
    def error_message(self) -> Optional[str]:
        return self.error.message if self.error else None

    def unwrap(self) -> T:
        """Return the value or raise the carried error."""
        if not self.success:
            assert self.error is not None
            raise self.error
        return self.value  # type: ignore[return-value]


@dataclass
class BatchItemError:
    """Failure entry for one claim in a batch."""

    claim_id: str
    message: str
    kind: Optional[str] = None


@dataclass
class BatchResult:
    """Aggregate outcome of a batch operation."""

    total_processed: int = 0
    success_count: int = 0
    error_count: int = 0
    errors: list[BatchItemError] = field(default_factory=list)
    processed_claims: list[str] = field(default_factory=list)
    skipped_claims: list[str] = field(default_factory=list)
    updated_count: int = 0

    def record_success(self, claim_id: str, updated: bool = True) -> None:
        self.total_processed += 1
        self.success_count += 1
        if updated:
            self.updated_count += 1
        self.processed_claims.append(claim_id)

    def record_failure(self, claim_id: str, error: Exception) -> None:
        self.total_processed += 1
        self.error_count += 1
        kind = getattr(error, "kind", None)
        message = getattr(error, "message", None) or str(error)
        self.errors.append(
            BatchItemError(
                claim_id=claim_id,
                message=message,
                kind=kind.value if kind is not None else None,
            )
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_processed": self.total_processed,
            "success_count": self.success_count,
            "error_count": self.error_count,
            "updated_count": self.updated_count,
            "errors": [
                {"claim_id": e.claim_id, "message": e.message, "kind": e.kind}
                for e in self.errors
            ],
            "processed_claims": list(self.processed_claims),
            "skipped_claims": list(self.skipped_claims),
        }


@dataclass
class BatchLimits:
    """Caller-supplied bounds on the work done by one batch invocation."""

    max_items: Optional[int] = None
    max_seconds: Optional[float] = None

    def start(self) -> "BatchBudget":
        return BatchBudget(limits=self, started=time.monotonic())


@dataclass
class BatchBudget:
    """Running budget for one batch invocation."""

    limits: BatchLimits
    started: float
    used: int = 0

    def exhausted(self) -> bool:
        if self.limits.max_items is not None and self.used >= self.limits.max_items:
            return True
        if self.limits.max_seconds is not None:
            return (time.monotonic() - self.started) >= self.limits.max_seconds
        return False

    def consume(self) -> None:
        self.used += 1
