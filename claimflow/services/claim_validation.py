"""
Claim Validation Service.

Provides:
- Required-field completeness validation
- Referential integrity (client, payer, delivered services)
- Duplicate claim detection
- Prior authorization checks
- Timely filing checks
- Service code validity
- Amount consistency

Evaluation is pure: ClaimValidator.evaluate() reads a ValidationContext
snapshot and never touches the database. ClaimValidationService gathers the
context inside the caller's session and then evaluates it.

Source: Claim lifecycle design, Section 4.2 - Validation Rules
Verified: 2026-10-19
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from claimflow.core.enums import (
    AuthorizationStatus,
    ClaimStatus,
    ClaimType,
    DocumentationStatus,
)

if TYPE_CHECKING:
    from claimflow.core.config import ClaimsSettings
    from claimflow.models.claim import Claim
    from claimflow.services.authorization import AuthorizationService

logger = logging.getLogger(__name__)


class ValidationSeverity(str, Enum):
    """Severity level of validation issues."""

    ERROR = "error"  # Blocks submission
    WARNING = "warning"  # Reported, does not block


class ValidationCategory(str, Enum):
    """Category of validation issue."""

    COMPLETENESS = "completeness"
    REFERENTIAL = "referential"
    DUPLICATE = "duplicate"
    AUTHORIZATION = "authorization"
    TIMELY_FILING = "timely_filing"
    CODING = "coding"
    AMOUNT = "amount"


@dataclass
class ValidationIssue:
    """Single validation issue."""

    code: str
    message: str
    severity: ValidationSeverity
    category: ValidationCategory
    field: Optional[str] = None
    context: Optional[dict[str, Any]] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "field": self.field,
            "context": self.context,
        }


@dataclass
class ClaimValidationResult:
    """Complete validation result for one claim."""

    claim_id: str
    is_valid: bool = True
    errors: list[ValidationIssue] = field(default_factory=list)
    warnings: list[ValidationIssue] = field(default_factory=list)
    validated_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc),
        compare=False,
    )

    def add_issue(self, issue: ValidationIssue) -> None:
        """Add a validation issue."""
        if issue.severity == ValidationSeverity.ERROR:
            self.errors.append(issue)
            self.is_valid = False
        else:
            self.warnings.append(issue)

    @property
    def error_count(self) -> int:
        return len(self.errors)

    @property
    def warning_count(self) -> int:
        return len(self.warnings)

    @property
    def error_codes(self) -> list[str]:
        return [issue.code for issue in self.errors]

    @property
    def warning_codes(self) -> list[str]:
        return [issue.code for issue in self.warnings]

    def to_dict(self) -> dict[str, Any]:
        return {
            "claim_id": self.claim_id,
            "is_valid": self.is_valid,
            "errors": [issue.to_dict() for issue in self.errors],
            "warnings": [issue.to_dict() for issue in self.warnings],
        }


# =============================================================================
# Snapshots (avoid direct model dependency in rules)
# =============================================================================


@dataclass(frozen=True)
class ServiceLineSnapshot:
    """Service line as billed on the claim."""

    service_id: UUID
    service_code: str
    service_date: date
    billed_units: Decimal
    billed_amount: Decimal


@dataclass(frozen=True)
class ClaimSnapshot:
    """Claim data for validation."""

    claim_id: str
    claim_number: Optional[str]
    claim_type: Optional[ClaimType]
    claim_status: ClaimStatus
    client_id: Optional[UUID]
    payer_id: Optional[UUID]
    total_amount: Decimal
    service_start_date: Optional[date]
    service_end_date: Optional[date]
    submission_date: Optional[date] = None
    original_claim_id: Optional[UUID] = None
    service_lines: tuple[ServiceLineSnapshot, ...] = ()

    @classmethod
    def from_model(cls, claim: "Claim") -> "ClaimSnapshot":
        return cls(
            claim_id=str(claim.id),
            claim_number=claim.claim_number,
            claim_type=claim.claim_type,
            claim_status=claim.claim_status,
            client_id=claim.client_id,
            payer_id=claim.payer_id,
            total_amount=Decimal(claim.total_amount),
            service_start_date=claim.service_start_date,
            service_end_date=claim.service_end_date,
            submission_date=claim.submission_date,
            original_claim_id=claim.original_claim_id,
            service_lines=tuple(
                ServiceLineSnapshot(
                    service_id=line.service_id,
                    service_code=line.service_code,
                    service_date=line.service_date,
                    billed_units=Decimal(line.billed_units),
                    billed_amount=Decimal(line.billed_amount),
                )
                for line in claim.service_lines
            ),
        )

    @property
    def service_codes(self) -> frozenset[str]:
        return frozenset(line.service_code for line in self.service_lines)


@dataclass(frozen=True)
class ServiceSnapshot:
    """Delivered service referenced by a service line."""

    service_id: UUID
    client_id: UUID
    service_code: str
    service_date: date
    documentation_status: DocumentationStatus


@dataclass(frozen=True)
class PartySnapshot:
    """Client or payer reference data relevant to validation."""

    id: UUID
    name: str
    is_active: bool
    is_electronic: bool = False
    timely_filing_days: Optional[int] = None
    requires_authorization: bool = False


@dataclass(frozen=True)
class ServiceCodeSnapshot:
    code: str
    active_from: date
    active_to: Optional[date]
    requires_authorization: bool = False

    def is_active_between(self, start: date, end: date) -> bool:
        if self.active_from > start:
            return False
        return self.active_to is None or self.active_to >= end


@dataclass(frozen=True)
class DuplicateCandidate:
    """Another claim for the same client and payer with overlapping dates."""

    claim_id: str
    claim_number: str
    claim_status: ClaimStatus
    service_start_date: date
    service_end_date: date
    service_codes: frozenset[str]


@dataclass
class ValidationContext:
    """Everything the rules need, gathered up front."""

    claim: ClaimSnapshot
    as_of: date
    client: Optional[PartySnapshot] = None
    payer: Optional[PartySnapshot] = None
    filing_date: Optional[date] = None
    original_claim_client_id: Optional[UUID] = None
    original_claim_found: bool = True
    services: dict[UUID, ServiceSnapshot] = field(default_factory=dict)
    service_codes: dict[str, ServiceCodeSnapshot] = field(default_factory=dict)
    authorization_status: dict[str, AuthorizationStatus] = field(default_factory=dict)
    duplicate_candidates: list[DuplicateCandidate] = field(default_factory=list)
    billed_elsewhere: dict[UUID, str] = field(default_factory=dict)


# =============================================================================
# Validation Configuration
# =============================================================================


@dataclass
class ValidationConfig:
    """Configuration for claim validation."""

    default_timely_filing_days: int = 90
    filing_warning_days: int = 14

    @classmethod
    def from_settings(cls, settings: "ClaimsSettings") -> "ValidationConfig":
        return cls(
            default_timely_filing_days=settings.DEFAULT_TIMELY_FILING_DAYS,
            filing_warning_days=settings.FILING_WARNING_DAYS,
        )


# =============================================================================
# Pure Rule Evaluation
# =============================================================================


class ClaimValidator:
    """
    Evaluates a claim snapshot against the lifecycle business rules.

    Rules run in a fixed order so repeated evaluation of an unchanged context
    yields an identical result.
    """

    def __init__(self, config: Optional[ValidationConfig] = None):
        self.config = config or ValidationConfig()

    def evaluate(self, context: ValidationContext) -> ClaimValidationResult:
        result = ClaimValidationResult(claim_id=context.claim.claim_id)

        self._check_completeness(context, result)
        self._check_dates(context, result)
        self._check_references(context, result)
        self._check_services(context, result)
        self._check_duplicates(context, result)
        self._check_authorization(context, result)
        self._check_timely_filing(context, result)
        self._check_coding(context, result)
        self._check_amounts(context, result)

        return result

    # =========================================================================
    # Completeness
    # =========================================================================

    def _missing(self, result: ClaimValidationResult, field_name: str, label: str) -> None:
        result.add_issue(ValidationIssue(
            code="MISSING_REQUIRED_FIELD",
            message=f"{label} is required",
            severity=ValidationSeverity.ERROR,
            category=ValidationCategory.COMPLETENESS,
            field=field_name,
        ))

    def _check_completeness(self, context: ValidationContext, result: ClaimValidationResult) -> None:
        claim = context.claim
        if not claim.client_id:
            self._missing(result, "client_id", "Client")
        if not claim.payer_id:
            self._missing(result, "payer_id", "Payer")
        if not claim.claim_number:
            self._missing(result, "claim_number", "Claim number")
        if claim.claim_type is None:
            self._missing(result, "claim_type", "Claim type")
        if claim.service_start_date is None:
            self._missing(result, "service_start_date", "Service start date")
        if claim.service_end_date is None:
            self._missing(result, "service_end_date", "Service end date")
        if not claim.service_lines:
            self._missing(result, "service_lines", "At least one service line")

        if claim.claim_type in (ClaimType.ADJUSTMENT, ClaimType.REPLACEMENT, ClaimType.VOID):
            if claim.original_claim_id is None:
                self._missing(result, "original_claim_id", "Original claim")

    # =========================================================================
    # Dates
    # =========================================================================

    def _check_dates(self, context: ValidationContext, result: ClaimValidationResult) -> None:
        claim = context.claim
        start, end = claim.service_start_date, claim.service_end_date
        if start is None or end is None:
            return

        if start > end:
            result.add_issue(ValidationIssue(
                code="INVALID_DATE_RANGE",
                message="Service start date must be on or before service end date",
                severity=ValidationSeverity.ERROR,
                category=ValidationCategory.COMPLETENESS,
                field="service_start_date",
                context={"start": start.isoformat(), "end": end.isoformat()},
            ))

        if end > context.as_of:
            result.add_issue(ValidationIssue(
                code="FUTURE_DATE",
                message="Service end date is in the future",
                severity=ValidationSeverity.WARNING,
                category=ValidationCategory.COMPLETENESS,
                field="service_end_date",
                context={"service_end_date": end.isoformat()},
            ))

    # =========================================================================
    # Referential Integrity
    # =========================================================================

    def _check_references(self, context: ValidationContext, result: ClaimValidationResult) -> None:
        claim = context.claim

        if claim.client_id:
            if context.client is None:
                result.add_issue(ValidationIssue(
                    code="CLIENT_NOT_FOUND",
                    message=f"Client not found: {claim.client_id}",
                    severity=ValidationSeverity.ERROR,
                    category=ValidationCategory.REFERENTIAL,
                    field="client_id",
                ))
            elif not context.client.is_active:
                result.add_issue(ValidationIssue(
                    code="CLIENT_INACTIVE",
                    message=f"Client {context.client.name} is not active",
                    severity=ValidationSeverity.ERROR,
                    category=ValidationCategory.REFERENTIAL,
                    field="client_id",
                ))

        if claim.payer_id:
            if context.payer is None:
                result.add_issue(ValidationIssue(
                    code="PAYER_NOT_FOUND",
                    message=f"Payer not found: {claim.payer_id}",
                    severity=ValidationSeverity.ERROR,
                    category=ValidationCategory.REFERENTIAL,
                    field="payer_id",
                ))
            elif not context.payer.is_active:
                result.add_issue(ValidationIssue(
                    code="PAYER_INACTIVE",
                    message=f"Payer {context.payer.name} is not active",
                    severity=ValidationSeverity.ERROR,
                    category=ValidationCategory.REFERENTIAL,
                    field="payer_id",
                ))

        if claim.original_claim_id is not None:
            if not context.original_claim_found:
                result.add_issue(ValidationIssue(
                    code="ORIGINAL_CLAIM_NOT_FOUND",
                    message=f"Original claim not found: {claim.original_claim_id}",
                    severity=ValidationSeverity.ERROR,
                    category=ValidationCategory.REFERENTIAL,
                    field="original_claim_id",
                ))
            elif context.original_claim_client_id != claim.client_id:
                result.add_issue(ValidationIssue(
                    code="ORIGINAL_CLAIM_MISMATCH",
                    message="Original claim belongs to a different client",
                    severity=ValidationSeverity.ERROR,
                    category=ValidationCategory.REFERENTIAL,
                    field="original_claim_id",
                ))

    def _check_services(self, context: ValidationContext, result: ClaimValidationResult) -> None:
        claim = context.claim
        for line in claim.service_lines:
            service = context.services.get(line.service_id)
            line_context = {"service_id": str(line.service_id)}

            if service is None:
                result.add_issue(ValidationIssue(
                    code="SERVICE_NOT_FOUND",
                    message=f"Service not found: {line.service_id}",
                    severity=ValidationSeverity.ERROR,
                    category=ValidationCategory.REFERENTIAL,
                    field="service_lines",
                    context=line_context,
                ))
                continue

            if claim.client_id and service.client_id != claim.client_id:
                result.add_issue(ValidationIssue(
                    code="SERVICE_CLIENT_MISMATCH",
                    message=f"Service {line.service_id} belongs to a different client",
                    severity=ValidationSeverity.ERROR,
                    category=ValidationCategory.REFERENTIAL,
                    field="service_lines",
                    context=line_context,
                ))

            if (
                claim.service_start_date is not None
                and claim.service_end_date is not None
                and not (claim.service_start_date <= service.service_date <= claim.service_end_date)
            ):
                result.add_issue(ValidationIssue(
                    code="SERVICE_DATE_OUT_OF_RANGE",
                    message=f"Service date {service.service_date.isoformat()} is outside the claim period",
                    severity=ValidationSeverity.ERROR,
                    category=ValidationCategory.REFERENTIAL,
                    field="service_lines",
                    context={**line_context, "service_date": service.service_date.isoformat()},
                ))

            if service.documentation_status == DocumentationStatus.INCOMPLETE:
                result.add_issue(ValidationIssue(
                    code="DOCUMENTATION_INCOMPLETE",
                    message=f"Documentation for service {line.service_id} is incomplete",
                    severity=ValidationSeverity.ERROR,
                    category=ValidationCategory.REFERENTIAL,
                    field="service_lines",
                    context=line_context,
                ))

            other_claim = context.billed_elsewhere.get(line.service_id)
            if other_claim:
                result.add_issue(ValidationIssue(
                    code="SERVICE_ALREADY_BILLED",
                    message=f"Service {line.service_id} is already billed on claim {other_claim}",
                    severity=ValidationSeverity.ERROR,
                    category=ValidationCategory.DUPLICATE,
                    field="service_lines",
                    context={**line_context, "claim_number": other_claim},
                ))

    # =========================================================================
    # Duplicates
    # =========================================================================

    def _check_duplicates(self, context: ValidationContext, result: ClaimValidationResult) -> None:
        claim = context.claim
        if claim.service_start_date is None or claim.service_end_date is None:
            return

        codes = claim.service_codes
        for candidate in context.duplicate_candidates:
            if candidate.claim_id == claim.claim_id or candidate.claim_status == ClaimStatus.VOID:
                continue
            overlaps = (
                candidate.service_start_date <= claim.service_end_date
                and candidate.service_end_date >= claim.service_start_date
            )
            shared = codes & candidate.service_codes
            if overlaps and shared:
                result.add_issue(ValidationIssue(
                    code="DUPLICATE_CLAIM",
                    message=f"Claim duplicates {candidate.claim_number} for the same client, payer and dates",
                    severity=ValidationSeverity.ERROR,
                    category=ValidationCategory.DUPLICATE,
                    context={
                        "claim_id": candidate.claim_id,
                        "claim_number": candidate.claim_number,
                        "service_codes": sorted(shared),
                    },
                ))

    # =========================================================================
    # Authorization
    # =========================================================================

    def requires_authorization(self, context: ValidationContext, code: str) -> bool:
        if context.payer is not None and context.payer.requires_authorization:
            return True
        service_code = context.service_codes.get(code)
        return service_code is not None and service_code.requires_authorization

    def _check_authorization(self, context: ValidationContext, result: ClaimValidationResult) -> None:
        for code in sorted(context.claim.service_codes):
            if not self.requires_authorization(context, code):
                continue

            status = context.authorization_status.get(code, AuthorizationStatus.MISSING)
            if status == AuthorizationStatus.MISSING:
                result.add_issue(ValidationIssue(
                    code="AUTHORIZATION_MISSING",
                    message=f"Prior authorization required for service code {code}",
                    severity=ValidationSeverity.ERROR,
                    category=ValidationCategory.AUTHORIZATION,
                    field="service_lines",
                    context={"service_code": code},
                ))
            elif status == AuthorizationStatus.INVALID:
                result.add_issue(ValidationIssue(
                    code="AUTHORIZATION_INVALID",
                    message=f"No active authorization covers the claim period for service code {code}",
                    severity=ValidationSeverity.ERROR,
                    category=ValidationCategory.AUTHORIZATION,
                    field="service_lines",
                    context={"service_code": code},
                ))

    # =========================================================================
    # Timely Filing
    # =========================================================================

    def _check_timely_filing(self, context: ValidationContext, result: ClaimValidationResult) -> None:
        claim = context.claim
        if claim.service_end_date is None:
            return

        filing_date = context.filing_date or claim.submission_date or context.as_of
        window = self.config.default_timely_filing_days
        if context.payer is not None and context.payer.timely_filing_days:
            window = context.payer.timely_filing_days

        days_elapsed = (filing_date - claim.service_end_date).days
        filing_context = {
            "days_elapsed": days_elapsed,
            "filing_window_days": window,
            "filing_date": filing_date.isoformat(),
        }

        if days_elapsed > window:
            result.add_issue(ValidationIssue(
                code="TIMELY_FILING",
                message=f"Claim filed {days_elapsed} days after service, payer window is {window} days",
                severity=ValidationSeverity.ERROR,
                category=ValidationCategory.TIMELY_FILING,
                field="service_end_date",
                context=filing_context,
            ))
        elif window - days_elapsed <= self.config.filing_warning_days:
            result.add_issue(ValidationIssue(
                code="TIMELY_FILING_APPROACHING",
                message=f"Only {window - days_elapsed} days remain in the filing window",
                severity=ValidationSeverity.WARNING,
                category=ValidationCategory.TIMELY_FILING,
                field="service_end_date",
                context=filing_context,
            ))

    # =========================================================================
    # Coding
    # =========================================================================

    def _check_coding(self, context: ValidationContext, result: ClaimValidationResult) -> None:
        claim = context.claim
        if claim.service_start_date is None or claim.service_end_date is None:
            return

        for code in sorted(claim.service_codes):
            service_code = context.service_codes.get(code)
            if service_code is None:
                message = f"Service code {code} is not recognized"
            elif not service_code.is_active_between(claim.service_start_date, claim.service_end_date):
                message = f"Service code {code} is not active for the claim period"
            else:
                continue
            result.add_issue(ValidationIssue(
                code="INVALID_CODING",
                message=message,
                severity=ValidationSeverity.ERROR,
                category=ValidationCategory.CODING,
                field="service_lines",
                context={"service_code": code},
            ))

    # =========================================================================
    # Amounts
    # =========================================================================

    def _check_amounts(self, context: ValidationContext, result: ClaimValidationResult) -> None:
        claim = context.claim
        if claim.total_amount < 0:
            result.add_issue(ValidationIssue(
                code="INVALID_AMOUNT",
                message="Total amount cannot be negative",
                severity=ValidationSeverity.ERROR,
                category=ValidationCategory.AMOUNT,
                field="total_amount",
            ))

        if not claim.service_lines:
            return

        billed = sum((line.billed_amount for line in claim.service_lines), Decimal("0"))
        if billed != claim.total_amount:
            result.add_issue(ValidationIssue(
                code="AMOUNT_MISMATCH",
                message=f"Total amount {claim.total_amount} differs from billed services {billed}",
                severity=ValidationSeverity.WARNING,
                category=ValidationCategory.AMOUNT,
                field="total_amount",
                context={"total_amount": str(claim.total_amount), "billed_total": str(billed)},
            ))


# =============================================================================
# Context Gathering
# =============================================================================


class ClaimValidationService:
    """
    Gathers validation context from the database and runs ClaimValidator.

    Reads only; never flushes or commits the session it is given.
    """

    def __init__(
        self,
        authorization: "AuthorizationService",
        config: Optional[ValidationConfig] = None,
        clock: Optional[Callable[[], date]] = None,
    ):
        self.validator = ClaimValidator(config)
        self._authorization = authorization
        self._clock = clock or date.today

    async def validate_claim(
        self,
        session: AsyncSession,
        claim: "Claim",
        filing_date: Optional[date] = None,
    ) -> ClaimValidationResult:
        """
        Validate a persisted claim.

        Args:
            session: Open session (read-only use)
            claim: Claim with service lines loaded
            filing_date: Intended submission date, when validating ahead of a submit

        Returns:
            ClaimValidationResult with all issues found
        """
        context = await self.build_context(session, claim, filing_date=filing_date)
        result = self.validator.evaluate(context)
        logger.debug(
            f"Validated claim {claim.claim_number}: valid={result.is_valid}, "
            f"errors={result.error_codes}, warnings={result.warning_codes}"
        )
        return result

    @staticmethod
    async def _adjustment_chain(session: AsyncSession, claim: "Claim") -> set[UUID]:
        """
        IDs of every claim in the correction chain this claim belongs to.

        Walks original_claim_id up to the root, then collects every claim
        that descends from the root.
        """
        from claimflow.models.claim import Claim

        chain: set[UUID] = {claim.id}
        root_id = claim.id
        parent_id = claim.original_claim_id
        while parent_id is not None and parent_id not in chain:
            chain.add(parent_id)
            root_id = parent_id
            parent_id = (await session.execute(
                select(Claim.original_claim_id).where(Claim.id == parent_id)
            )).scalar_one_or_none()

        frontier = {root_id}
        while frontier:
            rows = await session.execute(select(Claim.id).where(Claim.original_claim_id.in_(frontier)))
            frontier = set(rows.scalars().all()) - chain
            chain.update(frontier)
        return chain

    async def build_context(
        self,
        session: AsyncSession,
        claim: "Claim",
        filing_date: Optional[date] = None,
    ) -> ValidationContext:
        from claimflow.models.claim import Claim, ClaimServiceLine
        from claimflow.models.reference import Client, Payer, Service, ServiceCode

        snapshot = ClaimSnapshot.from_model(claim)
        context = ValidationContext(claim=snapshot, as_of=self._clock(), filing_date=filing_date)

        client = await session.get(Client, claim.client_id) if claim.client_id else None
        if client is not None:
            context.client = PartySnapshot(id=client.id, name=client.full_name, is_active=client.is_active)

        payer = await session.get(Payer, claim.payer_id) if claim.payer_id else None
        if payer is not None:
            context.payer = PartySnapshot(
                id=payer.id,
                name=payer.name,
                is_active=payer.is_active,
                is_electronic=payer.is_electronic,
                timely_filing_days=payer.timely_filing_days,
                requires_authorization=payer.requires_authorization,
            )

        if claim.original_claim_id is not None:
            original = await session.get(Claim, claim.original_claim_id)
            context.original_claim_found = original is not None
            context.original_claim_client_id = original.client_id if original else None

        excluded_ids = await self._adjustment_chain(session, claim)

        service_ids = [line.service_id for line in claim.service_lines]
        if service_ids:
            services = await session.execute(select(Service).where(Service.id.in_(service_ids)))
            for service in services.scalars().all():
                context.services[service.id] = ServiceSnapshot(
                    service_id=service.id,
                    client_id=service.client_id,
                    service_code=service.service_code,
                    service_date=service.service_date,
                    documentation_status=service.documentation_status,
                )

            billed = await session.execute(
                select(ClaimServiceLine.service_id, Claim.claim_number)
                .join(Claim, Claim.id == ClaimServiceLine.claim_id)
                .where(
                    ClaimServiceLine.service_id.in_(service_ids),
                    Claim.id.not_in(excluded_ids),
                    Claim.claim_status != ClaimStatus.VOID,
                )
            )
            for service_id, claim_number in billed.all():
                context.billed_elsewhere.setdefault(service_id, claim_number)

        codes = sorted(snapshot.service_codes)
        if codes:
            code_rows = await session.execute(select(ServiceCode).where(ServiceCode.code.in_(codes)))
            for row in code_rows.scalars().all():
                context.service_codes[row.code] = ServiceCodeSnapshot(
                    code=row.code,
                    active_from=row.active_from,
                    active_to=row.active_to,
                    requires_authorization=row.requires_authorization,
                )

        if (
            claim.client_id
            and claim.payer_id
            and claim.service_start_date is not None
            and claim.service_end_date is not None
        ):
            for code in codes:
                if not self.validator.requires_authorization(context, code):
                    continue
                context.authorization_status[code] = await self._authorization.check(
                    session,
                    claim.client_id,
                    claim.payer_id,
                    code,
                    claim.service_start_date,
                    claim.service_end_date,
                )

            candidates = await session.execute(
                select(Claim).where(
                    Claim.client_id == claim.client_id,
                    Claim.payer_id == claim.payer_id,
                    Claim.id.not_in(excluded_ids),
                    Claim.claim_status != ClaimStatus.VOID,
                    Claim.service_start_date <= claim.service_end_date,
                    Claim.service_end_date >= claim.service_start_date,
                )
            )
            for other in candidates.scalars().all():
                context.duplicate_candidates.append(DuplicateCandidate(
                    claim_id=str(other.id),
                    claim_number=other.claim_number,
                    claim_status=other.claim_status,
                    service_start_date=other.service_start_date,
                    service_end_date=other.service_end_date,
                    service_codes=frozenset(line.service_code for line in other.service_lines),
                ))

        return context


# =============================================================================
# Factory Functions
# =============================================================================


def get_claim_validation_service(
    authorization: Optional["AuthorizationService"] = None,
    config: Optional[ValidationConfig] = None,
) -> ClaimValidationService:
    """Get claim validation service instance."""
    if authorization is None:
        from claimflow.services.authorization import get_authorization_service

        authorization = get_authorization_service()
    return ClaimValidationService(authorization=authorization, config=config)
