"""
Claim Aging and Metrics.

Provides:
- Aging report over open claims, bucketed by age and summed per payer
- Claim metrics: denial rate, average processing time, status and payer breakdowns
- Aging risk assessment and a risk-ordered priority list
- Claims approaching their timely filing deadline
- Claims requiring follow-up

Age is measured from the submission date, or from the service end date for
claims not yet submitted. All reads; nothing here changes claim state.

Source: Claim lifecycle design, Section 4.5 - Aging and Metrics
Verified: 2026-10-19
"""

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Optional, Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from claimflow.core.config import ClaimsSettings
from claimflow.core.enums import AgingRiskLevel, ClaimStatus
from claimflow.core.errors import ClaimNotFoundError, InvalidInputError
from claimflow.core.results import OperationResult
from claimflow.models.claim import TERMINAL_STATUSES, Claim, ClaimStatusHistory
from claimflow.models.reference import Payer
from claimflow.services.dependencies import ClaimEngineDeps

logger = logging.getLogger(__name__)


OPEN_STATUSES = tuple(s for s in ClaimStatus if s not in TERMINAL_STATUSES)
UNSUBMITTED_STATUSES = (ClaimStatus.DRAFT, ClaimStatus.VALIDATED)
AWAITING_PAYER_STATUSES = (ClaimStatus.SUBMITTED, ClaimStatus.ACKNOWLEDGED, ClaimStatus.PENDING)
PRIORITY_STATUSES = (ClaimStatus.DRAFT, ClaimStatus.PENDING, ClaimStatus.DENIED)

RECOMMENDED_ACTIONS: dict[AgingRiskLevel, list[str]] = {
    AgingRiskLevel.CRITICAL: ["Immediately review claim details", "Contact payer for status"],
    AgingRiskLevel.HIGH: ["Review claim details", "Verify documentation"],
    AgingRiskLevel.MEDIUM: ["Check claim status"],
    AgingRiskLevel.LOW: [],
}


def claim_age_days(claim: Claim, as_of: date) -> int:
    """Days since submission, or since the end of service when unsubmitted."""
    anchor = claim.submission_date or claim.service_end_date
    return max((as_of - anchor).days, 0)


# =============================================================================
# Report Types
# =============================================================================


@dataclass
class AgingBucket:
    """Inclusive day range with the open claims that fall into it."""

    min_days: int
    max_days: Optional[int]
    count: int = 0
    amount: Decimal = Decimal("0.00")

    @property
    def range(self) -> str:
        if self.max_days is None:
            return f"{self.min_days}+"
        return f"{self.min_days}-{self.max_days}"

    def contains(self, age_days: int) -> bool:
        return age_days >= self.min_days and (self.max_days is None or age_days <= self.max_days)

    def add(self, amount: Decimal) -> None:
        self.count += 1
        self.amount += amount

    def to_dict(self) -> dict[str, Any]:
        return {"range": self.range, "count": self.count, "amount": self.amount}


def build_buckets(bounds: Sequence[int]) -> list[AgingBucket]:
    """
    Buckets from inclusive upper bounds.

    Example:
        >>> [b.range for b in build_buckets([30, 60, 90])]
        ['0-30', '31-60', '61-90', '91+']
    """
    if not bounds or any(b <= 0 for b in bounds) or any(a >= b for a, b in zip(bounds, bounds[1:])):
        raise ValueError("Aging bucket bounds must be positive and increasing")

    buckets = []
    lower = 0
    for upper in bounds:
        buckets.append(AgingBucket(min_days=lower, max_days=upper))
        lower = upper + 1
    buckets.append(AgingBucket(min_days=lower, max_days=None))
    return buckets


@dataclass
class PayerAging:
    payer_id: UUID
    payer_name: str
    buckets: list[AgingBucket]
    total_count: int = 0
    total_amount: Decimal = Decimal("0.00")

    def to_dict(self) -> dict[str, Any]:
        return {
            "payer_id": str(self.payer_id),
            "payer_name": self.payer_name,
            "buckets": [b.to_dict() for b in self.buckets],
            "total_count": self.total_count,
            "total_amount": self.total_amount,
        }


@dataclass
class AgingReport:
    """Open receivables grouped by age."""

    as_of: date
    buckets: list[AgingBucket]
    by_payer: list[PayerAging] = field(default_factory=list)
    total_count: int = 0
    total_amount: Decimal = Decimal("0.00")

    def to_dict(self) -> dict[str, Any]:
        return {
            "as_of": self.as_of.isoformat(),
            "buckets": [b.to_dict() for b in self.buckets],
            "by_payer": [p.to_dict() for p in self.by_payer],
            "total_count": self.total_count,
            "total_amount": self.total_amount,
        }


@dataclass
class ClaimMetrics:
    """Lifecycle metrics over a reporting window."""

    start_date: Optional[date]
    end_date: Optional[date]
    total_claims: int = 0
    total_amount: Decimal = Decimal("0.00")
    submitted_count: int = 0
    denied_count: int = 0
    denial_rate: float = 0.0
    adjudicated_count: int = 0
    average_processing_time: float = 0.0
    status_breakdown: dict[str, dict[str, Any]] = field(default_factory=dict)
    payer_breakdown: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "total_claims": self.total_claims,
            "total_amount": self.total_amount,
            "submitted_count": self.submitted_count,
            "denied_count": self.denied_count,
            "denial_rate": self.denial_rate,
            "adjudicated_count": self.adjudicated_count,
            "average_processing_time": self.average_processing_time,
            "status_breakdown": self.status_breakdown,
            "payer_breakdown": self.payer_breakdown,
        }


@dataclass
class RiskAssessment:
    risk_score: int
    risk_level: AgingRiskLevel
    factors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "risk_score": self.risk_score,
            "risk_level": self.risk_level.value,
            "factors": list(self.factors),
        }


@dataclass
class PriorityItem:
    claim: Claim
    age_days: int
    risk: RiskAssessment
    recommended_actions: list[str]


@dataclass
class FilingDeadlineItem:
    claim: Claim
    filing_deadline: date
    days_remaining: int

    @property
    def is_overdue(self) -> bool:
        return self.days_remaining < 0


@dataclass
class ActionItem:
    claim: Claim
    reason: str
    action: str
    age_days: int


# =============================================================================
# Risk Scoring
# =============================================================================


def assess_aging_risk(
    age_days: int,
    status: ClaimStatus,
    amount: Decimal,
    settings: ClaimsSettings,
) -> RiskAssessment:
    """
    Score collection risk of a claim.

    Age: >90 days +50, >60 +30, >30 +10
    Status: DENIED +40, PENDING +20, DRAFT +15
    Amount: >10,000 +20, >5,000 +10
    """
    score = 0
    factors: list[str] = []

    if age_days > 90:
        score += 50
        factors.append("Age > 90 days")
    elif age_days > 60:
        score += 30
        factors.append("Age > 60 days")
    elif age_days > 30:
        score += 10
        factors.append("Age > 30 days")

    if status == ClaimStatus.DENIED:
        score += 40
        factors.append("Claim Denied")
    elif status == ClaimStatus.PENDING:
        score += 20
        factors.append("Claim Pending")
    elif status == ClaimStatus.DRAFT:
        score += 15
        factors.append("Claim in Draft")

    if amount > Decimal("10000"):
        score += 20
        factors.append("Claim Amount > $10,000")
    elif amount > Decimal("5000"):
        score += 10
        factors.append("Claim Amount > $5,000")

    if score > settings.RISK_CRITICAL_SCORE:
        level = AgingRiskLevel.CRITICAL
    elif score > settings.RISK_HIGH_SCORE:
        level = AgingRiskLevel.HIGH
    elif score > settings.RISK_MEDIUM_SCORE:
        level = AgingRiskLevel.MEDIUM
    else:
        level = AgingRiskLevel.LOW

    return RiskAssessment(risk_score=score, risk_level=level, factors=factors)


# =============================================================================
# Aging Service
# =============================================================================


class ClaimAgingService:
    """On-demand aging reports, metrics and follow-up lists."""

    def __init__(self, deps: ClaimEngineDeps):
        self.deps = deps
        self.store = deps.store
        self.settings = deps.settings

    async def _payer_names(self, session: AsyncSession, payer_ids) -> dict[UUID, str]:
        ids = set(payer_ids)
        if not ids:
            return {}
        rows = await session.execute(select(Payer.id, Payer.name).where(Payer.id.in_(ids)))
        return {payer_id: name for payer_id, name in rows.all()}

    # =========================================================================
    # Aging Report
    # =========================================================================

    async def get_aging_report(
        self,
        as_of: Optional[date] = None,
        payer_id: Optional[UUID] = None,
        bucket_bounds: Optional[Sequence[int]] = None,
        include_payers: bool = True,
    ) -> OperationResult[AgingReport]:
        """
        Bucket open claims by age and sum their billed totals.

        Args:
            as_of: Report date (defaults to today)
            payer_id: Restrict to one payer
            bucket_bounds: Inclusive upper bounds in days; the last bucket is open-ended
            include_payers: Add a per-payer breakdown
        """
        as_of = as_of or self.deps.clock()
        bounds = list(bucket_bounds or self.settings.AGING_BUCKETS)
        try:
            buckets = build_buckets(bounds)
        except ValueError as e:
            return OperationResult.fail(InvalidInputError(str(e), context={"bucket_bounds": bounds}))

        report = AgingReport(as_of=as_of, buckets=buckets)
        per_payer: dict[UUID, PayerAging] = {}

        async with self.deps.session_maker() as session:
            claims = await self.store.find_by_status(session, OPEN_STATUSES, payer_id=payer_id)
            names = await self._payer_names(session, (c.payer_id for c in claims)) if include_payers else {}

        for claim in claims:
            age = claim_age_days(claim, as_of)
            amount = Decimal(claim.total_amount)
            for bucket in report.buckets:
                if bucket.contains(age):
                    bucket.add(amount)
                    break
            report.total_count += 1
            report.total_amount += amount

            if include_payers:
                payer = per_payer.get(claim.payer_id)
                if payer is None:
                    payer = PayerAging(
                        payer_id=claim.payer_id,
                        payer_name=names.get(claim.payer_id, str(claim.payer_id)),
                        buckets=build_buckets(bounds),
                    )
                    per_payer[claim.payer_id] = payer
                for bucket in payer.buckets:
                    if bucket.contains(age):
                        bucket.add(amount)
                        break
                payer.total_count += 1
                payer.total_amount += amount

        report.by_payer = sorted(per_payer.values(), key=lambda p: p.payer_name)
        logger.info(f"Aging report as of {as_of}: {report.total_count} open claims, {report.total_amount} outstanding")
        return OperationResult.ok(report)

    # =========================================================================
    # Metrics
    # =========================================================================

    async def get_metrics(
        self,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        payer_id: Optional[UUID] = None,
    ) -> OperationResult[ClaimMetrics]:
        """
        Lifecycle metrics for a window.

        denial_rate is the share of claims submitted in the window that were
        ever DENIED or FINAL_DENIED, taken from status history.
        average_processing_time is the mean of adjudication_date minus
        submission_date, in days, over claims adjudicated in the window.
        """
        if start_date and end_date and start_date > end_date:
            return OperationResult.fail(InvalidInputError(
                "start_date must not be after end_date",
                context={"start_date": start_date.isoformat(), "end_date": end_date.isoformat()},
            ))

        metrics = ClaimMetrics(start_date=start_date, end_date=end_date)

        async with self.deps.session_maker() as session:
            history_query = (
                select(ClaimStatusHistory.claim_id, ClaimStatusHistory.status, ClaimStatusHistory.timestamp)
                .join(Claim, Claim.id == ClaimStatusHistory.claim_id)
                .where(ClaimStatusHistory.status.in_([
                    ClaimStatus.SUBMITTED,
                    ClaimStatus.DENIED,
                    ClaimStatus.FINAL_DENIED,
                ]))
            )
            claims_query = select(Claim)
            if payer_id:
                history_query = history_query.where(Claim.payer_id == payer_id)
                claims_query = claims_query.where(Claim.payer_id == payer_id)

            history_rows = (await session.execute(history_query)).all()
            claims = list((await session.execute(claims_query)).scalars().all())
            names = await self._payer_names(session, (c.payer_id for c in claims))

        def in_window(day: Optional[date]) -> bool:
            if day is None:
                return False
            if start_date and day < start_date:
                return False
            if end_date and day > end_date:
                return False
            return True

        submitted: set[UUID] = set()
        denied: set[UUID] = set()
        for claim_id, status, timestamp in history_rows:
            if status == ClaimStatus.SUBMITTED and in_window(timestamp.date()):
                submitted.add(claim_id)
            elif status != ClaimStatus.SUBMITTED:
                denied.add(claim_id)

        metrics.submitted_count = len(submitted)
        metrics.denied_count = len(denied & submitted)
        if submitted:
            metrics.denial_rate = round(metrics.denied_count / len(submitted), 4)

        processing_days = [
            (c.adjudication_date - c.submission_date).days
            for c in claims
            if c.adjudication_date and c.submission_date and in_window(c.adjudication_date)
        ]
        metrics.adjudicated_count = len(processing_days)
        if processing_days:
            metrics.average_processing_time = round(sum(processing_days) / len(processing_days), 2)

        payers: dict[UUID, dict[str, Any]] = {}
        for claim in claims:
            amount = Decimal(claim.total_amount)
            metrics.total_claims += 1
            metrics.total_amount += amount

            entry = metrics.status_breakdown.setdefault(
                claim.claim_status.value, {"count": 0, "amount": Decimal("0.00")}
            )
            entry["count"] += 1
            entry["amount"] += amount

            payer = payers.setdefault(claim.payer_id, {
                "payer_id": str(claim.payer_id),
                "payer_name": names.get(claim.payer_id, str(claim.payer_id)),
                "count": 0,
                "amount": Decimal("0.00"),
                "paid_count": 0,
                "denied_count": 0,
            })
            payer["count"] += 1
            payer["amount"] += amount
            if claim.claim_status in (ClaimStatus.PAID, ClaimStatus.PARTIAL_PAID):
                payer["paid_count"] += 1
            elif claim.claim_status in (ClaimStatus.DENIED, ClaimStatus.FINAL_DENIED):
                payer["denied_count"] += 1

        metrics.payer_breakdown = sorted(payers.values(), key=lambda p: p["payer_name"])
        return OperationResult.ok(metrics)

    # =========================================================================
    # Risk and Priorities
    # =========================================================================

    def calculate_aging_risk(self, claim: Claim, as_of: Optional[date] = None) -> RiskAssessment:
        """Risk score, level and contributing factors for one claim."""
        as_of = as_of or self.deps.clock()
        return assess_aging_risk(
            claim_age_days(claim, as_of),
            claim.claim_status,
            Decimal(claim.total_amount),
            self.settings,
        )

    async def get_claim_risk(self, claim_id) -> OperationResult[RiskAssessment]:
        async with self.deps.session_maker() as session:
            claim = await self.store.get(session, claim_id)
        if claim is None:
            return OperationResult.fail(ClaimNotFoundError(claim_id))
        return OperationResult.ok(self.calculate_aging_risk(claim))

    async def get_priority_list(
        self,
        payer_id: Optional[UUID] = None,
        min_age_days: int = 30,
        max_age_days: int = 365,
        limit: Optional[int] = None,
    ) -> list[PriorityItem]:
        """Aged DRAFT, PENDING and DENIED claims, highest risk first."""
        as_of = self.deps.clock()
        async with self.deps.session_maker() as session:
            claims = await self.store.find_by_status(session, PRIORITY_STATUSES, payer_id=payer_id)

        items = []
        for claim in claims:
            age = claim_age_days(claim, as_of)
            if age < min_age_days or age > max_age_days:
                continue
            risk = self.calculate_aging_risk(claim, as_of)
            items.append(PriorityItem(
                claim=claim,
                age_days=age,
                risk=risk,
                recommended_actions=list(RECOMMENDED_ACTIONS[risk.risk_level]),
            ))

        items.sort(key=lambda item: (-item.risk.risk_score, -item.age_days, item.claim.claim_number))
        return items[:limit] if limit else items

    # =========================================================================
    # Follow-up Lists
    # =========================================================================

    async def get_claims_approaching_filing_deadline(
        self,
        days_threshold: Optional[int] = None,
        payer_id: Optional[UUID] = None,
    ) -> list[FilingDeadlineItem]:
        """
        Unsubmitted claims whose timely filing window closes within the threshold.

        Claims already past their deadline are included with negative days_remaining.
        """
        as_of = self.deps.clock()
        threshold = self.settings.FILING_WARNING_DAYS if days_threshold is None else days_threshold

        async with self.deps.session_maker() as session:
            claims = await self.store.find_by_status(session, UNSUBMITTED_STATUSES, payer_id=payer_id)
            payer_ids = {c.payer_id for c in claims}
            windows: dict[UUID, Optional[int]] = {}
            if payer_ids:
                rows = await session.execute(
                    select(Payer.id, Payer.timely_filing_days).where(Payer.id.in_(payer_ids))
                )
                windows = {pid: days for pid, days in rows.all()}

        items = []
        for claim in claims:
            window = windows.get(claim.payer_id) or self.settings.DEFAULT_TIMELY_FILING_DAYS
            deadline = claim.service_end_date + timedelta(days=window)
            remaining = (deadline - as_of).days
            if remaining <= threshold:
                items.append(FilingDeadlineItem(claim=claim, filing_deadline=deadline, days_remaining=remaining))

        items.sort(key=lambda item: (item.days_remaining, item.claim.claim_number))
        return items

    async def get_claims_requiring_action(
        self,
        payer_id: Optional[UUID] = None,
        stalled_days: int = 30,
    ) -> list[ActionItem]:
        """
        Open claims that need a person to act.

        - DENIED: appeal, resubmit or accept the denial
        - DRAFT / VALIDATED near or past the filing deadline: submit
        - SUBMITTED / ACKNOWLEDGED / PENDING with no payer outcome after stalled_days: follow up
        """
        as_of = self.deps.clock()
        items: list[ActionItem] = []

        deadline_items = await self.get_claims_approaching_filing_deadline(payer_id=payer_id)
        for entry in deadline_items:
            reason = (
                f"Filing deadline passed {-entry.days_remaining} days ago"
                if entry.is_overdue
                else f"Filing deadline in {entry.days_remaining} days"
            )
            items.append(ActionItem(
                claim=entry.claim,
                reason=reason,
                action="Submit claim",
                age_days=claim_age_days(entry.claim, as_of),
            ))

        async with self.deps.session_maker() as session:
            denied = await self.store.find_by_status(session, [ClaimStatus.DENIED], payer_id=payer_id)
            waiting = await self.store.find_by_status(session, AWAITING_PAYER_STATUSES, payer_id=payer_id)

        for claim in denied:
            reason = f"Denied: {claim.denial_reason.value}" if claim.denial_reason else "Denied"
            items.append(ActionItem(
                claim=claim,
                reason=reason,
                action="Appeal, resubmit or accept denial",
                age_days=claim_age_days(claim, as_of),
            ))

        for claim in waiting:
            age = claim_age_days(claim, as_of)
            if age > stalled_days:
                items.append(ActionItem(
                    claim=claim,
                    reason=f"No payer outcome after {age} days",
                    action="Contact payer for status",
                    age_days=age,
                ))

        items.sort(key=lambda item: (-item.age_days, item.claim.claim_number))
        return items
