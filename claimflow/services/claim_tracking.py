"""
Claim Status Tracking.

Provides:
- Current status with next available actions
- Ordered status timeline from history
- Progress monitoring (days in status, total age)
- Full lifecycle view with risk assessment
- Status transition report across claims

Status history is append-only and is the source of truth for timelines,
time in status and claim age.

Source: Claim lifecycle design, Section 4.5 - Status History
Verified: 2026-10-19
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import select

from claimflow.core.enums import ClaimStatus
from claimflow.core.errors import ClaimNotFoundError, InvalidInputError
from claimflow.core.results import OperationResult
from claimflow.models.base import as_utc
from claimflow.models.claim import Claim, ClaimStatusHistory
from claimflow.services.claim_aging import ClaimAgingService, RiskAssessment
from claimflow.services.claim_state_machine import (
    get_claim_state_machine,
    get_status_label,
    get_transition_options,
    is_terminal_status,
)
from claimflow.services.dependencies import ClaimEngineDeps

logger = logging.getLogger(__name__)


@dataclass
class TimelineEntry:
    """One history row as shown on a claim timeline."""

    sequence: int
    status: ClaimStatus
    previous_status: Optional[ClaimStatus]
    timestamp: datetime
    notes: Optional[str]
    user_id: Optional[str]
    is_active: bool

    @property
    def label(self) -> str:
        return get_status_label(self.status)


@dataclass
class ClaimStatusInfo:
    claim_id: str
    claim_number: str
    status: ClaimStatus
    label: str
    last_updated: Optional[datetime]
    is_terminal: bool
    next_actions: list[dict[str, Any]]
    details: dict[str, Any]


@dataclass
class ClaimProgress:
    claim_id: str
    status: ClaimStatus
    days_in_status: int
    total_age_days: int
    next_milestone: Optional[str]
    transitions: int


@dataclass
class ClaimLifecycleView:
    claim: Claim
    timeline: list[TimelineEntry]
    age_days: int
    next_actions: list[dict[str, Any]]
    risk: RiskAssessment


def _days_between(start: datetime, today: date) -> int:
    return max((today - as_utc(start).date()).days, 0)


class ClaimTrackingService:
    """Read models over claim status history."""

    def __init__(self, deps: ClaimEngineDeps, aging: ClaimAgingService):
        self.deps = deps
        self.store = deps.store
        self.aging = aging

    async def _load(self, claim_id) -> Optional[tuple[Claim, list[ClaimStatusHistory]]]:
        async with self.deps.session_maker() as session:
            claim = await self.store.get(session, claim_id)
            if claim is None:
                return None
            history = await self.store.get_history(session, claim.id)
        return claim, history

    @staticmethod
    def _timeline(history: list[ClaimStatusHistory]) -> list[TimelineEntry]:
        last = len(history) - 1
        return [
            TimelineEntry(
                sequence=row.sequence,
                status=row.status,
                previous_status=row.previous_status,
                timestamp=as_utc(row.timestamp),
                notes=row.notes,
                user_id=row.user_id,
                is_active=index == last,
            )
            for index, row in enumerate(history)
        ]

    # =========================================================================
    # Single Claim Views
    # =========================================================================

    async def get_status(self, claim_id) -> OperationResult[ClaimStatusInfo]:
        """Current status, when it was reached, and what can happen next."""
        loaded = await self._load(claim_id)
        if loaded is None:
            return OperationResult.fail(ClaimNotFoundError(claim_id))
        claim, history = loaded

        details: dict[str, Any] = {
            "external_claim_id": claim.external_claim_id,
            "submission_method": claim.submission_method.value if claim.submission_method else None,
            "submission_date": claim.submission_date,
            "adjudication_date": claim.adjudication_date,
        }
        if claim.denial_reason:
            details["denial_reason"] = claim.denial_reason.value
            details["denial_details"] = claim.denial_details
        if claim.appeal_reason:
            details["appeal_reason"] = claim.appeal_reason

        return OperationResult.ok(ClaimStatusInfo(
            claim_id=str(claim.id),
            claim_number=claim.claim_number,
            status=claim.claim_status,
            label=get_status_label(claim.claim_status),
            last_updated=as_utc(history[-1].timestamp) if history else None,
            is_terminal=is_terminal_status(claim.claim_status),
            next_actions=get_transition_options(claim.claim_status),
            details=details,
        ))

    async def get_timeline(self, claim_id) -> OperationResult[list[TimelineEntry]]:
        """History in transition order; the latest entry is marked active."""
        loaded = await self._load(claim_id)
        if loaded is None:
            return OperationResult.fail(ClaimNotFoundError(claim_id))
        _, history = loaded
        return OperationResult.ok(self._timeline(history))

    async def monitor_progress(self, claim_id) -> OperationResult[ClaimProgress]:
        loaded = await self._load(claim_id)
        if loaded is None:
            return OperationResult.fail(ClaimNotFoundError(claim_id))
        claim, history = loaded
        today = self.deps.clock()

        days_in_status = _days_between(history[-1].timestamp, today) if history else 0
        total_age = _days_between(history[0].timestamp if history else claim.created_at, today)

        next_milestone = None
        for status in get_claim_state_machine().get_next_statuses(claim.claim_status):
            if status != ClaimStatus.VOID:
                next_milestone = get_status_label(status)
                break

        return OperationResult.ok(ClaimProgress(
            claim_id=str(claim.id),
            status=claim.claim_status,
            days_in_status=days_in_status,
            total_age_days=total_age,
            next_milestone=next_milestone,
            transitions=max(len(history) - 1, 0),
        ))

    async def get_lifecycle(self, claim_id) -> OperationResult[ClaimLifecycleView]:
        """Claim, timeline, age, next actions and aging risk in one view."""
        loaded = await self._load(claim_id)
        if loaded is None:
            return OperationResult.fail(ClaimNotFoundError(claim_id))
        claim, history = loaded
        today = self.deps.clock()

        return OperationResult.ok(ClaimLifecycleView(
            claim=claim,
            timeline=self._timeline(history),
            age_days=_days_between(history[0].timestamp if history else claim.created_at, today),
            next_actions=get_transition_options(claim.claim_status),
            risk=self.aging.calculate_aging_risk(claim, today),
        ))

    # =========================================================================
    # Reports
    # =========================================================================

    async def get_status_transition_report(
        self,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        payer_id: Optional[UUID] = None,
    ) -> OperationResult[dict[str, Any]]:
        """
        Count transitions between statuses and the average days spent in the
        source status before each transition.
        """
        if start_date and end_date and start_date > end_date:
            return OperationResult.fail(InvalidInputError(
                "start_date must not be after end_date",
                context={"start_date": start_date.isoformat(), "end_date": end_date.isoformat()},
            ))

        query = (
            select(ClaimStatusHistory)
            .join(Claim, Claim.id == ClaimStatusHistory.claim_id)
            .order_by(ClaimStatusHistory.claim_id, ClaimStatusHistory.sequence)
        )
        if payer_id:
            query = query.where(Claim.payer_id == payer_id)

        async with self.deps.session_maker() as session:
            rows = list((await session.execute(query)).scalars().all())

        durations: dict[tuple[str, str], list[float]] = defaultdict(list)
        previous_row: Optional[ClaimStatusHistory] = None
        for row in rows:
            if previous_row is not None and previous_row.claim_id == row.claim_id and row.previous_status:
                day = as_utc(row.timestamp).date()
                if (start_date is None or day >= start_date) and (end_date is None or day <= end_date):
                    elapsed = as_utc(row.timestamp) - as_utc(previous_row.timestamp)
                    durations[(row.previous_status.value, row.status.value)].append(
                        elapsed.total_seconds() / 86400
                    )
            previous_row = row

        transitions = [
            {
                "from_status": from_status,
                "to_status": to_status,
                "count": len(values),
                "average_days": round(sum(values) / len(values), 2),
            }
            for (from_status, to_status), values in sorted(durations.items())
        ]
        return OperationResult.ok({
            "start_date": start_date.isoformat() if start_date else None,
            "end_date": end_date.isoformat() if end_date else None,
            "transitions": transitions,
            "total_transitions": sum(t["count"] for t in transitions),
        })
