"""
Claim Store.

Persistence boundary for claims, their service lines and status history.
Every method works inside a session supplied by the caller, so a status
update and its history row always share one transaction.
"""

import logging
from datetime import date, datetime
from typing import Optional, Sequence
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from claimflow.core.enums import ClaimStatus, ClaimType
from claimflow.core.errors import ClaimStateConflictError, ConcurrencyError, InvalidInputError
from claimflow.core.results import OperationResult
from claimflow.models.base import utcnow
from claimflow.models.claim import Claim, ClaimStatusHistory
from claimflow.services.claim_state_machine import TransitionContext, get_claim_state_machine

logger = logging.getLogger(__name__)


def parse_claim_id(claim_id) -> Optional[UUID]:
    """Coerce a claim ID from a path or payload; None when malformed."""
    if isinstance(claim_id, UUID):
        return claim_id
    try:
        return UUID(str(claim_id))
    except (ValueError, TypeError, AttributeError):
        return None


class ClaimStore:
    """Repository for claim rows and their append-only history."""

    # =========================================================================
    # Claim Number Generation
    # =========================================================================

    async def next_claim_number(self, session: AsyncSession, on_date: date) -> str:
        """
        Generate the next claim number for a day.

        Format: CLM-{YYYYMMDD}-{SEQUENCE:05d}
        Example: CLM-20240110-00001
        """
        prefix = f"CLM-{on_date.strftime('%Y%m%d')}-"
        result = await session.execute(
            select(func.max(Claim.claim_number)).where(Claim.claim_number.like(f"{prefix}%"))
        )
        max_number = result.scalar_one_or_none()

        next_seq = 1
        if max_number:
            try:
                next_seq = int(max_number.rsplit("-", 1)[-1]) + 1
            except ValueError:
                next_seq = 1

        return f"{prefix}{next_seq:05d}"

    # =========================================================================
    # Reads
    # =========================================================================

    async def get(self, session: AsyncSession, claim_id) -> Optional[Claim]:
        """Get claim by ID (service lines are always loaded)."""
        parsed = parse_claim_id(claim_id)
        if parsed is None:
            return None
        result = await session.execute(select(Claim).where(Claim.id == parsed))
        return result.scalar_one_or_none()

    async def lock(self, session: AsyncSession, claim_id) -> Optional[Claim]:
        """
        Load a claim for a status change.

        Takes a row lock where the backend supports it; the version column
        catches writers on backends that do not.
        """
        parsed = parse_claim_id(claim_id)
        if parsed is None:
            return None
        result = await session.execute(
            select(Claim)
            .where(Claim.id == parsed)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_history(self, session: AsyncSession, claim_id) -> list[ClaimStatusHistory]:
        """Status history in transition order."""
        parsed = parse_claim_id(claim_id)
        if parsed is None:
            return []
        result = await session.execute(
            select(ClaimStatusHistory)
            .where(ClaimStatusHistory.claim_id == parsed)
            .order_by(ClaimStatusHistory.sequence)
        )
        return list(result.scalars().all())

    async def list_claims(
        self,
        session: AsyncSession,
        skip: int = 0,
        limit: int = 100,
        status: Optional[ClaimStatus] = None,
        client_id: Optional[UUID] = None,
        payer_id: Optional[UUID] = None,
        claim_type: Optional[ClaimType] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> tuple[list[Claim], int]:
        """
        List claims with pagination and filters.

        Returns:
            Tuple of (claims list, total count)
        """
        query = select(Claim)

        if status:
            query = query.where(Claim.claim_status == status)
        if client_id:
            query = query.where(Claim.client_id == client_id)
        if payer_id:
            query = query.where(Claim.payer_id == payer_id)
        if claim_type:
            query = query.where(Claim.claim_type == claim_type)
        if date_from:
            query = query.where(Claim.service_end_date >= date_from)
        if date_to:
            query = query.where(Claim.service_start_date <= date_to)

        count_query = select(func.count()).select_from(query.subquery())
        total = (await session.execute(count_query)).scalar_one()

        query = query.order_by(Claim.created_at.desc(), Claim.claim_number.desc()).offset(skip).limit(limit)
        result = await session.execute(query)

        return list(result.scalars().all()), total

    async def find_by_status(
        self,
        session: AsyncSession,
        statuses: Sequence[ClaimStatus],
        payer_id: Optional[UUID] = None,
        limit: Optional[int] = None,
    ) -> list[Claim]:
        query = select(Claim).where(Claim.claim_status.in_(list(statuses)))
        if payer_id:
            query = query.where(Claim.payer_id == payer_id)
        query = query.order_by(Claim.service_end_date, Claim.claim_number)
        if limit:
            query = query.limit(limit)
        result = await session.execute(query)
        return list(result.scalars().all())

    # =========================================================================
    # Writes
    # =========================================================================

    async def add(self, session: AsyncSession, claim: Claim) -> Claim:
        session.add(claim)
        await self.flush(session)
        return claim

    async def append_history(
        self,
        session: AsyncSession,
        claim: Claim,
        status: ClaimStatus,
        previous_status: Optional[ClaimStatus] = None,
        notes: Optional[str] = None,
        user_id: Optional[str] = None,
        timestamp: Optional[datetime] = None,
    ) -> ClaimStatusHistory:
        """Append one history row for the claim's latest transition."""
        result = await session.execute(
            select(func.max(ClaimStatusHistory.sequence)).where(
                ClaimStatusHistory.claim_id == claim.id
            )
        )
        sequence = (result.scalar_one_or_none() or 0) + 1

        entry = ClaimStatusHistory(
            claim_id=claim.id,
            sequence=sequence,
            status=status,
            previous_status=previous_status,
            timestamp=timestamp or utcnow(),
            notes=notes,
            user_id=user_id,
        )
        session.add(entry)
        return entry

    async def transition(
        self,
        session: AsyncSession,
        claim: Claim,
        context: TransitionContext,
        notes: Optional[str] = None,
    ) -> OperationResult[Claim]:
        """
        Apply one state machine transition and record it.

        The status change and its history row are flushed together; the
        caller's transaction scope decides whether both commit.

        Returns:
            OperationResult with the claim, or a state conflict / invalid
            input error when the state machine rejects the transition
        """
        state_machine = get_claim_state_machine()
        previous = claim.claim_status

        if state_machine.get_transition(previous, context.event) is None:
            logger.warning(
                f"Rejected {context.event.value} for claim {claim.claim_number} in {previous.value}"
            )
            return OperationResult.fail(ClaimStateConflictError(previous, context.event.value))

        result = state_machine.apply_transition(claim, context)
        if not result.success:
            return OperationResult.fail(InvalidInputError(
                result.error or "Transition rejected",
                context={"current_status": previous.value, "action": context.event.value},
            ))

        await self.append_history(
            session,
            claim,
            status=claim.claim_status,
            previous_status=previous,
            notes=notes if notes is not None else context.reason,
            user_id=context.triggered_by,
            timestamp=context.timestamp,
        )
        await self.flush(session)
        return OperationResult.ok(claim)

    async def flush(self, session: AsyncSession) -> None:
        """Flush pending writes; a stale version becomes ConcurrencyError."""
        try:
            await session.flush()
        except StaleDataError as e:
            logger.warning(f"Concurrent claim update detected: {e}")
            raise ConcurrencyError(
                "Claim was modified by another request; re-fetch and retry",
            ) from e
