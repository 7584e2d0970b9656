"""
Claims Service.

Provides:
- Claim creation from delivered services (lines, totals, initial history)
- Claim retrieval and filtered listing
- Draft claim updates

Source: Claim lifecycle design, Section 3 - Data Model
Verified: 2026-10-19
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from claimflow.core.enums import ClaimStatus, ClaimType
from claimflow.core.errors import (
    ClaimNotFoundError,
    ClaimStateConflictError,
    InvalidInputError,
)
from claimflow.core.results import OperationResult
from claimflow.db.connection import transaction
from claimflow.models.claim import Claim, ClaimServiceLine
from claimflow.models.reference import Client, Payer, Service
from claimflow.services.claim_store import parse_claim_id
from claimflow.services.dependencies import ClaimEngineDeps

logger = logging.getLogger(__name__)


# Claim types that must reference an original claim
CHAINED_CLAIM_TYPES = frozenset({ClaimType.ADJUSTMENT, ClaimType.REPLACEMENT, ClaimType.VOID})


# =============================================================================
# Data Transfer Objects
# =============================================================================


@dataclass
class ClaimCreateDTO:
    """Data transfer object for creating a claim."""

    client_id: UUID
    payer_id: UUID
    service_ids: list[UUID]
    claim_type: ClaimType = ClaimType.ORIGINAL
    original_claim_id: Optional[UUID] = None
    service_start_date: Optional[date] = None
    service_end_date: Optional[date] = None
    notes: Optional[str] = None


@dataclass
class ClaimUpdateDTO:
    """Editable fields of a DRAFT claim."""

    total_amount: Optional[Decimal] = None
    service_start_date: Optional[date] = None
    service_end_date: Optional[date] = None
    notes: Optional[str] = None
    fields_set: set[str] = field(default_factory=set)

    def changes(self) -> dict:
        names = self.fields_set or {
            name for name in ("total_amount", "service_start_date", "service_end_date", "notes")
            if getattr(self, name) is not None
        }
        return {name: getattr(self, name) for name in names}


# =============================================================================
# Claims Service
# =============================================================================


class ClaimsService:
    """
    Service for claim records.

    Handles:
    - Claim creation with service lines and the initial DRAFT history row
    - Claim lookup and listing
    - Updates while the claim is still a draft
    """

    def __init__(self, deps: ClaimEngineDeps):
        self.deps = deps
        self.store = deps.store

    # =========================================================================
    # Create Operations
    # =========================================================================

    async def create_claim(
        self,
        data: ClaimCreateDTO,
        created_by: Optional[str] = None,
    ) -> OperationResult[Claim]:
        """
        Create a DRAFT claim billing the given services.

        total_amount is the sum of the services' amounts; the service
        period defaults to the earliest and latest service dates.
        """
        async with transaction(self.deps.session_maker) as session:
            result = await self.create_in_session(session, data, created_by=created_by)
            if not result.success:
                return result
            claim = result.value

        logger.info(f"Created claim {claim.claim_number} (ID: {claim.id})")
        return OperationResult.ok(claim)

    async def create_in_session(
        self,
        session: AsyncSession,
        data: ClaimCreateDTO,
        created_by: Optional[str] = None,
    ) -> OperationResult[Claim]:
        """Build and persist a claim inside an open transaction."""
        if not data.service_ids:
            return OperationResult.fail(InvalidInputError(
                "At least one service is required",
                context={"field": "service_ids"},
            ))
        if len(set(data.service_ids)) != len(data.service_ids):
            return OperationResult.fail(InvalidInputError(
                "A service can appear only once on a claim",
                context={"field": "service_ids"},
            ))
        if data.claim_type in CHAINED_CLAIM_TYPES and data.original_claim_id is None:
            return OperationResult.fail(InvalidInputError(
                f"{data.claim_type.value} claims require original_claim_id",
                context={"field": "original_claim_id"},
            ))
        if data.claim_type not in CHAINED_CLAIM_TYPES and data.original_claim_id is not None:
            return OperationResult.fail(InvalidInputError(
                f"{data.claim_type.value} claims cannot reference an original claim",
                context={"field": "original_claim_id"},
            ))

        if data.original_claim_id is not None:
            original = await session.get(Claim, data.original_claim_id)
            if original is None:
                return OperationResult.fail(ClaimNotFoundError(data.original_claim_id, entity="Claim"))
            if original.client_id != data.client_id:
                return OperationResult.fail(InvalidInputError(
                    f"Original claim {original.claim_number} belongs to another client",
                    context={"field": "original_claim_id", "original_claim_number": original.claim_number},
                ))

        if await session.get(Client, data.client_id) is None:
            return OperationResult.fail(ClaimNotFoundError(data.client_id, entity="Client"))
        if await session.get(Payer, data.payer_id) is None:
            return OperationResult.fail(ClaimNotFoundError(data.payer_id, entity="Payer"))

        rows = await session.execute(select(Service).where(Service.id.in_(data.service_ids)))
        services = {service.id: service for service in rows.scalars().all()}
        missing = [sid for sid in data.service_ids if sid not in services]
        if missing:
            return OperationResult.fail(ClaimNotFoundError(missing[0], entity="Service"))

        ordered = sorted(
            (services[sid] for sid in data.service_ids),
            key=lambda s: (s.service_date, s.service_code),
        )
        start = data.service_start_date or ordered[0].service_date
        end = data.service_end_date or ordered[-1].service_date
        if start > end:
            return OperationResult.fail(InvalidInputError(
                "service_start_date must not be after service_end_date",
                context={"service_start_date": start.isoformat(), "service_end_date": end.isoformat()},
            ))

        claim = Claim(
            claim_number=await self.store.next_claim_number(session, self.deps.clock()),
            client_id=data.client_id,
            payer_id=data.payer_id,
            original_claim_id=data.original_claim_id,
            claim_type=data.claim_type,
            claim_status=ClaimStatus.DRAFT,
            total_amount=sum((s.amount for s in ordered), Decimal("0.00")),
            service_start_date=start,
            service_end_date=end,
            notes=data.notes,
            created_by=created_by,
            updated_by=created_by,
        )
        claim.service_lines = [
            ClaimServiceLine(
                service_id=service.id,
                service_line_number=number,
                service_code=service.service_code,
                service_date=service.service_date,
                billed_units=service.units,
                billed_amount=service.amount,
            )
            for number, service in enumerate(ordered, start=1)
        ]
        await self.store.add(session, claim)

        await self.store.append_history(
            session,
            claim,
            status=ClaimStatus.DRAFT,
            notes="Claim created",
            user_id=created_by,
        )
        await self.store.flush(session)
        return OperationResult.ok(claim)

    # =========================================================================
    # Read Operations
    # =========================================================================

    async def get_claim(self, claim_id) -> OperationResult[Claim]:
        """Get claim by ID."""
        async with self.deps.session_maker() as session:
            claim = await self.store.get(session, claim_id)
        if claim is None:
            return OperationResult.fail(ClaimNotFoundError(claim_id))
        return OperationResult.ok(claim)

    async def list_claims(
        self,
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
        async with self.deps.session_maker() as session:
            return await self.store.list_claims(
                session,
                skip=skip,
                limit=limit,
                status=status,
                client_id=client_id,
                payer_id=payer_id,
                claim_type=claim_type,
                date_from=date_from,
                date_to=date_to,
            )

    # =========================================================================
    # Update Operations
    # =========================================================================

    async def update_claim(
        self,
        claim_id,
        update_data: ClaimUpdateDTO,
        updated_by: Optional[str] = None,
    ) -> OperationResult[Claim]:
        """
        Update a DRAFT claim.

        Status is never changed here; a manual total override is allowed and
        surfaces as an AMOUNT_MISMATCH warning on the next validation.
        """
        if parse_claim_id(claim_id) is None:
            return OperationResult.fail(ClaimNotFoundError(claim_id))

        changes = update_data.changes()
        if "total_amount" in changes and changes["total_amount"] is None:
            return OperationResult.fail(InvalidInputError(
                "total_amount cannot be cleared",
                context={"field": "total_amount"},
            ))
        if "total_amount" in changes and changes["total_amount"] < 0:
            return OperationResult.fail(InvalidInputError(
                "total_amount must not be negative",
                context={"field": "total_amount", "value": str(changes["total_amount"])},
            ))
        for name in ("service_start_date", "service_end_date"):
            if name in changes and changes[name] is None:
                return OperationResult.fail(InvalidInputError(
                    f"{name} cannot be cleared",
                    context={"field": name},
                ))

        async with transaction(self.deps.session_maker) as session:
            claim = await self.store.lock(session, claim_id)
            if claim is None:
                return OperationResult.fail(ClaimNotFoundError(claim_id))

            if claim.claim_status != ClaimStatus.DRAFT:
                logger.warning(
                    f"Rejected update of claim {claim.claim_number} in {claim.claim_status.value}"
                )
                return OperationResult.fail(ClaimStateConflictError(claim.claim_status, "update"))

            start = changes.get("service_start_date", claim.service_start_date)
            end = changes.get("service_end_date", claim.service_end_date)
            if start > end:
                return OperationResult.fail(InvalidInputError(
                    "service_start_date must not be after service_end_date",
                    context={"service_start_date": start.isoformat(), "service_end_date": end.isoformat()},
                ))

            for name, value in changes.items():
                setattr(claim, name, value)
            if updated_by:
                claim.updated_by = updated_by

            await self.store.flush(session)

        logger.info(f"Updated claim {claim.claim_number}: {sorted(changes)}")
        return OperationResult.ok(claim)
