"""
Prior Authorization Lookup.

Provides:
- AuthorizationService protocol consumed by the claim validator
- DatabaseAuthorizationService reading the authorizations table

Authorizations are owned by the intake side of the platform; the lifecycle
engine only asks whether an active one covers a claim's service period.
"""

import logging
from datetime import date
from typing import Optional, Protocol
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from claimflow.core.enums import AuthorizationStatus, RecordStatus
from claimflow.models.reference import Authorization

logger = logging.getLogger(__name__)


class AuthorizationService(Protocol):
    """Contract for prior-authorization lookups."""

    async def check(
        self,
        session: AsyncSession,
        client_id: UUID,
        payer_id: UUID,
        service_code: str,
        start: date,
        end: date,
    ) -> AuthorizationStatus:
        ...

    async def is_authorized(
        self,
        session: AsyncSession,
        client_id: UUID,
        payer_id: UUID,
        service_code: str,
        start: date,
        end: date,
    ) -> bool:
        ...


class DatabaseAuthorizationService:
    """Authorization lookups against the shared authorizations table."""

    async def check(
        self,
        session: AsyncSession,
        client_id: UUID,
        payer_id: UUID,
        service_code: str,
        start: date,
        end: date,
    ) -> AuthorizationStatus:
        """
        Classify the authorizations on file for a service.

        Returns:
            AUTHORIZED when an active authorization covers start..end,
            INVALID when authorizations exist but none is active and covering,
            MISSING when none exist for the client/payer/code.
        """
        result = await session.execute(
            select(Authorization).where(
                Authorization.client_id == client_id,
                Authorization.payer_id == payer_id,
                or_(
                    Authorization.service_code == service_code,
                    Authorization.service_code.is_(None),
                ),
            )
        )
        authorizations = list(result.scalars().all())
        if not authorizations:
            return AuthorizationStatus.MISSING

        for authorization in authorizations:
            if authorization.status == RecordStatus.ACTIVE and authorization.covers(start, end):
                return AuthorizationStatus.AUTHORIZED

        logger.debug(
            f"No covering authorization for client {client_id}, code {service_code} "
            f"({start} - {end}); {len(authorizations)} on file"
        )
        return AuthorizationStatus.INVALID

    async def is_authorized(
        self,
        session: AsyncSession,
        client_id: UUID,
        payer_id: UUID,
        service_code: str,
        start: date,
        end: date,
    ) -> bool:
        status = await self.check(session, client_id, payer_id, service_code, start, end)
        return status == AuthorizationStatus.AUTHORIZED


# =============================================================================
# Factory Functions
# =============================================================================


_authorization_service: Optional[DatabaseAuthorizationService] = None


def get_authorization_service() -> DatabaseAuthorizationService:
    """Get authorization service instance."""
    global _authorization_service
    if _authorization_service is None:
        _authorization_service = DatabaseAuthorizationService()
    return _authorization_service
