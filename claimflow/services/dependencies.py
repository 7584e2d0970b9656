"""
Claim Engine Wiring.

Provides:
- ClaimEngineDeps: explicit collaborators shared by the lifecycle services
- ClaimEngine: the assembled service set
- build_claim_engine / get_claim_engine factories and close_claim_engine
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import TYPE_CHECKING, Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from claimflow.core.config import ClaimsSettings, get_claims_settings
from claimflow.services.authorization import AuthorizationService
from claimflow.services.claim_store import ClaimStore
from claimflow.services.clearinghouse import ClearinghouseGateway
from claimflow.services.notifications import LoggingNotifier, Notifier

if TYPE_CHECKING:
    from claimflow.services.claim_aging import ClaimAgingService
    from claimflow.services.claim_lifecycle import ClaimLifecycleService
    from claimflow.services.claim_submission import ClaimSubmissionService
    from claimflow.services.claim_tracking import ClaimTrackingService
    from claimflow.services.claim_validation import ClaimValidationService
    from claimflow.services.claims_service import ClaimsService

logger = logging.getLogger(__name__)


@dataclass
class ClaimEngineDeps:
    """Collaborators handed to every lifecycle service."""

    session_maker: async_sessionmaker[AsyncSession]
    gateway: ClearinghouseGateway
    authorization: AuthorizationService
    notifier: Notifier = field(default_factory=LoggingNotifier)
    settings: ClaimsSettings = field(default_factory=get_claims_settings)
    clock: Callable[[], date] = date.today
    store: ClaimStore = field(default_factory=ClaimStore)


@dataclass
class ClaimEngine:
    """Assembled lifecycle services sharing one set of dependencies."""

    deps: ClaimEngineDeps
    claims: "ClaimsService"
    validation: "ClaimValidationService"
    submission: "ClaimSubmissionService"
    lifecycle: "ClaimLifecycleService"
    tracking: "ClaimTrackingService"
    aging: "ClaimAgingService"


def build_claim_engine(deps: ClaimEngineDeps) -> ClaimEngine:
    """Wire the lifecycle services around one dependency set."""
    from claimflow.services.claim_aging import ClaimAgingService
    from claimflow.services.claim_lifecycle import ClaimLifecycleService
    from claimflow.services.claim_submission import ClaimSubmissionService
    from claimflow.services.claim_tracking import ClaimTrackingService
    from claimflow.services.claim_validation import ClaimValidationService, ValidationConfig
    from claimflow.services.claims_service import ClaimsService

    validation = ClaimValidationService(
        authorization=deps.authorization,
        config=ValidationConfig.from_settings(deps.settings),
        clock=deps.clock,
    )
    claims = ClaimsService(deps)
    aging = ClaimAgingService(deps)

    return ClaimEngine(
        deps=deps,
        claims=claims,
        validation=validation,
        submission=ClaimSubmissionService(deps, validation),
        lifecycle=ClaimLifecycleService(deps, claims),
        tracking=ClaimTrackingService(deps, aging),
        aging=aging,
    )


# =============================================================================
# Singleton Instance
# =============================================================================


_engine: Optional[ClaimEngine] = None


def get_claim_engine() -> ClaimEngine:
    """Get the process-wide engine built from application settings."""
    global _engine
    if _engine is None:
        from claimflow.db.connection import get_session_maker
        from claimflow.services.authorization import get_authorization_service
        from claimflow.services.clearinghouse import create_clearinghouse_gateway

        settings = get_claims_settings()
        _engine = build_claim_engine(ClaimEngineDeps(
            session_maker=get_session_maker(),
            gateway=create_clearinghouse_gateway(settings),
            authorization=get_authorization_service(),
            settings=settings,
        ))
        logger.info(f"Claim engine initialized in {settings.INTEGRATION_MODE.value} mode")
    return _engine


async def close_claim_engine() -> None:
    """Release the cached engine's clearinghouse client, then drop the engine."""
    global _engine
    engine, _engine = _engine, None
    if engine is not None:
        await engine.deps.gateway.close()
        logger.info("Claim engine closed")
