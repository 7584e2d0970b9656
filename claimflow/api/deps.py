"""
FastAPI Dependencies
Dependency injection for the claim engine and caller identity
Source: https://fastapi.tiangolo.com/tutorial/dependencies/
Verified: 2026-10-19
"""

from typing import Optional

from fastapi import Header

from claimflow.services.dependencies import ClaimEngine, get_claim_engine


def get_claims_engine() -> ClaimEngine:
    """
    Get the claim engine for a request.

    Tests replace this through app.dependency_overrides.
    """
    return get_claim_engine()


async def get_current_user_id(
    x_user_id: Optional[str] = Header(default=None, max_length=100),
) -> Optional[str]:
    """
    Identity of the caller, recorded on history rows.

    Authentication happens upstream; the gateway forwards the user ID.
    Missing header means a system-initiated call.
    """
    return x_user_id or None
