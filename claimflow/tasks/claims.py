"""
Claim Background Tasks
Batch submission and clearinghouse status refresh run off the request path
Source: https://docs.celeryq.dev/en/stable/userguide/tasks.html
Verified: 2026-10-19
"""

import asyncio
from collections.abc import Awaitable, Callable
from datetime import date
from typing import Any, Optional

from claimflow.core.config import get_claims_settings
from claimflow.core.enums import SubmissionMethod
from claimflow.core.results import BatchLimits, BatchResult
from claimflow.db.connection import close_db_connection
from claimflow.services.dependencies import ClaimEngine, close_claim_engine, get_claim_engine
from claimflow.utils.celery_app import celery_app
from claimflow.utils.logging import get_logger

logger = get_logger(__name__)


def _run(operation: Callable[[ClaimEngine], Awaitable[BatchResult]]) -> BatchResult:
    """
    Run one engine operation on a fresh event loop.

    Pooled connections and the HTTP client are bound to the loop that
    opened them, so both are released before the loop closes.
    """

    async def runner() -> BatchResult:
        engine = get_claim_engine()
        try:
            return await operation(engine)
        finally:
            await close_claim_engine()
            await close_db_connection()

    return asyncio.run(runner())


def _limits(engine: ClaimEngine, max_items: Optional[int], max_seconds: Optional[float]) -> Optional[BatchLimits]:
    if max_items is None and max_seconds is None:
        return None
    cap = engine.deps.settings.BATCH_MAX_ITEMS
    return BatchLimits(max_items=min(max_items or cap, cap), max_seconds=max_seconds)


@celery_app.task(name="claims.batch_refresh_status")
def batch_refresh_status_task(
    claim_ids: list[str],
    max_items: Optional[int] = None,
    max_seconds: Optional[float] = None,
) -> dict[str, Any]:
    """
    Refresh the payer status of the given claims.

    Args:
        claim_ids: Claim UUIDs as strings
        max_items: Upper bound on claims processed by this run
        max_seconds: Upper bound on elapsed time for this run

    Returns:
        BatchResult as a dictionary; unprocessed IDs are in skipped_claims
    """
    logger.info(f"Batch status refresh started: {len(claim_ids)} claims")
    result = _run(
        lambda engine: engine.submission.batch_refresh_status(
            claim_ids, limits=_limits(engine, max_items, max_seconds)
        )
    )
    logger.info(
        f"Batch status refresh completed: {result.success_count} ok, "
        f"{result.error_count} failed, {result.updated_count} updated"
    )
    return result.to_dict()


@celery_app.task(name="claims.refresh_open_claims")
def refresh_open_claims_task() -> dict[str, Any]:
    """Periodic refresh of every claim still awaiting a payer outcome."""
    if not get_claims_settings().AUTO_REFRESH_ENABLED:
        logger.info("Automatic status refresh disabled, skipping")
        return {"skipped": True}

    result = _run(lambda engine: engine.submission.refresh_open_claims())
    logger.info(
        f"Open claim refresh: {result.total_processed} processed, "
        f"{result.updated_count} updated, {len(result.skipped_claims)} deferred"
    )
    return result.to_dict()


@celery_app.task(name="claims.batch_submit")
def batch_submit_task(
    claim_ids: list[str],
    submission_method: str,
    submission_date: Optional[str] = None,
    validate: bool = True,
    user_id: Optional[str] = None,
) -> dict[str, Any]:
    """
    Submit claims in the background.

    Args:
        claim_ids: Claim UUIDs as strings
        submission_method: SubmissionMethod value
        submission_date: ISO date; defaults to today
        validate: Validate DRAFT claims before submitting
        user_id: Recorded on the history rows
    """
    method = SubmissionMethod(submission_method)
    filed_on = date.fromisoformat(submission_date) if submission_date else None

    logger.info(f"Batch submit started: {len(claim_ids)} claims via {method.value}")
    if validate:
        result = _run(
            lambda engine: engine.submission.batch_validate_and_submit(
                claim_ids, method, filed_on, user_id=user_id
            )
        )
    else:
        result = _run(
            lambda engine: engine.submission.batch_submit(claim_ids, method, filed_on, user_id=user_id)
        )
    logger.info(f"Batch submit completed: {result.success_count} ok, {result.error_count} failed")
    return result.to_dict()
