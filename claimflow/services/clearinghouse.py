"""
Clearinghouse Adapter Layer.

Provides:
- ClearinghouseAdapter protocol (submit / fetch_status)
- DemoClearinghouseAdapter: in-memory payer simulation for demo mode and tests
- HttpClearinghouseAdapter: JSON-over-HTTP adapter for live mode
- ClearinghouseGateway: timeout-bounded calls with health tracking

Every adapter failure, timeout or protocol-level rejection surfaces from the
gateway as IntegrationError; claim state is never touched here.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional, Protocol
from uuid import uuid4

import httpx
from pydantic import BaseModel, Field

from claimflow.core.config import ClaimsSettings, get_claims_settings
from claimflow.core.enums import (
    ClaimStatus,
    ClaimType,
    DenialReason,
    IntegrationMode,
    ProviderStatus,
    SubmissionMethod,
)
from claimflow.core.errors import IntegrationError

logger = logging.getLogger(__name__)


# =============================================================================
# Wire Models
# =============================================================================


class SubmissionLine(BaseModel):
    """Service line as transmitted to the payer."""

    line_number: int
    service_code: str
    service_date: date
    units: Decimal
    amount: Decimal


class ClaimSubmission(BaseModel):
    """Claim payload handed to the clearinghouse."""

    claim_id: str
    claim_number: str
    claim_type: ClaimType
    client_id: str
    payer_id: str
    payer_reference: Optional[str] = None
    original_external_id: Optional[str] = None
    total_amount: Decimal
    service_start_date: date
    service_end_date: date
    submission_method: SubmissionMethod
    submission_date: date
    lines: list[SubmissionLine] = Field(default_factory=list)


class SubmissionResponse(BaseModel):
    """Clearinghouse answer to a submission."""

    external_id: Optional[str] = None
    error: Optional[str] = None


class StatusResponse(BaseModel):
    """Latest payer-side status of a submitted claim."""

    status: ClaimStatus
    adjudication_date: Optional[date] = None
    denial_reason: Optional[DenialReason] = None
    denial_details: Optional[str] = None
    adjustment_codes: Optional[dict[str, str]] = None


class ClearinghouseAdapter(Protocol):
    """Contract for payer / clearinghouse integrations."""

    name: str

    async def submit(self, claim: ClaimSubmission) -> SubmissionResponse:
        ...

    async def fetch_status(self, external_id: str) -> StatusResponse:
        ...


# =============================================================================
# Demo Adapter
# =============================================================================


class DemoClearinghouseAdapter:
    """
    In-memory clearinghouse simulation.

    Accepts every submission unless a failure has been queued, and reports
    SUBMITTED until a payer status is set for the external ID.
    """

    name = "demo"

    def __init__(self, latency_seconds: float = 0.0):
        self.latency_seconds = latency_seconds
        self.submissions: dict[str, ClaimSubmission] = {}
        self._statuses: dict[str, StatusResponse] = {}
        self._submit_failures: list[str] = []
        self._status_failures: list[str] = []

    async def submit(self, claim: ClaimSubmission) -> SubmissionResponse:
        if self.latency_seconds:
            await asyncio.sleep(self.latency_seconds)
        if self._submit_failures:
            return SubmissionResponse(error=self._submit_failures.pop(0))

        external_id = f"EXT-{uuid4().hex[:10].upper()}"
        self.submissions[external_id] = claim
        self._statuses[external_id] = StatusResponse(status=ClaimStatus.SUBMITTED)
        logger.debug(f"Demo clearinghouse accepted {claim.claim_number} as {external_id}")
        return SubmissionResponse(external_id=external_id)

    async def fetch_status(self, external_id: str) -> StatusResponse:
        if self.latency_seconds:
            await asyncio.sleep(self.latency_seconds)
        if self._status_failures:
            raise RuntimeError(self._status_failures.pop(0))
        if external_id not in self._statuses:
            raise KeyError(f"Unknown external claim ID: {external_id}")
        return self._statuses[external_id]

    # Test / demo controls

    def set_status(self, external_id: str, response: StatusResponse) -> None:
        self._statuses[external_id] = response

    def fail_next_submit(self, message: str = "Payer rejected submission") -> None:
        self._submit_failures.append(message)

    def fail_next_status(self, message: str = "Clearinghouse unavailable") -> None:
        self._status_failures.append(message)

    def clear_all(self) -> None:
        self.submissions.clear()
        self._statuses.clear()
        self._submit_failures.clear()
        self._status_failures.clear()


# =============================================================================
# Live Adapter
# =============================================================================


class HttpClearinghouseAdapter:
    """JSON-over-HTTP clearinghouse integration."""

    name = "http"

    def __init__(self, base_url: str, timeout_seconds: float = 30.0):
        self._base_url = base_url.rstrip("/")
        self._http_client = httpx.AsyncClient(base_url=self._base_url, timeout=timeout_seconds)

    async def submit(self, claim: ClaimSubmission) -> SubmissionResponse:
        response = await self._http_client.post("/claims", json=claim.model_dump(mode="json"))
        if response.status_code >= 500:
            response.raise_for_status()
        if response.status_code >= 400:
            return SubmissionResponse(error=f"Clearinghouse rejected claim ({response.status_code}): {response.text}")
        return SubmissionResponse.model_validate(response.json())

    async def fetch_status(self, external_id: str) -> StatusResponse:
        response = await self._http_client.get(f"/claims/{external_id}/status")
        response.raise_for_status()
        return StatusResponse.model_validate(response.json())

    async def close(self) -> None:
        await self._http_client.aclose()


# =============================================================================
# Gateway
# =============================================================================


@dataclass
class AdapterHealth:
    """Health status for the clearinghouse adapter."""

    status: ProviderStatus = ProviderStatus.HEALTHY
    consecutive_failures: int = 0
    request_count: int = 0
    error_count: int = 0
    last_error: Optional[str] = None
    last_check: Optional[datetime] = None
    avg_latency_ms: float = 0.0

    def record_success(self, latency_ms: float) -> None:
        self.consecutive_failures = 0
        self.request_count += 1
        self.last_check = datetime.now(timezone.utc)
        if self.request_count == 1:
            self.avg_latency_ms = latency_ms
        else:
            self.avg_latency_ms = self.avg_latency_ms * 0.9 + latency_ms * 0.1
        self.status = ProviderStatus.HEALTHY

    def record_failure(self, error: str) -> None:
        self.consecutive_failures += 1
        self.error_count += 1
        self.request_count += 1
        self.last_error = error
        self.last_check = datetime.now(timezone.utc)
        if self.consecutive_failures >= 5:
            self.status = ProviderStatus.UNHEALTHY
        elif self.consecutive_failures >= 2:
            self.status = ProviderStatus.DEGRADED


class ClearinghouseGateway:
    """
    Bounded access to a clearinghouse adapter.

    Each call runs under asyncio.wait_for; a timeout, adapter exception or
    error response becomes IntegrationError and is logged.
    """

    def __init__(self, adapter: ClearinghouseAdapter, timeout_seconds: float = 30.0):
        self.adapter = adapter
        self.timeout_seconds = timeout_seconds
        self.health = AdapterHealth()

    def _fail(self, message: str, original: Optional[Exception] = None, **context) -> IntegrationError:
        self.health.record_failure(message)
        logger.error(f"Clearinghouse [{self.adapter.name}] {message}")
        return IntegrationError(message, adapter=self.adapter.name, original_error=original, context=context)

    async def submit(self, claim: ClaimSubmission) -> SubmissionResponse:
        """Transmit a claim; returns a response carrying the external ID."""
        start = time.perf_counter()
        try:
            response = await asyncio.wait_for(self.adapter.submit(claim), timeout=self.timeout_seconds)
        except asyncio.TimeoutError as e:
            raise self._fail(
                f"Submission of {claim.claim_number} timed out after {self.timeout_seconds}s",
                e,
                claim_number=claim.claim_number,
            )
        except Exception as e:
            raise self._fail(
                f"Submission of {claim.claim_number} failed: {e}",
                e,
                claim_number=claim.claim_number,
            )

        if response.error:
            raise self._fail(
                f"Submission of {claim.claim_number} rejected: {response.error}",
                claim_number=claim.claim_number,
            )

        self.health.record_success((time.perf_counter() - start) * 1000)
        return response

    async def fetch_status(self, external_id: str) -> StatusResponse:
        """Query the payer-side status for an external claim ID."""
        start = time.perf_counter()
        try:
            response = await asyncio.wait_for(
                self.adapter.fetch_status(external_id),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            raise self._fail(
                f"Status query for {external_id} timed out after {self.timeout_seconds}s",
                e,
                external_id=external_id,
            )
        except Exception as e:
            raise self._fail(f"Status query for {external_id} failed: {e}", e, external_id=external_id)

        self.health.record_success((time.perf_counter() - start) * 1000)
        return response

    async def close(self) -> None:
        """Release adapter resources (HTTP connections)."""
        close = getattr(self.adapter, "close", None)
        if close is not None:
            await close()


# =============================================================================
# Factory Functions
# =============================================================================


def create_clearinghouse_gateway(
    settings: Optional[ClaimsSettings] = None,
    adapter: Optional[ClearinghouseAdapter] = None,
) -> ClearinghouseGateway:
    """Create a gateway for the configured integration mode."""
    settings = settings or get_claims_settings()
    if adapter is None:
        if settings.INTEGRATION_MODE == IntegrationMode.LIVE:
            if not settings.CLEARINGHOUSE_BASE_URL:
                raise ValueError("CLAIMS_CLEARINGHOUSE_BASE_URL is required in live mode")
            adapter = HttpClearinghouseAdapter(
                settings.CLEARINGHOUSE_BASE_URL,
                timeout_seconds=settings.CLEARINGHOUSE_TIMEOUT_SECONDS,
            )
        else:
            adapter = DemoClearinghouseAdapter()
    return ClearinghouseGateway(adapter, timeout_seconds=settings.CLEARINGHOUSE_TIMEOUT_SECONDS)
