"""
Unit tests for the clearinghouse adapters and gateway.
"""

import pytest
from datetime import date
from decimal import Decimal
from unittest.mock import AsyncMock

import httpx

from claimflow.core.config import ClaimsSettings
from claimflow.core.enums import (
    ClaimStatus,
    ClaimType,
    DenialReason,
    IntegrationMode,
    ProviderStatus,
    SubmissionMethod,
)
from claimflow.core.errors import IntegrationError
from claimflow.services.clearinghouse import (
    AdapterHealth,
    ClaimSubmission,
    ClearinghouseGateway,
    DemoClearinghouseAdapter,
    HttpClearinghouseAdapter,
    StatusResponse,
    SubmissionLine,
    create_clearinghouse_gateway,
)


def make_submission(number: str = "CLM-20240110-00001") -> ClaimSubmission:
    return ClaimSubmission(
        claim_id="3f8a5c1e-0000-4000-8000-000000000001",
        claim_number=number,
        claim_type=ClaimType.ORIGINAL,
        client_id="client-1",
        payer_id="payer-1",
        payer_reference="SMCD1",
        total_amount=Decimal("150.00"),
        service_start_date=date(2024, 1, 2),
        service_end_date=date(2024, 1, 3),
        submission_method=SubmissionMethod.ELECTRONIC,
        submission_date=date(2024, 1, 10),
        lines=[
            SubmissionLine(
                line_number=1,
                service_code="T1019",
                service_date=date(2024, 1, 2),
                units=Decimal("4"),
                amount=Decimal("150.00"),
            )
        ],
    )


class TestDemoClearinghouseAdapter:
    """Tests for the in-memory payer simulation."""

    @pytest.mark.asyncio
    async def test_accepts_submission(self):
        adapter = DemoClearinghouseAdapter()

        response = await adapter.submit(make_submission())

        assert response.error is None
        assert response.external_id.startswith("EXT-")
        assert len(response.external_id) == 14
        assert adapter.submissions[response.external_id].payer_reference == "SMCD1"

    @pytest.mark.asyncio
    async def test_reports_submitted_until_status_set(self):
        adapter = DemoClearinghouseAdapter()
        external_id = (await adapter.submit(make_submission())).external_id

        assert (await adapter.fetch_status(external_id)).status == ClaimStatus.SUBMITTED

        adapter.set_status(
            external_id,
            StatusResponse(status=ClaimStatus.DENIED, denial_reason=DenialReason.TIMELY_FILING),
        )
        status = await adapter.fetch_status(external_id)
        assert status.status == ClaimStatus.DENIED
        assert status.denial_reason == DenialReason.TIMELY_FILING

    @pytest.mark.asyncio
    async def test_queued_failures_apply_once(self):
        adapter = DemoClearinghouseAdapter()
        adapter.fail_next_submit("Invalid subscriber ID")

        first = await adapter.submit(make_submission())
        second = await adapter.submit(make_submission())

        assert first.error == "Invalid subscriber ID"
        assert first.external_id is None
        assert second.error is None

    @pytest.mark.asyncio
    async def test_unknown_external_id(self):
        adapter = DemoClearinghouseAdapter()
        with pytest.raises(KeyError):
            await adapter.fetch_status("EXT-MISSING")

    @pytest.mark.asyncio
    async def test_clear_all(self):
        adapter = DemoClearinghouseAdapter()
        await adapter.submit(make_submission())
        adapter.fail_next_status()

        adapter.clear_all()

        assert adapter.submissions == {}
        assert adapter._status_failures == []


class TestClearinghouseGateway:
    """Tests for timeout-bounded gateway calls."""

    @pytest.mark.asyncio
    async def test_success_records_health(self):
        gateway = ClearinghouseGateway(DemoClearinghouseAdapter(), timeout_seconds=1.0)

        await gateway.submit(make_submission())

        assert gateway.health.request_count == 1
        assert gateway.health.error_count == 0
        assert gateway.health.status == ProviderStatus.HEALTHY

    @pytest.mark.asyncio
    async def test_error_response_becomes_integration_error(self):
        adapter = DemoClearinghouseAdapter()
        adapter.fail_next_submit("Payer offline")
        gateway = ClearinghouseGateway(adapter, timeout_seconds=1.0)

        with pytest.raises(IntegrationError) as exc_info:
            await gateway.submit(make_submission())

        assert "Payer offline" in exc_info.value.message
        assert exc_info.value.adapter == "demo"
        assert exc_info.value.context["claim_number"] == "CLM-20240110-00001"

    @pytest.mark.asyncio
    async def test_timeout(self):
        gateway = ClearinghouseGateway(DemoClearinghouseAdapter(latency_seconds=0.2), timeout_seconds=0.05)

        with pytest.raises(IntegrationError) as exc_info:
            await gateway.fetch_status("EXT-ANY")

        assert "timed out" in exc_info.value.message
        assert gateway.health.last_error == exc_info.value.message

    @pytest.mark.asyncio
    async def test_adapter_exception_is_wrapped(self):
        adapter = AsyncMock()
        adapter.name = "mock"
        adapter.fetch_status.side_effect = ConnectionError("connection reset")
        gateway = ClearinghouseGateway(adapter, timeout_seconds=1.0)

        with pytest.raises(IntegrationError) as exc_info:
            await gateway.fetch_status("EXT-1")

        assert isinstance(exc_info.value.original_error, ConnectionError)
        assert exc_info.value.status_code == 502

    @pytest.mark.asyncio
    async def test_health_degrades_with_consecutive_failures(self):
        adapter = DemoClearinghouseAdapter()
        gateway = ClearinghouseGateway(adapter, timeout_seconds=1.0)

        for _ in range(2):
            adapter.fail_next_status()
            with pytest.raises(IntegrationError):
                await gateway.fetch_status("EXT-1")
        assert gateway.health.status == ProviderStatus.DEGRADED

        for _ in range(3):
            adapter.fail_next_status()
            with pytest.raises(IntegrationError):
                await gateway.fetch_status("EXT-1")
        assert gateway.health.status == ProviderStatus.UNHEALTHY

        await gateway.submit(make_submission())
        assert gateway.health.status == ProviderStatus.HEALTHY
        assert gateway.health.consecutive_failures == 0


class TestAdapterHealth:
    def test_latency_moving_average(self):
        health = AdapterHealth()
        health.record_success(100.0)
        health.record_success(200.0)

        assert health.avg_latency_ms == pytest.approx(110.0)


class TestHttpClearinghouseAdapter:
    """Tests for the live adapter against a mock transport."""

    @staticmethod
    def _adapter(handler) -> HttpClearinghouseAdapter:
        adapter = HttpClearinghouseAdapter("https://clearinghouse.test/")
        adapter._http_client = httpx.AsyncClient(
            transport=httpx.MockTransport(handler),
            base_url="https://clearinghouse.test",
        )
        return adapter

    @pytest.mark.asyncio
    async def test_submit(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/claims"
            return httpx.Response(201, json={"external_id": "CH-778"})

        adapter = self._adapter(handler)
        response = await adapter.submit(make_submission())
        await adapter.close()

        assert response.external_id == "CH-778"

    @pytest.mark.asyncio
    async def test_client_error_is_an_error_response(self):
        adapter = self._adapter(lambda request: httpx.Response(400, text="missing NPI"))

        response = await adapter.submit(make_submission())
        await adapter.close()

        assert response.external_id is None
        assert "missing NPI" in response.error

    @pytest.mark.asyncio
    async def test_server_error_raises(self):
        adapter = self._adapter(lambda request: httpx.Response(503))

        with pytest.raises(httpx.HTTPStatusError):
            await adapter.submit(make_submission())
        await adapter.close()

    @pytest.mark.asyncio
    async def test_fetch_status(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/claims/CH-778/status"
            return httpx.Response(200, json={"status": "PAID", "adjudication_date": "2024-01-20"})

        adapter = self._adapter(handler)
        status = await adapter.fetch_status("CH-778")
        await adapter.close()

        assert status.status == ClaimStatus.PAID
        assert status.adjudication_date == date(2024, 1, 20)


class TestCreateClearinghouseGateway:
    def test_demo_mode(self):
        gateway = create_clearinghouse_gateway(ClaimsSettings(INTEGRATION_MODE=IntegrationMode.DEMO))
        assert isinstance(gateway.adapter, DemoClearinghouseAdapter)

    def test_live_mode_requires_base_url(self):
        settings = ClaimsSettings(INTEGRATION_MODE=IntegrationMode.LIVE, CLEARINGHOUSE_BASE_URL=None)
        with pytest.raises(ValueError):
            create_clearinghouse_gateway(settings)

    def test_explicit_adapter(self):
        adapter = DemoClearinghouseAdapter()
        gateway = create_clearinghouse_gateway(ClaimsSettings(CLEARINGHOUSE_TIMEOUT_SECONDS=5), adapter=adapter)

        assert gateway.adapter is adapter
        assert gateway.timeout_seconds == 5
