"""
Claims Routes Tests.
End-to-end coverage of the claims API over the in-memory engine.
"""

from datetime import date, timedelta
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest
from fastapi import status

from claimflow.api.main import app, lifespan
from claimflow.core.enums import ClaimStatus
from claimflow.models.reference import Client
from claimflow.services import dependencies

BASE = "/api/v1/claims"
USER = {"X-User-Id": "biller-7"}


async def create_claim(client, seed, *service_dates: date, amount: str = "100.00") -> dict:
    services = [await seed.service(day, amount=amount) for day in service_dates]
    response = await client.post(
        BASE,
        json={
            "client_id": str(seed.client.id),
            "payer_id": str(seed.payer.id),
            "service_ids": [str(s.id) for s in services],
        },
        headers=USER,
    )
    assert response.status_code == status.HTTP_201_CREATED, response.text
    return response.json()


async def submit(client, claim_id: str, submission_date: str = "2024-01-10") -> dict:
    response = await client.post(
        f"{BASE}/{claim_id}/validate-and-submit",
        json={"submission_method": "ELECTRONIC", "submission_date": submission_date},
        headers=USER,
    )
    assert response.status_code == status.HTTP_200_OK, response.text
    return response.json()


@pytest.mark.api
class TestClaimRecords:
    """Create, read, update and list."""

    @pytest.mark.asyncio
    async def test_create_claim(self, client, seed):
        body = await create_claim(client, seed, date(2024, 1, 2), date(2024, 1, 3))

        assert body["claim_status"] == "DRAFT"
        assert body["claim_number"] == "CLM-20240110-00001"
        assert float(body["total_amount"]) == 200.0
        assert len(body["service_lines"]) == 2
        assert body["created_by"] == "biller-7"

    @pytest.mark.asyncio
    async def test_create_requires_services(self, client, seed):
        response = await client.post(
            BASE,
            json={"client_id": str(seed.client.id), "payer_id": str(seed.payer.id), "service_ids": []},
        )
        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    @pytest.mark.asyncio
    async def test_get_unknown_claim(self, client):
        response = await client.get(f"{BASE}/00000000-0000-0000-0000-000000000000")

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json()["detail"]["error"] == "not_found"

    @pytest.mark.asyncio
    async def test_malformed_claim_id_is_not_found(self, client):
        response = await client.get(f"{BASE}/not-a-claim/status")
        assert response.status_code == status.HTTP_404_NOT_FOUND

    @pytest.mark.asyncio
    async def test_update_draft(self, client, seed):
        claim = await create_claim(client, seed, date(2024, 1, 2))

        response = await client.patch(f"{BASE}/{claim['id']}", json={"notes": "Checked by supervisor"})

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["notes"] == "Checked by supervisor"
        assert float(response.json()["total_amount"]) == 100.0

    @pytest.mark.asyncio
    async def test_update_submitted_claim_conflicts(self, client, seed):
        claim = await create_claim(client, seed, date(2024, 1, 2))
        await submit(client, claim["id"])

        response = await client.patch(f"{BASE}/{claim['id']}", json={"notes": "late"})

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.json()["detail"]["context"]["current_status"] == "SUBMITTED"

    @pytest.mark.asyncio
    async def test_update_rejects_negative_total(self, client, seed):
        claim = await create_claim(client, seed, date(2024, 1, 2))

        response = await client.patch(f"{BASE}/{claim['id']}", json={"total_amount": "-50.00"})

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
        assert float((await client.get(f"{BASE}/{claim['id']}")).json()["total_amount"]) == 100.0

    @pytest.mark.asyncio
    async def test_correction_of_another_clients_claim_is_400(self, client, seed):
        original = await create_claim(client, seed, date(2024, 1, 2))
        other = await seed.add(Client(first_name="Grace", last_name="Hopper", medicaid_id="MCD-0002"))
        service = await seed.service(date(2024, 1, 3), client_id=other.id)

        response = await client.post(
            BASE,
            json={
                "client_id": str(other.id),
                "payer_id": str(seed.payer.id),
                "service_ids": [str(service.id)],
                "claim_type": "ADJUSTMENT",
                "original_claim_id": original["id"],
            },
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["detail"]["error"] == "invalid_input"

    @pytest.mark.asyncio
    async def test_correction_of_unknown_claim_is_404(self, client, seed):
        service = await seed.service(date(2024, 1, 2))

        response = await client.post(
            BASE,
            json={
                "client_id": str(seed.client.id),
                "payer_id": str(seed.payer.id),
                "service_ids": [str(service.id)],
                "claim_type": "REPLACEMENT",
                "original_claim_id": "00000000-0000-0000-0000-000000000000",
            },
        )

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json()["detail"]["context"]["entity"] == "Claim"

    @pytest.mark.asyncio
    async def test_list_with_status_filter(self, client, seed):
        await create_claim(client, seed, date(2024, 1, 2))
        submitted = await create_claim(client, seed, date(2024, 1, 3))
        await submit(client, submitted["id"])

        response = await client.get(BASE, params={"status": "SUBMITTED", "size": 10})
        body = response.json()

        assert body["total"] == 1
        assert body["pages"] == 1
        assert body["items"][0]["id"] == submitted["id"]


@pytest.mark.api
class TestValidationAndSubmission:
    @pytest.mark.asyncio
    async def test_validate_without_advance(self, client, seed):
        claim = await create_claim(client, seed, date(2024, 1, 2))

        response = await client.post(f"{BASE}/{claim['id']}/validate")

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["is_valid"] is True
        assert (await client.get(f"{BASE}/{claim['id']}")).json()["claim_status"] == "DRAFT"

    @pytest.mark.asyncio
    async def test_failed_advance_is_422(self, client, seed):
        claim = await create_claim(client, seed, date(2024, 1, 10) - timedelta(days=200))

        response = await client.post(f"{BASE}/{claim['id']}/validate", params={"advance": "true"})

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
        detail = response.json()["detail"]
        assert detail["error"] == "validation"
        assert [e["code"] for e in detail["context"]["errors"]] == ["TIMELY_FILING"]

    @pytest.mark.asyncio
    async def test_validate_and_submit(self, client, seed):
        claim = await create_claim(client, seed, date(2024, 1, 2), date(2024, 1, 3))

        body = await submit(client, claim["id"])

        assert body["claim_status"] == "SUBMITTED"
        assert body["submission_method"] == "ELECTRONIC"
        assert body["external_claim_id"].startswith("EXT-")

        timeline = (await client.get(f"{BASE}/{claim['id']}/timeline")).json()
        assert [entry["status"] for entry in timeline] == ["DRAFT", "VALIDATED", "SUBMITTED"]
        assert timeline[-1]["is_active"] is True
        assert timeline[-1]["user_id"] == "biller-7"

    @pytest.mark.asyncio
    async def test_submit_draft_conflicts(self, client, seed):
        claim = await create_claim(client, seed, date(2024, 1, 2))

        response = await client.post(
            f"{BASE}/{claim['id']}/submit",
            json={"submission_method": "ELECTRONIC"},
        )
        assert response.status_code == status.HTTP_409_CONFLICT

    @pytest.mark.asyncio
    async def test_clearinghouse_failure_is_502(self, client, seed, clearinghouse):
        claim = await create_claim(client, seed, date(2024, 1, 2))
        clearinghouse.fail_next_submit()

        response = await client.post(
            f"{BASE}/{claim['id']}/validate-and-submit",
            json={"submission_method": "ELECTRONIC"},
        )

        assert response.status_code == status.HTTP_502_BAD_GATEWAY
        assert response.json()["detail"]["error"] == "integration"
        assert (await client.get(f"{BASE}/{claim['id']}")).json()["claim_status"] == "VALIDATED"

    @pytest.mark.asyncio
    async def test_refresh_status(self, client, seed, payer_reports, engine):
        claim = await create_claim(client, seed, date(2024, 1, 2))
        await submit(client, claim["id"])
        stored = (await engine.claims.get_claim(claim["id"])).unwrap()
        payer_reports(stored, ClaimStatus.PAID, adjudication_date=date(2024, 1, 20))

        response = await client.post(f"{BASE}/{claim['id']}/refresh-status")
        body = response.json()

        assert body["updated"] is True
        assert body["previous_status"] == "SUBMITTED"
        assert body["current_status"] == "PAID"
        assert body["claim"]["adjudication_date"] == "2024-01-20"


@pytest.mark.api
class TestLifecycleActions:
    @pytest.mark.asyncio
    async def test_deny_appeal_and_pay(self, client, seed):
        claim = await create_claim(client, seed, date(2024, 1, 2))
        await submit(client, claim["id"])

        denied = await client.post(
            f"{BASE}/{claim['id']}/adjudication",
            json={
                "status": "DENIED",
                "adjudication_date": "2024-01-25",
                "denial_reason": "MISSING_INFORMATION",
            },
        )
        assert denied.json()["claim_status"] == "DENIED"

        appealed = await client.post(
            f"{BASE}/{claim['id']}/appeal",
            json={"appeal_reason": "Attending NPI added", "supporting_documents": ["npi.pdf"]},
        )
        assert appealed.json()["claim_status"] == "APPEALED"
        assert appealed.json()["appeal_documents"] == ["npi.pdf"]

        paid = await client.post(
            f"{BASE}/{claim['id']}/adjudication",
            json={"status": "PAID", "adjudication_date": "2024-02-20"},
        )
        assert paid.json()["claim_status"] == "PAID"

    @pytest.mark.asyncio
    async def test_adjudication_rejects_non_outcome(self, client, seed):
        claim = await create_claim(client, seed, date(2024, 1, 2))
        response = await client.post(
            f"{BASE}/{claim['id']}/adjudication",
            json={"status": "VOID", "adjudication_date": "2024-01-25"},
        )
        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    @pytest.mark.asyncio
    async def test_void_final_denied_claim_conflicts(self, client, seed):
        claim = await create_claim(client, seed, date(2024, 1, 2))
        await submit(client, claim["id"])
        await client.post(
            f"{BASE}/{claim['id']}/adjudication",
            json={"status": "DENIED", "adjudication_date": "2024-01-25", "denial_reason": "OTHER"},
        )
        await client.post(f"{BASE}/{claim['id']}/final-deny", json={"notes": "Accepted"})

        response = await client.post(f"{BASE}/{claim['id']}/void", json={"notes": "cleanup"})

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.json()["detail"]["error"] == "state_conflict"

    @pytest.mark.asyncio
    async def test_void_requires_notes(self, client, seed):
        claim = await create_claim(client, seed, date(2024, 1, 2))
        response = await client.post(f"{BASE}/{claim['id']}/void", json={"notes": ""})
        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    @pytest.mark.asyncio
    async def test_resubmit_after_denial(self, client, seed):
        claim = await create_claim(client, seed, date(2024, 1, 2))
        await submit(client, claim["id"])
        await client.post(
            f"{BASE}/{claim['id']}/adjudication",
            json={"status": "DENIED", "adjudication_date": "2024-01-25", "denial_reason": "INVALID_CODING"},
        )

        response = await client.post(
            f"{BASE}/{claim['id']}/resubmit",
            json={"submission_method": "ELECTRONIC", "submission_date": "2024-01-26"},
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["claim_status"] == "SUBMITTED"
        assert response.json()["denial_reason"] is None

    @pytest.mark.asyncio
    async def test_adjustment_claim(self, client, seed):
        claim = await create_claim(client, seed, date(2024, 1, 2))
        await submit(client, claim["id"])
        await client.post(
            f"{BASE}/{claim['id']}/adjudication",
            json={"status": "DENIED", "adjudication_date": "2024-01-25", "denial_reason": "OTHER"},
        )

        response = await client.post(f"{BASE}/{claim['id']}/adjustments", json={"claim_type": "REPLACEMENT"})

        assert response.status_code == status.HTTP_201_CREATED
        body = response.json()
        assert body["claim_type"] == "REPLACEMENT"
        assert body["original_claim_id"] == claim["id"]
        assert body["claim_status"] == "DRAFT"


@pytest.mark.api
class TestBatchRoutes:
    @pytest.mark.asyncio
    async def test_batch_validate_and_submit(self, client, seed):
        claims = [await create_claim(client, seed, date(2024, 1, day)) for day in (2, 3, 4)]

        response = await client.post(
            f"{BASE}/batch/validate-and-submit",
            json={
                "claim_ids": [c["id"] for c in claims] + ["00000000-0000-0000-0000-000000000000"],
                "submission_method": "ELECTRONIC",
            },
            headers=USER,
        )
        body = response.json()

        assert response.status_code == status.HTTP_200_OK
        assert body["success_count"] == 3
        assert body["error_count"] == 1
        assert body["errors"][0]["kind"] == "not_found"

    @pytest.mark.asyncio
    async def test_batch_bound(self, client, seed):
        claims = [await create_claim(client, seed, date(2024, 1, day)) for day in (2, 3)]

        response = await client.post(
            f"{BASE}/batch/validate-and-submit",
            json={"claim_ids": [c["id"] for c in claims], "submission_method": "PAPER", "max_items": 1},
        )
        body = response.json()

        assert body["total_processed"] == 1
        assert body["skipped_claims"] == [claims[1]["id"]]

    @pytest.mark.asyncio
    async def test_batch_validate(self, client, seed):
        claim = await create_claim(client, seed, date(2024, 1, 2))

        response = await client.post(f"{BASE}/batch/validate", json={"claim_ids": [claim["id"]]})

        assert response.json()["is_valid"] is True
        assert claim["id"] in response.json()["results"]

    @pytest.mark.asyncio
    async def test_batch_validate_bound(self, client, seed):
        claims = [await create_claim(client, seed, date(2024, 1, day)) for day in (2, 3)]

        response = await client.post(
            f"{BASE}/batch/validate",
            json={"claim_ids": [c["id"] for c in claims], "max_items": 1},
        )
        body = response.json()

        assert list(body["results"]) == [claims[0]["id"]]
        assert body["skipped_claims"] == [claims[1]["id"]]
        assert body["errors"] == []

    @pytest.mark.asyncio
    async def test_batch_refresh(self, client, seed):
        claim = await create_claim(client, seed, date(2024, 1, 2))
        await submit(client, claim["id"])

        response = await client.post(f"{BASE}/batch/refresh-status", json={"claim_ids": [claim["id"]]})

        assert response.json()["success_count"] == 1
        assert response.json()["updated_count"] == 0


@pytest.mark.api
class TestReportRoutes:
    @pytest.mark.asyncio
    async def test_aging_report(self, client, seed):
        claim = await create_claim(client, seed, date(2023, 11, 20), amount="500.00")
        await submit(client, claim["id"], submission_date="2023-11-26")

        body = (await client.get(f"{BASE}/aging-report")).json()

        bucket = next(b for b in body["buckets"] if b["range"] == "31-60")
        assert bucket["count"] == 1
        assert float(bucket["amount"]) == 500.0
        assert body["by_payer"][0]["payer_name"] == "State Medicaid"

    @pytest.mark.asyncio
    async def test_aging_report_rejects_bad_buckets(self, client, seed):
        response = await client.get(f"{BASE}/aging-report", params={"buckets": "30,abc"})
        assert response.status_code == status.HTTP_400_BAD_REQUEST

    @pytest.mark.asyncio
    async def test_metrics(self, client, seed):
        claim = await create_claim(client, seed, date(2024, 1, 2))
        await submit(client, claim["id"])

        body = (await client.get(f"{BASE}/metrics")).json()

        assert body["total_claims"] == 1
        assert body["submitted_count"] == 1
        assert body["denial_rate"] == 0.0

    @pytest.mark.asyncio
    async def test_follow_up_lists(self, client, seed):
        await create_claim(client, seed, date(2024, 1, 10) - timedelta(days=85))

        deadlines = (await client.get(f"{BASE}/filing-deadlines")).json()
        actions = (await client.get(f"{BASE}/requiring-action")).json()
        priorities = (await client.get(f"{BASE}/priority-list")).json()

        assert deadlines[0]["days_remaining"] == 5
        assert deadlines[0]["is_overdue"] is False
        assert actions[0]["action"] == "Submit claim"
        assert priorities[0]["risk"]["risk_level"] == "medium"

    @pytest.mark.asyncio
    async def test_claim_views(self, client, seed):
        claim = await create_claim(client, seed, date(2024, 1, 2))
        await submit(client, claim["id"])

        claim_status = (await client.get(f"{BASE}/{claim['id']}/status")).json()
        progress = (await client.get(f"{BASE}/{claim['id']}/progress")).json()
        lifecycle = (await client.get(f"{BASE}/{claim['id']}/lifecycle")).json()
        risk = (await client.get(f"{BASE}/{claim['id']}/risk")).json()

        assert claim_status["status"] == "SUBMITTED"
        assert claim_status["is_terminal"] is False
        assert "acknowledge" in {a["event"] for a in claim_status["next_actions"]}
        assert progress["transitions"] == 2
        assert len(lifecycle["timeline"]) == 3
        assert risk["risk_level"] == "low"

    @pytest.mark.asyncio
    async def test_transition_report(self, client, seed):
        claim = await create_claim(client, seed, date(2024, 1, 2))
        await submit(client, claim["id"])

        body = (await client.get(f"{BASE}/transition-report")).json()

        assert body["total_transitions"] == 2


@pytest.mark.api
class TestHealthRoutes:
    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/health")
        assert response.json() == {"status": "healthy", "service": "claimflow-api"}


@pytest.mark.api
class TestLifespan:
    @pytest.mark.asyncio
    async def test_shutdown_closes_the_clearinghouse_client(self, monkeypatch):
        gateway = AsyncMock()
        monkeypatch.setattr(dependencies, "_engine", SimpleNamespace(deps=SimpleNamespace(gateway=gateway)))

        async with lifespan(app):
            gateway.close.assert_not_awaited()

        gateway.close.assert_awaited_once()
        assert dependencies._engine is None
