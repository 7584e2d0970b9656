"""
Pytest Configuration and Fixtures.
Shared test fixtures for all test modules.

Integration and API tests run against an in-memory SQLite database with
the full schema, a demo clearinghouse and a fixed clock.
"""

from datetime import date, timedelta
from decimal import Decimal
from typing import Optional
from uuid import UUID

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from claimflow.core.config import ClaimsSettings
from claimflow.core.enums import ClaimStatus, DocumentationStatus, SubmissionMethod
from claimflow.db.connection import create_session_maker
from claimflow.models import Base
from claimflow.models.reference import Authorization, Client, Payer, Service, ServiceCode
from claimflow.services.authorization import DatabaseAuthorizationService
from claimflow.services.clearinghouse import ClearinghouseGateway, DemoClearinghouseAdapter, StatusResponse
from claimflow.services.dependencies import ClaimEngineDeps, build_claim_engine
from claimflow.services.notifications import ClaimNotification

TODAY = date(2024, 1, 10)


class RecordingNotifier:
    """Collects published notifications for assertions."""

    def __init__(self):
        self.sent: list[ClaimNotification] = []

    async def notify(self, notification: ClaimNotification) -> None:
        self.sent.append(notification)

    def types(self) -> list[str]:
        return [n.type.value for n in self.sent]


class SeedData:
    """Reference rows created for a test and helpers to add more."""

    def __init__(self, session_maker):
        self.session_maker = session_maker
        self.client: Optional[Client] = None
        self.payer: Optional[Payer] = None

    async def add(self, *rows):
        async with self.session_maker() as session:
            session.add_all(rows)
            await session.commit()
        return rows[0] if len(rows) == 1 else rows

    async def service(
        self,
        service_date: date,
        amount: str = "100.00",
        code: str = "T1019",
        client_id: Optional[UUID] = None,
        documentation_status: DocumentationStatus = DocumentationStatus.COMPLETE,
    ) -> Service:
        value = Decimal(amount)
        return await self.add(Service(
            client_id=client_id or self.client.id,
            service_code=code,
            service_date=service_date,
            units=Decimal("1.00"),
            rate=value,
            amount=value,
            documentation_status=documentation_status,
        ))


# =============================================================================
# Database
# =============================================================================


@pytest_asyncio.fixture
async def db_engine():
    """Fresh in-memory database per test."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(db_engine):
    return create_session_maker(db_engine)


@pytest_asyncio.fixture
async def seed(session_maker) -> SeedData:
    """One active client, one electronic payer and the service codes in use."""
    data = SeedData(session_maker)
    data.client = Client(first_name="Ada", last_name="Lovelace", medicaid_id="MCD-0001")
    data.payer = Payer(
        name="State Medicaid",
        is_electronic=True,
        timely_filing_days=90,
        clearinghouse_payer_id="SMCD1",
    )
    await data.add(
        data.client,
        data.payer,
        ServiceCode(code="T1019", description="Personal care services", active_from=date(2020, 1, 1)),
        ServiceCode(code="S5125", description="Attendant care", active_from=date(2020, 1, 1)),
        ServiceCode(
            code="H2014",
            description="Skills training",
            active_from=date(2020, 1, 1),
            requires_authorization=True,
        ),
    )
    return data


# =============================================================================
# Engine
# =============================================================================


@pytest.fixture
def today() -> date:
    """The engine clock's fixed date."""
    return TODAY


@pytest.fixture
def claims_settings() -> ClaimsSettings:
    return ClaimsSettings(
        DEFAULT_TIMELY_FILING_DAYS=90,
        FILING_WARNING_DAYS=14,
        BATCH_MAX_ITEMS=500,
        AGING_BUCKETS=[30, 60, 90],
    )


@pytest.fixture
def clearinghouse() -> DemoClearinghouseAdapter:
    return DemoClearinghouseAdapter()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def engine(session_maker, clearinghouse, notifier, claims_settings):
    """Claim engine wired to the test database with a fixed clock."""
    return build_claim_engine(ClaimEngineDeps(
        session_maker=session_maker,
        gateway=ClearinghouseGateway(clearinghouse, timeout_seconds=2.0),
        authorization=DatabaseAuthorizationService(),
        notifier=notifier,
        settings=claims_settings,
        clock=lambda: TODAY,
    ))


# =============================================================================
# Claim Builders
# =============================================================================


@pytest.fixture
def make_claim(engine, seed):
    """Create a DRAFT claim for fresh services on the given dates."""
    from claimflow.services.claims_service import ClaimCreateDTO

    async def factory(*service_dates: date, amounts: Optional[list[str]] = None, code: str = "T1019"):
        service_dates = service_dates or (TODAY - timedelta(days=8),)
        amounts = amounts or ["100.00"] * len(service_dates)
        services = [
            await seed.service(day, amount=amount, code=code)
            for day, amount in zip(service_dates, amounts)
        ]
        result = await engine.claims.create_claim(
            ClaimCreateDTO(
                client_id=seed.client.id,
                payer_id=seed.payer.id,
                service_ids=[s.id for s in services],
            ),
            created_by="biller-1",
        )
        return result.unwrap()

    return factory


@pytest.fixture
def submitted_claim(engine, make_claim):
    """Create, validate and submit a claim electronically."""

    async def factory(*service_dates: date, submission_date: date = TODAY, **kwargs):
        claim = await make_claim(*service_dates, **kwargs)
        result = await engine.submission.validate_and_submit(
            claim.id,
            SubmissionMethod.ELECTRONIC,
            submission_date,
            user_id="biller-1",
        )
        return result.unwrap()

    return factory


@pytest.fixture
def denied_claim(engine, submitted_claim):
    """A submitted claim the payer has denied."""
    from claimflow.core.enums import DenialReason

    async def factory(*service_dates: date, **kwargs):
        claim = await submitted_claim(*service_dates, **kwargs)
        result = await engine.lifecycle.record_adjudication(
            claim.id,
            ClaimStatus.DENIED,
            TODAY,
            denial_reason=DenialReason.MISSING_INFORMATION,
            denial_details="Missing attending provider",
        )
        return result.unwrap()

    return factory


@pytest.fixture
def payer_reports(clearinghouse):
    """Set the payer-side status the demo clearinghouse returns for a claim."""

    def report(claim, status: ClaimStatus, **fields):
        clearinghouse.set_status(claim.external_claim_id, StatusResponse(status=status, **fields))

    return report


@pytest.fixture
def authorization_for(seed):
    async def factory(code: str, start: date, end: date):
        return await seed.add(Authorization(
            client_id=seed.client.id,
            payer_id=seed.payer.id,
            service_code=code,
            authorization_number=f"PA-{code}",
            start_date=start,
            end_date=end,
        ))

    return factory


# Configure pytest markers
def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test"
    )
    config.addinivalue_line(
        "markers", "api: mark test as an API test"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow running"
    )
