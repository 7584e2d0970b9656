"""
API test fixtures: the FastAPI app wired to the test claim engine.
"""

import httpx
import pytest_asyncio

from claimflow.api.deps import get_claims_engine
from claimflow.api.main import app


@pytest_asyncio.fixture
async def client(engine, seed):
    """HTTP client talking to the app in-process; no lifespan, no real database."""
    app.dependency_overrides[get_claims_engine] = lambda: engine
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http_client:
        yield http_client
    app.dependency_overrides.clear()
