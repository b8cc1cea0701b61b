"""Pytest configuration and fixtures"""

from datetime import datetime, timezone
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from conveysafe.config import Settings
from conveysafe.main import create_app
from conveysafe.services.checkout import CheckoutService
from conveysafe.services.invoices import InvoiceLedger
from conveysafe.services.jobs import JobStore
from conveysafe.services.loyalty import LoyaltyEngine
from conveysafe.services.payment_ledger import PaymentLedger
from conveysafe.utils.clock import FixedClock
from conveysafe.utils.ids import SequentialIdGenerator

TEST_API_KEY = "test-service-key"


def role_headers(role: str, api_key: str = TEST_API_KEY) -> dict[str, str]:
    """Headers for an authenticated call acting as `role`"""
    return {"X-API-Key": api_key, "X-Actor-Role": role}


@pytest.fixture
def ids() -> SequentialIdGenerator:
    return SequentialIdGenerator()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(datetime(2024, 3, 1, 9, 30, tzinfo=timezone.utc))


@pytest.fixture
def ledger(ids) -> PaymentLedger:
    return PaymentLedger(ids)


@pytest.fixture
def invoices(ids) -> InvoiceLedger:
    return InvoiceLedger(ids)


@pytest.fixture
def loyalty() -> LoyaltyEngine:
    return LoyaltyEngine()


@pytest.fixture
def job_store(ids, clock) -> JobStore:
    return JobStore(ids, clock)


@pytest.fixture
def checkout_service(ledger, invoices, loyalty, clock) -> CheckoutService:
    return CheckoutService(ledger, invoices, loyalty, clock)


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        service_api_key=TEST_API_KEY,
        id_strategy="sequential",
        log_format="text",
        log_level="WARNING",
    )


@pytest.fixture
def app(test_settings, ids, clock) -> FastAPI:
    """A fresh application with empty stores per test"""
    return create_app(test_settings, id_generator=ids, clock=clock)


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client bound to the test application"""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
def as_role():
    """`as_role("finance_admin")` builds the auth headers for that role"""
    return role_headers
