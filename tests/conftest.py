"""Pytest configuration and fixtures."""

from datetime import datetime, timedelta
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from backoffice.infrastructure.telephony.base import SmsCarrierProtocol
from backoffice.persistence.database import Base, get_db
from backoffice.persistence.models import *  # noqa: F401, F403
from backoffice.persistence.models import Customer, Message
from backoffice.settings import settings


@pytest.fixture
async def db_session():
    """Create a test database session."""
    # Use in-memory SQLite for testing
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async_session = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False
    )

    async with async_session() as session:
        yield session

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture(autouse=True)
def no_batch_delay(monkeypatch):
    """Keep reconciliation batches from sleeping in tests."""
    monkeypatch.setattr(settings, "sms_reconcile_batch_delay_seconds", 0)


@pytest.fixture
def carrier():
    """Mock SMS carrier."""
    return AsyncMock(spec=SmsCarrierProtocol)


@pytest.fixture
def mock_db():
    """Stand-in session for route tests that patch out persistence."""
    return AsyncMock(spec=AsyncSession)


@pytest.fixture
def client(mock_db):
    """Create a test FastAPI client."""
    from fastapi.testclient import TestClient
    from backoffice.main import app

    async def override_get_db():
        yield mock_db

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
async def customer(db_session):
    """Opted-in customer with a clean delivery record."""
    instance = Customer(
        first_name="Sam",
        last_name="Taylor",
        mobile_number="07700 900123",
        mobile_e164="+447700900123",
        sms_opt_in=True,
        sms_status="active",
        sms_delivery_failures=0,
    )
    db_session.add(instance)
    await db_session.commit()
    await db_session.refresh(instance)
    return instance


@pytest.fixture
def make_message(db_session):
    """Factory for stored outbound messages."""

    async def _make_message(
        sid: str = "SM0001",
        status: str = "sent",
        carrier_status: str | None = None,
        customer_id: int | None = None,
        direction: str = "outbound",
        age: timedelta = timedelta(hours=3),
        **extra,
    ) -> Message:
        created_at = datetime.utcnow() - age
        message = Message(
            customer_id=customer_id,
            direction=direction,
            body="Your table is booked",
            from_number="+447700900000",
            to_number="+447700900123",
            status=status,
            carrier_status=carrier_status if carrier_status is not None else status,
            carrier_message_id=sid,
            created_at=created_at,
            updated_at=created_at,
            **extra,
        )
        db_session.add(message)
        await db_session.commit()
        await db_session.refresh(message)
        return message

    return _make_message
