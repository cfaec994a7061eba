"""Shared test fixtures and configuration."""

import json
import os
import pytest
from typing import Optional

# Set up test environment variables before importing modules
os.environ.setdefault("API_KEY", "test_api_key_12345")
os.environ.setdefault("PAYSTACK_SECRET_KEY", "sk_test_paystack_secret")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ["APP_ENV"] = "production"
os.environ["RATE_LIMIT_ENABLED"] = "false"

from tuition_ledger.database import (
    Base,
    PaymentStatus,
    StudentRepository,
    create_async_engine,
    get_async_session_factory,
)
from tuition_ledger.signature import SignatureVerifier
from tuition_ledger.webhooks import WebhookPipeline


@pytest.fixture
def mock_api_key():
    """Return the admin API key configured for tests."""
    return os.environ["API_KEY"]


@pytest.fixture
def auth_headers(mock_api_key):
    """Return headers with admin authentication."""
    return {"Authorization": f"Bearer {mock_api_key}"}


@pytest.fixture
def verifier():
    """Signature verifier holding the test webhook secret."""
    return SignatureVerifier(secret=os.environ["PAYSTACK_SECRET_KEY"])


@pytest.fixture
def charge_event():
    """Build a raw provider event body. Amounts are in kobo."""
    def _build(
        email: str,
        amount: int,
        reference: str,
        event: str = "charge.success",
    ) -> bytes:
        return json.dumps({
            "event": event,
            "data": {
                "id": 302961,
                "reference": reference,
                "amount": amount,
                "currency": "NGN",
                "status": "success" if event == "charge.success" else "failed",
                "customer": {"email": email, "customer_code": "CUS_xnxdt6s1zg1f4nx"},
            },
        }).encode("utf-8")
    return _build


@pytest.fixture
def signed_headers(verifier):
    """Headers carrying a valid signature for the given body."""
    def _headers(body: bytes) -> dict:
        return {
            "Content-Type": "application/json",
            "x-paystack-signature": verifier.sign(body),
        }
    return _headers


# Database fixtures
@pytest.fixture
async def db_engine():
    """Create an in-memory SQLite database for testing."""
    engine = create_async_engine(
        database_url="sqlite+aiosqlite:///:memory:",
        echo=False
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    """Session factory bound to the test engine."""
    return get_async_session_factory(db_engine)


@pytest.fixture
async def db_session(session_factory):
    """Create a database session for testing."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def make_student(session_factory):
    """Register a student in its own committed unit of work."""
    async def _make(
        email: str = "ada@example.com",
        duration: int = 8,
        full_name: str = "Ada Obi",
        payment_status: Optional[PaymentStatus] = None,
    ):
        async with session_factory() as session:
            student = await StudentRepository(session).create(
                full_name=full_name,
                email=email,
                duration=duration,
            )
            if payment_status is not None:
                student.payment_status = payment_status.value
            await session.commit()
            return student
    return _make


@pytest.fixture
def pipeline(session_factory, verifier):
    """Webhook pipeline over the test database."""
    return WebhookPipeline(session_factory=session_factory, verifier=verifier)
