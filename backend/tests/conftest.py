"""Pytest configuration and fixtures for RepairHub tests.

Each test gets a fresh in-memory SQLite database (aiosqlite) built from the
model metadata, a fake payment gateway, and a recording email sender.
"""

from decimal import Decimal
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from repairhub.auth.jwt import create_access_token
from repairhub.database import Base, get_db
from repairhub.main import app
from repairhub.middleware.exceptions import UpstreamError
from repairhub.models.centro import Centro, Corner
from repairhub.models.customer import Customer
from repairhub.services.notifications import EmailSender, get_email_sender
from repairhub.services.payments import CheckoutSession, StripeGateway, get_payment_gateway


# ── Fakes ────────────────────────────────────────────────────────

class FakeGateway(StripeGateway):
    """In-memory checkout sessions; webhook parsing is inherited (unsigned)."""

    def __init__(self):
        super().__init__(api_key="sk_test_fake", webhook_secret="")
        self.sessions: dict[str, CheckoutSession] = {}
        self.created: list[dict] = []
        self.fail_with: str | None = None

    async def create_checkout_session(self, *, amount, product_name, description,
                                      success_url, cancel_url, metadata,
                                      customer_email=None):
        if self.fail_with:
            raise UpstreamError("stripe", self.fail_with)
        session_id = f"cs_test_{len(self.sessions) + 1}"
        session = CheckoutSession(
            id=session_id,
            url=f"https://checkout.test/{session_id}",
            payment_status="unpaid",
            metadata={k: str(v) for k, v in metadata.items()},
        )
        self.sessions[session_id] = session
        self.created.append({
            "amount": amount,
            "product_name": product_name,
            "success_url": success_url,
            "cancel_url": cancel_url,
            "customer_email": customer_email,
            "metadata": session.metadata,
        })
        return session

    async def retrieve_session(self, session_id: str) -> CheckoutSession:
        if session_id not in self.sessions:
            raise UpstreamError("stripe", f"No such checkout.session: {session_id}")
        return self.sessions[session_id]

    def mark_paid(self, session_id: str, payment_intent: str = "pi_test_1") -> CheckoutSession:
        session = self.sessions[session_id]
        session.payment_status = "paid"
        session.payment_intent = payment_intent
        return session


class RecordingEmailSender(EmailSender):
    def __init__(self):
        super().__init__(base_url="")
        self.sent: list[dict] = []

    async def send_email(self, *, to, subject, html, centro_id=None):
        self.sent.append({"to": to, "subject": subject, "html": html, "centro_id": centro_id})
        return {"id": f"email_{len(self.sent)}"}


def completed_event(session: CheckoutSession) -> dict:
    """A checkout.session.completed webhook body for the given session."""
    return {
        "id": f"evt_{session.id}",
        "type": "checkout.session.completed",
        "data": {
            "object": {
                "id": session.id,
                "object": "checkout.session",
                "payment_status": session.payment_status,
                "payment_intent": session.payment_intent,
                "metadata": session.metadata,
            }
        },
    }


@pytest.fixture
def checkout_completed():
    """Factory for checkout.session.completed webhook bodies."""
    return completed_event


# ── Test Database Setup ──────────────────────────────────────────

@pytest_asyncio.fixture
async def test_engine():
    """In-memory SQLite with working SAVEPOINTs."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # pysqlite's own transaction handling breaks SAVEPOINT; take it over.
    @event.listens_for(engine.sync_engine, "connect")
    def _do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    session_factory = async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False
    )
    async with session_factory() as session:
        yield session


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def mailer() -> RecordingEmailSender:
    return RecordingEmailSender()


@pytest_asyncio.fixture
async def client(db_session, gateway, mailer) -> AsyncGenerator[AsyncClient, None]:
    """Test client with the database, gateway and mailer overridden."""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    app.dependency_overrides[get_email_sender] = lambda: mailer

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


# ── Test Data Fixtures ───────────────────────────────────────────

@pytest_asyncio.fixture
async def centro(db_session: AsyncSession) -> Centro:
    centro = Centro(
        business_name="Centro Riparazioni Roma",
        email="roma@example.com",
        phone="+39 06 1234567",
        credit_balance=Decimal("100.00"),
        payment_status="good_standing",
        credit_warning_threshold=Decimal("50.00"),
    )
    db_session.add(centro)
    await db_session.flush()
    return centro


@pytest_asyncio.fixture
async def corner(db_session: AsyncSession) -> Corner:
    corner = Corner(
        business_name="Tabaccheria Centrale",
        email="corner@example.com",
        credit_balance=Decimal("0.00"),
        payment_status="good_standing",
    )
    db_session.add(corner)
    await db_session.flush()
    return corner


@pytest_asyncio.fixture
async def customer(db_session: AsyncSession, centro: Centro) -> Customer:
    customer = Customer(
        centro_id=centro.id,
        name="Mario Rossi",
        email="mario.rossi@example.com",
        phone="+39 333 1234567",
    )
    db_session.add(customer)
    await db_session.flush()
    return customer


def _headers(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_headers() -> dict:
    return _headers(create_access_token(user_id="admin-1", role="platform_admin"))


@pytest.fixture
def centro_headers(centro: Centro) -> dict:
    return _headers(create_access_token(user_id="user-centro", role="centro", entity_id=centro.id))


@pytest.fixture
def corner_headers(corner: Corner) -> dict:
    return _headers(create_access_token(user_id="user-corner", role="corner", entity_id=corner.id))


@pytest.fixture
def customer_headers(customer: Customer) -> dict:
    return _headers(create_access_token(user_id=customer.id, role="customer"))


# ── Test Markers ─────────────────────────────────────────────────

def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "api: API tests")
    config.addinivalue_line("markers", "integration: Integration tests")
