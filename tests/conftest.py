from __future__ import annotations

import json
import os
import tempfile
import uuid
from decimal import Decimal
from typing import AsyncGenerator, Optional

# Settings are read at import time; provide test values before importing coursepay
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_SECRET", "test-jwt-secret")
os.environ.setdefault("CRON_SECRET", "test-cron-secret")
os.environ.setdefault("LOG_FILE", os.path.join(tempfile.gettempdir(), "coursepay-tests.log"))
os.environ.setdefault("AUDIT_LOG_FILE", os.path.join(tempfile.gettempdir(), "coursepay-audit-tests.log"))

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from jose import jwt
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from coursepay.core.config import settings
from coursepay.core.exceptions import GatewayError
from coursepay.db.deps import Base, get_db
from coursepay.main import app
from coursepay.models.payment import Payment
from coursepay.models.subscription import Subscription
from coursepay.models.wallet import Wallet
from coursepay.services.payments.base import (
    GatewayClient,
    OrderResult,
    RefundOutcome,
    WebhookEvent,
)
from coursepay.services.payments.gateway_set import GatewaySet
from coursepay.services.payments.payment_service import PaymentService
from coursepay.services.payments.subscription_service import SubscriptionService
from coursepay.utils.datetime_utils import add_billing_cycle, get_current_utc_datetime
from coursepay.utils.enums import (
    BillingCycle,
    PaymentGateway,
    PaymentStatus,
    SubscriptionStatus,
)


class FakeGateway(GatewayClient):
    """In-memory gateway recording every call; failures are switched on per test."""

    VALID_SIGNATURE = "valid-signature"

    def __init__(self, gateway_id: PaymentGateway = PaymentGateway.razorpay):
        super().__init__(webhook_secret="fake-secret")
        self.gateway_id = gateway_id
        self.orders: list[dict] = []
        self.refunds: list[dict] = []
        self.fail_orders = False
        self.fail_refunds = False
        # subscription ids (str) whose orders should fail
        self.fail_orders_for: set[str] = set()

    async def create_order(self, amount, currency, receipt_id, description, metadata=None) -> OrderResult:
        metadata = metadata or {}
        self.orders.append(
            {
                "amount": amount,
                "currency": currency,
                "receipt_id": receipt_id,
                "description": description,
                "metadata": metadata,
            }
        )
        if self.fail_orders or metadata.get("subscription_id") in self.fail_orders_for:
            raise GatewayError("Gateway unavailable")
        order_id = f"order_{len(self.orders)}"
        return OrderResult(gateway_order_id=order_id, raw={"id": order_id, "status": "created"})

    def verify_webhook_signature(self, payload: bytes, signature: Optional[str], secret=None) -> bool:
        return signature == self.VALID_SIGNATURE

    def parse_webhook(self, payload: bytes) -> WebhookEvent:
        body = json.loads(payload)
        status = {"captured": PaymentStatus.completed, "failed": PaymentStatus.failed}.get(body.get("event"))
        return WebhookEvent(
            event_type=body.get("event", "unknown"),
            gateway_order_id=body.get("order_id"),
            gateway_payment_id=body.get("payment_id"),
            status=status,
            payment_method=body.get("method"),
        )

    async def refund(self, gateway_payment_id: str, amount: Decimal) -> RefundOutcome:
        self.refunds.append({"gateway_payment_id": gateway_payment_id, "amount": amount})
        if self.fail_refunds:
            raise GatewayError("Refund rejected by gateway")
        return RefundOutcome(gateway_refund_id=f"rfnd_{len(self.refunds)}", raw={})


@pytest.fixture(scope="session")
def anyio_backend() -> str:
    """Ensure pytest-anyio uses asyncio for all async tests."""
    return "asyncio"


@pytest.fixture()
def test_db_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'test_billing.sqlite'}"


@pytest_asyncio.fixture()
async def engine(test_db_url: str):
    engine = create_async_engine(test_db_url, future=True)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest_asyncio.fixture()
async def db_session(engine) -> AsyncGenerator[AsyncSession, None]:
    async_session = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with async_session() as session:
        yield session
        await session.rollback()


@pytest.fixture()
def fake_gateway() -> FakeGateway:
    return FakeGateway(PaymentGateway.razorpay)


@pytest.fixture()
def payment_service(fake_gateway: FakeGateway) -> PaymentService:
    return PaymentService(GatewaySet.of(fake_gateway))


@pytest.fixture()
def subscription_service(payment_service: PaymentService) -> SubscriptionService:
    return SubscriptionService(payment_service)


@pytest.fixture()
def make_wallet(db_session: AsyncSession):
    async def _make(user_id: uuid.UUID, credits: str = "0") -> Wallet:
        wallet = Wallet(id=uuid.uuid4(), user_id=user_id, points=0, credits=Decimal(credits), currency="INR")
        db_session.add(wallet)
        await db_session.commit()
        return wallet

    return _make


@pytest.fixture()
def make_payment(db_session: AsyncSession):
    async def _make(**overrides) -> Payment:
        fields = dict(
            id=uuid.uuid4(),
            student_id=uuid.uuid4(),
            amount=Decimal("500.00"),
            currency="INR",
            description="Python for beginners",
            gateway=PaymentGateway.razorpay,
            status=PaymentStatus.pending,
            webhook_verified=False,
        )
        fields.update(overrides)
        payment = Payment(**fields)
        db_session.add(payment)
        await db_session.commit()
        return payment

    return _make


@pytest.fixture()
def make_subscription(db_session: AsyncSession):
    async def _make(**overrides) -> Subscription:
        start = overrides.pop("current_period_start", get_current_utc_datetime())
        cycle = overrides.get("billing_cycle", BillingCycle.monthly)
        end = overrides.pop("current_period_end", add_billing_cycle(start, cycle))
        fields = dict(
            id=uuid.uuid4(),
            student_id=uuid.uuid4(),
            course_id=uuid.uuid4(),
            status=SubscriptionStatus.active,
            billing_cycle=cycle,
            amount=Decimal("499.00"),
            currency="INR",
            gateway=PaymentGateway.razorpay,
            current_period_start=start,
            current_period_end=end,
            next_billing_date=end,
            auto_renew=True,
            failed_payment_count=0,
        )
        fields.update(overrides)
        subscription = Subscription(**fields)
        db_session.add(subscription)
        await db_session.commit()
        return subscription

    return _make


def make_token(user_id: uuid.UUID, role: str = "student") -> str:
    return jwt.encode(
        {"sub": str(user_id), "role": role},
        settings.JWT_SECRET,
        algorithm=settings.JWT_ALGORITHM,
    )


@pytest.fixture()
def auth_headers():
    def _headers(user_id: uuid.UUID, role: str = "student") -> dict:
        return {"Authorization": f"Bearer {make_token(user_id, role)}"}

    return _headers


@pytest.fixture()
def test_app(payment_service: PaymentService, subscription_service: SubscriptionService) -> FastAPI:
    app.state.gateways = payment_service.gateways
    app.state.payment_service = payment_service
    app.state.subscription_service = subscription_service
    return app


@pytest_asyncio.fixture()
async def client(test_app: FastAPI, db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    async def _get_test_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    test_app.dependency_overrides[get_db] = _get_test_db

    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as async_client:
        yield async_client

    test_app.dependency_overrides.clear()
