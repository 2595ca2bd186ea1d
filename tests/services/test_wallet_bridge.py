from __future__ import annotations

import uuid
from decimal import Decimal

import pytest
from sqlalchemy import select

from coursepay.models.payment import Payment
from coursepay.models.wallet import Wallet, WalletTransaction
from coursepay.services.payments import ledger
from coursepay.utils.enums import PaymentStatus, WalletTransactionType

pytestmark = pytest.mark.anyio


def _wallet_config(student_id: uuid.UUID, amount: str) -> dict:
    return {
        "gateway": "wallet",
        "amount": amount,
        "currency": "INR",
        "description": "Machine Learning course",
        "student_id": str(student_id),
    }


async def test_wallet_payment_of_exact_balance_completes(db_session, payment_service, fake_gateway, make_wallet):
    student_id = uuid.uuid4()
    wallet = await make_wallet(student_id, credits="800.00")

    result = await payment_service.create_payment(db_session, _wallet_config(student_id, "800"))

    assert result.success is True
    assert fake_gateway.orders == []

    payment = await db_session.get(Payment, uuid.UUID(result.payment_id))
    assert payment.status == PaymentStatus.completed
    assert payment.payment_method == "wallet"
    assert payment.payment_date is not None

    await db_session.refresh(wallet)
    assert wallet.credits == Decimal("0")

    txn = (await db_session.execute(select(WalletTransaction))).scalar_one()
    assert txn.type == WalletTransactionType.debit
    assert txn.amount == Decimal("800.00")
    assert txn.description == "Payment for Machine Learning course"
    assert txn.reference == result.payment_id


async def test_wallet_payment_over_balance_is_refused(db_session, payment_service, make_wallet):
    student_id = uuid.uuid4()
    wallet = await make_wallet(student_id, credits="800.00")
    wallet_id = wallet.id

    result = await payment_service.create_payment(db_session, _wallet_config(student_id, "801"))

    assert result.success is False
    assert result.error_code == "INSUFFICIENT_BALANCE"

    wallet = await db_session.get(Wallet, wallet_id)
    await db_session.refresh(wallet)
    assert wallet.credits == Decimal("800.00")

    payment = await db_session.get(Payment, uuid.UUID(result.payment_id))
    await db_session.refresh(payment)
    assert payment.status == PaymentStatus.pending
    assert (await db_session.execute(select(WalletTransaction))).scalars().all() == []


async def test_wallet_payment_without_wallet(db_session, payment_service):
    result = await payment_service.create_payment(db_session, _wallet_config(uuid.uuid4(), "10"))

    assert result.success is False
    assert result.error_code == "NOT_FOUND"
    assert result.error == "Wallet not found"


async def test_short_atomic_debit_leaves_payment_pending(db_session, payment_service, make_wallet, monkeypatch):
    student_id = uuid.uuid4()
    wallet = await make_wallet(student_id, credits="800.00")
    wallet_id = wallet.id

    async def _balance_spent_elsewhere(db, wallet_id, amount):
        return Decimal("0")

    monkeypatch.setattr(ledger, "use_wallet_credits", _balance_spent_elsewhere)

    result = await payment_service.create_payment(db_session, _wallet_config(student_id, "500"))

    assert result.success is False
    assert result.error_code == "LEDGER_ERROR"

    payment = await db_session.get(Payment, uuid.UUID(result.payment_id))
    await db_session.refresh(payment)
    assert payment.status == PaymentStatus.pending
    assert payment.payment_method is None
    assert (await db_session.execute(select(WalletTransaction))).scalars().all() == []

    wallet = await db_session.get(Wallet, wallet_id)
    await db_session.refresh(wallet)
    assert wallet.credits == Decimal("800.00")
