from __future__ import annotations

import uuid
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from coursepay.core.exceptions import InvalidStateError, LedgerError, NotFoundError
from coursepay.models.invoice import Invoice
from coursepay.models.refund import Refund
from coursepay.models.wallet import WalletTransaction
from coursepay.services.payments import ledger
from coursepay.utils.enums import (
    PaymentGateway,
    PaymentStatus,
    RefundStatus,
    WalletTransactionType,
)

pytestmark = pytest.mark.anyio


async def _refund_count(db_session) -> int:
    return (await db_session.execute(select(func.count(Refund.id)))).scalar_one()


async def test_use_wallet_credits_is_all_or_nothing(db_session, make_wallet):
    wallet = await make_wallet(uuid.uuid4(), credits="100.00")

    assert await ledger.use_wallet_credits(db_session, wallet.id, Decimal("150.00")) == Decimal("0")
    await db_session.refresh(wallet)
    assert wallet.credits == Decimal("100.00")

    assert await ledger.use_wallet_credits(db_session, wallet.id, Decimal("100.00")) == Decimal("100.00")
    await db_session.commit()
    await db_session.refresh(wallet)
    assert wallet.credits == Decimal("0.00")


async def test_process_refund_rejects_amount_over_refundable_remainder(db_session, make_payment):
    payment = await make_payment(status=PaymentStatus.completed, amount=Decimal("500.00"))
    payment_id = payment.id

    await ledger.process_refund(db_session, payment_id, Decimal("300.00"), "partial", uuid.uuid4())
    await db_session.commit()

    with pytest.raises(LedgerError):
        await ledger.process_refund(db_session, payment_id, Decimal("200.01"), "too much", uuid.uuid4())
    await db_session.rollback()

    assert await _refund_count(db_session) == 1

    await ledger.process_refund(db_session, payment_id, Decimal("200.00"), "rest", uuid.uuid4())
    await db_session.commit()
    assert await _refund_count(db_session) == 2


async def test_process_refund_rejects_non_positive_amount(db_session, make_payment):
    payment = await make_payment(status=PaymentStatus.completed)

    with pytest.raises(LedgerError):
        await ledger.process_refund(db_session, payment.id, Decimal("0"), "zero", uuid.uuid4())


async def test_process_refund_requires_completed_payment(db_session, make_payment):
    payment = await make_payment(status=PaymentStatus.pending)

    with pytest.raises(InvalidStateError):
        await ledger.process_refund(db_session, payment.id, Decimal("10.00"), "early", uuid.uuid4())
    with pytest.raises(NotFoundError):
        await ledger.process_refund(db_session, uuid.uuid4(), Decimal("10.00"), "missing", uuid.uuid4())


async def test_process_refund_credits_wallet_payments_back(db_session, make_wallet, make_payment):
    student_id = uuid.uuid4()
    wallet = await make_wallet(student_id, credits="50.00")
    payment = await make_payment(
        student_id=student_id,
        gateway=PaymentGateway.wallet,
        status=PaymentStatus.completed,
        amount=Decimal("200.00"),
    )

    refund_id = await ledger.process_refund(db_session, payment.id, Decimal("120.00"), "course cancelled", uuid.uuid4())
    await db_session.commit()

    await db_session.refresh(wallet)
    assert wallet.credits == Decimal("170.00")

    refund = await db_session.get(Refund, refund_id)
    assert refund.status == RefundStatus.pending
    txns = (
        await db_session.execute(select(WalletTransaction).where(WalletTransaction.wallet_id == wallet.id))
    ).scalars().all()
    assert len(txns) == 1
    assert txns[0].type == WalletTransactionType.credit
    assert txns[0].amount == Decimal("120.00")
    assert txns[0].reference == str(refund_id)


async def test_create_invoice_is_idempotent(db_session, make_payment):
    payment = await make_payment(status=PaymentStatus.completed)

    first = await ledger.create_invoice_for_payment(db_session, payment.id)
    second = await ledger.create_invoice_for_payment(db_session, payment.id)
    await db_session.commit()

    assert first == second
    invoices = (await db_session.execute(select(Invoice))).scalars().all()
    assert len(invoices) == 1
    assert invoices[0].invoice_number.startswith("INV-")
    assert invoices[0].invoice_number.endswith(payment.id.hex[:8].upper())
    assert invoices[0].amount == Decimal("500.00")


async def test_create_invoice_requires_completed_payment(db_session, make_payment):
    payment = await make_payment(status=PaymentStatus.pending)

    with pytest.raises(InvalidStateError):
        await ledger.create_invoice_for_payment(db_session, payment.id)
