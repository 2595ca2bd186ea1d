"""Atomic ledger operations on wallets, refunds and invoices.

Each function runs inside the caller's session and leaves the commit to the
caller, so a debit and the payment update that depends on it land together.
Wallet balances are only ever changed with conditional UPDATE statements,
never by read-modify-write of a loaded row.
"""

from __future__ import annotations

import uuid
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from coursepay.core.exceptions import (
    InvalidStateError,
    LedgerError,
    NotFoundError,
)
from coursepay.core.logging_config import get_logger
from coursepay.models.invoice import Invoice
from coursepay.models.payment import Payment
from coursepay.models.refund import Refund
from coursepay.models.wallet import Wallet, WalletTransaction
from coursepay.utils.datetime_utils import get_current_utc_datetime
from coursepay.utils.enums import (
    PaymentGateway,
    PaymentStatus,
    RefundStatus,
    WalletTransactionType,
)

logger = get_logger(__name__)


async def use_wallet_credits(db: AsyncSession, wallet_id: uuid.UUID, amount: Decimal) -> Decimal:
    """Debit ``amount`` credits if the balance covers it.

    Returns the amount actually debited: ``amount`` or ``0``. Never partial.
    """
    result = await db.execute(
        update(Wallet)
        .where(Wallet.id == wallet_id, Wallet.credits >= amount)
        .values(credits=Wallet.credits - amount)
        .execution_options(synchronize_session="fetch")
    )
    if result.rowcount != 1:
        logger.warning(f"Wallet debit not applied: wallet={wallet_id}, amount={amount}")
        return Decimal("0")
    return Decimal(amount)


async def add_wallet_transaction(
    db: AsyncSession,
    wallet_id: uuid.UUID,
    trans_type: WalletTransactionType,
    amount: Decimal,
    description: str,
    reference: Optional[str] = None,
    points: int = 0,
    metadata: Optional[Dict[str, Any]] = None,
) -> uuid.UUID:
    """Append a ledger entry. The balance change itself is done by the caller."""
    txn = WalletTransaction(
        id=uuid.uuid4(),
        wallet_id=wallet_id,
        type=trans_type,
        amount=amount,
        points=points,
        description=description,
        reference=reference,
        extra_metadata=metadata or {},
    )
    db.add(txn)
    await db.flush()
    return txn.id


async def _credit_wallet(db: AsyncSession, wallet_id: uuid.UUID, amount: Decimal) -> None:
    await db.execute(
        update(Wallet)
        .where(Wallet.id == wallet_id)
        .values(credits=Wallet.credits + amount)
        .execution_options(synchronize_session="fetch")
    )


async def process_refund(
    db: AsyncSession,
    payment_id: uuid.UUID,
    amount: Decimal,
    reason: str,
    requested_by: uuid.UUID,
) -> uuid.UUID:
    """Record a pending refund against a completed payment.

    Refunds already requested (pending or completed) count against the
    payment amount. Wallet payments get their credits back here; gateway
    payments are refunded by the caller afterwards.

    Returns:
        id of the new Refund row
    """
    if amount <= 0:
        raise LedgerError("Refund amount must be positive")

    payment = (
        await db.execute(select(Payment).where(Payment.id == payment_id).with_for_update())
    ).scalar_one_or_none()
    if payment is None:
        raise NotFoundError(f"Payment {payment_id} not found")
    if payment.status != PaymentStatus.completed:
        raise InvalidStateError("Cannot refund incomplete payment")

    already_refunded = (
        await db.execute(
            select(func.coalesce(func.sum(Refund.amount), 0)).where(Refund.payment_id == payment_id)
        )
    ).scalar_one()
    refundable = Decimal(payment.amount) - Decimal(str(already_refunded))
    if Decimal(amount) > refundable:
        raise LedgerError(f"Refund amount {amount} exceeds refundable balance {refundable}")

    refund = Refund(
        id=uuid.uuid4(),
        payment_id=payment_id,
        amount=amount,
        reason=reason,
        requested_by=requested_by,
        status=RefundStatus.pending,
        requested_at=get_current_utc_datetime(),
    )
    db.add(refund)
    await db.flush()

    if payment.gateway == PaymentGateway.wallet:
        wallet = (
            await db.execute(select(Wallet).where(Wallet.user_id == payment.student_id))
        ).scalar_one_or_none()
        if wallet is None:
            raise LedgerError(f"Wallet for student {payment.student_id} not found")
        await _credit_wallet(db, wallet.id, Decimal(amount))
        await add_wallet_transaction(
            db,
            wallet.id,
            WalletTransactionType.credit,
            Decimal(amount),
            description=f"Refund for payment {payment_id}",
            reference=str(refund.id),
            metadata={"payment_id": str(payment_id), "reason": reason},
        )

    logger.info(f"Refund recorded: refund={refund.id}, payment={payment_id}, amount={amount}")
    return refund.id


async def create_invoice_for_payment(db: AsyncSession, payment_id: uuid.UUID) -> uuid.UUID:
    """Issue the invoice for a completed payment; returns the existing one if already issued."""
    existing = (
        await db.execute(select(Invoice.id).where(Invoice.payment_id == payment_id))
    ).scalar_one_or_none()
    if existing is not None:
        return existing

    payment = await db.get(Payment, payment_id)
    if payment is None:
        raise NotFoundError(f"Payment {payment_id} not found")
    if payment.status != PaymentStatus.completed:
        raise InvalidStateError("Invoices are only issued for completed payments")

    issued_at = get_current_utc_datetime()
    invoice = Invoice(
        id=uuid.uuid4(),
        payment_id=payment.id,
        student_id=payment.student_id,
        invoice_number=f"INV-{issued_at:%Y%m%d}-{payment.id.hex[:8].upper()}",
        amount=payment.amount,
        currency=payment.currency,
        issued_at=issued_at,
    )
    db.add(invoice)
    await db.flush()
    logger.info(f"Invoice {invoice.invoice_number} issued for payment {payment_id}")
    return invoice.id
