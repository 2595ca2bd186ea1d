"""Pay with internal wallet credits instead of an external gateway."""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from coursepay.core.exceptions import InsufficientBalance, LedgerError, NotFoundError
from coursepay.core.logging_config import get_logger
from coursepay.models.payment import Payment
from coursepay.models.wallet import Wallet
from coursepay.services.payments import ledger
from coursepay.utils.datetime_utils import get_current_utc_datetime
from coursepay.utils.enums import PaymentStatus, WalletTransactionType

logger = get_logger(__name__)


class WalletLedgerBridge:
    """Completes a pending payment by debiting the student's wallet credits."""

    async def charge(
        self,
        db: AsyncSession,
        payment: Payment,
        description: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Payment:
        """Debit the full payment amount and mark the payment completed.

        Raises:
            NotFoundError: student has no wallet
            InsufficientBalance: credits below the payment amount
            LedgerError: the atomic debit applied less than the full amount
        """
        amount = Decimal(payment.amount)
        wallet = (
            await db.execute(select(Wallet).where(Wallet.user_id == payment.student_id))
        ).scalar_one_or_none()
        if wallet is None:
            raise NotFoundError("Wallet not found")

        if Decimal(wallet.credits or 0) < amount:
            logger.info(
                f"Wallet payment refused: payment={payment.id}, credits={wallet.credits}, amount={amount}"
            )
            raise InsufficientBalance("Insufficient wallet balance")

        debited = await ledger.use_wallet_credits(db, wallet.id, amount)
        if debited < amount:
            # Balance changed between the read and the debit
            raise LedgerError("Failed to use wallet credits")

        payment.status = PaymentStatus.completed
        payment.payment_date = get_current_utc_datetime()
        payment.payment_method = "wallet"
        payment.status_message = "Paid from wallet credits"

        await ledger.add_wallet_transaction(
            db,
            wallet.id,
            WalletTransactionType.debit,
            amount,
            description=f"Payment for {description}",
            reference=str(payment.id),
            metadata={"payment_id": str(payment.id), **(metadata or {})},
        )
        await db.commit()

        logger.info(f"Wallet payment completed: payment={payment.id}, wallet={wallet.id}, amount={amount}")
        return payment
