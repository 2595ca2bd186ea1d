from __future__ import annotations

from typing import Any, Dict, Optional

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from coursepay.core.logging_config import get_logger
from coursepay.db.deps import AsyncSessionLocal
from coursepay.models.payment import Payment
from coursepay.services.payments.subscription_service import SubscriptionService
from coursepay.utils.datetime_utils import get_current_utc_datetime
from coursepay.utils.enums import PaymentStatus


logger = get_logger("billing_jobs")


async def expire_stale_payments_once(db: AsyncSession) -> int:
    """Fail pending payments whose expires_at has passed.

    Returns number of rows affected (best effort; depending on dialect).
    """
    now = get_current_utc_datetime()
    stmt = (
        update(Payment)
        .where(Payment.status == PaymentStatus.pending)
        .where(Payment.expires_at.is_not(None))
        .where(Payment.expires_at < now)
        .values(
            status=PaymentStatus.failed,
            status_message="Payment session expired",
        )
        .execution_options(synchronize_session=False)
    )
    res = await db.execute(stmt)
    await db.commit()
    rowcount = res.rowcount if res.rowcount and res.rowcount > 0 else 0
    if rowcount:
        logger.info(f"Stale payment expirer: failed {rowcount} pending payments")
    return rowcount


async def run_billing_jobs_once(
    subscription_service: SubscriptionService,
    renewals: bool = True,
    expire: bool = True,
    stale_payments: bool = True,
    db: Optional[AsyncSession] = None,
) -> Dict[str, Any]:
    """Run one pass of the billing sweeps and return their tallies.

    Opens its own session unless one is passed in. A failing job is logged
    and reported; the remaining jobs still run.
    """
    summary: Dict[str, Any] = {}
    if db is None:
        async with AsyncSessionLocal() as session:
            return await run_billing_jobs_once(
                subscription_service, renewals, expire, stale_payments, db=session
            )

    if stale_payments:
        try:
            summary["stale_payments"] = await expire_stale_payments_once(db)
        except Exception as e:
            await db.rollback()
            logger.exception(f"Stale payment expirer error: {e}")
            summary["stale_payments"] = {"error": str(e)}

    if renewals:
        try:
            summary["renewals"] = await subscription_service.process_scheduled_renewals(db)
        except Exception as e:
            await db.rollback()
            logger.exception(f"Scheduled renewals error: {e}")
            summary["renewals"] = {"error": str(e)}

    if expire:
        try:
            summary["expired_subscriptions"] = await subscription_service.expire_subscriptions(db)
        except Exception as e:
            await db.rollback()
            logger.exception(f"Subscription expiry error: {e}")
            summary["expired_subscriptions"] = {"error": str(e)}

    logger.info(f"Billing jobs run: {summary}")
    return summary
