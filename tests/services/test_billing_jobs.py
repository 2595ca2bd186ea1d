from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from coursepay.models.subscription import Subscription
from coursepay.services.payments.billing_jobs import (
    expire_stale_payments_once,
    run_billing_jobs_once,
)
from coursepay.utils.enums import PaymentStatus, SubscriptionStatus

pytestmark = pytest.mark.anyio


async def test_stale_pending_payments_are_failed(db_session, make_payment):
    now = datetime.now(timezone.utc)
    stale = await make_payment(expires_at=now - timedelta(minutes=1))
    fresh = await make_payment(expires_at=now + timedelta(minutes=10))
    settled = await make_payment(expires_at=now - timedelta(minutes=1), status=PaymentStatus.completed)
    no_expiry = await make_payment()

    count = await expire_stale_payments_once(db_session)

    assert count == 1
    for payment in (stale, fresh, settled, no_expiry):
        await db_session.refresh(payment)
    assert stale.status == PaymentStatus.failed
    assert stale.status_message == "Payment session expired"
    assert fresh.status == PaymentStatus.pending
    assert settled.status == PaymentStatus.completed
    assert no_expiry.status == PaymentStatus.pending


async def test_run_billing_jobs_once_reports_each_job(db_session, subscription_service, make_subscription, make_payment):
    past = datetime.now(timezone.utc) - timedelta(days=40)
    renewing = await make_subscription(current_period_start=past)
    renewing_id = renewing.id
    lapsed = await make_subscription(current_period_start=past, auto_renew=False)
    await make_payment(expires_at=datetime.now(timezone.utc) - timedelta(hours=1))

    summary = await run_billing_jobs_once(subscription_service, db=db_session)

    assert summary == {
        "stale_payments": 1,
        "renewals": {"processed": 1, "failed": 0},
        "expired_subscriptions": 1,
    }
    await db_session.refresh(lapsed)
    assert lapsed.status == SubscriptionStatus.expired
    renewed = await db_session.get(Subscription, renewing_id)
    await db_session.refresh(renewed)
    assert renewed.failed_payment_count == 0
    assert renewed.status == SubscriptionStatus.active


async def test_run_billing_jobs_once_runs_only_selected_jobs(db_session, subscription_service, make_subscription):
    past = datetime.now(timezone.utc) - timedelta(days=40)
    await make_subscription(current_period_start=past, auto_renew=False)

    summary = await run_billing_jobs_once(
        subscription_service, renewals=False, stale_payments=False, db=db_session
    )

    assert summary == {"expired_subscriptions": 1}
