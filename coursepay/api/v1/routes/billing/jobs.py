"""Cron trigger for the billing sweeps (renewals, expiry, stale payments)."""

from __future__ import annotations

import hmac
from typing import Optional

from fastapi import APIRouter, Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from coursepay.api.dependencies.auth import get_subscription_service
from coursepay.core.config import settings
from coursepay.core.logging_config import get_logger
from coursepay.core.response import ResponseModel, error_response, success_response
from coursepay.db.deps import get_db
from coursepay.services.payments.billing_jobs import run_billing_jobs_once
from coursepay.services.payments.subscription_service import SubscriptionService

logger = get_logger(__name__)
router = APIRouter(prefix="/billing", tags=["billing"])


@router.post("/jobs/run", response_model=ResponseModel)
async def run_billing_jobs(
    x_cron_secret: Optional[str] = Header(None),
    db: AsyncSession = Depends(get_db),
    service: SubscriptionService = Depends(get_subscription_service),
):
    if not settings.CRON_SECRET or not x_cron_secret or not hmac.compare_digest(
        x_cron_secret, settings.CRON_SECRET
    ):
        logger.warning("Billing jobs trigger rejected: bad or missing X-Cron-Secret")
        return error_response("Forbidden", status_code=403)

    summary = await run_billing_jobs_once(service, db=db)
    return success_response(msg="Billing jobs completed", data=summary)
