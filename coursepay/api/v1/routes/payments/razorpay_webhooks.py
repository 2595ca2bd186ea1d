"""Razorpay webhook handler - settle orders on payment.captured / payment.failed."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from coursepay.api.dependencies.auth import get_payment_service
from coursepay.core.logging_config import get_logger
from coursepay.core.response import ResponseModel, success_response
from coursepay.db.deps import get_db
from coursepay.services.payments.payment_service import PaymentService
from coursepay.utils.enums import PaymentGateway

logger = get_logger(__name__)
router = APIRouter(prefix="/payments/razorpay", tags=["webhooks"])


@router.post("/webhook", response_model=ResponseModel)
async def razorpay_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),
    payment_service: PaymentService = Depends(get_payment_service),
):
    """Handle Razorpay webhook events.

    Always answers 200 so Razorpay does not keep retrying events we have
    already logged; rejected signatures are only visible in the logs and the
    payment_webhooks table.
    """
    payload = await request.body()
    signature = request.headers.get("x-razorpay-signature")
    if not signature:
        logger.warning("Razorpay webhook: Missing signature header")

    result = await payment_service.handle_webhook(db, PaymentGateway.razorpay, payload, signature)
    logger.info(
        f"Razorpay webhook handled: verified={result.verified}, payment={result.payment_id}, status={result.status}"
    )
    return success_response(msg="Webhook received", data={"received": True})
