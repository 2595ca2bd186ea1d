"""Payment creation and status endpoints for authenticated students."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from coursepay.api.dependencies.auth import get_current_user, get_payment_service
from coursepay.core.logging_config import get_logger
from coursepay.core.response import (
    ResponseModel,
    billing_error_response,
    error_response,
    success_response,
)
from coursepay.core.security import CurrentUser
from coursepay.db.deps import get_db
from coursepay.schemas.payments import CreatePaymentRequest
from coursepay.services.payments.payment_service import PaymentService

logger = get_logger(__name__)
router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("", response_model=ResponseModel, status_code=201)
async def create_payment(
    req: CreatePaymentRequest,
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    payment_service: PaymentService = Depends(get_payment_service),
):
    """Start a payment for the caller.

    Gateway payments come back pending with the gateway order id the client
    needs for checkout; wallet payments are completed immediately.
    """
    config = dict(
        gateway=req.gateway,
        amount=req.amount,
        currency=req.currency,
        description=req.description,
        student_id=current_user.id,
        course_id=req.course_id,
        subscription_id=req.subscription_id,
        enrollment_id=req.enrollment_id,
        metadata=req.metadata,
    )
    result = await payment_service.create_payment(db, config)
    if not result.success:
        return billing_error_response(
            result.error, result.error_code, data={"payment_id": result.payment_id}
        )

    return success_response(
        msg="Payment created",
        data={
            "payment_id": result.payment_id,
            "order_id": result.order_id,
            "gateway": req.gateway.value,
            "gateway_response": result.gateway_response,
        },
        status_code=201,
    )


@router.get("/{payment_id}", response_model=ResponseModel)
async def get_payment(
    payment_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    payment_service: PaymentService = Depends(get_payment_service),
):
    payment = await payment_service.get_payment_status(db, payment_id)
    if payment is None:
        return error_response("Payment not found", status_code=404)
    if payment["student_id"] != str(current_user.id) and not current_user.is_admin:
        # Same answer as a missing payment; ids of other students are not confirmed
        return error_response("Payment not found", status_code=404)
    return success_response(msg="Payment retrieved", data=payment)
