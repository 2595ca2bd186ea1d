"""Admin refund endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from coursepay.api.dependencies.auth import get_payment_service
from coursepay.core.logging_config import get_logger
from coursepay.core.response import ResponseModel, billing_error_response, success_response
from coursepay.core.security import ADMIN_ROLES, CurrentUser, require_roles
from coursepay.db.deps import get_db
from coursepay.schemas.payments import RefundRequest
from coursepay.services.payments.payment_service import PaymentService

logger = get_logger(__name__)
router = APIRouter(prefix="/payments", tags=["refunds"])

admin_guard = require_roles(*ADMIN_ROLES)


@router.post("/refunds", response_model=ResponseModel)
async def create_refund(
    req: RefundRequest,
    current_admin: CurrentUser = Depends(admin_guard),
    db: AsyncSession = Depends(get_db),
    payment_service: PaymentService = Depends(get_payment_service),
):
    logger.info(f"Refund requested by {current_admin.id}: payment={req.payment_id}, amount={req.amount}")
    result = await payment_service.process_refund(
        db,
        payment_id=req.payment_id,
        amount=req.amount,
        reason=req.reason,
        requested_by=current_admin.id,
    )
    if not result.success:
        return billing_error_response(
            result.error,
            result.error_code,
            data={"refund_id": result.refund_id} if result.refund_id else None,
        )
    return success_response(
        msg="Refund processed",
        data={
            "payment_id": result.payment_id,
            "refund_id": result.refund_id,
            "gateway_refund_id": result.order_id,
        },
    )
