from __future__ import annotations

import uuid
from typing import Optional

from fastapi import APIRouter, Body, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from coursepay.api.dependencies.auth import get_current_user, get_subscription_service
from coursepay.core.logging_config import get_logger
from coursepay.core.response import (
    ResponseModel,
    billing_error_response,
    error_response,
    success_response,
)
from coursepay.core.security import CurrentUser
from coursepay.db.deps import get_db
from coursepay.models.subscription import Subscription
from coursepay.schemas.subscriptions import (
    CreateSubscriptionRequest,
    SubscriptionActionRequest,
)
from coursepay.services.payments.subscription_service import (
    SubscriptionResult,
    SubscriptionService,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/subscriptions", tags=["subscriptions"])


async def _can_manage(db: AsyncSession, subscription_id: str, user: CurrentUser) -> bool:
    """True when the subscription exists and belongs to the caller (admins manage all)."""
    try:
        sub_uuid = uuid.UUID(subscription_id)
    except ValueError:
        return False
    owner = (
        await db.execute(select(Subscription.student_id).where(Subscription.id == sub_uuid))
    ).scalar_one_or_none()
    if owner is None:
        return False
    return owner == user.id or user.is_admin


def _result_response(result: SubscriptionResult, msg: str):
    if not result.success:
        return billing_error_response(
            result.error,
            result.error_code,
            data={"payment_id": result.payment_id} if result.payment_id else None,
        )
    return success_response(
        msg=msg,
        data={"subscription_id": result.subscription_id, "payment_id": result.payment_id},
    )


@router.post("", response_model=ResponseModel, status_code=201)
async def create_subscription(
    req: CreateSubscriptionRequest,
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    service: SubscriptionService = Depends(get_subscription_service),
):
    """
    Subscribe the caller to a course and start the first payment.
    Fails with 409 if the caller already has an active subscription for the course.
    """
    config = dict(
        student_id=current_user.id,
        course_id=req.course_id,
        billing_cycle=req.billing_cycle,
        amount=req.amount,
        currency=req.currency,
        auto_renew=req.auto_renew,
        gateway=req.gateway,
    )
    result = await service.create_subscription(db, config)
    if not result.success:
        return _result_response(result, "Subscription creation failed")
    return success_response(
        msg="Subscription created",
        data={"subscription_id": result.subscription_id, "payment_id": result.payment_id},
        status_code=201,
    )


@router.get("", response_model=ResponseModel)
async def list_subscriptions(
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    service: SubscriptionService = Depends(get_subscription_service),
):
    subscriptions = await service.get_user_subscriptions(db, current_user.id)
    return success_response(msg="Subscriptions retrieved", data=subscriptions)


@router.get("/{subscription_id}", response_model=ResponseModel)
async def get_subscription(
    subscription_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    service: SubscriptionService = Depends(get_subscription_service),
):
    if not await _can_manage(db, subscription_id, current_user):
        return error_response("Subscription not found", status_code=404)
    details = await service.get_subscription_details(db, subscription_id)
    return success_response(msg="Subscription retrieved", data=details)


@router.post("/{subscription_id}/renew", response_model=ResponseModel)
async def renew_subscription(
    subscription_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    service: SubscriptionService = Depends(get_subscription_service),
):
    if not await _can_manage(db, subscription_id, current_user):
        return error_response("Subscription not found", status_code=404)
    result = await service.renew_subscription(db, subscription_id)
    return _result_response(result, "Subscription renewed")


@router.post("/{subscription_id}/cancel", response_model=ResponseModel)
async def cancel_subscription(
    subscription_id: str,
    req: Optional[SubscriptionActionRequest] = Body(None),
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    service: SubscriptionService = Depends(get_subscription_service),
):
    if not await _can_manage(db, subscription_id, current_user):
        return error_response("Subscription not found", status_code=404)
    result = await service.cancel_subscription(db, subscription_id, req.reason if req else None)
    return _result_response(result, "Subscription cancelled")


@router.post("/{subscription_id}/pause", response_model=ResponseModel)
async def pause_subscription(
    subscription_id: str,
    req: Optional[SubscriptionActionRequest] = Body(None),
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    service: SubscriptionService = Depends(get_subscription_service),
):
    if not await _can_manage(db, subscription_id, current_user):
        return error_response("Subscription not found", status_code=404)
    result = await service.pause_subscription(db, subscription_id, req.reason if req else None)
    return _result_response(result, "Subscription paused")


@router.post("/{subscription_id}/resume", response_model=ResponseModel)
async def resume_subscription(
    subscription_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    service: SubscriptionService = Depends(get_subscription_service),
):
    if not await _can_manage(db, subscription_id, current_user):
        return error_response("Subscription not found", status_code=404)
    result = await service.resume_subscription(db, subscription_id)
    return _result_response(result, "Subscription resumed")
