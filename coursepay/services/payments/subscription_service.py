"""Subscription service - recurring course billing on top of PaymentService."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from coursepay.core.config import settings
from coursepay.core.exceptions import (
    BillingError,
    InvalidStateError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from coursepay.core.logging_config import get_audit_logger, get_logger
from coursepay.models.payment import Payment
from coursepay.models.subscription import Subscription
from coursepay.models.subscription_event import SubscriptionEvent
from coursepay.schemas.payments import PaymentConfig
from coursepay.schemas.subscriptions import SubscriptionConfig
from coursepay.services.payments.payment_service import PaymentService, as_uuid
from coursepay.utils.datetime_utils import add_billing_cycle, get_current_utc_datetime
from coursepay.utils.enums import (
    SUBSCRIPTION_TRANSITIONS,
    PaymentGateway,
    SubscriptionEventType,
    SubscriptionStatus,
)

logger = get_logger(__name__)
audit_logger = get_audit_logger()


@dataclass
class SubscriptionResult:
    success: bool
    subscription_id: Optional[str] = None
    payment_id: Optional[str] = None
    error: Optional[str] = None
    error_code: Optional[str] = None

    @classmethod
    def failure(cls, exc: BillingError, **kwargs) -> "SubscriptionResult":
        return cls(success=False, error=exc.message, error_code=exc.error_code, **kwargs)


class SubscriptionService:
    """Lifecycle of course subscriptions.

    Every status change writes exactly one SubscriptionEvent in the same
    commit as the change itself.
    """

    def __init__(self, payment_service: PaymentService):
        self.payment_service = payment_service
        logger.info("SubscriptionService initialized")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _log_event(
        self,
        db: AsyncSession,
        subscription: Subscription,
        event_type: SubscriptionEventType,
        previous_status: Optional[SubscriptionStatus],
        metadata: Optional[Dict[str, Any]] = None,
        payment_id: Optional[uuid.UUID] = None,
    ) -> SubscriptionEvent:
        event = SubscriptionEvent(
            id=uuid.uuid4(),
            subscription_id=subscription.id,
            event_type=event_type.value,
            previous_status=previous_status,
            new_status=subscription.status,
            extra_metadata=metadata or {},
            payment_id=payment_id,
            created_at=get_current_utc_datetime(),
        )
        db.add(event)
        return event

    async def _ensure_no_active(
        self,
        db: AsyncSession,
        student_id: uuid.UUID,
        course_id: uuid.UUID,
    ) -> None:
        """At most one active subscription per (student, course)."""
        existing = (
            await db.execute(
                select(Subscription.id).where(
                    Subscription.student_id == student_id,
                    Subscription.course_id == course_id,
                    Subscription.status == SubscriptionStatus.active,
                )
            )
        ).first()
        if existing is not None:
            raise InvalidStateError("Active subscription already exists for this course")

    async def _load(self, db: AsyncSession, subscription_id: Union[str, uuid.UUID]) -> Subscription:
        subscription = await db.get(Subscription, as_uuid(subscription_id, "subscription id"))
        if subscription is None:
            raise NotFoundError("Subscription not found")
        return subscription

    @staticmethod
    def _check_transition(subscription: Subscription, target: SubscriptionStatus, message: str) -> None:
        if target not in SUBSCRIPTION_TRANSITIONS[subscription.status]:
            raise InvalidStateError(message)

    async def _commit(self, db: AsyncSession, action: str) -> None:
        try:
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            raise PersistenceError(f"Failed to {action}") from e

    async def _request_payment(self, db: AsyncSession, subscription: Subscription, description: str):
        return await self.payment_service.create_payment(
            db,
            PaymentConfig(
                gateway=subscription.gateway,
                amount=subscription.amount,
                currency=subscription.currency,
                description=description,
                student_id=subscription.student_id,
                course_id=subscription.course_id,
                subscription_id=subscription.id,
                metadata={"billing_cycle": subscription.billing_cycle.value},
            ),
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def create_subscription(
        self,
        db: AsyncSession,
        config: Union[SubscriptionConfig, Dict[str, Any]],
    ) -> SubscriptionResult:
        """Create an active subscription and request its first payment.

        If the first payment cannot be started the subscription is deleted
        again; payments already pointing at it are detached, not deleted.
        """
        subscription_id: Optional[uuid.UUID] = None
        try:
            if isinstance(config, SubscriptionConfig):
                validated = config
            else:
                try:
                    validated = SubscriptionConfig.model_validate(config)
                except PydanticValidationError as e:
                    raise ValidationError(f"Invalid subscription request: {e.errors()[0].get('msg')}") from e

            await self._ensure_no_active(db, validated.student_id, validated.course_id)

            start = validated.start_date or get_current_utc_datetime()
            period_end = add_billing_cycle(start, validated.billing_cycle)
            gateway = validated.gateway or PaymentGateway(settings.DEFAULT_SUBSCRIPTION_GATEWAY)

            subscription = Subscription(
                id=uuid.uuid4(),
                student_id=validated.student_id,
                course_id=validated.course_id,
                status=SubscriptionStatus.active,
                billing_cycle=validated.billing_cycle,
                amount=validated.amount,
                currency=validated.currency,
                gateway=gateway,
                current_period_start=start,
                current_period_end=period_end,
                next_billing_date=period_end,
                auto_renew=validated.auto_renew,
                failed_payment_count=0,
            )
            db.add(subscription)
            await self._commit(db, "create subscription")
            subscription_id = subscription.id

            payment = await self._request_payment(
                db, subscription, f"Subscription for course {validated.course_id}"
            )
            if not payment.success:
                await self._discard(db, subscription, subscription_id)
                logger.warning(
                    f"Subscription {subscription_id} rolled back: initial payment failed ({payment.error})"
                )
                return SubscriptionResult(
                    success=False,
                    payment_id=payment.payment_id,
                    error=payment.error or "Failed to create initial payment",
                    error_code=payment.error_code,
                )

            await db.refresh(subscription)
            self._log_event(
                db,
                subscription,
                SubscriptionEventType.created,
                None,
                metadata={"billing_cycle": validated.billing_cycle.value},
                payment_id=uuid.UUID(payment.payment_id),
            )
            await self._commit(db, "log subscription event")

            logger.info(
                f"Subscription created: id={subscription_id}, student={validated.student_id}, "
                f"course={validated.course_id}, cycle={validated.billing_cycle.value}"
            )
            return SubscriptionResult(
                success=True,
                subscription_id=str(subscription_id),
                payment_id=payment.payment_id,
            )

        except BillingError as e:
            await db.rollback()
            logger.warning(f"Subscription creation failed: {e.error_code}: {e.message}")
            return SubscriptionResult.failure(e)
        except Exception as e:
            await db.rollback()
            logger.error(f"Subscription creation failed: {e}", exc_info=True)
            return SubscriptionResult(success=False, error="Subscription creation failed")

    async def _discard(
        self, db: AsyncSession, subscription: Subscription, subscription_id: uuid.UUID
    ) -> None:
        # subscription may be expired after a rollback; only its id is used
        await db.execute(
            update(Payment)
            .where(Payment.subscription_id == subscription_id)
            .values(subscription_id=None)
            .execution_options(synchronize_session=False)
        )
        await db.execute(
            delete(Subscription)
            .where(Subscription.id == subscription_id)
            .execution_options(synchronize_session=False)
        )
        await self._commit(db, "discard subscription")
        if subscription in db:
            db.expunge(subscription)

    async def renew_subscription(
        self,
        db: AsyncSession,
        subscription_id: Union[str, uuid.UUID],
    ) -> SubscriptionResult:
        """Charge the next cycle and advance the billing period.

        The new period starts at the previous period end, not at "now", so a
        late renewal does not shift the billing calendar. A failed charge only
        bumps ``failed_payment_count``; the subscription stays active.
        """
        try:
            subscription = await self._load(db, subscription_id)
            if subscription.status != SubscriptionStatus.active:
                raise InvalidStateError("Only active subscriptions can be renewed")
            sub_id = subscription.id

            payment = await self._request_payment(
                db, subscription, f"Subscription renewal for course {subscription.course_id}"
            )
            await db.refresh(subscription)

            if not payment.success:
                subscription.failed_payment_count = (subscription.failed_payment_count or 0) + 1
                self._log_event(
                    db,
                    subscription,
                    SubscriptionEventType.payment_failed,
                    subscription.status,
                    metadata={
                        "error": payment.error,
                        "failed_payment_count": subscription.failed_payment_count,
                    },
                    payment_id=uuid.UUID(payment.payment_id) if payment.payment_id else None,
                )
                await self._commit(db, "record failed renewal")
                logger.warning(
                    f"Renewal payment failed: subscription={sub_id}, "
                    f"failures={subscription.failed_payment_count}, error={payment.error}"
                )
                return SubscriptionResult(
                    success=False,
                    subscription_id=str(sub_id),
                    payment_id=payment.payment_id,
                    error=payment.error or "Renewal payment failed",
                    error_code=payment.error_code,
                )

            new_start = subscription.current_period_end
            new_end = add_billing_cycle(new_start, subscription.billing_cycle)
            subscription.current_period_start = new_start
            subscription.current_period_end = new_end
            subscription.next_billing_date = new_end
            subscription.failed_payment_count = 0
            self._log_event(
                db,
                subscription,
                SubscriptionEventType.renewed,
                subscription.status,
                metadata={"period_end": new_end.isoformat()},
                payment_id=uuid.UUID(payment.payment_id),
            )
            await self._commit(db, "renew subscription")

            audit_logger.info(f"subscription={sub_id} renewed until {new_end.isoformat()} payment={payment.payment_id}")
            return SubscriptionResult(
                success=True,
                subscription_id=str(sub_id),
                payment_id=payment.payment_id,
            )

        except BillingError as e:
            await db.rollback()
            logger.warning(f"Renewal of {subscription_id} failed: {e.error_code}: {e.message}")
            return SubscriptionResult.failure(e, subscription_id=str(subscription_id))
        except Exception as e:
            await db.rollback()
            logger.error(f"Renewal of {subscription_id} failed: {e}", exc_info=True)
            return SubscriptionResult(
                success=False, subscription_id=str(subscription_id), error="Subscription renewal failed"
            )

    async def cancel_subscription(
        self,
        db: AsyncSession,
        subscription_id: Union[str, uuid.UUID],
        reason: Optional[str] = None,
    ) -> SubscriptionResult:
        try:
            subscription = await self._load(db, subscription_id)
            if subscription.status == SubscriptionStatus.cancelled:
                raise InvalidStateError("Subscription already cancelled")
            self._check_transition(
                subscription, SubscriptionStatus.cancelled, "Cannot cancel an expired subscription"
            )

            previous = subscription.status
            subscription.status = SubscriptionStatus.cancelled
            subscription.auto_renew = False
            subscription.cancelled_at = get_current_utc_datetime()
            subscription.cancellation_reason = reason
            self._log_event(
                db, subscription, SubscriptionEventType.cancelled, previous, metadata={"reason": reason}
            )
            await self._commit(db, "cancel subscription")

            logger.info(f"Subscription {subscription.id} cancelled (reason={reason})")
            return SubscriptionResult(success=True, subscription_id=str(subscription.id))

        except BillingError as e:
            await db.rollback()
            return SubscriptionResult.failure(e, subscription_id=str(subscription_id))
        except Exception as e:
            await db.rollback()
            logger.error(f"Cancel of {subscription_id} failed: {e}", exc_info=True)
            return SubscriptionResult(
                success=False, subscription_id=str(subscription_id), error="Subscription cancellation failed"
            )

    async def pause_subscription(
        self,
        db: AsyncSession,
        subscription_id: Union[str, uuid.UUID],
        reason: Optional[str] = None,
    ) -> SubscriptionResult:
        try:
            subscription = await self._load(db, subscription_id)
            if subscription.status != SubscriptionStatus.active:
                raise InvalidStateError("Only active subscriptions can be paused")

            previous = subscription.status
            subscription.status = SubscriptionStatus.paused
            subscription.auto_renew = False
            self._log_event(
                db, subscription, SubscriptionEventType.paused, previous, metadata={"reason": reason}
            )
            await self._commit(db, "pause subscription")

            logger.info(f"Subscription {subscription.id} paused")
            return SubscriptionResult(success=True, subscription_id=str(subscription.id))

        except BillingError as e:
            await db.rollback()
            return SubscriptionResult.failure(e, subscription_id=str(subscription_id))
        except Exception as e:
            await db.rollback()
            logger.error(f"Pause of {subscription_id} failed: {e}", exc_info=True)
            return SubscriptionResult(
                success=False, subscription_id=str(subscription_id), error="Subscription pause failed"
            )

    async def resume_subscription(
        self,
        db: AsyncSession,
        subscription_id: Union[str, uuid.UUID],
    ) -> SubscriptionResult:
        """Reactivate a paused subscription.

        The billing period restarts at the resume time; whatever was left of
        the period when it was paused is not carried over.
        """
        try:
            subscription = await self._load(db, subscription_id)
            if subscription.status != SubscriptionStatus.paused:
                raise InvalidStateError("Only paused subscriptions can be resumed")
            await self._ensure_no_active(db, subscription.student_id, subscription.course_id)

            now = get_current_utc_datetime()
            period_end = add_billing_cycle(now, subscription.billing_cycle)
            previous = subscription.status
            subscription.status = SubscriptionStatus.active
            subscription.auto_renew = True
            subscription.current_period_start = now
            subscription.current_period_end = period_end
            subscription.next_billing_date = period_end
            self._log_event(db, subscription, SubscriptionEventType.resumed, previous)
            await self._commit(db, "resume subscription")

            logger.info(f"Subscription {subscription.id} resumed; period ends {period_end.isoformat()}")
            return SubscriptionResult(success=True, subscription_id=str(subscription.id))

        except BillingError as e:
            await db.rollback()
            return SubscriptionResult.failure(e, subscription_id=str(subscription_id))
        except Exception as e:
            await db.rollback()
            logger.error(f"Resume of {subscription_id} failed: {e}", exc_info=True)
            return SubscriptionResult(
                success=False, subscription_id=str(subscription_id), error="Subscription resume failed"
            )

    # ------------------------------------------------------------------
    # Sweeps
    # ------------------------------------------------------------------

    async def process_scheduled_renewals(self, db: AsyncSession) -> Dict[str, int]:
        """Renew up to RENEWAL_BATCH_SIZE due subscriptions.

        Each row is renewed on its own; one failure never stops the batch.
        """
        now = get_current_utc_datetime()
        due_ids = (
            await db.execute(
                select(Subscription.id)
                .where(Subscription.status == SubscriptionStatus.active)
                .where(Subscription.auto_renew.is_(True))
                .where(Subscription.next_billing_date <= now)
                .order_by(Subscription.next_billing_date)
                .limit(settings.RENEWAL_BATCH_SIZE)
            )
        ).scalars().all()

        processed = failed = 0
        for sub_id in due_ids:
            try:
                result = await self.renew_subscription(db, sub_id)
            except Exception as e:
                await db.rollback()
                logger.exception(f"Scheduled renewal crashed for {sub_id}: {e}")
                failed += 1
                continue
            if result.success:
                processed += 1
            else:
                failed += 1

        if due_ids:
            logger.info(f"Scheduled renewals: processed={processed}, failed={failed}")
        return {"processed": processed, "failed": failed}

    async def expire_subscriptions(self, db: AsyncSession) -> int:
        """Expire active, non-renewing subscriptions whose period has ended."""
        now = get_current_utc_datetime()
        rows = (
            await db.execute(
                select(Subscription)
                .where(Subscription.status == SubscriptionStatus.active)
                .where(Subscription.auto_renew.is_(False))
                .where(Subscription.current_period_end < now)
            )
        ).scalars().all()

        for subscription in rows:
            previous = subscription.status
            subscription.status = SubscriptionStatus.expired
            self._log_event(db, subscription, SubscriptionEventType.expired, previous)

        if rows:
            await self._commit(db, "expire subscriptions")
            logger.info(f"Expired {len(rows)} subscriptions")
        return len(rows)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_subscription_details(
        self,
        db: AsyncSession,
        subscription_id: Union[str, uuid.UUID],
    ) -> Optional[Dict[str, Any]]:
        try:
            sub_uuid = as_uuid(subscription_id, "subscription id")
        except ValidationError:
            return None
        subscription = (
            await db.execute(
                select(Subscription)
                .where(Subscription.id == sub_uuid)
                .options(selectinload(Subscription.events))
            )
        ).scalar_one_or_none()
        if subscription is None:
            return None

        payments = (
            await db.execute(
                select(Payment)
                .where(Payment.subscription_id == sub_uuid)
                .order_by(Payment.created_at.desc())
            )
        ).scalars().all()

        data = subscription.to_dict()
        data["events"] = [e.to_dict() for e in subscription.events]
        data["payments"] = [p.to_dict() for p in payments]
        return data

    async def get_user_subscriptions(
        self,
        db: AsyncSession,
        student_id: Union[str, uuid.UUID],
    ) -> List[Dict[str, Any]]:
        rows = (
            await db.execute(
                select(Subscription)
                .where(Subscription.student_id == as_uuid(student_id, "student id"))
                .order_by(Subscription.created_at.desc())
            )
        ).scalars().all()
        return [s.to_dict() for s in rows]

