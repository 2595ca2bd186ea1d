"""Payment orchestration - single entry point for creating, settling and refunding payments."""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field
from datetime import timedelta
from decimal import Decimal
from typing import Any, Dict, Optional, Union

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from coursepay.core.config import settings
from coursepay.core.exceptions import (
    BillingError,
    InvalidSignature,
    InvalidStateError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from coursepay.core.logging_config import get_audit_logger, get_logger
from coursepay.models.gateway import PaymentWebhook
from coursepay.models.payment import Payment
from coursepay.models.refund import Refund
from coursepay.schemas.payments import PaymentConfig
from coursepay.services.payments import ledger
from coursepay.services.payments.gateway_set import GatewaySet
from coursepay.services.payments.wallet_bridge import WalletLedgerBridge
from coursepay.utils.datetime_utils import get_current_utc_datetime
from coursepay.utils.enums import (
    PaymentGateway,
    PaymentStatus,
    RefundStatus,
)

logger = get_logger(__name__)
audit_logger = get_audit_logger()


@dataclass
class PaymentResult:
    success: bool
    payment_id: Optional[str] = None
    order_id: Optional[str] = None
    refund_id: Optional[str] = None
    gateway_response: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    error_code: Optional[str] = None

    @classmethod
    def failure(cls, exc: BillingError, **kwargs) -> "PaymentResult":
        return cls(success=False, error=exc.message, error_code=exc.error_code, **kwargs)


@dataclass
class WebhookResult:
    """Outcome of an inbound webhook.

    ``success`` is True for verified-and-applied webhooks as well as for
    no-ops (bad signature, unknown order, non-settling event); ``verified``
    and ``status`` say what actually happened.
    """
    success: bool
    verified: bool = False
    payment_id: Optional[str] = None
    status: Optional[str] = None
    error: Optional[str] = None
    notes: list[str] = field(default_factory=list)


def as_uuid(value: Union[str, uuid.UUID], label: str = "id") -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError as e:
        raise ValidationError(f"Invalid {label}: {value}") from e


def _validation_message(exc: PydanticValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(x) for x in err.get("loc", []))
        parts.append(f"{loc}: {err.get('msg')}" if loc else err.get("msg", "invalid"))
    return "; ".join(parts) or "Invalid payment request"


class PaymentService:
    """Dispatches payments to gateway clients or the wallet bridge.

    The gateway set is built once at startup (see ``build_gateway_set``) and
    injected here; the service itself holds no mutable state.
    """

    def __init__(self, gateways: GatewaySet, wallet_bridge: Optional[WalletLedgerBridge] = None):
        self.gateways = gateways
        self.wallet_bridge = wallet_bridge or WalletLedgerBridge()

    async def create_payment(
        self,
        db: AsyncSession,
        config: Union[PaymentConfig, Dict[str, Any]],
    ) -> PaymentResult:
        """Create a pending payment and start it on the chosen gateway.

        The payment row is committed before any gateway call, so a record
        exists even when the gateway fails; such payments stay pending until
        the stale-payment job fails them after ``expires_at``.
        """
        payment_id: Optional[uuid.UUID] = None
        try:
            validated = self._validate(config)

            payment = Payment(
                id=uuid.uuid4(),
                student_id=validated.student_id,
                enrollment_id=validated.enrollment_id,
                course_id=validated.course_id,
                subscription_id=validated.subscription_id,
                amount=validated.amount,
                currency=validated.currency,
                description=validated.description,
                gateway=validated.gateway,
                status=PaymentStatus.pending,
                webhook_verified=False,
                extra_metadata=validated.metadata or {},
            )
            db.add(payment)
            try:
                await db.commit()
            except SQLAlchemyError as e:
                await db.rollback()
                raise PersistenceError("Failed to create payment record") from e
            payment_id = payment.id
            logger.info(
                f"Payment created: id={payment_id}, gateway={validated.gateway.value}, "
                f"student={validated.student_id}, amount={validated.amount} {validated.currency}"
            )

            if validated.gateway == PaymentGateway.wallet:
                await self.wallet_bridge.charge(
                    db, payment, validated.description, validated.metadata
                )
                return PaymentResult(
                    success=True,
                    payment_id=str(payment_id),
                    order_id=str(payment_id),
                )

            client = self.gateways.get(validated.gateway)
            order = await client.create_order(
                amount=validated.amount,
                currency=validated.currency,
                receipt_id=str(payment_id),
                description=validated.description,
                metadata={
                    "student_id": str(validated.student_id),
                    "course_id": str(validated.course_id or ""),
                    "subscription_id": str(validated.subscription_id or ""),
                    **(validated.metadata or {}),
                },
            )

            payment.gateway_order_id = order.gateway_order_id
            if order.gateway_payment_id:
                payment.gateway_payment_id = order.gateway_payment_id
            payment.expires_at = get_current_utc_datetime() + timedelta(
                minutes=settings.PAYMENT_EXPIRY_MINUTES
            )
            try:
                await db.commit()
            except SQLAlchemyError as e:
                await db.rollback()
                raise PersistenceError("Failed to store gateway order id") from e

            return PaymentResult(
                success=True,
                payment_id=str(payment_id),
                order_id=order.gateway_order_id,
                gateway_response=order.raw,
            )

        except BillingError as e:
            await db.rollback()
            logger.warning(f"Payment creation failed: payment={payment_id}, error={e.error_code}: {e.message}")
            return PaymentResult.failure(e, payment_id=str(payment_id) if payment_id else None)
        except Exception as e:
            await db.rollback()
            logger.error(f"Payment creation failed: payment={payment_id}: {e}", exc_info=True)
            return PaymentResult(
                success=False,
                payment_id=str(payment_id) if payment_id else None,
                error="Payment creation failed",
            )

    def _validate(self, config: Union[PaymentConfig, Dict[str, Any]]) -> PaymentConfig:
        if isinstance(config, PaymentConfig):
            return config
        try:
            return PaymentConfig.model_validate(config)
        except PydanticValidationError as e:
            raise ValidationError(_validation_message(e)) from e

    async def handle_webhook(
        self,
        db: AsyncSession,
        gateway: Union[PaymentGateway, str],
        payload: bytes,
        signature: Optional[str],
    ) -> WebhookResult:
        """Log, verify and apply a gateway webhook.

        The raw body is logged before verification. State only changes for a
        verified event that settles a pending payment.
        """
        try:
            body = json.loads(payload)
        except (ValueError, UnicodeDecodeError):
            body = None

        event_type = "unknown"
        if isinstance(body, dict):
            event_type = body.get("event") or body.get("type") or "unknown"

        webhook_log = PaymentWebhook(
            id=uuid.uuid4(),
            gateway=str(getattr(gateway, "value", gateway)),
            event_type=event_type,
            payload=body if isinstance(body, dict) else None,
            raw_body=payload.decode("utf-8", errors="replace"),
            signature=signature,
            verified=False,
        )
        db.add(webhook_log)
        try:
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error(f"Failed to log {gateway} webhook: {e}", exc_info=True)
            return WebhookResult(success=False, error="Webhook processing failed")

        try:
            try:
                gateway_enum = PaymentGateway(gateway)
            except ValueError:
                raise ValidationError(f"Unsupported gateway for webhook: {gateway}")
            if gateway_enum == PaymentGateway.wallet:
                raise ValidationError("Unsupported gateway for webhook: wallet")

            client = self.gateways.get(gateway_enum)
            if not client.verify_webhook_signature(payload, signature):
                raise InvalidSignature(
                    f"{gateway_enum.value} webhook rejected: invalid signature (log={webhook_log.id}, event={event_type})"
                )

            webhook_log.verified = True
            event = client.parse_webhook(payload)
            logger.info(
                f"{gateway_enum.value} webhook verified: event={event.event_type}, order={event.gateway_order_id}"
            )

            if event.status is None or not event.gateway_order_id:
                await db.commit()
                return WebhookResult(success=True, verified=True, notes=[f"Ignored event {event.event_type}"])

            payment = (
                await db.execute(
                    select(Payment).where(
                        Payment.gateway == gateway_enum,
                        Payment.gateway_order_id == event.gateway_order_id,
                    )
                )
            ).scalar_one_or_none()

            if payment is None:
                logger.warning(f"No payment for {gateway_enum.value} order {event.gateway_order_id}")
                await db.commit()
                return WebhookResult(success=True, verified=True, notes=["No matching payment"])

            if payment.status != PaymentStatus.pending:
                # Payments never move backward; replays are no-ops
                logger.info(f"Payment {payment.id} already {payment.status.value}; webhook ignored")
                await db.commit()
                return WebhookResult(
                    success=True,
                    verified=True,
                    payment_id=str(payment.id),
                    status=payment.status.value,
                    notes=["Payment already settled"],
                )

            payment.webhook_verified = True
            if event.gateway_payment_id:
                payment.gateway_payment_id = event.gateway_payment_id
            if event.payment_method:
                payment.payment_method = event.payment_method

            if event.status == PaymentStatus.completed:
                payment.status = PaymentStatus.completed
                payment.payment_date = event.paid_at or get_current_utc_datetime()
                payment.status_message = "Payment captured"
                await db.flush()
                await ledger.create_invoice_for_payment(db, payment.id)
            else:
                payment.status = PaymentStatus.failed
                payment.status_message = "Payment failed at gateway"

            await db.commit()
            audit_logger.info(
                f"payment={payment.id} status={payment.status.value} gateway={gateway_enum.value} "
                f"gateway_payment={payment.gateway_payment_id} amount={payment.amount} {payment.currency}"
            )
            return WebhookResult(
                success=True,
                verified=True,
                payment_id=str(payment.id),
                status=payment.status.value,
            )

        except InvalidSignature as e:
            # Logged row stays unverified; nothing else is touched
            logger.warning(e.message)
            return WebhookResult(success=True, verified=False, error="Invalid webhook signature")
        except BillingError as e:
            await db.rollback()
            logger.error(f"{gateway} webhook not applied: {e.error_code}: {e.message}")
            return WebhookResult(success=False, error=e.message)
        except Exception as e:
            await db.rollback()
            logger.error(f"{gateway} webhook processing failed: {e}", exc_info=True)
            return WebhookResult(success=False, error="Webhook processing failed")

    async def process_refund(
        self,
        db: AsyncSession,
        payment_id: Union[str, uuid.UUID],
        amount: Decimal,
        reason: str,
        requested_by: Union[str, uuid.UUID],
    ) -> PaymentResult:
        """Refund part or all of a completed payment.

        The ledger-side refund row is committed before the gateway call. If
        the gateway then fails, the refund stays pending and needs manual
        reconciliation; the ledger entry is not reversed.
        """
        refund_id: Optional[uuid.UUID] = None
        try:
            payment_uuid = as_uuid(payment_id, "payment id")
            requester_uuid = as_uuid(requested_by, "requester id")
            amount = Decimal(str(amount))
            if amount <= 0:
                raise ValidationError("Refund amount must be positive")
            if amount != amount.quantize(Decimal("0.01")):
                raise ValidationError("Refund amount must have at most 2 decimal places")

            payment = await db.get(Payment, payment_uuid)
            if payment is None:
                raise NotFoundError("Payment not found")
            if payment.status != PaymentStatus.completed:
                raise InvalidStateError("Cannot refund incomplete payment")

            refund_id = await ledger.process_refund(db, payment_uuid, amount, reason, requester_uuid)
            try:
                await db.commit()
            except SQLAlchemyError as e:
                await db.rollback()
                refund_id = None
                raise PersistenceError("Failed to process refund") from e

            gateway_refund_id = None
            if payment.gateway != PaymentGateway.wallet:
                client = self.gateways.get(payment.gateway)
                outcome = await client.refund(payment.gateway_payment_id, amount)
                gateway_refund_id = outcome.gateway_refund_id

            refund = await db.get(Refund, refund_id)
            refund.status = RefundStatus.completed
            refund.processed_at = get_current_utc_datetime()
            refund.gateway_refund_id = gateway_refund_id
            await db.commit()

            audit_logger.info(
                f"refund completed: refund={refund_id}, payment={payment_uuid}, amount={amount}, gateway_refund={gateway_refund_id}"
            )
            return PaymentResult(
                success=True,
                payment_id=str(payment_uuid),
                refund_id=str(refund_id),
                order_id=gateway_refund_id,
            )

        except BillingError as e:
            await db.rollback()
            logger.warning(f"Refund failed: payment={payment_id}, refund={refund_id}, error={e.error_code}: {e.message}")
            return PaymentResult.failure(
                e,
                payment_id=str(payment_id),
                refund_id=str(refund_id) if refund_id else None,
            )
        except Exception as e:
            await db.rollback()
            logger.error(f"Refund processing failed: payment={payment_id}: {e}", exc_info=True)
            return PaymentResult(
                success=False,
                payment_id=str(payment_id),
                refund_id=str(refund_id) if refund_id else None,
                error="Refund processing failed",
            )

    async def get_payment_status(
        self,
        db: AsyncSession,
        payment_id: Union[str, uuid.UUID],
    ) -> Optional[Dict[str, Any]]:
        """Payment with its refunds and invoice, or None."""
        try:
            payment_uuid = as_uuid(payment_id, "payment id")
        except ValidationError:
            return None
        payment = (
            await db.execute(
                select(Payment)
                .where(Payment.id == payment_uuid)
                .options(selectinload(Payment.refunds), selectinload(Payment.invoice))
            )
        ).scalar_one_or_none()
        if payment is None:
            return None

        data = payment.to_dict()
        data["refunds"] = [r.to_dict() for r in payment.refunds]
        data["invoice"] = payment.invoice.to_dict() if payment.invoice else None
        return data
