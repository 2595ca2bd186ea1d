"""Razorpay API client - order creation, webhook verification and refunds."""

from __future__ import annotations

import asyncio
import hashlib
import hmac
import json
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Optional

import razorpay

from coursepay.core.exceptions import GatewayError
from coursepay.core.logging_config import get_logger
from coursepay.services.payments.base import (
    GatewayClient,
    OrderResult,
    RefundOutcome,
    WebhookEvent,
    to_minor_units,
)
from coursepay.utils.enums import PaymentGateway, PaymentStatus

logger = get_logger(__name__)


class RazorpayClient(GatewayClient):
    """Wrapper for the Razorpay SDK (card/UPI gateway)."""

    gateway_id = PaymentGateway.razorpay

    def __init__(self, key_id: str, key_secret: str, webhook_secret: Optional[str] = None):
        if not key_id or not key_secret:
            raise GatewayError("Razorpay key_id/key_secret not configured")
        super().__init__(webhook_secret)
        self.client = razorpay.Client(auth=(key_id, key_secret))
        logger.info("Razorpay client initialized")

    async def create_order(
        self,
        amount: Decimal,
        currency: str,
        receipt_id: str,
        description: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> OrderResult:
        """Create a Razorpay order; the receipt is our payment id."""
        data = {
            "amount": to_minor_units(amount),  # paise
            "currency": currency.upper(),
            "receipt": receipt_id,
            "notes": {k: str(v) for k, v in (metadata or {}).items()},
        }
        try:
            logger.info(f"Creating Razorpay order: receipt={receipt_id}, amount={data['amount']}")
            order = await asyncio.to_thread(self.client.order.create, data=data)
        except Exception as e:
            logger.error(f"Razorpay order creation failed for receipt {receipt_id}: {e}")
            raise GatewayError("Failed to create Razorpay order") from e

        order_id = order.get("id") if isinstance(order, dict) else None
        if not order_id:
            raise GatewayError(f"Razorpay response missing order id: {order}")

        logger.info(f"Razorpay order created: order_id={order_id}, receipt={receipt_id}")
        return OrderResult(gateway_order_id=order_id, raw=order)

    def verify_webhook_signature(
        self,
        payload: bytes,
        signature: Optional[str],
        secret: Optional[str] = None,
    ) -> bool:
        """HMAC-SHA256 hex digest of the raw body, compared in constant time."""
        secret = secret or self.webhook_secret
        if not secret or not signature:
            return False
        computed = hmac.new(secret.encode(), payload, hashlib.sha256).hexdigest()
        return hmac.compare_digest(computed, signature)

    def parse_webhook(self, payload: bytes) -> WebhookEvent:
        """Parse payment.captured / payment.failed; other events carry no status."""
        body = json.loads(payload)
        event_type = body.get("event", "unknown")
        entity = ((body.get("payload") or {}).get("payment") or {}).get("entity") or {}

        status = None
        if event_type == "payment.captured":
            status = PaymentStatus.completed
        elif event_type == "payment.failed":
            status = PaymentStatus.failed

        paid_at = None
        if entity.get("created_at"):
            paid_at = datetime.fromtimestamp(int(entity["created_at"]), tz=timezone.utc)

        return WebhookEvent(
            event_type=event_type,
            gateway_order_id=entity.get("order_id"),
            gateway_payment_id=entity.get("id"),
            status=status,
            payment_method=entity.get("method"),
            paid_at=paid_at,
        )

    async def refund(self, gateway_payment_id: str, amount: Decimal) -> RefundOutcome:
        if not gateway_payment_id:
            raise GatewayError("Payment has no Razorpay payment id to refund")
        try:
            logger.info(f"Refunding Razorpay payment {gateway_payment_id}: amount={amount}")
            refund = await asyncio.to_thread(
                self.client.payment.refund,
                gateway_payment_id,
                {"amount": to_minor_units(amount)},
            )
        except Exception as e:
            logger.error(f"Razorpay refund failed for {gateway_payment_id}: {e}")
            raise GatewayError("Razorpay refund failed") from e

        logger.info(f"Razorpay refund created: refund_id={refund.get('id')}, payment={gateway_payment_id}")
        return RefundOutcome(gateway_refund_id=refund.get("id"), raw=refund)
