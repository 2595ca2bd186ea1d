"""Stripe API client - PaymentIntents, webhook verification and refunds."""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Optional

import stripe

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


class StripeClient(GatewayClient):
    """Wrapper for Stripe API calls.

    The secret key is passed per request instead of setting ``stripe.api_key``
    so several configurations can coexist in one process.
    """

    gateway_id = PaymentGateway.stripe

    def __init__(self, secret_key: str, webhook_secret: Optional[str] = None):
        if not secret_key:
            raise GatewayError("Stripe secret_key not configured")
        super().__init__(webhook_secret)
        self.secret_key = secret_key
        logger.info("Stripe client initialized")

    async def create_order(
        self,
        amount: Decimal,
        currency: str,
        receipt_id: str,
        description: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> OrderResult:
        """Create a PaymentIntent. The intent id doubles as order and payment id."""
        intent_metadata = {k: str(v) for k, v in (metadata or {}).items()}
        intent_metadata["payment_id"] = receipt_id
        try:
            logger.info(f"Creating Stripe PaymentIntent: payment_id={receipt_id}")
            intent = await asyncio.to_thread(
                stripe.PaymentIntent.create,
                api_key=self.secret_key,
                amount=to_minor_units(amount),  # cents
                currency=currency.lower(),
                description=description,
                metadata=intent_metadata,
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe PaymentIntent creation failed for {receipt_id}: {e}")
            raise GatewayError("Failed to create Stripe payment intent") from e

        logger.info(f"Stripe PaymentIntent created: intent={intent.id}, payment_id={receipt_id}")
        return OrderResult(
            gateway_order_id=intent.id,
            gateway_payment_id=intent.id,
            raw={
                "id": intent.id,
                "status": intent.status,
                "client_secret": intent.client_secret,
            },
        )

    def verify_webhook_signature(
        self,
        payload: bytes,
        signature: Optional[str],
        secret: Optional[str] = None,
    ) -> bool:
        """Delegate to Stripe's own verifier, which raises on mismatch."""
        secret = secret or self.webhook_secret
        if not secret or not signature:
            return False
        try:
            stripe.Webhook.construct_event(payload, signature, secret)
        except ValueError:
            logger.error("Stripe webhook: Invalid payload")
            return False
        except stripe.SignatureVerificationError:
            logger.error("Stripe webhook: Invalid signature")
            return False
        return True

    def parse_webhook(self, payload: bytes) -> WebhookEvent:
        """Parse payment_intent.succeeded / payment_intent.payment_failed."""
        event = json.loads(payload)
        event_type = event.get("type", "unknown")
        intent = (event.get("data") or {}).get("object") or {}

        status = None
        if event_type == "payment_intent.succeeded":
            status = PaymentStatus.completed
        elif event_type == "payment_intent.payment_failed":
            status = PaymentStatus.failed

        method_types = intent.get("payment_method_types") or []
        paid_at = None
        if intent.get("created"):
            paid_at = datetime.fromtimestamp(int(intent["created"]), tz=timezone.utc)

        return WebhookEvent(
            event_type=event_type,
            gateway_order_id=intent.get("id"),
            gateway_payment_id=intent.get("id"),
            status=status,
            payment_method=method_types[0] if method_types else None,
            paid_at=paid_at,
        )

    async def refund(self, gateway_payment_id: str, amount: Decimal) -> RefundOutcome:
        if not gateway_payment_id:
            raise GatewayError("Payment has no Stripe PaymentIntent to refund")
        try:
            logger.info(f"Refunding Stripe PaymentIntent {gateway_payment_id}: amount={amount}")
            refund = await asyncio.to_thread(
                stripe.Refund.create,
                api_key=self.secret_key,
                payment_intent=gateway_payment_id,
                amount=to_minor_units(amount),
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe refund failed for {gateway_payment_id}: {e}")
            raise GatewayError("Stripe refund failed") from e

        logger.info(f"Stripe refund created: refund_id={refund.id}, intent={gateway_payment_id}")
        return RefundOutcome(gateway_refund_id=refund.id, raw={"id": refund.id, "status": refund.status})
