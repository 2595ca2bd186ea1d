"""Common interface for payment gateway clients."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Optional

from coursepay.utils.enums import PaymentGateway, PaymentStatus


@dataclass
class OrderResult:
    """Provider order/intent created for a pending payment."""
    gateway_order_id: str
    gateway_payment_id: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)


@dataclass
class WebhookEvent:
    """Provider-neutral view of a verified webhook.

    ``status`` is None for events that do not settle a payment.
    """
    event_type: str
    gateway_order_id: Optional[str] = None
    gateway_payment_id: Optional[str] = None
    status: Optional[PaymentStatus] = None
    payment_method: Optional[str] = None
    paid_at: Optional[datetime] = None


@dataclass
class RefundOutcome:
    gateway_refund_id: str
    raw: Dict[str, Any] = field(default_factory=dict)


def to_minor_units(amount: Decimal | float | int) -> int:
    """Convert a major-unit amount (rupees, dollars) to minor units (paise, cents)."""
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class GatewayClient(ABC):
    """One implementation per external provider."""

    gateway_id: PaymentGateway

    def __init__(self, webhook_secret: Optional[str] = None):
        self.webhook_secret = webhook_secret

    @abstractmethod
    async def create_order(
        self,
        amount: Decimal,
        currency: str,
        receipt_id: str,
        description: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> OrderResult:
        """Create a provider order for ``amount`` (major units).

        Raises:
            GatewayError: provider rejected the call or is unreachable
        """

    @abstractmethod
    def verify_webhook_signature(
        self,
        payload: bytes,
        signature: Optional[str],
        secret: Optional[str] = None,
    ) -> bool:
        """Return True only if ``signature`` matches the raw ``payload``."""

    @abstractmethod
    def parse_webhook(self, payload: bytes) -> WebhookEvent:
        """Extract order/payment identifiers from a verified payload."""

    @abstractmethod
    async def refund(self, gateway_payment_id: str, amount: Decimal) -> RefundOutcome:
        """Refund ``amount`` (major units) of a captured payment.

        Raises:
            GatewayError: provider rejected the refund
        """
