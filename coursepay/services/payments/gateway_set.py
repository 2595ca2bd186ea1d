"""Build the gateway clients once at startup from stored configuration."""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from coursepay.core.config import settings
from coursepay.core.exceptions import GatewayError
from coursepay.core.logging_config import get_logger
from coursepay.models.gateway import PaymentGatewayConfig
from coursepay.services.payments.base import GatewayClient
from coursepay.services.payments.razorpay_client import RazorpayClient
from coursepay.services.payments.stripe_client import StripeClient
from coursepay.utils.enums import PaymentGateway

logger = get_logger(__name__)


@dataclass(frozen=True)
class GatewaySet:
    """Read-only mapping of gateway id to configured client."""
    clients: Mapping[PaymentGateway, GatewayClient] = field(
        default_factory=lambda: MappingProxyType({})
    )

    @classmethod
    def of(cls, *clients: GatewayClient) -> "GatewaySet":
        return cls(MappingProxyType({c.gateway_id: c for c in clients}))

    def get(self, gateway: PaymentGateway | str) -> GatewayClient:
        """Return the client for ``gateway``.

        Raises:
            GatewayError: gateway has no loaded credentials
        """
        client = self.clients.get(PaymentGateway(gateway))
        if client is None:
            raise GatewayError(f"{PaymentGateway(gateway).value} not configured")
        return client

    def available(self) -> list[str]:
        return [g.value for g in self.clients]


def _env_configs() -> Dict[PaymentGateway, Dict[str, Any]]:
    return {
        PaymentGateway.razorpay: {
            "key_id": settings.RAZORPAY_KEY_ID,
            "key_secret": settings.RAZORPAY_KEY_SECRET,
            "webhook_secret": settings.RAZORPAY_WEBHOOK_SECRET,
        },
        PaymentGateway.stripe: {
            "secret_key": settings.STRIPE_SECRET_KEY,
            "webhook_secret": settings.STRIPE_WEBHOOK_SECRET,
        },
    }


def _build_client(gateway: PaymentGateway, config: Dict[str, Any]) -> Optional[GatewayClient]:
    if gateway == PaymentGateway.razorpay:
        if not (config.get("key_id") and config.get("key_secret")):
            return None
        return RazorpayClient(
            key_id=config["key_id"],
            key_secret=config["key_secret"],
            webhook_secret=config.get("webhook_secret"),
        )
    if gateway == PaymentGateway.stripe:
        if not config.get("secret_key"):
            return None
        return StripeClient(
            secret_key=config["secret_key"],
            webhook_secret=config.get("webhook_secret"),
        )
    return None


async def build_gateway_set(db: AsyncSession) -> GatewaySet:
    """Load active payment_gateway_configs rows, falling back to settings.

    Gateways with no credentials anywhere are left out; requests for them fail
    with GatewayError("<gateway> not configured").
    """
    configs = _env_configs()

    result = await db.execute(
        select(PaymentGatewayConfig).where(PaymentGatewayConfig.is_active.is_(True))
    )
    for row in result.scalars().all():
        if row.gateway in configs:
            merged = dict(configs[row.gateway])
            merged.update({k: v for k, v in (row.config or {}).items() if v})
            configs[row.gateway] = merged

    clients = []
    for gateway, config in configs.items():
        try:
            client = _build_client(gateway, config)
        except GatewayError as e:
            logger.error(f"Failed to initialize {gateway.value} gateway: {e}")
            continue
        if client is None:
            logger.warning(f"{gateway.value} gateway has no credentials; payments through it will fail")
            continue
        clients.append(client)

    gateway_set = GatewaySet.of(*clients)
    logger.info(f"Payment gateways initialized: {gateway_set.available()}")
    return gateway_set
