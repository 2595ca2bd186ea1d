"""Payment services for Razorpay, Stripe and wallet payments."""

from .gateway_set import GatewaySet, build_gateway_set
from .payment_service import PaymentService, PaymentResult, WebhookResult
from .razorpay_client import RazorpayClient
from .stripe_client import StripeClient
from .subscription_service import SubscriptionService, SubscriptionResult
from .wallet_bridge import WalletLedgerBridge

__all__ = [
    "GatewaySet",
    "build_gateway_set",
    "PaymentService",
    "PaymentResult",
    "WebhookResult",
    "RazorpayClient",
    "StripeClient",
    "SubscriptionService",
    "SubscriptionResult",
    "WalletLedgerBridge",
]
