# coursepay/models/__init__.py

from .payment import Payment
from .refund import Refund
from .invoice import Invoice
from .subscription import Subscription
from .subscription_event import SubscriptionEvent
from .wallet import Wallet, WalletTransaction
from .gateway import PaymentGatewayConfig, PaymentWebhook

__all__ = [
    "Payment",
    "Refund",
    "Invoice",
    "Subscription",
    "SubscriptionEvent",
    "Wallet",
    "WalletTransaction",
    "PaymentGatewayConfig",
    "PaymentWebhook",
]
