"""Payment routes package - Razorpay, Stripe and wallet payments."""

from .payments import router as payments_router
from .refunds import router as refunds_router
from .razorpay_webhooks import router as razorpay_webhooks_router
from .stripe_webhooks import router as stripe_webhooks_router

__all__ = ["payments_router", "refunds_router", "razorpay_webhooks_router", "stripe_webhooks_router"]
