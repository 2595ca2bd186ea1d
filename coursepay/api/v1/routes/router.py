# Main Router - coursepay/api/v1/routes/router.py
from fastapi import APIRouter
from coursepay.api.v1.routes.subscription.subscription import router as subscription_router
from coursepay.api.v1.routes.billing.jobs import router as billing_jobs_router
from coursepay.api.v1.routes.payments import (
    payments_router,
    refunds_router,
    razorpay_webhooks_router,
    stripe_webhooks_router,
)

router = APIRouter()

# Webhook routes (no user authentication; verified by gateway signature)
router.include_router(razorpay_webhooks_router)
router.include_router(stripe_webhooks_router)

# Cron trigger (shared secret header)
router.include_router(billing_jobs_router)

# Authenticated routes
router.include_router(refunds_router)
router.include_router(payments_router)
router.include_router(subscription_router)
