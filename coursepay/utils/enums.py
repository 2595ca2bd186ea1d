import enum


class PaymentGateway(str, enum.Enum):
    razorpay = "razorpay"
    stripe = "stripe"
    wallet = "wallet"


class PaymentStatus(str, enum.Enum):
    pending = "pending"
    completed = "completed"
    failed = "failed"


class RefundStatus(str, enum.Enum):
    pending = "pending"
    completed = "completed"


class SubscriptionStatus(str, enum.Enum):
    active = "active"
    cancelled = "cancelled"
    expired = "expired"
    paused = "paused"


class BillingCycle(str, enum.Enum):
    monthly = "monthly"
    yearly = "yearly"


class WalletTransactionType(str, enum.Enum):
    credit = "credit"
    debit = "debit"


class SubscriptionEventType(str, enum.Enum):
    created = "created"
    renewed = "renewed"
    payment_failed = "payment_failed"
    cancelled = "cancelled"
    paused = "paused"
    resumed = "resumed"
    expired = "expired"


# Allowed subscription status transitions; cancelled and expired are terminal.
SUBSCRIPTION_TRANSITIONS = {
    SubscriptionStatus.active: {
        SubscriptionStatus.cancelled,
        SubscriptionStatus.paused,
        SubscriptionStatus.expired,
    },
    SubscriptionStatus.paused: {
        SubscriptionStatus.active,
        SubscriptionStatus.cancelled,
    },
    SubscriptionStatus.cancelled: set(),
    SubscriptionStatus.expired: set(),
}
