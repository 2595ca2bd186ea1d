import uuid
from sqlalchemy import (
    Boolean, Column, DateTime, Enum, Index, Integer, Numeric, String, func, text
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from coursepay.db.deps import Base
from coursepay.utils.enums import SubscriptionStatus, BillingCycle, PaymentGateway


class Subscription(Base):
    __tablename__ = "subscriptions"
    __table_args__ = (
        # At most one active subscription per (student, course)
        Index(
            "uq_subscriptions_active_student_course",
            "student_id",
            "course_id",
            unique=True,
            postgresql_where=text("status = 'active'"),
            sqlite_where=text("status = 'active'"),
        ),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    student_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    course_id = Column(UUID(as_uuid=True), nullable=False, index=True)

    status = Column(
        Enum(SubscriptionStatus, name="subscriptionstatus"),
        nullable=False,
        default=SubscriptionStatus.active
    )
    billing_cycle = Column(Enum(BillingCycle, name="billingcycle"), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), nullable=False)
    gateway = Column(
        Enum(PaymentGateway, name="paymentgateway"),
        nullable=False,
        default=PaymentGateway.razorpay,
    )

    current_period_start = Column(DateTime(timezone=True), nullable=False)
    current_period_end = Column(DateTime(timezone=True), nullable=False)
    next_billing_date = Column(DateTime(timezone=True), nullable=False, index=True)

    # Auto-renewal control
    auto_renew = Column(Boolean, nullable=False, default=True)
    failed_payment_count = Column(Integer, nullable=False, default=0)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancellation_reason = Column(String, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    events = relationship(
        "SubscriptionEvent",
        back_populates="subscription",
        order_by="SubscriptionEvent.created_at",
        passive_deletes=True,
    )

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "student_id": str(self.student_id),
            "course_id": str(self.course_id),
            "status": self.status.value if self.status else None,
            "billing_cycle": self.billing_cycle.value if self.billing_cycle else None,
            "amount": str(self.amount),
            "currency": self.currency,
            "gateway": self.gateway.value if self.gateway else None,
            "current_period_start": self.current_period_start.isoformat(),
            "current_period_end": self.current_period_end.isoformat(),
            "next_billing_date": self.next_billing_date.isoformat(),
            "auto_renew": self.auto_renew,
            "failed_payment_count": self.failed_payment_count,
            "cancelled_at": self.cancelled_at.isoformat() if self.cancelled_at else None,
            "cancellation_reason": self.cancellation_reason,
        }
