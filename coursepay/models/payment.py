import uuid
from sqlalchemy import (
    Boolean, Column, DateTime, Enum, ForeignKey, JSON, Numeric, String, func
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from coursepay.db.deps import Base
from coursepay.utils.enums import PaymentGateway, PaymentStatus


class Payment(Base):
    __tablename__ = "payments"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    student_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    enrollment_id = Column(UUID(as_uuid=True), nullable=True)
    course_id = Column(UUID(as_uuid=True), nullable=True)
    subscription_id = Column(
        UUID(as_uuid=True),
        ForeignKey("subscriptions.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), nullable=False)
    description = Column(String, nullable=True)
    gateway = Column(Enum(PaymentGateway, name="paymentgateway"), nullable=False)
    status = Column(
        Enum(PaymentStatus, name="paymentstatus"),
        nullable=False,
        default=PaymentStatus.pending,
    )
    status_message = Column(String, nullable=True)

    # Razorpay order id / Stripe PaymentIntent id; webhooks are matched on this
    gateway_order_id = Column(String, nullable=True, index=True)
    # Razorpay payment id (known after capture) / Stripe PaymentIntent id
    gateway_payment_id = Column(String, nullable=True, index=True)
    payment_method = Column(String, nullable=True)
    payment_date = Column(DateTime(timezone=True), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    webhook_verified = Column(Boolean, nullable=False, default=False)

    # "metadata" is reserved on declarative classes
    extra_metadata = Column("metadata", JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=func.now())

    refunds = relationship("Refund", back_populates="payment", order_by="Refund.requested_at")
    invoice = relationship("Invoice", back_populates="payment", uselist=False)

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "student_id": str(self.student_id),
            "enrollment_id": str(self.enrollment_id) if self.enrollment_id else None,
            "course_id": str(self.course_id) if self.course_id else None,
            "subscription_id": str(self.subscription_id) if self.subscription_id else None,
            "amount": str(self.amount),
            "currency": self.currency,
            "description": self.description,
            "gateway": self.gateway.value if self.gateway else None,
            "status": self.status.value if self.status else None,
            "status_message": self.status_message,
            "gateway_order_id": self.gateway_order_id,
            "gateway_payment_id": self.gateway_payment_id,
            "payment_method": self.payment_method,
            "payment_date": self.payment_date.isoformat() if self.payment_date else None,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "webhook_verified": bool(self.webhook_verified),
        }
