import uuid
from sqlalchemy import Boolean, Column, DateTime, Enum, JSON, String, func
from sqlalchemy.dialects.postgresql import UUID
from coursepay.db.deps import Base
from coursepay.utils.enums import PaymentGateway


class PaymentGatewayConfig(Base):
    __tablename__ = "payment_gateway_configs"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    gateway = Column(Enum(PaymentGateway, name="paymentgateway"), nullable=False, index=True)
    is_active = Column(Boolean, nullable=False, default=True)
    # razorpay: key_id, key_secret, webhook_secret
    # stripe: secret_key, webhook_secret
    config = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())


class PaymentWebhook(Base):
    """Raw log of every inbound webhook, written before verification."""
    __tablename__ = "payment_webhooks"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    gateway = Column(String, nullable=False)
    event_type = Column(String, nullable=False, default="unknown")
    payload = Column(JSON, nullable=True)
    raw_body = Column(String, nullable=True)
    signature = Column(String, nullable=True)
    verified = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
