import uuid
from sqlalchemy import (
    Column, DateTime, Enum, ForeignKey, Numeric, String, func
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from coursepay.db.deps import Base
from coursepay.utils.enums import RefundStatus


class Refund(Base):
    __tablename__ = "refunds"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    payment_id = Column(UUID(as_uuid=True), ForeignKey("payments.id"), nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    reason = Column(String, nullable=False)
    requested_by = Column(UUID(as_uuid=True), nullable=False)
    status = Column(
        Enum(RefundStatus, name="refundstatus"),
        nullable=False,
        default=RefundStatus.pending,
    )
    gateway_refund_id = Column(String, nullable=True)
    processed_at = Column(DateTime(timezone=True), nullable=True)
    requested_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    payment = relationship("Payment", back_populates="refunds")

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "payment_id": str(self.payment_id),
            "amount": str(self.amount),
            "reason": self.reason,
            "requested_by": str(self.requested_by),
            "status": self.status.value if self.status else None,
            "gateway_refund_id": self.gateway_refund_id,
            "processed_at": self.processed_at.isoformat() if self.processed_at else None,
        }
