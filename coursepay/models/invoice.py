import uuid
from sqlalchemy import Column, DateTime, ForeignKey, Numeric, String, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from coursepay.db.deps import Base


class Invoice(Base):
    __tablename__ = "invoices"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    payment_id = Column(UUID(as_uuid=True), ForeignKey("payments.id"), nullable=False, unique=True)
    student_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    invoice_number = Column(String, nullable=False, unique=True)
    amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), nullable=False)
    issued_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    payment = relationship("Payment", back_populates="invoice")

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "invoice_number": self.invoice_number,
            "amount": str(self.amount),
            "currency": self.currency,
            "issued_at": self.issued_at.isoformat() if self.issued_at else None,
        }
