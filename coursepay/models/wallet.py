import uuid
from sqlalchemy import (
    CheckConstraint, Column, DateTime, Enum, ForeignKey, Integer, JSON, Numeric, String, func
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from coursepay.db.deps import Base
from coursepay.utils.enums import WalletTransactionType


class Wallet(Base):
    """Stored-value balance. Never update credits directly; use coursepay.services.payments.ledger."""
    __tablename__ = "wallets"
    __table_args__ = (
        CheckConstraint("credits >= 0", name="ck_wallets_credits_non_negative"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), nullable=False, unique=True, index=True)
    points = Column(Integer, nullable=False, default=0)
    credits = Column(Numeric(12, 2), nullable=False, default=0)
    currency = Column(String(3), nullable=False, default="INR")

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    transactions = relationship("WalletTransaction", back_populates="wallet")

    @property
    def balance(self) -> dict:
        return {"points": self.points, "credits": self.credits, "currency": self.currency}


class WalletTransaction(Base):
    __tablename__ = "wallet_transactions"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    wallet_id = Column(UUID(as_uuid=True), ForeignKey("wallets.id"), nullable=False, index=True)
    type = Column(Enum(WalletTransactionType, name="wallettransactiontype"), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    points = Column(Integer, nullable=False, default=0)
    description = Column(String, nullable=True)
    # Payment or refund id this entry belongs to
    reference = Column(String, nullable=True, index=True)
    extra_metadata = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    wallet = relationship("Wallet", back_populates="transactions")
