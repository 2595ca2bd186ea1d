import uuid
from sqlalchemy import Column, DateTime, Enum, ForeignKey, JSON, String, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from coursepay.db.deps import Base
from coursepay.utils.enums import SubscriptionStatus


class SubscriptionEvent(Base):
    """Append-only audit trail of subscription transitions."""
    __tablename__ = "subscription_events"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    subscription_id = Column(
        UUID(as_uuid=True),
        ForeignKey("subscriptions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    event_type = Column(String, nullable=False)
    previous_status = Column(Enum(SubscriptionStatus, name="subscriptionstatus"), nullable=True)
    new_status = Column(Enum(SubscriptionStatus, name="subscriptionstatus"), nullable=False)
    extra_metadata = Column("metadata", JSON, nullable=False, default=dict)
    payment_id = Column(UUID(as_uuid=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    subscription = relationship("Subscription", back_populates="events")

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "event_type": self.event_type,
            "previous_status": self.previous_status.value if self.previous_status else None,
            "new_status": self.new_status.value if self.new_status else None,
            "metadata": self.extra_metadata or {},
            "payment_id": str(self.payment_id) if self.payment_id else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
