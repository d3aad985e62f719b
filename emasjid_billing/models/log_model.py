from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, Text, Index
from emasjid_billing.models.base import Base

class BillingEvent(Base):
    __tablename__ = "billing_events"
    __table_args__ = (
        Index("ix_billing_events_tenant_category", "tenant_id", "category"),
        Index("ix_billing_events_tenant_timestamp", "tenant_id", "timestamp"),
    )

    id = Column(Integer, primary_key=True, index=True)
    timestamp = Column(DateTime, default=datetime.utcnow, nullable=False)

    actor_id = Column(String(64), nullable=True)
    tenant_id = Column(String(64), nullable=True)

    # e.g. "Subscription/Transition", "Payment/Outcome", "LocalAdmin/Assignment"
    category = Column(String(64), nullable=False)

    description = Column(Text, nullable=False)
