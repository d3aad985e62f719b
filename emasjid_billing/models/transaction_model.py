from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Text, Index, Numeric, JSON
from sqlalchemy.orm import relationship
from sqlalchemy import func

from .base import Base


class PaymentTransaction(Base):
    __tablename__ = "payment_transactions"
    __table_args__ = (
        Index("ix_payment_transactions_subscription_status", "subscription_id", "status"),
        Index("ix_payment_transactions_tenant_created", "tenant_id", "created_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    subscription_id = Column(Integer, ForeignKey("subscriptions.id"), nullable=False, index=True)
    tenant_id = Column(String(64), nullable=False, index=True)

    amount = Column(Numeric(10, 2), nullable=False)
    payment_method = Column(String(16), nullable=False, default="toyyibpay")  # toyyibpay|manual
    status = Column(String(16), nullable=False, default="pending")  # pending|processing|completed|failed|refunded

    # Gateway identity: bill code is the idempotency key, refno is informational
    external_transaction_id = Column(String(128), nullable=True, unique=True)
    gateway_reference = Column(String(128), nullable=True, index=True)

    split_billing_details = Column(JSON, nullable=True)
    credited_local_admin_id = Column(Integer, ForeignKey("local_admins.id"), nullable=True, index=True)
    credited_at = Column(DateTime, nullable=True)

    billing_period_start = Column(DateTime, nullable=True)
    billing_period_end = Column(DateTime, nullable=True)

    failure_reason = Column(Text, nullable=True)
    paid_at = Column(DateTime, nullable=True)
    failed_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    subscription = relationship("Subscription")

    __mapper_args__ = {"eager_defaults": True}
