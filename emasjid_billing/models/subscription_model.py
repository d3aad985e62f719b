# emasjid_billing/models/subscription_model.py
from sqlalchemy import Column, Integer, String, DateTime, Numeric, Text, Index, text, func

from .base import Base

class Subscription(Base):
    __tablename__ = 'subscriptions'
    __table_args__ = (
        # One non-cancelled subscription per tenant; cancelled rows are kept for audit.
        Index(
            "uq_subscriptions_tenant_open",
            "tenant_id",
            unique=True,
            postgresql_where=text("status <> 'cancelled'"),
            sqlite_where=text("status <> 'cancelled'"),
        ),
        Index("ix_subscriptions_status_period_end", "status", "current_period_end"),
        Index("ix_subscriptions_status_grace_end", "status", "grace_period_end"),
    )

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(String(64), nullable=False, index=True)
    tier = Column(String(16), nullable=False)

    # Alur status: trial -> active -> grace_period -> soft_locked, cancelled is terminal
    status = Column(String(16), default='trial', nullable=False)
    billing_cycle = Column(String(16), default='monthly', nullable=False)
    price = Column(Numeric(10, 2), nullable=False, default=0)

    trial_ends_at = Column(DateTime, nullable=True)
    current_period_start = Column(DateTime, nullable=True)
    current_period_end = Column(DateTime, nullable=True)
    next_billing_date = Column(DateTime, nullable=True)

    grace_period_start = Column(DateTime, nullable=True)
    grace_period_end = Column(DateTime, nullable=True)
    failed_payment_attempts = Column(Integer, default=0, nullable=False)
    last_failed_at = Column(DateTime, nullable=True)

    soft_locked_at = Column(DateTime, nullable=True)
    soft_lock_reason = Column(String(64), nullable=True)

    cancelled_at = Column(DateTime, nullable=True)
    cancellation_reason = Column(Text, nullable=True)

    billing_contact_name = Column(String(255), nullable=True)
    billing_email = Column(String(255), nullable=True)
    billing_phone = Column(String(32), nullable=True)

    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    version = Column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version, "eager_defaults": True}
