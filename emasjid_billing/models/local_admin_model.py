# emasjid_billing/models/local_admin_model.py
from sqlalchemy import (
    Column,
    Integer,
    String,
    DateTime,
    ForeignKey,
    Numeric,
    Index,
    UniqueConstraint,
    CheckConstraint,
    text,
    func,
)
from sqlalchemy.orm import relationship

from .base import Base


class LocalAdmin(Base):
    __tablename__ = "local_admins"
    __table_args__ = (
        CheckConstraint("active_assignment_count >= 0", name="ck_local_admins_count_non_negative"),
        CheckConstraint("active_assignment_count <= max_capacity", name="ck_local_admins_within_capacity"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(64), nullable=False, unique=True)
    full_name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False)
    whatsapp_number = Column(String(32), nullable=True)

    max_capacity = Column(Integer, nullable=False, default=10)
    active_assignment_count = Column(Integer, nullable=False, default=0)
    availability_status = Column(String(16), nullable=False, default="available")  # available|at-capacity|on-leave|inactive

    # Earnings summary
    total_earnings = Column(Numeric(12, 2), nullable=False, default=0)
    current_month = Column(String(7), nullable=True)  # YYYY-MM
    current_month_earnings = Column(Numeric(12, 2), nullable=False, default=0)
    pending_transfers = Column(Numeric(12, 2), nullable=False, default=0)
    last_payment_date = Column(DateTime, nullable=True)

    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    monthly_earnings = relationship(
        "LocalAdminMonthlyEarning",
        back_populates="local_admin",
        order_by="LocalAdminMonthlyEarning.month.desc()",
    )

    __mapper_args__ = {"eager_defaults": True}


class LocalAdminMonthlyEarning(Base):
    __tablename__ = "local_admin_monthly_earnings"
    __table_args__ = (
        UniqueConstraint("local_admin_id", "month", name="uq_local_admin_monthly_earnings_month"),
    )

    id = Column(Integer, primary_key=True, index=True)
    local_admin_id = Column(Integer, ForeignKey("local_admins.id"), nullable=False, index=True)
    month = Column(String(7), nullable=False)  # YYYY-MM
    amount = Column(Numeric(12, 2), nullable=False, default=0)

    local_admin = relationship("LocalAdmin", back_populates="monthly_earnings")


class LocalAdminAssignment(Base):
    __tablename__ = "local_admin_assignments"
    __table_args__ = (
        # One active assignment per tenant; released rows stay for history.
        Index(
            "uq_local_admin_assignments_tenant_active",
            "tenant_id",
            unique=True,
            postgresql_where=text("unassigned_at IS NULL"),
            sqlite_where=text("unassigned_at IS NULL"),
        ),
        Index("ix_local_admin_assignments_admin_active", "local_admin_id", "unassigned_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(String(64), nullable=False)
    local_admin_id = Column(Integer, ForeignKey("local_admins.id"), nullable=False)
    assigned_at = Column(DateTime, nullable=False, server_default=func.now())
    unassigned_at = Column(DateTime, nullable=True)

    local_admin = relationship("LocalAdmin")
