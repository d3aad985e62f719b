# emasjid_billing/schemas/local_admin_schema.py
from decimal import Decimal
from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime

from emasjid_billing.models.enums import AvailabilityStatus


class LocalAdminCreate(BaseModel):
    user_id: str = Field(..., min_length=1, max_length=64)
    full_name: str
    email: str
    whatsapp_number: Optional[str] = None
    max_capacity: Optional[int] = Field(default=None, ge=1)


class LocalAdminUpdate(BaseModel):
    full_name: Optional[str] = None
    email: Optional[str] = None
    whatsapp_number: Optional[str] = None
    max_capacity: Optional[int] = Field(default=None, ge=1)
    availability_status: Optional[AvailabilityStatus] = None


class LocalAdmin(BaseModel):
    id: int
    user_id: str
    full_name: str
    email: str
    whatsapp_number: Optional[str] = None
    max_capacity: int
    active_assignment_count: int
    availability_status: AvailabilityStatus
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class AssignmentCreate(BaseModel):
    tenant_id: str = Field(..., min_length=1, max_length=64)


class Assignment(BaseModel):
    id: int
    tenant_id: str
    local_admin_id: int
    assigned_at: datetime
    unassigned_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class MonthlyEarnings(BaseModel):
    month: str
    amount: Decimal


class EarningsReport(BaseModel):
    local_admin_id: int
    full_name: str
    total_earnings: Decimal
    current_month: str
    current_month_earnings: Decimal
    pending_transfers: Decimal
    last_payment_date: Optional[datetime] = None
    monthly_breakdown: List[MonthlyEarnings]
    assigned_tenants_count: int
    max_capacity: int
    remaining_capacity: int
    availability_status: AvailabilityStatus
