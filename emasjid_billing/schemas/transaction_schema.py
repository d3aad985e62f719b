# emasjid_billing/schemas/transaction_schema.py
from decimal import Decimal
from pydantic import BaseModel, Field, field_validator
from typing import Literal, Optional
from datetime import datetime

from emasjid_billing.models.enums import PaymentMethod, PaymentStatus


class SplitBillingDetails(BaseModel):
    masjid_admin_amount: Decimal
    masjid_admin_percentage: int
    local_admin_amount: Decimal
    local_admin_percentage: int
    total_amount: Decimal
    local_admin_id: Optional[int] = None


class PaymentCreate(BaseModel):
    subscription_id: int
    amount: Decimal = Field(..., max_digits=10, decimal_places=2)
    method: PaymentMethod = PaymentMethod.TOYYIBPAY
    external_transaction_id: Optional[str] = Field(default=None, max_length=128)


class PaymentCallback(BaseModel):
    """Gateway webhook body; unknown gateway fields are accepted and ignored."""

    external_transaction_id: str = Field(..., min_length=1, max_length=128)
    outcome: Literal["processing", "completed", "failed"]
    amount: Optional[Decimal] = None
    reference_id: Optional[int] = None
    gateway_reference: Optional[str] = None
    reason: Optional[str] = None
    hash: Optional[str] = None

    model_config = {"extra": "allow"}

    @field_validator("outcome", mode="before")
    @classmethod
    def normalize_outcome(cls, value):
        # ToyyibPay status_id: 1 = success, 2 = pending, 3 = failed
        mapping = {"1": "completed", "2": "processing", "3": "failed"}
        if isinstance(value, int):
            value = str(value)
        if isinstance(value, str):
            lowered = value.strip().lower()
            return mapping.get(lowered, {"success": "completed", "pending": "processing"}.get(lowered, lowered))
        return value


class PaymentTransaction(BaseModel):
    id: int
    subscription_id: int
    tenant_id: str
    amount: Decimal
    status: PaymentStatus
    payment_method: PaymentMethod
    external_transaction_id: Optional[str] = None
    gateway_reference: Optional[str] = None
    split_billing_details: Optional[SplitBillingDetails] = None
    credited_local_admin_id: Optional[int] = None
    billing_period_start: Optional[datetime] = None
    billing_period_end: Optional[datetime] = None
    failure_reason: Optional[str] = None
    paid_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PaymentTransactionListResponse(BaseModel):
    items: list[PaymentTransaction]
    total: int
    current_page: int
    total_pages: int
