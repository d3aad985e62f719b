# emasjid_billing/schemas/subscription_schema.py
from decimal import Decimal
from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime

from emasjid_billing.models.enums import BillingCycle, SubscriptionStatus, Tier


class SubscriptionCreate(BaseModel):
    tenant_id: str = Field(..., min_length=1, max_length=64)
    tier: Tier
    billing_cycle: BillingCycle = BillingCycle.MONTHLY
    billing_contact_name: Optional[str] = None
    billing_email: Optional[str] = None
    billing_phone: Optional[str] = None


class Subscription(BaseModel):
    id: int
    tenant_id: str
    tier: Tier
    status: SubscriptionStatus
    billing_cycle: BillingCycle
    price: Decimal
    trial_ends_at: Optional[datetime] = None
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    next_billing_date: Optional[datetime] = None
    grace_period_start: Optional[datetime] = None
    grace_period_end: Optional[datetime] = None
    failed_payment_attempts: int = 0
    last_failed_at: Optional[datetime] = None
    soft_locked_at: Optional[datetime] = None
    soft_lock_reason: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class TransitionRequest(BaseModel):
    target_status: SubscriptionStatus
    reason: Optional[str] = Field(default=None, max_length=255)


class TierChangeRequest(BaseModel):
    tier: Tier
    billing_cycle: Optional[BillingCycle] = None


class EvaluationResponse(BaseModel):
    subscription: Subscription
    transitioned: bool
    previous_status: SubscriptionStatus


class SweepResponse(BaseModel):
    evaluated: int
    transitioned: int
    failed: int
