# emasjid_billing/schemas/feature_schema.py
from pydantic import BaseModel
from typing import Optional, Union

from emasjid_billing.models.enums import SubscriptionStatus, Tier


class FeatureAccess(BaseModel):
    feature_key: str
    allowed: bool
    current_tier: Tier
    subscription_status: SubscriptionStatus
    upgrade_required: bool = False
    payment_required: bool = False
    recommended_tier: Optional[Tier] = None
    feature_value: Optional[Union[bool, int]] = None
    reason: Optional[str] = None
    message: Optional[str] = None
