# emasjid_billing/schemas/tier_schema.py
from decimal import Decimal
from pydantic import BaseModel
from typing import List

from emasjid_billing.models.enums import Tier


class TierFeatures(BaseModel):
    max_tv_displays: int
    max_content_items: int
    content_approval_required: bool
    custom_branding: bool
    custom_domain: bool
    white_label: bool
    api_access: bool
    webhook_notifications: bool
    dedicated_database: bool
    priority_support: bool
    local_admin_support: bool
    onboarding_assistance: bool
    advanced_analytics: bool
    export_capabilities: bool
    retention_days: int

    class Config:
        from_attributes = True


class TierPublic(BaseModel):
    tier: Tier
    display_name: str
    description: str
    features: TierFeatures
    monthly_price: Decimal
    yearly_price: Decimal
    local_admin_share_percent: int
    platform_share_percent: int
    includes_local_admin: bool
    recommended: bool = False

    class Config:
        from_attributes = True


class TierCatalogResponse(BaseModel):
    version: str
    currency: str
    tiers: List[TierPublic]
