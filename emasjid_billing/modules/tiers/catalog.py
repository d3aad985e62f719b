"""
Static tier catalog.

Each tier carries a fixed feature struct and pricing. The catalog is
validated once when it is built; a bad split or a negative limit fails
fast at import time rather than at billing time.
"""
from dataclasses import dataclass, fields
from decimal import Decimal
from typing import Dict, List, Optional, Union

from emasjid_billing.models.enums import BillingCycle, Tier

CATALOG_VERSION = "2025-12-24"

UNLIMITED = -1

NUMERIC_FEATURES = ("max_tv_displays", "max_content_items", "retention_days")


class CatalogValidationError(ValueError):
    """Raised when a tier catalog is internally inconsistent."""


@dataclass(frozen=True)
class TierFeatures:
    # Display management
    max_tv_displays: int
    max_content_items: int
    content_approval_required: bool
    # Branding
    custom_branding: bool
    custom_domain: bool
    white_label: bool
    # Technical
    api_access: bool
    webhook_notifications: bool
    dedicated_database: bool
    # Support
    priority_support: bool
    local_admin_support: bool
    onboarding_assistance: bool
    # Data
    advanced_analytics: bool
    export_capabilities: bool
    retention_days: int


@dataclass(frozen=True)
class TierDefinition:
    tier: Tier
    display_name: str
    description: str
    features: TierFeatures
    monthly_price: Decimal
    yearly_price: Decimal
    local_admin_share_percent: int = 0
    platform_share_percent: int = 100
    recommended: bool = False

    @property
    def includes_local_admin(self) -> bool:
        return self.features.local_admin_support

    def price_for(self, cycle: Union[BillingCycle, str]) -> Decimal:
        if BillingCycle(cycle) == BillingCycle.YEARLY:
            return self.yearly_price
        return self.monthly_price

    def feature_value(self, key: str) -> Union[bool, int]:
        return getattr(self.features, key)


FEATURE_KEYS = tuple(f.name for f in fields(TierFeatures))


def _validate(definitions: Dict[Tier, TierDefinition]) -> None:
    missing = set(Tier) - set(definitions)
    if missing:
        raise CatalogValidationError(f"Catalog is missing tiers: {sorted(t.value for t in missing)}")

    for tier, definition in definitions.items():
        if definition.tier != tier:
            raise CatalogValidationError(f"Tier key {tier.value} holds definition for {definition.tier.value}")
        if definition.local_admin_share_percent + definition.platform_share_percent != 100:
            raise CatalogValidationError(
                f"Split percentages for {tier.value} must sum to 100, got "
                f"{definition.local_admin_share_percent} + {definition.platform_share_percent}"
            )
        if definition.local_admin_share_percent < 0 or definition.platform_share_percent < 0:
            raise CatalogValidationError(f"Split percentages for {tier.value} must not be negative")
        if definition.local_admin_share_percent and not definition.features.local_admin_support:
            raise CatalogValidationError(
                f"{tier.value} assigns a local admin share but has no local admin support"
            )
        if definition.monthly_price < 0 or definition.yearly_price < 0:
            raise CatalogValidationError(f"Prices for {tier.value} must not be negative")
        for key in NUMERIC_FEATURES:
            value = definition.feature_value(key)
            if value < 0 and value != UNLIMITED:
                raise CatalogValidationError(f"{tier.value}.{key} must be >= 0 or {UNLIMITED} (unlimited)")


class TierCatalog:
    def __init__(self, definitions: Dict[Tier, TierDefinition], version: str = CATALOG_VERSION):
        _validate(definitions)
        self.version = version
        self._definitions = dict(definitions)

    def get_tier(self, tier_id: Union[Tier, str]) -> TierDefinition:
        # Tier() raises ValueError for ids outside the closed set.
        return self._definitions[Tier(tier_id)]

    def list_tiers(self) -> List[TierDefinition]:
        return [self._definitions[tier] for tier in Tier]

    def price_for(self, tier_id: Union[Tier, str], cycle: Union[BillingCycle, str]) -> Decimal:
        return self.get_tier(tier_id).price_for(cycle)

    def feature_keys(self) -> tuple:
        return FEATURE_KEYS

    def feature_value(self, tier_id: Union[Tier, str], key: str) -> Union[bool, int]:
        return self.get_tier(tier_id).feature_value(key)

    def lowest_tier_with(self, key: str, usage: Optional[int] = None) -> Optional[Tier]:
        """Cheapest tier that grants `key` (and fits `usage` for numeric limits)."""
        for definition in self.list_tiers():
            if feature_allows(definition.feature_value(key), key, usage):
                return definition.tier
        return None

    def compare(self) -> List[dict]:
        return [
            {
                "tier": d.tier.value,
                "name": d.display_name,
                "description": d.description,
                "price_monthly": d.monthly_price,
                "price_yearly": d.yearly_price,
                "recommended": d.recommended,
            }
            for d in self.list_tiers()
        ]


def feature_allows(value: Union[bool, int], key: str, usage: Optional[int] = None) -> bool:
    if key == "content_approval_required":
        # Needing approval is a restriction, not an entitlement.
        return not value
    if key in NUMERIC_FEATURES:
        if value == UNLIMITED:
            return True
        if usage is not None:
            return usage < value
        return value > 0
    return bool(value)


DEFAULT_TIERS: Dict[Tier, TierDefinition] = {
    Tier.RAKYAT: TierDefinition(
        tier=Tier.RAKYAT,
        display_name="Rakyat",
        description="Free Forever - Perfect for Small Mosques",
        features=TierFeatures(
            max_tv_displays=1,
            max_content_items=10,
            content_approval_required=True,
            custom_branding=False,
            custom_domain=False,
            white_label=False,
            api_access=False,
            webhook_notifications=False,
            dedicated_database=False,
            priority_support=False,
            local_admin_support=False,
            onboarding_assistance=False,
            advanced_analytics=False,
            export_capabilities=False,
            retention_days=30,
        ),
        monthly_price=Decimal("0.00"),
        yearly_price=Decimal("0.00"),
    ),
    Tier.PRO: TierDefinition(
        tier=Tier.PRO,
        display_name="Pro",
        description="RM30/month - For Growing Communities",
        features=TierFeatures(
            max_tv_displays=5,
            max_content_items=50,
            content_approval_required=False,
            custom_branding=False,
            custom_domain=False,
            white_label=False,
            api_access=True,
            webhook_notifications=True,
            dedicated_database=False,
            priority_support=False,
            local_admin_support=False,
            onboarding_assistance=False,
            advanced_analytics=True,
            export_capabilities=True,
            retention_days=90,
        ),
        monthly_price=Decimal("30.00"),
        yearly_price=Decimal("300.00"),
        recommended=True,
    ),
    Tier.PREMIUM: TierDefinition(
        tier=Tier.PREMIUM,
        display_name="Premium",
        description="RM300/month - Full-Service with Local Admin",
        features=TierFeatures(
            max_tv_displays=UNLIMITED,
            max_content_items=UNLIMITED,
            content_approval_required=False,
            custom_branding=True,
            custom_domain=True,
            white_label=True,
            api_access=True,
            webhook_notifications=True,
            dedicated_database=True,
            priority_support=True,
            local_admin_support=True,
            onboarding_assistance=True,
            advanced_analytics=True,
            export_capabilities=True,
            retention_days=365,
        ),
        monthly_price=Decimal("300.00"),
        yearly_price=Decimal("3600.00"),
        local_admin_share_percent=50,
        platform_share_percent=50,
    ),
}

tier_catalog = TierCatalog(DEFAULT_TIERS)
