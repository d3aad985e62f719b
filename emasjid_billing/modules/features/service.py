import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from emasjid_billing.core.cache import SubscriptionSnapshot, cache_subscription, get_cached_subscription
from emasjid_billing.core.results import ErrorCode, Result, failure, success
from emasjid_billing.models.enums import SubscriptionStatus, Tier
from emasjid_billing.modules.subscription.service import subscription_service
from emasjid_billing.modules.tiers.catalog import TierCatalog, feature_allows, tier_catalog
from emasjid_billing.schemas.feature_schema import FeatureAccess

logger = logging.getLogger(__name__)

# Always available, whatever state the subscription is in.
READ_ONLY_FEATURES = frozenset({"view_content", "view_billing_history", "export_existing_data"})


class FeatureGate:
    def __init__(self, catalog: TierCatalog = tier_catalog):
        self.catalog = catalog

    def known_features(self) -> frozenset:
        return READ_ONLY_FEATURES | frozenset(self.catalog.feature_keys())

    async def _snapshot(self, db: AsyncSession, tenant_id: str) -> Optional[SubscriptionSnapshot]:
        snapshot = get_cached_subscription(tenant_id)
        if snapshot is not None:
            return snapshot
        result = await subscription_service.get_subscription(db, tenant_id)
        if not result.ok:
            return None
        subscription = result.value
        snapshot = SubscriptionSnapshot(
            subscription_id=subscription.id,
            tenant_id=subscription.tenant_id,
            tier=subscription.tier,
            status=subscription.status,
        )
        cache_subscription(snapshot)
        return snapshot

    async def can_use(
        self,
        db: AsyncSession,
        tenant_id: str,
        feature_key: str,
        usage: Optional[int] = None,
    ) -> Result:
        if feature_key not in self.known_features():
            return failure(ErrorCode.VALIDATION_ERROR, f"Unknown feature: {feature_key}")
        if usage is not None and usage < 0:
            return failure(ErrorCode.VALIDATION_ERROR, "Usage must not be negative")

        snapshot = await self._snapshot(db, tenant_id)
        if snapshot is None:
            return failure(ErrorCode.NOT_FOUND, f"No subscription for tenant {tenant_id}")

        tier = Tier(snapshot.tier)
        status = SubscriptionStatus(snapshot.status)
        access = dict(feature_key=feature_key, current_tier=tier, subscription_status=status)

        if feature_key in READ_ONLY_FEATURES:
            return success(FeatureAccess(**access, allowed=True, reason="read_only"))

        value = self.catalog.feature_value(tier, feature_key)

        if status == SubscriptionStatus.CANCELLED:
            return success(
                FeatureAccess(
                    **access,
                    allowed=False,
                    feature_value=value,
                    reason="subscription_cancelled",
                    message="This subscription has been cancelled. Subscribe again to use this feature.",
                )
            )

        if status == SubscriptionStatus.SOFT_LOCKED:
            return success(
                FeatureAccess(
                    **access,
                    allowed=False,
                    payment_required=True,
                    recommended_tier=tier,
                    feature_value=value,
                    reason="soft_locked",
                    message="Your account is locked due to an unpaid subscription. Complete the payment to restore access.",
                )
            )

        if feature_allows(value, feature_key, usage):
            return success(FeatureAccess(**access, allowed=True, feature_value=value))

        recommended = self.catalog.lowest_tier_with(feature_key, usage)
        message = f"'{feature_key}' is not included in the {self.catalog.get_tier(tier).display_name} plan."
        if recommended is not None:
            message += f" Upgrade to {self.catalog.get_tier(recommended).display_name} to unlock it."
        return success(
            FeatureAccess(
                **access,
                allowed=False,
                upgrade_required=recommended is not None,
                recommended_tier=recommended,
                feature_value=value,
                reason="limit_reached" if usage is not None else "not_in_tier",
                message=message,
            )
        )


feature_gate = FeatureGate()
