from decimal import Decimal

from emasjid_billing.models.enums import Tier
from emasjid_billing.modules.tiers.catalog import TierDefinition
from emasjid_billing.schemas.transaction_schema import SplitBillingDetails
from emasjid_billing.utils.money import create_money, floor_money, round_money


class SplitBillingError(ValueError):
    """A split that would not reconcile; nothing may be written to the ledger."""


def compute_split(amount: Decimal, tier: TierDefinition) -> SplitBillingDetails:
    """
    Divide one payment between the masjid admin and the local admin.

    Non-premium tiers keep the whole amount on the masjid side. For premium
    the local admin share is rounded down to the cent and the masjid admin
    side takes the remainder, so the two amounts always add up to the total.
    """
    local_pct = tier.local_admin_share_percent
    masjid_pct = tier.platform_share_percent
    if local_pct < 0 or masjid_pct < 0 or local_pct + masjid_pct != 100:
        raise SplitBillingError(
            f"Split percentages for {tier.tier.value} must sum to 100, got {local_pct} + {masjid_pct}"
        )

    try:
        total = round_money(create_money(amount))
    except ValueError as exc:
        raise SplitBillingError(str(exc)) from exc
    if total.amount < 0:
        raise SplitBillingError("Payment amount must not be negative")

    if tier.tier != Tier.PREMIUM:
        return SplitBillingDetails(
            masjid_admin_amount=total.amount,
            masjid_admin_percentage=100,
            local_admin_amount=round_money(create_money(0, total.currency.code)).amount,
            local_admin_percentage=0,
            total_amount=total.amount,
        )

    local_share = floor_money(total * Decimal(local_pct) / 100)
    masjid_share = total - local_share

    return SplitBillingDetails(
        masjid_admin_amount=masjid_share.amount,
        masjid_admin_percentage=masjid_pct,
        local_admin_amount=local_share.amount,
        local_admin_percentage=local_pct,
        total_amount=total.amount,
    )
