import pytest
from dataclasses import replace
from decimal import Decimal

from emasjid_billing.models.enums import Tier
from emasjid_billing.modules.payment.split_billing import SplitBillingError, compute_split
from emasjid_billing.modules.tiers.catalog import tier_catalog

PREMIUM = tier_catalog.get_tier(Tier.PREMIUM)


def test_premium_payment_is_split_evenly():
    split = compute_split(Decimal("100.00"), PREMIUM)
    assert split.masjid_admin_amount == Decimal("50.00")
    assert split.local_admin_amount == Decimal("50.00")
    assert split.masjid_admin_percentage == 50
    assert split.local_admin_percentage == 50
    assert split.total_amount == Decimal("100.00")


@pytest.mark.parametrize("amount", ["0.01", "0.03", "33.33", "99.99", "300.00", "3600.00", "1234.57"])
def test_split_never_leaks_a_cent(amount):
    split = compute_split(Decimal(amount), PREMIUM)
    assert split.masjid_admin_amount + split.local_admin_amount == Decimal(amount)


def test_odd_cent_goes_to_masjid_admin():
    split = compute_split(Decimal("33.33"), PREMIUM)
    assert split.local_admin_amount == Decimal("16.66")
    assert split.masjid_admin_amount == Decimal("16.67")


def test_non_premium_tiers_keep_everything_on_masjid_side():
    for tier in (Tier.RAKYAT, Tier.PRO):
        split = compute_split(Decimal("30.00"), tier_catalog.get_tier(tier))
        assert split.masjid_admin_amount == Decimal("30.00")
        assert split.local_admin_amount == Decimal("0.00")
        assert split.masjid_admin_percentage == 100
        assert split.local_admin_percentage == 0


def test_bad_percentages_are_rejected():
    broken = replace(PREMIUM, local_admin_share_percent=70, platform_share_percent=40)
    with pytest.raises(SplitBillingError):
        compute_split(Decimal("100.00"), broken)


def test_negative_amount_is_rejected():
    with pytest.raises(SplitBillingError):
        compute_split(Decimal("-1.00"), PREMIUM)
