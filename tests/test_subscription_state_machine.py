import pytest
from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy import func, select

from emasjid_billing.core.results import ErrorCode
from emasjid_billing.core.uow import finalize
from emasjid_billing.models.enums import SubscriptionStatus
from emasjid_billing.models.log_model import BillingEvent
from emasjid_billing.modules.subscription.service import subscription_service
from emasjid_billing.modules.subscription.state_machine import ALLOWED_TRANSITIONS, can_transition
from emasjid_billing.schemas.subscription_schema import SubscriptionCreate, TierChangeRequest

NOW = datetime(2025, 3, 1, 8, 0, 0)


def test_transition_table():
    S = SubscriptionStatus
    assert ALLOWED_TRANSITIONS[S.TRIAL] == {S.ACTIVE, S.CANCELLED}
    assert ALLOWED_TRANSITIONS[S.SOFT_LOCKED] == {S.ACTIVE, S.CANCELLED}
    assert ALLOWED_TRANSITIONS[S.CANCELLED] == set()
    assert can_transition("grace_period", "soft_locked")
    assert not can_transition("active", "soft_locked")


@pytest.mark.asyncio
async def test_create_starts_a_fourteen_day_trial(db):
    result = await finalize(
        db,
        await subscription_service.create_subscription(
            db, SubscriptionCreate(tenant_id="masjid-a", tier="pro"), now=NOW
        ),
    )
    assert result.ok
    subscription = result.value
    assert subscription.status == "trial"
    assert subscription.price == Decimal("30.00")
    assert subscription.trial_ends_at == NOW + timedelta(days=14)
    assert subscription.current_period_end == NOW + timedelta(days=14)


@pytest.mark.asyncio
async def test_second_open_subscription_conflicts(db, make_subscription):
    await make_subscription("masjid-a")
    result = await subscription_service.create_subscription(db, SubscriptionCreate(tenant_id="masjid-a", tier="premium"))
    await finalize(db, result)
    assert result.code == ErrorCode.CONFLICT


@pytest.mark.asyncio
async def test_get_unknown_tenant_is_not_found(db):
    result = await subscription_service.get_subscription(db, "nobody")
    assert result.code == ErrorCode.NOT_FOUND


@pytest.mark.asyncio
@pytest.mark.parametrize("target", ["grace_period", "soft_locked"])
async def test_trial_only_reaches_active_or_cancelled(db, make_subscription, target):
    await make_subscription("masjid-a", now=NOW)
    result = await finalize(db, await subscription_service.transition(db, "masjid-a", target, now=NOW))
    assert result.code == ErrorCode.INVALID_TRANSITION

    db.expire_all()
    subscription = (await subscription_service.get_subscription(db, "masjid-a")).value
    assert subscription.status == "trial"
    assert subscription.grace_period_end is None
    assert subscription.soft_locked_at is None


@pytest.mark.asyncio
async def test_soft_locked_only_reaches_active_or_cancelled(db, make_subscription):
    await make_subscription("masjid-a", status="active", now=NOW)
    await finalize(db, await subscription_service.transition(db, "masjid-a", "grace_period", now=NOW))
    await finalize(db, await subscription_service.transition(db, "masjid-a", "soft_locked", now=NOW))

    result = await finalize(db, await subscription_service.transition(db, "masjid-a", "grace_period", now=NOW))
    assert result.code == ErrorCode.INVALID_TRANSITION

    result = await finalize(db, await subscription_service.transition(db, "masjid-a", "active", now=NOW))
    assert result.ok
    assert result.value.status == "active"
    assert result.value.soft_locked_at is None


@pytest.mark.asyncio
async def test_manual_soft_lock_records_default_reason(db, make_subscription):
    await make_subscription("masjid-a", status="active", now=NOW)
    await finalize(db, await subscription_service.transition(db, "masjid-a", "grace_period", now=NOW))
    result = await finalize(db, await subscription_service.transition(db, "masjid-a", "soft_locked", now=NOW))
    assert result.value.soft_lock_reason == "manual_override"
    assert result.value.soft_locked_at == NOW


@pytest.mark.asyncio
async def test_transitions_are_audited(db, make_subscription):
    await make_subscription("masjid-a", status="active", now=NOW)
    count = await db.scalar(
        select(func.count()).select_from(BillingEvent).where(BillingEvent.category == "Subscription/Transition")
    )
    assert count == 1


@pytest.mark.asyncio
async def test_cancelled_subscription_is_kept_for_audit(db, make_subscription):
    await make_subscription("masjid-a", status="active", now=NOW)
    result = await finalize(
        db, await subscription_service.transition(db, "masjid-a", "cancelled", reason="closing", now=NOW)
    )
    assert result.value.status == "cancelled"
    assert result.value.cancelled_at == NOW

    fetched = await subscription_service.get_subscription(db, "masjid-a")
    assert fetched.ok
    assert fetched.value.status == "cancelled"
    assert fetched.value.cancellation_reason == "closing"

    # A cancelled tenant may subscribe again.
    again = await finalize(
        db, await subscription_service.create_subscription(db, SubscriptionCreate(tenant_id="masjid-a", tier="pro"))
    )
    assert again.ok


@pytest.mark.asyncio
async def test_paid_trial_is_cancelled_when_it_expires(db, make_subscription):
    await make_subscription("masjid-a", tier="pro", now=NOW)
    result = await finalize(
        db, await subscription_service.evaluate_due(db, "masjid-a", now=NOW + timedelta(days=14, seconds=1))
    )
    assert result.meta["transitioned"]
    assert result.value.status == "cancelled"
    assert result.value.cancellation_reason == "trial_expired"


@pytest.mark.asyncio
async def test_free_trial_becomes_active_when_it_expires(db, make_subscription):
    await make_subscription("masjid-a", tier="rakyat", now=NOW)
    later = NOW + timedelta(days=15)
    result = await finalize(db, await subscription_service.evaluate_due(db, "masjid-a", now=later))
    assert result.value.status == "active"
    assert result.value.current_period_end == later + timedelta(days=30)


@pytest.mark.asyncio
async def test_nothing_due_is_a_no_op(db, make_subscription):
    await make_subscription("masjid-a", now=NOW)
    result = await finalize(db, await subscription_service.evaluate_due(db, "masjid-a", now=NOW + timedelta(days=1)))
    assert result.ok
    assert not result.meta["transitioned"]
    assert result.value.status == "trial"


@pytest.mark.asyncio
async def test_overdue_paid_period_enters_grace(db, make_subscription):
    await make_subscription("masjid-a", status="active", now=NOW)
    # Period ends after 30 days; the callback window adds another 24 hours.
    not_yet = NOW + timedelta(days=30, hours=23)
    result = await finalize(db, await subscription_service.evaluate_due(db, "masjid-a", now=not_yet))
    assert result.value.status == "active"

    overdue = NOW + timedelta(days=31, minutes=1)
    result = await finalize(db, await subscription_service.evaluate_due(db, "masjid-a", now=overdue))
    assert result.value.status == "grace_period"
    assert result.value.grace_period_end == overdue + timedelta(days=7)


@pytest.mark.asyncio
async def test_sweep_processes_each_due_tenant(db, session_factory, make_subscription):
    await make_subscription("masjid-a", tier="pro", now=NOW)
    await make_subscription("masjid-b", tier="rakyat", now=NOW)
    await make_subscription("masjid-c", tier="pro", status="active", now=NOW + timedelta(days=10))

    summary = await subscription_service.sweep(now=NOW + timedelta(days=15), session_factory=session_factory)
    assert summary.evaluated == 2
    assert summary.transitioned == 2
    assert summary.failed == 0

    db.expire_all()
    statuses = {
        tenant: (await subscription_service.get_subscription(db, tenant)).value.status
        for tenant in ("masjid-a", "masjid-b", "masjid-c")
    }
    assert statuses == {"masjid-a": "cancelled", "masjid-b": "active", "masjid-c": "active"}


@pytest.mark.asyncio
async def test_change_tier_updates_price_snapshot(db, make_subscription):
    await make_subscription("masjid-a", tier="pro", status="active", now=NOW)
    result = await finalize(
        db,
        await subscription_service.change_tier(
            db, "masjid-a", TierChangeRequest(tier="premium", billing_cycle="yearly")
        ),
    )
    assert result.value.tier == "premium"
    assert result.value.billing_cycle == "yearly"
    assert result.value.price == Decimal("3600.00")
