import asyncio
import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from emasjid_billing.core.cache import invalidate_subscription
from emasjid_billing.core.config import settings
from emasjid_billing.core.database import db_manager
from emasjid_billing.core.results import ErrorCode, Result, failure, success
from emasjid_billing.core.uow import finalize
from emasjid_billing.models.enums import BillingCycle, PaymentStatus, SubscriptionStatus, Tier
from emasjid_billing.models.subscription_model import Subscription
from emasjid_billing.models.transaction_model import PaymentTransaction
from emasjid_billing.modules.subscription.state_machine import can_transition
from emasjid_billing.modules.tiers.catalog import TierCatalog, tier_catalog
from emasjid_billing.repository.subscription_repository import subscription_repository
from emasjid_billing.schemas.subscription_schema import SubscriptionCreate, SweepResponse, TierChangeRequest
from emasjid_billing.utils.activity_logger import log_billing_event

logger = logging.getLogger(__name__)

S = SubscriptionStatus


def cycle_length(cycle) -> timedelta:
    if BillingCycle(cycle) == BillingCycle.YEARLY:
        return timedelta(days=settings.YEARLY_CYCLE_DAYS)
    return timedelta(days=settings.MONTHLY_CYCLE_DAYS)


class SubscriptionService:
    """Owns each tenant's subscription record and its timed transitions."""

    def __init__(self, catalog: TierCatalog = tier_catalog):
        self.catalog = catalog

    @property
    def trial_duration(self) -> timedelta:
        return timedelta(days=settings.TRIAL_DURATION_DAYS)

    @property
    def grace_duration(self) -> timedelta:
        return timedelta(days=settings.GRACE_PERIOD_DAYS)

    async def create_subscription(
        self,
        db: AsyncSession,
        data: SubscriptionCreate,
        *,
        actor_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Result:
        now = now or datetime.utcnow()
        existing = await subscription_repository.get_open_by_tenant(db, data.tenant_id)
        if existing:
            return failure(
                ErrorCode.CONFLICT,
                f"Subscription already exists for tenant {data.tenant_id}",
                {"subscription_id": existing.id, "status": existing.status},
            )

        definition = self.catalog.get_tier(data.tier)
        trial_end = now + self.trial_duration
        subscription = Subscription(
            tenant_id=data.tenant_id,
            tier=definition.tier.value,
            status=S.TRIAL.value,
            billing_cycle=BillingCycle(data.billing_cycle).value,
            price=definition.price_for(data.billing_cycle),
            trial_ends_at=trial_end,
            current_period_start=now,
            current_period_end=trial_end,
            next_billing_date=trial_end,
            failed_payment_attempts=0,
            billing_contact_name=data.billing_contact_name,
            billing_email=data.billing_email,
            billing_phone=data.billing_phone,
        )
        db.add(subscription)
        try:
            await db.flush()
        except IntegrityError:
            # Lost a race with another create for the same tenant.
            return failure(ErrorCode.CONFLICT, f"Subscription already exists for tenant {data.tenant_id}")
        await db.refresh(subscription)

        await log_billing_event(
            db,
            data.tenant_id,
            "Subscription/Create",
            f"Trial subscription {subscription.id} created on tier '{subscription.tier}' ({subscription.billing_cycle}).",
            actor_id=actor_id,
            timestamp=now,
        )
        invalidate_subscription(db, data.tenant_id)
        return success(subscription)

    async def get_subscription(self, db: AsyncSession, tenant_id: str) -> Result:
        """Current subscription, or the latest cancelled one kept for audit."""
        subscription = await subscription_repository.get_open_by_tenant(db, tenant_id)
        if subscription is None:
            subscription = await subscription_repository.get_latest_by_tenant(db, tenant_id)
        if subscription is None:
            return failure(ErrorCode.NOT_FOUND, f"No subscription for tenant {tenant_id}")
        return success(subscription)

    async def transition(
        self,
        db: AsyncSession,
        tenant_id: str,
        target_status,
        *,
        reason: Optional[str] = None,
        actor_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Result:
        now = now or datetime.utcnow()
        target = S(target_status)
        subscription = await subscription_repository.get_open_by_tenant(db, tenant_id, for_update=True)
        if subscription is None:
            return failure(ErrorCode.NOT_FOUND, f"No subscription for tenant {tenant_id}")

        if target == S.SOFT_LOCKED and not reason:
            reason = "manual_override"
        return await self._transition(db, subscription, target, reason=reason, actor_id=actor_id, now=now)

    async def _transition(
        self,
        db: AsyncSession,
        subscription: Subscription,
        target: SubscriptionStatus,
        *,
        reason: Optional[str],
        actor_id: Optional[str],
        now: datetime,
    ) -> Result:
        current = S(subscription.status)
        if not can_transition(current, target):
            logger.warning(
                "Rejected transition %s -> %s for tenant %s (subscription %s)",
                current.value, target.value, subscription.tenant_id, subscription.id,
            )
            return failure(
                ErrorCode.INVALID_TRANSITION,
                f"Cannot move subscription from {current.value} to {target.value}",
                {"current_status": current.value, "target_status": target.value},
            )

        if target == S.ACTIVE:
            self._start_period(subscription, now)
            subscription.grace_period_start = None
            subscription.grace_period_end = None
            subscription.soft_locked_at = None
            subscription.soft_lock_reason = None
            subscription.failed_payment_attempts = 0
        elif target == S.GRACE_PERIOD:
            subscription.grace_period_start = now
            subscription.grace_period_end = now + self.grace_duration
        elif target == S.SOFT_LOCKED:
            subscription.grace_period_start = None
            subscription.grace_period_end = None
            subscription.soft_locked_at = now
            subscription.soft_lock_reason = reason
        elif target == S.CANCELLED:
            subscription.grace_period_start = None
            subscription.grace_period_end = None
            subscription.soft_locked_at = None
            subscription.soft_lock_reason = None
            subscription.next_billing_date = None
            subscription.cancelled_at = now
            subscription.cancellation_reason = reason

        subscription.status = target.value
        try:
            await db.flush()
        except StaleDataError:
            logger.warning("Concurrent update on subscription %s; transition not applied", subscription.id)
            return failure(ErrorCode.CONFLICT, "Subscription was modified concurrently, retry the request")

        if target == S.CANCELLED:
            release = await self._release_local_admin(db, subscription.tenant_id, actor_id=actor_id)
            if not release.ok:
                return release

        description = f"Subscription {subscription.id}: {current.value} -> {target.value}"
        if reason:
            description += f" ({reason})"
        await log_billing_event(
            db, subscription.tenant_id, "Subscription/Transition", description, actor_id=actor_id, timestamp=now
        )
        invalidate_subscription(db, subscription.tenant_id)
        logger.info(description)
        return success(subscription, previous_status=current.value, transitioned=True)

    def _start_period(self, subscription: Subscription, start: datetime) -> None:
        subscription.current_period_start = start
        subscription.current_period_end = start + cycle_length(subscription.billing_cycle)
        subscription.next_billing_date = subscription.current_period_end

    async def _release_local_admin(self, db: AsyncSession, tenant_id: str, *, actor_id: Optional[str]) -> Result:
        from emasjid_billing.modules.local_admin.service import capacity_allocator

        return await capacity_allocator.unassign(db, tenant_id, actor_id=actor_id)

    async def apply_payment_outcome(
        self,
        db: AsyncSession,
        transaction: PaymentTransaction,
        outcome,
        *,
        now: Optional[datetime] = None,
    ) -> Result:
        """React to a ledger outcome that was applied for the first time."""
        now = now or datetime.utcnow()
        outcome = PaymentStatus(outcome)
        subscription = await subscription_repository.get_for_update(db, transaction.subscription_id)
        if subscription is None:
            return failure(ErrorCode.NOT_FOUND, f"Subscription {transaction.subscription_id} not found")

        current = S(subscription.status)
        if current == S.CANCELLED:
            logger.warning(
                "Payment %s reported %s for cancelled subscription %s; ignored",
                transaction.id, outcome.value, subscription.id,
            )
            return success(subscription, previous_status=current.value, transitioned=False)

        if outcome == PaymentStatus.COMPLETED:
            if current == S.ACTIVE:
                return await self._renew(db, subscription, transaction, now)
            return await self._transition(
                db, subscription, S.ACTIVE, reason=f"payment {transaction.id} completed", actor_id=None, now=now
            )

        if outcome == PaymentStatus.FAILED:
            subscription.failed_payment_attempts = (subscription.failed_payment_attempts or 0) + 1
            subscription.last_failed_at = now
            if current == S.ACTIVE:
                return await self._transition(
                    db, subscription, S.GRACE_PERIOD, reason=f"payment {transaction.id} failed", actor_id=None, now=now
                )
            try:
                await db.flush()
            except StaleDataError:
                return failure(ErrorCode.CONFLICT, "Subscription was modified concurrently, retry the request")
            invalidate_subscription(db, subscription.tenant_id)
            return success(subscription, previous_status=current.value, transitioned=False)

        return success(subscription, previous_status=current.value, transitioned=False)

    async def _renew(
        self, db: AsyncSession, subscription: Subscription, transaction: PaymentTransaction, now: datetime
    ) -> Result:
        # Renewals continue from the end of the paid period, not from the payment date.
        self._start_period(subscription, subscription.current_period_end or now)
        subscription.failed_payment_attempts = 0
        try:
            await db.flush()
        except StaleDataError:
            return failure(ErrorCode.CONFLICT, "Subscription was modified concurrently, retry the request")
        await log_billing_event(
            db,
            subscription.tenant_id,
            "Subscription/Renewal",
            f"Subscription {subscription.id} renewed by payment {transaction.id} until {subscription.current_period_end:%Y-%m-%d}",
            timestamp=now,
        )
        invalidate_subscription(db, subscription.tenant_id)
        return success(subscription, previous_status=S.ACTIVE.value, transitioned=False)

    async def evaluate_due(self, db: AsyncSession, tenant_id: str, *, now: Optional[datetime] = None) -> Result:
        """
        Apply whichever time-driven transition is due for the tenant, if any.

        - trial past its end: free tiers become active, paid tiers are cancelled
        - grace period past its end: soft-locked
        - active past its period end plus the callback window: paid tiers enter
          the grace period as if the renewal had failed; free tiers roll over
        """
        now = now or datetime.utcnow()
        subscription = await subscription_repository.get_open_by_tenant(db, tenant_id, for_update=True)
        if subscription is None:
            return failure(ErrorCode.NOT_FOUND, f"No subscription for tenant {tenant_id}")

        current = S(subscription.status)
        is_free = (subscription.price or 0) == 0

        if current == S.TRIAL and subscription.trial_ends_at and subscription.trial_ends_at <= now:
            if is_free:
                return await self._transition(db, subscription, S.ACTIVE, reason="free_tier", actor_id=None, now=now)
            return await self._transition(
                db, subscription, S.CANCELLED, reason="trial_expired", actor_id=None, now=now
            )

        if current == S.GRACE_PERIOD and subscription.grace_period_end and subscription.grace_period_end <= now:
            return await self._transition(
                db, subscription, S.SOFT_LOCKED, reason="grace_period_expired", actor_id=None, now=now
            )

        window = timedelta(hours=settings.PAYMENT_CALLBACK_WINDOW_HOURS)
        if current == S.ACTIVE and subscription.current_period_end and subscription.current_period_end + window <= now:
            if is_free:
                while subscription.current_period_end <= now:
                    self._start_period(subscription, subscription.current_period_end)
                await db.flush()
                invalidate_subscription(db, tenant_id)
                return success(subscription, previous_status=current.value, transitioned=False)
            return await self._transition(
                db, subscription, S.GRACE_PERIOD, reason="payment_overdue", actor_id=None, now=now
            )

        return success(subscription, previous_status=current.value, transitioned=False)

    async def change_tier(
        self,
        db: AsyncSession,
        tenant_id: str,
        request: TierChangeRequest,
        *,
        actor_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Result:
        now = now or datetime.utcnow()
        subscription = await subscription_repository.get_open_by_tenant(db, tenant_id, for_update=True)
        if subscription is None:
            return failure(ErrorCode.NOT_FOUND, f"No subscription for tenant {tenant_id}")

        new_tier = Tier(request.tier)
        new_cycle = BillingCycle(request.billing_cycle or subscription.billing_cycle)
        old_tier = Tier(subscription.tier)
        if new_tier == old_tier and new_cycle.value == subscription.billing_cycle:
            return success(subscription, transitioned=False)

        subscription.tier = new_tier.value
        subscription.billing_cycle = new_cycle.value
        subscription.price = self.catalog.price_for(new_tier, new_cycle)
        try:
            await db.flush()
        except StaleDataError:
            return failure(ErrorCode.CONFLICT, "Subscription was modified concurrently, retry the request")

        if old_tier == Tier.PREMIUM and new_tier != Tier.PREMIUM:
            release = await self._release_local_admin(db, tenant_id, actor_id=actor_id)
            if not release.ok:
                return release

        await log_billing_event(
            db,
            tenant_id,
            "Subscription/TierChange",
            f"Subscription {subscription.id} moved from '{old_tier.value}' to '{new_tier.value}' ({new_cycle.value}).",
            actor_id=actor_id,
            timestamp=now,
        )
        invalidate_subscription(db, tenant_id)
        return success(subscription, transitioned=False)

    async def sweep(
        self,
        *,
        now: Optional[datetime] = None,
        session_factory: Optional[Callable[[], AsyncSession]] = None,
    ) -> SweepResponse:
        """
        Evaluate every due tenant. Each tenant runs in its own session and
        transaction, so tenants are processed concurrently and one failure
        does not affect the rest.
        """
        now = now or datetime.utcnow()
        factory = session_factory or db_manager.async_session_maker

        async with factory() as db:
            tenant_ids = await subscription_repository.list_due_tenant_ids(
                db,
                now,
                callback_window=timedelta(hours=settings.PAYMENT_CALLBACK_WINDOW_HOURS),
                limit=settings.SWEEP_BATCH_SIZE,
            )

        semaphore = asyncio.Semaphore(settings.SWEEP_CONCURRENCY)

        async def _evaluate(tenant_id: str) -> Optional[Result]:
            async with semaphore:
                async with factory() as db:
                    try:
                        return await finalize(db, await self.evaluate_due(db, tenant_id, now=now))
                    except Exception:
                        await db.rollback()
                        logger.exception("Sweep failed for tenant %s", tenant_id)
                        return None

        results = await asyncio.gather(*(_evaluate(tenant_id) for tenant_id in tenant_ids))

        transitioned = sum(1 for r in results if r is not None and r.ok and r.meta.get("transitioned"))
        failed = sum(1 for r in results if r is None or not r.ok)
        logger.info(
            "Subscription sweep at %s: %d evaluated, %d transitioned, %d failed",
            now.isoformat(), len(tenant_ids), transitioned, failed,
        )
        return SweepResponse(evaluated=len(tenant_ids), transitioned=transitioned, failed=failed)


subscription_service = SubscriptionService()
