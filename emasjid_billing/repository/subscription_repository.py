from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import and_, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from emasjid_billing.models.enums import SubscriptionStatus
from emasjid_billing.models.subscription_model import Subscription
from emasjid_billing.repository.base_repository import BaseRepository


class SubscriptionRepository(BaseRepository[Subscription]):
    def __init__(self):
        super().__init__(Subscription)

    async def get_open_by_tenant(
        self, db: AsyncSession, tenant_id: str, *, for_update: bool = False
    ) -> Optional[Subscription]:
        """The tenant's non-cancelled subscription, optionally row-locked."""
        stmt = select(Subscription).where(
            Subscription.tenant_id == tenant_id,
            Subscription.status != SubscriptionStatus.CANCELLED.value,
        )
        if for_update:
            stmt = stmt.with_for_update()
        result = await db.execute(stmt)
        return result.scalars().first()

    async def get_latest_by_tenant(self, db: AsyncSession, tenant_id: str) -> Optional[Subscription]:
        stmt = (
            select(Subscription)
            .where(Subscription.tenant_id == tenant_id)
            .order_by(Subscription.created_at.desc(), Subscription.id.desc())
            .limit(1)
        )
        result = await db.execute(stmt)
        return result.scalars().first()

    async def get_for_update(self, db: AsyncSession, subscription_id: int) -> Optional[Subscription]:
        result = await db.execute(
            select(Subscription).where(Subscription.id == subscription_id).with_for_update()
        )
        return result.scalar_one_or_none()

    async def list_due_tenant_ids(
        self,
        db: AsyncSession,
        now: datetime,
        *,
        callback_window: timedelta,
        limit: int = 500,
    ) -> List[str]:
        """Tenants whose trial, grace period or billing period has run out."""
        due = or_(
            and_(
                Subscription.status == SubscriptionStatus.TRIAL.value,
                Subscription.trial_ends_at <= now,
            ),
            and_(
                Subscription.status == SubscriptionStatus.GRACE_PERIOD.value,
                Subscription.grace_period_end <= now,
            ),
            and_(
                Subscription.status == SubscriptionStatus.ACTIVE.value,
                Subscription.current_period_end <= now - callback_window,
            ),
        )
        stmt = select(Subscription.tenant_id).where(due).order_by(Subscription.id).limit(limit)
        result = await db.execute(stmt)
        return [row[0] for row in result.all()]


subscription_repository = SubscriptionRepository()
