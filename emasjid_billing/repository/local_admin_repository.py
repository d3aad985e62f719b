from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import case, func, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from emasjid_billing.models.enums import AvailabilityStatus
from emasjid_billing.models.local_admin_model import (
    LocalAdmin,
    LocalAdminAssignment,
    LocalAdminMonthlyEarning,
)
from emasjid_billing.repository.base_repository import BaseRepository

# Statuses set by hand; capacity bookkeeping never overwrites them.
MANUAL_STATUSES = (AvailabilityStatus.ON_LEAVE.value, AvailabilityStatus.INACTIVE.value)


def _recomputed_availability(new_count):
    return case(
        (LocalAdmin.availability_status.in_(MANUAL_STATUSES), LocalAdmin.availability_status),
        (new_count >= LocalAdmin.max_capacity, AvailabilityStatus.AT_CAPACITY.value),
        else_=AvailabilityStatus.AVAILABLE.value,
    )


class LocalAdminRepository(BaseRepository[LocalAdmin]):
    def __init__(self):
        super().__init__(LocalAdmin)

    async def get(self, db: AsyncSession, id: int) -> Optional[LocalAdmin]:
        # Counters move through bulk UPDATEs; reload instead of trusting the identity map.
        result = await db.execute(
            select(LocalAdmin).where(LocalAdmin.id == id).execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_by_user_id(self, db: AsyncSession, user_id: str) -> Optional[LocalAdmin]:
        result = await db.execute(select(LocalAdmin).where(LocalAdmin.user_id == user_id))
        return result.scalar_one_or_none()

    async def list_admins(self, db: AsyncSession, *, available_only: bool = False) -> List[LocalAdmin]:
        stmt = select(LocalAdmin)
        if available_only:
            stmt = stmt.where(
                LocalAdmin.availability_status == AvailabilityStatus.AVAILABLE.value,
                LocalAdmin.active_assignment_count < LocalAdmin.max_capacity,
            )
            stmt = stmt.order_by((LocalAdmin.max_capacity - LocalAdmin.active_assignment_count).desc(), LocalAdmin.id)
        else:
            stmt = stmt.order_by(LocalAdmin.id)
        result = await db.execute(stmt)
        return result.scalars().all()

    async def reserve_slot(self, db: AsyncSession, local_admin_id: int) -> bool:
        """
        Take one capacity slot in a single conditional UPDATE. The count
        check and the increment happen in the same statement, so two
        concurrent callers cannot both pass a check on the same count.
        """
        new_count = LocalAdmin.active_assignment_count + 1
        result = await db.execute(
            update(LocalAdmin)
            .where(
                LocalAdmin.id == local_admin_id,
                LocalAdmin.active_assignment_count < LocalAdmin.max_capacity,
                LocalAdmin.availability_status.not_in(MANUAL_STATUSES),
            )
            .values(
                active_assignment_count=new_count,
                availability_status=_recomputed_availability(new_count),
                updated_at=func.now(),
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def release_slot(self, db: AsyncSession, local_admin_id: int) -> bool:
        new_count = LocalAdmin.active_assignment_count - 1
        result = await db.execute(
            update(LocalAdmin)
            .where(LocalAdmin.id == local_admin_id, LocalAdmin.active_assignment_count > 0)
            .values(
                active_assignment_count=new_count,
                availability_status=_recomputed_availability(new_count),
                updated_at=func.now(),
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def get_active_assignment(self, db: AsyncSession, tenant_id: str) -> Optional[LocalAdminAssignment]:
        result = await db.execute(
            select(LocalAdminAssignment).where(
                LocalAdminAssignment.tenant_id == tenant_id,
                LocalAdminAssignment.unassigned_at.is_(None),
            )
        )
        return result.scalar_one_or_none()

    async def close_assignment(self, db: AsyncSession, assignment_id: int, closed_at: datetime) -> bool:
        """Stamp the assignment as released only if it is still open. False means another caller closed it."""
        result = await db.execute(
            update(LocalAdminAssignment)
            .where(LocalAdminAssignment.id == assignment_id, LocalAdminAssignment.unassigned_at.is_(None))
            .values(unassigned_at=closed_at)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def list_active_assignments(self, db: AsyncSession, local_admin_id: int) -> List[LocalAdminAssignment]:
        result = await db.execute(
            select(LocalAdminAssignment)
            .where(
                LocalAdminAssignment.local_admin_id == local_admin_id,
                LocalAdminAssignment.unassigned_at.is_(None),
            )
            .order_by(LocalAdminAssignment.assigned_at.asc(), LocalAdminAssignment.id.asc())
        )
        return result.scalars().all()

    async def count_active_assignments(self, db: AsyncSession, local_admin_id: int) -> int:
        stmt = select(func.count()).select_from(LocalAdminAssignment).where(
            LocalAdminAssignment.local_admin_id == local_admin_id,
            LocalAdminAssignment.unassigned_at.is_(None),
        )
        return await db.scalar(stmt) or 0

    async def add_earnings(
        self,
        db: AsyncSession,
        local_admin_id: int,
        amount: Decimal,
        month: str,
        paid_at: datetime,
    ) -> None:
        """Atomic increments; a month change restarts the current-month total."""
        await db.execute(
            update(LocalAdmin)
            .where(LocalAdmin.id == local_admin_id)
            .values(
                total_earnings=LocalAdmin.total_earnings + amount,
                pending_transfers=LocalAdmin.pending_transfers + amount,
                current_month_earnings=case(
                    (LocalAdmin.current_month == month, LocalAdmin.current_month_earnings + amount),
                    else_=amount,
                ),
                current_month=month,
                last_payment_date=paid_at,
                updated_at=func.now(),
            )
            .execution_options(synchronize_session=False)
        )

        updated = await db.execute(
            update(LocalAdminMonthlyEarning)
            .where(
                LocalAdminMonthlyEarning.local_admin_id == local_admin_id,
                LocalAdminMonthlyEarning.month == month,
            )
            .values(amount=LocalAdminMonthlyEarning.amount + amount)
            .execution_options(synchronize_session=False)
        )
        if updated.rowcount == 0:
            db.add(LocalAdminMonthlyEarning(local_admin_id=local_admin_id, month=month, amount=amount))
            await db.flush()

    async def list_monthly_earnings(self, db: AsyncSession, local_admin_id: int) -> List[LocalAdminMonthlyEarning]:
        result = await db.execute(
            select(LocalAdminMonthlyEarning)
            .where(LocalAdminMonthlyEarning.local_admin_id == local_admin_id)
            .order_by(LocalAdminMonthlyEarning.month.desc())
        )
        return result.scalars().all()

    async def replace_monthly_earnings(self, db: AsyncSession, local_admin_id: int, breakdown: dict) -> None:
        existing = {row.month: row for row in await self.list_monthly_earnings(db, local_admin_id)}
        for month, row in existing.items():
            if month not in breakdown:
                await db.delete(row)
        for month, amount in breakdown.items():
            if month in existing:
                existing[month].amount = amount
            else:
                db.add(LocalAdminMonthlyEarning(local_admin_id=local_admin_id, month=month, amount=amount))
        await db.flush()


local_admin_repository = LocalAdminRepository()
