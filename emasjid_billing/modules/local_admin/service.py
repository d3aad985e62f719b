import logging
from collections import defaultdict
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from emasjid_billing.core.config import settings
from emasjid_billing.core.results import ErrorCode, Result, failure, success
from emasjid_billing.models.enums import AvailabilityStatus, PaymentStatus, SubscriptionStatus, Tier
from emasjid_billing.models.local_admin_model import LocalAdmin, LocalAdminAssignment
from emasjid_billing.models.transaction_model import PaymentTransaction
from emasjid_billing.repository.local_admin_repository import MANUAL_STATUSES, local_admin_repository
from emasjid_billing.repository.payment_repository import payment_repository
from emasjid_billing.repository.subscription_repository import subscription_repository
from emasjid_billing.schemas.local_admin_schema import (
    EarningsReport,
    LocalAdminCreate,
    LocalAdminUpdate,
    MonthlyEarnings,
)
from emasjid_billing.utils.activity_logger import log_billing_event
from emasjid_billing.utils.money import month_key, to_money

logger = logging.getLogger(__name__)

NO_ADMIN_AVAILABLE = "No local admin is currently available"

ELIGIBLE_STATUSES = (SubscriptionStatus.ACTIVE.value, SubscriptionStatus.GRACE_PERIOD.value)


class CapacityAllocator:
    async def create_local_admin(self, db: AsyncSession, data: LocalAdminCreate) -> Result:
        if await local_admin_repository.get_by_user_id(db, data.user_id):
            return failure(ErrorCode.CONFLICT, f"User {data.user_id} is already a local admin")

        local_admin = LocalAdmin(
            user_id=data.user_id,
            full_name=data.full_name,
            email=data.email,
            whatsapp_number=data.whatsapp_number,
            max_capacity=data.max_capacity or settings.DEFAULT_LOCAL_ADMIN_CAPACITY,
            active_assignment_count=0,
            availability_status=AvailabilityStatus.AVAILABLE.value,
            total_earnings=Decimal("0.00"),
            current_month_earnings=Decimal("0.00"),
            pending_transfers=Decimal("0.00"),
        )
        try:
            local_admin = await local_admin_repository.add(db, local_admin)
        except IntegrityError:
            return failure(ErrorCode.CONFLICT, f"User {data.user_id} is already a local admin")
        logger.info("Local admin %s created for user %s", local_admin.id, data.user_id)
        return success(local_admin)

    async def get_local_admin(self, db: AsyncSession, local_admin_id: int) -> Result:
        local_admin = await local_admin_repository.get(db, local_admin_id)
        if local_admin is None:
            return failure(ErrorCode.NOT_FOUND, f"Local admin {local_admin_id} not found")
        return success(local_admin)

    async def list_local_admins(self, db: AsyncSession, *, available_only: bool = False) -> Result:
        return success(await local_admin_repository.list_admins(db, available_only=available_only))

    async def update_local_admin(self, db: AsyncSession, local_admin_id: int, data: LocalAdminUpdate) -> Result:
        local_admin = await local_admin_repository.get(db, local_admin_id)
        if local_admin is None:
            return failure(ErrorCode.NOT_FOUND, f"Local admin {local_admin_id} not found")

        changes = data.model_dump(exclude_unset=True)
        if changes.get("max_capacity") is not None and changes["max_capacity"] < local_admin.active_assignment_count:
            return failure(
                ErrorCode.VALIDATION_ERROR,
                "Capacity cannot be lowered below the number of active assignments",
                {"active_assignment_count": local_admin.active_assignment_count},
            )
        if changes.get("availability_status") == AvailabilityStatus.AT_CAPACITY:
            return failure(ErrorCode.VALIDATION_ERROR, "at-capacity is derived from assignments and cannot be set")

        for field, value in changes.items():
            if field == "availability_status" and value is not None:
                value = AvailabilityStatus(value).value
            if value is not None:
                setattr(local_admin, field, value)

        # Leaving on-leave/inactive, or a capacity change, recomputes the derived status.
        if local_admin.availability_status not in MANUAL_STATUSES:
            local_admin.availability_status = self._derived_availability(
                local_admin.active_assignment_count, local_admin.max_capacity
            )
        await db.flush()
        await db.refresh(local_admin)
        return success(local_admin)

    @staticmethod
    def _derived_availability(count: int, capacity: int) -> str:
        if count >= capacity:
            return AvailabilityStatus.AT_CAPACITY.value
        return AvailabilityStatus.AVAILABLE.value

    async def assign(
        self,
        db: AsyncSession,
        tenant_id: str,
        local_admin_id: int,
        *,
        actor_id: Optional[str] = None,
    ) -> Result:
        # Same lock order as a status transition: subscription row first, then the local admin.
        subscription = await subscription_repository.get_open_by_tenant(db, tenant_id, for_update=True)
        if (
            subscription is None
            or subscription.tier != Tier.PREMIUM.value
            or subscription.status not in ELIGIBLE_STATUSES
        ):
            return failure(
                ErrorCode.TENANT_NOT_ELIGIBLE,
                "Local admin support requires an active Premium subscription",
                {"tenant_id": tenant_id},
            )

        local_admin = await local_admin_repository.get(db, local_admin_id)
        if local_admin is None:
            return failure(ErrorCode.NOT_FOUND, f"Local admin {local_admin_id} not found")

        existing = await local_admin_repository.get_active_assignment(db, tenant_id)
        if existing is not None:
            if existing.local_admin_id == local_admin_id:
                return success(existing, created=False)
            return failure(
                ErrorCode.CONFLICT,
                f"Tenant {tenant_id} is already assigned to another local admin",
                {"local_admin_id": existing.local_admin_id},
            )

        if not await local_admin_repository.reserve_slot(db, local_admin_id):
            logger.info("Assignment of %s to local admin %s refused: no capacity", tenant_id, local_admin_id)
            return failure(ErrorCode.CAPACITY_EXCEEDED, NO_ADMIN_AVAILABLE)

        assignment = LocalAdminAssignment(
            tenant_id=tenant_id, local_admin_id=local_admin_id, assigned_at=datetime.utcnow()
        )
        db.add(assignment)
        try:
            await db.flush()
        except IntegrityError:
            # A concurrent assign for the same tenant won; the reserved slot rolls back with us.
            return failure(ErrorCode.CONFLICT, f"Tenant {tenant_id} was assigned concurrently")
        await db.refresh(assignment)

        await log_billing_event(
            db,
            tenant_id,
            "LocalAdmin/Assign",
            f"Tenant assigned to local admin {local_admin_id} ({local_admin.full_name}).",
            actor_id=actor_id,
        )
        return success(assignment, created=True)

    async def unassign(
        self,
        db: AsyncSession,
        tenant_id: str,
        *,
        local_admin_id: Optional[int] = None,
        actor_id: Optional[str] = None,
    ) -> Result:
        """Release the tenant's active assignment. Releasing nothing is not an error."""
        assignment = await local_admin_repository.get_active_assignment(db, tenant_id)
        if assignment is None:
            return success(None, released=False)
        if local_admin_id is not None and assignment.local_admin_id != local_admin_id:
            return failure(
                ErrorCode.NOT_FOUND,
                f"Tenant {tenant_id} is not assigned to local admin {local_admin_id}",
            )

        if not await local_admin_repository.close_assignment(db, assignment.id, datetime.utcnow()):
            # A concurrent unassign released it first; its slot is already returned.
            return success(None, released=False)
        await db.refresh(assignment)
        if not await local_admin_repository.release_slot(db, assignment.local_admin_id):
            logger.error(
                "Assignment counter for local admin %s was already zero while releasing %s",
                assignment.local_admin_id, tenant_id,
            )

        await log_billing_event(
            db,
            tenant_id,
            "LocalAdmin/Unassign",
            f"Tenant released from local admin {assignment.local_admin_id}.",
            actor_id=actor_id,
        )
        return success(assignment, released=True)

    async def list_assignments(self, db: AsyncSession, local_admin_id: int) -> Result:
        if await local_admin_repository.get(db, local_admin_id) is None:
            return failure(ErrorCode.NOT_FOUND, f"Local admin {local_admin_id} not found")
        return success(await local_admin_repository.list_active_assignments(db, local_admin_id))

    async def credit_earnings(self, db: AsyncSession, transaction: PaymentTransaction) -> Result:
        """
        Credit the local admin share of a completed Premium payment.

        Must be called once per transaction, right after the ledger applied
        the completed outcome for the first time.
        """
        if transaction.status != PaymentStatus.COMPLETED.value:
            return failure(ErrorCode.VALIDATION_ERROR, f"Payment {transaction.id} is not completed")
        if transaction.credited_local_admin_id is not None:
            return success(transaction, credited=False)

        details = transaction.split_billing_details or {}
        share = to_money(details.get("local_admin_amount", 0))
        if share <= 0:
            return success(transaction, credited=False)

        assignment = await local_admin_repository.get_active_assignment(db, transaction.tenant_id)
        if assignment is None:
            logger.warning(
                "Payment %s carries a local admin share but tenant %s has no assignment",
                transaction.id, transaction.tenant_id,
            )
            return success(transaction, credited=False)

        paid_at = transaction.paid_at or datetime.utcnow()
        await local_admin_repository.add_earnings(
            db, assignment.local_admin_id, share, month_key(paid_at), paid_at
        )

        transaction.credited_local_admin_id = assignment.local_admin_id
        transaction.credited_at = datetime.utcnow()
        transaction.split_billing_details = {**details, "local_admin_id": assignment.local_admin_id}
        await db.flush()

        await log_billing_event(
            db,
            transaction.tenant_id,
            "LocalAdmin/Earnings",
            f"Local admin {assignment.local_admin_id} credited {share} for payment {transaction.id}.",
        )
        return success(transaction, credited=True, local_admin_id=assignment.local_admin_id, amount=share)

    async def earnings_report(
        self, db: AsyncSession, local_admin_id: int, *, now: Optional[datetime] = None
    ) -> Result:
        local_admin = await local_admin_repository.get(db, local_admin_id)
        if local_admin is None:
            return failure(ErrorCode.NOT_FOUND, f"Local admin {local_admin_id} not found")

        current_month = month_key(now or datetime.utcnow())
        current_month_earnings = (
            local_admin.current_month_earnings if local_admin.current_month == current_month else Decimal("0.00")
        )
        breakdown = await local_admin_repository.list_monthly_earnings(db, local_admin_id)
        assigned = await local_admin_repository.count_active_assignments(db, local_admin_id)

        report = EarningsReport(
            local_admin_id=local_admin.id,
            full_name=local_admin.full_name,
            total_earnings=to_money(local_admin.total_earnings or 0),
            current_month=current_month,
            current_month_earnings=to_money(current_month_earnings or 0),
            pending_transfers=to_money(local_admin.pending_transfers or 0),
            last_payment_date=local_admin.last_payment_date,
            monthly_breakdown=[MonthlyEarnings(month=row.month, amount=to_money(row.amount)) for row in breakdown],
            assigned_tenants_count=assigned,
            max_capacity=local_admin.max_capacity,
            remaining_capacity=max(local_admin.max_capacity - assigned, 0),
            availability_status=local_admin.availability_status,
        )
        return success(report)

    async def recompute_earnings(self, db: AsyncSession, local_admin_id: int) -> Result:
        """Rebuild the earnings summary from the credited ledger rows."""
        local_admin = await local_admin_repository.get(db, local_admin_id)
        if local_admin is None:
            return failure(ErrorCode.NOT_FOUND, f"Local admin {local_admin_id} not found")

        monthly = defaultdict(lambda: Decimal("0.00"))
        total = Decimal("0.00")
        last_paid = None
        for transaction in await payment_repository.list_credited_to(db, local_admin_id):
            share = to_money((transaction.split_billing_details or {}).get("local_admin_amount", 0))
            paid_at = transaction.paid_at or transaction.created_at
            monthly[month_key(paid_at)] += share
            total += share
            if last_paid is None or paid_at > last_paid:
                last_paid = paid_at

        current_month = month_key(datetime.utcnow())
        # Transfers already paid out are not tracked here, so pending is left as is.
        local_admin.total_earnings = total
        local_admin.current_month = current_month
        local_admin.current_month_earnings = monthly.get(current_month, Decimal("0.00"))
        local_admin.last_payment_date = last_paid
        await local_admin_repository.replace_monthly_earnings(db, local_admin_id, dict(monthly))
        await db.refresh(local_admin)

        await log_billing_event(
            db, None, "LocalAdmin/Recompute", f"Earnings of local admin {local_admin_id} rebuilt: total {total}."
        )
        return await self.earnings_report(db, local_admin_id)


capacity_allocator = CapacityAllocator()
