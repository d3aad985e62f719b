from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy import func, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from emasjid_billing.models.enums import PaymentStatus
from emasjid_billing.models.transaction_model import PaymentTransaction
from emasjid_billing.repository.base_repository import BaseRepository

OPEN_STATUSES = (PaymentStatus.PENDING.value, PaymentStatus.PROCESSING.value)


class PaymentRepository(BaseRepository[PaymentTransaction]):
    def __init__(self):
        super().__init__(PaymentTransaction)

    async def get_by_external_id(self, db: AsyncSession, external_transaction_id: str) -> Optional[PaymentTransaction]:
        result = await db.execute(
            select(PaymentTransaction).where(PaymentTransaction.external_transaction_id == external_transaction_id)
        )
        return result.scalar_one_or_none()

    async def bind_external_id(self, db: AsyncSession, transaction_id: int, external_transaction_id: str) -> bool:
        """Attach a gateway id to a row that has none yet. False if someone got there first."""
        result = await db.execute(
            update(PaymentTransaction)
            .where(
                PaymentTransaction.id == transaction_id,
                PaymentTransaction.external_transaction_id.is_(None),
            )
            .values(external_transaction_id=external_transaction_id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def transition_status(
        self,
        db: AsyncSession,
        transaction_id: int,
        *,
        from_statuses: Iterable[str],
        values: dict,
    ) -> bool:
        """
        Compare-and-swap on the status column. Only one caller can move a
        row out of a given status; the loser sees rowcount 0.
        """
        result = await db.execute(
            update(PaymentTransaction)
            .where(
                PaymentTransaction.id == transaction_id,
                PaymentTransaction.status.in_(list(from_statuses)),
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def list_filtered(
        self,
        db: AsyncSession,
        *,
        subscription_id: Optional[int] = None,
        tenant_id: Optional[str] = None,
        status: Optional[str] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> tuple[List[PaymentTransaction], int]:
        query = select(PaymentTransaction)
        count_query = select(func.count()).select_from(PaymentTransaction)

        filters = []
        if subscription_id is not None:
            filters.append(PaymentTransaction.subscription_id == subscription_id)
        if tenant_id is not None:
            filters.append(PaymentTransaction.tenant_id == tenant_id)
        if status is not None:
            filters.append(PaymentTransaction.status == status)
        if filters:
            query = query.where(*filters)
            count_query = count_query.where(*filters)

        query = query.order_by(PaymentTransaction.created_at.desc(), PaymentTransaction.id.desc())
        result = await db.execute(query.offset(skip).limit(limit))
        items = result.scalars().all()
        total = await db.scalar(count_query) or 0
        return items, total

    async def list_by_status(
        self,
        db: AsyncSession,
        statuses: Iterable[str],
        *,
        subscription_id: Optional[int] = None,
        older_than: Optional[datetime] = None,
    ) -> List[PaymentTransaction]:
        stmt = select(PaymentTransaction).where(PaymentTransaction.status.in_(list(statuses)))
        if subscription_id is not None:
            stmt = stmt.where(PaymentTransaction.subscription_id == subscription_id)
        if older_than is not None:
            stmt = stmt.where(PaymentTransaction.created_at <= older_than)
        result = await db.execute(stmt.order_by(PaymentTransaction.created_at.asc(), PaymentTransaction.id.asc()))
        return result.scalars().all()

    async def list_credited_to(self, db: AsyncSession, local_admin_id: int) -> List[PaymentTransaction]:
        stmt = (
            select(PaymentTransaction)
            .where(
                PaymentTransaction.credited_local_admin_id == local_admin_id,
                PaymentTransaction.status == PaymentStatus.COMPLETED.value,
            )
            .order_by(PaymentTransaction.paid_at.asc(), PaymentTransaction.id.asc())
        )
        result = await db.execute(stmt)
        return result.scalars().all()


payment_repository = PaymentRepository()
