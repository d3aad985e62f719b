import datetime
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from emasjid_billing.models.log_model import BillingEvent

async def log_billing_event(
    db: AsyncSession,
    tenant_id: Optional[str],
    category: str,
    description: str,
    actor_id: Optional[str] = None,
    timestamp: Optional[datetime.datetime] = None
):
    """
    Records a billing audit event in the caller's transaction.

    The row is only flushed; it is committed (or rolled back) together with
    the state change it describes.

    Args:
        db: The database session.
        tenant_id: The tenant (masjid) the event belongs to.
        category: Broad category of the event (e.g. "Subscription/Transition").
        description: A human-readable description of what happened.
        actor_id: Who triggered it; None for the scheduler and the gateway.
        timestamp: The datetime of the event. Defaults to now.
    """
    if timestamp is None:
        timestamp = datetime.datetime.utcnow()

    event = BillingEvent(
        timestamp=timestamp,
        actor_id=actor_id,
        tenant_id=tenant_id,
        category=category,
        description=description
    )

    db.add(event)
    await db.flush()
