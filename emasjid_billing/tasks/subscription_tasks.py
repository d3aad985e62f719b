# emasjid_billing/tasks/subscription_tasks.py
import asyncio
import logging

from emasjid_billing.core.celery_app import celery_app
from emasjid_billing.core.database import DatabaseManager
from emasjid_billing.modules.subscription.service import subscription_service

logger = logging.getLogger(__name__)


async def _run_sweep() -> dict:
    # Each task run gets its own engine; asyncpg pools are bound to the event loop that created them.
    manager = DatabaseManager()
    try:
        summary = await subscription_service.sweep(session_factory=manager.async_session_maker)
    finally:
        await manager.close()
    return summary.model_dump()


@celery_app.task(name="tasks.sweep_due_subscriptions")
def sweep_due_subscriptions():
    """
    A periodic task that applies due trial expiries, grace period expiries
    and overdue renewals.
    """
    logger.info("--- Running periodic task: sweeping due subscriptions ---")
    summary = asyncio.run(_run_sweep())
    logger.info(
        "Sweep finished: %(evaluated)s evaluated, %(transitioned)s transitioned, %(failed)s failed", summary
    )
    return summary
