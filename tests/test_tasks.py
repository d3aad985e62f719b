from unittest.mock import AsyncMock, MagicMock, patch

from emasjid_billing.core.celery_app import celery_app
from emasjid_billing.schemas.subscription_schema import SweepResponse
from emasjid_billing.tasks.subscription_tasks import sweep_due_subscriptions


def test_sweep_is_scheduled():
    entry = celery_app.conf.beat_schedule["sweep-due-subscriptions"]
    assert entry["task"] == "tasks.sweep_due_subscriptions"
    assert sweep_due_subscriptions.name == "tasks.sweep_due_subscriptions"


def test_sweep_task_runs_with_its_own_engine():
    manager = MagicMock()
    manager.close = AsyncMock()
    summary = SweepResponse(evaluated=4, transitioned=1, failed=0)
    with patch("emasjid_billing.tasks.subscription_tasks.DatabaseManager", return_value=manager), \
         patch("emasjid_billing.tasks.subscription_tasks.subscription_service.sweep",
               new_callable=AsyncMock, return_value=summary) as mock_sweep:
        result = sweep_due_subscriptions()

    assert result == {"evaluated": 4, "transitioned": 1, "failed": 0}
    mock_sweep.assert_awaited_once_with(session_factory=manager.async_session_maker)
    manager.close.assert_awaited_once()
