from celery import Celery
from celery.schedules import crontab
from emasjid_billing.core.config import settings

# Initialize Celery
celery_app = Celery(
    "tasks",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
    include=[
        "emasjid_billing.tasks.subscription_tasks"
    ]
)

celery_app.conf.update(
    task_track_started=True,
    beat_schedule={
        'sweep-due-subscriptions': {
            'task': 'tasks.sweep_due_subscriptions',
            'schedule': crontab(minute=f"*/{settings.SWEEP_INTERVAL_MINUTES}"),
        },
    },
)
