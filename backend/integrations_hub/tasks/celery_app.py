from celery import Celery
from celery.schedules import crontab
from integrations_hub.core.config import settings

celery_app = Celery(
    "integration_tasks",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
    include=['integrations_hub.tasks.scheduled_tasks']
)

celery_app.conf.update(
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone='UTC',
    enable_utc=True,
    task_default_queue='default',
    worker_prefetch_multiplier=1,
    # Re-delivered if the worker dies mid-task
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    # A sweep must finish well before the next one starts
    task_time_limit=240,
    task_soft_time_limit=200,
)

celery_app.conf.beat_schedule = {
    'sync-due-integrations': {
        'task': 'sync_due_integrations',
        'schedule': crontab(minute='*/5'),
        'options': {'queue': 'default'}
    },
    'retry-due-webhook-deliveries': {
        'task': 'retry_due_webhook_deliveries',
        'schedule': crontab(minute='*'),
        'options': {'queue': 'default'}
    },
}
