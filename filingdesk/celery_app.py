"""
FilingDesk - Celery Configuration

Celery configuration for batch workflow reporting.
Uses Redis as the message broker and result backend.

Nothing on the transition path depends on these tasks; they only read.
"""

from celery import Celery
from celery.schedules import crontab

from filingdesk.config import settings
from filingdesk.logging_config import configure_logging

configure_logging()

celery_app = Celery(
    'filingdesk',
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=['filingdesk.tasks.workflow_tasks'],
)

celery_app.conf.update(
    # Serialization
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',

    # Timezone
    timezone=settings.business_timezone,
    enable_utc=True,

    # Task execution settings
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_time_limit=600,
    task_soft_time_limit=540,

    # Worker settings
    worker_prefetch_multiplier=1,

    # Result backend settings
    result_expires=86400,  # 24 hours

    beat_schedule={
        # Bottleneck report after the working day
        'nightly-bottleneck-report': {
            'task': 'filingdesk.tasks.workflow_tasks.bottleneck_report_task',
            'schedule': crontab(hour=22, minute=0),
        },

        # Records sitting in one stage too long
        'daily-stuck-records': {
            'task': 'filingdesk.tasks.workflow_tasks.stuck_records_task',
            'schedule': crontab(hour=7, minute=30),
        },

        # Overdue statutory deadlines before the office opens
        'daily-overdue-deadlines': {
            'task': 'filingdesk.tasks.workflow_tasks.overdue_deadlines_task',
            'schedule': crontab(hour=7, minute=0),
        },
    },
)

celery_app.conf.task_routes = {
    'filingdesk.tasks.workflow_tasks.*': {'queue': 'reports'},
}
