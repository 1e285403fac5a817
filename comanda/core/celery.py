"""
Celery configuration for background tasks
"""
from celery import Celery
import logging

from comanda.core.config import settings

logger = logging.getLogger(__name__)

# Create Celery instance
celery_app = Celery(
    "comanda",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=[
        "comanda.modules.notifications.tasks",
    ]
)

# Celery configuration
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone=settings.STORE_TIMEZONE,
    enable_utc=True,
    task_track_started=True,
    task_time_limit=5 * 60,
    task_soft_time_limit=4 * 60,
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=1000,

    # Rate limiting
    task_default_rate_limit="100/m",

    # Result backend settings
    result_expires=3600,  # 1 hour

    # Publishing must not hold the checkout request
    broker_connection_timeout=2,
    task_publish_retry_policy={
        "max_retries": 1,
        "interval_start": 0,
        "interval_step": 0.2,
        "interval_max": 0.2,
    },

    # Task routes for different queues
    task_routes={
        "comanda.modules.notifications.tasks.send_whatsapp_message_task": {"queue": "notifications"},
        "comanda.modules.notifications.tasks.print_order_task": {"queue": "printing"},
    },
)

if __name__ == "__main__":
    celery_app.start()
