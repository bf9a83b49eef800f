"""
Celery application configuration.

This module sets up Celery for background import processing with Redis
as the message broker and result backend.
"""

from celery import Celery
from kombu import Exchange, Queue

from api.config import settings

# Create Celery application
celery_app = Celery(
    'excel_import',
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=['tasks.import_tasks']
)

# Celery configuration
celery_app.conf.update(
    # Serialization
    task_serializer='json',
    result_serializer='json',
    accept_content=['json'],

    # Timezone
    timezone='UTC',
    enable_utc=True,

    # Task execution
    task_track_started=True,
    task_time_limit=1800,  # 30 minutes hard timeout
    task_soft_time_limit=1500,  # 25 minutes soft timeout
    worker_prefetch_multiplier=1,  # One task at a time per worker

    # Results
    result_expires=settings.JOB_RETENTION_SECONDS,
    result_extended=True,  # Store task name, args and retries with the result

    # Task routing
    task_default_queue='default',
    task_default_exchange='default',
    task_default_routing_key='default',

    # Worker configuration
    worker_max_tasks_per_child=100,  # Restart worker after 100 tasks (prevent memory leaks)

    # Monitoring
    worker_send_task_events=True,
    task_send_sent_event=True,
    broker_connection_retry_on_startup=True,
)

# Define task queues
celery_app.conf.task_queues = (
    Queue('default', Exchange('default'), routing_key='default'),
    Queue(settings.IMPORT_QUEUE, Exchange(settings.IMPORT_QUEUE), routing_key='file.#'),
)

# Task routes
celery_app.conf.task_routes = {
    'upload-excel': {'queue': settings.IMPORT_QUEUE, 'routing_key': 'file.upload'},
}


if __name__ == '__main__':
    celery_app.start()
