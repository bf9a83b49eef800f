"""
Import background tasks.

This module defines the ``upload-excel`` Celery task. The task id is the
job id the API handed out, so job status lookups and WebSocket rooms share
the same correlation id.
"""

import logging
from typing import Any, Dict

from celery import Task
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from api.config import settings
from backend.models.records import ImportOutcome, ProgressEvent
from services.excel_import_service import ExcelImportService
from services.job_coordinator import UPLOAD_JOB_NAME, ImportJobCoordinator
from services.notification_channel import (
    BackgroundNotificationChannel, RedisNotificationChannel, create_publisher_client
)
from services.progress_service import ProgressReporter
from services.record_store import RecordStore
from tasks.celery_app import celery_app

logger = logging.getLogger(__name__)

# Room publishes run on a sender thread; the import loop only enqueues
redis_client = create_publisher_client(settings.REDIS_URL, settings.NOTIFY_SOCKET_TIMEOUT)
notification_channel = BackgroundNotificationChannel(
    RedisNotificationChannel(redis_client),
    max_pending=settings.NOTIFY_MAX_PENDING
)

progress_reporter = ProgressReporter(notification_channel)

# Create database engine and session factory
engine = create_engine(settings.DATABASE_URL, pool_pre_ping=settings.DB_POOL_PRE_PING)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db_session() -> Session:
    """Get database session."""
    return SessionLocal()


class ImportTask(Task):
    """
    Base task class with progress tracking.

    Mirrors every progress event into the Celery result backend as
    PROGRESS state meta, which the job status endpoint reads back.
    """

    def on_progress(self, event: ProgressEvent):
        """
        Record a progress event as task state.

        Args:
            event: Progress event emitted by the import service
        """
        job_id = self.request.id
        if not job_id:
            return

        try:
            self.update_state(state='PROGRESS', meta=event.to_payload())
            logger.debug(f"Progress updated: {job_id} - {event.status.value} ({event.progress}%)")
        except Exception as e:
            logger.error(f"Error updating progress for {job_id}: {e}")


def run_import(task: ImportTask, template_name: str, file_bytes: bytes,
               job_id: str) -> ImportOutcome:
    """Run the import service inside a fresh database session."""
    with get_db_session() as session:
        service = ExcelImportService(
            record_store=RecordStore(session),
            reporter=progress_reporter,
            progress_callback=task.on_progress
        )
        return service.run(template_name, file_bytes, job_id=job_id)


@celery_app.task(base=ImportTask, bind=True, name=UPLOAD_JOB_NAME,
                 acks_late=False, max_retries=0)
def upload_excel(self, payload: Dict[str, Any]) -> Dict[str, Any]:
    """
    Background task to import an uploaded workbook.

    Args:
        payload: ``{"templateName", "buffer", "jobId"}`` with a base64 buffer

    Returns:
        Import outcome dictionary:
        {
            'message': str,
            'processedCount': int,
            'errors': [{'rowNumber': int, 'message': str}]
        }
    """
    logger.info(f"Starting import task {self.request.id}")

    coordinator = ImportJobCoordinator(
        reporter=progress_reporter,
        run_import=lambda template_name, file_bytes, job_id: run_import(
            self, template_name, file_bytes, job_id
        )
    )
    return coordinator.process(payload, native_id=self.request.id)
