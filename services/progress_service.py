"""
Progress Service - Push import progress to observers.

ProgressReporter sends progress, completion and error messages to the
job's room on the notification channel and writes a diagnostic log
record for each. Delivery is best-effort: channel failures are logged and
never raised to the caller.

ProgressTracker is created per run and keeps the emitted progress
non-decreasing, with at most one terminal event.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from backend.models.records import ImportOutcome, ProgressEvent, RowError, UploadStatus
from services.notification_channel import ChannelEvent, NotificationChannel, room_for

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ProgressEvent], None]


class ProgressReporter:
    """Best-effort publisher of job notifications."""

    def __init__(self, channel: NotificationChannel):
        self.channel = channel

    def _send(self, job_id: str, event: ChannelEvent, data: Dict[str, Any]) -> bool:
        room = room_for(job_id)
        try:
            self.channel.publish(room, event.value, data)
            return True
        except Exception as e:
            logger.warning(f"websocket.delivery.failed job={job_id} event={event.value}: {e}")
            return False

    def emit_progress(self, job_id: str, event: ProgressEvent) -> bool:
        """Push a progress event to the job room."""
        delivered = self._send(job_id, ChannelEvent.UPLOAD_PROGRESS, event.to_payload())
        logger.info(
            f"websocket.progress.emit job={job_id} status={event.status.value} "
            f"progress={event.progress}",
            extra={'job_id': job_id, 'progress_event': event.to_payload()}
        )
        return delivered

    def emit_completion(self, job_id: str, result: ImportOutcome) -> bool:
        """Push the result-style completion message."""
        data = {
            'jobId': job_id,
            'result': result.to_payload(),
            'timestamp': datetime.utcnow().isoformat()
        }
        delivered = self._send(job_id, ChannelEvent.UPLOAD_COMPLETED, data)
        logger.info(
            f"websocket.completion.emit job={job_id} processed={result.processed_count} "
            f"errors={len(result.errors)}",
            extra={'job_id': job_id}
        )
        return delivered

    def emit_error(self, job_id: str, error: str) -> bool:
        """Push a run-level failure message."""
        data = {
            'jobId': job_id,
            'error': error,
            'timestamp': datetime.utcnow().isoformat()
        }
        delivered = self._send(job_id, ChannelEvent.UPLOAD_ERROR, data)
        logger.error(f"websocket.error.emit job={job_id}: {error}", extra={'job_id': job_id})
        return delivered

    def track(self, job_id: Optional[str], template_name: str,
              listener: Optional[ProgressCallback] = None) -> 'ProgressTracker':
        """Create a tracker for one run."""
        return ProgressTracker(self, job_id, template_name, listener)


class ProgressTracker:
    """
    Milestone progress for a single run.

    Progress values are clamped so they never go backwards, and nothing
    is emitted once a completed or failed event has been sent. Events are
    only published when the run has a job id; the optional listener sees
    every event regardless.
    """

    def __init__(self, reporter: ProgressReporter, job_id: Optional[str],
                 template_name: str, listener: Optional[ProgressCallback] = None):
        self.reporter = reporter
        self.job_id = job_id
        self.template_name = template_name
        self.listener = listener
        self.last_progress = 0
        self.finished = False

    def update(self, status: UploadStatus, progress: int, message: str,
               processed: Optional[int] = None, total: Optional[int] = None,
               errors: Optional[List[RowError]] = None) -> Optional[ProgressEvent]:
        if self.finished:
            logger.warning(f"Ignoring '{status.value}' progress for finished job {self.job_id}")
            return None
        if self.job_id is None and self.listener is None:
            return None

        progress = max(self.last_progress, min(100, int(progress)))
        self.last_progress = progress

        event = ProgressEvent(
            job_id=self.job_id,
            template_name=self.template_name,
            status=status,
            progress=progress,
            message=message,
            processed=processed,
            total=total,
            errors=errors or None
        )
        self.finished = event.is_terminal

        if self.listener is not None:
            try:
                self.listener(event)
            except Exception as e:
                logger.warning(f"Progress listener failed for job {self.job_id}: {e}")

        if self.job_id is not None:
            self.reporter.emit_progress(self.job_id, event)
        return event

    def complete(self, message: str, processed: int, total: int,
                 errors: Optional[List[RowError]] = None) -> Optional[ProgressEvent]:
        return self.update(UploadStatus.COMPLETED, 100, message,
                           processed=processed, total=total, errors=errors)

    def fail(self, message: str) -> Optional[ProgressEvent]:
        return self.update(UploadStatus.FAILED, self.last_progress, message)
