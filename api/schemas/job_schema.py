"""
Job-related Pydantic schemas.

This module contains schemas for upload submission and the job status
read model built from Celery task state.
"""

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class JobState(str, Enum):
    """Job state as reported to clients."""
    WAITING = 'waiting'
    ACTIVE = 'active'
    COMPLETED = 'completed'
    FAILED = 'failed'
    DELAYED = 'delayed'
    CANCELLED = 'cancelled'


# Celery task state -> client-facing job state
CELERY_STATE_MAP = {
    'PENDING': JobState.WAITING,
    'RECEIVED': JobState.WAITING,
    'STARTED': JobState.ACTIVE,
    'PROGRESS': JobState.ACTIVE,
    'RETRY': JobState.DELAYED,
    'SUCCESS': JobState.COMPLETED,
    'FAILURE': JobState.FAILED,
    'REVOKED': JobState.CANCELLED,
}


class UploadStartResponse(BaseModel):
    """Response when an upload job is queued."""

    job_id: str = Field(..., alias='jobId', description="Correlation id of the queued job")
    status: str = Field('queued', description="Submission status")
    message: str = Field('File upload queued for processing', description="Human-readable message")
    status_url: str = Field(..., alias='statusUrl', description="URL to check job status")
    websocket_url: str = Field(..., alias='websocketUrl', description="WebSocket URL for live progress")

    class Config:
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "jobId": "upload-1729339200000-k3j9x2",
                "status": "queued",
                "message": "File upload queued for processing",
                "statusUrl": "/api/file/jobs/upload-1729339200000-k3j9x2",
                "websocketUrl": "/ws/import/upload-1729339200000-k3j9x2"
            }
        }


class JobStatusResponse(BaseModel):
    """Job status read model."""

    id: str = Field(..., description="Job id")
    state: JobState = Field(..., description="Current job state")
    progress: int = Field(0, ge=0, le=100, description="Last reported progress")
    attempts_made: int = Field(0, alias='attemptsMade', description="Attempts started so far")
    returnvalue: Optional[Dict[str, Any]] = Field(None, description="Import outcome (if completed)")
    failed_reason: Optional[str] = Field(None, alias='failedReason', description="Failure message (if failed)")

    class Config:
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "id": "upload-1729339200000-k3j9x2",
                "state": "completed",
                "progress": 100,
                "attemptsMade": 1,
                "returnvalue": {
                    "message": "Processed 2 of 3 rows",
                    "processedCount": 2,
                    "errors": [{"rowNumber": 3, "message": "Field 'email' is required"}]
                },
                "failedReason": None
            }
        }

    @classmethod
    def from_async_result(cls, job_id: str, result) -> 'JobStatusResponse':
        """
        Build the read model from a Celery ``AsyncResult``.

        Args:
            job_id: Job id the result belongs to
            result: AsyncResult for the job's task

        Returns:
            JobStatusResponse
        """
        celery_state = result.state
        state = CELERY_STATE_MAP.get(celery_state, JobState.WAITING)

        progress = 0
        if state == JobState.COMPLETED:
            progress = 100
        elif celery_state == 'PROGRESS' and isinstance(result.info, dict):
            progress = int(result.info.get('progress', 0))

        retries = getattr(result, 'retries', None) or 0
        attempts_made = retries + (0 if state == JobState.WAITING else 1)

        return cls(
            id=job_id,
            state=state,
            progress=progress,
            attempts_made=attempts_made,
            returnvalue=result.result if state == JobState.COMPLETED else None,
            failed_reason=str(result.result) if state == JobState.FAILED else None
        )
