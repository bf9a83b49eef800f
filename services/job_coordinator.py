"""
Job Coordinator - Queue-facing adapter for import jobs.

Decodes a queued ``upload-excel`` payload, runs the import, and makes sure
the job's room hears about the result whether the run succeeds or fails.
Failures are re-raised so the queue records the job as failed.
"""

import base64
import binascii
import logging
import random
import string
import time
from typing import Any, Callable, Dict, Optional

from pydantic import BaseModel, Field, ValidationError

from backend.models.records import ImportOutcome
from services.errors import JobConfigurationError
from services.progress_service import ProgressReporter

logger = logging.getLogger(__name__)

UPLOAD_JOB_NAME = 'upload-excel'

RunImport = Callable[[str, bytes, str], ImportOutcome]

JOB_ID_SUFFIX_LENGTH = 9


def generate_job_id() -> str:
    """New correlation id of the form ``upload-{epoch ms}-{random}``."""
    suffix = ''.join(random.choices(string.ascii_lowercase + string.digits, k=JOB_ID_SUFFIX_LENGTH))
    return f"upload-{int(time.time() * 1000)}-{suffix}"


class UploadJobPayload(BaseModel):
    """Wire format of an ``upload-excel`` job."""

    template_name: str = Field(..., alias='templateName', min_length=1)
    buffer: str = Field(..., description="Base64-encoded workbook bytes")
    job_id: str = Field(..., alias='jobId', min_length=1)

    class Config:
        populate_by_name = True

    def file_bytes(self) -> bytes:
        try:
            return base64.b64decode(self.buffer, validate=True)
        except (binascii.Error, ValueError) as e:
            raise JobConfigurationError(f"Job {self.job_id} buffer is not valid base64: {e}") from e


def build_payload(template_name: str, file_bytes: bytes, job_id: str) -> Dict[str, Any]:
    """Encode an ``upload-excel`` payload for submission."""
    return UploadJobPayload(
        template_name=template_name,
        buffer=base64.b64encode(file_bytes).decode('ascii'),
        job_id=job_id
    ).model_dump(by_alias=True)


def decode_payload(payload: Any) -> UploadJobPayload:
    """
    Validate a raw job payload.

    Raises:
        JobConfigurationError: Missing correlation id or malformed payload
    """
    try:
        return UploadJobPayload.model_validate(payload)
    except ValidationError as e:
        raise JobConfigurationError(f"Invalid {UPLOAD_JOB_NAME} payload: {e}") from e


class ImportJobCoordinator:
    """
    Execute one queued import job.

    Args:
        reporter: Publisher for completion and error notifications
        run_import: Callable running the import for (template, bytes, job id)
    """

    def __init__(self, reporter: ProgressReporter, run_import: RunImport):
        self.reporter = reporter
        self.run_import = run_import

    def process(self, payload: Any, native_id: Optional[str] = None) -> Dict[str, Any]:
        """
        Run the job and return its JSON-ready outcome.

        Args:
            payload: Raw ``upload-excel`` payload
            native_id: Id assigned by the queue, for diagnostics

        Returns:
            ImportOutcome payload stored as the job result

        Raises:
            JobConfigurationError: Payload cannot be decoded
            Exception: Any run-level failure, after notifying the job room
        """
        job = decode_payload(payload)
        job_id = job.job_id

        if native_id and native_id != job_id:
            logger.info(f"Job {job_id} is running under queue id {native_id}")

        logger.info(f"queue.upload.received template={job.template_name} job={job_id}")

        try:
            outcome = self.run_import(job.template_name, job.file_bytes(), job_id)
        except Exception as e:
            self.reporter.emit_error(job_id, str(e))
            logger.error(f"Import job {job_id} failed: {e}", exc_info=True)
            raise

        self.reporter.emit_completion(job_id, outcome)
        logger.info(
            f"queue.upload.processed template={job.template_name} job={job_id} "
            f"processed={outcome.processed_count} errors={len(outcome.errors)}"
        )
        return outcome.to_payload()
