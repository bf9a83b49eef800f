"""
Pydantic schemas for request/response validation.

This package contains all Pydantic models used for API request validation
and response serialization.
"""

from api.schemas.common import ErrorResponse, HealthCheckResponse, PaginatedDataResponse
from api.schemas.job_schema import (
    CELERY_STATE_MAP, JobState, JobStatusResponse, UploadStartResponse
)
from api.schemas.template_schema import TemplateListResponse

__all__ = [
    # Common
    'ErrorResponse',
    'HealthCheckResponse',
    'PaginatedDataResponse',

    # Job
    'CELERY_STATE_MAP',
    'JobState',
    'JobStatusResponse',
    'UploadStartResponse',

    # Template
    'TemplateListResponse',
]
