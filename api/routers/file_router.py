"""
File router - Templates, uploads, exports and job tracking.

This module provides endpoints for downloading import templates,
queueing spreadsheet uploads, checking the status of upload jobs and
reading back imported records.
"""

import json
import logging
from datetime import datetime

from celery.result import AsyncResult
from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile, status
from fastapi.responses import Response
from sqlalchemy.orm import Session

from api.config import settings
from api.dependencies import get_db, get_redis, verify_file_extension, verify_file_size
from api.schemas.common import PaginatedDataResponse
from api.schemas.job_schema import JobStatusResponse, UploadStartResponse
from api.schemas.template_schema import TemplateListResponse
from services.errors import PersistenceError, TemplateNotFoundError
from services.job_coordinator import build_payload, generate_job_id
from services.record_store import RecordStore
from services.template_catalog import ExcelTemplate, default_catalog
from services.template_export_service import export_records, generate_template_workbook
from tasks.celery_app import celery_app
from tasks.import_tasks import upload_excel

logger = logging.getLogger(__name__)

# Create router
router = APIRouter(prefix='/file', tags=['file'])

XLSX_MEDIA_TYPE = 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'
JOB_REGISTRY_PREFIX = 'upload_job'


def job_registry_key(job_id: str) -> str:
    return f'{JOB_REGISTRY_PREFIX}:{job_id}'


def resolve_template(template_name: str) -> ExcelTemplate:
    """Look up a template or answer 404."""
    try:
        return default_catalog.get(template_name)
    except TemplateNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


def xlsx_response(content: bytes, filename: str) -> Response:
    return Response(
        content=content,
        media_type=XLSX_MEDIA_TYPE,
        headers={'Content-Disposition': f'attachment; filename="{filename}"'}
    )


@router.get('/templates', response_model=TemplateListResponse)
async def list_templates():
    """
    List all available import templates.

    **Example:**
    ```bash
    curl http://localhost:8000/api/file/templates
    ```
    """
    return TemplateListResponse(templates=default_catalog.all())


@router.get('/templates/{template_name}', response_model=ExcelTemplate)
async def get_template(template_name: str):
    """
    Get a single template with its column specifications.

    **Returns:**
    - 200 with the template
    - 404 if no template has that name
    """
    return resolve_template(template_name)


@router.get('/templates/{template_name}/download')
async def download_template(
    template_name: str,
    include_sample: bool = Query(False, description="Fill the Data sheet with sample rows")
):
    """
    Download an .xlsx import template.

    The workbook has a `Data` sheet holding the header row (and optionally
    sample rows) and an `Instructions` sheet describing every column.
    """
    template = resolve_template(template_name)
    content = generate_template_workbook(
        template,
        include_sample=include_sample,
        max_rows=settings.MAX_EXCEL_ROWS
    )
    suffix = '_sample' if include_sample else ''
    return xlsx_response(content, f'{template.name}_template{suffix}.xlsx')


@router.get('/export/{template_name}')
async def export_data(
    template_name: str,
    limit: int = Query(settings.DEFAULT_EXPORT_LIMIT, ge=1, description="Maximum records to export"),
    db: Session = Depends(get_db)
):
    """
    Export the newest records of a template to .xlsx.

    **Example:**
    ```bash
    curl -o users.xlsx "http://localhost:8000/api/file/export/users?limit=500"
    ```
    """
    template = resolve_template(template_name)

    try:
        documents = RecordStore(db).fetch_page(template.name, page=1, limit=limit)
    except PersistenceError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    content = export_records(template, documents)
    stamp = datetime.utcnow().strftime('%Y%m%d%H%M%S')
    return xlsx_response(content, f'{template.name}_export_{stamp}.xlsx')


@router.post('/upload/{template_name}/async', response_model=UploadStartResponse,
             status_code=status.HTTP_202_ACCEPTED)
async def upload_file_async(
    template_name: str,
    file: UploadFile = File(..., description="Excel file to import (.xlsx or .xlsm)"),
    redis_client=Depends(get_redis)
):
    """
    Upload a workbook and queue it for import.

    Returns immediately with a job id. The job id is also the Celery task
    id and the suffix of the WebSocket room the worker publishes to.

    **Workflow:**
    1. Validate template, file type and size
    2. Register the job id
    3. Enqueue the `upload-excel` task on the `file` queue
    4. Return job id for status tracking

    **Progress Tracking:**
    - Poll GET /api/file/jobs/{job_id} for status
    - Connect to WebSocket /ws/import/{job_id} for real-time updates
    """
    template = resolve_template(template_name)
    verify_file_extension(file.filename)

    content = await file.read()
    verify_file_size(len(content))
    if not content:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Uploaded file is empty")

    job_id = generate_job_id()
    logger.info(
        f"upload.async.received template={template.name} filename={file.filename} "
        f"size={len(content)} job={job_id}"
    )

    try:
        redis_client.setex(
            job_registry_key(job_id),
            settings.JOB_RETENTION_SECONDS,
            json.dumps({
                'templateName': template.name,
                'filename': file.filename,
                'size': len(content),
                'createdAt': datetime.utcnow().isoformat()
            })
        )

        upload_excel.apply_async(
            args=[build_payload(template.name, content, job_id)],
            task_id=job_id,
            queue=settings.IMPORT_QUEUE
        )

    except Exception as e:
        logger.error(f"Could not queue upload {job_id}: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"Upload could not be queued: {str(e)}"
        )

    logger.info(f"upload.async.queued template={template.name} job={job_id}")

    return UploadStartResponse(
        job_id=job_id,
        status='queued',
        status_url=f"{settings.API_PREFIX}/file/jobs/{job_id}",
        websocket_url=f"/ws/import/{job_id}"
    )


@router.get('/jobs/{job_id}', response_model=JobStatusResponse)
async def get_job_status(
    job_id: str,
    redis_client=Depends(get_redis)
):
    """
    Get current status of an upload job.

    **State Values:**
    - `waiting`: Job is queued, waiting for worker
    - `active`: Job is currently running
    - `completed`: Job finished; `returnvalue` holds the import outcome
    - `failed`: Job failed; `failedReason` holds the error message
    - `delayed`: Job is scheduled for a retry
    - `cancelled`: Job was revoked
    """
    if not redis_client.exists(job_registry_key(job_id)):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Job {job_id} not found"
        )

    result = AsyncResult(job_id, app=celery_app)
    return JobStatusResponse.from_async_result(job_id, result)


@router.get('/data/{template_name}', response_model=PaginatedDataResponse)
async def get_data(
    template_name: str,
    page: int = Query(1, ge=1, description="Page number"),
    limit: int = Query(10, ge=1, le=1000, description="Items per page"),
    db: Session = Depends(get_db)
):
    """
    Read imported records, newest first.

    **Example:**
    ```bash
    curl "http://localhost:8000/api/file/data/products?page=2&limit=25"
    ```
    """
    template = resolve_template(template_name)

    try:
        items = RecordStore(db).fetch_page(template.name, page=page, limit=limit)
    except PersistenceError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return PaginatedDataResponse(template=template.name, page=page, limit=limit, items=items)
