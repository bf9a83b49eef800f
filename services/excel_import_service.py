"""
Excel Import Service - Framework-agnostic import pipeline.

Reads the first worksheet of an uploaded workbook, maps every data row
through its template, persists the valid rows in a single batch and
reports milestone progress while doing so. Row-level failures are
collected into the outcome; anything else aborts the run.
"""

import io
import logging
import math
import time
import zipfile
from typing import List, Optional

import openpyxl
from openpyxl.utils.exceptions import InvalidFileException

from backend.models.records import ImportOutcome, MappedRecord, RowError, UploadStatus
from services.errors import RowValidationError, WorkbookParseError
from services.progress_service import ProgressCallback, ProgressReporter
from services.record_store import RecordStore
from services.row_transformer import RawRow, is_blank, map_row
from services.template_catalog import ExcelTemplate, TemplateCatalog, default_catalog

logger = logging.getLogger(__name__)

# Rows between interpolated progress events
PROGRESS_INTERVAL = 10

# Milestones of the progress curve
PROGRESS_STARTED = 0
PROGRESS_ROWS_START = 10
PROGRESS_ROWS_SPAN = 80
PROGRESS_SAVING = 90
PROGRESS_DONE = 100

# Header line plus 1-based numbering
ROW_NUMBER_OFFSET = 2


def row_progress(rows_done: int, total: int) -> int:
    """
    Interpolate per-row progress into the 10-90 range.

    Rounds half up; an empty sheet counts as done.
    """
    if total <= 0:
        return PROGRESS_DONE
    return int(math.floor(rows_done / total * PROGRESS_ROWS_SPAN + 0.5)) + PROGRESS_ROWS_START


class ExcelImportService:
    """
    Run one spreadsheet import end to end.

    Args:
        record_store: Persistence for mapped records
        reporter: Publisher for progress notifications
        catalog: Template registry (default: built-in templates)
        progress_callback: Optional hook receiving every progress event
    """

    def __init__(self, record_store: RecordStore, reporter: ProgressReporter,
                 catalog: TemplateCatalog = default_catalog,
                 progress_callback: Optional[ProgressCallback] = None):
        self.record_store = record_store
        self.reporter = reporter
        self.catalog = catalog
        self.progress_callback = progress_callback

    def parse_workbook(self, file_bytes: bytes, template: ExcelTemplate) -> List[RawRow]:
        """
        Read data rows of the first worksheet.

        Cells are assigned to template keys by position. The header row and
        fully blank rows are skipped.

        Raises:
            WorkbookParseError: If the bytes are not a readable workbook
        """
        try:
            workbook = openpyxl.load_workbook(
                io.BytesIO(file_bytes), read_only=True, data_only=True
            )
        except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError) as e:
            raise WorkbookParseError(f"Could not read workbook: {e}") from e

        keys = template.keys
        rows: List[RawRow] = []
        try:
            worksheet = workbook.worksheets[0]
            for values in worksheet.iter_rows(min_row=2, values_only=True):
                values = tuple(values or ())
                row = {
                    key: values[position] if position < len(values) else None
                    for position, key in enumerate(keys)
                }
                if all(is_blank(value) for value in row.values()):
                    continue
                rows.append(row)
        finally:
            workbook.close()

        logger.debug(f"Parsed {len(rows)} data rows for template '{template.name}'")
        return rows

    def run(self, template_name: str, file_bytes: bytes,
            job_id: Optional[str] = None) -> ImportOutcome:
        """
        Import a workbook.

        Args:
            template_name: Name of the template describing the sheet
            file_bytes: Raw .xlsx content
            job_id: Correlation id; progress is published only when given

        Returns:
            ImportOutcome with processed count and row errors

        Raises:
            TemplateNotFoundError: Unknown template, raised before any progress
            WorkbookParseError: Unreadable workbook
            PersistenceError: Batch insert failed
        """
        started_at = time.monotonic()
        template = self.catalog.get(template_name)

        logger.info(
            f"upload.process.start template={template_name} size={len(file_bytes)} job={job_id}"
        )

        tracker = self.reporter.track(job_id, template.name, listener=self.progress_callback)

        try:
            rows = self.parse_workbook(file_bytes, template)
            total = len(rows)

            if total > 0:
                tracker.update(UploadStatus.STARTED, PROGRESS_STARTED,
                               'Starting file processing...')
                tracker.update(UploadStatus.PROCESSING, PROGRESS_ROWS_START,
                               f'Processing {total} rows...', processed=0, total=total)

            records: List[MappedRecord] = []
            errors: List[RowError] = []

            for index, raw_row in enumerate(rows):
                try:
                    records.append(map_row(template, raw_row))
                except RowValidationError as e:
                    errors.append(RowError(row_number=index + ROW_NUMBER_OFFSET, message=e.message))

                rows_done = index + 1
                if index % PROGRESS_INTERVAL == 0 or rows_done == total:
                    tracker.update(UploadStatus.PROCESSING, row_progress(rows_done, total),
                                   f'Processed {rows_done} of {total} rows',
                                   processed=rows_done, total=total)

            if total > 0:
                tracker.update(UploadStatus.PROCESSING, PROGRESS_SAVING,
                               'Saving to database...', processed=len(records), total=total)

            if records:
                self.record_store.insert_batch(template.name, records)

            outcome = ImportOutcome(
                message=f'Processed {len(records)} of {total} rows',
                processed_count=len(records),
                errors=errors
            )

            tracker.complete(f'Successfully processed {len(records)} rows',
                             processed=len(records), total=total, errors=errors)

        except Exception as e:
            tracker.fail(f'Import failed: {e}')
            raise

        duration_ms = int((time.monotonic() - started_at) * 1000)
        if errors:
            logger.warning(
                f"upload.process.partial template={template_name} processed={len(records)} "
                f"total={total} errors={len(errors)} duration_ms={duration_ms} job={job_id}"
            )
        else:
            logger.info(
                f"upload.process.success template={template_name} processed={len(records)} "
                f"total={total} duration_ms={duration_ms} job={job_id}"
            )

        return outcome
