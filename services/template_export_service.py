"""
Template Export Service - Build downloadable workbooks.

Produces blank (or sample-filled) import templates and exports of stored
records. Cell values are written as display strings so a re-import reads
back exactly what was shown.
"""

import io
import logging
import time
from datetime import date, datetime
from typing import Any, Dict, Iterable, List

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font
from openpyxl.utils import get_column_letter

from services.template_catalog import ExcelTemplate

logger = logging.getLogger(__name__)

DATA_SHEET = 'Data'
INSTRUCTIONS_SHEET = 'Instructions'
DEFAULT_COLUMN_WIDTH = 15


def format_cell_value(value: Any) -> str:
    """
    Display string for an exported value.

    Integral floats drop the ``.0``, dates render as YYYY-MM-DD, booleans
    as true/false and missing values as an empty string.
    """
    if value is None:
        return ''
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        return str(value)
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, (int, str)):
        return str(value)
    return ''


def _data_rows(template: ExcelTemplate, documents: Iterable[Dict[str, Any]]) -> List[List[str]]:
    return [
        [format_cell_value(document.get(key)) for key in template.keys]
        for document in documents
    ]


def _set_widths(worksheet, widths: Iterable[int]):
    for position, width in enumerate(widths, start=1):
        worksheet.column_dimensions[get_column_letter(position)].width = width


def _to_bytes(workbook: Workbook) -> bytes:
    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def _write_data_sheet(workbook: Workbook, template: ExcelTemplate,
                      documents: Iterable[Dict[str, Any]]):
    worksheet = workbook.active
    worksheet.title = DATA_SHEET
    worksheet.append([column.header for column in template.columns])
    for row in _data_rows(template, documents):
        worksheet.append(row)
    _set_widths(worksheet, [column.width or DEFAULT_COLUMN_WIDTH for column in template.columns])


def generate_template_workbook(template: ExcelTemplate, include_sample: bool = False,
                               max_rows: int = 10000) -> bytes:
    """
    Build an import template workbook.

    Args:
        template: Template to render
        include_sample: Fill the Data sheet with the template's sample rows
        max_rows: Row limit quoted in the instructions

    Returns:
        .xlsx bytes with a Data and an Instructions sheet
    """
    started_at = time.monotonic()
    workbook = Workbook()
    _write_data_sheet(workbook, template, template.sample_data if include_sample else ())

    instructions = workbook.create_sheet(INSTRUCTIONS_SHEET)
    lines = [
        ['Excel Import Template Instructions'],
        [''],
        ['Template:', template.name],
        ['Description:', template.description],
        [''],
        ['Column Specifications:'],
        ['Column Name', 'Required', 'Type', 'Example'],
        *[
            [column.header, 'Yes' if column.required else 'No',
             column.type.value, column.example or '']
            for column in template.columns
        ],
        [''],
        ['Instructions:'],
        ['1. Fill in the "Data" sheet with your information following the column specifications above'],
        ['2. Required columns must not be empty'],
        ['3. Date format should be YYYY-MM-DD (e.g., 2023-12-31)'],
        ['4. Boolean values should be true/false'],
        ['5. Save the file and upload it to the system'],
        [''],
        ['Notes:'],
        ['- Do not modify the header row in the Data sheet'],
        ['- You can delete this Instructions sheet before uploading'],
        [f'- Maximum rows allowed: {max_rows}'],
    ]
    for line in lines:
        instructions.append(line)
    instructions['A1'].font = Font(bold=True, size=14)
    instructions['A1'].alignment = Alignment(horizontal='center')
    _set_widths(instructions, [30, 15, 15, 25])

    content = _to_bytes(workbook)
    logger.info(
        f"template.generate.success template={template.name} include_sample={include_sample} "
        f"duration_ms={int((time.monotonic() - started_at) * 1000)} size={len(content)}"
    )
    return content


def export_records(template: ExcelTemplate, documents: List[Dict[str, Any]]) -> bytes:
    """
    Export stored records to a single-sheet workbook.

    Args:
        template: Template defining columns and their order
        documents: Records keyed by template column key

    Returns:
        .xlsx bytes
    """
    started_at = time.monotonic()
    workbook = Workbook()
    _write_data_sheet(workbook, template, documents)

    content = _to_bytes(workbook)
    logger.info(
        f"export.success template={template.name} exported={len(documents)} "
        f"duration_ms={int((time.monotonic() - started_at) * 1000)} size={len(content)}"
    )
    return content
