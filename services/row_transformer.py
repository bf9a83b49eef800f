"""
Row Transformer - Map raw spreadsheet rows to typed records.

Pure functions: a raw row (column key -> cell value) plus its template go
in, a validated record comes out, or a RowValidationError is raised for
the caller to record against the row number.
"""

import logging
import math
from datetime import date, datetime
from typing import Any, Callable, Dict, Optional

from openpyxl.utils.datetime import from_excel
from pydantic import ValidationError
from pydantic.alias_generators import to_camel

from backend.models.records import MappedRecord, ProductRecord, UserRecord
from services.errors import RowValidationError, UnsupportedTemplateMappingError
from services.template_catalog import ColumnType, ExcelTemplate

logger = logging.getLogger(__name__)

RawRow = Dict[str, Any]

TRUE_STRINGS = ('true', '1', 'yes')
FALSE_STRINGS = ('false', '0', 'no')

# Tried in order after ISO 8601; month-first like US spreadsheets
DATE_FORMATS = (
    '%Y-%m-%d',
    '%Y/%m/%d',
    '%m/%d/%Y',
    '%b %d, %Y',
    '%B %d, %Y',
    '%d %b %Y',
    '%d %B %Y',
    '%Y-%m-%d %H:%M:%S',
)


def _is_number(value: Any) -> bool:
    # bool is an int subclass but never counts as a number here
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def is_blank(value: Any) -> bool:
    """True for None and empty or whitespace-only strings."""
    if value is None:
        return True
    return isinstance(value, str) and value.strip() == ''


def parse_boolean(value: Any) -> Optional[bool]:
    """
    Coerce a cell value to bool.

    Booleans pass through; 'true'/'1'/'yes' and 'false'/'0'/'no' strings
    (trimmed, any case) map to True/False; numbers map to ``value != 0``.
    Anything else yields None.
    """
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in TRUE_STRINGS:
            return True
        if normalized in FALSE_STRINGS:
            return False
        return None
    if _is_number(value):
        return value != 0
    return None


def parse_number(value: Any) -> Optional[float]:
    """
    Coerce a cell value to a number.

    Numbers pass through. Numeric strings are parsed, keeping integers as
    int so they display without a fractional part. Other values yield None.
    """
    if _is_number(value):
        return value
    if not isinstance(value, str):
        return None

    text = value.strip()
    if not text or '_' in text:
        return None
    try:
        return int(text)
    except ValueError:
        pass
    try:
        number = float(text)
    except ValueError:
        return None
    if not math.isfinite(number):
        return None
    return number


def parse_date(value: Any) -> Optional[date]:
    """
    Coerce a cell value to a calendar date.

    datetime/date values pass through. Strings are tried as ISO 8601 first,
    then against DATE_FORMATS. Numbers are Excel serial dates; serials that
    only encode a time of day are rejected.
    """
    if isinstance(value, (datetime, date)):
        return value
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return datetime.fromisoformat(text)
        except ValueError:
            pass
        for fmt in DATE_FORMATS:
            try:
                return datetime.strptime(text, fmt)
            except ValueError:
                continue
        return None
    if _is_number(value):
        if not math.isfinite(value):
            return None
        try:
            converted = from_excel(value)
        except (ValueError, OverflowError):
            return None
        return converted if isinstance(converted, datetime) else None
    return None


def parse_text(value: Any) -> Optional[str]:
    """Render a cell value as trimmed text; blanks yield None."""
    if is_blank(value):
        return None
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


PARSERS: Dict[ColumnType, Callable[[Any], Any]] = {
    ColumnType.STRING: parse_text,
    ColumnType.NUMBER: parse_number,
    ColumnType.DATE: parse_date,
    ColumnType.BOOLEAN: parse_boolean,
}


def read_field(template: ExcelTemplate, row: RawRow, key: str) -> Any:
    """
    Read and coerce one field of a row according to its template column.

    Raises:
        RowValidationError: Required field is blank or cannot be coerced
    """
    column = template.column(key)
    raw = row.get(key)

    if is_blank(raw):
        if column.required:
            raise RowValidationError(key, f"Field '{key}' is required")
        return None

    value = PARSERS[column.type](raw)
    if value is None and column.required:
        raise RowValidationError(
            key, f"Field '{key}' has an invalid {column.type.value} value"
        )
    return value


def _as_date(value: Optional[date]) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    return value


def map_user_row(template: ExcelTemplate, row: RawRow) -> UserRecord:
    is_active = read_field(template, row, 'isActive')
    return UserRecord(
        first_name=read_field(template, row, 'firstName'),
        last_name=read_field(template, row, 'lastName'),
        email=read_field(template, row, 'email'),
        phone=read_field(template, row, 'phone'),
        birth_date=_as_date(read_field(template, row, 'birthDate')),
        is_active=True if is_active is None else is_active,
    )


def map_product_row(template: ExcelTemplate, row: RawRow) -> ProductRecord:
    return ProductRecord(
        name=read_field(template, row, 'name'),
        sku=read_field(template, row, 'sku'),
        price=read_field(template, row, 'price'),
        category=read_field(template, row, 'category'),
        stock=read_field(template, row, 'stock'),
        description=read_field(template, row, 'description'),
    )


ROW_MAPPERS: Dict[str, Callable[[ExcelTemplate, RawRow], MappedRecord]] = {
    'users': map_user_row,
    'products': map_product_row,
}


def map_row(template: ExcelTemplate, row: RawRow) -> MappedRecord:
    """
    Map one raw row to the record type of its template.

    Args:
        template: Resolved template
        row: Column key -> raw cell value

    Returns:
        UserRecord or ProductRecord

    Raises:
        UnsupportedTemplateMappingError: No mapping rule for the template
        RowValidationError: Row failed validation
    """
    mapper = ROW_MAPPERS.get(template.name)
    if mapper is None:
        raise UnsupportedTemplateMappingError(template.name)

    try:
        return mapper(template, row)
    except ValidationError as e:
        first = e.errors()[0]
        name = str(first['loc'][0]) if first['loc'] else None
        # Report the template column key, not the record attribute
        field = to_camel(name) if name and '_' in name else name
        raise RowValidationError(field, f"Field '{field}' {first['msg'].lower()}") from e
