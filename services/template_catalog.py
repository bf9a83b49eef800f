"""
Template catalog - static registry of spreadsheet import templates.

Each template names the columns expected in the first worksheet of an
uploaded workbook, in order, together with their types and whether a
value is required.
"""

import logging
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

from pydantic import BaseModel, Field

from services.errors import TemplateNotFoundError

logger = logging.getLogger(__name__)


class ColumnType(str, Enum):
    """Cell value types a template column may declare."""
    STRING = 'string'
    NUMBER = 'number'
    DATE = 'date'
    BOOLEAN = 'boolean'


class TemplateColumn(BaseModel):
    """A single column of a template."""

    header: str = Field(..., description="Column header name")
    key: str = Field(..., description="Column key for data mapping")
    width: Optional[int] = Field(None, description="Column width in Excel")
    type: ColumnType = Field(ColumnType.STRING, description="Data type expected in this column")
    required: bool = Field(False, description="Whether this column is required")
    example: Optional[str] = Field(None, description="Example value for this column")

    class Config:
        frozen = True
        json_schema_extra = {
            "example": {
                "header": "First Name",
                "key": "firstName",
                "width": 15,
                "type": "string",
                "required": True,
                "example": "John"
            }
        }


class ExcelTemplate(BaseModel):
    """Named import template."""

    name: str = Field(..., description="Template identifier name")
    description: str = Field(..., description="Human-readable template description")
    columns: Tuple[TemplateColumn, ...] = Field(..., description="Column specifications")
    sample_data: Tuple[Dict[str, Any], ...] = Field(
        default=(), description="Sample rows for demonstration"
    )

    class Config:
        frozen = True

    @property
    def keys(self) -> List[str]:
        """Column keys in sheet order."""
        return [column.key for column in self.columns]

    def column(self, key: str) -> TemplateColumn:
        for column in self.columns:
            if column.key == key:
                return column
        raise KeyError(key)


USERS_TEMPLATE = ExcelTemplate(
    name='users',
    description='User Import Template',
    columns=(
        TemplateColumn(header='First Name', key='firstName', width=15,
                       type=ColumnType.STRING, required=True, example='John'),
        TemplateColumn(header='Last Name', key='lastName', width=15,
                       type=ColumnType.STRING, required=True, example='Doe'),
        TemplateColumn(header='Email', key='email', width=25,
                       type=ColumnType.STRING, required=True, example='john.doe@example.com'),
        TemplateColumn(header='Phone', key='phone', width=15,
                       type=ColumnType.STRING, required=False, example='+995555123456'),
        TemplateColumn(header='Birth Date', key='birthDate', width=12,
                       type=ColumnType.DATE, required=False, example='1990-01-01'),
        TemplateColumn(header='Is Active', key='isActive', width=10,
                       type=ColumnType.BOOLEAN, required=False, example='true'),
    ),
    sample_data=(
        {
            'firstName': 'John',
            'lastName': 'Doe',
            'email': 'john.doe@example.com',
            'phone': '+995555123456',
            'birthDate': '1990-01-01',
            'isActive': True,
        },
        {
            'firstName': 'Jane',
            'lastName': 'Smith',
            'email': 'jane.smith@example.com',
            'phone': '+995555789012',
            'birthDate': '1985-05-15',
            'isActive': True,
        },
    ),
)

PRODUCTS_TEMPLATE = ExcelTemplate(
    name='products',
    description='Product Import Template',
    columns=(
        TemplateColumn(header='Product Name', key='name', width=20,
                       type=ColumnType.STRING, required=True, example='Laptop Computer'),
        TemplateColumn(header='SKU', key='sku', width=15,
                       type=ColumnType.STRING, required=True, example='LAP-001'),
        TemplateColumn(header='Price', key='price', width=12,
                       type=ColumnType.NUMBER, required=True, example='999.99'),
        TemplateColumn(header='Category', key='category', width=15,
                       type=ColumnType.STRING, required=True, example='Electronics'),
        TemplateColumn(header='Stock Quantity', key='stock', width=12,
                       type=ColumnType.NUMBER, required=False, example='50'),
        TemplateColumn(header='Description', key='description', width=30,
                       type=ColumnType.STRING, required=False,
                       example='High-performance laptop for professionals'),
    ),
    sample_data=(
        {
            'name': 'Laptop Computer',
            'sku': 'LAP-001',
            'price': 999.99,
            'category': 'Electronics',
            'stock': 50,
            'description': 'High-performance laptop for professionals',
        },
        {
            'name': 'Wireless Mouse',
            'sku': 'MOU-001',
            'price': 29.99,
            'category': 'Accessories',
            'stock': 100,
            'description': 'Ergonomic wireless mouse',
        },
    ),
)


class TemplateCatalog:
    """Lookup over a fixed set of templates, unique by name."""

    def __init__(self, templates: Iterable[ExcelTemplate]):
        self._templates: Dict[str, ExcelTemplate] = {}
        for template in templates:
            if template.name in self._templates:
                raise ValueError(f"Duplicate template name: {template.name}")
            self._templates[template.name] = template

    def all(self) -> List[ExcelTemplate]:
        return list(self._templates.values())

    def names(self) -> List[str]:
        return list(self._templates)

    def get(self, name: str) -> ExcelTemplate:
        """
        Resolve a template by name.

        Raises:
            TemplateNotFoundError: If no template has that name
        """
        template = self._templates.get(name)
        if template is None:
            logger.warning(f"template.info.not_found template={name}")
            raise TemplateNotFoundError(name)
        return template

    def __contains__(self, name: str) -> bool:
        return name in self._templates


default_catalog = TemplateCatalog([USERS_TEMPLATE, PRODUCTS_TEMPLATE])
