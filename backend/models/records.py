"""
Typed records and result models for the import pipeline.

MappedRecord is a tagged union with one variant per supported template,
discriminated by the ``template`` field. ImportOutcome and ProgressEvent
serialize with camelCase keys, the wire format seen by queue consumers and
WebSocket clients.
"""

from datetime import date
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel


class UploadStatus(str, Enum):
    """Upload processing statuses carried by progress events."""
    STARTED = 'started'
    PROCESSING = 'processing'
    COMPLETED = 'completed'
    FAILED = 'failed'


TERMINAL_STATUSES = (UploadStatus.COMPLETED, UploadStatus.FAILED)


class UserRecord(BaseModel):
    """Validated row of the ``users`` template."""

    template: Literal['users'] = 'users'
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    email: str = Field(..., min_length=1)
    phone: Optional[str] = None
    birth_date: Optional[date] = None
    is_active: bool = True

    class Config:
        frozen = True
        alias_generator = to_camel
        populate_by_name = True

    def to_row(self) -> Dict[str, Any]:
        """Column values for the ``users`` table."""
        return self.model_dump(exclude={'template'})


class ProductRecord(BaseModel):
    """Validated row of the ``products`` template."""

    template: Literal['products'] = 'products'
    name: str = Field(..., min_length=1)
    sku: str = Field(..., min_length=1)
    price: float
    category: str = Field(..., min_length=1)
    stock: Optional[float] = None
    description: Optional[str] = None

    class Config:
        frozen = True
        alias_generator = to_camel
        populate_by_name = True

    def to_row(self) -> Dict[str, Any]:
        """Column values for the ``products`` table."""
        return self.model_dump(exclude={'template'})


MappedRecord = Annotated[Union[UserRecord, ProductRecord], Field(discriminator='template')]


class RowError(BaseModel):
    """Validation failure of one spreadsheet row."""

    row_number: int = Field(..., ge=2, description="Spreadsheet row number including the header line")
    message: str = Field(..., description="Validation message")

    class Config:
        alias_generator = to_camel
        populate_by_name = True

    def __str__(self) -> str:
        return f"Row {self.row_number}: {self.message}"


class ImportOutcome(BaseModel):
    """Terminal result of one import run."""

    message: str
    processed_count: int = Field(..., ge=0)
    errors: List[RowError] = Field(default_factory=list)

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "message": "Processed 2 of 3 rows",
                "processedCount": 2,
                "errors": [{"rowNumber": 4, "message": "Field 'firstName' is required"}]
            }
        }

    def to_payload(self) -> Dict[str, Any]:
        """JSON-ready representation stored as the job return value."""
        return self.model_dump(by_alias=True, mode='json')


class ProgressEvent(BaseModel):
    """Progress update pushed to observers of one job."""

    job_id: Optional[str] = None
    template_name: str
    status: UploadStatus
    progress: int = Field(..., ge=0, le=100)
    message: str
    processed: Optional[int] = None
    total: Optional[int] = None
    errors: Optional[List[RowError]] = None

    class Config:
        alias_generator = to_camel
        populate_by_name = True

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode='json', exclude_none=True)
