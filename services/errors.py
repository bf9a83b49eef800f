"""
Exception hierarchy for the import pipeline.

Row-level errors (RowValidationError and subclasses) are recorded in the
import outcome and never escape a run. Everything else is a run-level
failure that propagates to the queue.
"""

from typing import Optional


class ImportPipelineError(Exception):
    """Base class for all import pipeline errors."""


class TemplateNotFoundError(ImportPipelineError):
    """Raised when a template name is not present in the catalog."""

    def __init__(self, template_name: str):
        self.template_name = template_name
        super().__init__(f"Template '{template_name}' not found")


class WorkbookParseError(ImportPipelineError):
    """Raised when the uploaded bytes cannot be read as a workbook."""


class RowValidationError(ImportPipelineError):
    """A single row failed validation or coercion."""

    def __init__(self, field: Optional[str], message: str):
        self.field = field
        self.message = message
        super().__init__(message)


class UnsupportedTemplateMappingError(RowValidationError):
    """Template exists in the catalog but has no row mapping rule."""

    def __init__(self, template_name: str):
        self.template_name = template_name
        super().__init__(None, f"Unsupported template '{template_name}'")


class PersistenceError(ImportPipelineError):
    """Batch insert into the record store failed."""


class ChannelDeliveryError(ImportPipelineError):
    """Notification channel could not deliver a message."""


class JobConfigurationError(ImportPipelineError):
    """Job payload is malformed or misses the correlation id."""
