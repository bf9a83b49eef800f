"""
Template-related Pydantic schemas.
"""

from typing import List

from pydantic import BaseModel, Field

from services.template_catalog import ExcelTemplate


class TemplateListResponse(BaseModel):
    """All registered import templates."""

    templates: List[ExcelTemplate] = Field(..., description="Available templates")
