"""
Service layer for the spreadsheet import system.

This package contains framework-agnostic business logic that can be used
by the CLI, the API, or the Celery workers.
"""

__version__ = "1.0.0"
