"""
FastAPI application for the spreadsheet import system.

This package contains the REST API and WebSocket gateway for template
downloads, queued imports and live upload progress.
"""

__version__ = "1.0.0"
