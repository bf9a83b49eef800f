"""Models package for the spreadsheet import system."""
from backend.models.schema import Base, User, Product, RECORD_TABLES

__all__ = ['Base', 'User', 'Product', 'RECORD_TABLES']
