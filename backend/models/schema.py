"""
SQLAlchemy models for imported records.

This module defines the database schema using SQLAlchemy ORM,
matching the schema defined in Alembic migrations.
"""

from sqlalchemy import (
    Boolean, Column, Date, Float, Index, Integer, String, Text, TIMESTAMP, text
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class User(Base):
    """A person imported through the ``users`` template."""

    __tablename__ = 'users'
    __table_args__ = (
        Index('idx_users_created_at', 'created_at'),
        {'comment': 'Users imported from spreadsheets'}
    )

    id = Column(
        Integer,
        primary_key=True,
        autoincrement=True,
        nullable=False
    )
    first_name = Column(String(255), nullable=False)
    last_name = Column(String(255), nullable=False)
    email = Column(
        String(255),
        nullable=False,
        unique=True,
        comment='Unique; duplicate imports fail the batch'
    )
    phone = Column(String(64), nullable=True)
    birth_date = Column(Date, nullable=True)
    is_active = Column(
        Boolean,
        server_default=text('true'),
        nullable=False
    )
    created_at = Column(
        TIMESTAMP,
        server_default=text('CURRENT_TIMESTAMP'),
        nullable=False,
        comment='Import timestamp'
    )
    updated_at = Column(
        TIMESTAMP,
        server_default=text('CURRENT_TIMESTAMP'),
        nullable=False,
        comment='Last modification timestamp'
    )

    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}')>"


class Product(Base):
    """A catalog item imported through the ``products`` template."""

    __tablename__ = 'products'
    __table_args__ = (
        Index('idx_products_created_at', 'created_at'),
        {'comment': 'Products imported from spreadsheets'}
    )

    id = Column(
        Integer,
        primary_key=True,
        autoincrement=True,
        nullable=False
    )
    name = Column(String(255), nullable=False)
    sku = Column(
        String(100),
        nullable=False,
        unique=True,
        comment='Unique; duplicate imports fail the batch'
    )
    price = Column(Float, nullable=False)
    category = Column(String(255), nullable=False)
    stock = Column(Float, nullable=True)
    description = Column(Text, nullable=True)
    created_at = Column(
        TIMESTAMP,
        server_default=text('CURRENT_TIMESTAMP'),
        nullable=False,
        comment='Import timestamp'
    )
    updated_at = Column(
        TIMESTAMP,
        server_default=text('CURRENT_TIMESTAMP'),
        nullable=False,
        comment='Last modification timestamp'
    )

    def __repr__(self):
        return f"<Product(id={self.id}, sku='{self.sku}')>"


# Template name -> table holding its records
RECORD_TABLES = {
    'users': User,
    'products': Product,
}
