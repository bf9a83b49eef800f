"""Initial schema for spreadsheet import system

Revision ID: 001_initial_schema
Revises: 
Create Date: 2025-10-14

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001_initial_schema'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Create users table
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('first_name', sa.String(length=255), nullable=False),
        sa.Column('last_name', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False,
                  comment='Unique; duplicate imports fail the batch'),
        sa.Column('phone', sa.String(length=64), nullable=True),
        sa.Column('birth_date', sa.Date(), nullable=True),
        sa.Column('is_active', sa.Boolean(), server_default=sa.text('true'), nullable=False),
        sa.Column('created_at', sa.TIMESTAMP(), server_default=sa.text('CURRENT_TIMESTAMP'),
                  nullable=False, comment='Import timestamp'),
        sa.Column('updated_at', sa.TIMESTAMP(), server_default=sa.text('CURRENT_TIMESTAMP'),
                  nullable=False, comment='Last modification timestamp'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email'),
        comment='Users imported from spreadsheets'
    )

    # Create indexes on users table
    op.create_index('idx_users_created_at', 'users', ['created_at'])

    # Create products table
    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('sku', sa.String(length=100), nullable=False,
                  comment='Unique; duplicate imports fail the batch'),
        sa.Column('price', sa.Float(), nullable=False),
        sa.Column('category', sa.String(length=255), nullable=False),
        sa.Column('stock', sa.Float(), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(), server_default=sa.text('CURRENT_TIMESTAMP'),
                  nullable=False, comment='Import timestamp'),
        sa.Column('updated_at', sa.TIMESTAMP(), server_default=sa.text('CURRENT_TIMESTAMP'),
                  nullable=False, comment='Last modification timestamp'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('sku'),
        comment='Products imported from spreadsheets'
    )

    # Create indexes on products table
    op.create_index('idx_products_created_at', 'products', ['created_at'])


def downgrade() -> None:
    # Drop products table and indexes
    op.drop_index('idx_products_created_at', table_name='products')
    op.drop_table('products')

    # Drop users table and indexes
    op.drop_index('idx_users_created_at', table_name='users')
    op.drop_table('users')
