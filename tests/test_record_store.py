"""
Tests for batch persistence and paginated reads.
"""

from datetime import date

import pytest

from backend.models.records import ProductRecord, UserRecord
from backend.models.schema import User
from services.errors import PersistenceError


def users(count):
    return [
        UserRecord(first_name=f'First{i}', last_name=f'Last{i}', email=f'user{i}@example.com')
        for i in range(count)
    ]


class TestInsertBatch:
    """Test single-statement batch inserts."""

    def test_insert(self, session, record_store):
        record = UserRecord(
            first_name='John', last_name='Doe', email='john.doe@example.com',
            birth_date=date(1990, 1, 1), is_active=False
        )

        assert record_store.insert_batch('users', [record]) == 1

        user = session.query(User).one()
        assert user.birth_date == date(1990, 1, 1)
        assert user.is_active is False
        assert user.created_at is not None

    def test_empty_batch(self, record_store):
        assert record_store.insert_batch('users', []) == 0

    def test_unknown_table(self, record_store):
        with pytest.raises(PersistenceError):
            record_store.insert_batch('widgets', users(1))

    def test_duplicate_sku_rolls_back_batch(self, session, record_store):
        products = [
            ProductRecord(name='Laptop', sku='LAP-001', price=999.99, category='Electronics'),
            ProductRecord(name='Laptop 2', sku='LAP-001', price=899.0, category='Electronics'),
        ]

        with pytest.raises(PersistenceError):
            record_store.insert_batch('products', products)

        assert record_store.fetch_page('products') == []


class TestFetchPage:
    """Test reading records back."""

    def test_pages(self, record_store):
        record_store.insert_batch('users', users(5))

        first = record_store.fetch_page('users', page=1, limit=2)
        third = record_store.fetch_page('users', page=3, limit=2)

        # newest first; rows sharing a timestamp fall back to id order
        assert [document['email'] for document in first] == ['user4@example.com', 'user3@example.com']
        assert [document['email'] for document in third] == ['user0@example.com']

    def test_documents_use_column_keys(self, record_store):
        record_store.insert_batch('users', users(1))

        document = record_store.fetch_page('users')[0]

        assert document['firstName'] == 'First0'
        assert document['isActive'] is True
        assert document['birthDate'] is None
