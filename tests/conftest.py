"""
Pytest configuration and fixtures for spreadsheet import tests.
"""

import io
import os

import pytest
from dotenv import load_dotenv
from openpyxl import Workbook
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from backend.models.schema import Base
from services.errors import ChannelDeliveryError
from services.progress_service import ProgressReporter
from services.record_store import RecordStore

# Load environment
load_dotenv()

# Test database URL (in-memory SQLite unless a separate test database is configured)
TEST_DATABASE_URL = os.getenv('TEST_DATABASE_URL', 'sqlite+pysqlite:///:memory:')

USER_HEADERS = ['First Name', 'Last Name', 'Email', 'Phone', 'Birth Date', 'Is Active']
PRODUCT_HEADERS = ['Product Name', 'SKU', 'Price', 'Category', 'Stock Quantity', 'Description']


class RecordingChannel:
    """In-memory notification channel that remembers every publish."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.messages = []

    def publish(self, room, event, data):
        if self.fail:
            raise ChannelDeliveryError(f"Publish to {room} failed: channel down")
        self.messages.append((room, event, data))

    def events(self, name):
        return [data for _, event, data in self.messages if event == name]


@pytest.fixture(scope='session')
def engine():
    """Create test database engine."""
    if TEST_DATABASE_URL.startswith('sqlite'):
        eng = create_engine(
            TEST_DATABASE_URL,
            connect_args={'check_same_thread': False},
            poolclass=StaticPool
        )
    else:
        eng = create_engine(TEST_DATABASE_URL)
    Base.metadata.create_all(eng)
    yield eng
    Base.metadata.drop_all(eng)
    eng.dispose()


@pytest.fixture(scope='function')
def session(engine):
    """Create a new database session for a test and empty the tables afterwards."""
    Session = sessionmaker(bind=engine)
    sess = Session()

    yield sess

    sess.rollback()
    for table in reversed(Base.metadata.sorted_tables):
        sess.execute(table.delete())
    sess.commit()
    sess.close()


@pytest.fixture
def record_store(session):
    return RecordStore(session)


@pytest.fixture
def channel():
    return RecordingChannel()


@pytest.fixture
def failing_channel():
    return RecordingChannel(fail=True)


@pytest.fixture
def reporter(channel):
    return ProgressReporter(channel)


@pytest.fixture
def build_workbook():
    """Build .xlsx bytes from a header row and data rows."""
    def _build(headers, rows):
        workbook = Workbook()
        worksheet = workbook.active
        worksheet.title = 'Data'
        worksheet.append(list(headers))
        for row in rows:
            worksheet.append(list(row))
        buffer = io.BytesIO()
        workbook.save(buffer)
        return buffer.getvalue()
    return _build


@pytest.fixture
def users_workbook(build_workbook):
    """Three user rows; the third has no first name."""
    return build_workbook(USER_HEADERS, [
        ['John', 'Doe', 'john.doe@example.com', '+995555123456', '1990-01-01', 'true'],
        ['Jane', 'Smith', 'jane.smith@example.com', None, None, None],
        ['', 'Brown', 'bob.brown@example.com', None, None, 'false'],
    ])


@pytest.fixture
def products_workbook(build_workbook):
    return build_workbook(PRODUCT_HEADERS, [
        ['Laptop Computer', 'LAP-001', 999.99, 'Electronics', 50, 'High-performance laptop'],
        ['Wireless Mouse', 'MOU-001', '29.99', 'Accessories', None, None],
    ])
