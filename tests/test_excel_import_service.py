"""
Tests for the import pipeline: parsing, row errors, persistence and progress.
"""

from unittest.mock import MagicMock

import pytest

from backend.models.records import ProgressEvent
from backend.models.schema import Product, User
from services.errors import PersistenceError, TemplateNotFoundError, WorkbookParseError
from services.excel_import_service import ExcelImportService, row_progress
from services.progress_service import ProgressReporter
from services.template_catalog import (
    ColumnType, ExcelTemplate, TemplateCatalog, TemplateColumn, USERS_TEMPLATE
)

JOB_ID = 'upload-1729339200000-abc123def'
USER_HEADERS = ['First Name', 'Last Name', 'Email', 'Phone', 'Birth Date', 'Is Active']


def progress_values(channel):
    return [data['progress'] for data in channel.events('upload-progress')]


def statuses(channel):
    return [data['status'] for data in channel.events('upload-progress')]


class TestRowProgress:
    """Test interpolation of per-row progress."""

    def test_bounds(self):
        assert row_progress(0, 10) == 10
        assert row_progress(10, 10) == 90

    def test_rounds_half_up(self):
        # 1/16 * 80 = 5.0, 1/32 * 80 = 2.5
        assert row_progress(1, 16) == 15
        assert row_progress(1, 32) == 13

    def test_empty_sheet_is_done(self):
        assert row_progress(0, 0) == 100


class TestImportUsers:
    """Test importing the users template."""

    def test_row_error_is_collected(self, session, record_store, reporter, channel, users_workbook):
        service = ExcelImportService(record_store, reporter)

        outcome = service.run('users', users_workbook, job_id=JOB_ID)

        assert outcome.processed_count == 2
        assert [str(error) for error in outcome.errors] == ["Row 4: Field 'firstName' is required"]
        assert outcome.to_payload() == {
            'message': 'Processed 2 of 3 rows',
            'processedCount': 2,
            'errors': [{'rowNumber': 4, 'message': "Field 'firstName' is required"}],
        }

        emails = sorted(user.email for user in session.query(User).all())
        assert emails == ['jane.smith@example.com', 'john.doe@example.com']

    def test_progress_sequence(self, record_store, reporter, channel, users_workbook):
        service = ExcelImportService(record_store, reporter)

        service.run('users', users_workbook, job_id=JOB_ID)

        # started, processing, rows 1 and 3, saving, completed
        assert progress_values(channel) == [0, 10, 37, 90, 90, 100]
        assert statuses(channel) == [
            'started', 'processing', 'processing', 'processing', 'processing', 'completed'
        ]
        assert all(room == f'upload-{JOB_ID}' for room, _, _ in channel.messages)

        completed = channel.events('upload-progress')[-1]
        assert completed['jobId'] == JOB_ID
        assert completed['templateName'] == 'users'
        assert completed['processed'] == 2
        assert completed['total'] == 3
        assert completed['errors'] == [{'rowNumber': 4, 'message': "Field 'firstName' is required"}]

    def test_processed_plus_errors_equals_rows(self, record_store, reporter, build_workbook):
        rows = []
        for index in range(25):
            email = '' if index % 4 == 0 else f'user{index}@example.com'
            rows.append([f'First{index}', f'Last{index}', email, None, None, None])
        workbook = build_workbook(USER_HEADERS, rows)

        outcome = ExcelImportService(record_store, reporter).run('users', workbook, job_id=JOB_ID)

        assert outcome.processed_count + len(outcome.errors) == 25
        assert len(outcome.errors) == 7
        assert outcome.errors[0].row_number == 2

    def test_progress_is_monotonic_and_bounded(self, record_store, reporter, channel, build_workbook):
        rows = [[f'First{i}', f'Last{i}', f'user{i}@example.com', None, None, None] for i in range(37)]
        workbook = build_workbook(USER_HEADERS, rows)

        ExcelImportService(record_store, reporter).run('users', workbook, job_id=JOB_ID)

        values = progress_values(channel)
        assert values == sorted(values)
        assert values[0] == 0
        assert values[-1] == 100
        # rows 1, 11, 21, 31 and the last row
        assert len(values) == 2 + 5 + 2

    def test_blank_rows_are_skipped(self, record_store, reporter, build_workbook):
        workbook = build_workbook(USER_HEADERS, [
            ['John', 'Doe', 'john.doe@example.com', None, None, None],
            [None, None, None, None, None, None],
            ['Jane', 'Smith', 'jane.smith@example.com', None, None, None],
        ])

        outcome = ExcelImportService(record_store, reporter).run('users', workbook)

        assert outcome.processed_count == 2
        assert outcome.errors == []


class TestImportProducts:
    """Test importing the products template."""

    def test_products_are_saved(self, session, record_store, reporter, products_workbook):
        outcome = ExcelImportService(record_store, reporter).run('products', products_workbook)

        assert outcome.processed_count == 2
        products = {product.sku: product for product in session.query(Product).all()}
        assert products['LAP-001'].price == 999.99
        assert products['LAP-001'].stock == 50
        assert products['MOU-001'].price == 29.99
        assert products['MOU-001'].stock is None


class TestEmptyWorkbook:
    """Test a workbook holding only the header row."""

    def test_only_completed_event(self, build_workbook, reporter, channel):
        store = MagicMock()
        workbook = build_workbook(USER_HEADERS, [])

        outcome = ExcelImportService(store, reporter).run('users', workbook, job_id=JOB_ID)

        assert outcome.processed_count == 0
        assert outcome.errors == []
        assert progress_values(channel) == [100]
        assert statuses(channel) == ['completed']
        store.insert_batch.assert_not_called()


class TestRunFailures:
    """Test run-level failures."""

    def test_unknown_template_emits_nothing(self, record_store, reporter, channel, users_workbook):
        with pytest.raises(TemplateNotFoundError) as exc_info:
            ExcelImportService(record_store, reporter).run('widgets', users_workbook, job_id=JOB_ID)

        assert str(exc_info.value) == "Template 'widgets' not found"
        assert channel.messages == []

    def test_duplicate_email_fails_the_run(self, session, record_store, reporter, channel, build_workbook):
        workbook = build_workbook(USER_HEADERS, [
            ['John', 'Doe', 'same@example.com', None, None, None],
            ['Jane', 'Doe', 'same@example.com', None, None, None],
        ])

        with pytest.raises(PersistenceError):
            ExcelImportService(record_store, reporter).run('users', workbook, job_id=JOB_ID)

        assert session.query(User).count() == 0
        events = channel.events('upload-progress')
        assert events[-1]['status'] == 'failed'
        assert events[-1]['progress'] == 90
        assert len([event for event in events if event['status'] == 'failed']) == 1

    def test_unreadable_workbook(self, record_store, reporter, channel):
        with pytest.raises(WorkbookParseError):
            ExcelImportService(record_store, reporter).run('users', b'not a workbook', job_id=JOB_ID)

        assert statuses(channel) == ['failed']
        assert progress_values(channel) == [0]

    def test_unsupported_template_rows_are_row_errors(self, record_store, reporter, build_workbook):
        widgets = ExcelTemplate(
            name='widgets',
            description='Widgets',
            columns=(TemplateColumn(header='Name', key='name', type=ColumnType.STRING, required=True),)
        )
        catalog = TemplateCatalog([USERS_TEMPLATE, widgets])
        workbook = build_workbook(['Name'], [['gear'], ['cog']])

        outcome = ExcelImportService(record_store, reporter, catalog=catalog).run('widgets', workbook)

        assert outcome.processed_count == 0
        assert [str(error) for error in outcome.errors] == [
            "Row 2: Unsupported template 'widgets'",
            "Row 3: Unsupported template 'widgets'",
        ]


class TestProgressDelivery:
    """Test that progress delivery never affects the run."""

    def test_channel_failure_is_ignored(self, record_store, failing_channel, users_workbook):
        service = ExcelImportService(record_store, ProgressReporter(failing_channel))

        outcome = service.run('users', users_workbook, job_id=JOB_ID)

        assert outcome.processed_count == 2

    def test_no_job_id_publishes_nothing(self, record_store, reporter, channel, users_workbook):
        seen = []
        service = ExcelImportService(record_store, reporter, progress_callback=seen.append)

        service.run('users', users_workbook)

        assert channel.messages == []
        assert [event.progress for event in seen] == [0, 10, 37, 90, 90, 100]
        assert all(isinstance(event, ProgressEvent) for event in seen)
