"""
Tests for the queue-facing job adapter and the Celery task.
"""

import base64
import re
from unittest.mock import MagicMock, patch

import pytest

from backend.models.records import ImportOutcome, ProgressEvent, RowError, UploadStatus
from services.errors import JobConfigurationError, PersistenceError
from services.job_coordinator import (
    ImportJobCoordinator, build_payload, decode_payload, generate_job_id
)
from services.notification_channel import BackgroundNotificationChannel
from services.progress_service import ProgressReporter

JOB_ID = 'upload-1729339200000-abc123def'


def outcome():
    return ImportOutcome(
        message='Processed 2 of 3 rows',
        processed_count=2,
        errors=[RowError(row_number=4, message="Field 'firstName' is required")]
    )


class TestPayload:
    """Test the upload-excel wire format."""

    def test_build_payload(self):
        payload = build_payload('users', b'PK\x03\x04', JOB_ID)

        assert payload == {
            'templateName': 'users',
            'buffer': base64.b64encode(b'PK\x03\x04').decode('ascii'),
            'jobId': JOB_ID,
        }
        assert decode_payload(payload).file_bytes() == b'PK\x03\x04'

    def test_missing_job_id(self):
        with pytest.raises(JobConfigurationError):
            decode_payload({'templateName': 'users', 'buffer': ''})

    def test_invalid_base64(self):
        job = decode_payload({'templateName': 'users', 'buffer': '***', 'jobId': JOB_ID})

        with pytest.raises(JobConfigurationError):
            job.file_bytes()

    def test_generate_job_id(self):
        job_id = generate_job_id()

        assert re.fullmatch(r'upload-\d{13}-[a-z0-9]{9}', job_id)
        assert generate_job_id() != job_id


class TestImportJobCoordinator:
    """Test job execution and notifications."""

    def test_success(self, reporter, channel):
        run_import = MagicMock(return_value=outcome())
        coordinator = ImportJobCoordinator(reporter, run_import)

        result = coordinator.process(build_payload('users', b'xlsx', JOB_ID), native_id=JOB_ID)

        run_import.assert_called_once_with('users', b'xlsx', JOB_ID)
        assert result == {
            'message': 'Processed 2 of 3 rows',
            'processedCount': 2,
            'errors': [{'rowNumber': 4, 'message': "Field 'firstName' is required"}],
        }
        completed = channel.events('upload-completed')
        assert len(completed) == 1
        assert completed[0]['result'] == result
        assert channel.events('upload-error') == []

    def test_failure_notifies_room_and_reraises(self, reporter, channel):
        run_import = MagicMock(side_effect=PersistenceError('duplicate key value'))
        coordinator = ImportJobCoordinator(reporter, run_import)

        with pytest.raises(PersistenceError):
            coordinator.process(build_payload('users', b'xlsx', JOB_ID))

        errors = channel.events('upload-error')
        assert len(errors) == 1
        assert errors[0]['error'] == 'duplicate key value'
        assert channel.events('upload-completed') == []

    def test_invalid_buffer_is_reported(self, reporter, channel):
        coordinator = ImportJobCoordinator(reporter, MagicMock())

        with pytest.raises(JobConfigurationError):
            coordinator.process({'templateName': 'users', 'buffer': '***', 'jobId': JOB_ID})

        assert len(channel.events('upload-error')) == 1

    def test_undecodable_payload(self, reporter, channel):
        coordinator = ImportJobCoordinator(reporter, MagicMock())

        with pytest.raises(JobConfigurationError):
            coordinator.process({'templateName': 'users', 'buffer': ''})

        assert channel.messages == []

    def test_channel_failure_does_not_fail_job(self, failing_channel):
        coordinator = ImportJobCoordinator(ProgressReporter(failing_channel), MagicMock(return_value=outcome()))

        assert coordinator.process(build_payload('users', b'xlsx', JOB_ID))['processedCount'] == 2


class TestUploadTask:
    """Test the Celery task wrapper."""

    def test_task_is_registered_for_file_queue(self):
        from tasks.celery_app import celery_app
        from tasks.import_tasks import upload_excel

        assert upload_excel.name == 'upload-excel'
        assert upload_excel.max_retries == 0
        assert celery_app.conf.task_routes['upload-excel']['queue'] == 'file'

    def test_worker_publishes_in_background(self):
        from tasks import import_tasks

        assert isinstance(import_tasks.notification_channel, BackgroundNotificationChannel)
        assert import_tasks.progress_reporter.channel is import_tasks.notification_channel

    def test_on_progress_records_task_state(self):
        from tasks.celery_app import celery_app
        import tasks.import_tasks  # noqa: F401

        task = celery_app.tasks['upload-excel']

        event = ProgressEvent(
            job_id=JOB_ID, template_name='users', status=UploadStatus.PROCESSING,
            progress=37, message='Processed 1 of 3 rows'
        )

        task.push_request(id=JOB_ID)
        try:
            with patch.object(task, 'update_state') as update_state:
                task.on_progress(event)
        finally:
            task.pop_request()

        update_state.assert_called_once_with(state='PROGRESS', meta=event.to_payload())

    def test_task_runs_coordinator(self):
        from tasks import import_tasks

        payload = build_payload('users', b'xlsx', JOB_ID)
        with patch.object(import_tasks, 'run_import', return_value=outcome()) as run_import, \
                patch.object(import_tasks, 'progress_reporter') as progress_reporter:
            result = import_tasks.upload_excel.apply(args=[payload], task_id=JOB_ID).get()

        assert result['processedCount'] == 2
        assert run_import.call_args[0][1:] == ('users', b'xlsx', JOB_ID)
        progress_reporter.emit_completion.assert_called_once()
