"""Unit tests for the upload task state machine"""

import pytest

from knowledge_upload.domain.entities.events import ProgressEvent
from knowledge_upload.domain.entities.status import TaskStatus, UploadPhase
from knowledge_upload.domain.entities.upload_task import UploadTask
from knowledge_upload.domain.exceptions import InvalidTransitionError, RetryLimitExceededError
from knowledge_upload.domain.services.chunk_planner import ChunkPlanner, MB
from shared.models.base import DocumentCategory
from tests.mocks.storage_backend_mock import SparsePayload


@pytest.fixture
def task():
    return UploadTask.create(SparsePayload("Cardiology: notes.pdf", 2 * MB), ChunkPlanner())


@pytest.fixture
def chunked_task():
    return UploadTask.create(SparsePayload("atlas.pdf", 100 * MB), ChunkPlanner())


class TestUploadTaskCreation:
    """Test task creation"""

    def test_defaults(self, task):
        assert task.status == TaskStatus.PENDING
        assert task.upload_status == UploadPhase.PREPARING
        assert task.upload_progress == 0
        assert task.retry_count == 0
        assert task.can_retry is True
        assert task.is_chunked is False
        assert task.chunk_progress is None
        assert task.title == "Cardiology_ notes"
        assert task.category == DocumentCategory.OTHER
        assert len(task.task_id) == 32

    def test_chunked_task(self, chunked_task):
        assert chunked_task.is_chunked is True
        assert chunked_task.total_chunks == 3
        assert chunked_task.chunk_progress.current_chunk == 0
        assert chunked_task.chunk_progress.total_chunks == 3

    def test_is_chunked_is_immutable(self, task):
        with pytest.raises(AttributeError):
            task.is_chunked = True

        assert task.is_chunked is False

    def test_task_ids_are_unique(self):
        planner = ChunkPlanner()
        payload = SparsePayload("a.pdf", 10)

        assert UploadTask.create(payload, planner).task_id != UploadTask.create(payload, planner).task_id


class TestUploadTaskProgress:
    """Test progress application"""

    def test_begin_attempt(self, task, chunked_task):
        task.begin_attempt()
        chunked_task.begin_attempt()

        assert task.status == TaskStatus.UPLOADING
        assert task.attempt == 1
        assert task.estimated_time == "30-60 seconds"
        assert chunked_task.estimated_time == "3-5 minutes"

    def test_begin_attempt_requires_pending(self, task):
        task.begin_attempt()

        with pytest.raises(InvalidTransitionError):
            task.begin_attempt()

    def test_progress_is_monotonic(self, task):
        task.begin_attempt()

        assert task.apply_progress(ProgressEvent.overall(task.task_id, 40, UploadPhase.UPLOADING))
        assert not task.apply_progress(ProgressEvent.overall(task.task_id, 30, UploadPhase.UPLOADING))
        assert task.upload_progress == 40

    def test_phase_is_monotonic(self, task):
        task.begin_attempt()
        task.apply_progress(ProgressEvent.phase(task.task_id, UploadPhase.PROCESSING, 90))

        ignored = task.apply_progress(ProgressEvent.phase(task.task_id, UploadPhase.UPLOADING, 95))

        assert not ignored
        assert task.upload_status == UploadPhase.PROCESSING
        assert task.upload_progress == 90

    def test_events_for_other_tasks_are_ignored(self, task):
        task.begin_attempt()

        assert not task.apply_progress(ProgressEvent.overall("other", 50, UploadPhase.UPLOADING))
        assert task.upload_progress == 0

    def test_events_ignored_when_not_uploading(self, task):
        assert not task.apply_progress(ProgressEvent.overall(task.task_id, 50, UploadPhase.UPLOADING))
        assert task.upload_progress == 0

    def test_complete_phase_only_through_mark_success(self, task):
        task.begin_attempt()

        assert not task.apply_progress(ProgressEvent.overall(task.task_id, 100, UploadPhase.COMPLETE))
        assert task.status == TaskStatus.UPLOADING

    def test_chunk_event_updates_chunk_progress(self, chunked_task):
        chunked_task.begin_attempt()

        chunked_task.apply_progress(ProgressEvent.chunk(chunked_task.task_id, 1, 3, 60))

        assert chunked_task.upload_progress == 60
        assert chunked_task.chunk_progress.current_chunk == 2
        assert chunked_task.chunk_progress.chunk_progress == 67


class TestUploadTaskOutcome:
    """Test success, failure and retry"""

    def test_mark_success(self, task):
        task.begin_attempt()

        task.mark_success("doc-1", "file-1")

        assert task.status == TaskStatus.SUCCESS
        assert task.upload_status == UploadPhase.COMPLETE
        assert task.upload_progress == 100
        assert task.document_id == "doc-1"
        assert task.backend_file_ref == "file-1"

    def test_mark_success_requires_document_id(self, task):
        task.begin_attempt()

        with pytest.raises(InvalidTransitionError):
            task.mark_success("")

    def test_mark_failed(self, task):
        task.begin_attempt()
        task.apply_progress(ProgressEvent.overall(task.task_id, 70, UploadPhase.UPLOADING))

        task.mark_failed("Network error")

        assert task.status == TaskStatus.ERROR
        assert task.upload_status == UploadPhase.ERROR
        assert task.upload_progress == 0
        assert task.retry_count == 1
        assert task.error == "Network error"

    def test_reset_for_retry(self, task):
        task.begin_attempt()
        task.mark_failed("boom")

        task.reset_for_retry()

        assert task.status == TaskStatus.PENDING
        assert task.upload_status == UploadPhase.PREPARING
        assert task.upload_progress == 0
        assert task.error is None

    def test_reset_requires_error(self, task):
        with pytest.raises(InvalidTransitionError):
            task.reset_for_retry()

    def test_at_most_three_attempts(self, task):
        for _ in range(3):
            task.begin_attempt()
            task.mark_failed("boom")
            if task.can_retry:
                task.reset_for_retry()

        assert task.attempt == 3
        assert task.retry_count == 3
        assert task.can_retry is False
        with pytest.raises(RetryLimitExceededError):
            task.reset_for_retry()

    def test_cannot_fail_twice(self, task):
        task.begin_attempt()
        task.mark_failed("boom")

        with pytest.raises(InvalidTransitionError):
            task.mark_failed("again")


class TestUploadTaskMetadata:
    """Test metadata updates"""

    def test_update_metadata_sanitizes(self, task):
        task.update_metadata(
            title="New <title>",
            description="<script>x</script>",
            tags=["ok", "bad!"],
            category="case-studies"
        )

        assert task.title == "New _title_"
        assert task.description == "scriptx/script"
        assert task.tags == ["ok", "bad"]
        assert task.category == DocumentCategory.CASE_STUDIES

    def test_metadata_locked_while_uploading(self, task):
        task.begin_attempt()

        with pytest.raises(InvalidTransitionError):
            task.update_metadata(title="x")

    def test_to_metadata(self, chunked_task):
        chunked_task.update_metadata(description="Atlas", tags=["anatomy"])

        metadata = chunked_task.to_metadata(session_id="s-1")

        assert metadata.file_name == "atlas.pdf"
        assert metadata.file_size == 100 * MB
        assert metadata.file_type == "application/pdf"
        assert metadata.session_id == "s-1"
        assert metadata.to_dict()["tags"] == ["anatomy"]
