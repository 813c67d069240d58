"""Pytest configuration and fixtures for upload engine tests"""

import pytest
from unittest.mock import AsyncMock
from fastapi.testclient import TestClient

from knowledge_upload.application.services.batch_sessions import BatchSessionStore
from knowledge_upload.application.services.event_dispatcher import EventDispatcher
from knowledge_upload.application.services.progress_poller import ProgressReconciliationPoller
from knowledge_upload.application.use_cases.batch_controller import BatchController
from knowledge_upload.application.use_cases.upload_orchestrator import UploadOrchestrator
from knowledge_upload.domain.entities.payload import BytesPayload
from knowledge_upload.domain.services.chunk_planner import ChunkPlanner, MB
from knowledge_upload.presentation.api.app import create_application
from shared.config.settings import Settings
from shared.middleware.retry import RetryPolicy
from tests.mocks.storage_backend_mock import InMemoryStorageBackend, SparsePayload


@pytest.fixture
def backend():
    """In-memory storage backend"""
    return InMemoryStorageBackend()


@pytest.fixture
def dispatcher():
    return EventDispatcher()


@pytest.fixture
def recorded_events(dispatcher):
    """Every event dispatched during the test, in order"""
    events = []
    dispatcher.subscribe(events.append)
    return events


@pytest.fixture
def planner():
    return ChunkPlanner()


@pytest.fixture
def retry_sleep():
    """Sleep replacement that records requested delays"""
    return AsyncMock()


@pytest.fixture
def chunk_retry_policy(retry_sleep):
    return RetryPolicy(max_attempts=3, base_delay=4.0, name="chunk transfer", sleep=retry_sleep)


@pytest.fixture
def orchestrator(backend, dispatcher, planner, chunk_retry_policy):
    return UploadOrchestrator(
        backend=backend,
        user_id="user-1",
        dispatcher=dispatcher,
        chunk_planner=planner,
        chunk_retry_policy=chunk_retry_policy,
        simulated_interval=0.01
    )


@pytest.fixture
def poller(backend, dispatcher):
    """Poller with short intervals"""
    return ProgressReconciliationPoller(
        backend=backend,
        dispatcher=dispatcher,
        poll_interval=0.01,
        timeout=5.0,
        completed_grace=0.05
    )


@pytest.fixture
def controller(orchestrator, poller, planner):
    return BatchController(orchestrator=orchestrator, poller=poller, chunk_planner=planner)


@pytest.fixture
def small_pdf():
    return SparsePayload("small-report.pdf", 2 * MB)


@pytest.fixture
def large_pdf():
    """100 MB PDF, chunked into three pieces"""
    return SparsePayload("large-guideline.pdf", 100 * MB)


@pytest.fixture
def text_file():
    return BytesPayload("notes.txt", b"Patient education notes\n" * 10, "text/plain")


@pytest.fixture
def test_settings(tmp_path):
    """Settings tuned for fast tests"""
    return Settings(
        upload_spool_dir=str(tmp_path / "spool"),
        poll_interval_seconds=0.01,
        tracking_timeout_seconds=5.0,
        completed_grace_seconds=0.05,
        chunk_retry_base_delay_seconds=0.0,
        simulated_progress_interval_seconds=0.01,
        backend_user_id="user-1"
    )


@pytest.fixture
def session_store(backend, test_settings):
    return BatchSessionStore(backend=backend, settings=test_settings)


@pytest.fixture
def api_client(session_store, test_settings):
    """Test client with the session store and settings overridden"""
    from knowledge_upload.presentation.api.upload_controller import get_session_store, get_app_settings

    app = create_application()
    app.dependency_overrides[get_session_store] = lambda: session_store
    app.dependency_overrides[get_app_settings] = lambda: test_settings

    with TestClient(app) as client:
        yield client
        client.portal.call(session_store.cleanup)
