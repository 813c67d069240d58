"""API tests for the upload controller"""

import os
import time

from fastapi import status

from knowledge_upload.infrastructure.external.file_payloads import save_upload_file
from knowledge_upload.presentation.api import upload_controller
from tests.mocks.storage_backend_mock import backend_status


NOTES = ("notes.txt", b"Patient education notes\n" * 20, "text/plain")
GUIDELINE = ("guideline.pdf", b"%PDF-1.7 " + b"0" * 2048, "application/pdf")
EXECUTABLE = ("setup.exe", b"MZ", "application/x-msdownload")


def open_batch(client):
    response = client.post("/uploads/batches")
    assert response.status_code == status.HTTP_201_CREATED
    return response.json()["batch_id"]


def add_files(client, batch_id, *files):
    return client.post(
        f"/uploads/batches/{batch_id}/files",
        files=[("files", file) for file in files]
    )


def spooled_files(settings):
    if not os.path.isdir(settings.upload_spool_dir):
        return []
    return os.listdir(settings.upload_spool_dir)


def wait_for(predicate, timeout: float = 2.0):
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not met in time")
        time.sleep(0.01)


class TestBatchEndpoints:
    """Test batch lifecycle endpoints"""

    def test_health(self, api_client):
        response = api_client.get("/uploads/health")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["status"] == "healthy"
        assert data["details"]["open_batches"] == 0

    def test_create_batch(self, api_client):
        response = api_client.post("/uploads/batches")

        assert response.status_code == status.HTTP_201_CREATED
        data = response.json()
        assert data["step"] == "select"
        assert data["tasks"] == []
        assert data["can_upload"] is False

    def test_unknown_batch(self, api_client):
        response = api_client.get("/uploads/batches/missing")

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json()["detail"] == "Upload session not found."

    def test_add_files_rejects_invalid(self, api_client, test_settings):
        batch_id = open_batch(api_client)

        response = add_files(api_client, batch_id, NOTES, EXECUTABLE)

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert [task["filename"] for task in data["tasks"]] == ["notes.txt"]
        assert data["step"] == "configure"
        assert data["can_upload"] is True
        assert len(data["messages"]) == 1
        assert data["messages"][0].startswith("setup.exe: ")
        assert len(spooled_files(test_settings)) == 1

    def test_update_and_remove_task(self, api_client, test_settings):
        batch_id = open_batch(api_client)
        task_id = add_files(api_client, batch_id, GUIDELINE).json()["tasks"][0]["task_id"]

        response = api_client.patch(
            f"/uploads/batches/{batch_id}/tasks/{task_id}",
            json={"title": "Hypertension guideline", "category": "clinical-guidelines", "tags": ["cardio"]}
        )
        assert response.status_code == status.HTTP_200_OK
        assert response.json()["title"] == "Hypertension guideline"
        assert response.json()["category"] == "clinical-guidelines"

        response = api_client.delete(f"/uploads/batches/{batch_id}/tasks/{task_id}")
        assert response.status_code == status.HTTP_200_OK
        assert response.json()["tasks"] == []
        assert response.json()["step"] == "select"
        assert spooled_files(test_settings) == []

    def test_unknown_task(self, api_client):
        batch_id = open_batch(api_client)

        response = api_client.patch(f"/uploads/batches/{batch_id}/tasks/missing", json={"title": "x"})

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json()["detail"] == "Upload not found."

    def test_close_batch_discards_files(self, api_client, test_settings):
        batch_id = open_batch(api_client)
        add_files(api_client, batch_id, NOTES)

        response = api_client.delete(f"/uploads/batches/{batch_id}")

        assert response.status_code == status.HTTP_200_OK
        assert api_client.get(f"/uploads/batches/{batch_id}").status_code == status.HTTP_404_NOT_FOUND
        assert spooled_files(test_settings) == []

    def test_add_files_while_running_leaves_no_files(self, api_client, session_store, test_settings):
        batch_id = open_batch(api_client)
        session_store.get(batch_id).is_running = True

        response = add_files(api_client, batch_id, NOTES, GUIDELINE)

        assert response.status_code == status.HTTP_409_CONFLICT
        assert spooled_files(test_settings) == []
        assert session_store.get(batch_id).tasks == []

    def test_add_files_storage_error_leaves_no_files(self, api_client, test_settings, monkeypatch):
        batch_id = open_batch(api_client)
        saved = []

        async def save_then_fail(upload, spool_dir):
            if saved:
                raise OSError("No space left on device")
            payload = await save_upload_file(upload, spool_dir)
            saved.append(payload)
            return payload

        monkeypatch.setattr(upload_controller, "save_upload_file", save_then_fail)

        response = add_files(api_client, batch_id, NOTES, GUIDELINE)

        assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
        assert len(saved) == 1
        assert spooled_files(test_settings) == []


class TestRunEndpoints:
    """Test upload runs, retries and progress"""

    def test_run_uploads_and_tracks(self, api_client, backend):
        batch_id = open_batch(api_client)
        add_files(api_client, batch_id, GUIDELINE, NOTES)

        response = api_client.post(f"/uploads/batches/{batch_id}/run")

        assert response.status_code == status.HTTP_200_OK
        report = response.json()
        assert report["success_count"] == 2
        assert report["failure_count"] == 0
        assert set(report["outcomes"].values()) == {"success"}

        batch = api_client.get(f"/uploads/batches/{batch_id}").json()
        assert batch["step"] == "complete"
        assert [task["document_id"] for task in batch["tasks"]] == ["doc-1", "doc-2"]
        assert all(task["upload_progress"] == 100 for task in batch["tasks"])

        progress = api_client.get(f"/uploads/batches/{batch_id}/progress").json()
        assert {record["document_id"] for record in progress} == {"doc-1", "doc-2"}

        record = api_client.get("/uploads/progress/doc-1").json()
        assert record["status"] in ("processing", "uploading")

    def test_run_requires_pending_tasks(self, api_client):
        batch_id = open_batch(api_client)

        response = api_client.post(f"/uploads/batches/{batch_id}/run")

        assert response.status_code == status.HTTP_409_CONFLICT

    def test_completed_document_disappears(self, api_client, backend):
        backend.default_status = backend_status("uploaded", "completed")
        batch_id = open_batch(api_client)
        add_files(api_client, batch_id, NOTES)

        api_client.post(f"/uploads/batches/{batch_id}/run")

        wait_for(lambda: api_client.get("/uploads/progress/doc-1").status_code == status.HTTP_404_NOT_FOUND)

    def test_failed_upload_can_be_retried(self, api_client, backend):
        backend.whole_failures = 1
        batch_id = open_batch(api_client)
        task_id = add_files(api_client, batch_id, NOTES).json()["tasks"][0]["task_id"]

        report = api_client.post(f"/uploads/batches/{batch_id}/run").json()
        assert report["failure_count"] == 1

        task = api_client.get(f"/uploads/batches/{batch_id}").json()["tasks"][0]
        assert task["status"] == "error"
        assert task["can_retry"] is True
        assert task["error"]

        response = api_client.post(f"/uploads/batches/{batch_id}/tasks/{task_id}/retry")
        assert response.status_code == status.HTTP_200_OK
        assert response.json()["success_count"] == 1

    def test_retry_of_pending_task_conflicts(self, api_client):
        batch_id = open_batch(api_client)
        task_id = add_files(api_client, batch_id, NOTES).json()["tasks"][0]["task_id"]

        response = api_client.post(f"/uploads/batches/{batch_id}/tasks/{task_id}/retry")

        assert response.status_code == status.HTTP_409_CONFLICT

    def test_stop_tracking(self, api_client):
        batch_id = open_batch(api_client)
        add_files(api_client, batch_id, NOTES)
        api_client.post(f"/uploads/batches/{batch_id}/run")

        response = api_client.delete("/uploads/progress/doc-1")

        assert response.status_code == status.HTTP_200_OK
        assert api_client.get("/uploads/progress/doc-1").status_code == status.HTTP_404_NOT_FOUND
        assert api_client.delete("/uploads/progress/doc-1").status_code == status.HTTP_404_NOT_FOUND

    def test_clear_finished(self, api_client, backend):
        backend.default_status = backend_status("uploaded", "failed", "Could not extract text")
        batch_id = open_batch(api_client)
        add_files(api_client, batch_id, NOTES)
        api_client.post(f"/uploads/batches/{batch_id}/run")

        wait_for(lambda: api_client.get("/uploads/progress/doc-1").json()["status"] == "failed")
        response = api_client.delete(f"/uploads/batches/{batch_id}/progress")

        assert response.status_code == status.HTTP_200_OK
        assert api_client.get(f"/uploads/batches/{batch_id}/progress").json() == []
