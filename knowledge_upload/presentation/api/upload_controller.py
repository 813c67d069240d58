"""Upload API controller"""

from fastapi import APIRouter, HTTPException, Depends, status, UploadFile, File
from typing import List
import logging

from shared.config.settings import Settings
from shared.models.base import (
    BaseResponse,
    BatchReportView,
    BatchView,
    ChunkProgressView,
    DocumentProgressView,
    HealthCheck,
    MetadataUpdate,
    UploadTaskView,
)
from ...application.services.batch_sessions import BatchSessionStore
from ...application.services.dependency_injection import get_container
from ...application.use_cases.batch_controller import BatchController, BatchReport
from ...domain.entities.document_progress import DocumentProgress
from ...domain.entities.upload_task import UploadTask
from ...domain.exceptions import (
    BatchNotFoundError,
    InvalidTransitionError,
    TaskNotFoundError,
    UploadEngineError,
)
from ...infrastructure.external.file_payloads import save_upload_file


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/uploads", tags=["uploads"])


async def get_session_store() -> BatchSessionStore:
    """Get batch session store from DI container"""
    container = get_container()
    return await container.resolve(BatchSessionStore)


async def get_app_settings() -> Settings:
    """Get settings from DI container"""
    container = get_container()
    return await container.resolve(Settings)


def _http_error(error: UploadEngineError) -> HTTPException:
    if isinstance(error, (BatchNotFoundError, TaskNotFoundError)):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=error.user_message)
    if isinstance(error, InvalidTransitionError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=error.user_message)
    return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=error.user_message)


def task_view(task: UploadTask) -> UploadTaskView:
    chunk_progress = None
    if task.chunk_progress is not None:
        chunk_progress = ChunkProgressView(
            current_chunk=task.chunk_progress.current_chunk,
            total_chunks=task.chunk_progress.total_chunks,
            chunk_progress=task.chunk_progress.chunk_progress
        )
    return UploadTaskView(
        task_id=task.task_id,
        filename=task.payload.name,
        size_bytes=task.payload.size,
        title=task.title,
        description=task.description,
        tags=task.tags,
        category=task.category.value,
        is_chunked=task.is_chunked,
        chunk_progress=chunk_progress,
        upload_progress=task.upload_progress,
        upload_status=task.upload_status.value,
        status=task.status.value,
        retry_count=task.retry_count,
        can_retry=task.can_retry,
        document_id=task.document_id,
        error=task.error,
        warning=task.warning,
        estimated_time=task.estimated_time
    )


def batch_view(controller: BatchController) -> BatchView:
    return BatchView(
        batch_id=controller.batch_id,
        step=controller.step.value,
        is_running=controller.is_running,
        can_upload=controller.can_upload,
        tasks=[task_view(task) for task in controller.tasks],
        messages=list(controller.messages)
    )


def report_view(batch_id: str, report: BatchReport) -> BatchReportView:
    return BatchReportView(
        batch_id=batch_id,
        success_count=report.success_count,
        failure_count=report.failure_count,
        outcomes=report.outcomes
    )


def progress_view(record: DocumentProgress) -> DocumentProgressView:
    return DocumentProgressView(**record.snapshot())


@router.post("/batches", response_model=BatchView, status_code=status.HTTP_201_CREATED)
async def create_batch(store: BatchSessionStore = Depends(get_session_store)):
    """Open a new upload batch"""
    return batch_view(store.create())


@router.get("/batches/{batch_id}", response_model=BatchView)
async def get_batch(batch_id: str, store: BatchSessionStore = Depends(get_session_store)):
    try:
        return batch_view(store.get(batch_id))
    except UploadEngineError as e:
        raise _http_error(e)


@router.delete("/batches/{batch_id}", response_model=BaseResponse)
async def close_batch(batch_id: str, store: BatchSessionStore = Depends(get_session_store)):
    """Close a batch: stop tracking and drop its tasks"""
    try:
        await store.close(batch_id)
    except UploadEngineError as e:
        raise _http_error(e)
    return BaseResponse(message=f"Batch {batch_id} closed")


@router.post("/batches/{batch_id}/files", response_model=BatchView)
async def add_files(
    batch_id: str,
    files: List[UploadFile] = File(...),
    store: BatchSessionStore = Depends(get_session_store),
    settings: Settings = Depends(get_app_settings)
):
    """
    Add files to a batch.

    Rejected files are reported in the batch messages and never become tasks.
    """
    payloads = []
    accepted = set()
    try:
        controller = store.get(batch_id)
        for upload in files:
            payloads.append(await save_upload_file(upload, settings.upload_spool_dir))
        result = controller.add_files(payloads)
        accepted = {id(task.payload) for task in result.accepted}
    except UploadEngineError as e:
        raise _http_error(e)
    except OSError as e:
        logger.error(f"Could not store uploaded files: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Could not store uploaded files"
        )
    finally:
        # Spooled files only live on as payloads of accepted tasks
        for payload in payloads:
            if id(payload) not in accepted:
                payload.discard()

    return batch_view(controller)


@router.patch("/batches/{batch_id}/tasks/{task_id}", response_model=UploadTaskView)
async def update_task(
    batch_id: str,
    task_id: str,
    update: MetadataUpdate,
    store: BatchSessionStore = Depends(get_session_store)
):
    try:
        controller = store.get(batch_id)
        task = controller.update_metadata(task_id, **update.model_dump(exclude_none=True))
    except UploadEngineError as e:
        raise _http_error(e)
    return task_view(task)


@router.delete("/batches/{batch_id}/tasks/{task_id}", response_model=BatchView)
async def remove_task(batch_id: str, task_id: str, store: BatchSessionStore = Depends(get_session_store)):
    try:
        controller = store.get(batch_id)
        task = controller.remove_task(task_id)
    except UploadEngineError as e:
        raise _http_error(e)

    if hasattr(task.payload, "discard"):
        task.payload.discard()
    return batch_view(controller)


@router.post("/batches/{batch_id}/run", response_model=BatchReportView)
async def run_batch(batch_id: str, store: BatchSessionStore = Depends(get_session_store)):
    """Upload every pending task of the batch, one at a time"""
    try:
        controller = store.get(batch_id)
        if not controller.can_upload:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Nothing to upload, or a title is missing"
            )
        report = await controller.run()
    except UploadEngineError as e:
        raise _http_error(e)
    return report_view(batch_id, report)


@router.post("/batches/{batch_id}/tasks/{task_id}/retry", response_model=BatchReportView)
async def retry_task(batch_id: str, task_id: str, store: BatchSessionStore = Depends(get_session_store)):
    try:
        controller = store.get(batch_id)
        report = await controller.retry(task_id)
    except UploadEngineError as e:
        raise _http_error(e)
    return report_view(batch_id, report)


@router.get("/batches/{batch_id}/progress", response_model=List[DocumentProgressView])
async def list_progress(batch_id: str, store: BatchSessionStore = Depends(get_session_store)):
    try:
        controller = store.get(batch_id)
    except UploadEngineError as e:
        raise _http_error(e)
    return [progress_view(record) for record in controller.poller.documents()]


@router.delete("/batches/{batch_id}/progress", response_model=BaseResponse)
async def clear_finished_progress(batch_id: str, store: BatchSessionStore = Depends(get_session_store)):
    """Dismiss completed and failed documents"""
    try:
        controller = store.get(batch_id)
    except UploadEngineError as e:
        raise _http_error(e)
    cleared = controller.poller.clear_finished()
    return BaseResponse(message=f"Cleared {cleared} finished document(s)")


@router.get("/progress/{document_id}", response_model=DocumentProgressView)
async def get_progress(document_id: str, store: BatchSessionStore = Depends(get_session_store)):
    found = store.find_progress(document_id)
    if found is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Document is not being tracked")
    return progress_view(found[1])


@router.delete("/progress/{document_id}", response_model=BaseResponse)
async def stop_progress(document_id: str, store: BatchSessionStore = Depends(get_session_store)):
    """Stop tracking a document"""
    found = store.find_progress(document_id)
    if found is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Document is not being tracked")
    await found[0].poller.stop_tracking(document_id)
    return BaseResponse(message=f"Stopped tracking document {document_id}")


@router.get("/health", response_model=HealthCheck)
async def health(
    store: BatchSessionStore = Depends(get_session_store),
    settings: Settings = Depends(get_app_settings)
):
    tracked = sum(len(controller.poller.documents()) for controller in store.batches())
    return HealthCheck(
        service_name=settings.service_name,
        status="healthy",
        details={
            "version": settings.service_version,
            "open_batches": len(store),
            "tracked_documents": tracked,
            "progress_mode": settings.progress_mode
        }
    )
