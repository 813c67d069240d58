"""Upload orchestration use case"""

import asyncio
import logging
import time
from typing import Optional
from uuid import uuid4

from shared.document_contracts import TransferMetadata, UploadDocumentResponse
from shared.middleware.retry import RetryPolicy

from ...domain.entities.events import ProgressEvent
from ...domain.entities.status import UploadPhase
from ...domain.entities.upload_task import UploadTask
from ...domain.exceptions import (
    ContainerError,
    FinalizeError,
    TransferError,
    UploadEngineError,
    wrap_exception,
)
from ...domain.repositories.storage_backend import StorageBackend
from ...domain.services.chunk_planner import ChunkPlanner
from ..services.event_dispatcher import EventDispatcher

logger = logging.getLogger(__name__)

PREPARE_PROGRESS = 5
CHUNKING_PROGRESS = 10
TRANSFER_CEILING = 85
PROCESSING_PROGRESS = 90

PROGRESS_MODES = ("real", "simulated")


def chunk_progress(chunk_index: int, total_chunks: int) -> int:
    """Overall progress after chunk ``chunk_index`` (0-based) was accepted"""
    return min(CHUNKING_PROGRESS + round((chunk_index + 1) / total_chunks * 75), TRANSFER_CEILING)


def bytes_progress(sent: int, total: int) -> int:
    """Map bytes sent onto the 5-85 transfer window"""
    if total <= 0:
        return TRANSFER_CEILING
    return min(PREPARE_PROGRESS + int(sent / total * (TRANSFER_CEILING - PREPARE_PROGRESS)), TRANSFER_CEILING)


class UploadOrchestrator:
    """
    Runs one upload attempt: prepare, transfer, finalize.

    Progress is applied to the task as events and every event is passed
    on to the dispatcher. The destination container is resolved once and
    reused by every task this orchestrator uploads.
    """

    def __init__(
        self,
        backend: StorageBackend,
        user_id: str,
        dispatcher: Optional[EventDispatcher] = None,
        chunk_planner: Optional[ChunkPlanner] = None,
        chunk_retry_policy: Optional[RetryPolicy] = None,
        progress_mode: str = "real",
        simulated_step: int = 10,
        simulated_interval: float = 0.8
    ):
        if progress_mode not in PROGRESS_MODES:
            raise ValueError(f"Unknown progress mode: {progress_mode}")

        self.backend = backend
        self.user_id = user_id
        self.dispatcher = dispatcher or EventDispatcher()
        self.chunk_planner = chunk_planner or ChunkPlanner()
        # base_delay 4s gives 4s, 8s between three chunk attempts
        self.chunk_retry_policy = chunk_retry_policy or RetryPolicy(
            max_attempts=3,
            base_delay=4.0,
            max_delay=60.0,
            name="chunk transfer"
        )
        self.progress_mode = progress_mode
        self.simulated_step = simulated_step
        self.simulated_interval = simulated_interval
        self._container_id: Optional[str] = None

    async def upload(self, task: UploadTask) -> UploadDocumentResponse:
        """Run a full attempt for a pending task.

        Failures are recorded on the task before the wrapped error is raised.
        """
        task.begin_attempt()
        started = time.perf_counter()
        session_id = uuid4().hex if task.is_chunked else None
        logger.info(
            f"Uploading {task.payload.name} ({task.payload.size} bytes, "
            f"{'chunked into ' + str(task.total_chunks) if task.is_chunked else 'single transfer'}), "
            f"attempt {task.attempt}"
        )

        try:
            container_id = await self._prepare(task)
            metadata = task.to_metadata(session_id)

            if task.is_chunked:
                await self._transfer_chunks(task, container_id, metadata)
            else:
                await self._transfer_whole(task, container_id, metadata)

            result = await self._finalize(task, container_id, metadata)

        except asyncio.CancelledError:
            task.mark_failed("Upload cancelled")
            raise

        except Exception as e:
            error = wrap_exception(e, f"upload of {task.payload.name}")
            task.mark_failed(error.user_message)
            logger.error(f"Upload of {task.payload.name} failed on attempt {task.attempt}: {error}")
            await self._emit(task, ProgressEvent.overall(task.task_id, 0, UploadPhase.ERROR))
            if error is e:
                raise
            raise error from e

        task.mark_success(result.document_id, result.backend_file_ref)
        await self._emit(task, ProgressEvent.overall(task.task_id, 100, UploadPhase.COMPLETE))

        processing_time_ms = int((time.perf_counter() - started) * 1000)
        logger.info(f"Uploaded {task.payload.name} as document {result.document_id} in {processing_time_ms}ms")

        return UploadDocumentResponse(
            document_id=result.document_id,
            filename=task.payload.name,
            status=task.status.value,
            chunk_count=task.total_chunks,
            processing_time_ms=processing_time_ms,
            backend_file_ref=result.backend_file_ref
        )

    async def ensure_container(self) -> str:
        if self._container_id is None:
            info = await self.backend.ensure_container(self.user_id)
            self._container_id = info.container_id
            logger.debug(f"Using storage container {self._container_id}")
        return self._container_id

    def reset_container(self) -> None:
        self._container_id = None

    async def _prepare(self, task: UploadTask) -> str:
        await self._emit(task, ProgressEvent.phase(task.task_id, UploadPhase.PREPARING, PREPARE_PROGRESS))
        try:
            return await self.ensure_container()
        except Exception as e:
            raise ContainerError(
                f"Could not resolve storage container: {e}",
                _user_message(e, "Could not prepare document storage. Please try again.")
            ) from e

    async def _transfer_chunks(self, task: UploadTask, container_id: str, metadata: TransferMetadata) -> None:
        await self._emit(task, ProgressEvent.phase(task.task_id, UploadPhase.CHUNKING, CHUNKING_PROGRESS))

        total_chunks = task.total_chunks
        uploaded = 0
        try:
            for chunk in self.chunk_planner.ranges(task.payload.size):
                data = await task.payload.read(chunk.offset, chunk.length)
                await self.chunk_retry_policy.execute_with_retry(
                    self._send_chunk, container_id, chunk.index, total_chunks, data, metadata
                )
                uploaded += 1
                await self._emit(
                    task,
                    ProgressEvent.chunk(task.task_id, chunk.index, total_chunks, chunk_progress(chunk.index, total_chunks))
                )
        except Exception as e:
            if uploaded:
                await self._discard_chunks(container_id, metadata.session_id)
            raise TransferError(
                f"Chunk {uploaded + 1}/{total_chunks} of {task.payload.name} failed: {e}",
                _user_message(e, f"Failed to upload chunk {uploaded + 1} of {total_chunks}. Please try again.")
            ) from e

    async def _send_chunk(
        self,
        container_id: str,
        chunk_index: int,
        total_chunks: int,
        data: bytes,
        metadata: TransferMetadata
    ) -> None:
        ack = await self.backend.transfer_chunk(container_id, chunk_index, total_chunks, data, metadata)
        if not ack.accepted:
            raise TransferError(f"Chunk {chunk_index + 1}/{total_chunks} was not accepted")

    async def _discard_chunks(self, container_id: str, session_id: Optional[str]) -> None:
        try:
            await self.backend.discard_chunks(container_id, session_id)
            logger.info(f"Discarded uploaded chunks of session {session_id}")
        except Exception as e:
            logger.warning(f"Failed to clean up chunks of session {session_id}: {e}")

    async def _transfer_whole(self, task: UploadTask, container_id: str, metadata: TransferMetadata) -> None:
        await self._emit(task, ProgressEvent.phase(task.task_id, UploadPhase.UPLOADING, PREPARE_PROGRESS))

        reported = asyncio.Event()

        async def on_bytes_sent(sent: int, total: int) -> None:
            reported.set()
            await self._emit(
                task,
                ProgressEvent.overall(task.task_id, bytes_progress(sent, total), UploadPhase.UPLOADING)
            )

        # Simulated progress runs until the transport reports real bytes.
        ticker = asyncio.create_task(self._simulate_progress(task, reported))
        try:
            ack = await self.backend.transfer_whole(
                container_id,
                task.payload,
                metadata,
                on_bytes_sent=on_bytes_sent if self.progress_mode == "real" else None
            )
        finally:
            ticker.cancel()
            await asyncio.gather(ticker, return_exceptions=True)

        if not ack.accepted:
            raise TransferError(
                f"Transfer of {task.payload.name} was not accepted",
                "The file was not accepted by storage. Please try again."
            )

    async def _simulate_progress(self, task: UploadTask, reported: asyncio.Event) -> None:
        while task.upload_progress < TRANSFER_CEILING:
            await asyncio.sleep(self.simulated_interval)
            if reported.is_set():
                return
            progress = min(task.upload_progress + self.simulated_step, TRANSFER_CEILING)
            await self._emit(task, ProgressEvent.overall(task.task_id, progress, UploadPhase.UPLOADING))

    async def _finalize(self, task: UploadTask, container_id: str, metadata: TransferMetadata):
        if task.is_chunked:
            await self._emit(task, ProgressEvent.phase(task.task_id, UploadPhase.REASSEMBLING, TRANSFER_CEILING))
        await self._emit(task, ProgressEvent.phase(task.task_id, UploadPhase.PROCESSING, PROCESSING_PROGRESS))

        try:
            result = await self.backend.finalize(container_id, metadata)
        except Exception as e:
            raise FinalizeError(
                f"Finalize of {task.payload.name} failed: {e}",
                _user_message(e, "Upload could not be completed. Please try again.")
            ) from e

        if not result.document_id:
            raise FinalizeError(f"Finalize of {task.payload.name} returned no document id")
        return result

    async def _emit(self, task: UploadTask, event: ProgressEvent) -> None:
        task.apply_progress(event)
        await self.dispatcher.dispatch(event)


def _user_message(error: Exception, default: str) -> str:
    if isinstance(error, UploadEngineError) and error.user_message != str(error):
        return error.user_message
    return default
