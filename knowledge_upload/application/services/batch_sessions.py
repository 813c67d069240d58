"""Open upload batches"""

import logging
from typing import Dict, List, Optional, Tuple

from shared.config.settings import Settings
from shared.middleware.retry import RetryPolicy

from ...domain.entities.document_progress import DocumentProgress
from ...domain.exceptions import BatchNotFoundError
from ...domain.repositories.storage_backend import StorageBackend
from ...domain.services.chunk_planner import ChunkPlanner
from ...domain.services.file_validator import FileValidator
from ..use_cases.batch_controller import BatchController, TaskSuccessCallback
from ..use_cases.upload_orchestrator import UploadOrchestrator
from .event_dispatcher import EventDispatcher
from .progress_poller import ProgressReconciliationPoller

logger = logging.getLogger(__name__)


class BatchSessionStore:
    """
    Creates and keeps the batch controllers of open upload dialogs.

    Every batch gets its own orchestrator (container cache) and poller
    (progress registry); backend, validator and dispatcher are shared.
    """

    def __init__(
        self,
        backend: StorageBackend,
        settings: Settings,
        dispatcher: Optional[EventDispatcher] = None,
        validator: Optional[FileValidator] = None,
        chunk_planner: Optional[ChunkPlanner] = None
    ):
        self.backend = backend
        self.settings = settings
        self.dispatcher = dispatcher or EventDispatcher()
        self.validator = validator or FileValidator(settings.max_pdf_size_bytes, settings.max_other_size_bytes)
        self.chunk_planner = chunk_planner or ChunkPlanner(settings.chunking_threshold_bytes, settings.chunk_size_bytes)
        self._batches: Dict[str, BatchController] = {}

    def create(self, on_task_success: Optional[TaskSuccessCallback] = None) -> BatchController:
        settings = self.settings
        orchestrator = UploadOrchestrator(
            backend=self.backend,
            user_id=settings.backend_user_id,
            dispatcher=self.dispatcher,
            chunk_planner=self.chunk_planner,
            chunk_retry_policy=RetryPolicy(
                max_attempts=settings.chunk_max_attempts,
                base_delay=settings.chunk_retry_base_delay_seconds,
                max_delay=settings.request_retry_max_delay_seconds,
                name="chunk transfer"
            ),
            progress_mode=settings.progress_mode,
            simulated_step=settings.simulated_progress_step,
            simulated_interval=settings.simulated_progress_interval_seconds
        )
        poller = ProgressReconciliationPoller(
            backend=self.backend,
            dispatcher=self.dispatcher,
            poll_interval=settings.poll_interval_seconds,
            timeout=settings.tracking_timeout_seconds,
            completed_grace=settings.completed_grace_seconds
        )
        controller = BatchController(
            orchestrator=orchestrator,
            poller=poller,
            validator=self.validator,
            chunk_planner=self.chunk_planner,
            max_files=settings.max_files_per_batch,
            max_attempts=settings.max_upload_retries,
            on_task_success=on_task_success
        )
        self._batches[controller.batch_id] = controller
        logger.info(f"Opened upload batch {controller.batch_id}")
        return controller

    def get(self, batch_id: str) -> BatchController:
        try:
            return self._batches[batch_id]
        except KeyError:
            raise BatchNotFoundError(batch_id)

    def batches(self) -> List[BatchController]:
        return list(self._batches.values())

    def find_progress(self, document_id: str) -> Optional[Tuple[BatchController, DocumentProgress]]:
        for controller in self._batches.values():
            record = controller.poller.get(document_id)
            if record is not None:
                return controller, record
        return None

    async def close(self, batch_id: str) -> None:
        controller = self.get(batch_id)
        payloads = [task.payload for task in controller.tasks]
        await controller.aclose()
        del self._batches[batch_id]

        for payload in payloads:
            if hasattr(payload, "discard"):
                payload.discard()
        logger.info(f"Closed upload batch {batch_id}")

    async def cleanup(self) -> None:
        for batch_id in list(self._batches):
            await self.close(batch_id)

    def __len__(self) -> int:
        return len(self._batches)
