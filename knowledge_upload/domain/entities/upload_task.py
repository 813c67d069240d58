"""Upload task domain entity"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, List, Optional
from uuid import uuid4

from shared.document_contracts import TransferMetadata
from shared.models.base import DocumentCategory

from .events import ProgressEvent, ProgressEventType
from .payload import FilePayload
from .status import PHASE_ORDER, TaskStatus, UploadPhase
from ..exceptions import InvalidTransitionError, RetryLimitExceededError
from ..services.chunk_planner import ChunkPlanner
from ..services.metadata_sanitizer import (
    sanitize_category,
    sanitize_description,
    sanitize_tags,
    sanitize_title,
    title_from_filename,
)

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 3
CHUNKED_ESTIMATE = "3-5 minutes"
SINGLE_ESTIMATE = "30-60 seconds"


@dataclass
class ChunkProgress:
    """Chunk-level progress of a chunked task"""
    current_chunk: int
    total_chunks: int
    chunk_progress: int = 0


@dataclass
class UploadTask:
    """One selected file moving through the upload state machine.

    ``status`` is the coarse state (pending, uploading, success, error);
    ``upload_status`` is the phase inside the current attempt. Both and
    ``upload_progress`` only move forward within an attempt.
    """
    payload: FilePayload
    is_chunked: bool
    total_chunks: int = 1
    task_id: str = field(default_factory=lambda: uuid4().hex)
    title: str = ""
    description: str = ""
    tags: List[str] = field(default_factory=list)
    category: DocumentCategory = DocumentCategory.OTHER
    chunk_progress: Optional[ChunkProgress] = None
    upload_progress: int = 0
    upload_status: UploadPhase = UploadPhase.PREPARING
    status: TaskStatus = TaskStatus.PENDING
    retry_count: int = 0
    max_attempts: int = MAX_ATTEMPTS
    attempt: int = 0
    document_id: Optional[str] = None
    backend_file_ref: Optional[str] = None
    error: Optional[str] = None
    warning: Optional[str] = None
    estimated_time: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.utcnow)

    def __post_init__(self):
        if not self.is_chunked:
            self.total_chunks = 1
        self.title = sanitize_title(self.title) or title_from_filename(self.payload.name)
        self.description = sanitize_description(self.description)
        self.tags = sanitize_tags(self.tags)
        self.category = sanitize_category(self.category)
        self._reset_chunk_progress()

    def __setattr__(self, name, value):
        if name == "is_chunked" and "is_chunked" in self.__dict__:
            raise AttributeError("is_chunked is fixed when the task is created")
        super().__setattr__(name, value)

    @classmethod
    def create(
        cls,
        payload: FilePayload,
        planner: ChunkPlanner,
        warning: Optional[str] = None,
        max_attempts: int = MAX_ATTEMPTS
    ) -> "UploadTask":
        """Create a pending task; the planner decides chunking once."""
        chunk_plan = planner.plan(payload.size)
        return cls(
            payload=payload,
            is_chunked=chunk_plan.is_chunked,
            total_chunks=chunk_plan.total_chunks,
            warning=warning,
            max_attempts=max_attempts
        )

    @property
    def can_retry(self) -> bool:
        return self.retry_count < self.max_attempts

    @property
    def is_terminal(self) -> bool:
        return self.status in (TaskStatus.SUCCESS, TaskStatus.ERROR)

    def begin_attempt(self) -> None:
        """pending -> uploading"""
        if self.status != TaskStatus.PENDING:
            raise InvalidTransitionError(f"Cannot start upload of task {self.task_id} in status {self.status.value}")

        self.attempt += 1
        self.status = TaskStatus.UPLOADING
        self.upload_status = UploadPhase.PREPARING
        self.upload_progress = 0
        self.error = None
        self.estimated_time = CHUNKED_ESTIMATE if self.is_chunked else SINGLE_ESTIMATE
        self._reset_chunk_progress()

    def apply_progress(self, event: ProgressEvent) -> bool:
        """
        Apply an orchestrator progress event.

        Returns False when the event is ignored: wrong task, task not
        uploading, terminal phases (set only by mark_success/mark_failed)
        or any backwards move of phase or progress.
        """
        if event.task_id != self.task_id or self.status != TaskStatus.UPLOADING:
            return False

        phase = event.status or self.upload_status
        progress = event.overall_progress
        if progress is None:
            progress = self.upload_progress

        if phase not in PHASE_ORDER or phase == UploadPhase.COMPLETE:
            logger.debug(f"Task {self.task_id}: ignoring {phase} outside of mark_success/mark_failed")
            return False

        if PHASE_ORDER[phase] < PHASE_ORDER[self.upload_status] or progress < self.upload_progress:
            logger.debug(
                f"Task {self.task_id}: ignoring backwards event "
                f"{self.upload_status.value}/{self.upload_progress} -> {phase.value}/{progress}"
            )
            return False

        self.upload_status = phase
        self.upload_progress = min(int(progress), 100)

        if event.type == ProgressEventType.CHUNK and self.chunk_progress is not None:
            current = event.payload["current_chunk"]
            total = event.payload["total_chunks"]
            self.chunk_progress = ChunkProgress(
                current_chunk=current,
                total_chunks=total,
                chunk_progress=round(current / total * 100)
            )
        return True

    def mark_success(self, document_id: str, backend_file_ref: Optional[str] = None) -> None:
        if self.status != TaskStatus.UPLOADING:
            raise InvalidTransitionError(f"Task {self.task_id} is not uploading")
        if not document_id:
            raise InvalidTransitionError(f"Task {self.task_id}: handoff returned no document id")

        self.document_id = document_id
        self.backend_file_ref = backend_file_ref
        self.upload_progress = 100
        self.upload_status = UploadPhase.COMPLETE
        self.status = TaskStatus.SUCCESS
        self.error = None

    def mark_failed(self, message: str) -> None:
        if self.is_terminal:
            raise InvalidTransitionError(f"Task {self.task_id} already finished with {self.status.value}")

        self.status = TaskStatus.ERROR
        self.upload_status = UploadPhase.ERROR
        self.upload_progress = 0
        self.error = message
        self.retry_count += 1

    def reset_for_retry(self) -> None:
        """error -> pending, starting the next attempt from scratch"""
        if self.status != TaskStatus.ERROR:
            raise InvalidTransitionError(f"Only failed tasks can be retried, task {self.task_id} is {self.status.value}")
        if not self.can_retry:
            raise RetryLimitExceededError(
                f"Task {self.task_id} used all {self.max_attempts} attempts",
                "Maximum retry attempts reached."
            )

        self.status = TaskStatus.PENDING
        self.upload_status = UploadPhase.PREPARING
        self.upload_progress = 0
        self.error = None
        self.document_id = None
        self.backend_file_ref = None
        self._reset_chunk_progress()

    def update_metadata(
        self,
        title: Optional[str] = None,
        description: Optional[str] = None,
        tags: Optional[Iterable[str]] = None,
        category: Optional[str] = None
    ) -> None:
        if self.status == TaskStatus.UPLOADING:
            raise InvalidTransitionError(f"Task {self.task_id} metadata cannot change while uploading")

        if title is not None:
            self.title = sanitize_title(title)
        if description is not None:
            self.description = sanitize_description(description)
        if tags is not None:
            self.tags = sanitize_tags(tags)
        if category is not None:
            self.category = sanitize_category(category)

    def to_metadata(self, session_id: Optional[str] = None) -> TransferMetadata:
        return TransferMetadata(
            title=self.title,
            file_name=self.payload.name,
            file_type=self.payload.content_type,
            file_size=self.payload.size,
            category=self.category.value,
            description=self.description or None,
            tags=list(self.tags),
            session_id=session_id
        )

    def _reset_chunk_progress(self) -> None:
        if self.is_chunked:
            self.chunk_progress = ChunkProgress(current_chunk=0, total_chunks=self.total_chunks)
        else:
            self.chunk_progress = None
