"""Batch upload use case"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional
from uuid import uuid4

from shared.document_contracts import UploadDocumentResponse

from ...domain.entities.payload import FilePayload
from ...domain.entities.status import TaskStatus
from ...domain.entities.upload_task import MAX_ATTEMPTS, UploadTask
from ...domain.exceptions import InvalidTransitionError, TaskNotFoundError, UploadEngineError
from ...domain.services.chunk_planner import ChunkPlanner
from ...domain.services.file_validator import FileValidator
from ..services.progress_poller import ProgressReconciliationPoller
from .upload_orchestrator import UploadOrchestrator

logger = logging.getLogger(__name__)

TaskSuccessCallback = Callable[[UploadTask, UploadDocumentResponse], Any]


class BatchStep(str, Enum):
    SELECT = "select"
    CONFIGURE = "configure"
    UPLOAD = "upload"
    COMPLETE = "complete"


@dataclass
class BatchReport:
    """Outcome of one run over the pending tasks"""
    success_count: int = 0
    failure_count: int = 0
    outcomes: Dict[str, str] = field(default_factory=dict)
    responses: Dict[str, UploadDocumentResponse] = field(default_factory=dict)
    errors: Dict[str, str] = field(default_factory=dict)

    def record_success(self, task: UploadTask, response: UploadDocumentResponse) -> None:
        self.success_count += 1
        self.outcomes[task.task_id] = task.status.value
        self.responses[task.task_id] = response

    def record_failure(self, task: UploadTask, message: str) -> None:
        self.failure_count += 1
        self.outcomes[task.task_id] = task.status.value
        self.errors[task.task_id] = message


@dataclass
class AddFilesResult:
    accepted: List[UploadTask] = field(default_factory=list)
    rejected: List[str] = field(default_factory=list)


class BatchController:
    """
    Owns the upload tasks of one batch and runs them one at a time.

    Tasks are uploaded strictly in submission order; a failing task never
    stops the rest of the queue. Successful documents are handed to the
    poller for processing reconciliation.
    """

    def __init__(
        self,
        orchestrator: UploadOrchestrator,
        poller: ProgressReconciliationPoller,
        validator: Optional[FileValidator] = None,
        chunk_planner: Optional[ChunkPlanner] = None,
        max_files: int = 10,
        max_attempts: int = MAX_ATTEMPTS,
        on_task_success: Optional[TaskSuccessCallback] = None,
        batch_id: Optional[str] = None
    ):
        self.orchestrator = orchestrator
        self.poller = poller
        self.validator = validator or FileValidator()
        self.chunk_planner = chunk_planner or orchestrator.chunk_planner
        self.max_files = max_files
        self.max_attempts = max_attempts
        self.on_task_success = on_task_success
        self.batch_id = batch_id or uuid4().hex

        self.step = BatchStep.SELECT
        self.messages: List[str] = []
        self.is_running = False
        self._tasks: List[UploadTask] = []

    @property
    def tasks(self) -> List[UploadTask]:
        return list(self._tasks)

    @property
    def can_upload(self) -> bool:
        return (
            not self.is_running
            and any(task.status == TaskStatus.PENDING for task in self._tasks)
            and all(task.title.strip() for task in self._tasks)
        )

    @property
    def success_count(self) -> int:
        return sum(1 for task in self._tasks if task.status == TaskStatus.SUCCESS)

    @property
    def failure_count(self) -> int:
        return sum(1 for task in self._tasks if task.status == TaskStatus.ERROR)

    def get_task(self, task_id: str) -> UploadTask:
        for task in self._tasks:
            if task.task_id == task_id:
                return task
        raise TaskNotFoundError(task_id)

    def add_files(self, payloads: Iterable[FilePayload]) -> AddFilesResult:
        """Validate files; accepted ones become pending tasks"""
        self._ensure_idle("add files")
        result = AddFilesResult()

        for payload in payloads:
            if len(self._tasks) >= self.max_files:
                result.rejected.append(f"{payload.name}: Maximum {self.max_files} files per upload")
                continue

            validation = self.validator.validate(payload)
            if not validation.is_valid:
                logger.warning(f"Rejected {payload.name}: {validation.error}")
                result.rejected.append(f"{payload.name}: {validation.error}")
                continue

            task = UploadTask.create(
                payload,
                self.chunk_planner,
                warning=validation.warning,
                max_attempts=self.max_attempts
            )
            self._tasks.append(task)
            result.accepted.append(task)

        self.messages.extend(result.rejected)
        if result.accepted and self.step == BatchStep.SELECT:
            self.step = BatchStep.CONFIGURE
        return result

    def remove_task(self, task_id: str) -> UploadTask:
        task = self.get_task(task_id)
        if task.status == TaskStatus.UPLOADING:
            raise InvalidTransitionError(f"Task {task_id} is uploading and cannot be removed")

        self._tasks.remove(task)
        if not self._tasks:
            self.step = BatchStep.SELECT
            self.messages.clear()
        return task

    def update_metadata(self, task_id: str, **fields: Any) -> UploadTask:
        task = self.get_task(task_id)
        task.update_metadata(**fields)
        return task

    async def run(self) -> BatchReport:
        """Upload pending tasks sequentially and report the outcome"""
        self._ensure_idle("start upload")
        pending = [task for task in self._tasks if task.status == TaskStatus.PENDING]
        report = BatchReport()

        self.is_running = True
        self.step = BatchStep.UPLOAD
        logger.info(f"Batch {self.batch_id}: uploading {len(pending)} file(s)")
        try:
            for task in pending:
                await self._upload_one(task, report)
        finally:
            self.is_running = False
            self._update_step()

        logger.info(
            f"Batch {self.batch_id}: {report.success_count} succeeded, {report.failure_count} failed"
        )
        return report

    async def retry(self, task_id: str) -> BatchReport:
        """Start the next attempt of a failed task"""
        self._ensure_idle("retry")
        task = self.get_task(task_id)
        task.reset_for_retry()
        logger.info(f"Retrying {task.payload.name} (attempt {task.attempt + 1} of {task.max_attempts})")

        report = BatchReport()
        self.is_running = True
        self.step = BatchStep.UPLOAD
        try:
            await self._upload_one(task, report)
        finally:
            self.is_running = False
            self._update_step()
        return report

    async def aclose(self) -> None:
        """Stop tracking and drop every task of the batch"""
        await self.poller.aclose()
        self._tasks.clear()
        self.messages.clear()
        self.step = BatchStep.SELECT
        self.orchestrator.reset_container()

    async def _upload_one(self, task: UploadTask, report: BatchReport) -> None:
        try:
            response = await self.orchestrator.upload(task)
        except UploadEngineError as e:
            report.record_failure(task, e.user_message)
            return

        report.record_success(task, response)
        await self.poller.start_tracking(response.document_id)

        if self.on_task_success is not None:
            try:
                result = self.on_task_success(task, response)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                logger.warning(f"Success callback failed for {task.payload.name}: {e}")

    def _update_step(self) -> None:
        if not self._tasks:
            self.step = BatchStep.SELECT
        elif all(task.is_terminal for task in self._tasks):
            self.step = BatchStep.COMPLETE
        else:
            self.step = BatchStep.CONFIGURE

    def _ensure_idle(self, action: str) -> None:
        if self.is_running:
            raise InvalidTransitionError(f"Cannot {action} while batch {self.batch_id} is uploading")
