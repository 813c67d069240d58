"""Progress reconciliation against backend document status"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Set

from ...domain.entities.document_progress import DocumentProgress, TIMEOUT_MESSAGE
from ...domain.entities.events import ProgressEvent
from ...domain.entities.status import TrackingStatus
from ...domain.exceptions import ReconciliationError, TrackingTimeoutError
from ...domain.repositories.storage_backend import StorageBackend
from .event_dispatcher import EventDispatcher

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = {"upload_progress", "processing_stage", "status", "error"}


def _current_task() -> Optional[asyncio.Task]:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None


def _coerce_updates(updates: Dict[str, Any]) -> Dict[str, Any]:
    unknown = set(updates) - UPDATABLE_FIELDS
    if unknown:
        raise ValueError(f"Cannot update fields: {', '.join(sorted(unknown))}")

    fields = dict(updates)
    if "status" in fields:
        fields["status"] = TrackingStatus(fields["status"])
        if fields["status"] == TrackingStatus.CANCELLED:
            raise ValueError("Use stop_tracking to cancel tracking")
    return fields


class DocumentProgressRegistry:
    """Tracked documents of one poller"""

    def __init__(self):
        self._records: Dict[str, DocumentProgress] = {}

    def create(self, document_id: str, **fields: Any) -> DocumentProgress:
        record = DocumentProgress(document_id=document_id, **fields)
        self._records[document_id] = record
        return record

    def get(self, document_id: str) -> Optional[DocumentProgress]:
        return self._records.get(document_id)

    def remove(self, document_id: str) -> Optional[DocumentProgress]:
        return self._records.pop(document_id, None)

    def all(self) -> List[DocumentProgress]:
        return list(self._records.values())

    def clear(self) -> None:
        self._records.clear()

    def __contains__(self, document_id: str) -> bool:
        return document_id in self._records

    def __len__(self) -> int:
        return len(self._records)


class ProgressReconciliationPoller:
    """
    Polls backend status for handed-off documents until they finish.

    Each tracked document owns exactly one poll task and one timeout
    handle; both are created by ``start_tracking`` and cleared together.
    Completed documents are dropped after a short grace period, failed and
    timed-out ones stay until ``stop_tracking`` or ``clear_finished``.
    """

    def __init__(
        self,
        backend: StorageBackend,
        dispatcher: Optional[EventDispatcher] = None,
        poll_interval: float = 2.0,
        timeout: float = 300.0,
        completed_grace: float = 3.0,
        registry: Optional[DocumentProgressRegistry] = None
    ):
        self.backend = backend
        self.dispatcher = dispatcher or EventDispatcher()
        self.poll_interval = poll_interval
        self.timeout = timeout
        self.completed_grace = completed_grace
        self.registry = registry or DocumentProgressRegistry()

        self._poll_tasks: Dict[str, asyncio.Task] = {}
        self._timeout_handles: Dict[str, asyncio.TimerHandle] = {}
        self._removal_handles: Dict[str, asyncio.TimerHandle] = {}
        self._in_flight: Set[str] = set()
        self._background: Set[asyncio.Task] = set()

    async def start_tracking(self, document_id: str, initial: Optional[Dict[str, Any]] = None) -> DocumentProgress:
        """
        Start reconciling a document; restarting an id replaces its timers.

        A terminal seed is settled right away and never polled.
        """
        fields = _coerce_updates(initial or {})
        self._halt(document_id)
        self._cancel_removal(document_id)

        record = self.registry.create(document_id, **fields)
        self._settle(record)

        if not record.is_terminal:
            loop = asyncio.get_running_loop()
            self._timeout_handles[document_id] = loop.call_later(self.timeout, self._on_timeout, document_id)
            self._poll_tasks[document_id] = asyncio.create_task(self._poll_loop(document_id))

        logger.info(f"Tracking processing of document {document_id}")
        await self._emit(record)
        return record

    async def stop_tracking(self, document_id: str) -> bool:
        """Stop tracking and forget the document. Safe to call repeatedly."""
        self._halt(document_id)
        self._cancel_removal(document_id)

        record = self.registry.remove(document_id)
        if record is None:
            return False

        if not record.is_terminal:
            record.mark_cancelled()
            logger.info(f"Tracking of document {document_id} cancelled")
            await self._emit(record)
        return True

    async def update_progress(self, document_id: str, **updates: Any) -> Optional[DocumentProgress]:
        """Apply a local update to a tracked document. Cancelling goes through ``stop_tracking``."""
        fields = _coerce_updates(updates)
        record = self.registry.get(document_id)
        if record is None or record.is_terminal:
            return record

        for name, value in fields.items():
            setattr(record, name, value)

        self._settle(record)
        await self._emit(record)
        return record

    async def poll_once(self, document_id: str) -> Optional[DocumentProgress]:
        """Fetch and merge backend status once. Overlapping calls for one id are skipped."""
        record = self.registry.get(document_id)
        if record is None or record.is_terminal or record.status == TrackingStatus.CANCELLED:
            return record

        if document_id in self._in_flight:
            logger.debug(f"Status check for document {document_id} already in flight")
            return record

        self._in_flight.add(document_id)
        try:
            backend_status = await self.backend.get_status(document_id)
        except Exception as e:
            error = ReconciliationError(f"Status check failed for document {document_id}: {e}")
            logger.warning(f"{error}, polling continues")
            return record
        finally:
            self._in_flight.discard(document_id)

        # Tracking may have stopped or timed out while the request was running.
        if self.registry.get(document_id) is not record or record.is_terminal:
            return self.registry.get(document_id)

        if record.apply_backend_status(backend_status):
            self._settle(record)
            await self._emit(record)
        return record

    def get(self, document_id: str) -> Optional[DocumentProgress]:
        return self.registry.get(document_id)

    def documents(self) -> List[DocumentProgress]:
        return self.registry.all()

    def is_tracking(self, document_id: str) -> bool:
        return document_id in self._poll_tasks

    def clear_finished(self) -> int:
        """Drop completed and failed records"""
        finished = [record.document_id for record in self.registry.all() if record.is_terminal]
        for document_id in finished:
            self._halt(document_id)
            self._cancel_removal(document_id)
            self.registry.remove(document_id)
        return len(finished)

    def summary(self) -> Dict[str, int]:
        records = self.registry.all()
        counts = {status.value: 0 for status in TrackingStatus}
        for record in records:
            counts[record.status.value] += 1
        counts["total"] = len(records)
        counts["timed_out"] = sum(1 for record in records if record.timed_out)
        return counts

    async def aclose(self) -> None:
        """Stop every timer and drop all records"""
        tasks = list(self._poll_tasks.values()) + list(self._background)
        for document_id in list(self._poll_tasks) + list(self._timeout_handles):
            self._halt(document_id)
        for document_id in list(self._removal_handles):
            self._cancel_removal(document_id)
        self.registry.clear()

        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _poll_loop(self, document_id: str) -> None:
        while True:
            await asyncio.sleep(self.poll_interval)
            record = await self.poll_once(document_id)
            if record is None or record.is_terminal or record.status == TrackingStatus.CANCELLED:
                return

    def _settle(self, record: DocumentProgress) -> None:
        if record.is_terminal and record.completed_at is None:
            record.completed_at = datetime.utcnow()
        if record.status == TrackingStatus.COMPLETED:
            self._halt(record.document_id)
            loop = asyncio.get_running_loop()
            self._removal_handles[record.document_id] = loop.call_later(
                self.completed_grace, self._remove_completed, record.document_id
            )
            logger.info(f"Document {record.document_id} processing completed")
        elif record.status == TrackingStatus.FAILED:
            self._halt(record.document_id)
            logger.error(f"Document {record.document_id} processing failed: {record.error}")

    def _on_timeout(self, document_id: str) -> None:
        self._timeout_handles.pop(document_id, None)
        record = self.registry.get(document_id)
        if record is None or record.is_terminal:
            return

        error = TrackingTimeoutError(
            f"Document {document_id} not finished within {self.timeout:.0f}s",
            TIMEOUT_MESSAGE
        )
        record.mark_timed_out()
        self._halt(document_id)
        logger.warning(str(error))

        task = asyncio.ensure_future(self._emit(record))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    def _remove_completed(self, document_id: str) -> None:
        self._removal_handles.pop(document_id, None)
        record = self.registry.get(document_id)
        if record is not None and record.status == TrackingStatus.COMPLETED:
            self.registry.remove(document_id)

    def _halt(self, document_id: str) -> None:
        task = self._poll_tasks.pop(document_id, None)
        if task is not None and task is not _current_task():
            task.cancel()

        handle = self._timeout_handles.pop(document_id, None)
        if handle is not None:
            handle.cancel()

    def _cancel_removal(self, document_id: str) -> None:
        handle = self._removal_handles.pop(document_id, None)
        if handle is not None:
            handle.cancel()

    async def _emit(self, record: DocumentProgress) -> None:
        await self.dispatcher.dispatch(ProgressEvent.document(record.document_id, record.snapshot()))
