"""Tracked document processing progress"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from shared.models.base import BackendProcessingStatus, BackendStatus, BackendUploadStatus

from .status import TrackingStatus

TIMEOUT_MESSAGE = "Processing timed out after 5 minutes"

STAGE_UPLOADING = "Uploading to storage"
STAGE_PROCESSING = "Processing document"
STAGE_COMPLETED = "Processing complete"
STAGE_FAILED = "Processing failed"
STAGE_QUEUED = "Queued for processing"
STAGE_CANCELLED = "Tracking cancelled"


def map_backend_status(status: BackendStatus) -> Tuple[TrackingStatus, str]:
    """
    Merge the backend upload and processing axes into one status.

    Precedence: upload still running, then processing running, then
    processing completed, then failure on either axis. Uploaded with
    processing not yet started is reported as queued processing.
    """
    if status.upload_status in (BackendUploadStatus.PENDING, BackendUploadStatus.UPLOADING):
        return TrackingStatus.UPLOADING, STAGE_UPLOADING
    if status.processing_status == BackendProcessingStatus.PROCESSING:
        return TrackingStatus.PROCESSING, STAGE_PROCESSING
    if status.processing_status == BackendProcessingStatus.COMPLETED:
        return TrackingStatus.COMPLETED, STAGE_COMPLETED
    if (
        status.upload_status == BackendUploadStatus.FAILED
        or status.processing_status == BackendProcessingStatus.FAILED
    ):
        return TrackingStatus.FAILED, STAGE_FAILED
    return TrackingStatus.PROCESSING, STAGE_QUEUED


@dataclass
class DocumentProgress:
    """Local view of a document's backend processing"""
    document_id: str
    upload_progress: int = 100
    processing_stage: str = STAGE_QUEUED
    status: TrackingStatus = TrackingStatus.PROCESSING
    started_at: datetime = field(default_factory=datetime.utcnow)
    completed_at: Optional[datetime] = None
    error: Optional[str] = None
    timed_out: bool = False

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def apply_backend_status(self, backend_status: BackendStatus) -> bool:
        """Merge a fetched status. Returns True when anything changed."""
        status, stage = map_backend_status(backend_status)
        changed = (status, stage) != (self.status, self.processing_stage)

        self.status = status
        self.processing_stage = stage
        if status == TrackingStatus.FAILED:
            self.error = backend_status.error_message or STAGE_FAILED
            changed = True
        if status.is_terminal and self.completed_at is None:
            self.completed_at = datetime.utcnow()
        return changed

    def mark_timed_out(self) -> None:
        self.status = TrackingStatus.FAILED
        self.processing_stage = STAGE_FAILED
        self.error = TIMEOUT_MESSAGE
        self.timed_out = True
        self.completed_at = datetime.utcnow()

    def mark_cancelled(self) -> None:
        self.status = TrackingStatus.CANCELLED
        self.processing_stage = STAGE_CANCELLED
        self.completed_at = datetime.utcnow()

    def snapshot(self) -> Dict[str, Any]:
        return {
            "document_id": self.document_id,
            "upload_progress": self.upload_progress,
            "processing_stage": self.processing_stage,
            "status": self.status.value,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "error": self.error,
            "timed_out": self.timed_out,
        }
