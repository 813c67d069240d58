"""Status enums shared by upload tasks and tracked documents"""

from enum import Enum


class TaskStatus(str, Enum):
    """Coarse task state seen by the batch controller"""
    PENDING = "pending"
    UPLOADING = "uploading"
    SUCCESS = "success"
    ERROR = "error"


class UploadPhase(str, Enum):
    """Fine-grained phase of an upload attempt"""
    PREPARING = "preparing"
    CHUNKING = "chunking"
    UPLOADING = "uploading"
    REASSEMBLING = "reassembling"
    PROCESSING = "processing"
    COMPLETE = "complete"
    ERROR = "error"


# Forward order of phases within one attempt; ERROR sits outside it.
PHASE_ORDER = {
    UploadPhase.PREPARING: 0,
    UploadPhase.CHUNKING: 1,
    UploadPhase.UPLOADING: 2,
    UploadPhase.REASSEMBLING: 3,
    UploadPhase.PROCESSING: 4,
    UploadPhase.COMPLETE: 5,
}


class TrackingStatus(str, Enum):
    """Unified processing status of a tracked document"""
    UPLOADING = "uploading"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (TrackingStatus.COMPLETED, TrackingStatus.FAILED)
