"""Progress events"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from .status import UploadPhase


class ProgressEventType(str, Enum):
    CHUNK = "chunk"
    OVERALL = "overall"
    PHASE = "phase"
    DOCUMENT = "document"


@dataclass(frozen=True)
class ProgressEvent:
    """Single progress notification.

    Task events carry ``task_id`` and are applied to the owning
    ``UploadTask``; document events carry ``document_id`` and describe a
    ``DocumentProgress`` change.
    """
    type: ProgressEventType
    task_id: Optional[str] = None
    document_id: Optional[str] = None
    payload: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=datetime.utcnow)

    @classmethod
    def chunk(
        cls,
        task_id: str,
        chunk_index: int,
        total_chunks: int,
        overall_progress: int,
        status: UploadPhase = UploadPhase.UPLOADING
    ) -> "ProgressEvent":
        return cls(
            type=ProgressEventType.CHUNK,
            task_id=task_id,
            payload={
                "chunk_index": chunk_index,
                "current_chunk": chunk_index + 1,
                "total_chunks": total_chunks,
                "overall_progress": overall_progress,
                "status": status,
            }
        )

    @classmethod
    def overall(cls, task_id: str, overall_progress: int, status: UploadPhase) -> "ProgressEvent":
        return cls(
            type=ProgressEventType.OVERALL,
            task_id=task_id,
            payload={"overall_progress": overall_progress, "status": status}
        )

    @classmethod
    def phase(cls, task_id: str, status: UploadPhase, overall_progress: Optional[int] = None) -> "ProgressEvent":
        payload = {"status": status}
        if overall_progress is not None:
            payload["overall_progress"] = overall_progress
        return cls(type=ProgressEventType.PHASE, task_id=task_id, payload=payload)

    @classmethod
    def document(cls, document_id: str, snapshot: Dict[str, Any]) -> "ProgressEvent":
        return cls(type=ProgressEventType.DOCUMENT, document_id=document_id, payload=snapshot)

    @property
    def overall_progress(self) -> Optional[int]:
        return self.payload.get("overall_progress")

    @property
    def status(self) -> Optional[UploadPhase]:
        return self.payload.get("status")
