"""Upload document contracts."""
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional


@dataclass
class TransferMetadata:
    """Metadata sent with every transfer and finalize call."""
    title: str
    file_name: str
    file_type: str
    file_size: int
    category: str = "other"
    description: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    session_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {key: value for key, value in asdict(self).items() if value is not None}


@dataclass
class UploadDocumentResponse:
    """Response data for a finished handoff."""
    document_id: str
    filename: str
    status: str
    chunk_count: int
    processing_time_ms: int
    backend_file_ref: Optional[str] = None
