from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from datetime import datetime
from enum import Enum


class BaseResponse(BaseModel):
    success: bool = True
    message: Optional[str] = None
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class BackendUploadStatus(str, Enum):
    """Upload acceptance axis reported by the backend"""
    PENDING = "pending"
    UPLOADING = "uploading"
    UPLOADED = "uploaded"
    FAILED = "failed"


class BackendProcessingStatus(str, Enum):
    """Content processing axis reported by the backend"""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class DocumentCategory(str, Enum):
    RESEARCH_PAPERS = "research-papers"
    CLINICAL_GUIDELINES = "clinical-guidelines"
    CASE_STUDIES = "case-studies"
    MEDICAL_IMAGES = "medical-images"
    LAB_RESULTS = "lab-results"
    PATIENT_EDUCATION = "patient-education"
    PROTOCOLS = "protocols"
    REFERENCE_MATERIALS = "reference-materials"
    PERSONAL_NOTES = "personal-notes"
    OTHER = "other"


# Backend wire models

class ContainerInfo(BaseModel):
    container_id: str


class TransferAck(BaseModel):
    accepted: bool
    bytes_received: Optional[int] = None


class FinalizeResult(BaseModel):
    document_id: str
    backend_file_ref: Optional[str] = None


class BackendStatus(BaseModel):
    upload_status: BackendUploadStatus
    processing_status: BackendProcessingStatus
    error_message: Optional[str] = None


# API models

class MetadataUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    tags: Optional[List[str]] = None
    category: Optional[str] = None


class ChunkProgressView(BaseModel):
    current_chunk: int
    total_chunks: int
    chunk_progress: float


class UploadTaskView(BaseModel):
    task_id: str
    filename: str
    size_bytes: int
    title: str
    description: str
    tags: List[str]
    category: str
    is_chunked: bool
    chunk_progress: Optional[ChunkProgressView] = None
    upload_progress: int
    upload_status: str
    status: str
    retry_count: int
    can_retry: bool
    document_id: Optional[str] = None
    error: Optional[str] = None
    warning: Optional[str] = None
    estimated_time: Optional[str] = None


class BatchView(BaseModel):
    batch_id: str
    step: str
    is_running: bool
    can_upload: bool
    tasks: List[UploadTaskView] = Field(default_factory=list)
    messages: List[str] = Field(default_factory=list)


class BatchReportView(BaseModel):
    batch_id: str
    success_count: int
    failure_count: int
    outcomes: Dict[str, str] = Field(default_factory=dict)


class DocumentProgressView(BaseModel):
    document_id: str
    upload_progress: int
    processing_stage: str
    status: str
    started_at: datetime
    completed_at: Optional[datetime] = None
    error: Optional[str] = None
    timed_out: bool = False


class HealthCheck(BaseModel):
    service_name: str
    status: str
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    details: Dict[str, Any] = Field(default_factory=dict)
