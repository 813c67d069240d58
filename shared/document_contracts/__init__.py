"""Shared document contracts for backend communication."""
from .upload import TransferMetadata, UploadDocumentResponse

__all__ = [
    'TransferMetadata',
    'UploadDocumentResponse',
]
