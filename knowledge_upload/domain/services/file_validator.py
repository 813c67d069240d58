"""Pre-transfer file validation"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ..entities.payload import FilePayload

MB = 1024 * 1024


class DocumentType(str, Enum):
    PDF = "pdf"
    DOC = "doc"
    DOCX = "docx"
    XLS = "xls"
    XLSX = "xlsx"
    TXT = "txt"
    CSV = "csv"


SUPPORTED_MIME_TYPES = {
    "application/pdf": DocumentType.PDF,
    "application/msword": DocumentType.DOC,
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": DocumentType.DOCX,
    "application/vnd.ms-excel": DocumentType.XLS,
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": DocumentType.XLSX,
    "text/plain": DocumentType.TXT,
    "text/csv": DocumentType.CSV,
}

SUSPICIOUS_EXTENSIONS = (".exe", ".bat", ".cmd", ".scr", ".pif", ".com", ".jar", ".js", ".vbs", ".ps1")

_RESERVED_CHARACTERS = re.compile(r'[\\/:*?"<>|]')


@dataclass
class ValidationResult:
    """Outcome of validating one file"""
    is_valid: bool
    error: Optional[str] = None
    warning: Optional[str] = None
    file_type: Optional[DocumentType] = None


def format_file_size(size_bytes: int) -> str:
    if size_bytes == 0:
        return "0 Bytes"
    units = ["Bytes", "KB", "MB", "GB"]
    value = float(size_bytes)
    unit = 0
    while value >= 1024 and unit < len(units) - 1:
        value /= 1024
        unit += 1
    return f"{round(value, 2):g} {units[unit]}"


class FileValidator:
    """Validates file type, name and size before a file becomes an upload task."""

    def __init__(self, max_pdf_size_bytes: int = 500 * MB, max_other_size_bytes: int = 25 * MB):
        self.max_pdf_size_bytes = max_pdf_size_bytes
        self.max_other_size_bytes = max_other_size_bytes

    def validate_file_type(self, content_type: str) -> bool:
        """Validate if file type is supported."""
        return content_type in SUPPORTED_MIME_TYPES

    def get_file_type(self, content_type: str) -> DocumentType:
        """Get document type from MIME type."""
        try:
            return SUPPORTED_MIME_TYPES[content_type]
        except KeyError:
            raise ValueError(f"Unsupported file type: {content_type}")

    def validate_filename(self, filename: str) -> Optional[str]:
        """Return an error message for a dangerous filename, or None."""
        if not filename or ".." in filename or _RESERVED_CHARACTERS.search(filename):
            return "Invalid filename. Please use a standard filename without special characters."
        if filename.lower().endswith(SUSPICIOUS_EXTENSIONS):
            return "File type not allowed for security reasons."
        return None

    def validate(self, payload: FilePayload) -> ValidationResult:
        """Validate a selected file."""
        if not self.validate_file_type(payload.content_type):
            return ValidationResult(
                is_valid=False,
                error=(
                    f"Unsupported file type: {payload.content_type}. "
                    "Only PDF, Word, Excel, and text files are allowed."
                )
            )

        filename_error = self.validate_filename(payload.name)
        if filename_error:
            return ValidationResult(is_valid=False, error=filename_error)

        file_type = self.get_file_type(payload.content_type)
        size = payload.size

        if size <= 0:
            return ValidationResult(is_valid=False, error="File is empty.", file_type=file_type)

        if file_type == DocumentType.PDF:
            if size > self.max_pdf_size_bytes:
                return ValidationResult(
                    is_valid=False,
                    error=(
                        f"File size ({format_file_size(size)}) exceeds maximum allowed size "
                        f"({self.max_pdf_size_bytes // MB}MB)"
                    ),
                    file_type=file_type
                )
            if size > 300 * MB:
                return ValidationResult(
                    is_valid=True,
                    warning=(
                        "Very large PDF (>300MB) - processing may take 10-15 minutes. "
                        "Ensure stable internet connection."
                    ),
                    file_type=file_type
                )
            if size > 100 * MB:
                return ValidationResult(
                    is_valid=True,
                    warning="Large PDF (>100MB) - upload and processing may take several minutes.",
                    file_type=file_type
                )
        elif size > self.max_other_size_bytes:
            return ValidationResult(
                is_valid=False,
                error=(
                    f"File size ({format_file_size(size)}) exceeds maximum allowed size "
                    f"({self.max_other_size_bytes // MB}MB for non-PDF files). Please try a smaller file."
                ),
                file_type=file_type
            )

        if size > 10 * MB:
            return ValidationResult(
                is_valid=True,
                warning="Large file (>10MB) - upload may take longer to process",
                file_type=file_type
            )

        return ValidationResult(is_valid=True, file_type=file_type)
