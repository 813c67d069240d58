"""Upload engine errors"""

from typing import Optional

import httpx


class UploadEngineError(Exception):
    """Base error for the upload engine"""

    def __init__(self, message: str, user_message: Optional[str] = None):
        super().__init__(message)
        self.user_message = user_message or message


class UploadError(UploadEngineError):
    """Failure in prepare, transfer or finalize"""
    pass


class ContainerError(UploadError):
    """Destination container could not be resolved"""
    pass


class TransferError(UploadError):
    """Chunk or whole-file transfer was not accepted"""
    pass


class FinalizeError(UploadError):
    """Backend rejected the handoff confirmation"""
    pass


class BackendError(UploadEngineError):
    """Backend returned an error response"""

    def __init__(self, message: str, status_code: Optional[int] = None, user_message: Optional[str] = None):
        super().__init__(message, user_message)
        self.status_code = status_code


class RateLimitError(BackendError):
    """Backend asked us to slow down"""

    def __init__(self, message: str, retry_after: Optional[float] = None):
        super().__init__(
            message,
            status_code=429,
            user_message="Rate limit exceeded. Please wait a few minutes before trying again."
        )
        self.retry_after = retry_after


class ReconciliationError(UploadEngineError):
    """Status fetch failed during polling"""
    pass


class TrackingTimeoutError(UploadEngineError):
    """No terminal processing state within the tracking window"""
    pass


class InvalidTransitionError(UploadEngineError):
    """State machine transition not allowed from the current state"""
    pass


class RetryLimitExceededError(InvalidTransitionError):
    """Task already used all of its attempts"""
    pass


class TaskNotFoundError(UploadEngineError):
    """No task with the given id in the batch"""

    def __init__(self, task_id: str):
        super().__init__(f"Task {task_id} not found", "Upload not found.")
        self.task_id = task_id


class BatchNotFoundError(UploadEngineError):
    """No open batch with the given id"""

    def __init__(self, batch_id: str):
        super().__init__(f"Batch {batch_id} not found", "Upload session not found.")
        self.batch_id = batch_id


def wrap_exception(error: Exception, context: str = "upload") -> UploadEngineError:
    """
    Map foreign exceptions onto the upload error hierarchy.
    The user_message of the result is safe to show in the UI.
    """
    if isinstance(error, UploadEngineError):
        return error

    if isinstance(error, httpx.TimeoutException):
        return UploadError(
            f"{context} timed out: {error}",
            "Upload timed out. Please try again with a smaller file or check your connection."
        )

    if isinstance(error, (httpx.TransportError, ConnectionError)):
        return UploadError(
            f"{context} network error: {error}",
            "Network error during upload. Please check your connection and try again."
        )

    if isinstance(error, TimeoutError):
        return UploadError(f"{context} timed out: {error}", "Upload timed out. Please try again.")

    if isinstance(error, OSError):
        return UploadError(f"{context} could not read file: {error}", "The file could not be read.")

    return UploadError(f"{context} failed: {error}", "Upload failed. Please try again.")
