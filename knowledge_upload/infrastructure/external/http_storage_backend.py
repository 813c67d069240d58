"""HTTP storage backend client"""

import inspect
import json
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Callable, Dict, Optional

import httpx

from shared.document_contracts import TransferMetadata
from shared.middleware.retry import RetryPolicy
from shared.models.base import BackendStatus, ContainerInfo, FinalizeResult, TransferAck

from ...domain.entities.payload import FilePayload
from ...domain.exceptions import BackendError, RateLimitError, wrap_exception
from ...domain.repositories.storage_backend import BytesSentCallback, StorageBackend

logger = logging.getLogger(__name__)

MB = 1024 * 1024


@dataclass
class HttpBackendConfig:
    """HTTP backend client configuration."""
    base_url: str = "http://localhost:54321/functions/v1"
    api_token: Optional[str] = None
    timeout: float = 30.0
    transfer_timeout: float = 15 * 60
    stream_slice_bytes: int = 1 * MB
    max_attempts: int = 3
    retry_max_delay: float = 10 * 60


def _status_user_message(status_code: int) -> str:
    if status_code in (401, 403):
        return "Authentication failed. Please sign in again."
    if status_code == 413:
        return "File is too large for the server to accept."
    if status_code >= 500:
        return "Server error. Please try again later."
    return "The request was rejected by the server."


def _parse_retry_after(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    try:
        return max(float(value), 0.0)
    except ValueError:
        return None


class HttpStorageBackend(StorageBackend):
    """Storage backend reached over HTTP with a bearer token."""

    def __init__(
        self,
        config: HttpBackendConfig,
        client: Optional[httpx.AsyncClient] = None,
        retry_policy: Optional[RetryPolicy] = None
    ):
        self.config = config
        self.retry_policy = retry_policy or RetryPolicy(
            max_attempts=config.max_attempts,
            base_delay=1.0,
            max_delay=config.retry_max_delay,
            retry_on=(RateLimitError,),
            name="backend request"
        )
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(base_url=config.base_url, timeout=config.timeout)

    async def ensure_container(self, user_id: str) -> ContainerInfo:
        response = await self._request("POST", "/containers/ensure", json={"user_id": user_id})
        return ContainerInfo.model_validate(response.json())

    async def transfer_chunk(
        self,
        container_id: str,
        chunk_index: int,
        total_chunks: int,
        data: bytes,
        metadata: TransferMetadata
    ) -> TransferAck:
        response = await self._request(
            "PUT",
            f"/containers/{container_id}/chunks/{chunk_index}",
            files={"chunk": (f"{metadata.file_name}.part{chunk_index}", data, "application/octet-stream")},
            data={
                "chunk_index": str(chunk_index),
                "total_chunks": str(total_chunks),
                "metadata": json.dumps(metadata.to_dict()),
            },
            timeout=self.config.transfer_timeout
        )
        return TransferAck.model_validate(response.json())

    async def transfer_whole(
        self,
        container_id: str,
        payload: FilePayload,
        metadata: TransferMetadata,
        on_bytes_sent: Optional[BytesSentCallback] = None
    ) -> TransferAck:
        response = await self._request(
            "PUT",
            f"/containers/{container_id}/object",
            content_factory=lambda: self._stream(payload, on_bytes_sent),
            headers={
                "Content-Type": payload.content_type,
                "Content-Length": str(payload.size),
                "X-Upload-Metadata": json.dumps(metadata.to_dict()),
            },
            timeout=self.config.transfer_timeout
        )
        return TransferAck.model_validate(response.json())

    async def finalize(self, container_id: str, metadata: TransferMetadata) -> FinalizeResult:
        response = await self._request(
            "POST",
            f"/containers/{container_id}/finalize",
            json=metadata.to_dict(),
            timeout=self.config.transfer_timeout
        )
        return FinalizeResult.model_validate(response.json())

    async def get_status(self, document_id: str) -> BackendStatus:
        response = await self._request("GET", f"/documents/{document_id}/status")
        return BackendStatus.model_validate(response.json())

    async def discard_chunks(self, container_id: str, session_id: str) -> None:
        await self._request("DELETE", f"/containers/{container_id}/chunks", params={"session": session_id})

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def cleanup(self) -> None:
        await self.aclose()

    async def _stream(self, payload: FilePayload, on_bytes_sent: Optional[BytesSentCallback]) -> AsyncIterator[bytes]:
        total = payload.size
        sent = 0
        while sent < total:
            data = await payload.read(sent, min(self.config.stream_slice_bytes, total - sent))
            if not data:
                break
            yield data
            sent += len(data)
            if on_bytes_sent is not None:
                result = on_bytes_sent(sent, total)
                if inspect.isawaitable(result):
                    await result

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        return await self.retry_policy.execute_with_retry(self._send, method, path, **kwargs)

    async def _send(
        self,
        method: str,
        path: str,
        content_factory: Optional[Callable[[], AsyncIterator[bytes]]] = None,
        headers: Optional[Dict[str, str]] = None,
        **kwargs: Any
    ) -> httpx.Response:
        request_headers = dict(headers or {})
        if self.config.api_token:
            request_headers["Authorization"] = f"Bearer {self.config.api_token}"
        if content_factory is not None:
            kwargs["content"] = content_factory()

        try:
            response = await self.client.request(method, path, headers=request_headers, **kwargs)
        except (httpx.TimeoutException, httpx.TransportError) as e:
            raise wrap_exception(e, f"{method} {path}") from e

        if response.status_code == 429:
            retry_after = _parse_retry_after(response.headers.get("Retry-After"))
            logger.warning(f"Rate limited on {method} {path}, retry after {retry_after}s")
            raise RateLimitError(f"{method} {path} rate limited", retry_after=retry_after)

        if response.status_code >= 400:
            raise BackendError(
                f"{method} {path} failed with {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
                user_message=_status_user_message(response.status_code)
            )

        return response
