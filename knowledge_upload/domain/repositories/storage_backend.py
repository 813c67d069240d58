"""Storage backend interface"""

from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Optional, Union

from shared.document_contracts import TransferMetadata
from shared.models.base import BackendStatus, ContainerInfo, FinalizeResult, TransferAck

from ..entities.payload import FilePayload

BytesSentCallback = Callable[[int, int], Union[None, Awaitable[None]]]


class StorageBackend(ABC):
    """Abstract port to the backend that stores, reassembles and processes documents"""

    @abstractmethod
    async def ensure_container(self, user_id: str) -> ContainerInfo:
        """Return the user's storage container, creating it if needed"""
        pass

    @abstractmethod
    async def transfer_chunk(
        self,
        container_id: str,
        chunk_index: int,
        total_chunks: int,
        data: bytes,
        metadata: TransferMetadata
    ) -> TransferAck:
        """Send one chunk of a chunked upload"""
        pass

    @abstractmethod
    async def transfer_whole(
        self,
        container_id: str,
        payload: FilePayload,
        metadata: TransferMetadata,
        on_bytes_sent: Optional[BytesSentCallback] = None
    ) -> TransferAck:
        """Send a whole file; ``on_bytes_sent(sent, total)`` reports real progress"""
        pass

    @abstractmethod
    async def finalize(self, container_id: str, metadata: TransferMetadata) -> FinalizeResult:
        """Confirm an accepted transfer and obtain its document id"""
        pass

    @abstractmethod
    async def get_status(self, document_id: str) -> BackendStatus:
        """Fetch authoritative upload and processing status"""
        pass

    @abstractmethod
    async def discard_chunks(self, container_id: str, session_id: str) -> None:
        """Remove chunks of an abandoned chunked upload"""
        pass

    async def aclose(self) -> None:
        """Release transport resources"""
        pass
