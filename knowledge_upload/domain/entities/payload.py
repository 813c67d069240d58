"""File payload handles"""

from abc import ABC, abstractmethod


class FilePayload(ABC):
    """Reference to the bytes of a selected file.

    Upload tasks keep the handle only; bytes are read on demand, one
    chunk at a time, so large files are never copied into memory whole.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Original filename"""
        pass

    @property
    @abstractmethod
    def size(self) -> int:
        """Size in bytes"""
        pass

    @property
    @abstractmethod
    def content_type(self) -> str:
        """MIME type reported by the runtime"""
        pass

    @abstractmethod
    async def read(self, offset: int = 0, length: int = -1) -> bytes:
        """Read ``length`` bytes from ``offset`` (-1 reads to the end)"""
        pass


class BytesPayload(FilePayload):
    """In-memory payload"""

    def __init__(self, name: str, data: bytes, content_type: str):
        self._name = name
        self._data = data
        self._content_type = content_type

    @property
    def name(self) -> str:
        return self._name

    @property
    def size(self) -> int:
        return len(self._data)

    @property
    def content_type(self) -> str:
        return self._content_type

    async def read(self, offset: int = 0, length: int = -1) -> bytes:
        if length < 0:
            return self._data[offset:]
        return self._data[offset:offset + length]
