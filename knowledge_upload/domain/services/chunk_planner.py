"""Chunk planning for large uploads"""

from dataclasses import dataclass
from typing import Iterator

MB = 1024 * 1024
CHUNKING_THRESHOLD_BYTES = 45 * MB
CHUNK_SIZE_BYTES = 40 * MB


@dataclass(frozen=True)
class ChunkPlan:
    """Chunking decision for one file"""
    is_chunked: bool
    total_chunks: int
    chunk_size: int = CHUNK_SIZE_BYTES


@dataclass(frozen=True)
class ChunkRange:
    """Byte range of a single chunk"""
    index: int
    offset: int
    length: int


def plan(
    file_size_bytes: int,
    threshold: int = CHUNKING_THRESHOLD_BYTES,
    chunk_size: int = CHUNK_SIZE_BYTES
) -> ChunkPlan:
    """Decide whether a file is chunked and how many chunks it needs"""
    if file_size_bytes < 0:
        raise ValueError(f"File size cannot be negative: {file_size_bytes}")

    if file_size_bytes > threshold:
        return ChunkPlan(
            is_chunked=True,
            total_chunks=-(-file_size_bytes // chunk_size),
            chunk_size=chunk_size
        )
    return ChunkPlan(is_chunked=False, total_chunks=1, chunk_size=chunk_size)


def chunk_ranges(file_size_bytes: int, chunk_plan: ChunkPlan) -> Iterator[ChunkRange]:
    """Yield chunk byte ranges in index order, covering the whole file"""
    if not chunk_plan.is_chunked:
        yield ChunkRange(index=0, offset=0, length=file_size_bytes)
        return

    for index in range(chunk_plan.total_chunks):
        offset = index * chunk_plan.chunk_size
        yield ChunkRange(
            index=index,
            offset=offset,
            length=min(chunk_plan.chunk_size, file_size_bytes - offset)
        )


class ChunkPlanner:
    """Chunk planner bound to configured threshold and chunk size"""

    def __init__(self, threshold: int = CHUNKING_THRESHOLD_BYTES, chunk_size: int = CHUNK_SIZE_BYTES):
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self.threshold = threshold
        self.chunk_size = chunk_size

    def plan(self, file_size_bytes: int) -> ChunkPlan:
        return plan(file_size_bytes, self.threshold, self.chunk_size)

    def ranges(self, file_size_bytes: int) -> Iterator[ChunkRange]:
        return chunk_ranges(file_size_bytes, self.plan(file_size_bytes))
