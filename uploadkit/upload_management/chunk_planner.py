"""Split a byte length into fixed-size chunk descriptors."""

from collections.abc import Iterator
from dataclasses import dataclass
from typing import BinaryIO

from uploadkit.const import CHUNK_SIZE


@dataclass(frozen=True)
class ChunkDescriptor:
    """Byte range ``[start, end)`` of one chunk in the source file."""

    index: int
    start: int
    end: int

    @property
    def size(self) -> int:
        """Number of bytes covered by this chunk."""
        return self.end - self.start


def total_chunks_for(total_size: int, chunk_size: int = CHUNK_SIZE) -> int:
    """Return ``ceil(total_size / chunk_size)``.

    Raises:
        ValueError: If ``total_size`` is negative.
    """
    if total_size < 0:
        raise ValueError(f"File size cannot be negative: {total_size}")
    return -(-total_size // chunk_size)


def iter_chunks(
    total_size: int, chunk_size: int = CHUNK_SIZE
) -> Iterator[ChunkDescriptor]:
    """Yield chunk descriptors in index order without touching file content."""
    for index in range(total_chunks_for(total_size, chunk_size)):
        start = index * chunk_size
        yield ChunkDescriptor(
            index=index, start=start, end=min(start + chunk_size, total_size)
        )


def read_chunk(file_obj: BinaryIO, descriptor: ChunkDescriptor) -> bytes:
    """Read exactly one chunk from an open binary file."""
    file_obj.seek(descriptor.start)
    return file_obj.read(descriptor.size)
