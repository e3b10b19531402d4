"""Data structures passed between discovery, chunking, embedding and storage."""

import hashlib
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .errors import ChunkRange

SUPPORTED_EXTENSIONS: Tuple[str, ...] = ("md", "rs", "ts", "tsx", "js", "jsx")


def make_chunk_id(source_path: str, start_line: int, end_line: int) -> str:
    """Derive the stable record id for a chunk.

    The id only depends on the source path and the line range, so re-indexing
    an unchanged range overwrites the existing record instead of adding one.

    Examples:
        make_chunk_id("/docs/a.md", 0, 9) == make_chunk_id("/docs/a.md", 0, 9)
    """
    key = f"{source_path}:{start_line}:{end_line}".encode("utf-8")
    digest = hashlib.sha256(key).digest()
    return str(uuid.UUID(bytes=digest[:16]))


@dataclass(frozen=True)
class FileRecord:
    """A discovered file that qualifies for indexing."""

    path: Path
    extension: str

    @classmethod
    def from_path(cls, path: Path) -> "FileRecord":
        return cls(path=path, extension=path.suffix.lstrip("."))


@dataclass(frozen=True)
class Chunk:
    """A contiguous line range of one file.

    Lines are 0-based and ``end_line`` is inclusive.
    """

    source_path: str
    start_line: int
    end_line: int
    text: str

    def __post_init__(self):
        if self.start_line < 0:
            raise ValueError(f"start_line must be >= 0, got {self.start_line}")
        if self.start_line > self.end_line:
            raise ValueError(
                f"start_line {self.start_line} is after end_line {self.end_line}"
            )

    @property
    def line_count(self) -> int:
        return self.end_line - self.start_line + 1

    @property
    def range(self) -> ChunkRange:
        return (self.source_path, self.start_line, self.end_line)

    @property
    def chunk_id(self) -> str:
        return make_chunk_id(self.source_path, self.start_line, self.end_line)

    @property
    def is_blank(self) -> bool:
        return not self.text.strip()


@dataclass(frozen=True)
class EmbeddedChunk:
    """A chunk paired with the vector computed for its text."""

    chunk: Chunk
    vector: Tuple[float, ...]

    def to_record(self) -> "IndexedRecord":
        return IndexedRecord.from_embedded_chunk(self)


@dataclass(frozen=True)
class IndexedRecord:
    """Record persisted in the vector store, keyed by a deterministic id."""

    id: str
    vector: Tuple[float, ...]
    metadata: Dict[str, Any]

    @classmethod
    def from_embedded_chunk(cls, embedded: EmbeddedChunk) -> "IndexedRecord":
        chunk = embedded.chunk
        return cls(
            id=chunk.chunk_id,
            vector=tuple(embedded.vector),
            metadata={
                "source_path": chunk.source_path,
                "start_line": chunk.start_line,
                "end_line": chunk.end_line,
                "text": chunk.text,
            },
        )


@dataclass(frozen=True)
class StoreHit:
    """A single nearest-neighbour match returned by a vector store.

    ``score`` is a distance: lower means closer.
    """

    id: str
    metadata: Dict[str, Any]
    score: float


@dataclass
class IndexingFailure:
    """A failure recorded during an indexing run."""

    path: Optional[str]
    error: Exception
    ranges: Tuple[ChunkRange, ...] = ()

    @property
    def kind(self) -> str:
        return type(self.error).__name__

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "kind": self.kind,
            "message": str(self.error),
            "ranges": [list(r) for r in self.ranges],
        }


@dataclass
class IndexReport:
    """Summary of one indexing run.

    A file is counted in ``files_indexed`` only when all of its non-blank
    chunks were written to the store.
    """

    files_indexed: int = 0
    chunks_indexed: int = 0
    files_skipped: int = 0
    files_failed: int = 0
    files_unchanged: int = 0
    chunks_skipped: int = 0
    stale_chunks_deleted: int = 0
    retries: int = 0
    aborted: bool = False
    cancelled: bool = False
    errors: List[IndexingFailure] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return not self.aborted and not self.cancelled and not self.errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "files_indexed": self.files_indexed,
            "chunks_indexed": self.chunks_indexed,
            "files_skipped": self.files_skipped,
            "files_failed": self.files_failed,
            "files_unchanged": self.files_unchanged,
            "chunks_skipped": self.chunks_skipped,
            "stale_chunks_deleted": self.stale_chunks_deleted,
            "retries": self.retries,
            "aborted": self.aborted,
            "cancelled": self.cancelled,
            "errors": [e.to_dict() for e in self.errors],
        }
