"""Fixed-size line chunker.

Splits a file into consecutive, non-overlapping chunks of ``chunk_lines``
lines. Boundaries depend only on line index:
- chunk k covers lines [k*N, min((k+1)*N, L) - 1] (0-based, inclusive end)
- the final chunk may be shorter than N
- an unchanged file always regenerates the same chunks and ids
"""

import logging
from pathlib import Path
from typing import List, Sequence, Union

from ..config import Config, IndexingConfig
from ..errors import DecodeError
from ..models import Chunk

logger = logging.getLogger(__name__)


def split_lines(text: str) -> List[str]:
    """Split on LF only, keeping line endings (CRLF keeps its CR).

    Form feeds, vertical tabs and Unicode line separators stay inside their
    line, so line numbers match what editors and `wc -l` report.
    """
    lines = [line + "\n" for line in text.split("\n")]
    last = lines.pop()[:-1]
    if last:
        lines.append(last)
    return lines


class LineChunker:
    """Line-count chunker used by the indexer.

    Algorithm:
    1. Split the decoded text into lines, keeping line endings
    2. Take N lines at a time, starting at line 0
    3. Join each group back into the chunk text
    """

    DEFAULT_CHUNK_LINES = 10

    def __init__(self, config: Union[IndexingConfig, Config, None] = None):
        """Initialize the chunker.

        Args:
            config: Indexing configuration or full Config; defaults to 10 lines
        """
        if isinstance(config, Config):
            config = config.indexing
        self.lines_per_chunk = (
            config.chunk_lines if config is not None else self.DEFAULT_CHUNK_LINES
        )

    def chunk_lines(self, lines: Sequence[str], source_path: str) -> List[Chunk]:
        """Partition ``lines`` into chunks of at most ``chunk_lines`` lines.

        Args:
            lines: Lines of one file, with or without trailing newlines
            source_path: Path recorded on every chunk

        Returns:
            Chunks ordered by start_line; empty for zero lines
        """
        chunks: List[Chunk] = []
        size = self.lines_per_chunk

        for start in range(0, len(lines), size):
            group = lines[start : start + size]
            chunks.append(
                Chunk(
                    source_path=source_path,
                    start_line=start,
                    end_line=start + len(group) - 1,
                    text="".join(group),
                )
            )

        return chunks

    def chunk_text(self, text: str, source_path: str) -> List[Chunk]:
        """Split decoded text into line chunks."""
        return self.chunk_lines(split_lines(text), source_path)

    def chunk_file(self, file_path: Path) -> List[Chunk]:
        """Read and chunk a file.

        Raises:
            DecodeError: If the file is binary or not valid UTF-8
            OSError: If the file cannot be read
        """
        raw = file_path.read_bytes()

        if b"\x00" in raw:
            raise DecodeError(f"Binary content in {file_path}", path=str(file_path))

        try:
            text = raw.decode("utf-8-sig")
        except UnicodeDecodeError as e:
            raise DecodeError(
                f"Could not decode {file_path} as UTF-8: {e}", path=str(file_path)
            ) from e

        chunks = self.chunk_text(text, str(file_path))
        logger.debug("Split %s into %d chunks", file_path, len(chunks))
        return chunks

    def estimate_chunks(self, line_count: int) -> int:
        """Number of chunks for ``line_count`` lines (ceiling division)."""
        if line_count <= 0:
            return 0
        return (line_count + self.lines_per_chunk - 1) // self.lines_per_chunk
