"""Indexing components: discovery, chunking, state and orchestration."""

from .file_finder import FileFinder
from .index_state import IndexState
from .indexer import Indexer
from .line_chunker import LineChunker

__all__ = ["FileFinder", "IndexState", "Indexer", "LineChunker"]
