"""
Indexer: discovery, chunking, embedding and upsert in one batch pipeline.

Chunks from all files are pooled into embedding batches regardless of their
source file. Completed batches are consumed on the calling thread, which is
the only place the report, the index state and the store are touched.
"""

import logging
from concurrent.futures import FIRST_COMPLETED, Future, wait
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Set

from ..config import Config
from ..errors import (
    AuthenticationError,
    ChunkRange,
    DecodeError,
    EmbeddingError,
    VectorStoreError,
)
from ..models import Chunk, IndexingFailure, IndexReport
from ..services.embedding_client import BatchOutcome, EmbeddingClient
from ..storage.vector_store import VectorStore
from .file_finder import FileFinder
from .index_state import IndexState
from .line_chunker import LineChunker

logger = logging.getLogger(__name__)


@dataclass
class _FileProgress:
    """Bookkeeping for one file while its chunks are in flight."""

    path: str
    mtime: float
    size: int
    chunk_ids: List[str] = field(default_factory=list)
    pending: int = 0
    sealed: bool = False
    failed: bool = False
    finished: bool = False


class Indexer:
    """Orchestrates FileFinder -> LineChunker -> EmbeddingClient -> VectorStore.

    Authentication failures and vector store failures abort the run: no new
    requests are issued, in-flight requests drain without being written, and
    the partial report is returned with ``aborted=True``. Any other embedding
    failure is recorded against the affected files and the run continues.
    """

    def __init__(
        self,
        config: Config,
        embedding_client: EmbeddingClient,
        store: VectorStore,
        state: Optional[IndexState] = None,
        chunker: Optional[LineChunker] = None,
    ):
        self.config = config
        self.embedding_client = embedding_client
        self.store = store
        self.state = state
        self.chunker = chunker or LineChunker(config)
        self.batch_size = config.openai.batch_size
        # Bounds memory: at most two batches queued per worker
        self.max_in_flight = max(1, embedding_client.thread_count * 2)

    def request_cancellation(self) -> None:
        """Stop the running index() call; in-flight batches finish and are written."""
        self.embedding_client.request_cancellation()

    def _stopped(self, report: IndexReport) -> bool:
        return report.aborted or self.embedding_client.cancelled

    @property
    def store_identity(self) -> str:
        """Location of the records; tracked state is only valid for this one."""
        chroma = self.config.chroma
        return (
            f"{self.config.chroma_host}/{chroma.tenant}"
            f"/{chroma.database}/{chroma.collection}"
        )

    def _prepare_state(self, full: bool, report: IndexReport) -> bool:
        """Return True when unchanged files must be re-indexed anyway.

        Tracked files are forgotten when the store moved or was emptied. When
        only the embedding model changed, their records are deleted first so
        vectors of two models never share a collection.
        """
        if self.state is None:
            return True

        model = self.embedding_client.provider.get_current_model()
        store = self.store_identity

        if self.state.files:
            try:
                if self.state.bound_store != store:
                    logger.info("Vector store changed, re-indexing everything")
                    self.state.clear()
                    full = True
                elif self.state.bound_model != model:
                    ids = self.state.all_chunk_ids()
                    logger.info(
                        "Embedding model changed from %s to %s, deleting %d records",
                        self.state.bound_model,
                        model,
                        len(ids),
                    )
                    if ids:
                        self.store.delete(ids)
                    report.stale_chunks_deleted += len(ids)
                    self.state.clear()
                    full = True
                elif self.store.count() == 0:
                    logger.warning(
                        "Vector store is empty but %d files are tracked, "
                        "re-indexing everything",
                        len(self.state.files),
                    )
                    self.state.clear()
                    full = True
            except VectorStoreError as e:
                self._abort(report, e)
                return full

        self.state.bind(model, store)
        return full

    def index(self, root_path: Path, full: bool = False) -> IndexReport:
        """Index every qualifying file under ``root_path``.

        Args:
            root_path: File or directory to index
            full: Re-index files even when they look unchanged

        Raises:
            NotFoundError: If ``root_path`` does not exist
        """
        root = Path(root_path).expanduser().absolute()
        finder = FileFinder(self.config, root)

        # Cancellation and aborts only last for one run
        self.embedding_client.reset_cancellation()
        try:
            return self._run(finder, root, full)
        finally:
            self.embedding_client.reset_cancellation()

    def _run(self, finder: FileFinder, root: Path, full: bool) -> IndexReport:
        report = IndexReport()
        retries_before = self.embedding_client.get_stats().total_retries
        force = self._prepare_state(full, report)

        files: Dict[str, _FileProgress] = {}
        seen: Set[str] = set()
        buffer: List[Chunk] = []
        in_flight: Set["Future[BatchOutcome]"] = set()

        self.embedding_client.start()
        logger.info("Indexing %s", root)

        try:
            for record in finder.find_files():
                if self._stopped(report):
                    break

                path = str(record.path)
                seen.add(path)
                progress = self._read_file(record.path, force, report)
                if progress is None:
                    continue
                chunks = self._collect_chunks(record.path, progress, report)
                if chunks is None:
                    continue
                files[path] = progress

                for chunk in chunks:
                    buffer.append(chunk)
                    if len(buffer) >= self.batch_size:
                        self._dispatch(buffer, in_flight, files, report)
                        buffer = []

                progress.sealed = True
                self._maybe_finish(progress, report)

            if buffer and not self._stopped(report):
                self._dispatch(buffer, in_flight, files, report)
        finally:
            # Never leave futures behind, even when discovery raises
            self._drain(in_flight, files, report)

        if not self._stopped(report):
            self._remove_deleted_files(root, seen, report)

        if self.embedding_client.cancelled and not report.aborted:
            report.cancelled = True

        report.retries = self.embedding_client.get_stats().total_retries - retries_before

        if self.state is not None:
            self.state.save()

        logger.info(
            "Indexed %d files (%d chunks), %d skipped, %d failed, %d unchanged",
            report.files_indexed,
            report.chunks_indexed,
            report.files_skipped,
            report.files_failed,
            report.files_unchanged,
        )
        return report

    def _read_file(
        self, file_path: Path, force: bool, report: IndexReport
    ) -> Optional[_FileProgress]:
        path = str(file_path)
        try:
            st = file_path.stat()
        except OSError as e:
            self._skip_file(path, e, report)
            return None

        if (
            not force
            and self.state is not None
            and self.state.is_unchanged(path, st.st_mtime, st.st_size)
        ):
            report.files_unchanged += 1
            return None

        return _FileProgress(path=path, mtime=st.st_mtime, size=st.st_size)

    def _skip_file(self, path: str, error: Exception, report: IndexReport) -> None:
        logger.warning("Skipping %s: %s", path, error)
        report.files_skipped += 1
        report.errors.append(IndexingFailure(path=path, error=error))

    def _dispatch(
        self,
        chunks: Sequence[Chunk],
        in_flight: Set["Future[BatchOutcome]"],
        files: Dict[str, _FileProgress],
        report: IndexReport,
    ) -> None:
        in_flight.update(self.embedding_client.submit_chunks(chunks))

        while len(in_flight) >= self.max_in_flight:
            done, _ = wait(in_flight, return_when=FIRST_COMPLETED)
            for future in done:
                in_flight.discard(future)
                self._handle_outcome(future.result(), files, report)

    def _drain(
        self,
        in_flight: Set["Future[BatchOutcome]"],
        files: Dict[str, _FileProgress],
        report: IndexReport,
    ) -> None:
        while in_flight:
            done, _ = wait(in_flight, return_when=FIRST_COMPLETED)
            for future in done:
                in_flight.discard(future)
                self._handle_outcome(future.result(), files, report)

    def _handle_outcome(
        self,
        outcome: BatchOutcome,
        files: Dict[str, _FileProgress],
        report: IndexReport,
    ) -> None:
        """Apply one finished batch (runs on the calling thread only)."""
        if report.aborted or outcome.cancelled:
            # Drained after abort or cancellation: nothing is written
            return

        if outcome.error is not None:
            if isinstance(outcome.error, AuthenticationError):
                self._abort(report, outcome.error, ranges=outcome.ranges)
                return
            self._fail_chunks(outcome.chunks, outcome.error, files, report)
            return

        records = [embedded.to_record() for embedded in outcome.embedded_chunks()]
        try:
            self.store.upsert(records)
        except VectorStoreError as e:
            self._abort(report, e, ranges=outcome.ranges)
            return

        report.chunks_indexed += len(records)
        logger.debug("Upserted %s (%d chunks)", outcome.batch_id, len(records))

        for chunk in outcome.chunks:
            progress = files[chunk.source_path]
            progress.pending -= 1
            self._maybe_finish(progress, report)

    def _fail_chunks(
        self,
        chunks: Sequence[Chunk],
        error: EmbeddingError,
        files: Dict[str, _FileProgress],
        report: IndexReport,
    ) -> None:
        ranges_by_file: Dict[str, List[ChunkRange]] = {}
        for chunk in chunks:
            ranges_by_file.setdefault(chunk.source_path, []).append(chunk.range)

        for path, ranges in ranges_by_file.items():
            progress = files[path]
            progress.pending -= len(ranges)
            progress.failed = True
            report.errors.append(
                IndexingFailure(path=path, error=error, ranges=tuple(ranges))
            )
            self._maybe_finish(progress, report)

    def _abort(
        self,
        report: IndexReport,
        error: Exception,
        path: Optional[str] = None,
        ranges: Sequence[ChunkRange] = (),
    ) -> None:
        if report.aborted:
            return
        logger.error("Aborting indexing run: %s", error)
        report.aborted = True
        report.errors.append(IndexingFailure(path=path, error=error, ranges=tuple(ranges)))
        self.embedding_client.request_cancellation()

    def _maybe_finish(self, progress: _FileProgress, report: IndexReport) -> None:
        if progress.finished or not progress.sealed or progress.pending > 0:
            return
        if report.aborted:
            return
        progress.finished = True

        if progress.failed:
            report.files_failed += 1
            return

        if self.state is not None:
            stale = sorted(
                set(self.state.previous_ids(progress.path)) - set(progress.chunk_ids)
            )
            if stale:
                try:
                    self.store.delete(stale)
                except VectorStoreError as e:
                    self._abort(report, e, path=progress.path)
                    return
                report.stale_chunks_deleted += len(stale)
                logger.debug("Deleted %d stale chunks of %s", len(stale), progress.path)
            self.state.record_file(
                progress.path, progress.mtime, progress.size, progress.chunk_ids
            )

        report.files_indexed += 1

    def _remove_deleted_files(
        self, root: Path, seen: Set[str], report: IndexReport
    ) -> None:
        """Drop records of tracked files under ``root`` that no longer qualify."""
        if self.state is None:
            return

        for path in sorted(self.state.paths_under(root) - seen):
            ids = self.state.previous_ids(path)
            try:
                if ids:
                    self.store.delete(ids)
            except VectorStoreError as e:
                self._abort(report, e, path=path)
                return
            report.stale_chunks_deleted += len(ids)
            self.state.forget(path)
            logger.info("Removed %d chunks of deleted file %s", len(ids), path)

    def _collect_chunks(
        self, file_path: Path, progress: _FileProgress, report: IndexReport
    ) -> Optional[List[Chunk]]:
        """Chunk one file and return the chunks that must be embedded.

        Blank chunks are counted and dropped, oversized chunks are recorded as
        failures of the file. Returns None when the file cannot be read.
        """
        try:
            chunks = self.chunker.chunk_file(file_path)
        except (DecodeError, OSError) as e:
            self._skip_file(progress.path, e, report)
            return None

        max_chars = self.config.indexing.max_chunk_chars
        selected: List[Chunk] = []
        for chunk in chunks:
            if chunk.is_blank:
                report.chunks_skipped += 1
                continue
            if len(chunk.text) > max_chars:
                progress.failed = True
                error = EmbeddingError(
                    f"Chunk of {len(chunk.text)} characters exceeds "
                    f"max_chunk_chars ({max_chars})",
                    ranges=[chunk.range],
                )
                report.errors.append(
                    IndexingFailure(path=progress.path, error=error, ranges=error.ranges)
                )
                continue
            progress.pending += 1
            progress.chunk_ids.append(chunk.chunk_id)
            selected.append(chunk)
        return selected
