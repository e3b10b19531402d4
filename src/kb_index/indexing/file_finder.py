"""File discovery and filtering for indexing."""

import logging
import os
from pathlib import Path
from typing import Iterator, List, Optional, Set, Tuple

import pathspec

from ..config import Config
from ..errors import NotFoundError
from ..models import FileRecord

logger = logging.getLogger(__name__)

IGNORE_FILES = (".gitignore", ".kbignore")


class FileFinder:
    """Finds and filters files for indexing based on configuration.

    The walk is recursive and follows directory symlinks; a directory that was
    already visited (same device and inode) is skipped, which breaks symlink
    cycles. Entries are visited in lexical order so every run yields the same
    sequence.
    """

    def __init__(self, config: Config, root: Path):
        self.config = config
        self.root = Path(root).expanduser().absolute()
        self._extensions = set(config.file_extensions)
        self.exclude_spec = self._create_exclude_spec()

    def _create_exclude_spec(self) -> pathspec.PathSpec:
        """Create pathspec for excluded directories and ignore files."""
        patterns: List[str] = []

        for exclude_dir in self.config.exclude_dirs:
            patterns.append(f"{exclude_dir}/")
            patterns.append(f"**/{exclude_dir}/")

        if self.root.is_dir():
            for name in IGNORE_FILES:
                patterns.extend(self._read_ignore_file(self.root / name))

        return pathspec.PathSpec.from_lines("gitwildmatch", patterns)

    @staticmethod
    def _read_ignore_file(path: Path) -> List[str]:
        if not path.is_file():
            return []
        try:
            with open(path, "r", encoding="utf-8", errors="ignore") as f:
                lines = [line.strip() for line in f]
        except OSError as e:
            logger.warning("Could not read %s: %s", path, e)
            return []
        patterns = [line for line in lines if line and not line.startswith("#")]
        logger.debug("Loaded %d patterns from %s", len(patterns), path)
        return patterns

    def _has_supported_extension(self, file_path: Path) -> bool:
        return file_path.suffix.lstrip(".").lower() in self._extensions

    def _is_excluded(self, relative: str, is_dir: bool = False) -> bool:
        if is_dir:
            relative = relative.rstrip("/") + "/"
        return self.exclude_spec.match_file(relative)

    def _within_size_limit(self, file_path: Path) -> bool:
        try:
            size = file_path.stat().st_size
        except OSError as e:
            logger.warning("Skipping %s: %s", file_path, e)
            return False
        if size > self.config.indexing.max_file_size:
            logger.debug(
                "Skipping %s: %d bytes exceeds max_file_size", file_path, size
            )
            return False
        return True

    def _should_include_file(self, file_path: Path) -> bool:
        """Check if a file should be included in indexing."""
        if not self._has_supported_extension(file_path):
            return False

        relative = file_path.relative_to(self.root).as_posix()
        if self._is_excluded(relative):
            return False

        return self._within_size_limit(file_path)

    @staticmethod
    def _on_walk_error(error: OSError) -> None:
        logger.warning("Skipping %s: %s", error.filename, error.strerror or error)

    def find_files(self) -> Iterator[FileRecord]:
        """Find all files that should be indexed.

        Each call starts a new walk.

        Raises:
            NotFoundError: If the root does not exist
        """
        if not self.root.exists():
            raise NotFoundError(f"Path does not exist: {self.root}", path=str(self.root))

        if self.root.is_file():
            if self._has_supported_extension(self.root) and self._within_size_limit(
                self.root
            ):
                yield FileRecord.from_path(self.root)
            return

        visited: Set[Tuple[int, int]] = set()

        for current, dirs, files in os.walk(
            self.root, onerror=self._on_walk_error, followlinks=True
        ):
            current_path = Path(current)

            identity = self._dir_identity(current_path)
            if identity is None:
                dirs[:] = []
                continue
            if identity in visited:
                logger.warning("Skipping %s: directory cycle detected", current_path)
                dirs[:] = []
                continue
            visited.add(identity)

            # Prune in place so os.walk never descends into excluded directories
            kept = []
            for dir_name in sorted(dirs):
                relative = (current_path / dir_name).relative_to(self.root).as_posix()
                if not self._is_excluded(relative, is_dir=True):
                    kept.append(dir_name)
            dirs[:] = kept

            for file_name in sorted(files):
                file_path = current_path / file_name
                if self._should_include_file(file_path):
                    yield FileRecord.from_path(file_path)

    @staticmethod
    def _dir_identity(path: Path) -> Optional[Tuple[int, int]]:
        try:
            st = path.stat()
        except OSError as e:
            logger.warning("Skipping %s: %s", path, e)
            return None
        return (st.st_dev, st.st_ino)
