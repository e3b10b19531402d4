"""
Index state for incremental indexing runs.

Remembers, per indexed file, the mtime and size it had when it was last
indexed and the record ids it produced, so a later run can skip unchanged
files and delete records a file no longer produces. The state is bound to
the embedding model and the store location it was written for.
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Set

logger = logging.getLogger(__name__)

STATE_VERSION = 2


class IndexState:
    """Persistent per-file index state stored as JSON."""

    def __init__(self, state_path: Path):
        self.state_path = state_path
        self.state = self._load_state()

    def _default_state(self) -> Dict[str, Any]:
        return {
            "version": STATE_VERSION,
            "indexed_at": None,
            "embedding_model": None,
            "store": None,
            "files": {},
        }

    def _load_state(self) -> Dict[str, Any]:
        """Load existing state or create empty structure."""
        state = self._default_state()

        if self.state_path.exists():
            try:
                with open(self.state_path, "r") as f:
                    loaded = json.load(f)
                if isinstance(loaded, dict) and loaded.get("version") == STATE_VERSION:
                    state.update(loaded)
                else:
                    logger.warning(
                        "Ignoring index state with unknown layout at %s", self.state_path
                    )
            except (json.JSONDecodeError, OSError) as e:
                logger.warning(
                    "Ignoring unreadable index state at %s: %s", self.state_path, e
                )

        return state

    def save(self) -> None:
        """Save state to disk."""
        self.state_path.parent.mkdir(parents=True, exist_ok=True)
        self.state["indexed_at"] = datetime.now(timezone.utc).isoformat()

        tmp_path = self.state_path.with_suffix(".tmp")
        with open(tmp_path, "w") as f:
            json.dump(self.state, f, indent=2)
        tmp_path.replace(self.state_path)

    @property
    def files(self) -> Dict[str, Dict[str, Any]]:
        return self.state["files"]

    @property
    def bound_model(self) -> Optional[str]:
        return self.state.get("embedding_model")

    @property
    def bound_store(self) -> Optional[str]:
        return self.state.get("store")

    def bind(self, embedding_model: str, store: str) -> None:
        """Record which model produced the tracked records and where they live."""
        self.state["embedding_model"] = embedding_model
        self.state["store"] = store

    def is_unchanged(self, path: str, mtime: float, size: int) -> bool:
        entry = self.files.get(path)
        if entry is None:
            return False
        return entry.get("mtime") == mtime and entry.get("size") == size

    def previous_ids(self, path: str) -> List[str]:
        entry = self.files.get(path)
        if entry is None:
            return []
        return list(entry.get("chunk_ids", []))

    def all_chunk_ids(self) -> List[str]:
        return [i for entry in self.files.values() for i in entry.get("chunk_ids", [])]

    def record_file(
        self, path: str, mtime: float, size: int, chunk_ids: Iterable[str]
    ) -> None:
        self.files[path] = {"mtime": mtime, "size": size, "chunk_ids": list(chunk_ids)}

    def forget(self, path: str) -> Optional[Dict[str, Any]]:
        return self.files.pop(path, None)

    def paths_under(self, root: Path) -> Set[str]:
        """Tracked paths equal to ``root`` or inside it."""
        root_str = str(root)
        prefix = root_str.rstrip("/") + "/"
        return {p for p in self.files if p == root_str or p.startswith(prefix)}

    def clear(self) -> None:
        """Forget every file; the next run re-indexes everything."""
        self.state = self._default_state()

    def get_stats(self) -> Dict[str, Any]:
        return {
            "files": len(self.files),
            "chunks": sum(len(e.get("chunk_ids", [])) for e in self.files.values()),
            "indexed_at": self.state.get("indexed_at"),
            "embedding_model": self.state.get("embedding_model"),
        }
