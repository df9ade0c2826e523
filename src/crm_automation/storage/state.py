"""Helpers for engine-owned state: per-key locking and JSON state files."""

from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Hashable, Iterator, List, Optional
import json
import logging
import os
import threading

logger = logging.getLogger(__name__)


class KeyedLocks:
    """A lock per key, created on demand and dropped when no longer held.

    Callers holding different keys never block each other.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[Hashable, List[Any]] = {}  # key -> [lock, holders]

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = [threading.Lock(), 0]
                self._locks[key] = entry
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


def read_json(path: Optional[Path], default: Any) -> Any:
    """Load JSON from ``path``; ``default`` when there is no file."""
    if path is None or not path.exists():
        return default
    try:
        with open(path, 'r') as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.error(f"Error loading state file {path}: {e}")
        return default


def write_json(path: Optional[Path], data: Any):
    """Write JSON to ``path`` via a temp file and atomic rename."""
    if path is None:
        return
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    with open(tmp_path, 'w') as f:
        json.dump(data, f, indent=2)
    os.replace(tmp_path, path)
