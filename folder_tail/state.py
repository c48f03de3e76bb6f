from __future__ import annotations

import os
import threading
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional


@dataclass
class FileState:
    offset: int = 0
    # bytes after the last terminator, not yet part of a complete line
    partial: bytes = b""
    partial_delivered: bool = False
    inode: Optional[int] = None
    # an oversized line was flushed; drop bytes up to its terminator
    skip_to_newline: bool = False

    def clear_partial(self) -> None:
        self.partial = b""
        self.partial_delivered = False


class FileStateStore:
    """Per-path read state shared between the engine loop and outside readers.

    The engine loop is the only writer; ``len()`` and lookups may come from
    any thread, so every access goes through one lock.
    """

    def __init__(self):
        self._states: Dict[str, FileState] = {}
        self._lock = threading.Lock()

    def get(self, path: str) -> Optional[FileState]:
        with self._lock:
            return self._states.get(path)

    def create(self, path: str) -> Optional[FileState]:
        """Insert a fresh state; return None if the path is already tracked."""
        with self._lock:
            if path in self._states:
                return None
            state = FileState()
            self._states[path] = state
            return state

    def remove(self, path: str) -> bool:
        with self._lock:
            return self._states.pop(path, None) is not None

    def remove_under(self, directory: str) -> List[str]:
        prefix = directory.rstrip(os.sep) + os.sep
        with self._lock:
            gone = [p for p in self._states if p.startswith(prefix)]
            for p in gone:
                del self._states[p]
        return gone

    def paths(self) -> List[str]:
        with self._lock:
            return list(self._states)

    def __contains__(self, path: object) -> bool:
        with self._lock:
            return path in self._states

    def __len__(self) -> int:
        with self._lock:
            return len(self._states)

    def __iter__(self) -> Iterator[str]:
        return iter(self.paths())
