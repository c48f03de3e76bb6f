"""Directory scans that reconcile tracked state with the filesystem.

Notifications can be coalesced, dropped, or raced by later mutations; a scan
registers anything new, catches up tracked files, and prunes files and
directories that vanished without a delivered removal.
"""
from __future__ import annotations

import logging
import os
import stat
from typing import TYPE_CHECKING, Callable, Iterator, NamedTuple, Optional, Set

if TYPE_CHECKING:
    from .runtime import Tailer

logger = logging.getLogger("folder_tail.reconcile")


class WalkEntry(NamedTuple):
    path: str
    is_dir: bool


def walk_tree(
    root: str,
    descend: Callable[[str], bool],
    on_error: Optional[Callable[[OSError], None]] = None,
) -> Iterator[WalkEntry]:
    """Depth-first walk yielding ``root``, then directories and regular files.

    Symbolic links are never followed: linked directories are pruned and
    linked files skipped. A subdirectory is yielded and entered only when
    ``descend(path)`` is true. Failure to list ``root`` raises; failures
    below it go to ``on_error`` and the walk continues.
    """
    yield WalkEntry(root, True)
    stack = [root]
    while stack:
        current = stack.pop()
        try:
            with os.scandir(current) as it:
                entries = sorted(it, key=lambda e: e.name)
        except OSError as e:
            if current == root:
                raise
            if on_error:
                on_error(e)
            continue
        subdirs = []
        for entry in entries:
            try:
                if entry.is_symlink():
                    continue
                if entry.is_dir(follow_symlinks=False):
                    if descend(entry.path):
                        subdirs.append(entry.path)
                    continue
                if entry.is_file(follow_symlinks=False):
                    yield WalkEntry(entry.path, False)
            except OSError as e:
                if on_error:
                    on_error(e)
        # reversed so the stack pops them in name order
        for sub in reversed(subdirs):
            stack.append(sub)
        for sub in subdirs:
            yield WalkEntry(sub, True)


def is_regular(path: str) -> bool:
    try:
        return stat.S_ISREG(os.stat(path).st_mode)
    except OSError:
        return False


def is_directory(path: str) -> bool:
    try:
        return stat.S_ISDIR(os.stat(path).st_mode)
    except OSError:
        return False


class Reconciler:
    def __init__(self, tailer: "Tailer"):
        self.tailer = tailer

    @property
    def recursive(self) -> bool:
        return self.tailer.config.recursive

    def _descend(self, path: str) -> bool:
        return self.recursive

    def _visit_file(self, path: str) -> bool:
        """Catch up or register ``path``; True if it is tracked afterwards."""
        t = self.tailer
        if not t.matcher.matches(path):
            return False
        state = t.states.get(path)
        if state is not None:
            try:
                t.reader.read_new(path, state)
            except FileNotFoundError:
                t.remove_path(path)
                return False
            except OSError as e:
                t.report(e)
            return True
        try:
            text = t.classify(path)
        except OSError as e:
            t.report(e)
            return False
        if not text:
            return False
        t.ensure_file(path, classified=True)
        return path in t.states

    def scan_and_register(self) -> None:
        """Full reconciliation pass over the root.

        Raises OSError if the root itself cannot be listed.
        """
        t = self.tailer
        seen_files: Set[str] = set()
        seen_dirs: Set[str] = set()
        for entry in walk_tree(t.config.root, self._descend, t.report):
            if entry.is_dir:
                if not self.recursive:
                    continue
                seen_dirs.add(entry.path)
                t.add_watch(entry.path)
                continue
            if self._visit_file(entry.path):
                seen_files.add(entry.path)

        for path in t.states.paths():
            if path in seen_files or is_regular(path):
                continue
            if t.states.remove(path):
                logger.debug("pruned vanished file %s", path)

        if not self.recursive:
            return
        for directory in t.watches.paths():
            if directory in seen_dirs or is_directory(directory):
                continue
            t.watches.remove(directory)
            logger.debug("pruned vanished directory %s", directory)

    def scan_dir(self, directory: str) -> None:
        """Register everything under a newly created directory."""
        t = self.tailer
        try:
            for entry in walk_tree(directory, self._descend, t.report):
                if entry.is_dir:
                    t.add_watch(entry.path)
                else:
                    self._visit_file(entry.path)
        except OSError as e:
            t.report(e)
