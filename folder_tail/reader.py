"""Offset-based incremental reading of appended file content."""
from __future__ import annotations

import logging
import os
import stat
from dataclasses import dataclass
from typing import BinaryIO, Callable, List, Optional, Tuple

from .state import FileState

logger = logging.getLogger("folder_tail.reader")

READ_CHUNK_SIZE = 4096
DEFAULT_MAX_LINE_BYTES = 1024 * 1024
TRUNCATION_MARKER = " [truncated]"


@dataclass
class Line:
    path: str
    text: str
    partial: bool = False
    # replaces the previously delivered partial line for this path
    update: bool = False


def trim_cr(data: bytes) -> bytes:
    if data.endswith(b"\r"):
        return data[:-1]
    return data


def decode(data: bytes) -> str:
    return data.decode("utf-8", errors="replace")


def truncate_line(data: bytes, max_bytes: int) -> Tuple[str, bool]:
    if max_bytes > 0 and len(data) > max_bytes:
        return decode(data[:max_bytes]) + TRUNCATION_MARKER, True
    return decode(data), False


def split_lines(data: bytes) -> Tuple[List[bytes], bytes]:
    """Split into complete lines and the unterminated remainder.

    A trailing carriage return is stripped from every complete line; the
    remainder is returned untouched.
    """
    if not data:
        return [], b""
    pieces = data.split(b"\n")
    remainder = pieces.pop()
    return [trim_cr(p) for p in pieces], remainder


def _tail(f: BinaryIO, size: int, n: int) -> Tuple[List[bytes], bytes]:
    chunks: List[bytes] = []
    remaining = size
    newlines = 0
    while remaining > 0 and newlines <= n:
        step = min(READ_CHUNK_SIZE, remaining)
        remaining -= step
        f.seek(remaining)
        buf = f.read(step)
        chunks.append(buf)
        newlines += buf.count(b"\n")
    lines, partial = split_lines(b"".join(reversed(chunks)))
    keep = n - 1 if partial else n
    if len(lines) > keep:
        lines = lines[len(lines) - keep:]
    return lines, partial


def tail_last_lines(path: str, n: int) -> Tuple[List[bytes], bytes]:
    """Return the last ``n`` lines of a file, reading backward from the end.

    When the file does not end with a terminator the unterminated fragment
    counts as one of the ``n`` lines and is returned separately.
    """
    if n <= 0:
        return [], b""
    with open(path, "rb") as f:
        size = os.fstat(f.fileno()).st_size
        if size == 0:
            return [], b""
        return _tail(f, size, n)


class IncrementalReader:
    """Reads newly appended bytes for tracked files and emits ``Line`` events."""

    def __init__(
        self,
        emit: Callable[[Line], None],
        display: Optional[Callable[[str], str]] = None,
        max_line_bytes: int = DEFAULT_MAX_LINE_BYTES,
    ):
        self.emit = emit
        self.display = display or (lambda p: p)
        self.max_line_bytes = max_line_bytes

    def read_tail(self, path: str, state: FileState, n: int) -> None:
        """Emit the last ``n`` lines and position ``state`` at end of file.

        An unterminated final fragment is emitted as a partial line and kept
        in ``state`` so the next read can complete it.
        """
        shown = self.display(path)
        with open(path, "rb") as f:
            st = os.fstat(f.fileno())
            lines, partial = _tail(f, st.st_size, n) if n > 0 and st.st_size else ([], b"")
        for raw in lines:
            text, _ = truncate_line(raw, self.max_line_bytes)
            self.emit(Line(path=shown, text=text))
        state.clear_partial()
        if partial:
            text, truncated = truncate_line(trim_cr(partial), self.max_line_bytes)
            self.emit(Line(path=shown, text=text, partial=not truncated))
            if not truncated:
                state.partial = partial
                state.partial_delivered = True
        state.skip_to_newline = bool(partial) and truncated
        state.offset = st.st_size
        state.inode = st.st_ino

    def read_new(self, path: str, state: FileState) -> None:
        """Catch up on ``path`` from the stored offset.

        Restarts from offset 0 when the file shrank below the offset or was
        replaced by a different inode. Raises FileNotFoundError if the file
        is gone.
        """
        st = os.stat(path)
        if not stat.S_ISREG(st.st_mode):
            return
        if state.inode is not None and st.st_ino != state.inode:
            logger.debug("%s replaced (inode %s -> %s), reading from start", path, state.inode, st.st_ino)
            state.offset = 0
            state.clear_partial()
        elif st.st_size < state.offset:
            logger.debug("%s truncated (%d < %d), reading from start", path, st.st_size, state.offset)
            state.offset = 0
            state.clear_partial()
        if state.offset == 0:
            state.skip_to_newline = False
        if st.st_size == state.offset:
            state.inode = st.st_ino
            return
        self.read_from(path, state, state.offset, True)

    def read_from(self, path: str, state: FileState, offset: int, include_existing_partial: bool) -> None:
        shown = self.display(path)
        max_bytes = self.max_line_bytes
        had_partial = include_existing_partial and state.partial_delivered and bool(state.partial)
        skipping = include_existing_partial and state.skip_to_newline
        updated = False

        def send(text: str, partial: bool = False) -> None:
            nonlocal updated
            update = had_partial and not updated
            self.emit(Line(path=shown, text=text, partial=partial, update=update))
            if update:
                updated = True

        carry = bytearray(state.partial) if include_existing_partial else bytearray()
        total = 0
        with open(path, "rb") as f:
            state.inode = os.fstat(f.fileno()).st_ino
            f.seek(offset)
            while True:
                chunk = f.read(READ_CHUNK_SIZE)
                if not chunk:
                    break
                total += len(chunk)
                start = 0
                while start < len(chunk):
                    idx = chunk.find(b"\n", start)
                    if skipping:
                        if idx < 0:
                            break
                        skipping = False
                        start = idx + 1
                        continue
                    if idx < 0:
                        carry += chunk[start:]
                        if max_bytes > 0 and len(carry) > max_bytes:
                            text, _ = truncate_line(bytes(carry), max_bytes)
                            send(text)
                            carry.clear()
                            skipping = True
                        break
                    carry += chunk[start:idx]
                    text, _ = truncate_line(trim_cr(bytes(carry)), max_bytes)
                    carry.clear()
                    send(text)
                    start = idx + 1

        if carry:
            remainder = bytes(carry)
            text, truncated = truncate_line(trim_cr(remainder), max_bytes)
            send(text, partial=not truncated)
            if truncated:
                state.clear_partial()
                skipping = True
            else:
                state.partial = remainder
                state.partial_delivered = True
        else:
            state.clear_partial()
        state.skip_to_newline = skipping
        state.offset = offset + total
