"""Text/binary classification from a file's leading bytes.

The content sniffer follows the WHATWG MIME sniffing table closely enough to
separate markup, documents, media and archives from plain text. Only the
first ``SAMPLE_SIZE`` bytes of a file are ever read.
"""
from __future__ import annotations

import os
from typing import List, Tuple

SAMPLE_SIZE = 512

TEXT_TYPES = {
    "application/json",
    "application/xml",
    "application/javascript",
    "application/x-www-form-urlencoded",
}

BINARY_EXTENSIONS = {
    ".7z", ".a", ".avi", ".bin", ".bmp", ".bz2", ".class", ".dat", ".db",
    ".dll", ".dylib", ".exe", ".flac", ".gif", ".gz", ".ico", ".iso", ".jar",
    ".jpeg", ".jpg", ".mkv", ".mov", ".mp3", ".mp4", ".o", ".ogg", ".otf",
    ".pdf", ".png", ".pyc", ".rar", ".so", ".sqlite", ".tar", ".tgz", ".ttf",
    ".wasm", ".wav", ".webm", ".webp", ".woff", ".woff2", ".xz", ".zip", ".zst",
}

_WS = b"\t\n\x0c\r "

_HTML_TAGS = [
    b"<!DOCTYPE HTML", b"<HTML", b"<HEAD", b"<SCRIPT", b"<IFRAME", b"<H1",
    b"<DIV", b"<FONT", b"<TABLE", b"<A", b"<STYLE", b"<TITLE", b"<B",
    b"<BODY", b"<BR", b"<P", b"<!--",
]

# (pattern, mask, content type); a mask byte of 0xFF means "must equal".
_MASKED: List[Tuple[bytes, bytes, str]] = [
    (b"RIFF\x00\x00\x00\x00WEBPVP", b"\xff\xff\xff\xff\x00\x00\x00\x00\xff\xff\xff\xff\xff\xff", "image/webp"),
    (b"RIFF\x00\x00\x00\x00WAVE", b"\xff\xff\xff\xff\x00\x00\x00\x00\xff\xff\xff\xff", "audio/wave"),
    (b"RIFF\x00\x00\x00\x00AVI ", b"\xff\xff\xff\xff\x00\x00\x00\x00\xff\xff\xff\xff", "video/avi"),
    (b"FORM\x00\x00\x00\x00AIFF", b"\xff\xff\xff\xff\x00\x00\x00\x00\xff\xff\xff\xff", "audio/aiff"),
]

_PREFIXES: List[Tuple[bytes, str]] = [
    (b"%PDF-", "application/pdf"),
    (b"%!PS-Adobe-", "application/postscript"),
    (b"\xfe\xff", "text/plain; charset=utf-16be"),
    (b"\xff\xfe", "text/plain; charset=utf-16le"),
    (b"\xef\xbb\xbf", "text/plain; charset=utf-8"),
    (b"\x00\x00\x01\x00", "image/x-icon"),
    (b"\x00\x00\x02\x00", "image/x-icon"),
    (b"BM", "image/bmp"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"ID3", "audio/mpeg"),
    (b"OggS\x00", "application/ogg"),
    (b"MThd\x00\x00\x00\x06", "audio/midi"),
    (b"\x1a\x45\xdf\xa3", "video/webm"),
    (b"OTTO", "font/otf"),
    (b"\x00\x01\x00\x00", "font/ttf"),
    (b"ttcf", "font/collection"),
    (b"wOFF", "font/woff"),
    (b"wOF2", "font/woff2"),
    (b"\x1f\x8b\x08", "application/x-gzip"),
    (b"PK\x03\x04", "application/zip"),
    (b"Rar!\x1a\x07\x00", "application/x-rar-compressed"),
    (b"Rar!\x1a\x07\x01\x00", "application/x-rar-compressed"),
    (b"\x00asm", "application/wasm"),
]


def _is_tag_end(data: bytes, i: int) -> bool:
    return i < len(data) and data[i] in b" >"


def _is_binary_byte(b: int) -> bool:
    return b <= 0x08 or b == 0x0B or 0x0E <= b <= 0x1A or 0x1C <= b <= 0x1F


def _is_mp4(data: bytes) -> bool:
    if len(data) < 12:
        return False
    box = int.from_bytes(data[:4], "big")
    if box % 4 != 0 or len(data) < box:
        return False
    if data[4:8] != b"ftyp":
        return False
    for off in range(8, box, 4):
        if off == 12:
            continue
        if data[off:off + 3] == b"mp4":
            return True
    return False


def sniff_content_type(data: bytes) -> str:
    """Best-effort MIME type for a content sample."""
    body = data.lstrip(_WS)
    upper = body[:16].upper()
    for tag in _HTML_TAGS:
        if upper.startswith(tag) and _is_tag_end(body, len(tag)):
            return "text/html; charset=utf-8"
    if body.startswith(b"<?xml"):
        return "text/xml; charset=utf-8"
    for sig, ctype in _PREFIXES:
        if data.startswith(sig):
            return ctype
    for pattern, mask, ctype in _MASKED:
        if len(data) >= len(pattern) and all(
            (data[i] & m) == p for i, (p, m) in enumerate(zip(pattern, mask))
        ):
            return ctype
    if _is_mp4(data):
        return "video/mp4"
    if not any(_is_binary_byte(b) for b in data):
        return "text/plain; charset=utf-8"
    return "application/octet-stream"


def _valid_utf8(data: bytes) -> bool:
    try:
        data.decode("utf-8")
    except UnicodeDecodeError:
        return False
    return True


def is_text_data(data: bytes) -> bool:
    if not data:
        return True
    if b"\x00" in data:
        return False
    ctype = sniff_content_type(data)
    if ctype.startswith("text/") or ctype in TEXT_TYPES:
        return True
    return _valid_utf8(data)


def read_sample(path: str, size: int = SAMPLE_SIZE) -> bytes:
    with open(path, "rb") as f:
        return f.read(size)


def is_text_file(path: str) -> bool:
    return is_text_data(read_sample(path))


def has_binary_extension(path: str) -> bool:
    return os.path.splitext(path)[1].lower() in BINARY_EXTENSIONS


def classify(path: str, skip_binary_extensions: bool = True) -> bool:
    """Return True for text, False for binary.

    When ``skip_binary_extensions`` is set, well-known binary extensions are
    rejected without opening the file.
    """
    if skip_binary_extensions and has_binary_extension(path):
        return False
    return is_text_file(path)
