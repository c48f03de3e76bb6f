from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from fnmatch import translate
from typing import Iterable, List, Optional, Sequence, Tuple

from .errors import PatternError

GLOB = "glob"
REGEX = "regex"
REGEX_PREFIX = "re:"


@dataclass(frozen=True)
class Pattern:
    raw: str
    kind: str  # "glob" | "regex"
    path_pattern: bool = False
    regex: Optional["re.Pattern[str]"] = None
    segments: Tuple["re.Pattern[str]", ...] = field(default_factory=tuple)

    def matches(self, name: str, rel: str) -> bool:
        """Match against the base name or the slash-separated relative path.

        Regex patterns always search the relative path. Glob path patterns
        match segment by segment so that wildcards never cross a ``/``.
        """
        if self.kind == REGEX:
            return self.regex.search(rel) is not None
        if not self.path_pattern:
            return self.segments[0].match(name) is not None
        parts = rel.split("/")
        if len(parts) != len(self.segments):
            return False
        return all(seg.match(part) is not None for seg, part in zip(self.segments, parts))


def to_slash(path: str) -> str:
    if os.sep != "/":
        path = path.replace(os.sep, "/")
    return path


def _kind_for(value: str, force_regex: bool) -> Tuple[str, str]:
    if value.startswith(REGEX_PREFIX):
        return REGEX, value[len(REGEX_PREFIX):]
    if force_regex:
        return REGEX, value
    return GLOB, value


def normalize_glob(glob: str) -> str:
    if glob.startswith("./") or glob.startswith(".\\"):
        return glob[2:]
    return glob


def uses_path_pattern(glob: str) -> bool:
    return "/" in glob or "\\" in glob


def _rewrite_glob(glob: str) -> str:
    """Validate shell glob syntax and rewrite it into fnmatch dialect.

    Escaped wildcards become one-character classes and ``[^...]``
    negation becomes ``[!...]``. Raises ValueError on an unterminated class, a reversed
    range or a trailing escape.
    """
    out: List[str] = []
    i, n = 0, len(glob)
    while i < n:
        c = glob[i]
        if c == "\\":
            if i + 1 >= n:
                raise ValueError("trailing escape character")
            esc = glob[i + 1]
            out.append("[" + esc + "]" if esc in "*?[" else esc)
            i += 2
            continue
        if c != "[":
            out.append(c)
            i += 1
            continue
        j = i + 1
        negate = ""
        if j < n and glob[j] in "!^":
            negate = "!"
            j += 1
        start = j
        members: List[Tuple[str, bool]] = []
        while j < n and (glob[j] != "]" or j == start):
            if glob[j] == "\\" and j + 1 < n:
                j += 1
                members.append((glob[j], True))
            else:
                members.append((glob[j], False))
            j += 1
        if j >= n:
            raise ValueError("unterminated character class")
        for k in range(1, len(members) - 1):
            c, escaped = members[k]
            if c == "-" and not escaped and members[k - 1][0] > members[k + 1][0]:
                raise ValueError(f"bad character range {members[k - 1][0]}-{members[k + 1][0]}")
        out.append(_class(members, negate))
        i = j + 1
    return "".join(out)


def _class(members: List[Tuple[str, bool]], negate: str) -> str:
    """Render class members so escaped ``]``, ``-`` and ``!`` stay literal."""
    lead = "]" if ("]", True) in members else ""
    tail = "-" if ("-", True) in members else ""
    rest = [c for c, escaped in members if not (escaped and c in "]-")]
    if not negate and not lead and rest and rest[0] == "!":
        if len(rest) == 1 and not tail:
            return "!"
        rest = rest[1:] + ["!"]
    return "[" + negate + lead + "".join(rest) + tail + "]"


def _compile_glob(raw: str, glob: str) -> Pattern:
    glob = normalize_glob(glob)
    path_pattern = uses_path_pattern(glob)
    if path_pattern and os.sep == "\\":
        glob = glob.replace("\\", "/")
    try:
        if path_pattern:
            pieces = [_rewrite_glob(part) for part in glob.split("/")]
        else:
            pieces = [_rewrite_glob(glob)]
    except ValueError as e:
        raise PatternError(raw, GLOB, str(e)) from e
    segments = tuple(re.compile(translate(p)) for p in pieces)
    return Pattern(raw=raw, kind=GLOB, path_pattern=path_pattern, segments=segments)


def compile_patterns(values: Optional[Iterable[str]], force_regex: bool = False) -> List[Pattern]:
    patterns: List[Pattern] = []
    for value in values or []:
        value = value.strip()
        if not value:
            continue
        kind, body = _kind_for(value, force_regex)
        if kind == REGEX:
            try:
                rx = re.compile(body)
            except re.error as e:
                raise PatternError(value, REGEX, str(e)) from e
            patterns.append(Pattern(raw=value, kind=REGEX, regex=rx))
            continue
        patterns.append(_compile_glob(value, body))
    return patterns


class PathMatcher:
    """Decides whether a path under ``root`` participates in tailing."""

    def __init__(self, root: str, includes: Sequence[Pattern] = (), excludes: Sequence[Pattern] = ()):
        self.root = root
        self.includes = list(includes)
        self.excludes = list(excludes)

    def relative(self, path: str) -> str:
        try:
            return os.path.relpath(path, self.root)
        except ValueError:
            return path

    def matches(self, path: str) -> bool:
        if not self.includes and not self.excludes:
            return True
        name = os.path.basename(path)
        rel = to_slash(self.relative(path))
        if self.includes and not any(p.matches(name, rel) for p in self.includes):
            return False
        for p in self.excludes:
            if p.matches(name, rel):
                return False
        return True
