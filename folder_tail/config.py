from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

import yaml

from .errors import ConfigError
from .reader import DEFAULT_MAX_LINE_BYTES

CONFIG_FILE_NAME = ".folder-tail.yaml"

DEFAULT_LINES = 10
DEFAULT_SCAN_INTERVAL = 5.0
DEFAULT_LINE_BUFFER = 4096
DEFAULT_ERROR_BUFFER = 64


@dataclass
class TailConfig:
    root: str
    n: int = DEFAULT_LINES
    from_start: bool = False
    scan_interval: float = DEFAULT_SCAN_INTERVAL  # seconds; <= 0 disables
    absolute: bool = False
    include: List[str] = field(default_factory=list)
    exclude: List[str] = field(default_factory=list)
    force_regex: bool = False
    recursive: bool = True
    max_line_bytes: int = DEFAULT_MAX_LINE_BYTES
    use_polling: bool = False
    line_buffer: int = DEFAULT_LINE_BUFFER
    error_buffer: int = DEFAULT_ERROR_BUFFER

    def __post_init__(self):
        self.root = os.path.abspath(self.root or ".")
        _check_types(self)
        self.scan_interval = float(self.scan_interval)
        if self.max_line_bytes <= 0:
            self.max_line_bytes = DEFAULT_MAX_LINE_BYTES
        if self.line_buffer <= 0 or self.error_buffer <= 0:
            raise ConfigError("line_buffer and error_buffer must be positive")

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


_INT_KEYS = {"n", "max_line_bytes", "line_buffer", "error_buffer"}
_BOOL_KEYS = {"from_start", "absolute", "force_regex", "recursive", "use_polling"}
_LIST_KEYS = {"include", "exclude"}


def _check_types(cfg: TailConfig) -> None:
    for key in _INT_KEYS:
        val = getattr(cfg, key)
        # bool is an int subclass
        if isinstance(val, bool) or not isinstance(val, int):
            raise ConfigError(f"{key} must be an integer, got {val!r}")
    for key in _BOOL_KEYS:
        val = getattr(cfg, key)
        if not isinstance(val, bool):
            raise ConfigError(f"{key} must be true or false, got {val!r}")
    if isinstance(cfg.scan_interval, bool) or not isinstance(cfg.scan_interval, (int, float)):
        raise ConfigError(f"scan_interval must be a number, got {cfg.scan_interval!r}")
    for key in _LIST_KEYS:
        val = getattr(cfg, key)
        if not isinstance(val, list) or not all(isinstance(v, str) for v in val):
            raise ConfigError(f"{key} must be a list of patterns, got {val!r}")


_FILE_KEYS = {f.name for f in fields(TailConfig)} - {"root"}


def parse_list(value: Union[None, str, Iterable[str]]) -> List[str]:
    """Split comma-separated pattern strings; lists are flattened the same way."""
    if not value:
        return []
    if isinstance(value, str):
        items = [value]
    elif isinstance(value, (list, tuple)):
        items = list(value)
    else:
        raise ConfigError(f"expected a pattern or list of patterns, got {value!r}")
    out: List[str] = []
    for item in items:
        if not isinstance(item, str):
            raise ConfigError(f"patterns must be strings, got {item!r}")
        for part in item.split(","):
            part = part.strip()
            if part:
                out.append(part)
    return out


def load_config_file(path: Union[str, Path]) -> Dict[str, Any]:
    p = Path(path)
    try:
        data = yaml.safe_load(p.read_text(encoding="utf-8"))
    except OSError as e:
        raise ConfigError(f"cannot read config file {p}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid YAML in {p}: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"config file {p} must contain a mapping")
    unknown = sorted(set(data) - _FILE_KEYS)
    if unknown:
        raise ConfigError(f"unknown config keys in {p}: {', '.join(unknown)}")
    for key in _LIST_KEYS & set(data):
        data[key] = parse_list(data[key])
    return data


def default_config_path(root: str) -> Optional[Path]:
    p = Path(root) / CONFIG_FILE_NAME
    return p if p.is_file() else None


def build_config(
    root: Optional[str],
    overrides: Optional[Dict[str, Any]] = None,
    file_values: Optional[Dict[str, Any]] = None,
) -> TailConfig:
    """Merge config-file values under explicit overrides and validate the root.

    An override replaces the file value, pattern lists included.
    """
    abs_root = os.path.abspath(root or ".")
    if not os.path.exists(abs_root):
        raise ConfigError(f"root does not exist: {abs_root}")
    if not os.path.isdir(abs_root):
        raise ConfigError(f"root is not a directory: {abs_root}")
    values: Dict[str, Any] = dict(file_values or {})
    for key, val in (overrides or {}).items():
        if val is None:
            continue
        if key in _LIST_KEYS:
            val = parse_list(val)
        values[key] = val
    try:
        return TailConfig(root=abs_root, **values)
    except TypeError as e:
        raise ConfigError(str(e)) from e
