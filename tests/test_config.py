from pathlib import Path

import pytest

from folder_tail.config import (
    CONFIG_FILE_NAME,
    DEFAULT_LINES,
    TailConfig,
    build_config,
    default_config_path,
    load_config_file,
    parse_list,
)
from folder_tail.errors import ConfigError
from folder_tail.reader import DEFAULT_MAX_LINE_BYTES


def test_parse_list():
    assert parse_list(None) == []
    assert parse_list("*.log, *.txt,,") == ["*.log", "*.txt"]
    assert parse_list(["a,b", "c"]) == ["a", "b", "c"]


def test_load_config_file(tmp_path: Path):
    p = tmp_path / CONFIG_FILE_NAME
    p.write_text("n: 3\ninclude: '*.log, *.txt'\nexclude:\n  - tmp/*\nrecursive: false\n", encoding="utf-8")
    data = load_config_file(p)
    assert data == {"n": 3, "include": ["*.log", "*.txt"], "exclude": ["tmp/*"], "recursive": False}
    assert default_config_path(str(tmp_path)) == p


def test_empty_config_file(tmp_path: Path):
    p = tmp_path / "empty.yaml"
    p.write_text("", encoding="utf-8")
    assert load_config_file(p) == {}
    assert default_config_path(str(tmp_path)) is None


@pytest.mark.parametrize(
    "body, needle",
    [
        ("bogus: 1\n", "unknown config keys"),
        ("- a\n- b\n", "must contain a mapping"),
        ("n: [1\n", "invalid YAML"),
    ],
)
def test_bad_config_file(tmp_path: Path, body, needle):
    p = tmp_path / "bad.yaml"
    p.write_text(body, encoding="utf-8")
    with pytest.raises(ConfigError) as ei:
        load_config_file(p)
    assert needle in str(ei.value)


def test_missing_config_file(tmp_path: Path):
    with pytest.raises(ConfigError):
        load_config_file(tmp_path / "nope.yaml")


def test_build_config_merges_overrides(tmp_path: Path):
    cfg = build_config(
        str(tmp_path),
        {"n": None, "from_start": True, "include": ["*.txt"], "exclude": None},
        {"n": 4, "include": ["*.log"], "exclude": ["x*"]},
    )
    assert cfg.root == str(tmp_path)
    assert cfg.n == 4
    assert cfg.from_start
    # an override replaces the file list rather than extending it
    assert cfg.include == ["*.txt"]
    assert cfg.exclude == ["x*"]


def test_build_config_defaults(tmp_path: Path):
    cfg = build_config(str(tmp_path))
    assert cfg.n == DEFAULT_LINES
    assert cfg.recursive
    assert not cfg.absolute
    assert cfg.to_dict()["root"] == str(tmp_path)


def test_build_config_rejects_bad_root(tmp_path: Path):
    with pytest.raises(ConfigError):
        build_config(str(tmp_path / "missing"))
    f = tmp_path / "file.txt"
    f.write_text("x", encoding="utf-8")
    with pytest.raises(ConfigError):
        build_config(str(f))


def test_build_config_unknown_override(tmp_path: Path):
    with pytest.raises(ConfigError):
        build_config(str(tmp_path), {"colour": "red"})


def test_non_positive_max_line_bytes_uses_default(tmp_path: Path):
    cfg = TailConfig(root=str(tmp_path), max_line_bytes=0)
    assert cfg.max_line_bytes == DEFAULT_MAX_LINE_BYTES


def test_buffers_must_be_positive(tmp_path: Path):
    with pytest.raises(ConfigError):
        TailConfig(root=str(tmp_path), line_buffer=0)


@pytest.mark.parametrize(
    "body, needle",
    [
        ("scan_interval: '5'\n", "scan_interval must be a number"),
        ("n: '3'\n", "n must be an integer"),
        ("recursive: 'no'\n", "recursive must be true or false"),
        ("max_line_bytes: true\n", "max_line_bytes must be an integer"),
        ("n:\n", "n must be an integer"),
    ],
)
def test_mistyped_config_values_rejected(tmp_path: Path, body, needle):
    p = tmp_path / "typed.yaml"
    p.write_text(body, encoding="utf-8")
    values = load_config_file(p)
    with pytest.raises(ConfigError) as ei:
        build_config(str(tmp_path), {}, values)
    assert needle in str(ei.value)


@pytest.mark.parametrize("body", ["include: 5\n", "exclude: [1, 2]\n", "include: {a: b}\n"])
def test_mistyped_pattern_lists_rejected(tmp_path: Path, body):
    p = tmp_path / "patterns.yaml"
    p.write_text(body, encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config_file(p)


def test_integer_scan_interval_accepted(tmp_path: Path):
    cfg = TailConfig(root=str(tmp_path), scan_interval=2)
    assert cfg.scan_interval == 2.0
    assert isinstance(cfg.scan_interval, float)
