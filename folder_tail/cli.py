import asyncio
import logging
import os
from typing import Dict, List, Optional, Tuple

import typer

from .config import build_config, default_config_path, load_config_file
from .errors import ConfigError
from .reader import Line

VERSION = "0.1.0"

app = typer.Typer(help="Folder tail: follow every text file under a directory tree", add_completion=False)


class LinePrinter:
    """Prints complete lines; partial lines are held until they complete."""

    def __init__(self, show_paths: bool = True):
        self.show_paths = show_paths
        self._pending: Dict[str, str] = {}

    def _echo(self, path: str, text: str) -> None:
        typer.echo(f"{path}: {text}" if self.show_paths else text)

    def __call__(self, line: Line) -> None:
        if line.partial:
            self._pending[line.path] = line.text
            return
        self._pending.pop(line.path, None)
        self._echo(line.path, line.text)

    def flush(self) -> None:
        for path, text in self._pending.items():
            self._echo(path, text)
        self._pending.clear()


def print_error(err: Exception) -> None:
    typer.echo(f"[error] {err}", err=True)


def split_root(args: Optional[List[str]]) -> Tuple[str, List[str]]:
    """The first positional is the root if it names a directory; the rest are patterns."""
    args = list(args or [])
    if args and os.path.isdir(args[0]):
        return args[0], args[1:]
    return ".", args


def setup_logging(level: str, log_file: Optional[str]) -> None:
    numeric = getattr(logging, level.upper(), None)
    if not isinstance(numeric, int):
        raise typer.BadParameter(f"unknown log level {level!r}", param_hint="--log-level")
    logging.basicConfig(
        level=numeric,
        filename=log_file,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _version_callback(value: bool):
    if value:
        typer.echo(VERSION)
        raise typer.Exit()


@app.command()
def tail(
    args: Optional[List[str]] = typer.Argument(None, help="[ROOT] [PATTERN ...]; patterns are globs unless prefixed with re:", metavar="[ROOT] [PATTERN]..."),
    lines: Optional[int] = typer.Option(None, "--lines", "-n", help="Last lines to show per file on startup, 0 starts at end (default 10)"),
    from_start: Optional[bool] = typer.Option(None, "--from-start/--no-from-start", help="Read existing files from the beginning"),
    scan_interval: Optional[float] = typer.Option(None, "--scan-interval", help="Seconds between rescans, 0 disables (default 5)"),
    absolute: Optional[bool] = typer.Option(None, "--absolute/--relative", help="Show absolute paths"),
    include: Optional[List[str]] = typer.Option(None, "--include", help="Include patterns, comma-separated (repeatable)"),
    exclude: Optional[List[str]] = typer.Option(None, "--exclude", help="Exclude patterns, comma-separated (repeatable)"),
    force_regex: Optional[bool] = typer.Option(None, "--regex/--glob", "--re", help="Treat patterns as regular expressions"),
    recursive: Optional[bool] = typer.Option(None, "--recursive/--no-recursive", help="Descend into subdirectories (default on)"),
    max_line_bytes: Optional[int] = typer.Option(None, "--max-line-bytes", help="Bytes per line before truncation (default 1 MiB)"),
    polling: Optional[bool] = typer.Option(None, "--polling/--native", help="Poll the filesystem instead of using native notifications"),
    config: Optional[str] = typer.Option(None, "--config", help="YAML config file (defaults to ROOT/.folder-tail.yaml)", metavar="FILE"),
    log_level: str = typer.Option("WARNING", "--log-level", help="Logging level"),
    log_file: Optional[str] = typer.Option(None, "--log-file", help="Write logs to FILE instead of stderr", metavar="FILE"),
    version: bool = typer.Option(False, "--version", callback=_version_callback, is_eager=True, help="Print version and exit"),
):
    """Follow appended lines of every text file under ROOT.

    - Files created later are picked up automatically.
    - Truncated or replaced files are re-read from the start.
    - Binary files are skipped.
    """
    from .runtime import run_tail

    setup_logging(log_level, log_file)
    root, patterns = split_root(args)
    overrides = {
        "n": lines,
        "from_start": from_start,
        "scan_interval": scan_interval,
        "absolute": absolute,
        "include": list(include or []) + patterns or None,
        "exclude": exclude,
        "force_regex": force_regex,
        "recursive": recursive,
        "max_line_bytes": max_line_bytes,
        "use_polling": polling,
    }
    try:
        path = config or default_config_path(root)
        file_values = load_config_file(path) if path else {}
        cfg = build_config(root, overrides, file_values)
    except ConfigError as e:
        typer.echo(str(e), err=True)
        raise typer.Exit(1)

    printer = LinePrinter()
    try:
        asyncio.run(run_tail(cfg, printer, print_error))
    except KeyboardInterrupt:
        pass
    except (ConfigError, OSError) as e:
        typer.echo(str(e), err=True)
        raise typer.Exit(1)
    finally:
        printer.flush()


def main():
    """Entry point for console_scripts."""
    app()


if __name__ == "__main__":
    main()
