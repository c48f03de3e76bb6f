from __future__ import annotations

import asyncio
import enum
import logging
import os
import stat
from typing import Callable, Dict, Optional

from watchdog.observers.api import BaseObserver

from . import sniff
from .config import TailConfig
from .patterns import PathMatcher, compile_patterns
from .queues import EventQueue
from .reader import IncrementalReader, Line
from .reconcile import Reconciler, is_regular
from .state import FileState, FileStateStore
from .watchset import Item, Notification, NotificationHandler, NotificationKind, WatchSet, make_observer

logger = logging.getLogger("folder_tail.runtime")


class TailerState(enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    SHUTTING_DOWN = "shutting_down"
    STOPPED = "stopped"


class Tailer:
    """Discovers text files under a root and streams their appended lines.

    All watch, read and reconcile work happens on one asyncio task. Lines
    and errors are published on bounded ``EventQueue``s; ``done`` is set
    once shutdown completes.
    """

    def __init__(self, config: TailConfig, observer: Optional[BaseObserver] = None):
        self.config = config
        # raises PatternError before anything starts
        includes = compile_patterns(config.include, config.force_regex)
        excludes = compile_patterns(config.exclude, config.force_regex)
        self.matcher = PathMatcher(config.root, includes, excludes)
        self.states = FileStateStore()
        self.lines: EventQueue[Line] = EventQueue(config.line_buffer, drop_oldest=True, name="lines")
        self.errors: EventQueue[Exception] = EventQueue(config.error_buffer, drop_oldest=False, name="errors")
        self.done = asyncio.Event()
        self.reader = IncrementalReader(self.lines.put, self.display_path, config.max_line_bytes)
        self.reconciler = Reconciler(self)
        self._notifications: "asyncio.Queue[Item]" = asyncio.Queue()
        self._handler = NotificationHandler(self._notifications, None)
        self.watches = WatchSet(observer or make_observer(config.use_polling), self._handler)
        self._dispatch: Dict[NotificationKind, Callable[[str], None]] = {
            NotificationKind.CREATE: self._on_create,
            NotificationKind.WRITE: self._on_write,
            NotificationKind.REMOVE: self.remove_path,
        }
        self._stop: Optional[asyncio.Event] = None
        self._task: Optional[asyncio.Task] = None
        self.state = TailerState.IDLE

    # -- queries -----------------------------------------------------------

    def file_count(self) -> int:
        return len(self.states)

    def display_path(self, path: str) -> str:
        if self.config.absolute:
            return path
        try:
            return os.path.relpath(path, self.config.root)
        except ValueError:
            return path

    def classify(self, path: str) -> bool:
        # explicit includes opt files in regardless of extension
        return sniff.classify(path, skip_binary_extensions=not self.matcher.includes)

    def report(self, err: Exception) -> None:
        logger.warning("%s", err)
        self.errors.put(err)

    # -- watch set ---------------------------------------------------------

    def add_watch(self, directory: str) -> bool:
        try:
            return self.watches.add(directory)
        except OSError as e:
            self.report(e)
            return False

    def remove_watch(self, directory: str) -> None:
        """Unwatch ``directory`` and forget every file beneath it."""
        self.watches.remove(directory)
        gone = self.states.remove_under(directory)
        if gone:
            logger.debug("forgot %d file(s) under %s", len(gone), directory)

    def remove_path(self, path: str) -> None:
        if path in self.watches:
            self.remove_watch(path)
            return
        if self.states.remove(path):
            logger.debug("stopped tailing %s", path)

    # -- registration ------------------------------------------------------

    def ensure_file(self, path: str, classified: bool = False) -> Optional[FileState]:
        """Start tailing ``path`` if it is an included text file."""
        if not self.matcher.matches(path):
            return None
        if not classified:
            try:
                if not self.classify(path):
                    return None
            except FileNotFoundError:
                return None
            except OSError as e:
                self.report(e)
                return None
        state = self.states.create(path)
        if state is None:
            return None
        logger.debug("tailing %s", path)
        try:
            self._init_file(path, state)
        except FileNotFoundError:
            self.states.remove(path)
            return None
        except OSError as e:
            self.report(e)
        return state

    def _init_file(self, path: str, state: FileState) -> None:
        if self.config.from_start:
            self.reader.read_from(path, state, 0, False)
            return
        self.reader.read_tail(path, state, self.config.n)

    # -- notifications -----------------------------------------------------

    def handle(self, note: Notification) -> None:
        self._dispatch[note.kind](note.path)

    def _on_create(self, path: str) -> None:
        try:
            st = os.stat(path)
        except OSError:
            return
        if stat.S_ISDIR(st.st_mode):
            if not self.config.recursive:
                return
            self.add_watch(path)
            self.reconciler.scan_dir(path)
            return
        if stat.S_ISREG(st.st_mode):
            self.ensure_file(path)

    def _on_write(self, path: str) -> None:
        state = self.states.get(path)
        if state is None:
            if is_regular(path):
                self.ensure_file(path)
            return
        try:
            self.reader.read_new(path, state)
        except FileNotFoundError:
            self.remove_path(path)
        except OSError as e:
            self.report(e)

    def scan_and_register(self) -> None:
        self.reconciler.scan_and_register()

    # -- lifecycle ---------------------------------------------------------

    async def start(self, stop: Optional[asyncio.Event] = None) -> None:
        """Subscribe, run the initial scan and spawn the engine loop.

        Raises OSError if the root cannot be watched (non-recursive mode) or
        listed; nothing is left running in that case.
        """
        if self.state is not TailerState.IDLE:
            raise RuntimeError(f"tailer already {self.state.value}")
        self._handler.loop = asyncio.get_running_loop()
        self._stop = stop or asyncio.Event()
        self.watches.start()
        try:
            if not self.config.recursive:
                self.watches.add(self.config.root)
            self.scan_and_register()
        except BaseException:
            self.watches.close()
            raise
        self.state = TailerState.RUNNING
        self._task = asyncio.create_task(self._run(self._stop))

    def stop(self) -> None:
        if self._stop is not None:
            self._stop.set()

    async def wait_closed(self) -> None:
        await self.done.wait()

    async def _run(self, stop: asyncio.Event) -> None:
        stopped: Optional[asyncio.Future] = None
        try:
            loop = asyncio.get_running_loop()
            interval = self.config.scan_interval
            next_scan = loop.time() + interval if interval > 0 else None
            stopped = asyncio.ensure_future(stop.wait())
            while True:
                timeout = None
                if next_scan is not None:
                    timeout = max(0.0, next_scan - loop.time())
                getter = asyncio.ensure_future(self._notifications.get())
                done, _ = await asyncio.wait({getter, stopped}, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
                if getter in done:
                    self._process(getter.result())
                else:
                    getter.cancel()
                if stopped in done:
                    break
                if getter in done:
                    continue
                self._reconcile()
                next_scan = loop.time() + interval
        except Exception as e:
            logger.exception("engine loop failed")
            self.errors.put(e)
        finally:
            if stopped is not None:
                stopped.cancel()
            self._shutdown()

    def _process(self, item: Item) -> None:
        if isinstance(item, Exception):
            self.report(item)
            return
        try:
            self.handle(item)
        except Exception as e:
            logger.exception("failed to handle %s", item)
            self.report(e)

    def _reconcile(self) -> None:
        try:
            self.scan_and_register()
        except Exception as e:
            self.report(e)

    def _shutdown(self) -> None:
        self.state = TailerState.SHUTTING_DOWN
        self.watches.close()
        self.lines.close()
        self.errors.close()
        self.done.set()
        self.state = TailerState.STOPPED
        logger.debug("tailer stopped")


async def run_tail(
    config: TailConfig,
    on_line: Callable[[Line], None],
    on_error: Optional[Callable[[Exception], None]] = None,
    stop: Optional[asyncio.Event] = None,
    on_start: Optional[Callable[[Tailer], None]] = None,
) -> None:
    """Run a tailer until ``stop`` is set or the calling task is cancelled."""
    tailer = Tailer(config)
    stop = stop or asyncio.Event()
    await tailer.start(stop)
    if on_start:
        on_start(tailer)

    async def _lines():
        async for line in tailer.lines:
            on_line(line)

    async def _errors():
        async for err in tailer.errors:
            if on_error:
                on_error(err)

    try:
        await asyncio.gather(_lines(), _errors())
    finally:
        stop.set()
        await tailer.wait_closed()
