from __future__ import annotations

import asyncio
import enum
import logging
import os
import threading
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

from watchdog.events import (
    DirCreatedEvent,
    DirDeletedEvent,
    DirMovedEvent,
    FileClosedEvent,
    FileCreatedEvent,
    FileDeletedEvent,
    FileModifiedEvent,
    FileMovedEvent,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver, ObservedWatch
from watchdog.observers.polling import PollingObserver

logger = logging.getLogger("folder_tail.watchset")


class NotificationKind(enum.Enum):
    CREATE = "create"
    WRITE = "write"
    REMOVE = "remove"  # deleted or renamed away


@dataclass(frozen=True)
class Notification:
    kind: NotificationKind
    path: str
    is_directory: bool = False


def translate_event(event: FileSystemEvent) -> List[Notification]:
    """Map a watchdog event onto zero or more notifications."""
    src = os.fsdecode(event.src_path)
    if isinstance(event, (FileMovedEvent, DirMovedEvent)):
        dest = os.fsdecode(event.dest_path)
        return [
            Notification(NotificationKind.REMOVE, src, event.is_directory),
            Notification(NotificationKind.CREATE, dest, event.is_directory),
        ]
    if isinstance(event, (FileDeletedEvent, DirDeletedEvent)):
        return [Notification(NotificationKind.REMOVE, src, event.is_directory)]
    if isinstance(event, (FileCreatedEvent, DirCreatedEvent)):
        return [Notification(NotificationKind.CREATE, src, event.is_directory)]
    if isinstance(event, (FileModifiedEvent, FileClosedEvent)):
        return [Notification(NotificationKind.WRITE, src, False)]
    return []


Item = Union[Notification, Exception]


class NotificationHandler(FileSystemEventHandler):
    """Forwards watchdog events from the observer thread onto an asyncio queue."""

    def __init__(self, queue: "asyncio.Queue[Item]", loop: Optional[asyncio.AbstractEventLoop] = None):
        super().__init__()
        self.queue = queue
        self.loop = loop

    def _forward(self, item: Item) -> None:
        if self.loop is None or self.loop.is_closed():
            return
        try:
            self.loop.call_soon_threadsafe(self.queue.put_nowait, item)
        except RuntimeError:
            # loop shut down between the check and the call
            logger.debug("dropping %r, event loop closed", item)

    def on_any_event(self, event: FileSystemEvent) -> None:
        try:
            items = translate_event(event)
        except Exception as e:
            self._forward(e)
            return
        for item in items:
            self._forward(item)


def make_observer(use_polling: bool = False, timeout: float = 1.0) -> BaseObserver:
    if use_polling:
        return PollingObserver(timeout=timeout)
    return Observer(timeout=timeout)


class WatchSet:
    """Directory path -> watchdog watch, at most one per directory.

    Every directory is scheduled non-recursively; recursion is handled by the
    engine adding one watch per discovered directory.
    """

    def __init__(self, observer: BaseObserver, handler: FileSystemEventHandler):
        self.observer = observer
        self.handler = handler
        self._watches: Dict[str, ObservedWatch] = {}
        self._lock = threading.Lock()

    def start(self) -> None:
        if not self.observer.is_alive():
            self.observer.start()

    def add(self, directory: str) -> bool:
        """Subscribe to ``directory``; returns False if already watched.

        Raises OSError when the subscription cannot be established.
        """
        with self._lock:
            if directory in self._watches:
                return False
        watch = self.observer.schedule(self.handler, directory, recursive=False)
        with self._lock:
            self._watches[directory] = watch
        logger.debug("watching %s", directory)
        return True

    def remove(self, directory: str) -> bool:
        with self._lock:
            watch = self._watches.pop(directory, None)
        if watch is None:
            return False
        try:
            self.observer.unschedule(watch)
        except (KeyError, OSError) as e:
            logger.debug("unschedule %s: %s", directory, e)
        logger.debug("stopped watching %s", directory)
        return True

    def paths(self) -> List[str]:
        with self._lock:
            return list(self._watches)

    def __contains__(self, directory: Any) -> bool:
        with self._lock:
            return directory in self._watches

    def __len__(self) -> int:
        with self._lock:
            return len(self._watches)

    def close(self, timeout: Optional[float] = 5.0) -> None:
        with self._lock:
            self._watches.clear()
        if self.observer.is_alive():
            self.observer.stop()
            self.observer.join(timeout)
