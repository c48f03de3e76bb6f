import asyncio
from pathlib import Path

from watchdog.events import (
    DirDeletedEvent,
    DirModifiedEvent,
    FileCreatedEvent,
    FileModifiedEvent,
    FileMovedEvent,
)

from folder_tail.watchset import (
    Notification,
    NotificationHandler,
    NotificationKind,
    WatchSet,
    make_observer,
    translate_event,
)


def test_translate_move_is_remove_then_create():
    notes = translate_event(FileMovedEvent("/r/a.log", "/r/b.log"))
    assert notes == [
        Notification(NotificationKind.REMOVE, "/r/a.log"),
        Notification(NotificationKind.CREATE, "/r/b.log"),
    ]


def test_translate_basic_events():
    assert translate_event(FileCreatedEvent("/r/a")) == [Notification(NotificationKind.CREATE, "/r/a")]
    assert translate_event(FileModifiedEvent("/r/a")) == [Notification(NotificationKind.WRITE, "/r/a")]
    assert translate_event(DirDeletedEvent("/r/d")) == [Notification(NotificationKind.REMOVE, "/r/d", True)]
    # directory metadata changes carry no content
    assert translate_event(DirModifiedEvent("/r/d")) == []


def test_handler_forwards_to_loop():
    async def run_case():
        queue = asyncio.Queue()
        handler = NotificationHandler(queue, asyncio.get_running_loop())
        handler.on_any_event(FileCreatedEvent("/r/new.log"))
        return await asyncio.wait_for(queue.get(), 2)

    assert asyncio.run(run_case()) == Notification(NotificationKind.CREATE, "/r/new.log")


def test_handler_without_loop_drops_events():
    queue = asyncio.Queue()
    handler = NotificationHandler(queue)
    handler.on_any_event(FileCreatedEvent("/r/new.log"))
    assert queue.empty()


def test_watch_set_is_idempotent(tmp_path: Path):
    sub = tmp_path / "sub"
    sub.mkdir()
    ws = WatchSet(make_observer(use_polling=True), NotificationHandler(asyncio.Queue()))
    try:
        assert ws.add(str(tmp_path))
        assert not ws.add(str(tmp_path))
        assert ws.add(str(sub))
        assert len(ws) == 2
        assert str(sub) in ws
        assert ws.remove(str(sub))
        assert not ws.remove(str(sub))
        assert ws.paths() == [str(tmp_path)]
    finally:
        ws.close()
    assert len(ws) == 0
