import os
from pathlib import Path

from folder_tail.reader import (
    READ_CHUNK_SIZE,
    TRUNCATION_MARKER,
    IncrementalReader,
    split_lines,
    tail_last_lines,
)
from folder_tail.state import FileState


def make_reader(max_line_bytes: int = 1024 * 1024):
    events = []
    return IncrementalReader(events.append, max_line_bytes=max_line_bytes), events


def append(p: Path, data: bytes):
    with p.open("ab") as h:
        h.write(data)


def test_split_lines_strips_cr_and_keeps_remainder():
    lines, partial = split_lines(b"a\nb\r\nc")
    assert lines == [b"a", b"b"]
    assert partial == b"c"
    assert split_lines(b"") == ([], b"")
    assert split_lines(b"x\n") == ([b"x"], b"")


def test_split_lines_round_trip():
    data = b"alpha\nbeta\n\ngamma\r\ndelta"
    lines, partial = split_lines(data)
    rebuilt = b"".join(line + b"\n" for line in lines) + partial
    assert rebuilt == data.replace(b"\r\n", b"\n")


def test_tail_last_lines_with_and_without_terminator(tmp_path: Path):
    f = tmp_path / "sample.log"
    f.write_bytes(b"one\ntwo\nthree\nfour\n")
    lines, partial = tail_last_lines(str(f), 2)
    assert lines == [b"three", b"four"]
    assert partial == b""

    f.write_bytes(b"one\ntwo\nthree")
    lines, partial = tail_last_lines(str(f), 2)
    assert lines == [b"two"]
    assert partial == b"three"

    lines, partial = tail_last_lines(str(f), 1)
    assert lines == []
    assert partial == b"three"


def test_tail_last_lines_spans_chunks(tmp_path: Path):
    f = tmp_path / "big.log"
    body = [("line-%05d " % i + "x" * 80).encode() for i in range(500)]
    f.write_bytes(b"\n".join(body) + b"\n")
    lines, partial = tail_last_lines(str(f), 120)
    assert partial == b""
    assert lines == body[-120:]
    assert len(b"\n".join(body)) > READ_CHUNK_SIZE


def test_tail_last_lines_empty_file(tmp_path: Path):
    f = tmp_path / "empty.log"
    f.write_bytes(b"")
    assert tail_last_lines(str(f), 5) == ([], b"")


def test_read_from_partial_then_update(tmp_path: Path):
    f = tmp_path / "partial.log"
    f.write_bytes(b"hello")
    reader, events = make_reader()
    state = FileState()

    reader.read_from(str(f), state, 0, False)
    assert len(events) == 1
    first = events[0]
    assert (first.text, first.partial, first.update) == ("hello", True, False)
    assert state.partial == b"hello"
    assert state.partial_delivered
    assert state.offset == 5

    append(f, b" world\nnext\n")
    reader.read_from(str(f), state, state.offset, True)
    update, nxt = events[1:]
    assert (update.text, update.partial, update.update) == ("hello world", False, True)
    assert (nxt.text, nxt.partial, nxt.update) == ("next", False, False)
    assert state.partial == b""
    assert not state.partial_delivered
    assert state.offset == os.path.getsize(f)


def test_growing_partial_is_updated_in_place(tmp_path: Path):
    f = tmp_path / "grow.log"
    f.write_bytes(b"abc")
    reader, events = make_reader()
    state = FileState()
    reader.read_from(str(f), state, 0, False)

    append(f, b"def")
    reader.read_new(str(f), state)
    grown = events[-1]
    assert (grown.text, grown.partial, grown.update) == ("abcdef", True, True)
    assert state.partial == b"abcdef"


def test_read_from_long_line_within_ceiling(tmp_path: Path):
    f = tmp_path / "longline.log"
    long = b"a" * (READ_CHUNK_SIZE + 512)
    f.write_bytes(long + b"\n")
    reader, events = make_reader()
    reader.read_from(str(f), FileState(), 0, False)
    assert len(events) == 1
    assert events[0].text == long.decode()
    assert not events[0].partial


def test_oversized_line_is_truncated_once(tmp_path: Path):
    f = tmp_path / "long.log"
    f.write_bytes(b"a" * 50 + b"\n")
    reader, events = make_reader(max_line_bytes=10)
    reader.read_from(str(f), FileState(), 0, False)
    assert len(events) == 1
    line = events[0]
    assert line.text == "a" * 10 + TRUNCATION_MARKER
    assert not line.partial


def test_oversized_partial_is_flushed_and_not_kept(tmp_path: Path):
    f = tmp_path / "runaway.log"
    f.write_bytes(b"b" * 30)
    reader, events = make_reader(max_line_bytes=10)
    state = FileState()
    reader.read_from(str(f), state, 0, False)
    assert [e.text for e in events] == ["b" * 10 + TRUNCATION_MARKER]
    assert not events[0].partial
    assert state.partial == b""
    assert state.offset == 30


def test_read_new_after_truncate(tmp_path: Path):
    f = tmp_path / "truncate.log"
    f.write_bytes(b"one\n")
    reader, events = make_reader()
    state = FileState(offset=100, partial=b"stale", partial_delivered=True)

    f.write_bytes(b"new\n")
    reader.read_new(str(f), state)
    assert len(events) == 1
    assert (events[0].text, events[0].partial, events[0].update) == ("new", False, False)
    assert state.offset == 4


def test_read_new_detects_replaced_file(tmp_path: Path):
    f = tmp_path / "rotate.log"
    f.write_bytes(b"one\n")
    reader, events = make_reader()
    state = FileState()
    reader.read_new(str(f), state)
    assert [e.text for e in events] == ["one"]

    fresh = tmp_path / "rotate.log.tmp"
    fresh.write_bytes(b"two\n")
    os.replace(fresh, f)
    reader.read_new(str(f), state)
    assert [e.text for e in events] == ["one", "two"]


def test_read_new_noop_when_unchanged(tmp_path: Path):
    f = tmp_path / "same.log"
    f.write_bytes(b"x\n")
    reader, events = make_reader()
    state = FileState()
    reader.read_new(str(f), state)
    reader.read_new(str(f), state)
    assert [e.text for e in events] == ["x"]


def test_read_new_missing_file_raises(tmp_path: Path):
    reader, _ = make_reader()
    try:
        reader.read_new(str(tmp_path / "gone.log"), FileState())
    except FileNotFoundError:
        pass
    else:
        raise AssertionError("expected FileNotFoundError")


def test_crlf_partial_completes_cleanly(tmp_path: Path):
    f = tmp_path / "crlf.log"
    f.write_bytes(b"first\r")
    reader, events = make_reader()
    state = FileState()
    reader.read_from(str(f), state, 0, False)
    assert events[-1].text == "first"
    assert events[-1].partial

    append(f, b"\n")
    reader.read_new(str(f), state)
    assert (events[-1].text, events[-1].partial, events[-1].update) == ("first", False, True)


def test_read_tail_records_partial(tmp_path: Path):
    f = tmp_path / "tail.log"
    f.write_bytes(b"l1\nl2\nl3\nfrag")
    reader, events = make_reader()
    state = FileState()
    reader.read_tail(str(f), state, 3)
    assert [(e.text, e.partial) for e in events] == [("l2", False), ("l3", False), ("frag", True)]
    assert state.partial == b"frag"
    assert state.partial_delivered
    assert state.offset == os.path.getsize(f)


def test_read_tail_zero_lines_starts_at_end(tmp_path: Path):
    f = tmp_path / "tail0.log"
    f.write_bytes(b"a\nb\n")
    reader, events = make_reader()
    state = FileState()
    reader.read_tail(str(f), state, 0)
    assert events == []
    assert state.offset == 4


def test_oversized_line_across_chunks_is_one_event(tmp_path: Path):
    f = tmp_path / "wide.log"
    f.write_bytes(b"w" * (READ_CHUNK_SIZE * 2 + 100) + b"\nafter\n")
    reader, events = make_reader(max_line_bytes=10)
    state = FileState()
    reader.read_from(str(f), state, 0, False)
    assert [e.text for e in events] == ["w" * 10 + TRUNCATION_MARKER, "after"]
    assert not state.skip_to_newline


def test_oversized_partial_rest_is_dropped_on_next_read(tmp_path: Path):
    f = tmp_path / "runaway.log"
    f.write_bytes(b"b" * 30)
    reader, events = make_reader(max_line_bytes=10)
    state = FileState()
    reader.read_from(str(f), state, 0, False)
    assert state.skip_to_newline

    append(f, b"bbbb\nnext\n")
    reader.read_new(str(f), state)
    assert [e.text for e in events] == ["b" * 10 + TRUNCATION_MARKER, "next"]
    assert not state.skip_to_newline
