import errno
import io
import os
import signal
import socket
import threading
from types import SimpleNamespace

import pytest

from conftest import make_event, make_ump
from seqdump.dump import (
    Cancellation,
    EventDumper,
    ProtocolMode,
    State,
    dispatch,
    format_line,
)
from seqdump.events import (
    EVENT_SIZE,
    UMP_EVENT_SIZE,
    Address,
    EventType,
    RawEvent,
    decode_legacy,
)
from seqdump.source import SequencerSource
from seqdump.ump import decode_ump


class FakeSource:
    """
    Source replaying scripted batches. Each batch is readable once; items
    are records (bytes), exceptions to raise, or callables returning one
    of those (or None to skip).
    """

    def __init__(self, batches, mode=ProtocolMode.LEGACY):
        self.mode = mode
        self.batches = list(batches)
        self.current = None
        self.closed = False
        self.pulled = 0
        self._rsock, self._wsock = socket.socketpair()
        if self.batches:
            self._arm()

    def _arm(self):
        self.current = list(self.batches.pop(0))
        self._wsock.send(b"\x00")

    def fileno(self):
        return self._rsock.fileno()

    def pull(self):
        while self.current:
            item = self.current.pop(0)
            if callable(item):
                item = item()
            if item is None:
                continue
            if isinstance(item, BaseException):
                raise item
            self.pulled += 1
            size = UMP_EVENT_SIZE if self.mode.is_ump else EVENT_SIZE
            raw, _ = RawEvent.parse(item, size)
            return raw

        if self.current is not None:
            self._rsock.recv(1)
            self.current = None
            if self.batches:
                self._arm()
        return None

    def close(self):
        self.closed = True
        self._rsock.close()
        self._wsock.close()


class RecordingStream(io.StringIO):
    def __init__(self):
        super().__init__()
        self.flushes = []

    def flush(self):
        self.flushes.append(len(self.getvalue()))
        super().flush()


def note_on(key, source=(20, 0)):
    return make_event(EventType.NOTEON, bytes([0, key, 100]), source=source)


def line(key, source=" 20:0   "):
    return source + "Note on".ljust(23) + f" 0, note {key}, velocity 100\n"


@pytest.fixture
def cancel():
    with Cancellation() as cancel:
        yield cancel


def test_format_line_address_columns():
    decoded = decode_legacy(RawEvent.parse(make_event(EventType.CLOCK))[0])
    assert format_line(Address(0, 0), ProtocolMode.LEGACY, decoded) == "  0:0   Clock"
    assert format_line(Address(128, 12), ProtocolMode.LEGACY, decoded) == "128:12  Clock"


def test_format_line_group_only_for_channel_voice():
    midi1 = decode_ump([0x23B20740])
    midi2 = decode_ump([0x4C900000, 0x10000000])
    other = decode_ump([0x13F80000])
    addr = Address(20, 0)

    assert format_line(addr, ProtocolMode.UMP_MIDI1, midi1).startswith(" 20:0   Group  3, ")
    assert format_line(addr, ProtocolMode.UMP_MIDI2, midi2).startswith(" 20:0   Group 12, ")
    assert format_line(addr, ProtocolMode.UMP_MIDI1, other) == f" 20:0   {other}"


@pytest.mark.parametrize(
    "mode,record,expected",
    [
        pytest.param(
            ProtocolMode.LEGACY,
            make_event(EventType.CONTROLLER, bytes([2, 0, 0, 0, 7, 0, 0, 0, 64, 0, 0, 0])),
            " 20:0   " + "Control change".ljust(23) + " 2, controller 7, value 64",
            id="legacy",
        ),
        pytest.param(
            ProtocolMode.UMP_MIDI1,
            make_ump([0x23B20740]),
            " 20:0   Group  3, " + "Control change".ljust(23) + " 2, controller 7, value 0x40",
            id="ump-midi1",
        ),
        pytest.param(
            ProtocolMode.UMP_MIDI2,
            make_ump([0x23B20740]),
            " 20:0   Group  3, " + "Control change".ljust(23) + " 2, controller 7, value 0x40",
            id="midi1-packet-in-midi2-client",
        ),
        pytest.param(
            ProtocolMode.UMP_MIDI2,
            make_ump([0x40C00001, 0x05000203]),
            " 20:0   Group  0, "
            + "Program change".ljust(23)
            + " 0, program 5, Bank select 2:3",
            id="ump-midi2",
        ),
        pytest.param(
            ProtocolMode.UMP_MIDI1,
            make_ump([0x10F80000]),
            " 20:0   UMP event: type = 1, group = 0, status = 15, 0x10f80000",
            id="ump-system",
        ),
        pytest.param(
            ProtocolMode.UMP_MIDI2,
            make_event(
                EventType.PORT_START, bytes([24, 1]), source=(0, 1), size=UMP_EVENT_SIZE
            ),
            "  0:1   " + "Port start".ljust(27) + "24:1",
            id="announcement-in-ump-client",
        ),
    ],
)
def test_dispatch(mode, record, expected):
    size = UMP_EVENT_SIZE if mode.is_ump else EVENT_SIZE
    raw, _ = RawEvent.parse(record, size)
    assert dispatch(raw, mode) == expected


def test_dispatch_unknown_legacy_event():
    raw, _ = RawEvent.parse(make_event(99))
    assert dispatch(raw, ProtocolMode.LEGACY) == " 20:0   Event type 99"


def test_protocol_mode():
    assert not ProtocolMode.LEGACY.is_ump
    assert ProtocolMode(1).is_ump
    assert ProtocolMode(2).is_ump


def test_run_dumps_batches_in_order(cancel):
    source = FakeSource([[note_on(60), note_on(61)], [note_on(62), cancel.set]])
    out = RecordingStream()

    dumper = EventDumper(source, ProtocolMode.LEGACY, cancel, out=out)
    dumper.run()

    assert out.getvalue() == line(60) + line(61) + line(62)
    # one flush per drained batch
    assert out.flushes[:2] == [len(line(60) + line(61)), len(out.getvalue())]
    assert dumper.state is State.TERMINATED
    assert source.closed


def test_run_ump_mode(cancel):
    source = FakeSource(
        [[make_ump([0x2294407F], source=(24, 0)), cancel.set]],
        mode=ProtocolMode.UMP_MIDI1,
    )
    out = RecordingStream()

    EventDumper(source, ProtocolMode.UMP_MIDI1, cancel, out=out).run()

    assert out.getvalue() == (
        " 24:0   Group  2, " + "Note on".ljust(23) + " 4, note 64, velocity 0x7f\n"
    )


def test_cancel_before_run(cancel):
    source = FakeSource([[note_on(60)]])
    out = RecordingStream()
    cancel.set()

    dumper = EventDumper(source, ProtocolMode.LEGACY, cancel, out=out)
    dumper.run()

    assert out.getvalue() == ""
    assert source.pulled == 0
    assert dumper.state is State.TERMINATED
    assert source.closed


def test_cancel_while_waiting(cancel):
    source = FakeSource([])
    out = RecordingStream()
    timer = threading.Timer(0.05, cancel.set)
    timer.start()

    try:
        EventDumper(source, ProtocolMode.LEGACY, cancel, out=out).run()
    finally:
        timer.cancel()

    assert out.getvalue() == ""
    assert source.closed


def test_cancel_while_draining(cancel):
    def stopping(record):
        def item():
            cancel.set()
            return record

        return item

    source = FakeSource([[note_on(60), stopping(note_on(61)), note_on(62), note_on(63)]])
    out = RecordingStream()

    EventDumper(source, ProtocolMode.LEGACY, cancel, out=out).run()

    assert out.getvalue() == line(60) + line(61) + line(62) + line(63)
    assert source.pulled == 4
    assert out.flushes[0] == len(out.getvalue())
    assert source.closed


class StoppingStream(RecordingStream):
    def __init__(self, cancel):
        super().__init__()
        self.cancel = cancel

    def write(self, text):
        self.cancel.set()
        return super().write(text)


def test_cancel_keeps_records_already_read(cancel):
    rfd, wfd = os.pipe()
    os.set_blocking(rfd, False)
    os.write(wfd, note_on(60) + note_on(61) + note_on(62))
    seq = SimpleNamespace(fileno=lambda: rfd, close=lambda: os.close(rfd) or os.close(wfd))
    source = SequencerSource(seq)
    out = StoppingStream(cancel)

    EventDumper(source, ProtocolMode.LEGACY, cancel, out=out).run()

    assert out.getvalue() == line(60) + line(61) + line(62)
    assert source._buffer == b""


def test_signal_cancels_waiting_loop(cancel):
    previous = signal.getsignal(signal.SIGUSR1)
    cancel.install(signal.SIGUSR1)
    timer = threading.Timer(0.05, os.kill, (os.getpid(), signal.SIGUSR1))
    timer.start()

    try:
        EventDumper(FakeSource([]), ProtocolMode.LEGACY, cancel, out=io.StringIO()).run()
    finally:
        timer.cancel()
        signal.signal(signal.SIGUSR1, previous)

    assert cancel.is_set()


def test_cancellation_set_twice(cancel):
    cancel.set()
    cancel.set()
    assert cancel.is_set()


def test_read_error_propagates(cancel):
    source = FakeSource([[note_on(60), OSError(errno.EIO, "Input/output error")]])
    out = RecordingStream()

    dumper = EventDumper(source, ProtocolMode.LEGACY, cancel, out=out)
    with pytest.raises(OSError) as excinfo:
        dumper.run()

    assert excinfo.value.errno == errno.EIO
    assert out.getvalue() == line(60)
    assert out.flushes[-1] == len(line(60))
    assert dumper.state is State.TERMINATED
    assert source.closed


def test_default_output_is_stdout(cancel, capsys):
    source = FakeSource([[note_on(60), cancel.set]])

    EventDumper(source, ProtocolMode.LEGACY, cancel).run()

    assert capsys.readouterr().out == line(60)
