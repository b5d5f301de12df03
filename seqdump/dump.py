import logging
import selectors
import signal
import socket
import sys
from enum import Enum, IntEnum, auto
from typing import Protocol, TextIO

from . import ump
from .events import Address, RawEvent, decode_legacy

logger = logging.getLogger(__name__)


class ProtocolMode(IntEnum):
    """Client MIDI version, as given to -u"""

    LEGACY = 0
    UMP_MIDI1 = 1
    UMP_MIDI2 = 2

    @property
    def is_ump(self) -> bool:
        return self is not ProtocolMode.LEGACY


class Source(Protocol):
    mode: ProtocolMode

    def fileno(self) -> int: ...

    def pull(self) -> RawEvent | None:
        """Next raw event, None if reading would block"""

    def close(self) -> None: ...


def format_line(source: Address, mode: ProtocolMode, decoded) -> str:
    line = f"{source.client:3d}:{source.port:<3d} "
    match decoded:
        # Only channel voice lines carry a group column, other UMP and
        # legacy lines do not, even in UMP mode
        case ump.MIDI1ChannelVoice(group=group) | ump.MIDI2ChannelVoice(group=group):
            if mode.is_ump:
                line += f"Group {group:2d}, "
    return line + str(decoded)


def dispatch(raw: RawEvent, mode: ProtocolMode) -> str:
    match mode:
        case ProtocolMode.LEGACY:
            decoded = decode_legacy(raw)
        case _ if raw.is_ump:
            decoded = ump.decode_ump(raw.words, mode)
        case _:
            # Announcements and other events without a UMP equivalent
            decoded = decode_legacy(raw)
    return format_line(raw.source, mode, decoded)


class Cancellation:
    """
    Stop request that can be waited on along with the source.

    `set()` is safe to call from a signal handler: it writes to a
    socketpair, which wakes up a pending select().
    """

    def __init__(self):
        self._requested = False
        self._rsock, self._wsock = socket.socketpair()
        self._rsock.setblocking(False)
        self._wsock.setblocking(False)

    def set(self) -> None:
        self._requested = True
        try:
            self._wsock.send(b"\x00")
        except BlockingIOError:
            pass  # a wakeup is already pending

    def is_set(self) -> bool:
        return self._requested

    def fileno(self) -> int:
        return self._rsock.fileno()

    def install(self, *signums: int) -> None:
        for signum in signums or (signal.SIGINT, signal.SIGTERM):
            signal.signal(signum, lambda *args: self.set())

    def close(self) -> None:
        self._rsock.close()
        self._wsock.close()

    def __enter__(self):
        return self

    def __exit__(self, *args, **kwargs):
        self.close()


class State(Enum):
    WAITING = auto()
    DRAINING = auto()
    TERMINATED = auto()


class EventDumper:
    def __init__(
        self,
        source: Source,
        mode: ProtocolMode,
        cancel: Cancellation,
        out: TextIO | None = None,
    ):
        self.source = source
        self.mode = mode
        self.cancel = cancel
        self.out = sys.stdout if out is None else out
        self.state = State.WAITING

    def wait(self, selector: selectors.BaseSelector) -> None:
        if not self.cancel.is_set():
            # No timeout: only the source or a stop request wake us up
            selector.select()

        if self.cancel.is_set():
            self.state = State.TERMINATED
        else:
            self.state = State.DRAINING

    def drain(self) -> None:
        count = 0
        # Whatever the source already holds is dumped, even once a stop
        # was requested
        while (raw := self.source.pull()) is not None:
            self.out.write(dispatch(raw, self.mode) + "\n")
            count += 1

        self.out.flush()
        logger.debug(f"Drained {count} events")

        if self.cancel.is_set():
            self.state = State.TERMINATED
        else:
            self.state = State.WAITING

    def run(self) -> None:
        """
        Dump events until cancelled. A read error from the source other than
        would-block is raised as is, after flushing what was already dumped.
        The source is closed in any case.
        """
        try:
            with selectors.DefaultSelector() as selector:
                selector.register(self.source, selectors.EVENT_READ)
                selector.register(self.cancel, selectors.EVENT_READ)

                while self.state is not State.TERMINATED:
                    logger.debug(f"State {self.state.name}")
                    if self.state is State.WAITING:
                        self.wait(selector)
                    else:
                        self.drain()
        finally:
            self.state = State.TERMINATED
            self.out.flush()
            self.source.close()
