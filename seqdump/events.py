"""
ALSA sequencer events, as read from /dev/snd/seq

See include/uapi/sound/asequencer.h in the Linux kernel sources for the
layout of `struct snd_seq_event` and `struct snd_seq_ump_event`.
"""

import struct
from dataclasses import dataclass
from enum import IntEnum, IntFlag
from math import ceil

from typing_extensions import Self

# type, flags, tag, queue, time, source, dest
HEADER = struct.Struct("=BBBB8sBBBB")

#: size of struct snd_seq_event
EVENT_SIZE = HEADER.size + 12

#: size of struct snd_seq_ump_event
UMP_EVENT_SIZE = HEADER.size + 16

#: flag bits stored in the high bits of data.ext.len
EXT_MASK = 0xC0000000


class EventFlag(IntFlag):
    LENGTH_FIXED = 0 << 2
    LENGTH_VARIABLE = 1 << 2
    LENGTH_VARUSR = 2 << 2
    LENGTH_MASK = 3 << 2
    UMP = 1 << 5


class EventType(IntEnum):
    """Sequencer event types"""

    SYSTEM = 0
    RESULT = 1
    NOTE = 5
    NOTEON = 6
    NOTEOFF = 7
    KEYPRESS = 8
    CONTROLLER = 10
    PGMCHANGE = 11
    CHANPRESS = 12
    PITCHBEND = 13
    CONTROL14 = 14
    NONREGPARAM = 15
    REGPARAM = 16
    SONGPOS = 20
    SONGSEL = 21
    QFRAME = 22
    TIMESIGN = 23
    KEYSIGN = 24
    START = 30
    CONTINUE = 31
    STOP = 32
    SETPOS_TICK = 33
    SETPOS_TIME = 34
    TEMPO = 35
    CLOCK = 36
    TICK = 37
    QUEUE_SKEW = 38
    SYNC_POS = 39
    TUNE_REQUEST = 40
    RESET = 41
    SENSING = 42
    ECHO = 50
    OSS = 51
    CLIENT_START = 60
    CLIENT_EXIT = 61
    CLIENT_CHANGE = 62
    PORT_START = 63
    PORT_EXIT = 64
    PORT_CHANGE = 65
    PORT_SUBSCRIBED = 66
    PORT_UNSUBSCRIBED = 67
    SYSEX = 130
    BOUNCE = 131
    NONE = 255


@dataclass(frozen=True)
class Address:
    client: int
    port: int

    def __str__(self) -> str:
        return f"{self.client}:{self.port}"


#: events coming from here are queue control events
SYSTEM_TIMER = Address(client=0, port=0)


@dataclass(frozen=True)
class RawEvent:
    """One undecoded record, legacy or UMP"""

    type: int
    flags: int
    queue: int
    source: Address
    dest: Address
    data: bytes
    ext: bytes = b""

    @classmethod
    def parse(cls, buf: bytes, event_size: int = EVENT_SIZE) -> tuple[Self, bytes]:
        if len(buf) < event_size:
            raise ValueError(
                f"Expecting at least {event_size} bytes of event, "
                f"but got only {len(buf)}"
            )

        head, data = buf[: HEADER.size], buf[HEADER.size : event_size]
        etype, flags, _tag, queue, _time, sc, sp, dc, dp = HEADER.unpack(head)
        rest = buf[event_size:]

        ext = b""
        if flags & EventFlag.LENGTH_MASK == EventFlag.LENGTH_VARIABLE:
            (length,) = struct.unpack_from("=I", data)
            length &= ~EXT_MASK
            if len(rest) < length:
                raise ValueError(
                    f"Expecting {length} bytes of variable length data, "
                    f"but got only {len(rest)}"
                )
            ext = rest[:length]
            rest = rest[event_size * ceil(length / event_size) :]

        res = cls(
            type=etype,
            flags=flags,
            queue=queue,
            source=Address(sc, sp),
            dest=Address(dc, dp),
            data=data,
            ext=ext,
        )
        return res, rest

    @property
    def is_ump(self) -> bool:
        return bool(self.flags & EventFlag.UMP)

    @property
    def words(self) -> tuple[int, ...]:
        return struct.unpack_from("@4I", self.data)


@dataclass
class Event:
    source: Address

    label = ""

    @classmethod
    def parse(cls, raw: RawEvent, **kwargs):
        return EVENT_BY_TYPE.get(raw.type, UnknownEvent).parse(
            raw,
            source=raw.source,
            **kwargs,
        )

    def __str__(self) -> str:
        return self.label


# Channel voice: note
@dataclass
class NoteEvent(Event):
    channel: int
    note: int
    velocity: int | None

    @classmethod
    def parse(cls, raw, **kwargs):
        channel, note, velocity = struct.unpack_from("=BBB", raw.data)
        return cls(channel=channel, note=note, velocity=velocity, **kwargs)

    def __str__(self) -> str:
        text = f"{self.label:<23}{self.channel:2d}, note {self.note}"
        if self.velocity is not None:
            text += f", velocity {self.velocity}"
        return text


@dataclass
class NoteOff(NoteEvent):
    label = "Note off"


@dataclass
class NoteOn(NoteEvent):
    label = "Note on"

    @classmethod
    def parse(cls, raw, **kwargs):
        event = super().parse(raw, **kwargs)
        if not event.velocity:
            # running status style note off
            return NoteOff(
                channel=event.channel,
                note=event.note,
                velocity=None,
                source=event.source,
            )
        return event


@dataclass
class KeyPressure(NoteEvent):
    label = "Polyphonic aftertouch"

    def __str__(self) -> str:
        return f"{self.label:<23}{self.channel:2d}, note {self.note}, value {self.velocity}"


# Channel voice: control
@dataclass
class ControlEvent(Event):
    channel: int
    param: int
    value: int

    @classmethod
    def parse(cls, raw, **kwargs):
        channel, param, value = struct.unpack_from("=B3xIi", raw.data)
        return cls(channel=channel, param=param, value=value, **kwargs)

    def head(self) -> str:
        return f"{self.label:<23}{self.channel:2d}"

    def __str__(self) -> str:
        return f"{self.head()}, value {self.value}"


@dataclass
class ControlChange(ControlEvent):
    label = "Control change"

    def __str__(self) -> str:
        return f"{self.head()}, controller {self.param}, value {self.value}"


@dataclass
class ProgramChange(ControlEvent):
    label = "Program change"

    def __str__(self) -> str:
        return f"{self.head()}, program {self.value}"


@dataclass
class ChannelPressure(ControlEvent):
    label = "Channel aftertouch"


@dataclass
class PitchBend(ControlEvent):
    label = "Pitch bend"


@dataclass
class ControlChange14(ControlEvent):
    label = "Control change"

    def __str__(self) -> str:
        return f"{self.head()}, controller {self.param}, value {self.value:5d}"


@dataclass
class NonRegisteredParameter(ControlEvent):
    label = "Non-reg. parameter"

    def __str__(self) -> str:
        return f"{self.head()}, parameter {self.param}, value {self.value}"


@dataclass
class RegisteredParameter(NonRegisteredParameter):
    label = "Reg. parameter"


# System common, carried in the control payload without a channel
@dataclass
class SystemEvent(Event):
    value: int

    @classmethod
    def parse(cls, raw, **kwargs):
        (value,) = struct.unpack_from("=i", raw.data, 8)
        return cls(value=value, **kwargs)

    def __str__(self) -> str:
        return f"{self.label:<27}value {self.value}"


@dataclass
class SongPosition(SystemEvent):
    label = "Song position pointer"


@dataclass
class SongSelect(SystemEvent):
    label = "Song select"


@dataclass
class QuarterFrame(SystemEvent):
    label = "MTC quarter frame"

    def __str__(self) -> str:
        return f"{self.label:<27}{self.value & 0xFF:02x}h"


@dataclass
class TimeSignature(SystemEvent):
    label = "SMF time signature"

    def __str__(self) -> str:
        return f"{self.label:<27}({self.value & 0xFFFFFFFF:#010x})"


@dataclass
class KeySignature(TimeSignature):
    label = "SMF key signature"


# Queue control
@dataclass
class QueueEvent(Event):
    queue: int

    @classmethod
    def parse(cls, raw, **kwargs):
        (queue,) = struct.unpack_from("=B", raw.data)
        return cls(queue=queue, **kwargs)

    def __str__(self) -> str:
        return f"{self.label:<27}queue {self.queue}"


@dataclass
class QueueStart(QueueEvent):
    label = "Queue start"


@dataclass
class QueueContinue(QueueEvent):
    label = "Queue continue"


@dataclass
class QueueStop(QueueEvent):
    label = "Queue stop"


@dataclass
class SetTickPosition(QueueEvent):
    label = "Set tick queue pos."


@dataclass
class SetTimePosition(QueueEvent):
    label = "Set rt queue pos."


@dataclass
class QueueTempo(QueueEvent):
    label = "Set queue tempo"


@dataclass
class QueueSkew(QueueEvent):
    label = "Queue timer skew"


# Events without payload
@dataclass
class BareEvent(Event):
    @classmethod
    def parse(cls, raw, **kwargs):
        return cls(**kwargs)


@dataclass
class Start(BareEvent):
    label = "Start"
    queue_event = QueueStart

    @classmethod
    def parse(cls, raw, **kwargs):
        if raw.source == SYSTEM_TIMER:
            return cls.queue_event.parse(raw, **kwargs)
        return cls(**kwargs)


@dataclass
class Continue(Start):
    label = "Continue"
    queue_event = QueueContinue


@dataclass
class Stop(Start):
    label = "Stop"
    queue_event = QueueStop


@dataclass
class Clock(BareEvent):
    label = "Clock"


@dataclass
class Tick(BareEvent):
    label = "Tick"


@dataclass
class TuneRequest(BareEvent):
    label = "Tune request"


@dataclass
class Reset(BareEvent):
    label = "Reset"


@dataclass
class ActiveSensing(BareEvent):
    label = "Active Sensing"


# Client and port announcements from the system client
@dataclass
class AddressEvent(Event):
    address: Address

    @classmethod
    def parse(cls, raw, **kwargs):
        client, port = struct.unpack_from("=BB", raw.data)
        return cls(address=Address(client, port), **kwargs)

    def __str__(self) -> str:
        return f"{self.label:<27}{self.address}"


@dataclass
class ClientStart(AddressEvent):
    label = "Client start"

    def __str__(self) -> str:
        return f"{self.label:<27}client {self.address.client}"


@dataclass
class ClientExit(ClientStart):
    label = "Client exit"


@dataclass
class ClientChange(ClientStart):
    label = "Client changed"


@dataclass
class PortStart(AddressEvent):
    label = "Port start"


@dataclass
class PortExit(AddressEvent):
    label = "Port exit"


@dataclass
class PortChange(AddressEvent):
    label = "Port changed"


@dataclass
class ConnectionEvent(Event):
    sender: Address
    dest: Address

    @classmethod
    def parse(cls, raw, **kwargs):
        sc, sp, dc, dp = struct.unpack_from("=BBBB", raw.data)
        return cls(sender=Address(sc, sp), dest=Address(dc, dp), **kwargs)

    def __str__(self) -> str:
        return f"{self.label:<27}{self.sender} -> {self.dest}"


@dataclass
class PortSubscribed(ConnectionEvent):
    label = "Port subscribed"


@dataclass
class PortUnsubscribed(ConnectionEvent):
    label = "Port unsubscribed"


@dataclass
class SystemExclusive(Event):
    data: bytes

    label = "System exclusive"

    @classmethod
    def parse(cls, raw, **kwargs):
        return cls(data=bytes(raw.ext), **kwargs)

    def __str__(self) -> str:
        return f"{self.label:<26}" + "".join(f" {b:02X}" for b in self.data)


@dataclass
class UnknownEvent(Event):
    type: int

    @classmethod
    def parse(cls, raw, **kwargs):
        return cls(type=raw.type, **kwargs)

    def __str__(self) -> str:
        return f"Event type {self.type}"


def decode_legacy(raw: RawEvent) -> Event:
    """Decode a sequencer event record, never fails"""
    return Event.parse(raw)


EVENT_BY_TYPE = {
    EventType.NOTEON: NoteOn,
    EventType.NOTEOFF: NoteOff,
    EventType.KEYPRESS: KeyPressure,
    EventType.CONTROLLER: ControlChange,
    EventType.PGMCHANGE: ProgramChange,
    EventType.CHANPRESS: ChannelPressure,
    EventType.PITCHBEND: PitchBend,
    EventType.CONTROL14: ControlChange14,
    EventType.NONREGPARAM: NonRegisteredParameter,
    EventType.REGPARAM: RegisteredParameter,
    EventType.SONGPOS: SongPosition,
    EventType.SONGSEL: SongSelect,
    EventType.QFRAME: QuarterFrame,
    EventType.TIMESIGN: TimeSignature,
    EventType.KEYSIGN: KeySignature,
    EventType.START: Start,
    EventType.CONTINUE: Continue,
    EventType.STOP: Stop,
    EventType.SETPOS_TICK: SetTickPosition,
    EventType.SETPOS_TIME: SetTimePosition,
    EventType.TEMPO: QueueTempo,
    EventType.CLOCK: Clock,
    EventType.TICK: Tick,
    EventType.QUEUE_SKEW: QueueSkew,
    EventType.TUNE_REQUEST: TuneRequest,
    EventType.RESET: Reset,
    EventType.SENSING: ActiveSensing,
    EventType.CLIENT_START: ClientStart,
    EventType.CLIENT_EXIT: ClientExit,
    EventType.CLIENT_CHANGE: ClientChange,
    EventType.PORT_START: PortStart,
    EventType.PORT_EXIT: PortExit,
    EventType.PORT_CHANGE: PortChange,
    EventType.PORT_SUBSCRIBED: PortSubscribed,
    EventType.PORT_UNSUBSCRIBED: PortUnsubscribed,
    EventType.SYSEX: SystemExclusive,
}
