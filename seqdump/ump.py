from dataclasses import dataclass, field
from enum import IntEnum


class MessageType(IntEnum):
    """UMP Message Type definitions"""

    UTILITY = 0x0
    SYSTEM_REAL_TIME = 0x1
    MIDI_1_CHANNEL_VOICE = 0x2
    DATA_64 = 0x3
    MIDI_2_CHANNEL_VOICE = 0x4
    DATA_128 = 0x5
    FLEX_DATA = 0xD
    UMP_STREAM = 0xF


class MIDI1Status(IntEnum):
    """MIDI 1.0 Channel Voice Message Status values"""

    NOTE_OFF = 0x8
    NOTE_ON = 0x9
    POLY_PRESSURE = 0xA
    CONTROL_CHANGE = 0xB
    PROGRAM_CHANGE = 0xC
    CHANNEL_PRESSURE = 0xD
    PITCH_BEND = 0xE


class MIDI2Status(IntEnum):
    """MIDI 2.0 Channel Voice Message Status values"""

    REGISTERED_PER_NOTE_CONTROLLER = 0x0
    ASSIGNABLE_PER_NOTE_CONTROLLER = 0x1
    REGISTERED_CONTROLLER = 0x2
    ASSIGNABLE_CONTROLLER = 0x3
    RELATIVE_REGISTERED_CONTROLLER = 0x4
    RELATIVE_ASSIGNABLE_CONTROLLER = 0x5
    PER_NOTE_PITCH_BEND = 0x6
    NOTE_OFF = 0x8
    NOTE_ON = 0x9
    POLY_PRESSURE = 0xA
    CONTROL_CHANGE = 0xB
    PROGRAM_CHANGE = 0xC
    CHANNEL_PRESSURE = 0xD
    PITCH_BEND = 0xE
    PER_NOTE_MANAGEMENT = 0xF


def message_type(word: int) -> int:
    return (word >> 28) & 0xF


def message_group(word: int) -> int:
    return (word >> 24) & 0xF


def message_status(word: int) -> int:
    return (word >> 20) & 0xF


def message_channel(word: int) -> int:
    return (word >> 16) & 0xF


@dataclass
class UMP:
    mt: int = field(init=False)

    @classmethod
    def parse(cls, words):
        mt = message_type(words[0])
        return UMP_BY_MT.get(mt, GenericUMP).parse(words)


# Any message type that is not channel voice
@dataclass
class GenericUMP(UMP):
    type: int
    group: int
    status: int
    word: int

    def __post_init__(self):
        self.mt = self.type

    @classmethod
    def parse(cls, words, **kwargs):
        return cls(
            type=message_type(words[0]),
            group=message_group(words[0]),
            status=message_status(words[0]),
            word=words[0],
            **kwargs,
        )

    def __str__(self) -> str:
        return (
            f"UMP event: type = {self.type}, group = {self.group}, "
            f"status = {self.status}, 0x{self.word:08x}"
        )


# MIDI 1.0 Channel Voice Messages
@dataclass
class MIDI1ChannelVoice(UMP):
    group: int
    status: int = field(init=False)
    channel: int

    label = ""

    def __post_init__(self):
        self.mt = MessageType.MIDI_1_CHANNEL_VOICE

    @classmethod
    def parse(cls, words, **kwargs):
        status = message_status(words[0])
        return MIDI1_BY_STATUS.get(status, MIDI1Unknown).parse(
            words,
            group=message_group(words[0]),
            channel=message_channel(words[0]),
            **kwargs,
        )

    def head(self) -> str:
        return f"{self.label:<23}{self.channel:2d}"


@dataclass
class MIDI1NoteOff(MIDI1ChannelVoice):
    note: int
    velocity: int

    label = "Note off"

    def __post_init__(self):
        super().__post_init__()
        self.status = MIDI1Status.NOTE_OFF

    @classmethod
    def parse(cls, words, **kwargs):
        return cls(note=(words[0] >> 8) & 0x7F, velocity=words[0] & 0x7F, **kwargs)

    def __str__(self) -> str:
        return f"{self.head()}, note {self.note}, velocity 0x{self.velocity:x}"


@dataclass
class MIDI1NoteOn(MIDI1NoteOff):
    label = "Note on"

    def __post_init__(self):
        super().__post_init__()
        self.status = MIDI1Status.NOTE_ON


@dataclass
class MIDI1PolyPressure(MIDI1ChannelVoice):
    note: int
    data: int

    label = "Poly pressure"

    def __post_init__(self):
        super().__post_init__()
        self.status = MIDI1Status.POLY_PRESSURE

    @classmethod
    def parse(cls, words, **kwargs):
        return cls(note=(words[0] >> 8) & 0x7F, data=words[0] & 0x7F, **kwargs)

    def __str__(self) -> str:
        return f"{self.head()}, note {self.note}, value 0x{self.data:x}"


@dataclass
class MIDI1ControlChange(MIDI1ChannelVoice):
    controller: int
    value: int

    label = "Control change"

    def __post_init__(self):
        super().__post_init__()
        self.status = MIDI1Status.CONTROL_CHANGE

    @classmethod
    def parse(cls, words, **kwargs):
        return cls(controller=(words[0] >> 8) & 0x7F, value=words[0] & 0x7F, **kwargs)

    def __str__(self) -> str:
        return f"{self.head()}, controller {self.controller}, value 0x{self.value:x}"


@dataclass
class MIDI1ProgramChange(MIDI1ChannelVoice):
    program: int

    label = "Program change"

    def __post_init__(self):
        super().__post_init__()
        self.status = MIDI1Status.PROGRAM_CHANGE

    @classmethod
    def parse(cls, words, **kwargs):
        return cls(program=(words[0] >> 8) & 0x7F, **kwargs)

    def __str__(self) -> str:
        return f"{self.head()}, program {self.program}"


@dataclass
class MIDI1ChannelPressure(MIDI1ChannelVoice):
    data: int

    label = "Channel pressure"

    def __post_init__(self):
        super().__post_init__()
        self.status = MIDI1Status.CHANNEL_PRESSURE

    @classmethod
    def parse(cls, words, **kwargs):
        return cls(data=(words[0] >> 8) & 0x7F, **kwargs)

    def __str__(self) -> str:
        return f"{self.head()}, value 0x{self.data:x}"


@dataclass
class MIDI1PitchBend(MIDI1ChannelVoice):
    value: int  # unsigned 14 bits, 0x2000 is center

    label = "Pitchbend"

    def __post_init__(self):
        super().__post_init__()
        self.status = MIDI1Status.PITCH_BEND

    @classmethod
    def parse(cls, words, **kwargs):
        lsb = (words[0] >> 8) & 0x7F
        msb = words[0] & 0x7F
        return cls(value=(msb << 7) | lsb, **kwargs)

    def __str__(self) -> str:
        return f"{self.head()}, value 0x{self.value:x}"


@dataclass
class MIDI1Unknown(MIDI1ChannelVoice):
    code: int
    word: int

    def __post_init__(self):
        super().__post_init__()
        self.status = self.code

    @classmethod
    def parse(cls, words, **kwargs):
        return cls(code=message_status(words[0]), word=words[0], **kwargs)

    def __str__(self) -> str:
        return (
            f"UMP MIDI1 event: status = {self.code}, channel = {self.channel}, "
            f"0x{self.word:08x}"
        )


# MIDI 2.0 Channel Voice Messages
@dataclass
class MIDI2ChannelVoice(UMP):
    group: int
    status: int = field(init=False)
    channel: int

    label = ""

    def __post_init__(self):
        self.mt = MessageType.MIDI_2_CHANNEL_VOICE

    @classmethod
    def parse(cls, words, **kwargs):
        status = message_status(words[0])
        return MIDI2_BY_STATUS.get(status, MIDI2Unknown).parse(
            words,
            group=message_group(words[0]),
            channel=message_channel(words[0]),
            **kwargs,
        )

    def head(self) -> str:
        return f"{self.label:<23}{self.channel:2d}"


@dataclass
class MIDI2PerNoteController(MIDI2ChannelVoice):
    """Per-note controllers, registered (RCC) or assignable (ACC)"""

    note: int
    index: int
    data: int

    def __post_init__(self):
        super().__post_init__()
        self.status = MIDI2Status.REGISTERED_PER_NOTE_CONTROLLER

    @classmethod
    def parse(cls, words, **kwargs):
        return cls(
            note=(words[0] >> 8) & 0x7F,
            index=words[0] & 0xFF,
            data=words[1],
            **kwargs,
        )

    def __str__(self) -> str:
        return (
            f"{self.head()}, note {self.note}, index {self.index}, "
            f"value 0x{self.data:x}"
        )


@dataclass
class MIDI2RegisteredPerNoteController(MIDI2PerNoteController):
    label = "Per-note RCC"


@dataclass
class MIDI2AssignablePerNoteController(MIDI2PerNoteController):
    label = "Per-note ACC"

    def __post_init__(self):
        super().__post_init__()
        self.status = MIDI2Status.ASSIGNABLE_PER_NOTE_CONTROLLER


@dataclass
class MIDI2Controller(MIDI2ChannelVoice):
    """RPN / NRPN, absolute or relative"""

    bank: int
    index: int
    data: int

    code = MIDI2Status.REGISTERED_CONTROLLER

    def __post_init__(self):
        super().__post_init__()
        self.status = self.code

    @classmethod
    def parse(cls, words, **kwargs):
        return cls(
            bank=(words[0] >> 8) & 0x7F,
            index=words[0] & 0x7F,
            data=words[1],
            **kwargs,
        )

    def __str__(self) -> str:
        return f"{self.head()}, bank {self.bank}:{self.index}, value 0x{self.data:x}"


@dataclass
class MIDI2RegisteredController(MIDI2Controller):
    label = "RPN"


@dataclass
class MIDI2AssignableController(MIDI2Controller):
    label = "NRPN"
    code = MIDI2Status.ASSIGNABLE_CONTROLLER


@dataclass
class MIDI2RelativeRegisteredController(MIDI2Controller):
    label = "Relative RPN"
    code = MIDI2Status.RELATIVE_REGISTERED_CONTROLLER


@dataclass
class MIDI2RelativeAssignableController(MIDI2Controller):
    label = "Relative NRPN"
    code = MIDI2Status.RELATIVE_ASSIGNABLE_CONTROLLER


@dataclass
class MIDI2PerNotePitchBend(MIDI2ChannelVoice):
    note: int
    data: int

    label = "Per-note pitchbend"

    def __post_init__(self):
        super().__post_init__()
        self.status = MIDI2Status.PER_NOTE_PITCH_BEND

    @classmethod
    def parse(cls, words, **kwargs):
        return cls(note=(words[0] >> 8) & 0x7F, data=words[1], **kwargs)

    def __str__(self) -> str:
        return f"{self.head()}, note {self.note}, value 0x{self.data:x}"


@dataclass
class MIDI2NoteOff(MIDI2ChannelVoice):
    note: int
    attribute_type: int
    velocity: int
    attribute_data: int

    label = "Note off"

    def __post_init__(self):
        super().__post_init__()
        self.status = MIDI2Status.NOTE_OFF

    @classmethod
    def parse(cls, words, **kwargs):
        return cls(
            note=(words[0] >> 8) & 0x7F,
            attribute_type=words[0] & 0xFF,
            velocity=words[1] >> 16,
            attribute_data=words[1] & 0xFFFF,
            **kwargs,
        )

    def __str__(self) -> str:
        return (
            f"{self.head()}, note {self.note}, velocity 0x{self.velocity:x}, "
            f"attr type = {self.attribute_type}, data = 0x{self.attribute_data:x}"
        )


@dataclass
class MIDI2NoteOn(MIDI2NoteOff):
    label = "Note on"

    def __post_init__(self):
        super().__post_init__()
        self.status = MIDI2Status.NOTE_ON


@dataclass
class MIDI2PolyPressure(MIDI2ChannelVoice):
    note: int
    data: int

    label = "Poly pressure"

    def __post_init__(self):
        super().__post_init__()
        self.status = MIDI2Status.POLY_PRESSURE

    @classmethod
    def parse(cls, words, **kwargs):
        return cls(note=(words[0] >> 8) & 0x7F, data=words[1], **kwargs)

    def __str__(self) -> str:
        return f"{self.head()}, note {self.note}, value 0x{self.data:x}"


@dataclass
class MIDI2ControlChange(MIDI2ChannelVoice):
    controller: int
    data: int

    label = "Control change"

    def __post_init__(self):
        super().__post_init__()
        self.status = MIDI2Status.CONTROL_CHANGE

    @classmethod
    def parse(cls, words, **kwargs):
        return cls(controller=(words[0] >> 8) & 0x7F, data=words[1], **kwargs)

    def __str__(self) -> str:
        return f"{self.head()}, controller {self.controller}, value 0x{self.data:x}"


@dataclass
class MIDI2ProgramChange(MIDI2ChannelVoice):
    program: int
    bank_valid: bool
    bank_msb: int
    bank_lsb: int

    label = "Program change"

    def __post_init__(self):
        super().__post_init__()
        self.status = MIDI2Status.PROGRAM_CHANGE

    @classmethod
    def parse(cls, words, **kwargs):
        return cls(
            program=(words[1] >> 24) & 0x7F,
            bank_valid=bool(words[0] & (1 << 0)),
            bank_msb=(words[1] >> 8) & 0x7F,
            bank_lsb=words[1] & 0x7F,
            **kwargs,
        )

    def __str__(self) -> str:
        text = f"{self.head()}, program {self.program}"
        if self.bank_valid:
            text += f", Bank select {self.bank_msb}:{self.bank_lsb}"
        return text


@dataclass
class MIDI2ChannelPressure(MIDI2ChannelVoice):
    data: int

    label = "Channel pressure"

    def __post_init__(self):
        super().__post_init__()
        self.status = MIDI2Status.CHANNEL_PRESSURE

    @classmethod
    def parse(cls, words, **kwargs):
        return cls(data=words[1], **kwargs)

    def __str__(self) -> str:
        return f"{self.head()}, value 0x{self.data:x}"


@dataclass
class MIDI2PitchBend(MIDI2ChannelVoice):
    data: int  # unsigned 32 bits, 0x80000000 is center

    label = "Pitchbend"

    def __post_init__(self):
        super().__post_init__()
        self.status = MIDI2Status.PITCH_BEND

    @classmethod
    def parse(cls, words, **kwargs):
        return cls(data=words[1], **kwargs)

    def __str__(self) -> str:
        return f"{self.head()}, value 0x{self.data:x}"


@dataclass
class MIDI2PerNoteManagement(MIDI2ChannelVoice):
    note: int
    flags: int  # bit 1: detach per-note controllers, bit 0: reset them

    label = "Per-note management"

    def __post_init__(self):
        super().__post_init__()
        self.status = MIDI2Status.PER_NOTE_MANAGEMENT

    @classmethod
    def parse(cls, words, **kwargs):
        return cls(note=(words[0] >> 8) & 0x7F, flags=words[0] & 0xFF, **kwargs)

    def __str__(self) -> str:
        return f"{self.head()}, note {self.note}, flags 0x{self.flags:x}"


@dataclass
class MIDI2Unknown(MIDI2ChannelVoice):
    code: int
    word: int

    def __post_init__(self):
        super().__post_init__()
        self.status = self.code

    @classmethod
    def parse(cls, words, **kwargs):
        return cls(code=message_status(words[0]), word=words[0], **kwargs)

    def __str__(self) -> str:
        return (
            f"UMP MIDI2 event: status = {self.code}, channel = {self.channel}, "
            f"0x{self.word:08x}"
        )


def decode_ump(words, mode=None) -> UMP:
    """
    Decode one UMP. The message type of the first word selects the
    channel voice dialect; `mode` (the client protocol) is not consulted,
    a MIDI 2.0 client may still receive MIDI 1.0 channel voice packets.
    """
    return UMP.parse(words)


# Lookup tables
UMP_BY_MT = {
    MessageType.MIDI_1_CHANNEL_VOICE: MIDI1ChannelVoice,
    MessageType.MIDI_2_CHANNEL_VOICE: MIDI2ChannelVoice,
}

MIDI1_BY_STATUS = {
    MIDI1Status.NOTE_OFF: MIDI1NoteOff,
    MIDI1Status.NOTE_ON: MIDI1NoteOn,
    MIDI1Status.POLY_PRESSURE: MIDI1PolyPressure,
    MIDI1Status.CONTROL_CHANGE: MIDI1ControlChange,
    MIDI1Status.PROGRAM_CHANGE: MIDI1ProgramChange,
    MIDI1Status.CHANNEL_PRESSURE: MIDI1ChannelPressure,
    MIDI1Status.PITCH_BEND: MIDI1PitchBend,
}

MIDI2_BY_STATUS = {
    MIDI2Status.REGISTERED_PER_NOTE_CONTROLLER: MIDI2RegisteredPerNoteController,
    MIDI2Status.ASSIGNABLE_PER_NOTE_CONTROLLER: MIDI2AssignablePerNoteController,
    MIDI2Status.REGISTERED_CONTROLLER: MIDI2RegisteredController,
    MIDI2Status.ASSIGNABLE_CONTROLLER: MIDI2AssignableController,
    MIDI2Status.RELATIVE_REGISTERED_CONTROLLER: MIDI2RelativeRegisteredController,
    MIDI2Status.RELATIVE_ASSIGNABLE_CONTROLLER: MIDI2RelativeAssignableController,
    MIDI2Status.PER_NOTE_PITCH_BEND: MIDI2PerNotePitchBend,
    MIDI2Status.NOTE_OFF: MIDI2NoteOff,
    MIDI2Status.NOTE_ON: MIDI2NoteOn,
    MIDI2Status.POLY_PRESSURE: MIDI2PolyPressure,
    MIDI2Status.CONTROL_CHANGE: MIDI2ControlChange,
    MIDI2Status.PROGRAM_CHANGE: MIDI2ProgramChange,
    MIDI2Status.CHANNEL_PRESSURE: MIDI2ChannelPressure,
    MIDI2Status.PITCH_BEND: MIDI2PitchBend,
    MIDI2Status.PER_NOTE_MANAGEMENT: MIDI2PerNoteManagement,
}
