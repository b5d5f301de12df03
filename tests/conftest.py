import struct
from math import ceil

import pytest

from seqdump.events import EVENT_SIZE, HEADER, UMP_EVENT_SIZE, EventFlag


def make_event(
    etype, payload=b"", source=(20, 0), dest=(128, 0), flags=0, ext=None, size=EVENT_SIZE
):
    """Build a struct snd_seq_event record as the kernel returns it"""
    data = payload
    if ext is not None:
        flags |= EventFlag.LENGTH_VARIABLE
        data = struct.pack("=I", len(ext))
    head = HEADER.pack(etype, flags, 0, 0, bytes(8), *source, *dest)
    record = head + data.ljust(size - HEADER.size, b"\x00")
    if ext:
        record += ext.ljust(size * ceil(len(ext) / size), b"\x00")
    return record


def make_ump(words, source=(20, 0), dest=(128, 0)):
    """Build a struct snd_seq_ump_event record"""
    words = list(words) + (4 - len(words)) * [0]
    head = HEADER.pack(0, EventFlag.UMP, 0, 0, bytes(8), *source, *dest)
    record = head + struct.pack("@4I", *words)
    assert len(record) == UMP_EVENT_SIZE
    return record


@pytest.fixture
def pack_event():
    return make_event


@pytest.fixture
def pack_ump():
    return make_ump
