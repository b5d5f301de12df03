"""
ALSA sequencer event source

Client setup, port subscription and listing go through linuxpy; events are
read straight from the non-blocking sequencer file descriptor so that
UMP records (which linuxpy does not know about) can be split as well.
"""

from __future__ import annotations

import errno
import fcntl
import logging
import os
import re
import struct
from collections.abc import Iterable
from contextlib import contextmanager

from linuxpy.midi.device import (
    INPUT,
    OUTPUT,
    Sequencer,
    read_client_info,
    write_client_info,
)
from typing_extensions import Self

from .dump import ProtocolMode
from .events import EVENT_SIZE, UMP_EVENT_SIZE, Address, RawEvent

logger = logging.getLogger(__name__)

#: _IOW('S', 0x04, int)
IOCTL_USER_PVERSION = 0x40045304

#: SNDRV_PROTOCOL_VERSION(1, 0, 3), first protocol with a client MIDI version
USER_PVERSION = (1 << 16) | (0 << 8) | 3

# Offsets in struct snd_seq_client_info
FILTER_OFFSET = 72
MIDI_VERSION_OFFSET = 132

#: do not convert events between legacy and UMP for this client
FILTER_NO_CONVERT = 1 << 30

READ_SIZE = 16384

ADDRESS_RE = re.compile(r"^(?P<client>.+?)(?:[:.](?P<port>\d+))?$")


class SequencerError(Exception):
    pass


class InvalidPortError(SequencerError, ValueError):
    def __init__(self, port: str, reason: str):
        super().__init__(f"Invalid port {port} - {reason}")


@contextmanager
def checked(operation: str):
    try:
        yield
    except OSError as error:
        reason = error.strerror or str(error)
        raise SequencerError(f"Cannot {operation} - {reason}") from error


def parse_addresses(seq, text: str) -> list[Address]:
    """
    Parse a comma separated list of `client:port`. Clients are given by
    number or by name (exact name first, then name prefix); the port
    defaults to 0.
    """
    addresses = []
    for name in text.split(","):
        name = name.strip()
        match = ADDRESS_RE.match(name)
        if not name or match is None:
            raise InvalidPortError(name, "empty address")

        client = match["client"]
        port = int(match["port"] or 0)
        if client.isdigit():
            addresses.append(Address(int(client), port))
            continue

        clients = [(c.name, c.client_id) for c in seq.iter_clients]
        found = [cid for cname, cid in clients if cname == client] or [
            cid for cname, cid in clients if cname.startswith(client)
        ]
        if not found:
            raise InvalidPortError(name, f"no client named {client!r}")
        addresses.append(Address(found[0], port))
    return addresses


def list_ports(seq) -> Iterable[str]:
    """Readable, subscribable ports, one line each"""
    yield " Port    Client name                      Port name"
    for client in seq.iter_clients:
        for port in client.iter_ports:
            if port.capability & INPUT != INPUT:
                continue
            yield (
                f"{port.client_id:3d}:{port.port_id:<3d}  "
                f"{client.name[:32]:<32} {port.name}"
            )


class SequencerSource:
    def __init__(self, seq: Sequencer, mode: ProtocolMode = ProtocolMode.LEGACY):
        self.seq = seq
        self.mode = mode
        self.port = None
        self._buffer = b""

    @property
    def client_id(self) -> int:
        return self.seq.client_id

    @property
    def event_size(self) -> int:
        return UMP_EVENT_SIZE if self.mode.is_ump else EVENT_SIZE

    @classmethod
    def open(
        cls,
        name: str = "seqdump",
        mode: ProtocolMode = ProtocolMode.LEGACY,
        convert: bool = True,
    ) -> Self:
        seq = Sequencer(name)
        with checked("open sequencer"):
            seq.open()
        logger.info(f"Opened sequencer as client {seq.client_id}")

        source = cls(seq, mode)
        try:
            with checked("set client info"):
                source.set_client_version(mode, convert)
            with checked("create port"):
                source.port = seq.create_port(name, capabilities=OUTPUT)
            logger.info(f"Created port {seq.client_id}:{source.port.port_id}")
            with checked("set nonblock mode"):
                os.set_blocking(seq.fileno(), False)
        except SequencerError:
            seq.close()
            raise
        return source

    def set_client_version(self, mode: ProtocolMode, convert: bool = True) -> None:
        if mode.is_ump:
            fcntl.ioctl(
                self.seq.fileno(),
                IOCTL_USER_PVERSION,
                struct.pack("@i", USER_PVERSION),
            )

        info = read_client_info(self.seq, self.seq.client_id)
        buf = bytearray(bytes(info))
        struct.pack_into("@I", buf, MIDI_VERSION_OFFSET, int(mode))
        if not convert:
            (flt,) = struct.unpack_from("@I", buf, FILTER_OFFSET)
            struct.pack_into("@I", buf, FILTER_OFFSET, flt | FILTER_NO_CONVERT)
        write_client_info(self.seq, type(info).from_buffer_copy(buf))
        logger.debug(f"Client MIDI version {mode.name}, conversion {convert}")

    def connect_from(self, addresses: Iterable[Address]) -> None:
        for addr in addresses:
            with checked(f"connect from port {addr}"):
                self.port.connect_from((addr.client, addr.port))
            logger.info(f"Subscribed to {addr}")

    def fileno(self) -> int:
        return self.seq.fileno()

    def pull(self) -> RawEvent | None:
        if not self._buffer:
            try:
                self._buffer = os.read(self.fileno(), READ_SIZE)
            except BlockingIOError:
                return None
            except OSError as error:
                if error.errno != errno.ENOSPC:
                    raise
                logger.warning("Input overflow, some events were lost")
                return None
            if not self._buffer:
                raise OSError(errno.EIO, "Unexpected end of sequencer input")

        raw, self._buffer = RawEvent.parse(self._buffer, self.event_size)
        logger.debug(f"Rx {raw!r}")
        return raw

    def close(self) -> None:
        self.seq.close()

    def __enter__(self):
        return self

    def __exit__(self, *args, **kwargs):
        self.close()
