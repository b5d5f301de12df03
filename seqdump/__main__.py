import argparse
import logging
import sys

from linuxpy.midi.device import Sequencer

from seqdump.dump import Cancellation, EventDumper, ProtocolMode
from seqdump.source import (
    SequencerError,
    SequencerSource,
    checked,
    list_ports,
    parse_addresses,
)

VERSION = "1.0.0"

logger = logging.getLogger("seqdump")


def show_ports(args) -> None:
    seq = Sequencer("seqdump")
    with checked("open sequencer"):
        seq.open()
    try:
        for line in list_ports(seq):
            print(line)
    finally:
        seq.close()


def dump_events(args) -> None:
    mode = ProtocolMode(args.ump)
    source = SequencerSource.open("seqdump", mode=mode, convert=not args.raw)

    try:
        addresses = [a for ports in args.port for a in parse_addresses(source.seq, ports)]
        source.connect_from(addresses)
    except SequencerError:
        source.close()
        raise

    if addresses:
        print("Waiting for data.", end="")
    else:
        print(f"Waiting for data at port {source.client_id}:0.", end="")
    print(" Press Ctrl+C to end.")
    print(f"Source  {'Group    ' if mode.is_ump else ''}Event                  Ch  Data")

    with Cancellation() as cancel:
        cancel.install()
        EventDumper(source, mode, cancel).run()


def main() -> int:
    args = parser.parse_args()

    if args.debug:
        logging.basicConfig(level=logging.DEBUG)
    elif args.info:
        logging.basicConfig(level=logging.INFO)

    if args.version:
        print(f"seqdump version {VERSION}")
        return 0

    try:
        args.func(args)
    except SequencerError as error:
        print(error, file=sys.stderr)
        return 1
    except OSError as error:
        logger.debug("Read error", exc_info=True)
        print(f"Cannot read events - {error.strerror or error}", file=sys.stderr)
        return 1
    return 0


parser = argparse.ArgumentParser(
    "seqdump",
    description="Show the events received at an ALSA sequencer port",
    formatter_class=argparse.ArgumentDefaultsHelpFormatter,
)

parser.add_argument("-I", "--info", action="store_true", help="Enable info logging")
parser.add_argument("-D", "--debug", action="store_true", help="Enable debug logging")
parser.add_argument("-V", "--version", action="store_true", help="Show version")
parser.set_defaults(func=dump_events)
parser.add_argument(
    "-l",
    "--list",
    action="store_const",
    dest="func",
    const=show_ports,
    default=argparse.SUPPRESS,
    help="List input ports",
)
parser.add_argument(
    "-p",
    "--port",
    action="append",
    default=[],
    metavar="client:port,...",
    help="Source port(s), may be given several times",
)
parser.add_argument(
    "-u",
    "--ump",
    type=int,
    choices=[int(m) for m in ProtocolMode],
    default=int(ProtocolMode.LEGACY),
    help="Client MIDI version (0=legacy, 1=UMP MIDI 1.0, 2=UMP MIDI 2.0)",
)
parser.add_argument(
    "-r",
    "--raw",
    action="store_true",
    help="Do not convert UMP and legacy events",
)

if __name__ == "__main__":
    sys.exit(main())
