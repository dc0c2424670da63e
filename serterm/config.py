"""
Session configuration for serterm.

The command line is parsed once into an immutable :class:`SessionConfig`,
which is handed to the components that need it (the serial configurator,
the escape dispatcher, the session).
"""

import argparse
import logging
import os
import sys
import termios
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, NoReturn, Optional, Sequence

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_DEVICE = "/dev/ttyUSB0"
DEFAULT_BAUD = 9600

# Control-Z starts protocol transfers
DEFAULT_ESCAPE_BYTE = 0x1A

# Bytes read from the device at a time, max
READ_CHUNK = 30

# Inter-byte timeout, in tenths of a second
READ_TIME = 1

BAUD_RATES: Dict[int, int] = {
    300: termios.B300,
    1200: termios.B1200,
    2400: termios.B2400,
    9600: termios.B9600,
    19200: termios.B19200,
    38400: termios.B38400,
    115200: termios.B115200,
}

USAGE = "Usage is: serterm [-eo7r] [-s <speed>] [-p <protocol>] [-l <log>] [<tty>]"


class Parity(Enum):
    """Serial parity; values are the pyserial parity codes."""

    NONE = "N"
    ODD = "O"
    EVEN = "E"


class Protocol(Enum):
    """Transfer protocol family selected with ``-p``."""

    XMODEM = "x"
    YMODEM = "y"
    ZMODEM = "z"
    TEXT = "txt"


@dataclass(frozen=True)
class SerialConfig:
    """Line settings applied to the serial device."""

    baud: int = DEFAULT_BAUD
    parity: Parity = Parity.NONE
    seven_bits: bool = False
    read_min: int = READ_CHUNK
    read_time: int = READ_TIME

    @property
    def bytesize(self) -> int:
        return 7 if self.seven_bits else 8

    @property
    def speed_constant(self) -> int:
        return BAUD_RATES[self.baud]

    @property
    def read_timeout(self) -> float:
        """Port read timeout in seconds, derived from ``read_time``."""
        return self.read_time / 10.0


@dataclass(frozen=True)
class SessionConfig:
    """Everything a session needs, fixed at startup."""

    device: str = DEFAULT_DEVICE
    baud: int = DEFAULT_BAUD
    protocol: Protocol = Protocol.ZMODEM
    parity: Parity = Parity.NONE
    seven_bits: bool = False
    raw_keyboard: bool = False
    log_path: Optional[str] = None
    escape_byte: int = DEFAULT_ESCAPE_BYTE
    read_min: int = READ_CHUNK
    read_time: int = READ_TIME

    def __post_init__(self) -> None:
        if self.baud not in BAUD_RATES:
            raise ConfigurationError(
                f"Illegal speed: {self.baud}", context={"allowed": sorted(BAUD_RATES)}
            )
        if not 0 <= self.escape_byte <= 0x7F:
            raise ConfigurationError(
                f"Escape byte must be 7-bit: {self.escape_byte:#x}"
            )
        if not 0 < self.read_min <= 255 or not 0 <= self.read_time <= 255:
            raise ConfigurationError(
                "Read granularity out of range",
                context={"read_min": self.read_min, "read_time": self.read_time},
            )

    def serial_config(self) -> SerialConfig:
        return SerialConfig(
            baud=self.baud,
            parity=self.parity,
            seven_bits=self.seven_bits,
            read_min=self.read_min,
            read_time=self.read_time,
        )

    @property
    def escape_name(self) -> str:
        """Caret notation for the escape byte, e.g. ``^Z``."""
        if self.escape_byte < 0x20:
            return "^" + chr(self.escape_byte + 0x40)
        if self.escape_byte == 0x7F:
            return "^?"
        return chr(self.escape_byte)


class _UsageParser(argparse.ArgumentParser):
    """Argument parser that reports usage errors with exit status 1."""

    def error(self, message: str) -> NoReturn:
        self.exit(1, f"{self.prog}: {message}\n{USAGE}\n")


def build_parser() -> argparse.ArgumentParser:
    """Create the command line parser."""
    parser = _UsageParser(
        prog="serterm",
        description="Duplex serial terminal with external file-transfer helpers",
    )
    parser.add_argument("-s", dest="speed", default=str(DEFAULT_BAUD), help="Baud rate")
    parser.add_argument(
        "-p", dest="protocol", default=Protocol.ZMODEM.value, help="x, y, z or txt"
    )
    parser.add_argument("-l", dest="log", default=None, help="Log received bytes here")
    parser.add_argument("-o", dest="odd", action="store_true", help="Odd parity")
    parser.add_argument("-e", dest="even", action="store_true", help="Even parity")
    parser.add_argument(
        "-7", dest="seven_bits", action="store_true", help="Seven bit format"
    )
    parser.add_argument(
        "-r",
        dest="raw_keyboard",
        action="store_true",
        help="Raw keyboard: do not map newline to carriage return",
    )
    parser.add_argument(
        "--log-level",
        default=os.environ.get("SERTERM_LOG_LEVEL", "WARNING"),
        help="Diagnostic log level (default WARNING)",
    )
    parser.add_argument(
        "--debug-log", default=None, help="Write diagnostic log records to this file"
    )
    parser.add_argument("tty", nargs="*", help=f"Serial device (default {DEFAULT_DEVICE})")
    return parser


def config_from_args(args: argparse.Namespace) -> SessionConfig:
    """
    Validate parsed arguments and build the session configuration.

    Raises:
        ConfigurationError: on conflicting parity, unknown speed or protocol,
            or more than one device argument.
    """
    if args.odd and args.even:
        raise ConfigurationError("Can't select both even and odd parity.")

    try:
        baud = int(args.speed)
    except ValueError:
        baud = -1
    if baud not in BAUD_RATES:
        raise ConfigurationError(f"Illegal speed: {args.speed}")

    try:
        protocol = Protocol(args.protocol)
    except ValueError:
        raise ConfigurationError(f"Illegal protocol: {args.protocol}") from None

    if len(args.tty) > 1:
        raise ConfigurationError("Trailing argument(s)")
    device = args.tty[0] if args.tty else DEFAULT_DEVICE

    if args.odd:
        parity = Parity.ODD
    elif args.even:
        parity = Parity.EVEN
    else:
        parity = Parity.NONE

    config = SessionConfig(
        device=device,
        baud=baud,
        protocol=protocol,
        parity=parity,
        seven_bits=args.seven_bits,
        raw_keyboard=args.raw_keyboard,
        log_path=args.log,
    )
    logger.debug(f"Configuration: {config}")
    return config


def parse_command_line(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parse ``argv`` (defaults to ``sys.argv[1:]``)."""
    args: List[str] = list(sys.argv[1:] if argv is None else argv)
    return build_parser().parse_args(args)
