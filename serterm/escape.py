"""
Escape sequence handling.

After the escape byte the next keystroke is a command for serterm itself:
the escape byte again sends it literally, ``q`` quits, ``r`` receives a
file and ``s``/``t`` send one. Anything else prints a short help line.
The downlink is parked by the caller for the whole dispatch.
"""

import logging
from enum import Enum
from typing import Optional

import serial

from .config import Protocol, SessionConfig
from .exceptions import HelperLaunchError, SerialConfigurationError, UnsupportedTransferError
from .serial_port import SerialConfigurator
from .terminal import RawTerminal
from .transfer import Direction, TransferHelper, TransferRequest, helper_for

logger = logging.getLogger(__name__)

HELP_MESSAGE = b"Options are: <r>eceive, <s>end, <q>uit\r\n"

# Room for the file name in the prompt buffer
FILENAME_LIMIT = 59

QUIT_KEYS = b"qQ"
RECEIVE_KEYS = b"rR"
SEND_KEYS = b"sStT"


class DispatchResult(Enum):
    CONTINUE = "continue"
    QUIT = "quit"
    END_OF_INPUT = "end_of_input"


def prompt_read(
    terminal: RawTerminal, prompt: str, limit: int = FILENAME_LIMIT
) -> Optional[str]:
    """
    Prompt for a line in raw mode.

    Each byte is echoed as it is typed; carriage return or line feed ends
    the line. Bytes past ``limit`` are echoed but dropped.

    Returns:
        The line without its terminator, or None at end of input
    """
    terminal.write(prompt.encode("ascii"))
    line = bytearray()
    while True:
        byte = terminal.read_byte()
        if byte is None:
            return None
        byte &= 0x7F
        if byte in (0x0A, 0x0D):
            terminal.write(b"\r\n")
            break
        terminal.write(bytes([byte]))
        if len(line) < limit:
            line.append(byte)
    return line.decode("ascii")


class EscapeDispatcher:
    """Reads the sub-command after an escape byte and carries it out."""

    def __init__(
        self,
        config: SessionConfig,
        terminal: RawTerminal,
        port: serial.Serial,
        configurator: SerialConfigurator,
        helper: Optional[TransferHelper] = None,
    ):
        self.config = config
        self.terminal = terminal
        self.port = port
        self.configurator = configurator
        self.helper = helper or TransferHelper()

    def dispatch(self) -> DispatchResult:
        byte = self.terminal.read_byte()
        if byte is None:
            return DispatchResult.END_OF_INPUT
        byte &= 0x7F

        if byte == self.config.escape_byte:
            self.port.write(bytes([byte]))
            return DispatchResult.CONTINUE
        if byte in QUIT_KEYS:
            return DispatchResult.QUIT
        if byte in RECEIVE_KEYS:
            return self.transfer(Direction.RECEIVE)
        if byte in SEND_KEYS:
            return self.transfer(Direction.SEND)

        self.terminal.write(HELP_MESSAGE)
        return DispatchResult.CONTINUE

    def transfer(self, direction: Direction) -> DispatchResult:
        """Build a transfer request, run its helper, then reconfigure the port."""
        protocol: Protocol = self.config.protocol
        try:
            command = helper_for(protocol, direction)
        except UnsupportedTransferError as e:
            self._report(e.message)
            return DispatchResult.CONTINUE

        request = TransferRequest(protocol, direction)
        if command.needs_filename:
            prompt = "Receive file: " if direction is Direction.RECEIVE else "Send file: "
            filename = prompt_read(self.terminal, prompt)
            if filename is None:
                return DispatchResult.END_OF_INPUT
            if not filename:
                self._report("No file name given.")
                return DispatchResult.CONTINUE
            request.filename = filename

        try:
            self.helper.run(request, self.port.fileno())
        except HelperLaunchError as e:
            self._report(e.message)
        finally:
            self._reconfigure()
        return DispatchResult.CONTINUE

    def _reconfigure(self) -> None:
        try:
            self.configurator.configure(self.port)
        except SerialConfigurationError as e:
            logger.warning(str(e))
            self._report(e.message)

    def _report(self, message: str) -> None:
        logger.info(message)
        self.terminal.write(message.encode("ascii", "replace") + b"\r\n")
