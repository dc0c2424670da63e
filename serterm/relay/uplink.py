"""Keyboard-to-serial path of the duplex relay."""

import logging
import select
from enum import Enum
from typing import Optional

import serial

from ..config import SessionConfig
from ..escape import DispatchResult, EscapeDispatcher
from ..exceptions import RelayIOError
from ..terminal import RawTerminal
from ..utils.logging_utils import log_relay_event
from .coordinator import SuspendCoordinator

logger = logging.getLogger(__name__)

LF = 0x0A
CR = 0x0D


class UplinkOutcome(Enum):
    END_OF_INPUT = "end_of_input"
    QUIT = "quit"
    ABORTED = "aborted"


class Uplink:
    """
    Reads the keyboard one byte at a time and forwards it to the port.

    The escape byte is not forwarded; it parks the downlink and hands the
    terminal to the escape dispatcher. If ``wake_fd`` becomes readable the
    loop stops with :attr:`UplinkOutcome.ABORTED` (used when the downlink
    dies so the session can tear down from this thread).
    """

    def __init__(
        self,
        config: SessionConfig,
        terminal: RawTerminal,
        port: serial.Serial,
        coordinator: SuspendCoordinator,
        dispatcher: EscapeDispatcher,
        wake_fd: Optional[int] = None,
    ):
        self.config = config
        self.terminal = terminal
        self.port = port
        self.coordinator = coordinator
        self.dispatcher = dispatcher
        self.wake_fd = wake_fd

    def translate(self, byte: int) -> int:
        """Map a masked keystroke to the byte sent on the wire."""
        if not self.config.raw_keyboard and byte == LF:
            return CR
        return byte

    def run(self) -> UplinkOutcome:
        log_relay_event(logger, "uplink", "running")
        while True:
            if self.wake_fd is not None and self._woken():
                log_relay_event(logger, "uplink", "aborted")
                return UplinkOutcome.ABORTED
            byte = self._read()
            if byte is None:
                log_relay_event(logger, "uplink", "end of input")
                return UplinkOutcome.END_OF_INPUT
            byte &= 0x7F

            if byte == self.config.escape_byte:
                result = self._escape()
                if result is DispatchResult.QUIT:
                    return UplinkOutcome.QUIT
                if result is DispatchResult.END_OF_INPUT:
                    return UplinkOutcome.END_OF_INPUT
                continue

            self._send(self.translate(byte))

    def _woken(self) -> bool:
        ready, _, _ = select.select([self.terminal.in_fd, self.wake_fd], [], [])
        return self.wake_fd in ready

    def _read(self) -> Optional[int]:
        try:
            return self.terminal.read_byte()
        except OSError as e:
            raise RelayIOError(
                f"Keyboard read failed: {e}",
                context={"path": "uplink"},
                original_exception=e,
            ) from e

    def _send(self, byte: int) -> None:
        try:
            self.port.write(bytes([byte]))
        except (serial.SerialException, OSError) as e:
            raise RelayIOError(
                f"Serial write failed: {e}",
                context={"path": "uplink"},
                original_exception=e,
            ) from e

    def _escape(self) -> DispatchResult:
        self.coordinator.suspend()
        try:
            return self.dispatcher.dispatch()
        except (serial.SerialException, OSError) as e:
            raise RelayIOError(
                f"Escape command failed: {e}",
                context={"path": "uplink"},
                original_exception=e,
            ) from e
        finally:
            self.coordinator.resume()
