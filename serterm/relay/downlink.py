"""Serial-to-screen path of the duplex relay."""

import logging
import threading
from typing import BinaryIO, Callable, Optional

import serial

from ..config import READ_CHUNK
from ..exceptions import RelayIOError
from ..terminal import RawTerminal
from ..utils.logging_utils import log_relay_event
from .coordinator import SuspendCoordinator

logger = logging.getLogger(__name__)

BOOT_MESSAGE = b"Term ready.\r\n"

# Clears the high bit of every byte
SEVEN_BIT_TABLE = bytes(i & 0x7F for i in range(256))


def mask_seven_bit(data: bytes) -> bytes:
    return data.translate(SEVEN_BIT_TABLE)


class Downlink:
    """
    Reads the serial port and copies what arrives to the screen and log.

    Runs on its own thread. Between reads it passes through the
    coordinator's checkpoint, which is where suspension and termination take
    effect; a read in flight completes first (bounded by the port timeout).
    Any read or write failure is fatal: the error is kept in :attr:`error`,
    the downlink terminates and ``on_fatal`` is called.
    """

    def __init__(
        self,
        port: serial.Serial,
        terminal: RawTerminal,
        coordinator: SuspendCoordinator,
        log: Optional[BinaryIO] = None,
        on_fatal: Optional[Callable[[RelayIOError], None]] = None,
        chunk_size: int = READ_CHUNK,
    ):
        self.port = port
        self.terminal = terminal
        self.coordinator = coordinator
        self.log = log
        self.on_fatal = on_fatal
        self.chunk_size = chunk_size
        self.error: Optional[RelayIOError] = None
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        self._thread = threading.Thread(target=self.run, name="downlink", daemon=True)
        self._thread.start()

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait for the thread; True if it has finished."""
        if self._thread is None:
            return True
        self._thread.join(timeout)
        return not self._thread.is_alive()

    def run(self) -> None:
        log_relay_event(logger, "downlink", "running")
        try:
            self.terminal.write(BOOT_MESSAGE)
            while self.coordinator.checkpoint():
                data = self.port.read(self.chunk_size)
                if data:
                    self._deliver(mask_seven_bit(data))
        except (serial.SerialException, OSError, ValueError) as e:
            if not self.coordinator.terminated:
                self._fail(e)
        finally:
            self.coordinator.terminate()
            log_relay_event(logger, "downlink", "terminated")

    def _deliver(self, data: bytes) -> None:
        self.terminal.write(data)
        if self.log is not None:
            self.log.write(data)
            self.log.flush()

    def _fail(self, exc: Exception) -> None:
        self.error = RelayIOError(
            f"Serial read failed: {exc}",
            context={"path": "downlink"},
            original_exception=exc,
        )
        logger.error(str(self.error))
        self.coordinator.terminate()
        if self.on_fatal is not None:
            self.on_fatal(self.error)
