"""
Session lifecycle for serterm.

A :class:`Session` owns the serial port, the user's terminal and the
optional receive log. :meth:`Session.run` installs raw mode, starts the
downlink thread, runs the uplink on the calling thread and tears everything
down exactly once, whichever way the session ends.
"""

import logging
import os
import signal
import sys
import threading
from typing import Any, BinaryIO, Dict, Optional

import serial

from .config import SessionConfig
from .escape import EscapeDispatcher
from .exceptions import LogOpenError, RelayIOError, SertermError, SessionTerminated
from .relay import Downlink, SuspendCoordinator, Uplink, UplinkOutcome
from .serial_port import SerialConfigurator, open_serial_port
from .terminal import RawTerminal
from .transfer import TransferHelper
from .utils.logging_utils import log_session_action, log_session_error

logger = logging.getLogger(__name__)

EXIT_SUCCESS = 0
EXIT_FAILURE = 1

FAREWELL_MESSAGE = b"Exiting\n"

# Longest wait for the downlink to notice termination; its reads are
# bounded by the port timeout.
DOWNLINK_JOIN_TIMEOUT = 2.0

TERMINATION_SIGNALS = (signal.SIGTERM, signal.SIGHUP)


def open_log(path: str) -> BinaryIO:
    """Create the receive log, truncating any previous contents."""
    try:
        return open(path, "wb")
    except OSError as e:
        raise LogOpenError(
            f"{path}: {e.strerror or e}",
            context={"path": path},
            original_exception=e,
        ) from e


class Session:
    """One terminal-to-serial connection."""

    def __init__(
        self,
        config: SessionConfig,
        port: serial.Serial,
        terminal: RawTerminal,
        log: Optional[BinaryIO] = None,
        helper: Optional[TransferHelper] = None,
    ):
        self.config = config
        self.port = port
        self.terminal = terminal
        self.log = log
        self.error: Optional[SertermError] = None
        self.closed = False

        self.coordinator = SuspendCoordinator()
        self.configurator = SerialConfigurator(config.serial_config())
        self._wake_r, self._wake_w = os.pipe()

        self.dispatcher = EscapeDispatcher(
            config, terminal, port, self.configurator, helper=helper
        )
        self.downlink = Downlink(
            port, terminal, self.coordinator, log=log, on_fatal=self._downlink_failed
        )
        self.uplink = Uplink(
            config,
            terminal,
            port,
            self.coordinator,
            self.dispatcher,
            wake_fd=self._wake_r,
        )

    @classmethod
    def open(cls, config: SessionConfig, terminal: Optional[RawTerminal] = None) -> "Session":
        """
        Acquire the log and the serial device for ``config``.

        Raises:
            LogOpenError: if the log cannot be created
            DeviceOpenError: if the device cannot be opened
        """
        log = open_log(config.log_path) if config.log_path else None
        try:
            port = open_serial_port(config)
        except SertermError:
            if log is not None:
                log.close()
            raise
        if terminal is None:
            terminal = RawTerminal(sys.stdin.fileno(), sys.stdout.fileno())
        return cls(config, port, terminal, log=log)

    def run(self) -> int:
        """
        Relay until the user quits, input ends, or a fatal error occurs.

        Returns:
            EXIT_SUCCESS for a user quit or end of input, EXIT_FAILURE
            otherwise; the error, if any, is left in :attr:`error`
        """
        status = EXIT_FAILURE
        previous_handlers = self._install_signal_handlers()
        try:
            self.terminal.enter_raw_mode()
            log_session_action(logger, "Session started", self.config.device)
            self.downlink.start()
            outcome = self.uplink.run()
            if outcome is UplinkOutcome.ABORTED:
                self.error = self.downlink.error or RelayIOError("Downlink stopped")
            else:
                log_session_action(logger, "Session ending", outcome.value)
                status = EXIT_SUCCESS
        except SertermError as e:
            e.add_context("device", self.config.device)
            self.error = e
        finally:
            self._restore_signal_handlers(previous_handlers)
            self.close(farewell=status == EXIT_SUCCESS)
        if self.error is not None:
            log_session_error(logger, "run", self.error)
        return status

    def close(self, farewell: bool = True) -> None:
        """Tear the session down. Safe to call more than once."""
        if self.closed:
            return
        self.closed = True
        self.coordinator.terminate()
        if not self.downlink.join(DOWNLINK_JOIN_TIMEOUT):
            logger.warning("Downlink thread did not stop in time")
        try:
            self.terminal.restore()
        except SertermError as e:
            log_session_error(logger, "restore", e)
            if self.error is None:
                self.error = e
        if farewell:
            try:
                self.terminal.write(FAREWELL_MESSAGE)
            except OSError as e:
                log_session_error(logger, "farewell", e)
        if self.log is not None:
            self.log.close()
        self.port.close()
        os.close(self._wake_r)
        os.close(self._wake_w)
        log_session_action(logger, "Session closed")

    def _downlink_failed(self, error: RelayIOError) -> None:
        # Runs on the downlink thread; the uplink sees the pipe and returns
        os.write(self._wake_w, b"!")

    def _on_signal(self, signum: int, frame: Any) -> None:
        raise SessionTerminated(f"Terminated by {signal.Signals(signum).name}")

    def _install_signal_handlers(self) -> Dict[int, Any]:
        previous: Dict[int, Any] = {}
        if threading.current_thread() is not threading.main_thread():
            return previous
        for signum in TERMINATION_SIGNALS:
            previous[signum] = signal.signal(signum, self._on_signal)
        return previous

    def _restore_signal_handlers(self, previous: Dict[int, Any]) -> None:
        for signum, handler in previous.items():
            signal.signal(signum, handler)
