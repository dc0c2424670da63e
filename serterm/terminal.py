"""
Host terminal line discipline for serterm.

Captures the user's terminal mode, installs the raw mode used for duplex
byte-level I/O, and puts the original mode back exactly once.
"""

import logging
import os
import termios
import threading
from dataclasses import dataclass
from typing import List, Optional

from .exceptions import TerminalModeError
from .utils.logging_utils import log_debug_operation

logger = logging.getLogger(__name__)

# Index names for the list returned by termios.tcgetattr
IFLAG, OFLAG, CFLAG, LFLAG, ISPEED, OSPEED, CC = range(7)


@dataclass(frozen=True)
class SavedMode:
    """Snapshot of a terminal's attributes taken before raw mode."""

    fd: int
    attributes: List


def raw_attributes(attributes: List) -> List:
    """Return a raw-mode copy of a ``tcgetattr`` attribute list."""
    new = list(attributes)
    new[CC] = list(attributes[CC])
    new[LFLAG] &= ~(termios.ECHO | termios.ICANON | termios.ISIG)
    new[OFLAG] &= ~termios.OPOST
    new[IFLAG] = 0
    new[CC][termios.VMIN] = 1
    new[CC][termios.VTIME] = 0
    return new


def save_mode(fd: int) -> SavedMode:
    """
    Capture the terminal's current mode.

    Raises:
        TerminalModeError: if the descriptor is not a terminal
    """
    try:
        return SavedMode(fd=fd, attributes=termios.tcgetattr(fd))
    except (termios.error, OSError) as e:
        raise TerminalModeError(
            f"Cannot read terminal mode: {e}",
            context={"fd": fd},
            original_exception=e,
        ) from e


def install_raw_mode(saved: SavedMode) -> None:
    """Switch the terminal captured in ``saved`` to raw mode."""
    try:
        termios.tcsetattr(saved.fd, termios.TCSAFLUSH, raw_attributes(saved.attributes))
    except (termios.error, OSError) as e:
        raise TerminalModeError(
            f"Cannot set raw mode: {e}",
            context={"fd": saved.fd},
            original_exception=e,
        ) from e
    log_debug_operation(logger, "Raw mode installed", f"fd={saved.fd}")


def enter_raw_mode(fd: int) -> SavedMode:
    """
    Capture the terminal's current mode and switch it to raw mode.

    Args:
        fd: Terminal file descriptor

    Returns:
        The saved mode, to be passed to :func:`restore_mode`

    Raises:
        TerminalModeError: if the descriptor is not a terminal or the
            attributes cannot be set
    """
    saved = save_mode(fd)
    install_raw_mode(saved)
    return saved


def restore_mode(saved: SavedMode) -> None:
    """
    Reapply a saved mode.

    Pending output is drained and pending input discarded (TCSAFLUSH) so no
    stray bytes leak into the user's shell.
    """
    try:
        termios.tcsetattr(saved.fd, termios.TCSAFLUSH, saved.attributes)
    except (termios.error, OSError) as e:
        raise TerminalModeError(
            f"Cannot restore terminal mode: {e}",
            context={"fd": saved.fd},
            original_exception=e,
        ) from e
    log_debug_operation(logger, "Terminal mode restored", f"fd={saved.fd}")


class RawTerminal:
    """
    The user's terminal for the duration of a session.

    Reads keystrokes from ``in_fd`` and writes screen output to ``out_fd``.
    :meth:`restore` may be called from every exit path; only the first call
    touches the line discipline.
    """

    def __init__(self, in_fd: int = 0, out_fd: int = 1):
        self.in_fd = in_fd
        self.out_fd = out_fd
        self._saved: Optional[SavedMode] = None
        self._raw = False
        self._restored = False
        self._lock = threading.Lock()

    @property
    def is_raw(self) -> bool:
        return self._raw and not self._restored

    def enter_raw_mode(self) -> None:
        if self._saved is not None:
            return
        # Snapshot before switching; a signal may land in between
        self._saved = save_mode(self.in_fd)
        try:
            install_raw_mode(self._saved)
        except TerminalModeError:
            self._saved = None
            raise
        self._raw = True

    def restore(self) -> bool:
        """Restore the saved mode; returns True only for the call that did it."""
        with self._lock:
            if self._saved is None or self._restored:
                return False
            self._restored = True
        restore_mode(self._saved)
        return True

    def read_byte(self) -> Optional[int]:
        """Block for one byte; None at end of input."""
        data = os.read(self.in_fd, 1)
        if not data:
            return None
        return data[0]

    def write(self, data: bytes) -> None:
        view = memoryview(data)
        while view:
            written = os.write(self.out_fd, view)
            view = view[written:]

    def __enter__(self) -> "RawTerminal":
        self.enter_raw_mode()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.restore()
