import logging
import os
import queue
import select
import termios
import threading
import time
from logging import NullHandler
from typing import List, Optional

import pytest

from serterm.config import SessionConfig
from serterm.terminal import RawTerminal


class FakePort:
    """Stand-in for ``serial.Serial`` driven by a queue of read results.

    Items queued with :meth:`feed` are returned by :meth:`read` in order; an
    exception instance is raised instead of returned. An empty queue behaves
    like a read timeout and returns ``b""``.
    """

    def __init__(self, chunks=(), fd: Optional[int] = None, read_timeout=0.01):
        self._chunks: "queue.Queue" = queue.Queue()
        for chunk in chunks:
            self._chunks.put(chunk)
        self._fd = fd
        self._read_timeout = read_timeout
        self.written = bytearray()
        self.settings: List[dict] = []
        self.closed = False
        self.port = "fake"

    def feed(self, item) -> None:
        self._chunks.put(item)

    def read(self, size: int = 1) -> bytes:
        try:
            item = self._chunks.get(timeout=self._read_timeout)
        except queue.Empty:
            return b""
        if isinstance(item, BaseException):
            raise item
        return item[:size]

    def write(self, data: bytes) -> int:
        self.written.extend(data)
        return len(data)

    def apply_settings(self, settings: dict) -> None:
        self.settings.append(dict(settings))

    def fileno(self) -> int:
        if self._fd is None:
            raise OSError("fake port has no descriptor")
        return self._fd

    def close(self) -> None:
        self.closed = True


class ScriptedTerminal(RawTerminal):
    """Terminal whose keystrokes come from a byte string and whose screen is a buffer."""

    def __init__(self, keys: bytes = b""):
        super().__init__(in_fd=-1, out_fd=-1)
        self._keys = bytearray(keys)
        self._out_lock = threading.Lock()
        self.output = bytearray()

    def read_byte(self) -> Optional[int]:
        if not self._keys:
            return None
        return self._keys.pop(0)

    def write(self, data: bytes) -> None:
        with self._out_lock:
            self.output.extend(data)

    def screen(self) -> bytes:
        with self._out_lock:
            return bytes(self.output)


def wait_for(predicate, timeout: float = 2.0, interval: float = 0.005) -> bool:
    """Poll ``predicate`` until it is true or ``timeout`` elapses."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


@pytest.fixture
def fake_port():
    return FakePort()


@pytest.fixture
def config():
    return SessionConfig(device="/dev/null-serial")


@pytest.fixture
def pty_pair():
    """A (master, slave) pseudo-terminal pair; the slave plays the user's tty."""
    master, slave = os.openpty()
    try:
        yield master, slave
    finally:
        for fd in (master, slave):
            try:
                os.close(fd)
            except OSError:
                pass


@pytest.fixture
def pty_attributes(pty_pair):
    """Attributes of the pty slave before the test touches it."""
    return termios.tcgetattr(pty_pair[1])


@pytest.fixture(autouse=True)
def suppress_logging():
    logger = logging.getLogger()
    old_handlers = logger.handlers[:]
    null_handler = NullHandler()
    logger.addHandler(null_handler)
    yield
    try:
        logger.removeHandler(null_handler)
    except ValueError:
        pass
    current_handlers = logger.handlers[:]
    for h in old_handlers:
        if h not in current_handlers:
            logger.addHandler(h)
    for h in logger.handlers[:]:
        if h not in old_handlers:
            logger.removeHandler(h)


@pytest.fixture
def preserve_root_logger():
    """Restore the root logger's level and handlers after ``setup_logging``."""
    root = logging.getLogger()
    level = root.level
    handlers = root.handlers[:]
    yield root
    for h in root.handlers[:]:
        if h not in handlers:
            root.removeHandler(h)
            h.close()
    for h in handlers:
        if h not in root.handlers:
            root.addHandler(h)
    root.setLevel(level)


def read_until(fd: int, expected: bytes, timeout: float = 2.0) -> bytes:
    """Read from ``fd`` until ``expected`` has been seen or ``timeout`` elapses."""
    data = bytearray()
    deadline = time.monotonic() + timeout
    while expected not in data:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            break
        ready, _, _ = select.select([fd], [], [], remaining)
        if not ready:
            break
        try:
            chunk = os.read(fd, 1024)
        except OSError:
            break
        if not chunk:
            break
        data.extend(chunk)
    return bytes(data)
