"""
External file-transfer helpers.

serterm does not speak XMODEM/YMODEM/ZMODEM itself. For each (protocol,
direction) pair it runs a helper program (the lrzsz tools, or ``cat`` for
plain text) with the serial device as the helper's stdin and stdout. The
helper's stderr is left on the user's terminal. Its exit status is logged,
never interpreted.
"""

import logging
import subprocess
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from .config import Protocol
from .exceptions import HelperLaunchError, UnsupportedTransferError
from .utils.logging_utils import log_transfer_event

logger = logging.getLogger(__name__)


class Direction(Enum):
    RECEIVE = "receive"
    SEND = "send"


@dataclass(frozen=True)
class HelperCommand:
    """Program for one (protocol, direction) pair."""

    program: str
    needs_filename: bool


HELPERS: Dict[Tuple[Protocol, Direction], HelperCommand] = {
    # XMODEM doesn't send names, so the receiver has to ask
    (Protocol.XMODEM, Direction.RECEIVE): HelperCommand("lrx", True),
    (Protocol.YMODEM, Direction.RECEIVE): HelperCommand("lry", False),
    (Protocol.ZMODEM, Direction.RECEIVE): HelperCommand("lrz", False),
    (Protocol.XMODEM, Direction.SEND): HelperCommand("lsx", True),
    (Protocol.YMODEM, Direction.SEND): HelperCommand("lsy", True),
    (Protocol.ZMODEM, Direction.SEND): HelperCommand("lsz", True),
    (Protocol.TEXT, Direction.SEND): HelperCommand("cat", True),
}


def helper_for(protocol: Protocol, direction: Direction) -> HelperCommand:
    """
    Look up the helper for a protocol and direction.

    Raises:
        UnsupportedTransferError: if the protocol cannot transfer that way
    """
    try:
        return HELPERS[(protocol, direction)]
    except KeyError:
        verb = "Receive" if direction is Direction.RECEIVE else "Transmit"
        raise UnsupportedTransferError(
            f"{verb} not supported with this protocol.",
        ) from None


@dataclass
class TransferRequest:
    """One transfer, built by the escape dispatcher and discarded afterwards."""

    protocol: Protocol
    direction: Direction
    filename: Optional[str] = None

    @property
    def command(self) -> HelperCommand:
        return helper_for(self.protocol, self.direction)

    def argv(self) -> List[str]:
        command = self.command
        if command.needs_filename:
            if not self.filename:
                raise ValueError(f"{command.program} needs a file name")
            return [command.program, self.filename]
        return [command.program]


Runner = Callable[..., "subprocess.CompletedProcess[bytes]"]


class TransferHelper:
    """Runs helper programs on the serial device and waits for them."""

    def __init__(self, runner: Optional[Runner] = None):
        self._runner: Runner = runner or subprocess.run

    def run(self, request: TransferRequest, port_fd: int) -> int:
        """
        Run the helper for ``request`` with the port as stdin/stdout.

        Returns:
            The helper's exit status (informational only)

        Raises:
            HelperLaunchError: if the program cannot be started
        """
        argv = request.argv()
        log_transfer_event(logger, "Starting helper", " ".join(argv))
        try:
            completed = self._runner(argv, stdin=port_fd, stdout=port_fd, check=False)
        except OSError as e:
            raise HelperLaunchError(
                f"{argv[0]}: {e.strerror or e}",
                context={"argv": " ".join(argv)},
                original_exception=e,
            ) from e
        log_transfer_event(
            logger, "Helper returned", f"{argv[0]} status={completed.returncode}"
        )
        return completed.returncode
