"""
Suspend/resume signalling between the uplink and the downlink.

The downlink calls :meth:`SuspendCoordinator.checkpoint` between reads. When
the uplink has asked for a suspension, the checkpoint acknowledges it and
parks until resumed, so the uplink knows nothing is being written to the
screen while it prompts the user or runs a transfer helper.
"""

import logging
import threading
from enum import Enum
from typing import Optional

from ..exceptions import SuspendTimeoutError

logger = logging.getLogger(__name__)


class DownlinkState(Enum):
    RUNNING = "running"
    SUSPEND_REQUESTED = "suspend_requested"
    SUSPENDED = "suspended"
    TERMINATED = "terminated"


class SuspendCoordinator:
    """Cooperative pause/resume signal with acknowledgement."""

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._state = DownlinkState.RUNNING

    @property
    def state(self) -> DownlinkState:
        with self._cond:
            return self._state

    @property
    def terminated(self) -> bool:
        return self.state is DownlinkState.TERMINATED

    def suspend(self, timeout: Optional[float] = None) -> None:
        """
        Ask the downlink to park and wait until it has.

        Returns immediately if the downlink has terminated.

        Raises:
            SuspendTimeoutError: if ``timeout`` elapses first
        """
        with self._cond:
            if self._state is DownlinkState.TERMINATED:
                return
            if self._state is DownlinkState.RUNNING:
                self._state = DownlinkState.SUSPEND_REQUESTED
                self._cond.notify_all()
            parked = self._cond.wait_for(
                lambda: self._state
                in (DownlinkState.SUSPENDED, DownlinkState.TERMINATED),
                timeout=timeout,
            )
            if not parked:
                self._state = DownlinkState.RUNNING
                self._cond.notify_all()
                raise SuspendTimeoutError(
                    "Downlink did not park", context={"timeout": timeout}
                )
        logger.debug("Downlink suspended")

    def resume(self) -> None:
        """Wake a parked downlink. No-op once terminated."""
        with self._cond:
            if self._state is DownlinkState.TERMINATED:
                return
            self._state = DownlinkState.RUNNING
            self._cond.notify_all()
        logger.debug("Downlink resumed")

    def terminate(self) -> None:
        with self._cond:
            self._state = DownlinkState.TERMINATED
            self._cond.notify_all()

    def checkpoint(self) -> bool:
        """
        Downlink safe point, called between reads.

        Parks while a suspension is in effect. Returns False once the
        downlink should stop.
        """
        with self._cond:
            if self._state is DownlinkState.SUSPEND_REQUESTED:
                self._state = DownlinkState.SUSPENDED
                self._cond.notify_all()
            self._cond.wait_for(lambda: self._state is not DownlinkState.SUSPENDED)
            return self._state is not DownlinkState.TERMINATED
