"""
Duplex relay between the user's terminal and the serial port.
"""

from .coordinator import DownlinkState, SuspendCoordinator
from .downlink import Downlink, mask_seven_bit
from .uplink import Uplink, UplinkOutcome

__all__ = [
    "Downlink",
    "DownlinkState",
    "SuspendCoordinator",
    "Uplink",
    "UplinkOutcome",
    "mask_seven_bit",
]
