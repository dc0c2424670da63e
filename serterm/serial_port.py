"""
Serial device access for serterm.

The device is opened exclusively through pyserial. :class:`SerialConfigurator`
then pins the line settings down; it is run at startup and again whenever a
transfer helper hands the device back, since helpers may leave the line in
their own preferred state.
"""

import fcntl
import logging
import os
import termios
from typing import Any, Dict, List

import serial

from .config import Parity, SerialConfig, SessionConfig
from .exceptions import DeviceOpenError, SerialConfigurationError
from .terminal import CC, CFLAG, IFLAG, ISPEED, LFLAG, OFLAG, OSPEED
from .utils.logging_utils import log_debug_operation

logger = logging.getLogger(__name__)


def build_attributes(attributes: List, config: SerialConfig) -> List:
    """
    Return a copy of a ``tcgetattr`` list with ``config`` applied.

    Local mode (CLOCAL) is always set so reads never wait on carrier detect,
    and one stop bit is always used.
    """
    new = list(attributes)
    new[CC] = list(attributes[CC])

    new[LFLAG] &= ~(termios.ECHO | termios.ICANON | termios.ISIG)

    new[CFLAG] |= termios.CLOCAL | termios.CREAD
    new[CFLAG] &= ~termios.CSIZE
    new[CFLAG] |= termios.CS7 if config.seven_bits else termios.CS8
    new[CFLAG] &= ~termios.CSTOPB
    if config.parity is Parity.NONE:
        new[CFLAG] &= ~(termios.PARENB | termios.PARODD)
    elif config.parity is Parity.ODD:
        new[CFLAG] |= termios.PARENB | termios.PARODD
    else:
        new[CFLAG] |= termios.PARENB
        new[CFLAG] &= ~termios.PARODD

    new[OFLAG] &= ~termios.OPOST
    new[IFLAG] = 0

    new[CC][termios.VMIN] = config.read_min
    new[CC][termios.VTIME] = config.read_time

    new[ISPEED] = config.speed_constant
    new[OSPEED] = config.speed_constant
    return new


class SerialConfigurator:
    """Applies a fixed :class:`SerialConfig` to an open port, idempotently."""

    def __init__(self, config: SerialConfig):
        self.config = config

    def port_settings(self) -> Dict[str, Any]:
        """Settings in the form accepted by ``serial.Serial.apply_settings``."""
        return {
            "baudrate": self.config.baud,
            "bytesize": self.config.bytesize,
            "parity": self.config.parity.value,
            "stopbits": serial.STOPBITS_ONE,
            "xonxoff": False,
            "rtscts": False,
            "dsrdtr": False,
            "timeout": self.config.read_timeout,
            "write_timeout": None,
            "inter_byte_timeout": None,
        }

    def configure(self, port: serial.Serial) -> None:
        """
        Apply the configuration to ``port``.

        pyserial applies speed, framing and flow control; the termios pass
        then sets the pieces pyserial leaves alone (all input flags cleared,
        read granularity) and blocking I/O is re-enabled on the descriptor,
        which is safe once CLOCAL is set.

        Raises:
            SerialConfigurationError: if any step fails
        """
        try:
            port.apply_settings(self.port_settings())
            fd = port.fileno()
            attributes = termios.tcgetattr(fd)
            termios.tcsetattr(
                fd, termios.TCSADRAIN, build_attributes(attributes, self.config)
            )
            flags = fcntl.fcntl(fd, fcntl.F_GETFL)
            fcntl.fcntl(fd, fcntl.F_SETFL, flags & ~os.O_NONBLOCK)
        except (serial.SerialException, termios.error, OSError, ValueError) as e:
            raise SerialConfigurationError(
                f"Cannot configure serial port: {e}",
                context={"port": getattr(port, "port", None)},
                original_exception=e,
            ) from e
        log_debug_operation(logger, "Serial port configured", self.config)


def open_serial_port(config: SessionConfig) -> serial.Serial:
    """
    Open the session's serial device exclusively and configure it.

    Raises:
        DeviceOpenError: if the device cannot be opened or locked
        SerialConfigurationError: if the line settings cannot be applied
    """
    configurator = SerialConfigurator(config.serial_config())
    try:
        port = serial.Serial(
            port=config.device,
            exclusive=True,
            **configurator.port_settings(),
        )
    except (serial.SerialException, ValueError) as e:
        raise DeviceOpenError(
            f"{config.device}: {e}",
            context={"device": config.device},
            original_exception=e,
        ) from e
    try:
        configurator.configure(port)
    except SerialConfigurationError:
        port.close()
        raise
    logger.info(f"Opened {config.device} at {config.baud} baud")
    return port
