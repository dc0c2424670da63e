"""Exceptions for serterm with contextual information."""

from typing import Any, Dict, Optional


class SertermError(Exception):
    """Base error for serterm with contextual information."""

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None,
    ):
        """
        Initialize a serterm error.

        Args:
            message: Error message
            context: Optional context information (device, fd, protocol, etc.)
            original_exception: Original exception that caused this error
        """
        super().__init__(message)
        self.message = message
        self.context = context or {}
        self.original_exception = original_exception

    def __str__(self) -> str:
        """Get string representation with context."""
        base_msg = super().__str__()
        if self.context:
            context_items = []
            for key, value in self.context.items():
                if isinstance(value, str) and len(value) > 50:
                    value = value[:47] + "..."
                context_items.append(f"{key}={value}")
            context_str = ", ".join(context_items)
            return f"{base_msg} (Context: {context_str})"
        return base_msg

    def __repr__(self) -> str:
        base_repr = super().__repr__()
        if self.context:
            return f"{base_repr} (context={self.context!r})"
        return base_repr

    def add_context(self, key: str, value: Any) -> None:
        """Add context information to the exception."""
        self.context[key] = value

    def get_context(self, key: str, default: Any = None) -> Any:
        """Get context information from the exception."""
        return self.context.get(key, default)


class ConfigurationError(SertermError):
    """Invalid or conflicting command line configuration."""

    pass


class ResourceError(SertermError):
    """A device or file needed by the session could not be acquired."""

    pass


class DeviceOpenError(ResourceError):
    """The serial device could not be opened."""

    pass


class LogOpenError(ResourceError):
    """The receive log could not be created."""

    pass


class TerminalModeError(SertermError):
    """Capturing or installing terminal line discipline failed."""

    pass


class SerialConfigurationError(SertermError):
    """Applying serial line settings failed."""

    pass


class RelayIOError(SertermError):
    """Fatal read or write failure on one of the duplex paths."""

    pass


class UnsupportedTransferError(SertermError):
    """The selected protocol cannot transfer in the requested direction."""

    pass


class SuspendTimeoutError(SertermError):
    """The downlink did not park within the allotted time."""

    pass


class HelperLaunchError(SertermError):
    """A transfer helper program could not be started."""

    pass


class SessionTerminated(SertermError):
    """The session was ended by a termination signal."""

    pass
