"""Exceptions raised by the DT8824 client.

Every failure the client can report falls into one of four kinds:

- PARAM: the caller passed an out-of-range channel, gain or index.
- COMMUNICATION: the transport failed to send or receive within the timeout.
- SYSTEM: the instrument accepted the bytes but its error counter increased.
- PROTOCOL: the binary fetch framing, header or payload length was malformed.

All exceptions derive from `DeviceError` and carry their `ErrorKind` in the
`kind` attribute, so callers may either catch the specific class or switch on
the kind.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional


class ErrorKind(Enum):
    """Category of a failed device operation."""

    PARAM = "param"
    COMMUNICATION = "communication"
    SYSTEM = "system"
    PROTOCOL = "protocol"


class DeviceError(Exception):
    """Base class for all DT8824 client errors."""

    kind: ErrorKind


class ParamError(DeviceError, ValueError):
    """Raised when a caller supplies an invalid parameter."""

    kind = ErrorKind.PARAM


class CommunicationError(DeviceError, ConnectionError):
    """Raised when the transport fails to send or receive in time."""

    kind = ErrorKind.COMMUNICATION


class DeviceSystemError(DeviceError):
    """Raised when the instrument rejected a command it received.

    The error queue itself is left untouched, read it with
    `DT8824.get_system_error()` to see why.

    Parameters
    ----------
    command : str
        The SCPI command that increased the device error count.
    errors_before, errors_after : int, optional
        Device error count read before and after sending the command.
    """

    kind = ErrorKind.SYSTEM

    def __init__(
        self,
        command: str,
        errors_before: Optional[int] = None,
        errors_after: Optional[int] = None,
    ):
        self.command = command
        self.errors_before = errors_before
        self.errors_after = errors_after
        msg = f"Device rejected command: {command}"
        if errors_before is not None and errors_after is not None:
            msg += f" (error count {errors_before} -> {errors_after})"
        super().__init__(msg)


class ProtocolError(DeviceError):
    """Raised when a binary fetch response cannot be parsed."""

    kind = ErrorKind.PROTOCOL
