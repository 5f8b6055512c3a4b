"""
Shared types for the dtdaq client.

- Error hierarchy (`DeviceError` and its four kinds)
- Channel, gain and A/D status enumerations

Examples
--------
Building a channel mask and handling a device-side rejection:
```python
from dtdaq.types import ChannelMask, DeviceSystemError, Gain

mask = ChannelMask.AIN1 | ChannelMask.AIN3
try:
    daq.set_ain_gain(1, Gain.GAIN_8)
except DeviceSystemError as e:
    print(e.command, daq.get_system_error())
```
"""

from .channels import NUM_AIN_CHANNELS, AdStatus, ChannelMask, Gain, is_valid_channel
from .errors import (
    CommunicationError,
    DeviceError,
    DeviceSystemError,
    ErrorKind,
    ParamError,
    ProtocolError,
)

__all__ = [
    "NUM_AIN_CHANNELS",
    "AdStatus",
    "ChannelMask",
    "Gain",
    "is_valid_channel",
    "CommunicationError",
    "DeviceError",
    "DeviceSystemError",
    "ErrorKind",
    "ParamError",
    "ProtocolError",
]
