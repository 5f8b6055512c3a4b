# -*- coding: utf-8 -*-
"""
Instrument clients for dtdaq.

- `DT8824`: SCPI client for the Data Translation DT8824 DAQ module
- `Transport`/`SocketTransport`: byte streams the client talks over
- `FetchRecord` and the raw/volt conversions for A/D fetch data
- `MockTransport`: scripted transport for tests and offline use

Examples
--------
```python
from dtdaq.device import DT8824
daq = DT8824("192.168.1.40")
ok, msg = daq.open()
print(daq.identify())
```

See Also
--------
dtdaq.types : Error and channel types
"""

from .device import Device
from .dt8824 import DT8824
from .fetch_record import (
    ChannelValue,
    FetchRecord,
    Timestamp,
    decode_fetch_record,
    raw_to_volts,
    volts_to_raw,
)
from .mock import MockTransport
from .transport import SocketTransport, Transport

__all__ = [
    "Device",
    "DT8824",
    "ChannelValue",
    "FetchRecord",
    "Timestamp",
    "decode_fetch_record",
    "raw_to_volts",
    "volts_to_raw",
    "SocketTransport",
    "Transport",
    "MockTransport",
]
