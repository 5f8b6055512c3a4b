# -*- coding: utf-8 -*-
"""# dtdaq

Client for the Data Translation DT8824 networked data acquisition module.

- SCPI command/query exchange over TCP, serialised per connection
- Set-with-verify commands using the device error count
- Bulk fetch of buffered A/D scans (IEEE definite-length blocks), decoded
  to volts per channel gain

```python
from dtdaq import DT8824, Gain
daq = DT8824("192.168.1.40")
daq.open()
daq.set_ain_gain(1, Gain.GAIN_1)
record = daq.fetch(0, 100)
```
"""

from ._version import __version__
from .device import DT8824, FetchRecord
from .types import ChannelMask, DeviceError, Gain

__all__ = ["__version__", "DT8824", "FetchRecord", "ChannelMask", "DeviceError", "Gain"]
