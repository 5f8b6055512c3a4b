# -*- coding: utf-8 -*-
"""
Utility functions and constants for dtdaq.

- Default connection and logging settings
- Logging configuration (loguru)
- Device configuration from INI files

Examples
--------
Starting a log and loading a configured instrument:
```python
from dtdaq.util import load_device_config, start_client_log
start_client_log(log_to_stdout=True)
cfg = load_device_config("lab_daq")
```

See Also
--------
dtdaq.util.logging : Logging configuration
dtdaq.util.config : INI device configuration
"""

from .config import DeviceConfig, list_device_configs, load_device_config
from .defaults import (
    DEFAULT_HOST_ADDR,
    DEFAULT_LOGLEVEL,
    DEFAULT_PORT,
    DEFAULT_TIMEOUT,
    SINGLE_LINE_ERR_LOG,
    TEST_LOGLEVEL,
)
from .logging import (
    clear_log,
    format_error_response,
    get_log_filename,
    log_default_path_client,
    shutdown_client_log,
    start_client_log,
)

__all__ = [
    "DEFAULT_HOST_ADDR",
    "DEFAULT_LOGLEVEL",
    "DEFAULT_PORT",
    "DEFAULT_TIMEOUT",
    "SINGLE_LINE_ERR_LOG",
    "TEST_LOGLEVEL",
    "DeviceConfig",
    "list_device_configs",
    "load_device_config",
    "clear_log",
    "format_error_response",
    "get_log_filename",
    "log_default_path_client",
    "shutdown_client_log",
    "start_client_log",
]
