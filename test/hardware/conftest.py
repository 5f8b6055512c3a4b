import os

import pytest

import dtdaq.util
from dtdaq.device import DT8824
from dtdaq.util import DEFAULT_PORT, TEST_LOGLEVEL


@pytest.fixture(scope="session")
def daq_address():
    """Address of a real DT8824, from DTDAQ_HOST (and optional DTDAQ_PORT)."""
    host = os.environ.get("DTDAQ_HOST")
    if not host:
        pytest.skip("DTDAQ_HOST not set, no DT8824 available")
    return host, int(os.environ.get("DTDAQ_PORT", DEFAULT_PORT))


@pytest.fixture()
def client_log():
    dtdaq.util.start_client_log(log_to_file=True, log_level=TEST_LOGLEVEL)
    yield
    dtdaq.util.shutdown_client_log()


@pytest.fixture
def daq(daq_address):
    """Open a connection for each test."""
    daq = DT8824(*daq_address)
    ok, msg = daq.open()
    if not ok:
        pytest.skip(msg)
    try:
        yield daq
    finally:
        daq.close()
