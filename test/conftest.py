import os

import pytest


def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line("markers", "slow: marks test as slow running test")
    config.addinivalue_line(
        "markers", "hardware: marks test that require a DT8824 on the network"
    )


def pytest_collection_modifyitems(config, items):
    """Skip hardware tests when no instrument address is given."""
    if os.environ.get("DTDAQ_HOST"):
        return
    skip_hw = pytest.mark.skip(reason="set DTDAQ_HOST to run hardware tests")
    for item in items:
        if "hardware" in item.keywords:
            item.add_marker(skip_hw)
