import struct

import pytest

import dtdaq.util
from dtdaq.util import TEST_LOGLEVEL


@pytest.fixture()
def client_log(tmp_path):
    dtdaq.util.start_client_log(
        log_to_file=True, log_path=str(tmp_path / "client.log"), log_level=TEST_LOGLEVEL
    )
    yield
    dtdaq.util.shutdown_client_log()


def _build_payload(scan_count, channel_count, raw, start_index=0, ts=(0, 0), width=None):
    if width is None:
        width = channel_count * 4
    words = [scan_count, width, start_index, ts[0], ts[1], *raw]
    return struct.pack(f">{len(words)}I", *words)


def _build_block(payload: bytes, terminator: bytes = b"\n") -> bytes:
    length = str(len(payload)).encode("ascii")
    return b"#" + str(len(length)).encode("ascii") + length + payload + terminator


@pytest.fixture
def build_payload():
    """Pack a fetch record payload: 5 header words then the raw samples."""
    return _build_payload


@pytest.fixture
def build_block():
    """Wrap a payload in an IEEE definite-length block."""
    return _build_block
