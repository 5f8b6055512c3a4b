"""Tests for the AD:FETCH? binary block protocol"""

import pytest

from dtdaq.device import DT8824, MockTransport
from dtdaq.device.fetch_record import raw_to_volts
from dtdaq.types import (
    ChannelMask,
    CommunicationError,
    ErrorKind,
    Gain,
    ParamError,
    ProtocolError,
)

MASK_12 = ChannelMask.AIN1 | ChannelMask.AIN2
GAINS = [Gain.GAIN_1, Gain.GAIN_32, Gain.GAIN_32, Gain.GAIN_32]


def make_daq(transport):
    daq = DT8824(timeout=0.05, transport=transport)
    daq.open()
    return daq


@pytest.fixture
def two_scans(build_payload):
    raw = [0x000000, 0x800000, 0xFFFFFF, 0x400000]
    return raw, build_payload(2, 2, raw, start_index=10, ts=(100, 500))


@pytest.mark.usefixtures("client_log")
class TestFetch:
    def test_fetch_record(self, two_scans, build_block):
        raw, payload = two_scans
        transport = MockTransport({"AD:FETCH? 10,2": build_block(payload)})
        daq = make_daq(transport)

        record = daq.fetch(10, 2, channel_mask=MASK_12, gains=GAINS)

        assert transport.written == ["AD:FETCH? 10,2"]
        assert record.scan_count == 2
        assert record.channel_count == 2
        assert record.start_index == 10
        assert record.timestamp.as_float() == pytest.approx(100.0000005)
        assert list(record.values_for(1)) == pytest.approx(
            [raw_to_volts(raw[0], Gain.GAIN_1), raw_to_volts(raw[2], Gain.GAIN_1)]
        )
        assert list(record.values_for(2)) == pytest.approx(
            [0.0, raw_to_volts(raw[3], Gain.GAIN_32)]
        )

    @pytest.mark.parametrize("scan_count", [None, 0, -5])
    def test_fetch_all_available(self, scan_count, build_payload, build_block):
        payload = build_payload(1, 1, [0x800000])
        transport = MockTransport({"AD:FETCH? 0": build_block(payload)})
        daq = make_daq(transport)
        record = daq.fetch(0, scan_count, ChannelMask.AIN1, GAINS)
        assert transport.written == ["AD:FETCH? 0"]
        assert record.scan_count == 1

    def test_fragmented_stream(self, two_scans, build_block):
        _, payload = two_scans
        transport = MockTransport(
            {"AD:FETCH? 10,2": build_block(payload)}, chunk_size=3
        )
        daq = make_daq(transport)
        record = daq.fetch(10, 2, MASK_12, GAINS)
        assert record.scan_count == 2

    def test_missing_terminator(self, two_scans, build_block):
        _, payload = two_scans
        transport = MockTransport(
            {"AD:FETCH? 10,2": build_block(payload, terminator=b"")}
        )
        daq = make_daq(transport)
        assert daq.fetch(10, 2, MASK_12, GAINS).scan_count == 2

    def test_long_length_field(self, build_payload):
        payload = build_payload(1, 1, [0x800000])
        block = b"#9" + str(len(payload)).zfill(9).encode() + payload + b"\n"
        transport = MockTransport({"AD:FETCH? 0,1": block})
        daq = make_daq(transport)
        assert daq.fetch(0, 1, ChannelMask.AIN1, GAINS).scan_count == 1

    def test_mapping_gains(self, two_scans, build_block):
        raw, payload = two_scans
        transport = MockTransport({"AD:FETCH? 10,2": build_block(payload)})
        daq = make_daq(transport)
        record = daq.fetch(10, 2, MASK_12, {1: Gain.GAIN_8, 2: 32})
        assert record.values_for(1)[0] == pytest.approx(-1.25)

    def test_reads_mask_and_gains_from_device(self, two_scans, build_block):
        raw, payload = two_scans
        transport = MockTransport(
            {
                "AD:ENAB? (@1)": "1",
                "AD:ENAB? (@2)": "1",
                "AD:ENAB? (@3)": "0",
                "AD:ENAB? (@4)": "0",
                "AD:GAIN? (@1)": "1",
                "AD:GAIN? (@2)": "16",
                "AD:FETCH? 10,2": build_block(payload),
            }
        )
        daq = make_daq(transport)
        record = daq.fetch(10, 2)
        assert transport.written[-1] == "AD:FETCH? 10,2"
        assert "AD:GAIN? (@3)" not in transport.written
        assert record.values_for(2)[1] == pytest.approx(
            raw_to_volts(raw[3], Gain.GAIN_16)
        )


@pytest.mark.usefixtures("client_log")
class TestFetchFailures:
    def test_negative_start_index(self):
        transport = MockTransport()
        daq = make_daq(transport)
        with pytest.raises(ParamError):
            daq.fetch(-1, 10, MASK_12, GAINS)
        assert transport.written == []

    @pytest.mark.parametrize("scan_count", [2.5, "10", True])
    def test_non_integer_scan_count(self, scan_count):
        transport = MockTransport()
        daq = make_daq(transport)
        with pytest.raises(ParamError):
            daq.fetch(0, scan_count, MASK_12, GAINS)
        assert transport.written == []

    def test_invalid_gain_checked_before_sending(self):
        transport = MockTransport()
        daq = make_daq(transport)
        with pytest.raises(ParamError):
            daq.fetch(0, 10, MASK_12, [Gain.GAIN_1, Gain.GAIN_INVALID, 1, 1])
        assert transport.written == []

    def test_send_failure(self):
        transport = MockTransport()
        transport.fail_writes = True
        daq = make_daq(transport)
        with pytest.raises(CommunicationError):
            daq.fetch(0, 10, MASK_12, GAINS)

    def test_no_reply(self):
        daq = make_daq(MockTransport())
        with pytest.raises(CommunicationError) as excinfo:
            daq.fetch(0, 10, MASK_12, GAINS)
        assert excinfo.value.kind is ErrorKind.COMMUNICATION

    @pytest.mark.parametrize(
        "reply",
        [
            b"$18" + b"\x00" * 8 + b"\n",  # bad marker
            b"#0",  # zero length digits
            b"#x12",  # non-digit length count
            b"#2a4" + b"\x00" * 40,  # non-digit length field
        ],
    )
    def test_bad_framing(self, reply):
        transport = MockTransport({"AD:FETCH? 0,1": reply})
        daq = make_daq(transport)
        with pytest.raises(ProtocolError) as excinfo:
            daq.fetch(0, 1, MASK_12, GAINS)
        assert excinfo.value.kind is ErrorKind.PROTOCOL

    def test_stale_bytes_discarded_after_failure(self):
        transport = MockTransport({"AD:FETCH? 0,1": b"$garbage", "*IDN?": "DT8824"})
        daq = make_daq(transport)
        with pytest.raises(ProtocolError):
            daq.fetch(0, 1, MASK_12, GAINS)
        assert daq.identify() == "DT8824"

    def test_short_length_field(self):
        transport = MockTransport({"AD:FETCH? 0,1": b"#41"})
        daq = make_daq(transport)
        with pytest.raises(CommunicationError):
            daq.fetch(0, 1, MASK_12, GAINS)

    def test_truncated_payload(self, two_scans):
        _, payload = two_scans
        length = str(len(payload)).encode()
        block = b"#" + str(len(length)).encode() + length + payload[:-6]
        transport = MockTransport({"AD:FETCH? 10,2": block})
        daq = make_daq(transport)
        with pytest.raises(CommunicationError):
            daq.fetch(10, 2, MASK_12, GAINS)

    def test_block_larger_than_buffer(self, two_scans, build_block):
        _, payload = two_scans
        transport = MockTransport({"AD:FETCH? 10,2": build_block(payload)})
        daq = make_daq(transport)
        daq._max_payload = 16
        with pytest.raises(ProtocolError):
            daq.fetch(10, 2, MASK_12, GAINS)

    def test_record_does_not_match_mask(self, two_scans, build_block):
        _, payload = two_scans
        transport = MockTransport({"AD:FETCH? 10,2": build_block(payload)})
        daq = make_daq(transport)
        with pytest.raises(ProtocolError):
            daq.fetch(10, 2, ChannelMask.AIN1, GAINS)

    def test_short_payload_in_block(self, build_block):
        transport = MockTransport({"AD:FETCH? 0,1": build_block(b"\x00" * 8)})
        daq = make_daq(transport)
        with pytest.raises(ProtocolError):
            daq.fetch(0, 1, MASK_12, GAINS)
