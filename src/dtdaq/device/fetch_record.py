"""Decoding of DT8824 A/D fetch records.

A fetch payload is a block of big-endian 32-bit words:

    scan_count, channel_byte_width, start_index, ts_seconds, ts_nanoseconds,
    raw[0][0], raw[0][1], ..., raw[scan_count-1][channel_count-1]

with `channel_count = channel_byte_width / 4` and samples stored row-major
(channel varies fastest within a scan). Each raw word holds a 24-bit offset
binary A/D code which is converted to volts with the gain of its channel.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Sequence, Union

import numpy as np
from loguru import logger

from dtdaq.types import ChannelMask, Gain, ParamError, ProtocolError
from dtdaq.types.channels import NUM_AIN_CHANNELS

RESOLUTION = 1 << 24  # 24-bit converter
VOLT_MIN_32 = -0.3125  # full scale at x32 gain
VOLT_MAX_32 = 0.3125
VOLT_MIN_DA = -10.0  # output (D/A side) range
VOLT_MAX_DA = 10.0

HEADER_WORDS = 5
WORD_SIZE = 4
HEADER_SIZE = HEADER_WORDS * WORD_SIZE

GAIN_MULTIPLIER = {
    Gain.GAIN_32: 1.0,
    Gain.GAIN_16: 2.0,
    Gain.GAIN_8: 4.0,
    Gain.GAIN_1: 32.0,
}

GainsType = Union[Sequence[Union[Gain, int]], Mapping[int, Union[Gain, int]]]


@dataclass(frozen=True)
class Timestamp:
    """Device time of the first scan in a record."""

    seconds: int
    nanoseconds: int

    def as_float(self) -> float:
        return self.seconds + self.nanoseconds * 1e-9


@dataclass(frozen=True)
class ChannelValue:
    """Converted readings of one channel, in volts."""

    channel: ChannelMask
    values: np.ndarray


@dataclass(frozen=True)
class FetchRecord:
    """Decoded result of one A/D fetch.

    Attributes
    ----------
    scan_count : int
        Number of scans (sample rows) in the record
    channel_count : int
        Number of channels in each scan
    start_index : int
        Device scan index of the first scan in the record
    timestamp : Timestamp
        Time stamp of the first scan
    channel_values : tuple[ChannelValue, ...]
        One entry per channel, ordered by channel number
    """

    scan_count: int
    channel_count: int
    start_index: int
    timestamp: Timestamp
    channel_values: tuple[ChannelValue, ...]

    @property
    def channel_mask(self) -> ChannelMask:
        mask = ChannelMask.NONE
        for cv in self.channel_values:
            mask |= cv.channel
        return mask

    def values_for(self, channel: Union[int, ChannelMask]) -> np.ndarray:
        """Readings for a channel given by number (1-4) or flag."""
        if not isinstance(channel, ChannelMask):
            channel = ChannelMask.from_channel(channel)
        for cv in self.channel_values:
            if cv.channel == channel:
                return cv.values
        raise KeyError(f"{channel!r} not present in record")

    def as_array(self) -> np.ndarray:
        """Readings as a (scan_count, channel_count) array."""
        if not self.channel_values:
            return np.empty((self.scan_count, 0))
        return np.column_stack([cv.values for cv in self.channel_values])


def _gain_multiplier(gain: Gain) -> float:
    try:
        return GAIN_MULTIPLIER[gain]
    except KeyError:
        raise ParamError(f"Cannot convert readings with gain {gain!r}") from None


def raw_to_volts(raw, gain: Union[Gain, int]):
    """Convert raw 24-bit A/D codes to volts.

    Parameters
    ----------
    raw : int or array-like
        Raw codes, packed in the least significant 3 bytes
    gain : Gain
        Gain of the channel the codes were acquired on

    Returns
    -------
    float or np.ndarray
        Volts, same shape as `raw`
    """
    multiplier = _gain_multiplier(Gain.from_value(gain))
    volts = (
        np.asarray(raw, dtype=np.float64) * ((VOLT_MAX_32 - VOLT_MIN_32) / RESOLUTION)
        + VOLT_MIN_32
    ) * multiplier
    if np.ndim(volts) == 0:
        return float(volts)
    return volts


def volts_to_raw(volts: float) -> int:
    """Convert a D/A voltage to a 24-bit offset binary code.

    +10 V maps to 0xFFFFFF, 0 V to 0x800000 and -10 V to 0x000000. Values
    outside [-10, 10] are clamped. NaN raises ParamError.
    """
    volts = float(volts)
    if np.isnan(volts):
        raise ParamError("Cannot encode NaN as a D/A code")
    volts = min(max(volts, VOLT_MIN_DA), VOLT_MAX_DA)
    scaled = (volts - VOLT_MIN_DA) * RESOLUTION / (VOLT_MAX_DA - VOLT_MIN_DA)
    raw = int(np.floor(scaled))
    return min(max(raw, 0), RESOLUTION - 1)


def gain_for_channel(gains: GainsType, channel: ChannelMask) -> Gain:
    """Gain of a physical channel, raising ParamError if it is not legal."""
    number = channel.channel_number
    if isinstance(gains, Mapping):
        value = gains.get(number, Gain.GAIN_INVALID)
    else:
        if len(gains) < NUM_AIN_CHANNELS:
            raise ParamError(
                f"Expected {NUM_AIN_CHANNELS} gains, one per channel (got {len(gains)})"
            )
        value = gains[number - 1]
    gain = Gain.from_value(value)
    if gain not in GAIN_MULTIPLIER:
        raise ParamError(f"Channel {number} has no valid gain (got {value!r})")
    return gain


def decode_fetch_record(
    payload: Union[bytes, bytearray, memoryview],
    channel_mask: ChannelMask,
    gains: GainsType,
) -> FetchRecord:
    """Decode a fetch payload into volts.

    The payload is consumed: samples are copied out and, if a bytearray was
    passed, it is cleared before returning.

    Parameters
    ----------
    payload : bytes-like
        Binary block contents of an AD:FETCH? response
    channel_mask : ChannelMask
        Channels that were enabled when the scans were acquired
    gains : sequence of 4 gains, or mapping of channel number to gain
        Gain of each physical channel

    Returns
    -------
    FetchRecord
        The decoded record

    Raises
    ------
    ProtocolError
        If the header is short, inconsistent with the mask, or the sample
        block is truncated
    ParamError
        If a channel present in the record has no valid gain
    """
    channel_mask = ChannelMask(channel_mask)
    # take a private copy so the caller's buffer can be released
    data = bytes(payload)
    if isinstance(payload, bytearray):
        payload.clear()
    del payload

    length = len(data)
    if length < HEADER_SIZE:
        raise ProtocolError(
            f"Fetch payload too short for header ({length} < {HEADER_SIZE} bytes)"
        )

    header = np.frombuffer(data, dtype=">u4", count=HEADER_WORDS)
    scan_count, channel_byte_width, start_index, ts_sec, ts_nsec = (
        int(w) for w in header
    )
    if channel_byte_width % WORD_SIZE:
        raise ProtocolError(
            f"Channel byte width {channel_byte_width} is not a multiple of {WORD_SIZE}"
        )
    channel_count = channel_byte_width // WORD_SIZE

    n_samples = scan_count * channel_count
    if length - HEADER_SIZE < n_samples * WORD_SIZE:
        raise ProtocolError(
            f"Fetch payload truncated: header declares {scan_count} scans x "
            f"{channel_count} channels, only {length - HEADER_SIZE} bytes follow"
        )

    channels = list(channel_mask.channels())
    if channel_count != len(channels):
        raise ProtocolError(
            f"Record holds {channel_count} channels but mask "
            f"{channel_mask!r} selects {len(channels)}"
        )

    multipliers = np.array(
        [GAIN_MULTIPLIER[gain_for_channel(gains, ch)] for ch in channels],
        dtype=np.float64,
    )

    if n_samples:
        raw = np.frombuffer(
            data, dtype=">u4", count=n_samples, offset=HEADER_SIZE
        ).reshape(scan_count, channel_count)
    else:
        raw = np.zeros((scan_count, channel_count), dtype=">u4")
    volts = (
        raw.astype(np.float64) * ((VOLT_MAX_32 - VOLT_MIN_32) / RESOLUTION)
        + VOLT_MIN_32
    ) * multipliers

    values = []
    for slot, ch in enumerate(channels):
        column = np.ascontiguousarray(volts[:, slot])
        column.flags.writeable = False
        values.append(ChannelValue(channel=ch, values=column))

    logger.trace(
        "Decoded record: {} scans x {} channels from index {}",
        scan_count,
        channel_count,
        start_index,
    )
    return FetchRecord(
        scan_count=scan_count,
        channel_count=channel_count,
        start_index=start_index,
        timestamp=Timestamp(seconds=ts_sec, nanoseconds=ts_nsec),
        channel_values=tuple(values),
    )
