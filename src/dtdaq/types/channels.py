"""Enumerations describing DT8824 analog input channels and A/D state."""

from __future__ import annotations

from enum import IntEnum, IntFlag
from typing import Iterator

NUM_AIN_CHANNELS = 4


class Gain(IntEnum):
    """Analog front-end gain of one input channel."""

    GAIN_1 = 1
    GAIN_8 = 8
    GAIN_16 = 16
    GAIN_32 = 32
    GAIN_INVALID = 0xFF

    @classmethod
    def from_value(cls, value: int) -> Gain:
        """Map an integer to a legal gain, or GAIN_INVALID if unknown."""
        try:
            gain = cls(int(value))
        except (TypeError, ValueError):
            return cls.GAIN_INVALID
        return gain

    @property
    def is_valid(self) -> bool:
        return self is not Gain.GAIN_INVALID


class ChannelMask(IntFlag):
    """Bit flags selecting analog input channels AIN1-AIN4."""

    NONE = 0x00
    AIN1 = 0x01
    AIN2 = 0x02
    AIN3 = 0x04
    AIN4 = 0x08

    @classmethod
    def from_channel(cls, channel: int) -> ChannelMask:
        """Flag for a 1-based channel number."""
        if not is_valid_channel(channel):
            raise ValueError(
                f"Channel must be between 1 and {NUM_AIN_CHANNELS} (got {channel})"
            )
        return cls(1 << (channel - 1))

    @classmethod
    def from_channels(cls, channels) -> ChannelMask:
        mask = cls.NONE
        for ch in channels:
            mask |= cls.from_channel(ch)
        return mask

    def channels(self) -> Iterator[ChannelMask]:
        """Iterate over the single-channel flags set, lowest bit first."""
        for idx in range(NUM_AIN_CHANNELS):
            flag = ChannelMask(1 << idx)
            if self & flag:
                yield flag

    @property
    def channel_number(self) -> int:
        """1-based channel number of a single-channel flag."""
        if self.value == 0 or self.value & (self.value - 1):
            raise ValueError(f"{self!r} is not a single channel")
        return self.value.bit_length()

    @property
    def count(self) -> int:
        return bin(self.value).count("1")


class AdStatus(IntFlag):
    """Bits of the reply to the A/D status query."""

    IDLE = 0x00
    ACTIVE = 0x01
    ARMED = 0x02


def is_valid_channel(channel: int) -> bool:
    return isinstance(channel, int) and 1 <= channel <= NUM_AIN_CHANNELS
