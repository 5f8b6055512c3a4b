"""Class for controlling the Data Translation DT8824 data acquisition module.

Speaks SCPI over a TCP socket. Text commands are newline terminated and
queries are answered with a single short reply. Buffered A/D scans are
retrieved with AD:FETCH?, which answers with an IEEE definite-length block:

    #<N><N decimal digits: byte length><payload><terminator byte>

Only one command/response exchange may be on the wire at a time, as replies
carry no correlation id. Every command, query and fetch therefore holds the
instance lock for its whole round trip.

Setters verify themselves by reading the device error count before and after
the command: the instrument accepts the bytes either way and only records a
rejection in its error queue.
"""

from __future__ import annotations

import threading
from typing import Optional, Union

from loguru import logger

from dtdaq.device.device import Device
from dtdaq.device.fetch_record import (
    FetchRecord,
    GainsType,
    decode_fetch_record,
    gain_for_channel,
)
from dtdaq.device.transport import SocketTransport, Transport
from dtdaq.types import (
    NUM_AIN_CHANNELS,
    AdStatus,
    ChannelMask,
    CommunicationError,
    DeviceSystemError,
    Gain,
    ParamError,
    ProtocolError,
    is_valid_channel,
)
from dtdaq.util.config import DeviceConfig
from dtdaq.util.defaults import DEFAULT_HOST_ADDR, DEFAULT_PORT, DEFAULT_TIMEOUT

ERROR_MESSAGES = {
    "not_connected": "Device not connected",
    "write_failed": "Failed to send command within {timeout} s: {command}",
    "invalid_channel": "Channel must be between 1 and 4 (got {channel})",
    "invalid_gain": "Gain must be one of 1, 8, 16, 32 (got {gain})",
    "invalid_index": "Fetch start index cannot be negative (got {index})",
    "invalid_count": "Fetch scan count must be an integer or None (got {count!r})",
    "bad_block_marker": "Expected '#' at start of binary block, got {header!r}",
    "bad_length_digits": "Invalid length digit count in block header: {header!r}",
    "bad_length_field": "Invalid block length field: {field!r}",
    "block_too_large": "Declared block length {length} exceeds read buffer ({limit})",
    "short_read": "Timed out reading {what} ({got}/{want} bytes)",
}

BLOCK_MARKER = b"#"
MAX_FETCH_PAYLOAD = 256 * 1024 * 1024  # bytes, read buffer capacity
DISCARD_CHUNK_SIZE = 1024 * 1024  # bytes per read when skipping a rejected block
DISCARD_QUIET_TIME = 0.1  # s without data before stale input counts as drained


class DT8824(Device):
    """Data Translation DT8824 client.

    Parameters
    ----------
    host : str
        Host name or IP address of the instrument
    port : int
        TCP port of the SCPI socket
    timeout : float
        Timeout in seconds applied to each write and read
    transport : Transport, optional
        Byte stream to use. Defaults to a new SocketTransport.

    Attributes
    ----------
    host : str
        Instrument address
    port : int
        Instrument port
    _timeout : float
        I/O timeout in seconds
    _max_payload : int
        Largest fetch block accepted, in bytes

    Examples
    --------
    ```python
    daq = DT8824("192.168.1.40")
    daq.open()
    daq.set_ain_enable(1, True)
    daq.set_ain_gain(1, Gain.GAIN_8)
    daq.ad_arm_trigger()
    record = daq.fetch(0, 1000)
    volts = record.values_for(1)
    ```
    """

    required_config = {"host": str, "port": int}

    def __init__(
        self,
        host: str = DEFAULT_HOST_ADDR,
        port: int = DEFAULT_PORT,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[Transport] = None,
    ):
        super().__init__(host=host, port=port)
        if timeout <= 0:
            raise ValueError(f"Timeout must be positive (got {timeout})")
        self._timeout = float(timeout)
        self._max_payload = MAX_FETCH_PAYLOAD
        self.__transport = transport if transport is not None else SocketTransport()
        self.__lock = threading.RLock()

    @classmethod
    def from_config(
        cls, config: DeviceConfig, transport: Optional[Transport] = None
    ) -> DT8824:
        return cls(
            host=config.host,
            port=config.port,
            timeout=config.timeout,
            transport=transport,
        )

    @property
    def timeout(self) -> float:
        return self._timeout

    @timeout.setter
    def timeout(self, value: float) -> None:
        if value <= 0:
            raise ValueError(f"Timeout must be positive (got {value})")
        self._timeout = float(value)

    ###################################################################
    # connection
    ###################################################################

    def open(self) -> tuple[bool, str]:
        """Connect to the instrument, dropping any previous connection."""
        with self.__lock:
            if self.__transport.connect_to(self.host, self.port, self._timeout):
                logger.info("Connected to DT8824 at {}:{}", self.host, self.port)
                return True, f"Connected to DT8824 at {self.host}:{self.port}"
        logger.error("Failed to connect to DT8824 at {}:{}", self.host, self.port)
        return False, f"Failed to connect to DT8824 at {self.host}:{self.port}"

    def close(self):
        with self.__lock:
            if self.__transport.is_connected():
                self.__transport.close()
                logger.info("Disconnected from DT8824 at {}:{}", self.host, self.port)

    def is_connected(self) -> bool:
        return self.__transport.is_connected()

    ###################################################################
    # protocol core
    ###################################################################

    def scpi_command(self, command: str) -> int:
        """Send one SCPI command.

        Returns
        -------
        int
            Number of bytes written, terminator included

        Raises
        ------
        CommunicationError
            If the command was not fully written within the timeout
        """
        data = (command + "\n").encode("utf-8")
        with self.__lock:
            logger.trace("Writing: {}", command)
            if not self.__transport.write(data, self._timeout):
                msg = ERROR_MESSAGES["write_failed"].format(
                    timeout=self._timeout, command=command
                )
                if not self.__transport.is_connected():
                    msg = f"{ERROR_MESSAGES['not_connected']}. {msg}"
                logger.error(msg)
                raise CommunicationError(msg)
        return len(data)

    def scpi_query(self, query: str) -> str:
        """Send a query and return the reply text.

        The reply is whatever arrives in the first read after the command:
        replies are short and are not accumulated up to a terminator.

        Returns
        -------
        str
            Reply text, or "" if nothing arrived within the timeout

        Raises
        ------
        ValueError
            If `query` is empty
        CommunicationError
            If the query could not be sent
        """
        if not query:
            raise ValueError("Query must not be empty")
        with self.__lock:
            self.scpi_command(query)
            data = self.__transport.read_available(self._timeout)
        response = data.decode("utf-8", errors="replace")
        if response:
            logger.trace("Query result: {!r}", response)
        else:
            logger.debug("No reply to query: {}", query)
        return response

    def _query_int(self, query: str, default: int) -> int:
        response = self.scpi_query(query).strip()
        if not response:
            return default
        try:
            return int(response)
        except ValueError:
            logger.warning("Non-integer reply to {}: {!r}", query, response)
            return default

    def _query_float(self, query: str, default: float) -> float:
        response = self.scpi_query(query).strip()
        if not response:
            return default
        try:
            return float(response)
        except ValueError:
            logger.warning("Non-numeric reply to {}: {!r}", query, response)
            return default

    def _command_with_verify(self, command: str) -> None:
        """Send a command and check that the device did not reject it.

        Raises
        ------
        CommunicationError
            If the command (or an error count query) could not be sent
        DeviceSystemError
            If the device error count increased across the command
        """
        with self.__lock:
            errors_before = self.error_count()
            self.scpi_command(command)
            errors_after = self.error_count()
        if errors_after > errors_before:
            logger.warning(
                "Device rejected {} (error count {} -> {})",
                command,
                errors_before,
                errors_after,
            )
            raise DeviceSystemError(command, errors_before, errors_after)

    ###################################################################
    # system error queue
    ###################################################################

    def error_count(self) -> int:
        """Number of entries in the device error queue."""
        return self._query_int(":SYST:ERR:COUNT?", 0)

    def clear_system_error(self) -> None:
        self.scpi_command("*CLS")

    def get_system_error(self) -> Optional[str]:
        """Pop the oldest device error, or None if there is none pending."""
        response = self.scpi_query("SYST:ERR?").strip()
        if not response or response.startswith("0"):
            return None
        return response

    def identify(self) -> str:
        return self.scpi_query("*IDN?").strip()

    def enable_protected_commands(self, password: str) -> None:
        self._command_with_verify(f"SYST:PASS:CEN {password}")

    ###################################################################
    # analog inputs
    ###################################################################

    @staticmethod
    def _check_channel(channel: int) -> None:
        if not is_valid_channel(channel):
            raise ParamError(ERROR_MESSAGES["invalid_channel"].format(channel=channel))

    def get_ain_enable(self, channel: int) -> bool:
        """True if the channel is enabled. Invalid channels read as disabled."""
        if not is_valid_channel(channel):
            return False
        return self.scpi_query(f"AD:ENAB? (@{channel})").strip() == "1"

    def set_ain_enable(self, channel: int, enable: bool) -> None:
        self._check_channel(channel)
        self._command_with_verify(f"AD:ENAB {int(bool(enable))},(@{channel})")

    def get_enabled_channels(self) -> ChannelMask:
        mask = ChannelMask.NONE
        for channel in range(1, NUM_AIN_CHANNELS + 1):
            if self.get_ain_enable(channel):
                mask |= ChannelMask.from_channel(channel)
        return mask

    def get_ain_gain(self, channel: int) -> Gain:
        """Gain of a channel, GAIN_INVALID if unknown or unreadable."""
        if not is_valid_channel(channel):
            return Gain.GAIN_INVALID
        response = self.scpi_query(f"AD:GAIN? (@{channel})").strip()
        if not response:
            return Gain.GAIN_INVALID
        return Gain.from_value(response)

    def set_ain_gain(self, channel: int, gain: Union[Gain, int]) -> None:
        self._check_channel(channel)
        gain = Gain.from_value(gain)
        if not gain.is_valid:
            raise ParamError(ERROR_MESSAGES["invalid_gain"].format(gain=gain))
        self._command_with_verify(f"AD:GAIN {int(gain)}, (@{channel})")

    ###################################################################
    # A/D subsystem
    ###################################################################

    def get_buffer_size(self) -> int:
        return self._query_int("AD:BUFF:SIZe?", 0)

    def get_ad_clock_rate(self) -> float:
        return self._query_float("AD:CLOCK:FREQ?", 0.0)

    def set_ad_clock_rate(self, rate: float) -> None:
        """Select the internal clock and set its frequency in Hz."""
        self._command_with_verify(
            f":AD:CLOCK:SOURCE INT; :AD:CLOCK:FREQ {rate:.3f}"
        )

    def set_ad_trigger_source(self) -> None:
        """Trigger acquisition immediately on arm."""
        self._command_with_verify("AD:TRIG IMM")

    def ad_arm_trigger(self) -> None:
        """Arm and initiate the A/D with an immediate trigger."""
        self._command_with_verify("AD:TRIG:SOUR IMM;:AD:ARM;:AD:INIT")

    def abort(self) -> None:
        self.scpi_command(":AD:ABORt")

    def get_ad_status(self) -> AdStatus:
        """A/D status bits, read in a single round trip."""
        status = self._query_int("AD:STAT?", 0)
        return AdStatus(status & (AdStatus.ACTIVE | AdStatus.ARMED))

    def is_ad_armed(self) -> bool:
        return AdStatus.ARMED in self.get_ad_status()

    def is_ad_active(self) -> bool:
        return AdStatus.ACTIVE in self.get_ad_status()

    def get_scan_last_index(self) -> int:
        """Index of the most recent scan in the buffer, -1 if unavailable."""
        response = self.scpi_query(":AD:STAT:SCA?").strip()
        fields = response.split(",")
        if len(fields) != 2:
            return -1
        try:
            return int(fields[1])
        except ValueError:
            logger.warning("Unexpected scan index reply: {!r}", response)
            return -1

    ###################################################################
    # bulk fetch
    ###################################################################

    def fetch(
        self,
        start_index: int = 0,
        scan_count: Optional[int] = None,
        channel_mask: Optional[ChannelMask] = None,
        gains: Optional[GainsType] = None,
    ) -> FetchRecord:
        """Fetch buffered scans and convert them to volts.

        Parameters
        ----------
        start_index : int
            Index of the first scan to fetch
        scan_count : int, optional
            Number of scans to fetch. None or non-positive fetches all
            available scans.
        channel_mask : ChannelMask, optional
            Channels enabled for the acquisition. Read from the device if
            not given.
        gains : sequence of 4 gains, or mapping of channel number to gain, optional
            Per-channel gains. Read from the device if not given.

        Returns
        -------
        FetchRecord
            The decoded record

        Raises
        ------
        ParamError
            If start_index is negative, scan_count is not an integer, or a
            channel in the mask has no valid gain
        CommunicationError
            If the command could not be sent or the block did not arrive
        ProtocolError
            If the block framing or record header is malformed
        """
        if not isinstance(start_index, int) or start_index < 0:
            raise ParamError(ERROR_MESSAGES["invalid_index"].format(index=start_index))
        if scan_count is not None and (
            isinstance(scan_count, bool) or not isinstance(scan_count, int)
        ):
            raise ParamError(ERROR_MESSAGES["invalid_count"].format(count=scan_count))

        if scan_count is not None and scan_count > 0:
            command = f"AD:FETCH? {start_index},{scan_count}"
        else:
            command = f"AD:FETCH? {start_index}"

        with self.__lock:
            if channel_mask is None:
                channel_mask = self.get_enabled_channels()
            channel_mask = ChannelMask(channel_mask)
            if gains is None:
                gains = {
                    ch.channel_number: self.get_ain_gain(ch.channel_number)
                    for ch in channel_mask.channels()
                }
            for ch in channel_mask.channels():
                gain_for_channel(gains, ch)

            try:
                self.scpi_command(command)
                logger.trace("Fetch: command sent")
                payload = self._read_block()
            except (CommunicationError, ProtocolError):
                self._discard_input()
                raise

        try:
            return decode_fetch_record(payload, channel_mask, gains)
        except ProtocolError as e:
            logger.error("Could not decode fetch record: {}", e)
            raise

    def _read_exactly(self, n: int, what: str) -> bytes:
        data = self.__transport.read_exactly(n, self._timeout)
        if len(data) < n:
            msg = ERROR_MESSAGES["short_read"].format(what=what, got=len(data), want=n)
            logger.error(msg)
            raise CommunicationError(msg)
        return data

    def _read_block(self) -> bytearray:
        """Read one IEEE definite-length block, returning its payload."""
        header = self._read_exactly(2, "block header")
        if header[:1] != BLOCK_MARKER:
            msg = ERROR_MESSAGES["bad_block_marker"].format(header=header)
            logger.error(msg)
            raise ProtocolError(msg)
        digits = header[1:2]
        if not digits.isdigit() or digits == b"0":
            msg = ERROR_MESSAGES["bad_length_digits"].format(header=header)
            logger.error(msg)
            raise ProtocolError(msg)
        num_digits = int(digits)
        logger.trace("Fetch: header read, {} length digits", num_digits)

        field = self._read_exactly(num_digits, "block length")
        if not field.isdigit():
            msg = ERROR_MESSAGES["bad_length_field"].format(field=field)
            logger.error(msg)
            raise ProtocolError(msg)
        length = int(field)
        if length > self._max_payload:
            msg = ERROR_MESSAGES["block_too_large"].format(
                length=length, limit=self._max_payload
            )
            logger.error(msg)
            # the block is still arriving, skip it and its terminator
            self._skip_input(length + 1)
            raise ProtocolError(msg)
        logger.trace("Fetch: length field read, {} payload bytes", length)

        payload = bytearray(self._read_exactly(length, "block payload"))
        logger.trace("Fetch: payload read")

        if not self.__transport.read_exactly(1, self._timeout):
            logger.debug("No terminator after binary block")
        return payload

    def _skip_input(self, n: int) -> None:
        """Read and drop up to `n` bytes, stopping early if the stream stalls."""
        remaining = n
        while remaining > 0:
            want = min(remaining, DISCARD_CHUNK_SIZE)
            chunk = self.__transport.read_exactly(want, self._timeout)
            remaining -= len(chunk)
            if len(chunk) < want:
                break
        logger.debug("Skipped {} of {} bytes of rejected block", n - remaining, n)

    def _discard_input(self) -> None:
        """Drop input until the stream stays quiet, so the next reply is fresh."""
        quiet = min(self._timeout, DISCARD_QUIET_TIME)
        discarded = 0
        while True:
            stale = self.__transport.read_available(quiet)
            if not stale:
                break
            discarded += len(stale)
        if discarded:
            logger.debug("Discarded {} stale bytes after failed fetch", discarded)

    ###################################################################
    # metadata
    ###################################################################

    def unroll_metadata(self):
        return {"host": self.host, "port": self.port, **self.get_all_attrs()}
