"""Byte-stream transports used by the DT8824 client.

The client only depends on the small `Transport` interface below, so tests
and offline use can substitute `dtdaq.device.mock.MockTransport` for the TCP
implementation.
"""

from __future__ import annotations

import select
import socket
import time
from abc import ABC, abstractmethod
from typing import Optional

from loguru import logger

from dtdaq.util.logging import format_error_response

READ_CHUNK_SIZE = 65536


class Transport(ABC):
    """Blocking, timeout-bounded byte stream to one instrument."""

    @abstractmethod
    def connect_to(self, host: str, port: int, timeout: float) -> bool:
        """Open the stream, aborting any previous connection first."""
        raise NotImplementedError

    @abstractmethod
    def close(self) -> None:
        raise NotImplementedError

    @abstractmethod
    def is_connected(self) -> bool:
        raise NotImplementedError

    @abstractmethod
    def write(self, data: bytes, timeout: float) -> bool:
        """Write all of `data`. True only if fully written within `timeout`."""
        raise NotImplementedError

    @abstractmethod
    def read_available(self, timeout: float) -> bytes:
        """Wait up to `timeout` for data, then return everything available.

        Returns b"" on timeout or on a connection-level failure.
        """
        raise NotImplementedError

    @abstractmethod
    def read_exactly(self, n: int, timeout: float) -> bytes:
        """Read `n` bytes, accumulating fragments as they arrive.

        `timeout` bounds the wait for each fragment, not the whole transfer.
        The result is shorter than `n` if no data arrived within `timeout` or
        the peer closed the connection.
        """
        raise NotImplementedError


class SocketTransport(Transport):
    """TCP transport built on a plain socket and select()."""

    def __init__(self):
        self._sock: Optional[socket.socket] = None

    def connect_to(self, host: str, port: int, timeout: float) -> bool:
        self.close()
        try:
            self._sock = socket.create_connection((host, port), timeout=timeout)
        except OSError:
            logger.error(
                "Could not connect to {}:{}: {}", host, port, format_error_response()
            )
            self._sock = None
            return False
        self._sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        self._sock.setblocking(False)
        logger.info("Connected to {}:{}", host, port)
        return True

    def close(self) -> None:
        if self._sock is not None:
            try:
                self._sock.close()
            finally:
                self._sock = None
                logger.info("Socket closed.")

    def is_connected(self) -> bool:
        return self._sock is not None

    def write(self, data: bytes, timeout: float) -> bool:
        if self._sock is None:
            logger.error("Write attempted on closed socket.")
            return False
        deadline = time.monotonic() + timeout
        view = memoryview(data)
        while view:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                logger.error("Socket write timed out ({} bytes unsent)", len(view))
                return False
            try:
                _, writable, _ = select.select([], [self._sock], [], remaining)
                if not writable:
                    continue
                sent = self._sock.send(view)
            except BlockingIOError:
                continue
            except OSError as e:
                logger.error("Socket write failed: {}", e)
                return False
            view = view[sent:]
        return True

    def _wait_readable(self, timeout: float) -> bool:
        readable, _, _ = select.select([self._sock], [], [], max(timeout, 0.0))
        return bool(readable)

    def read_available(self, timeout: float) -> bytes:
        if self._sock is None:
            return b""
        try:
            if not self._wait_readable(timeout):
                logger.trace("No response within {} s", timeout)
                return b""
            data = bytearray()
            while True:
                try:
                    chunk = self._sock.recv(READ_CHUNK_SIZE)
                except BlockingIOError:
                    break
                if not chunk:
                    logger.warning("Connection closed by peer.")
                    break
                data += chunk
                if len(chunk) < READ_CHUNK_SIZE:
                    break
            return bytes(data)
        except OSError as e:
            logger.error("Socket read failed: {}", e)
            return b""

    def read_exactly(self, n: int, timeout: float) -> bytes:
        if self._sock is None:
            return b""
        deadline = time.monotonic() + timeout
        data = bytearray()
        while len(data) < n:
            remaining = deadline - time.monotonic()
            try:
                if remaining <= 0 or not self._wait_readable(remaining):
                    logger.trace("Read timed out after {}/{} bytes", len(data), n)
                    break
                chunk = self._sock.recv(n - len(data))
            except BlockingIOError:
                continue
            except OSError as e:
                logger.error("Socket read failed: {}", e)
                break
            if not chunk:
                logger.warning("Connection closed by peer.")
                break
            data += chunk
            deadline = time.monotonic() + timeout
        return bytes(data)
