from __future__ import annotations

from typing import Callable, Optional, Union

from loguru import logger

from dtdaq.device.transport import Transport

ResponseType = Union[str, bytes, list, Callable[[str], Union[str, bytes, None]]]


def _to_bytes(value: Union[str, bytes]) -> bytes:
    return value.encode("utf-8") if isinstance(value, str) else bytes(value)


class MockTransport(Transport):
    """In-memory transport that answers commands from a script.

    Parameters
    ----------
    responses : dict, optional
        Maps a command (without terminator) to its reply. A reply may be a
        str/bytes, a list of replies served in turn (the last one repeats),
        or a callable taking the command and returning the reply.
    chunk_size : int, optional
        Largest fragment returned by one read, to imitate a stream that
        delivers data in pieces.

    Attributes
    ----------
    written : list[str]
        Every command written, decoded and stripped of its terminator
    """

    def __init__(
        self,
        responses: Optional[dict[str, ResponseType]] = None,
        chunk_size: Optional[int] = None,
    ):
        # list replies are consumed as they are served, keep the caller's intact
        self.responses: dict[str, ResponseType] = {
            command: list(reply) if isinstance(reply, list) else reply
            for command, reply in (responses or {}).items()
        }
        self.chunk_size = chunk_size
        self.written: list[str] = []
        self.fail_writes = False
        self.connect_ok = True
        self._connected = False
        self._rx = bytearray()
        self.host = None
        self.port = None

    def connect_to(self, host: str, port: int, timeout: float) -> bool:
        self.close()
        self.host, self.port = host, port
        self._connected = self.connect_ok
        return self._connected

    def close(self) -> None:
        self._connected = False
        self._rx.clear()

    def is_connected(self) -> bool:
        return self._connected

    def queue(self, data: Union[str, bytes]) -> None:
        """Make `data` available to the next reads."""
        self._rx += _to_bytes(data)

    def _reply_for(self, command: str) -> Optional[bytes]:
        reply = self.responses.get(command)
        if isinstance(reply, list):
            reply = reply.pop(0) if len(reply) > 1 else (reply[0] if reply else None)
        elif callable(reply):
            reply = reply(command)
        return None if reply is None else _to_bytes(reply)

    def write(self, data: bytes, timeout: float) -> bool:
        if not self._connected or self.fail_writes:
            logger.trace("Mock write refused: {!r}", data)
            return False
        command = data.decode("utf-8").rstrip("\n")
        self.written.append(command)
        reply = self._reply_for(command)
        if reply is not None:
            self._rx += reply
        return True

    def _take(self, n: int) -> bytes:
        if self.chunk_size is not None:
            n = min(n, self.chunk_size)
        out = bytes(self._rx[:n])
        del self._rx[:n]
        return out

    def read_available(self, timeout: float) -> bytes:
        if not self._connected:
            return b""
        return self._take(len(self._rx))

    def read_exactly(self, n: int, timeout: float) -> bytes:
        if not self._connected:
            return b""
        data = bytearray()
        while len(data) < n and self._rx:
            data += self._take(n - len(data))
        return bytes(data)
