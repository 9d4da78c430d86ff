"""Host protocol framing over a TCP connection to the bridge server.

Requests are a 4 hex digit length prefix followed by the request text.
Every response starts with a 4 byte status token, ``OKAY`` or ``FAIL``;
a ``FAIL`` is followed by a length-prefixed error message.
"""

import socket
import threading
from typing import Optional

from .errors import AdbConnectionError, CommandFailedError, ProtocolError
from ..util.logging import get_logger

logger = get_logger(__name__)

STATUS_OKAY = b"OKAY"
STATUS_FAIL = b"FAIL"
STATUS_SIZE = 4
LENGTH_PREFIX_SIZE = 4
MAX_REQUEST_LENGTH = 0xFFFF
READ_SIZE = 64 * 1024


def encode_request(request: str) -> bytes:
    """Frame *request* as length prefix plus payload."""
    payload = request.encode("utf-8")
    if len(payload) > MAX_REQUEST_LENGTH:
        raise ProtocolError(f"Request is {len(payload)} bytes, maximum is {MAX_REQUEST_LENGTH}")
    return f"{len(payload):04x}".encode("ascii") + payload


def decode_length(prefix: bytes) -> int:
    """Decode a 4 hex digit length prefix."""
    if len(prefix) != LENGTH_PREFIX_SIZE:
        raise ProtocolError(f"Truncated length prefix: {prefix!r}")
    try:
        return int(prefix.decode("ascii"), 16)
    except (UnicodeDecodeError, ValueError) as e:
        raise ProtocolError(f"Bad length prefix: {prefix!r}") from e


class Connection:
    """A single duplex stream to the bridge server.

    One Connection serves one logical operation. ``close()`` may be called any
    number of times and from any thread; closing from another thread unblocks
    a pending read.
    """

    def __init__(self, sock: socket.socket, address: str = ""):
        self._sock = sock
        self.address = address
        self._closed = False
        self._close_lock = threading.Lock()

    @property
    def closed(self) -> bool:
        return self._closed

    def __enter__(self) -> "Connection":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"<Connection {self.address} {state}>"

    def settimeout(self, timeout: Optional[float]) -> None:
        """Set the socket timeout used by subsequent reads."""
        self._sock.settimeout(timeout)

    def send_request(self, request: str) -> None:
        """Send a framed text request."""
        logger.debug(f"Send: {request}")
        self.write(encode_request(request))

    def write(self, data: bytes) -> None:
        """Write raw bytes to the stream."""
        try:
            self._sock.sendall(data)
        except OSError as e:
            raise AdbConnectionError(f"Failed to write to {self.address}: {e}") from e

    def read_status(self, request: str) -> str:
        """Read the status token answering *request*.

        Returns the token on ``OKAY``. Raises CommandFailedError carrying the
        server's message on ``FAIL`` and ProtocolError on anything else.
        """
        status = self.read_exactly(STATUS_SIZE)
        if status == STATUS_OKAY:
            logger.debug(f"Recv: OKAY ({request})")
            return status.decode("ascii")

        if status == STATUS_FAIL:
            raw = self.read_message()
            message = raw.decode("utf-8", errors="replace")
            logger.debug(f"Recv: FAIL {message!r} ({request})")
            raise CommandFailedError(request, message, raw)

        raise ProtocolError(f"Unexpected status {status!r} for {request}")

    def read_message(self) -> bytes:
        """Read a length-prefixed payload."""
        length = decode_length(self.read_exactly(LENGTH_PREFIX_SIZE))
        if length == 0:
            return b""
        return self.read_exactly(length)

    def read_exactly(self, size: int) -> bytes:
        """Read exactly *size* bytes or raise ProtocolError on early EOF."""
        chunks = bytearray()
        remaining = size

        while remaining > 0:
            chunk = self._recv(remaining)
            if not chunk:
                raise ProtocolError(
                    f"Connection closed after {len(chunks)} of {size} bytes"
                )
            chunks.extend(chunk)
            remaining -= len(chunk)

        return bytes(chunks)

    def read(self, size: int = READ_SIZE) -> bytes:
        """Read up to *size* bytes; returns ``b""`` once the remote side closes.

        A socket timeout is propagated as ``socket.timeout`` so pollers can
        check their cancellation signal and try again.
        """
        return self._recv(size)

    def read_all(self) -> bytes:
        """Read until the remote side closes the stream."""
        chunks = bytearray()
        while True:
            chunk = self._recv(READ_SIZE)
            if not chunk:
                return bytes(chunks)
            chunks.extend(chunk)

    def close(self) -> None:
        """Close the socket once; later calls do nothing."""
        with self._close_lock:
            if self._closed:
                return
            self._closed = True

        try:
            self._sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            # Peer already gone
            pass
        self._sock.close()
        logger.debug(f"Closed connection to {self.address}")

    def _recv(self, size: int) -> bytes:
        if self._closed:
            return b""
        try:
            return self._sock.recv(size)
        except socket.timeout:
            raise
        except OSError as e:
            if self._closed:
                return b""
            raise AdbConnectionError(f"Failed to read from {self.address}: {e}") from e


def dial(host: str, port: int, timeout: Optional[float] = None) -> Connection:
    """Open a new connection to the bridge server."""
    address = f"{host}:{port}"
    try:
        sock = socket.create_connection((host, port), timeout=timeout)
    except OSError as e:
        raise AdbConnectionError(f"Failed to connect to ADB server at {address}: {e}") from e

    # Connect timeout only; reads block unless a caller opts into polling
    sock.settimeout(None)
    logger.debug(f"Connected to {address}")
    return Connection(sock, address)
