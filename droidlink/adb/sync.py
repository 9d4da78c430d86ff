"""Client side of the ADB file sync sub-protocol.

After a ``sync:`` request the stream switches to binary packets: a 4 byte id
followed by a little-endian uint32 that is either a length or a value.
"""

import struct
import time
from dataclasses import dataclass
from typing import Optional

from .errors import ADBError, ProtocolError, SyncError
from .wire import Connection
from ..util.logging import get_logger

logger = get_logger(__name__)

ID_STAT = b"STAT"
ID_RECV = b"RECV"
ID_SEND = b"SEND"
ID_DATA = b"DATA"
ID_DONE = b"DONE"
ID_OKAY = b"OKAY"
ID_FAIL = b"FAIL"
ID_QUIT = b"QUIT"

HEADER = struct.Struct("<4sI")
STAT_REPLY = struct.Struct("<4sIII")
MAX_DATA_SIZE = 64 * 1024
DEFAULT_FILE_MODE = 0o664


def pack_request(id4: bytes, value: int) -> bytes:
    return HEADER.pack(id4, value)


@dataclass(frozen=True)
class FileStat:
    """Result of a STAT request; all zero when the path does not exist."""

    mode: int
    size: int
    mtime: int

    @property
    def exists(self) -> bool:
        return self.mode != 0


class SyncConnection:
    """A sync session bound to one device transport."""

    def __init__(self, conn: Connection):
        self.conn = conn

    @classmethod
    def open(cls, conn: Connection) -> "SyncConnection":
        request = "sync:"
        try:
            conn.send_request(request)
            conn.read_status(request)
        except BaseException:
            conn.close()
            raise
        return cls(conn)

    def __enter__(self) -> "SyncConnection":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def stat(self, path: str) -> FileStat:
        self._send_path(ID_STAT, path)
        packet_id, mode, size, mtime = STAT_REPLY.unpack(self.conn.read_exactly(STAT_REPLY.size))
        if packet_id != ID_STAT:
            raise ProtocolError(f"Expected STAT reply, got {packet_id!r}")
        return FileStat(mode=mode, size=size, mtime=mtime)

    def open_write(self, path: str, mode: int = DEFAULT_FILE_MODE, mtime: Optional[int] = None) -> "SyncWriter":
        """Start sending a file; data is committed when the writer closes."""
        logger.debug(f"Start SEND {path}")
        self._send_path(ID_SEND, f"{path},{mode}")
        return SyncWriter(self, path, int(time.time()) if mtime is None else mtime)

    def open_read(self, path: str) -> "SyncReader":
        logger.debug(f"Start RECV {path}")
        self._send_path(ID_RECV, path)
        return SyncReader(self, path)

    def close(self) -> None:
        if self.conn.closed:
            return
        try:
            self.conn.write(pack_request(ID_QUIT, 0))
        except ADBError:
            # Session is being torn down either way
            pass
        finally:
            self.conn.close()

    def read_fail_message(self, length: int) -> str:
        return self.conn.read_exactly(length).decode("utf-8", errors="replace") if length else ""

    def _send_path(self, id4: bytes, path: str) -> None:
        encoded = path.encode("utf-8")
        self.conn.write(pack_request(id4, len(encoded)) + encoded)


class SyncWriter:
    """Write handle for one remote file."""

    def __init__(self, sync: SyncConnection, path: str, mtime: int):
        self._sync = sync
        self.path = path
        self.mtime = mtime
        self._finished = False

    def __enter__(self) -> "SyncWriter":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is None:
            self.close()
        else:
            self.abort()

    def write(self, data: bytes) -> int:
        view = memoryview(data)
        for offset in range(0, len(view), MAX_DATA_SIZE):
            piece = view[offset:offset + MAX_DATA_SIZE]
            self._sync.conn.write(pack_request(ID_DATA, len(piece)) + piece.tobytes())
        return len(data)

    def close(self) -> None:
        """Finish the file and wait for the device to confirm it."""
        if self._finished:
            return
        self._finished = True

        self._sync.conn.write(pack_request(ID_DONE, self.mtime))
        packet_id, value = HEADER.unpack(self._sync.conn.read_exactly(HEADER.size))
        if packet_id == ID_OKAY:
            logger.debug(f"SEND {self.path} done")
            return
        if packet_id == ID_FAIL:
            raise SyncError(f"Failed to write {self.path}: {self._sync.read_fail_message(value)}")
        raise ProtocolError(f"Unexpected reply {packet_id!r} to SEND {self.path}")

    def abort(self) -> None:
        """Drop the session without committing the file."""
        self._finished = True
        self._sync.conn.close()


class SyncReader:
    """Read handle for one remote file."""

    def __init__(self, sync: SyncConnection, path: str):
        self._sync = sync
        self.path = path
        self._pending = b""
        self._done = False

    def __enter__(self) -> "SyncReader":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def read(self, size: int = MAX_DATA_SIZE) -> bytes:
        """Up to *size* bytes of file content; ``b""`` at end of file."""
        while not self._pending and not self._done:
            self._pending = self._next_packet()

        chunk, self._pending = self._pending[:size], self._pending[size:]
        return chunk

    def close(self) -> None:
        if not self._done:
            # Unread packets would corrupt the stream for later requests
            self._sync.conn.close()
            self._done = True

    def _next_packet(self) -> bytes:
        packet_id, length = HEADER.unpack(self._sync.conn.read_exactly(HEADER.size))
        if packet_id == ID_DATA:
            if length > MAX_DATA_SIZE:
                raise ProtocolError(f"DATA packet of {length} bytes exceeds {MAX_DATA_SIZE}")
            return self._sync.conn.read_exactly(length)
        if packet_id == ID_DONE:
            self._done = True
            return b""
        if packet_id == ID_FAIL:
            self._done = True
            raise SyncError(f"Failed to read {self.path}: {self._sync.read_fail_message(length)}")
        raise ProtocolError(f"Unexpected packet {packet_id!r} while reading {self.path}")
