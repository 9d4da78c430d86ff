"""Logcat stream parsing.

Lines follow the ``threadtime`` layout::

    MM-DD HH:MM:SS.mmm  PID  TID P TAG: MESSAGE

The format carries no year. Records are stamped with the current year unless
a reference year is passed in, so logs replayed from another year, or spanning
New Year, get the wrong year.
"""

import logging
import re
import socket
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import IntEnum
from typing import TYPE_CHECKING, Callable, Iterator, List, Optional

from .device import Device
from .errors import ADBError, LogcatParseError
from .wire import Connection
from ..util.logging import get_logger

if TYPE_CHECKING:
    from .client import ADBClient

logger = get_logger(__name__)

_LINE_RE = re.compile(
    r"^\s*(\d*)-(\d*)\s+(\d*):(\d*):(\d*)\.(\d*)\s+(\d*)\s+(\d*)\s+(\S)\s+(.*?)\s*:\s?(.*)$"
)
READ_SIZE = 4096


class LogPriority(IntEnum):
    """Logcat message priority, lowest first."""

    VERBOSE = 0
    DEBUG = 1
    INFO = 2
    WARNING = 3
    ERROR = 4
    FATAL = 5

    @property
    def letter(self) -> str:
        return "VDIWEF"[self.value]

    @property
    def logging_level(self) -> int:
        return _LOGGING_LEVELS[self]

    @classmethod
    def from_letter(cls, letter: str) -> "LogPriority":
        index = "VDIWEF".find(letter)
        if len(letter) != 1 or index < 0:
            raise ValueError(f"invalid logcat priority {letter!r}")
        return cls(index)

    def __str__(self) -> str:
        return self.letter


_LOGGING_LEVELS = {
    LogPriority.VERBOSE: logging.DEBUG,
    LogPriority.DEBUG: logging.DEBUG,
    LogPriority.INFO: logging.INFO,
    LogPriority.WARNING: logging.WARNING,
    LogPriority.ERROR: logging.ERROR,
    LogPriority.FATAL: logging.CRITICAL,
}


@dataclass(frozen=True)
class LogRecord:
    """One parsed logcat line."""

    timestamp: datetime
    priority: LogPriority
    tag: str
    process_id: int
    thread_id: int
    message: str

    def log(self, target: logging.Logger) -> None:
        """Re-emit the record through a Python logger at the matching level."""
        target.log(self.priority.logging_level, f"{self.tag}: {self.message}")

    def __str__(self) -> str:
        stamp = self.timestamp.strftime("%m-%d %H:%M:%S.") + f"{self.timestamp.microsecond // 1000:03d}"
        return f"{stamp} {self.process_id:5d} {self.thread_id:5d} {self.priority} {self.tag}: {self.message}"


def _to_int(value: str) -> int:
    try:
        return int(value)
    except ValueError:
        return 0


def _build_timestamp(year: int, month: int, day: int, hour: int, minute: int, second: int, millis: int) -> datetime:
    """Calendar arithmetic that carries out-of-range fields over instead of failing."""
    year += (month - 1) // 12
    month = (month - 1) % 12 + 1
    return datetime(year, month, 1) + timedelta(
        days=day - 1, hours=hour, minutes=minute, seconds=second, milliseconds=millis
    )


def parse_line(raw: str, year: Optional[int] = None) -> LogRecord:
    """Parse one threadtime line.

    Raises LogcatParseError when the line does not match the layout or the
    priority letter is unknown, and when the timestamp fields overflow even
    after carrying. Numeric fields that cannot be converted are taken as zero.
    """
    line = raw.rstrip("\r\n")
    match = _LINE_RE.match(line)
    if not match:
        raise LogcatParseError(line)

    parts = match.groups()
    try:
        priority = LogPriority.from_letter(parts[8])
    except ValueError as e:
        raise LogcatParseError(line, "invalid logcat priority") from e

    month, day, hour, minute, second, millis, pid, tid = (_to_int(p) for p in parts[:8])
    if year is None:
        year = datetime.now().year
    try:
        timestamp = _build_timestamp(year, month, day, hour, minute, second, millis)
    except (OverflowError, ValueError) as e:
        raise LogcatParseError(line, "invalid logcat timestamp") from e

    return LogRecord(
        timestamp=timestamp,
        priority=priority,
        tag=parts[9],
        process_id=pid,
        thread_id=tid,
        message=parts[10],
    )


def _log_parse_error(error: LogcatParseError) -> None:
    logger.debug(str(error))


def watch(
    stream,
    cancel: Optional[threading.Event] = None,
    on_error: Optional[Callable[[LogcatParseError], None]] = None,
    year: Optional[int] = None,
    read_size: int = READ_SIZE,
) -> Iterator[LogRecord]:
    """Lazily parse records from anything with a ``read(n)`` method.

    Partial lines are carried across reads. Lines that fail to parse go to
    *on_error* and are skipped. The iterator ends when the stream reaches EOF
    or *cancel* is set; it cannot be restarted.
    """
    on_error = on_error or _log_parse_error
    pending = b""

    while cancel is None or not cancel.is_set():
        try:
            chunk = stream.read(read_size)
        except socket.timeout:
            continue

        if not chunk:
            break

        pending += chunk
        *lines, pending = pending.split(b"\n")
        for line in lines:
            record = _parse_or_report(line, on_error, year)
            if record is not None:
                yield record
            if cancel is not None and cancel.is_set():
                return

    if pending.strip() and (cancel is None or not cancel.is_set()):
        record = _parse_or_report(pending, on_error, year)
        if record is not None:
            yield record


def _parse_or_report(
    line: bytes,
    on_error: Callable[[LogcatParseError], None],
    year: Optional[int],
) -> Optional[LogRecord]:
    text = line.decode("utf-8", errors="replace")
    if not text.strip() or text.startswith("--------- beginning of"):
        return None
    try:
        return parse_line(text, year=year)
    except LogcatParseError as e:
        on_error(e)
        return None


@dataclass
class LogcatOptions:
    """Filters for a logcat session.

    ``priority`` is the threshold; ``tag`` limits output to one tag; ``pid``
    limits output to one process (0 means any).
    """

    tag: str = ""
    pid: int = 0
    priority: LogPriority = LogPriority.VERBOSE

    def to_args(self) -> List[str]:
        args = []
        if self.pid:
            args.append(f"--pid {self.pid}")

        # '*' alone means '*:D' and a bare tag means '<tag>:V'
        if self.tag:
            if self.priority != LogPriority.VERBOSE:
                args.append(f"-s {self.tag}:{self.priority}")
            else:
                args.append(f"-s {self.tag}")
        elif self.priority != LogPriority.DEBUG:
            args.append(f"-s *:{self.priority}")
        else:
            args.append("-s *")

        return args

    def __str__(self) -> str:
        return f"tag:{self.tag} pid:{self.pid} priority:{self.priority}"


class LogcatWatcher:
    """A live logcat session on one device."""

    def __init__(self, conn: Connection, serial: str = "", year: Optional[int] = None):
        self.conn = conn
        self.serial = serial
        self.year = year

    def __enter__(self) -> "LogcatWatcher":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def records(
        self,
        cancel: Optional[threading.Event] = None,
        on_error: Optional[Callable[[LogcatParseError], None]] = None,
        poll_interval: float = 0.25,
    ) -> Iterator[LogRecord]:
        """Parsed records until the device closes the stream or *cancel* is set."""
        if cancel is not None:
            self.conn.settimeout(poll_interval)
        try:
            yield from watch(self.conn, cancel=cancel, on_error=on_error, year=self.year)
        except ADBError as e:
            logger.error(f"Logcat stream for {self.serial} failed: {e}")
            raise
        finally:
            logger.debug("logcat watcher stopped")

    def read(self, size: int = READ_SIZE) -> bytes:
        """Raw bytes of the stream."""
        return self.conn.read(size)

    def close(self) -> None:
        self.conn.close()


def clear_log(client: "ADBClient", device: Device) -> None:
    """Empty the device log buffers."""
    logger.info("Clearing logcat...")
    response = client.shell.run(device, "logcat", "-c")
    logger.debug(f"Got response: {response!r}")


def open_logcat(
    client: "ADBClient",
    device: Device,
    options: Optional[LogcatOptions] = None,
    year: Optional[int] = None,
) -> LogcatWatcher:
    """Start ``logcat -v threadtime`` on the device."""
    options = options or LogcatOptions()
    logger.info(f"Getting logcat ({options})...")
    conn = client.shell.open_stream(device, "logcat", "-v", "threadtime", *options.to_args())
    return LogcatWatcher(conn, serial=device.serial, year=year)
