"""Background watcher that republishes device state changes."""

import queue
import socket
import threading
from enum import Enum
from typing import Callable, Dict, Iterator, List, Optional

from .device import DeviceState, DeviceStateChangedEvent
from .errors import ADBError, ProtocolError
from .wire import LENGTH_PREFIX_SIZE, Connection, decode_length
from ..util.logging import get_logger

logger = get_logger(__name__)

TRACK_DEVICES = "host:track-devices"
_CLOSED = object()


class WatcherState(Enum):
    IDLE = "idle"
    WATCHING = "watching"
    STOPPED = "stopped"


def parse_track_record(line: str) -> Optional[DeviceStateChangedEvent]:
    """Decode one ``serial<TAB>state`` record."""
    serial, _, state = line.partition("\t")
    serial = serial.strip()
    if not serial:
        return None
    return DeviceStateChangedEvent(serial=serial, state=DeviceState.from_adb(state))


class DeviceWatcher:
    """Holds one ``host:track-devices`` connection open and emits events.

    Events are delivered through a bounded queue in the order the server
    reported them. A full queue blocks the reader thread until the consumer
    catches up or the watcher is cancelled. Cancellation always wins: the
    connection is closed, the event channel is closed exactly once and the
    watcher moves to STOPPED for good.
    """

    def __init__(
        self,
        connect: Callable[[], Connection],
        cancel: Optional[threading.Event] = None,
        queue_size: int = 64,
        poll_interval: float = 0.25,
    ):
        self._connect = connect
        self._cancel = cancel or threading.Event()
        self._events: "queue.Queue[object]" = queue.Queue(maxsize=queue_size)
        self._poll_interval = poll_interval
        self._state = WatcherState.IDLE
        self._state_lock = threading.Lock()
        self._channel_closed = threading.Event()
        self._conn: Optional[Connection] = None
        self._thread: Optional[threading.Thread] = None
        self._known: Dict[str, DeviceState] = {}
        self.error: Optional[Exception] = None

    @property
    def state(self) -> WatcherState:
        return self._state

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def start(self) -> None:
        """Open the monitor connection and start the reader thread."""
        with self._state_lock:
            if self._state is not WatcherState.IDLE:
                raise ADBError(f"Device watcher cannot start from state {self._state.value}")
            self._state = WatcherState.WATCHING

        logger.info("Starting device watcher...")
        try:
            self._conn = self._connect()
            self._conn.send_request(TRACK_DEVICES)
            self._conn.read_status(TRACK_DEVICES)
        except BaseException:
            self._finish()
            raise

        self._conn.settimeout(self._poll_interval)
        self._thread = threading.Thread(target=self._run, name="device-watcher", daemon=True)
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        """Cancel the watcher and wait for the reader thread; safe to repeat."""
        self._cancel.set()
        if self._state is WatcherState.IDLE:
            self._finish()
            return

        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)

    def events(self) -> Iterator[DeviceStateChangedEvent]:
        """Yield events until the channel is closed and drained."""
        while True:
            try:
                item = self._events.get(timeout=self._poll_interval)
            except queue.Empty:
                if self._channel_closed.is_set():
                    return
                continue

            if item is _CLOSED:
                return
            yield item  # type: ignore[misc]

    def __iter__(self) -> Iterator[DeviceStateChangedEvent]:
        return self.events()

    def _run(self) -> None:
        buffer = bytearray()
        try:
            while not self._cancel.is_set():
                try:
                    chunk = self._conn.read(4096)
                except socket.timeout:
                    continue

                if not chunk:
                    if not self._cancel.is_set():
                        logger.warning("Device watcher stream closed by server")
                    return

                buffer.extend(chunk)
                for snapshot in self._drain_snapshots(buffer):
                    for event in self._decode_snapshot(snapshot):
                        logger.info(f"Device {event.serial} changed state to {event.state}")
                        if not self._publish(event):
                            return
        except ADBError as e:
            if not self._cancel.is_set():
                logger.error(f"Device watcher failed: {e}")
                self.error = e
        finally:
            self._finish()
            logger.debug("Device watcher stopped.")

    @staticmethod
    def _drain_snapshots(buffer: bytearray) -> List[str]:
        """Pop every complete length-prefixed snapshot off the buffer."""
        snapshots = []
        while len(buffer) >= LENGTH_PREFIX_SIZE:
            length = decode_length(bytes(buffer[:LENGTH_PREFIX_SIZE]))
            end = LENGTH_PREFIX_SIZE + length
            if len(buffer) < end:
                break
            try:
                snapshots.append(buffer[LENGTH_PREFIX_SIZE:end].decode("utf-8"))
            except UnicodeDecodeError as e:
                raise ProtocolError(f"Device list is not valid UTF-8: {e}") from e
            del buffer[:end]
        return snapshots

    def _decode_snapshot(self, snapshot: str) -> List[DeviceStateChangedEvent]:
        events = []
        seen = set()
        for line in snapshot.splitlines():
            event = parse_track_record(line)
            if event is None:
                continue
            seen.add(event.serial)
            events.append(event)

        # A serial missing from the latest snapshot has gone away
        for serial in list(self._known):
            if serial not in seen:
                events.append(DeviceStateChangedEvent(serial=serial, state=DeviceState.DISCONNECTED))
                del self._known[serial]

        for event in events:
            if event.serial in seen:
                self._known[event.serial] = event.state
        return events

    def _publish(self, event: DeviceStateChangedEvent) -> bool:
        """Blocking put that gives way to cancellation; False if cancelled."""
        while not self._cancel.is_set():
            try:
                self._events.put(event, timeout=self._poll_interval)
                return True
            except queue.Full:
                continue
        return False

    def _finish(self) -> None:
        with self._state_lock:
            if self._state is WatcherState.STOPPED:
                return
            self._state = WatcherState.STOPPED

        if self._conn is not None:
            self._conn.close()
        self._channel_closed.set()
        try:
            self._events.put_nowait(_CLOSED)
        except queue.Full:
            # events() notices the closed flag once the queue drains
            pass
