"""Client for the ADB bridge server."""

import subprocess
import threading
from typing import Iterator, List, Optional

from tenacity import RetryError, retry, retry_if_exception_type, stop_after_delay, wait_exponential

from .device import Device, DeviceEntry, DeviceState, DeviceStateChangedEvent, DisplayParams, parse_device_list
from .errors import ADBError, AdbConnectionError, DeviceNotFoundError
from .shell import ShellCommand, parse_int
from .sync import SyncConnection
from .watcher import DeviceWatcher, WatcherState
from .wire import Connection, dial
from ..config import DroidLinkConfig
from ..util.logging import get_logger

logger = get_logger(__name__)

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 5037


class ADBClient:
    """Talks to the bridge server over its host protocol.

    Every logical operation dials its own connection; the client itself holds
    no socket apart from the one owned by the device watcher.
    """

    def __init__(
        self,
        host: str = DEFAULT_HOST,
        port: int = DEFAULT_PORT,
        adb_path: str = "adb",
        connect_timeout: float = 5.0,
        start_timeout: float = 10.0,
        watcher_queue_size: int = 64,
        watcher_poll_interval: float = 0.25,
    ):
        self.host = host
        self.port = port
        self.adb_path = adb_path
        self.connect_timeout = connect_timeout
        self.start_timeout = start_timeout
        self.watcher_queue_size = watcher_queue_size
        self.watcher_poll_interval = watcher_poll_interval
        self.shell = ShellCommand(self)
        self._watcher: Optional[DeviceWatcher] = None
        logger.info(f"Creating ADB client on port {port}")

    @classmethod
    def from_config(cls, config: DroidLinkConfig) -> "ADBClient":
        return cls(
            host=config.server.host,
            port=config.server.port,
            adb_path=config.server.adb_path,
            connect_timeout=config.server.connect_timeout,
            start_timeout=config.server.start_timeout,
            watcher_queue_size=config.watcher.queue_size,
            watcher_poll_interval=config.watcher.poll_interval,
        )

    @property
    def watcher(self) -> Optional[DeviceWatcher]:
        return self._watcher

    # Connections

    def dial(self) -> Connection:
        """Open a fresh connection to the bridge server."""
        return dial(self.host, self.port, timeout=self.connect_timeout)

    def dial_device(self, serial: str) -> Connection:
        """Open a connection already switched to the transport of *serial*."""
        request = f"host:transport:{serial}"
        conn = self.dial()
        try:
            conn.send_request(request)
            conn.read_status(request)
        except BaseException:
            conn.close()
            raise
        return conn

    def sync(self, device: Device) -> SyncConnection:
        """Open a file sync session with *device*."""
        return SyncConnection.open(self.dial_device(device.serial))

    def _query(self, request: str) -> bytes:
        """Send a host request and read its length-prefixed answer."""
        with self.dial() as conn:
            conn.send_request(request)
            conn.read_status(request)
            return conn.read_message()

    # Server lifecycle

    def start(self, cancel: Optional[threading.Event] = None) -> None:
        """Make sure the server runs, then start watching devices.

        *cancel* is the session-wide signal: setting it stops the watcher and
        releases its socket.
        """
        if self._watcher is not None and self._watcher.state is WatcherState.WATCHING:
            raise ADBError("Device watcher is already running; stop it before starting again")

        logger.info("Starting ADB server...")
        self.ensure_server()

        self._watcher = DeviceWatcher(
            self.dial,
            cancel=cancel,
            queue_size=self.watcher_queue_size,
            poll_interval=self.watcher_poll_interval,
        )
        self._watcher.start()

    def ensure_server(self) -> int:
        """Start the server if it is not answering; returns its version."""
        try:
            return self.server_version()
        except AdbConnectionError:
            logger.info(f"ADB server not running on port {self.port}, spawning one")

        try:
            subprocess.run(
                [self.adb_path, "-P", str(self.port), "start-server"],
                capture_output=True,
                text=True,
                timeout=self.start_timeout,
                check=True,
            )
        except FileNotFoundError as e:
            raise ADBError("ADB not found. Please install Android platform tools.") from e
        except subprocess.CalledProcessError as e:
            raise ADBError(f"Failed to start ADB server: {e.stderr}") from e
        except subprocess.TimeoutExpired as e:
            raise ADBError(f"ADB server did not start within {self.start_timeout}s") from e

        try:
            return self._wait_for_server()
        except RetryError as e:
            raise AdbConnectionError(
                f"ADB server on port {self.port} did not answer after start"
            ) from e

    def _wait_for_server(self) -> int:
        @retry(
            retry=retry_if_exception_type(AdbConnectionError),
            stop=stop_after_delay(self.start_timeout),
            wait=wait_exponential(multiplier=0.1, min=0.1, max=1),
        )
        def probe() -> int:
            return self.server_version()

        return probe()

    def stop(self) -> None:
        """Ask the server to exit. Failures are logged, never raised."""
        logger.info("Stopping ADB server...")
        request = "host:kill"
        try:
            with self.dial() as conn:
                conn.send_request(request)
                conn.read_status(request)
        except ADBError as e:
            logger.error(f"Failed to stop ADB server: {e}")

    def server_version(self) -> int:
        """Protocol version reported by the server."""
        payload = self._query("host:version")
        try:
            return int(payload.decode("ascii"), 16)
        except ValueError as e:
            raise ADBError(f"Bad server version {payload!r}") from e

    def server_version_or_default(self, default: int = -1) -> int:
        try:
            return self.server_version()
        except ADBError:
            return default

    # Devices

    def events(self) -> Iterator[DeviceStateChangedEvent]:
        """Device state changes; ends when the watcher stops."""
        if self._watcher is None:
            raise ADBError("Client is not started")
        return self._watcher.events()

    def list_devices(self) -> List[DeviceEntry]:
        """Devices in the order the server lists them."""
        payload = self._query("host:devices-l")
        return parse_device_list(payload.decode("utf-8", errors="replace"), long_format=True)

    def get_state(self, serial: str) -> DeviceState:
        payload = self._query(f"host-serial:{serial}:get-state")
        return DeviceState.from_adb(payload.decode("utf-8", errors="replace"))

    def get_device(self, serial: str) -> Device:
        """Look up a device and hydrate its properties.

        Secondary properties are best-effort: a device whose ``getprop`` or
        ``wm`` calls fail is still returned, with those fields left empty.
        """
        entry = next((e for e in self.list_devices() if e.serial == serial), None)
        if entry is None:
            raise DeviceNotFoundError(f"Device with serial {serial} not found")

        device = Device(
            serial=entry.serial,
            state=entry.state,
            product=entry.product,
            model=entry.model,
            device_info=entry.device_info,
            usb=entry.usb,
        )

        if entry.state == DeviceState.ONLINE:
            # Confirms the transport is reachable before hydrating
            self.dial_device(serial).close()
            device.set_state(self.get_state(serial))

        if device.is_online:
            self.hydrate(device)

        return device

    def get_any_online_device(self) -> Device:
        """First online device in listing order."""
        for entry in self.list_devices():
            if entry.state != DeviceState.ONLINE:
                continue
            try:
                device = self.get_device(entry.serial)
            except ADBError as e:
                logger.debug(f"Skipping {entry.serial}: {e}")
                continue

            # The listing can be stale by the time get-state answers
            if device.is_online:
                return device
            logger.debug(f"Skipping {entry.serial}: now {device.state}")

        raise DeviceNotFoundError("no online device found")

    def hydrate(self, device: Device) -> Device:
        """Fill in informational properties; failures leave fields empty."""
        device.release_version = self.shell.getprop(device, "ro.build.version.release")
        device.sdk_version = parse_int(self.shell.getprop(device, "ro.build.version.sdk"))
        device.abi = self.shell.getprop(device, "ro.product.cpu.abi")
        device.egl_version = self.shell.getprop(device, "ro.hardware.egl")
        self.refresh_display(device)

        if not device.model:
            device.model = self.shell.getprop(device, "ro.product.model")

        logger.info(f"Device info: {device}")
        return device

    def refresh_display(self, device: Device) -> DisplayParams:
        width, height = self.shell.wm_size(device)
        device.display = DisplayParams(
            width=width,
            height=height,
            density=self.shell.wm_density(device),
        )
        return device.display
