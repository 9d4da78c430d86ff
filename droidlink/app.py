"""Application wiring: the client, the session cancel signal and the device registry."""

import threading
from pathlib import Path
from typing import Dict, List, Optional, Protocol

from ruamel.yaml import YAML

from .adb.client import ADBClient
from .adb.device import Device, DeviceState, DeviceStateChangedEvent
from .adb.errors import ADBError
from .config import DroidLinkConfig, load_config
from .util.logging import get_logger

logger = get_logger(__name__)


class DeviceStore(Protocol):
    """Persistence for known devices, keyed by serial."""

    def save_device(self, device: Device) -> None:
        ...

    def get_device(self, serial: str) -> Optional[Device]:
        ...

    def delete_device(self, serial: str) -> None:
        ...


class MemoryDeviceStore:
    """Device store kept in a dict, for tests and one-shot commands."""

    def __init__(self):
        self._devices: Dict[str, Device] = {}
        self._lock = threading.Lock()

    def save_device(self, device: Device) -> None:
        with self._lock:
            self._devices[device.serial] = device

    def get_device(self, serial: str) -> Optional[Device]:
        with self._lock:
            return self._devices.get(serial)

    def delete_device(self, serial: str) -> None:
        with self._lock:
            self._devices.pop(serial, None)

    def list_devices(self) -> List[Device]:
        with self._lock:
            return list(self._devices.values())


class YamlDeviceStore:
    """Device store persisted as a single YAML file."""

    def __init__(self, path: Path):
        self.path = path
        self._lock = threading.Lock()

    def save_device(self, device: Device) -> None:
        logger.info(f"New device: {device.serial}")
        with self._lock:
            data = self._load()
            data[device.serial] = device.to_dict()
            self._dump(data)

    def get_device(self, serial: str) -> Optional[Device]:
        with self._lock:
            data = self._load().get(serial)
        return Device.from_dict(data) if data else None

    def delete_device(self, serial: str) -> None:
        with self._lock:
            data = self._load()
            if data.pop(serial, None) is not None:
                self._dump(data)

    def list_devices(self) -> List[Device]:
        with self._lock:
            return [Device.from_dict(item) for item in self._load().values()]

    def _load(self) -> Dict[str, dict]:
        if not self.path.exists():
            return {}
        yaml = YAML(typ="safe")
        with open(self.path, "r", encoding="utf-8") as f:
            return dict(yaml.load(f) or {})

    def _dump(self, data: Dict[str, dict]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        yaml = YAML()
        yaml.default_flow_style = False
        with open(self.path, "w", encoding="utf-8") as f:
            yaml.dump(data, f)


class DeviceRegistry:
    """Keeps a store in step with the watcher's event stream.

    An unseen serial is looked up once and saved. A known device that comes
    online before it was ever hydrated is looked up again. Every event then
    updates the tracked device's state.
    """

    def __init__(self, client: ADBClient, store: DeviceStore):
        self.client = client
        self.store = store
        self._devices: Dict[str, Device] = {}
        self._lock = threading.Lock()

    @property
    def devices(self) -> List[Device]:
        with self._lock:
            return list(self._devices.values())

    def get(self, serial: str) -> Optional[Device]:
        with self._lock:
            return self._devices.get(serial)

    def handle_event(self, event: DeviceStateChangedEvent) -> Optional[Device]:
        """Apply one event; returns the tracked device, or None if it could not be fetched."""
        device = self.get(event.serial)

        if device is None:
            device = self._fetch(event.serial)
            if device is None:
                return None
        elif event.state == DeviceState.ONLINE and not device.is_hydrated:
            device = self._fetch(event.serial) or device

        device.set_state(event.state)
        return device

    def run(self, events) -> None:
        """Consume events until the stream ends."""
        for event in events:
            self.handle_event(event)

    def _fetch(self, serial: str) -> Optional[Device]:
        try:
            device = self.client.get_device(serial)
        except ADBError as e:
            logger.warning(f"Could not fetch device {serial}: {e}")
            return None

        self.store.save_device(device)
        with self._lock:
            self._devices[serial] = device
        return device


class App:
    """One droidlink session.

    Owns the ADB client and the cancel signal shared by everything the
    session starts. Closing the app sets the signal and stops the watcher.
    """

    def __init__(self, config: Optional[DroidLinkConfig] = None, store: Optional[DeviceStore] = None):
        self.config = config or load_config()
        self.cancel = threading.Event()
        self.client = ADBClient.from_config(self.config)
        self.registry = DeviceRegistry(self.client, store or MemoryDeviceStore())
        self._registry_thread: Optional[threading.Thread] = None

    def __enter__(self) -> "App":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def start(self, track_devices: bool = True) -> None:
        """Start the client and, optionally, feed its events into the registry."""
        self.client.start(cancel=self.cancel)
        if track_devices:
            self._registry_thread = threading.Thread(
                target=self.registry.run,
                args=(self.client.events(),),
                name="device-registry",
                daemon=True,
            )
            self._registry_thread.start()

    def close(self, timeout: Optional[float] = 5.0) -> None:
        self.cancel.set()
        watcher = self.client.watcher
        if watcher is not None:
            watcher.stop(timeout)
        if self._registry_thread is not None:
            self._registry_thread.join(timeout)
            self._registry_thread = None
