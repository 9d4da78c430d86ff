"""Device model and state change events."""

import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List

from ..util.logging import get_logger

logger = get_logger(__name__)


class DeviceState(str, Enum):
    """Lifecycle state of an attached device."""

    INVALID = "invalid"
    UNAUTHORIZED = "unauthorized"
    DISCONNECTED = "disconnected"
    OFFLINE = "offline"
    ONLINE = "online"

    @classmethod
    def from_adb(cls, name: str) -> "DeviceState":
        """Map a bridge server state name; unknown names map to INVALID."""
        state = _ADB_STATES.get(name.strip())
        if state is None:
            logger.debug(f"Unknown device state {name!r}")
            return cls.INVALID
        return state

    def __str__(self) -> str:
        return self.value


_ADB_STATES = {
    "": DeviceState.DISCONNECTED,
    "disconnected": DeviceState.DISCONNECTED,
    "offline": DeviceState.OFFLINE,
    "device": DeviceState.ONLINE,
    "unauthorized": DeviceState.UNAUTHORIZED,
}


@dataclass
class DisplayParams:
    """Display geometry reported by the window manager."""

    width: int = 0
    height: int = 0
    density: int = 0

    def __str__(self) -> str:
        return f"{self.width}x{self.height} @ {self.density}dpi"


@dataclass
class Device:
    """An attached Android device.

    Descriptive fields are filled in by hydration and stay empty otherwise.
    Only ``state`` changes after hydration; use ``set_state`` when the device
    is shared between threads.
    """

    serial: str
    state: DeviceState = DeviceState.INVALID
    product: str = ""
    model: str = ""
    device_info: str = ""
    usb: str = ""
    display: DisplayParams = field(default_factory=DisplayParams)
    sdk_version: int = 0
    release_version: str = ""
    abi: str = ""
    egl_version: str = ""
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    @property
    def is_online(self) -> bool:
        return self.state == DeviceState.ONLINE

    @property
    def is_hydrated(self) -> bool:
        return bool(self.release_version or self.sdk_version)

    def set_state(self, state: DeviceState) -> None:
        with self._lock:
            self.state = state

    def to_dict(self) -> Dict[str, Any]:
        """Plain representation for external storage."""
        return {
            "serial": self.serial,
            "state": self.state.value,
            "product": self.product,
            "model": self.model,
            "device_info": self.device_info,
            "usb": self.usb,
            "display": {
                "width": self.display.width,
                "height": self.display.height,
                "density": self.display.density,
            },
            "sdk_version": self.sdk_version,
            "release_version": self.release_version,
            "abi": self.abi,
            "egl_version": self.egl_version,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Device":
        display = data.get("display") or {}
        return cls(
            serial=data["serial"],
            state=DeviceState(data.get("state", DeviceState.INVALID.value)),
            product=data.get("product", ""),
            model=data.get("model", ""),
            device_info=data.get("device_info", ""),
            usb=data.get("usb", ""),
            display=DisplayParams(
                width=int(display.get("width", 0)),
                height=int(display.get("height", 0)),
                density=int(display.get("density", 0)),
            ),
            sdk_version=int(data.get("sdk_version", 0)),
            release_version=data.get("release_version", ""),
            abi=data.get("abi", ""),
            egl_version=data.get("egl_version", ""),
        )

    def __str__(self) -> str:
        return f"{self.serial} ({self.model})"


@dataclass(frozen=True)
class DeviceStateChangedEvent:
    """A state transition reported by the device watcher."""

    serial: str
    state: DeviceState


@dataclass(frozen=True)
class DeviceEntry:
    """One row of the server's device listing."""

    serial: str
    state: DeviceState
    product: str = ""
    model: str = ""
    device_info: str = ""
    usb: str = ""
    transport_id: str = ""


def parse_device_list(text: str, long_format: bool = False) -> List[DeviceEntry]:
    """Parse ``host:devices`` / ``host:devices-l`` output.

    Short rows are ``serial<TAB>state``. Long rows are whitespace separated:
    serial, state, then ``key:value`` attributes.
    """
    entries = []
    for line in text.splitlines():
        if not line.strip():
            continue

        if not long_format:
            serial, _, state = line.partition("\t")
            entries.append(DeviceEntry(serial=serial.strip(), state=DeviceState.from_adb(state)))
            continue

        parts = line.split()
        serial = parts[0]
        state = parts[1] if len(parts) > 1 else ""
        attributes = {}
        for part in parts[2:]:
            key, sep, value = part.partition(":")
            if sep:
                attributes[key] = value

        entries.append(
            DeviceEntry(
                serial=serial,
                state=DeviceState.from_adb(state),
                product=attributes.get("product", ""),
                model=attributes.get("model", ""),
                device_info=attributes.get("device", ""),
                usb=attributes.get("usb", ""),
                transport_id=attributes.get("transport_id", ""),
            )
        )

    return entries
