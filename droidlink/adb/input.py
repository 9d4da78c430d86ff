"""Typed ``input`` commands for injecting events into a device."""

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, List, Optional, Tuple, Union

from .device import Device
from ..util.logging import get_logger

if TYPE_CHECKING:
    from .client import ADBClient

logger = get_logger(__name__)


class InputSource(str, Enum):
    """Input device the event is attributed to."""

    DEFAULT = "default"
    DPAD = "dpad"
    KEYBOARD = "keyboard"
    MOUSE = "mouse"
    TOUCHPAD = "touchpad"
    GAMEPAD = "gamepad"
    TOUCH_NAVIGATION = "touchnavigation"
    JOYSTICK = "joystick"
    TOUCHSCREEN = "touchscreen"
    STYLUS = "stylus"
    TRACKBALL = "trackball"

    def __str__(self) -> str:
        return self.value


def _require_int(name: str, value: object) -> None:
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValueError(f"{name} must be an integer, got {type(value).__name__}")


@dataclass(frozen=True)
class Text:
    text: str

    name = "text"

    def __post_init__(self) -> None:
        if not isinstance(self.text, str):
            raise ValueError(f"text must be a string, got {type(self.text).__name__}")

    def args(self) -> List[str]:
        # Spaces would split the argument in the device shell
        return [self.text.replace(" ", "%s")]


@dataclass(frozen=True)
class KeyEvent:
    """One or more key codes, optionally sent as a long press or double tap."""

    codes: Tuple[int, ...]
    longpress: bool = False
    doubletap: bool = False

    name = "keyevent"

    def __init__(self, *codes: int, longpress: bool = False, doubletap: bool = False):
        object.__setattr__(self, "codes", tuple(codes))
        object.__setattr__(self, "longpress", longpress)
        object.__setattr__(self, "doubletap", doubletap)
        self.__post_init__()

    def __post_init__(self) -> None:
        if not self.codes:
            raise ValueError("keyevent needs at least one key code")
        if self.longpress and self.doubletap:
            raise ValueError("keyevent cannot be both --longpress and --doubletap")
        for index, code in enumerate(self.codes):
            _require_int(f"key code {index}", code)

    def args(self) -> List[str]:
        args = []
        if self.longpress:
            args.append("--longpress")
        elif self.doubletap:
            args.append("--doubletap")
        return args + [str(code) for code in self.codes]


@dataclass(frozen=True)
class Tap:
    x: int
    y: int

    name = "tap"

    def __post_init__(self) -> None:
        _require_int("x", self.x)
        _require_int("y", self.y)

    def args(self) -> List[str]:
        return [str(self.x), str(self.y)]


@dataclass(frozen=True)
class Swipe:
    """Move from (x1, y1) to (x2, y2), optionally over ``duration_ms``."""

    x1: int
    y1: int
    x2: int
    y2: int
    duration_ms: Optional[int] = None

    name = "swipe"

    def __post_init__(self) -> None:
        for attr in ("x1", "y1", "x2", "y2"):
            _require_int(attr, getattr(self, attr))
        if self.duration_ms is not None:
            _require_int("duration_ms", self.duration_ms)
            if self.duration_ms < 0:
                raise ValueError("duration_ms cannot be negative")

    def args(self) -> List[str]:
        args = [str(self.x1), str(self.y1), str(self.x2), str(self.y2)]
        if self.duration_ms is not None:
            args.append(str(self.duration_ms))
        return args


@dataclass(frozen=True)
class DragAndDrop(Swipe):
    name = "draganddrop"


@dataclass(frozen=True)
class Press:
    name = "press"

    def args(self) -> List[str]:
        return []


@dataclass(frozen=True)
class Roll:
    dx: int
    dy: int

    name = "roll"

    def __post_init__(self) -> None:
        _require_int("dx", self.dx)
        _require_int("dy", self.dy)

    def args(self) -> List[str]:
        return [str(self.dx), str(self.dy)]


MOTION_ACTIONS = ("down", "up", "move", "cancel")


@dataclass(frozen=True)
class MotionEvent:
    action: str
    x: int
    y: int

    name = "motionevent"

    def __post_init__(self) -> None:
        if self.action not in MOTION_ACTIONS:
            raise ValueError(f"action must be one of {MOTION_ACTIONS}, got {self.action!r}")
        _require_int("x", self.x)
        _require_int("y", self.y)

    def args(self) -> List[str]:
        return [self.action, str(self.x), str(self.y)]


@dataclass(frozen=True)
class KeyCombination:
    """Keys pressed together, by name or code (e.g. ``KEYCODE_CTRL_LEFT``)."""

    keys: Tuple[str, ...]

    name = "keycombination"

    def __init__(self, *keys: str):
        object.__setattr__(self, "keys", tuple(keys))
        self.__post_init__()

    def __post_init__(self) -> None:
        if not self.keys:
            raise ValueError("keycombination needs at least one key")
        for index, key in enumerate(self.keys):
            if not isinstance(key, str) or not key:
                raise ValueError(f"key {index} must be a non-empty string")

    def args(self) -> List[str]:
        return list(self.keys)


InputCommand = Union[Text, KeyEvent, Tap, Swipe, DragAndDrop, Press, Roll, MotionEvent, KeyCombination]


def build_input_args(command: InputCommand, source: InputSource = InputSource.DEFAULT) -> List[str]:
    """Arguments following ``input`` for *command*."""
    args = [] if source is InputSource.DEFAULT else [str(source)]
    return args + [command.name] + command.args()


def send_input(
    client: "ADBClient",
    device: Device,
    command: InputCommand,
    source: InputSource = InputSource.DEFAULT,
) -> None:
    """Inject *command* through ``input`` on the device."""
    args = build_input_args(command, source)
    logger.info(f"Sending input {' '.join(args)}...")
    output = client.shell.run_text(device, "input", *args)
    if output.strip():
        logger.debug(f"Got response: {output.strip()}")
