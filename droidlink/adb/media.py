"""Screenshots and screen recordings."""

from dataclasses import dataclass
from io import BytesIO
from pathlib import Path
from typing import TYPE_CHECKING, List, Optional

from PIL import Image, UnidentifiedImageError

from .device import Device
from .errors import ADBError
from .wire import Connection
from ..util.logging import get_logger
from ..util.paths import ensure_directory

if TYPE_CHECKING:
    from .client import ADBClient

logger = get_logger(__name__)

MAX_RECORD_SECONDS = 180
DEFAULT_BITRATE = 20_000_000


def screenshot(client: "ADBClient", device: Device) -> Image.Image:
    """Capture the screen as a PNG and decode it."""
    logger.info("Taking screenshot...")
    data = client.shell.run(device, "screencap", "-p")
    try:
        image = Image.open(BytesIO(data))
        image.load()
    except (UnidentifiedImageError, OSError) as e:
        raise ADBError(f"Could not decode screenshot from {device.serial}: {e}") from e

    logger.debug(f"Screenshot {image.width}x{image.height}")
    return image


def save_screenshot(client: "ADBClient", device: Device, path: Path) -> Path:
    """Capture the screen into a local PNG file."""
    ensure_directory(path.parent)
    screenshot(client, device).save(path, format="PNG")
    logger.info(f"Screenshot saved to {path}")
    return path


@dataclass
class ScreenRecordOptions:
    """``screenrecord`` settings; zero width or height keeps the display size."""

    width: int = 0
    height: int = 0
    duration: int = MAX_RECORD_SECONDS
    bitrate: int = DEFAULT_BITRATE

    def __post_init__(self) -> None:
        if self.width < 0 or self.height < 0:
            raise ValueError("width and height cannot be negative")
        if not 0 <= self.duration <= MAX_RECORD_SECONDS:
            raise ValueError(f"duration must be between 0 and {MAX_RECORD_SECONDS} seconds")
        if self.bitrate < 0:
            raise ValueError("bitrate cannot be negative")

    def to_args(self) -> List[str]:
        args = ["--verbose"]
        if self.width and self.height:
            args.append(f"--size {self.width}x{self.height}")
        if self.duration:
            args.append(f"--time-limit {self.duration}")
        if self.bitrate:
            args.append(f"--bit-rate {self.bitrate}")
        return args

    def __str__(self) -> str:
        return f"size:{self.width}x{self.height} duration:{self.duration}s bitrate:{self.bitrate}"


def _with_display_size(device: Device, options: Optional[ScreenRecordOptions]) -> ScreenRecordOptions:
    if options is not None:
        return options
    return ScreenRecordOptions(width=device.display.width, height=device.display.height)


def record_screen(
    client: "ADBClient",
    device: Device,
    remote_path: str,
    options: Optional[ScreenRecordOptions] = None,
) -> str:
    """Record the screen into *remote_path* on the device.

    Blocks until the recording ends and returns ``screenrecord``'s verbose
    output.
    """
    options = _with_display_size(device, options)
    logger.info(f"Recording video ({options})...")
    output = client.shell.run_text(device, "screenrecord", *options.to_args(), remote_path)
    logger.debug(f"Got response: {output.strip()}")
    return output


def open_screen_stream(
    client: "ADBClient",
    device: Device,
    options: Optional[ScreenRecordOptions] = None,
) -> Connection:
    """Start a raw H.264 stream of the screen; the caller reads and closes it."""
    options = _with_display_size(device, options)
    args = [arg for arg in options.to_args() if arg != "--verbose"]
    logger.info(f"Streaming video ({options})...")
    return client.shell.open_stream(device, "screenrecord", *args, "--output-format=h264", "-")
