"""File transfer between the host and a device."""

import threading
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, BinaryIO, Callable, Optional

from tqdm import tqdm

from .device import Device
from .errors import OperationCancelled
from .sync import DEFAULT_FILE_MODE, MAX_DATA_SIZE
from ..util.logging import get_logger
from ..util.paths import ensure_directory, format_size

if TYPE_CHECKING:
    from .client import ADBClient

logger = get_logger(__name__)

ProgressCallback = Callable[[int, int], None]
DEFAULT_CHUNK_SIZE = 32 * 1024


@dataclass
class TransferOptions:
    """Per-call transfer settings.

    ``progress`` receives ``(bytes_so_far, total_bytes)`` after every chunk.
    ``cancel`` is checked before each chunk is read; setting it makes the call
    raise OperationCancelled.
    """

    chunk_size: int = DEFAULT_CHUNK_SIZE
    progress: Optional[ProgressCallback] = None
    cancel: Optional[threading.Event] = None

    def __post_init__(self) -> None:
        if not 0 < self.chunk_size <= MAX_DATA_SIZE:
            raise ValueError(f"chunk_size must be between 1 and {MAX_DATA_SIZE}, got {self.chunk_size}")


def copy_chunks(
    read: Callable[[int], bytes],
    write: Callable[[bytes], object],
    total_size: int,
    options: TransferOptions,
) -> int:
    """Copy until *read* returns nothing, one chunk at a time.

    Returns the number of bytes copied.
    """
    copied = 0
    while True:
        if options.cancel is not None and options.cancel.is_set():
            raise OperationCancelled(f"Transfer cancelled after {copied} of {total_size} bytes")

        chunk = read(options.chunk_size)
        if not chunk:
            return copied

        write(chunk)
        copied += len(chunk)
        if options.progress is not None:
            options.progress(copied, total_size)


def upload(
    client: "ADBClient",
    device: Device,
    reader: BinaryIO,
    total_size: int,
    dest_path: str,
    options: Optional[TransferOptions] = None,
) -> int:
    """Write *reader* to *dest_path* on the device.

    A cancelled upload leaves whatever the device kept of the partial file;
    removing it is up to the caller.
    """
    options = options or TransferOptions()
    logger.info(f"Uploading to {dest_path}...")
    logger.debug(f"Uploading {total_size} bytes...")

    with client.sync(device) as sync:
        with sync.open_write(dest_path, mode=DEFAULT_FILE_MODE) as writer:
            try:
                copied = copy_chunks(reader.read, writer.write, total_size, options)
            except OperationCancelled:
                logger.debug("Upload canceled")
                raise

    logger.debug(f"Uploaded {format_size(copied)} to {dest_path}")
    return copied


def upload_file(
    client: "ADBClient",
    device: Device,
    local_path: Path,
    dest_path: str,
    options: Optional[TransferOptions] = None,
) -> int:
    """Upload a local file."""
    total_size = local_path.stat().st_size
    with open(local_path, "rb") as f:
        return upload(client, device, f, total_size, dest_path, options)


def download(
    client: "ADBClient",
    device: Device,
    src_path: str,
    sink: BinaryIO,
    options: Optional[TransferOptions] = None,
) -> int:
    """Stream *src_path* from the device into *sink*."""
    options = options or TransferOptions()
    logger.info(f"Downloading {src_path}...")

    total_size = client.shell.disk_usage(device, src_path)
    logger.debug(f"Downloading {total_size} bytes")

    with client.sync(device) as sync:
        with sync.open_read(src_path) as reader:
            try:
                copied = copy_chunks(reader.read, sink.write, total_size, options)
            except OperationCancelled:
                logger.debug("Download canceled")
                raise

    if copied != total_size:
        logger.warning(
            f"Size mismatch for {src_path}: "
            f"expected={format_size(total_size)}, received={format_size(copied)}"
        )
    return copied


def download_file(
    client: "ADBClient",
    device: Device,
    src_path: str,
    local_path: Path,
    options: Optional[TransferOptions] = None,
) -> int:
    """Download into a local file, creating parent directories."""
    ensure_directory(local_path.parent)
    with open(local_path, "wb") as f:
        return download(client, device, src_path, f, options)


class TransferProgressBar(tqdm):
    """tqdm bar whose update_to plugs into TransferOptions.progress."""

    def update_to(self, done: int, total: int) -> None:
        """Progress callback: move the bar to *done* of *total* bytes."""
        if self.total != total:
            self.total = total
        self.update(done - self.n)


def create_transfer_progress_bar(total_bytes: int = 0, desc: str = "Transferring") -> TransferProgressBar:
    """Create a progress bar for file transfer operations."""
    return TransferProgressBar(
        total=total_bytes,
        desc=desc,
        unit="B",
        unit_scale=True,
        unit_divisor=1024,
    )
