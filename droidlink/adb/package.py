"""APK installation."""

from pathlib import Path
from typing import TYPE_CHECKING, Optional

from .device import Device
from .errors import ADBError, InstallError
from .transfer import TransferOptions, upload_file
from ..util.logging import get_logger

if TYPE_CHECKING:
    from .client import ADBClient

logger = get_logger(__name__)

DEFAULT_INSTALL_PATH = "/data/local/tmp/app.apk"


def install_apk(
    client: "ADBClient",
    device: Device,
    apk_path: Path,
    remote_path: str = DEFAULT_INSTALL_PATH,
    options: Optional[TransferOptions] = None,
) -> str:
    """Push an APK to the device and install it with ``pm install -r``.

    The staged copy on the device is removed whether or not the install
    succeeds. Returns the package manager output.
    """
    logger.info(f"Installing {apk_path.name} on {device.serial}...")

    try:
        upload_file(client, device, apk_path, remote_path, options)
        output = client.shell.run_text(device, "pm", "install", "-r", remote_path)
    finally:
        remove_remote(client, device, remote_path)

    logger.debug(f"Got response: {output.strip()}")
    if "Success" not in output:
        raise InstallError(str(apk_path), output)

    logger.info(f"Installed {apk_path.name}")
    return output


def remove_remote(client: "ADBClient", device: Device, remote_path: str) -> None:
    """Delete a file on the device; failures are logged, never raised."""
    try:
        client.shell.run(device, "rm", "-f", remote_path)
    except ADBError as e:
        logger.warning(f"Failed to remove {remote_path} from {device.serial}: {e}")
