"""ADB shell command execution utilities."""

import re
from typing import TYPE_CHECKING, Tuple

from .device import Device
from .errors import ADBError
from .wire import Connection
from ..util.logging import get_logger

if TYPE_CHECKING:
    from .client import ADBClient

logger = get_logger(__name__)

_SIZE_RE = re.compile(r"(\d+)\s*x\s*(\d+)")
_LEADING_INT_RE = re.compile(r"^\s*(\d+)")


def parse_key_value(line: str) -> Tuple[str, str]:
    """Split a ``key: value`` line.

    The last colon-separated segment is the value; a line without a colon is
    all value. Brackets used by ``getprop`` dumps are stripped.
    """
    line = line.strip()
    key, sep, value = line.rpartition(":")
    if not sep:
        return "", line.strip("[]")
    return key.strip().strip("[]"), value.strip().strip("[]")


def build_command(cmd: str, *args: object) -> str:
    """Join a command and its arguments with single spaces.

    No quoting is done; arguments with shell-significant characters must be
    quoted by the caller.
    """
    return " ".join([cmd] + [str(arg) for arg in args if str(arg) != ""])


class ShellCommand:
    """Runs ``shell:`` services on a device through the bridge server."""

    def __init__(self, client: "ADBClient"):
        self.client = client

    def open_stream(self, device: Device, cmd: str, *args: object) -> Connection:
        """Start a command and hand back the live connection.

        The caller owns the connection and must close it.
        """
        request = f"shell:{build_command(cmd, *args)}"
        conn = self.client.dial_device(device.serial)
        try:
            logger.debug(f"Sending command: {request}")
            conn.send_request(request)
            status = conn.read_status(request)
        except BaseException:
            conn.close()
            raise

        logger.debug(f"Got status: {status}")
        return conn

    def run(self, device: Device, cmd: str, *args: object) -> bytes:
        """Run a command to completion and return everything it printed."""
        with self.open_stream(device, cmd, *args) as conn:
            return conn.read_all()

    def run_text(self, device: Device, cmd: str, *args: object) -> str:
        """Run a command and decode its output."""
        return self.run(device, cmd, *args).decode("utf-8", errors="replace")

    def getprop(self, device: Device, key: str) -> str:
        """Read a system property; empty string when unavailable.

        ``getprop <key>`` prints only the value, so it is returned whole and
        values containing colons such as ``ro.build.fingerprint`` survive.
        """
        try:
            output = self.run_text(device, "getprop", key)
        except ADBError as e:
            logger.warning(f"getprop {key} failed on {device.serial}: {e}")
            return ""

        return output.strip()

    def wm(self, device: Device, prop: str) -> str:
        """Read a window manager value such as ``size`` or ``density``."""
        try:
            output = self.run_text(device, "wm", prop)
        except ADBError as e:
            logger.warning(f"wm {prop} failed on {device.serial}: {e}")
            return ""

        # Overridden values print a second line; the physical one comes first
        lines = [line for line in output.splitlines() if line.strip()]
        if not lines:
            return ""
        _, value = parse_key_value(lines[0])
        return value

    def wm_size(self, device: Device) -> Tuple[int, int]:
        """Physical display size as (width, height); zeros when unknown."""
        match = _SIZE_RE.search(self.wm(device, "size"))
        if not match:
            return 0, 0
        return int(match.group(1)), int(match.group(2))

    def wm_density(self, device: Device) -> int:
        """Physical display density; zero when unknown."""
        return parse_int(self.wm(device, "density"))

    def disk_usage(self, device: Device, path: str) -> int:
        """Size in bytes of a remote path as reported by ``du -b``."""
        output = self.run_text(device, "du", "-b", path)
        match = _LEADING_INT_RE.match(output)
        if not match:
            raise ADBError(f"Could not determine size of {path}: {output.strip()}")
        return int(match.group(1))


def parse_int(value: str) -> int:
    """Parse a leading integer, zero when there is none."""
    match = _LEADING_INT_RE.match(value)
    return int(match.group(1)) if match else 0
