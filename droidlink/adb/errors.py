"""Exception types raised by the ADB client."""

from typing import Optional


class ADBError(Exception):
    """Base class for all ADB client errors."""


class AdbConnectionError(ADBError):
    """Raised when the bridge server cannot be reached or the socket fails."""


class ProtocolError(ADBError):
    """Raised when the byte stream from the server does not follow the wire format.

    A protocol error is fatal to the connection it happened on and to nothing
    else.
    """


class CommandFailedError(ADBError):
    """Raised when the server answers a request with a FAIL status."""

    def __init__(self, request: str, message: str, raw: Optional[bytes] = None):
        self.request = request
        self.message = message
        self.raw = raw
        super().__init__(f"{request}: {message}")


class DeviceNotFoundError(ADBError):
    """Raised when no device matches a serial, or no device is online."""


class OperationCancelled(ADBError):
    """Raised when a running operation observes its cancellation signal."""


class LogcatParseError(ADBError):
    """Raised when a line does not follow the threadtime logcat format."""

    def __init__(self, line: str, reason: str = "invalid logcat message"):
        self.line = line
        self.reason = reason
        super().__init__(f"{reason}: {line!r}")


class SyncError(ADBError):
    """Raised when the device rejects a file sync request."""


class InstallError(ADBError):
    """Raised when the package manager does not report a successful install."""

    def __init__(self, apk_path: str, output: str):
        self.apk_path = apk_path
        self.output = output
        super().__init__(f"Failed to install {apk_path}: {output.strip()}")
