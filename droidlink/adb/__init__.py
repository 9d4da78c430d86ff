"""ADB module initialization."""

from .client import ADBClient
from .device import Device, DeviceEntry, DeviceState, DeviceStateChangedEvent, DisplayParams, parse_device_list
from .errors import (
    ADBError,
    AdbConnectionError,
    CommandFailedError,
    DeviceNotFoundError,
    InstallError,
    LogcatParseError,
    OperationCancelled,
    ProtocolError,
    SyncError,
)
from .input import (
    DragAndDrop,
    InputSource,
    KeyCombination,
    KeyEvent,
    MotionEvent,
    Press,
    Roll,
    Swipe,
    Tap,
    Text,
    send_input,
)
from .logcat import LogcatOptions, LogcatWatcher, LogPriority, LogRecord, clear_log, open_logcat, parse_line
from .media import ScreenRecordOptions, open_screen_stream, record_screen, save_screenshot, screenshot
from .package import install_apk, remove_remote
from .shell import ShellCommand
from .transfer import (
    TransferOptions,
    create_transfer_progress_bar,
    download,
    download_file,
    upload,
    upload_file,
)
from .watcher import DeviceWatcher

__all__ = [
    # client
    "ADBClient",
    # device
    "Device",
    "DeviceEntry",
    "DeviceState",
    "DeviceStateChangedEvent",
    "DisplayParams",
    "parse_device_list",
    # errors
    "ADBError",
    "AdbConnectionError",
    "CommandFailedError",
    "DeviceNotFoundError",
    "InstallError",
    "LogcatParseError",
    "OperationCancelled",
    "ProtocolError",
    "SyncError",
    # input
    "DragAndDrop",
    "InputSource",
    "KeyCombination",
    "KeyEvent",
    "MotionEvent",
    "Press",
    "Roll",
    "Swipe",
    "Tap",
    "Text",
    "send_input",
    # logcat
    "LogcatOptions",
    "LogcatWatcher",
    "LogPriority",
    "LogRecord",
    "clear_log",
    "open_logcat",
    "parse_line",
    # media
    "ScreenRecordOptions",
    "open_screen_stream",
    "record_screen",
    "save_screenshot",
    "screenshot",
    # package
    "install_apk",
    "remove_remote",
    # shell
    "ShellCommand",
    # transfer
    "TransferOptions",
    "create_transfer_progress_bar",
    "download",
    "download_file",
    "upload",
    "upload_file",
    # watcher
    "DeviceWatcher",
]
