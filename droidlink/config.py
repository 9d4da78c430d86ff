"""Configuration management for droidlink."""

import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field
from ruamel.yaml import YAML

DEFAULT_CONFIG_PATH = Path.home() / ".config/droidlink/config.yaml"
PORT_ENV_VAR = "ANDROID_ADB_SERVER_PORT"
DEFAULT_ADB_PORT = 5037


def _default_port() -> int:
    try:
        return int(os.environ.get(PORT_ENV_VAR, DEFAULT_ADB_PORT))
    except ValueError:
        return DEFAULT_ADB_PORT


class ServerConfig(BaseModel):
    """How to reach (and if needed start) the bridge server."""

    host: str = Field(default="127.0.0.1", description="Bridge server host")
    port: int = Field(default_factory=_default_port, description="Bridge server port")
    adb_path: str = Field(default="adb", description="Path to ADB binary used to start the server")
    connect_timeout: float = Field(default=5.0, gt=0, description="Socket connect timeout in seconds")
    start_timeout: float = Field(default=10.0, gt=0, description="Seconds to wait for a spawned server")

    class Config:
        validate_assignment = True


class TransferConfig(BaseModel):
    """Configuration for file transfers."""

    chunk_size: int = Field(default=32 * 1024, gt=0, le=64 * 1024, description="Bytes per transfer chunk")
    install_path: str = Field(default="/data/local/tmp/app.apk", description="Remote staging path for APK installs")

    class Config:
        validate_assignment = True


class WatcherConfig(BaseModel):
    """Configuration for the device state watcher."""

    queue_size: int = Field(default=64, gt=0, description="Pending events before the watcher blocks")
    poll_interval: float = Field(default=0.25, gt=0, description="Seconds between cancellation checks")


class LogcatConfig(BaseModel):
    """Default logcat filters."""

    tag: str = Field(default="", description="Only show this tag")
    pid: int = Field(default=0, ge=0, description="Only show this process id")
    priority: str = Field(default="V", pattern="^[VDIWEF]$", description="Minimum priority letter")
    clear_on_start: bool = Field(default=False, description="Clear the device log before watching")


class MediaConfig(BaseModel):
    """Configuration for screenshots and screen recording."""

    screenshot_dir: Path = Field(
        default_factory=lambda: Path.home() / "Pictures/droidlink",
        description="Where screenshots are saved"
    )
    video_remote_path: str = Field(default="/sdcard/droidlink.mp4", description="Remote file for screen recordings")
    video_duration: int = Field(default=180, gt=0, le=180, description="Recording time limit in seconds")
    video_bitrate: int = Field(default=20_000_000, gt=0, description="Recording bitrate in bits per second")

    class Config:
        validate_assignment = True


class DroidLinkConfig(BaseModel):
    """Main configuration for droidlink."""

    server: ServerConfig = Field(default_factory=ServerConfig)
    transfer: TransferConfig = Field(default_factory=TransferConfig)
    watcher: WatcherConfig = Field(default_factory=WatcherConfig)
    logcat: LogcatConfig = Field(default_factory=LogcatConfig)
    media: MediaConfig = Field(default_factory=MediaConfig)

    log_level: str = Field(default="INFO", description="Logging level")
    log_file: Optional[Path] = Field(default=None, description="Optional debug log file")

    class Config:
        """Pydantic configuration."""

        validate_assignment = True


def load_config(config_path: Optional[Path] = None) -> DroidLinkConfig:
    """Load configuration from file, falling back to defaults.

    Unlike ``save_config`` this never writes: a missing file simply yields the
    default configuration.
    """

    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH

    if not config_path.exists():
        return DroidLinkConfig()

    yaml = YAML(typ="safe")
    with open(config_path, "r", encoding="utf-8") as f:
        data = yaml.load(f) or {}

    return DroidLinkConfig(**data)


def save_config(config: DroidLinkConfig, config_path: Optional[Path] = None) -> None:
    """Save configuration to file."""

    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH

    config_path.parent.mkdir(parents=True, exist_ok=True)

    yaml = YAML()
    yaml.default_flow_style = False

    with open(config_path, "w", encoding="utf-8") as f:
        yaml.dump(config.model_dump(mode="json"), f)
