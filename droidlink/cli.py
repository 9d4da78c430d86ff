"""Command Line Interface for droidlink."""

import sys
import threading
from datetime import datetime
from pathlib import Path
from typing import List, Optional

import click
from rich.console import Console
from rich.table import Table

from .adb import (
    ADBClient,
    ADBError,
    Device,
    DeviceNotFoundError,
    InputSource,
    KeyEvent,
    LogcatOptions,
    LogPriority,
    ScreenRecordOptions,
    Swipe,
    Tap,
    Text,
    TransferOptions,
    clear_log,
    create_transfer_progress_bar,
    download,
    download_file,
    install_apk,
    open_logcat,
    record_screen,
    remove_remote,
    save_screenshot,
    send_input,
    upload_file,
)
from .adb.transfer import TransferProgressBar
from .config import DEFAULT_CONFIG_PATH, DroidLinkConfig, load_config
from .util import format_size, get_logger, safe_filename, setup_logging

console = Console()
logger = get_logger(__name__)


def setup_cli_logging(config: DroidLinkConfig, verbose: bool = False):
    """Setup logging for CLI."""
    level = "DEBUG" if verbose else config.log_level
    setup_logging(level=level, log_file=config.log_file, console=Console(stderr=True))


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.option("--config", "-c", type=click.Path(exists=True, path_type=Path), help="Configuration file path")
@click.option("--port", "-P", type=int, help="Bridge server port")
@click.pass_context
def cli(ctx, verbose: bool, config: Optional[Path], port: Optional[int]):
    """droidlink - talk to Android devices through the ADB server."""
    ctx.ensure_object(dict)

    cfg = load_config(config or DEFAULT_CONFIG_PATH)
    if port is not None:
        cfg.server.port = port

    setup_cli_logging(cfg, verbose)
    ctx.obj["config"] = cfg
    ctx.obj["client"] = ADBClient.from_config(cfg)


def _client(ctx) -> ADBClient:
    return ctx.obj["client"]


def _config(ctx) -> DroidLinkConfig:
    return ctx.obj["config"]


def _fail(message: str) -> None:
    console.print(f"[red]{message}[/red]")
    sys.exit(1)


def _get_target_device(client: ADBClient, serial: Optional[str]) -> Device:
    """Get target device for operations."""
    try:
        if serial:
            return client.get_device(serial)
        return client.get_any_online_device()
    except DeviceNotFoundError as e:
        _fail(str(e))
    except ADBError as e:
        _fail(f"ADB Error: {e}")


def _transfer_options(config: DroidLinkConfig, bar: TransferProgressBar, cancel: threading.Event) -> TransferOptions:
    return TransferOptions(chunk_size=config.transfer.chunk_size, progress=bar.update_to, cancel=cancel)


serial_option = click.option("--serial", "-s", help="Device serial number")


@cli.group()
def server():
    """Bridge server commands."""
    pass


@server.command("start")
@click.pass_context
def server_start(ctx):
    """Start the bridge server if it is not running."""
    try:
        version = _client(ctx).ensure_server()
    except ADBError as e:
        _fail(f"ADB Error: {e}")
    console.print(f"[green]ADB server running (protocol version {version})[/green]")


@server.command("stop")
@click.pass_context
def server_stop(ctx):
    """Ask the bridge server to exit."""
    _client(ctx).stop()
    console.print("[green]ADB server stopped[/green]")


@server.command("version")
@click.pass_context
def server_version(ctx):
    """Show the bridge server protocol version."""
    try:
        version = _client(ctx).server_version()
    except ADBError as e:
        _fail(f"ADB Error: {e}")
    console.print(f"Protocol version: {version}")


@cli.group()
def device():
    """Device management commands."""
    pass


@device.command("list")
@click.pass_context
def device_list(ctx):
    """List connected devices."""
    try:
        entries = _client(ctx).list_devices()
    except ADBError as e:
        _fail(f"ADB Error: {e}")

    if not entries:
        console.print("[yellow]No devices found[/yellow]")
        return

    table = Table(title="Connected Devices")
    table.add_column("Serial", style="cyan")
    table.add_column("State", style="green")
    table.add_column("Model", style="white")
    table.add_column("Product", style="white")
    table.add_column("Transport", style="white")

    for entry in entries:
        table.add_row(entry.serial, str(entry.state), entry.model, entry.product, entry.transport_id)

    console.print(table)


@device.command("info")
@serial_option
@click.pass_context
def device_info(ctx, serial: Optional[str]):
    """Show device information."""
    target = _get_target_device(_client(ctx), serial)

    table = Table(title=f"Device Information - {target}")
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="white")

    table.add_row("Serial", target.serial)
    table.add_row("State", str(target.state))
    table.add_row("Model", target.model)
    table.add_row("Product", target.product)
    table.add_row("Device", target.device_info)
    table.add_row("Android Version", target.release_version)
    table.add_row("SDK Version", str(target.sdk_version))
    table.add_row("ABI", target.abi)
    table.add_row("EGL", target.egl_version)
    table.add_row("Display", str(target.display))

    console.print(table)


@device.command("watch")
@click.pass_context
def device_watch(ctx):
    """Print device state changes until interrupted."""
    client = _client(ctx)
    cancel = threading.Event()

    try:
        client.start(cancel=cancel)
    except ADBError as e:
        _fail(f"ADB Error: {e}")

    console.print("[bold cyan]Watching devices (Ctrl+C to stop)[/bold cyan]")
    try:
        for event in client.events():
            console.print(f"{datetime.now():%H:%M:%S} [cyan]{event.serial}[/cyan] {event.state}")
    except KeyboardInterrupt:
        pass
    finally:
        client.watcher.stop(timeout=2.0)

    if client.watcher.error is not None:
        _fail(f"Device watcher failed: {client.watcher.error}")


@cli.command()
@serial_option
@click.argument("command", nargs=-1, required=True)
@click.pass_context
def shell(ctx, serial: Optional[str], command: List[str]):
    """Run a shell command on the device."""
    client = _client(ctx)
    target = _get_target_device(client, serial)
    try:
        output = client.shell.run(target, *command)
    except ADBError as e:
        _fail(f"ADB Error: {e}")
    click.echo(output.decode("utf-8", errors="replace"), nl=False)


@cli.command()
@serial_option
@click.option("--tag", "-t", help="Only show this tag")
@click.option("--pid", type=int, help="Only show this process id")
@click.option("--priority", "-p", type=click.Choice(list("VDIWEF")), help="Minimum priority")
@click.option("--clear", is_flag=True, help="Clear the log before watching")
@click.pass_context
def logcat(ctx, serial: Optional[str], tag: Optional[str], pid: Optional[int],
           priority: Optional[str], clear: bool):
    """Stream the device log."""
    client = _client(ctx)
    config = _config(ctx).logcat
    target = _get_target_device(client, serial)

    options = LogcatOptions(
        tag=tag if tag is not None else config.tag,
        pid=pid if pid is not None else config.pid,
        priority=LogPriority.from_letter(priority or config.priority),
    )

    styles = {
        LogPriority.WARNING: "yellow",
        LogPriority.ERROR: "red",
        LogPriority.FATAL: "bold red",
    }

    cancel = threading.Event()
    try:
        if clear or config.clear_on_start:
            clear_log(client, target)
        with open_logcat(client, target, options) as watcher:
            for record in watcher.records(cancel=cancel):
                style = styles.get(record.priority)
                console.print(str(record), style=style, markup=False, highlight=False)
    except KeyboardInterrupt:
        cancel.set()
    except ADBError as e:
        _fail(f"ADB Error: {e}")


@cli.command()
@serial_option
@click.argument("local", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("remote")
@click.pass_context
def push(ctx, serial: Optional[str], local: Path, remote: str):
    """Upload a file to the device."""
    client = _client(ctx)
    target = _get_target_device(client, serial)

    cancel = threading.Event()
    with create_transfer_progress_bar(local.stat().st_size, desc=f"Pushing {local.name}") as bar:
        try:
            copied = upload_file(client, target, local, remote, _transfer_options(_config(ctx), bar, cancel))
        except KeyboardInterrupt:
            cancel.set()
            _fail("Upload cancelled")
        except ADBError as e:
            _fail(f"Upload failed: {e}")

    console.print(f"[green]Pushed {format_size(copied)} to {remote}[/green]")


@cli.command()
@serial_option
@click.argument("remote")
@click.argument("local", required=False, type=click.Path(path_type=Path))
@click.pass_context
def pull(ctx, serial: Optional[str], remote: str, local: Optional[Path]):
    """Download a file from the device."""
    client = _client(ctx)
    target = _get_target_device(client, serial)

    if local is None:
        local = Path.cwd() / safe_filename(Path(remote).name)
    elif local.is_dir():
        local = local / safe_filename(Path(remote).name)

    cancel = threading.Event()
    with create_transfer_progress_bar(desc=f"Pulling {Path(remote).name}") as bar:
        try:
            copied = download_file(client, target, remote, local, _transfer_options(_config(ctx), bar, cancel))
        except KeyboardInterrupt:
            cancel.set()
            _fail("Download cancelled")
        except ADBError as e:
            _fail(f"Download failed: {e}")

    console.print(f"[green]Pulled {format_size(copied)} to {local}[/green]")


@cli.command()
@serial_option
@click.argument("apk", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_context
def install(ctx, serial: Optional[str], apk: Path):
    """Install an APK on the device."""
    client = _client(ctx)
    config = _config(ctx)
    target = _get_target_device(client, serial)

    cancel = threading.Event()
    with create_transfer_progress_bar(apk.stat().st_size, desc=f"Uploading {apk.name}") as bar:
        try:
            install_apk(client, target, apk, config.transfer.install_path, _transfer_options(config, bar, cancel))
        except KeyboardInterrupt:
            cancel.set()
            _fail("Install cancelled")
        except ADBError as e:
            _fail(f"Install failed: {e}")

    console.print(f"[bold green]Installed {apk.name}[/bold green]")


@cli.command()
@serial_option
@click.option("--output", "-o", type=click.Path(dir_okay=False, path_type=Path), help="Output PNG file")
@click.pass_context
def screenshot(ctx, serial: Optional[str], output: Optional[Path]):
    """Capture the device screen."""
    client = _client(ctx)
    target = _get_target_device(client, serial)

    if output is None:
        name = safe_filename(f"{target.serial}_{datetime.now():%Y%m%d_%H%M%S}.png")
        output = _config(ctx).media.screenshot_dir / name

    try:
        save_screenshot(client, target, output)
    except ADBError as e:
        _fail(f"Screenshot failed: {e}")

    console.print(f"[green]Screenshot saved to {output}[/green]")


@cli.command()
@serial_option
@click.option("--duration", "-d", type=click.IntRange(1, 180), help="Time limit in seconds")
@click.option("--bitrate", "-b", type=int, help="Bitrate in bits per second")
@click.option("--output", "-o", type=click.Path(dir_okay=False, path_type=Path), help="Local MP4 file")
@click.pass_context
def record(ctx, serial: Optional[str], duration: Optional[int], bitrate: Optional[int], output: Optional[Path]):
    """Record the device screen and download the video."""
    client = _client(ctx)
    media = _config(ctx).media
    target = _get_target_device(client, serial)

    options = ScreenRecordOptions(
        width=target.display.width,
        height=target.display.height,
        duration=duration or media.video_duration,
        bitrate=bitrate or media.video_bitrate,
    )
    if output is None:
        output = Path.cwd() / safe_filename(f"{target.serial}_{datetime.now():%Y%m%d_%H%M%S}.mp4")

    try:
        console.print(f"[yellow]Recording for up to {options.duration}s...[/yellow]")
        record_screen(client, target, media.video_remote_path, options)
        with open(output, "wb") as f:
            download(client, target, media.video_remote_path, f)
    except ADBError as e:
        _fail(f"Recording failed: {e}")
    finally:
        remove_remote(client, target, media.video_remote_path)

    console.print(f"[green]Video saved to {output}[/green]")


@cli.group("input")
@serial_option
@click.option("--source", type=click.Choice([s.value for s in InputSource]), default=InputSource.DEFAULT.value,
              help="Input source")
@click.pass_context
def input_group(ctx, serial: Optional[str], source: str):
    """Send input events to the device."""
    ctx.obj["serial"] = serial
    ctx.obj["source"] = InputSource(source)


def _send(ctx, command) -> None:
    client = _client(ctx)
    target = _get_target_device(client, ctx.obj.get("serial"))
    try:
        send_input(client, target, command, ctx.obj["source"])
    except ADBError as e:
        _fail(f"ADB Error: {e}")


@input_group.command("text")
@click.argument("text")
@click.pass_context
def input_text(ctx, text: str):
    """Type text."""
    _send(ctx, Text(text))


@input_group.command("tap")
@click.argument("x", type=int)
@click.argument("y", type=int)
@click.pass_context
def input_tap(ctx, x: int, y: int):
    """Tap at a screen position."""
    _send(ctx, Tap(x, y))


@input_group.command("swipe")
@click.argument("x1", type=int)
@click.argument("y1", type=int)
@click.argument("x2", type=int)
@click.argument("y2", type=int)
@click.option("--duration", type=int, help="Swipe duration in milliseconds")
@click.pass_context
def input_swipe(ctx, x1: int, y1: int, x2: int, y2: int, duration: Optional[int]):
    """Swipe between two screen positions."""
    _send(ctx, Swipe(x1, y1, x2, y2, duration_ms=duration))


@input_group.command("keyevent")
@click.argument("codes", type=int, nargs=-1, required=True)
@click.option("--longpress", is_flag=True, help="Send as a long press")
@click.option("--doubletap", is_flag=True, help="Send as a double tap")
@click.pass_context
def input_keyevent(ctx, codes: List[int], longpress: bool, doubletap: bool):
    """Send key codes."""
    try:
        command = KeyEvent(*codes, longpress=longpress, doubletap=doubletap)
    except ValueError as e:
        raise click.BadParameter(str(e))
    _send(ctx, command)


def main():
    """Main entry point."""
    cli(obj={})


if __name__ == "__main__":
    main()
