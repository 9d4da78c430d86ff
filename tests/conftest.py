"""Shared fixtures: a scripted bridge server listening on localhost."""

import socket
import socketserver
import struct
import threading
from typing import Callable, Dict, List, Optional, Union

import pytest

from droidlink.adb.client import ADBClient

HEADER = struct.Struct("<4sI")
ShellReply = Union[bytes, Callable[[str, str], bytes]]


def frame(payload: Union[str, bytes]) -> bytes:
    if isinstance(payload, str):
        payload = payload.encode("utf-8")
    return f"{len(payload):04x}".encode("ascii") + payload


class _Handler(socketserver.BaseRequestHandler):
    """Serves one client connection the way the real server would."""

    def handle(self):
        fake: "FakeAdbServer" = self.server.fake
        serial = None

        while True:
            request = self._read_request()
            if request is None:
                return
            fake.record(request)

            if request == "host:version":
                self._okay(frame(f"{fake.version:04x}"))
                return
            if request == "host:kill":
                self._okay()
                fake.killed.set()
                return
            if request == "host:devices-l":
                self._okay(frame(fake.devices_listing()))
                return
            if request.startswith("host-serial:") and request.endswith(":get-state"):
                target = request[len("host-serial:"):-len(":get-state")]
                if target not in fake.devices:
                    self._fail(f"device '{target}' not found")
                else:
                    self._okay(frame(fake.devices[target]["state"]))
                return
            if request == "host:track-devices":
                self._okay()
                self._track_devices(fake)
                return
            if request.startswith("host:transport:"):
                serial = request[len("host:transport:"):]
                if serial not in fake.devices:
                    self._fail(f"device '{serial}' not found")
                    return
                self._okay()
                continue
            if request.startswith("shell:"):
                if serial is None:
                    self._fail("no device selected")
                    return
                try:
                    output = fake.shell_output(serial, request[len("shell:"):])
                except KeyError as e:
                    self._fail(str(e))
                    return
                self._okay(output)
                return
            if request == "sync:":
                self._okay()
                self._serve_sync(fake, serial)
                return

            self._fail(f"unknown host service '{request}'")
            return

    def _read_request(self) -> Optional[str]:
        prefix = self._recv_exactly(4)
        if prefix is None:
            return None
        payload = self._recv_exactly(int(prefix.decode("ascii"), 16))
        if payload is None:
            return None
        return payload.decode("utf-8")

    def _recv_exactly(self, size: int) -> Optional[bytes]:
        data = b""
        while len(data) < size:
            try:
                chunk = self.request.recv(size - len(data))
            except OSError:
                return None
            if not chunk:
                return None
            data += chunk
        return data

    def _okay(self, payload: bytes = b"") -> None:
        self.request.sendall(b"OKAY" + payload)

    def _fail(self, message: str) -> None:
        self.request.sendall(b"FAIL" + frame(message))

    def _track_devices(self, fake: "FakeAdbServer") -> None:
        for snapshot in fake.track_snapshots:
            self.request.sendall(frame(snapshot))
        if fake.track_close_after_snapshots:
            return

        # Hold the stream open until the client hangs up or the server stops
        self.request.settimeout(0.05)
        while not fake.closing.is_set():
            try:
                if not self.request.recv(1):
                    return
            except socket.timeout:
                continue
            except OSError:
                return

    def _serve_sync(self, fake: "FakeAdbServer", serial: str) -> None:
        while True:
            header = self._recv_exactly(HEADER.size)
            if header is None:
                return
            packet_id, length = HEADER.unpack(header)

            if packet_id == b"QUIT":
                return

            path = self._recv_exactly(length).decode("utf-8") if length else ""
            fake.record(f"sync:{packet_id.decode('ascii')}:{path}")

            if packet_id == b"STAT":
                data = fake.files.get(path)
                if data is None:
                    self.request.sendall(struct.pack("<4sIII", b"STAT", 0, 0, 0))
                else:
                    self.request.sendall(struct.pack("<4sIII", b"STAT", 0o100644, len(data), 0))
            elif packet_id == b"SEND":
                if not self._receive_file(fake, path):
                    return
            elif packet_id == b"RECV":
                self._send_file(fake, path)
            else:
                return

    def _receive_file(self, fake: "FakeAdbServer", send_arg: str) -> bool:
        path, _, mode = send_arg.rpartition(",")
        received = bytearray()
        while True:
            header = self._recv_exactly(HEADER.size)
            if header is None:
                fake.aborted[path] = bytes(received)
                return False
            packet_id, value = HEADER.unpack(header)
            if packet_id == b"DATA":
                fake.data_packets.append(value)
                chunk = self._recv_exactly(value) if value else b""
                if chunk is None:
                    fake.aborted[path] = bytes(received)
                    return False
                received.extend(chunk)
            elif packet_id == b"DONE":
                if fake.fail_send:
                    self.request.sendall(HEADER.pack(b"FAIL", len(fake.fail_send)) + fake.fail_send.encode())
                    return True
                fake.files[path] = bytes(received)
                fake.modes[path] = int(mode)
                self.request.sendall(HEADER.pack(b"OKAY", 0))
                return True
            else:
                return False

    def _send_file(self, fake: "FakeAdbServer", path: str) -> None:
        data = fake.files.get(path)
        if data is None:
            message = b"No such file or directory"
            self.request.sendall(HEADER.pack(b"FAIL", len(message)) + message)
            return
        for offset in range(0, len(data), 64 * 1024):
            piece = data[offset:offset + 64 * 1024]
            self.request.sendall(HEADER.pack(b"DATA", len(piece)) + piece)
        self.request.sendall(HEADER.pack(b"DONE", 0))


class _Server(socketserver.ThreadingTCPServer):
    allow_reuse_address = True
    daemon_threads = True


class FakeAdbServer:
    """A bridge server whose answers are set up by each test."""

    def __init__(self):
        self.version = 41
        self.devices: Dict[str, Dict[str, str]] = {}
        self.shell: Dict[str, ShellReply] = {}
        self.files: Dict[str, bytes] = {}
        self.modes: Dict[str, int] = {}
        self.aborted: Dict[str, bytes] = {}
        self.data_packets: List[int] = []
        self.fail_send = ""
        self.track_snapshots: List[str] = []
        self.track_close_after_snapshots = False
        self.requests: List[str] = []
        self.killed = threading.Event()
        self.closing = threading.Event()
        self._lock = threading.Lock()
        self._server = _Server(("127.0.0.1", 0), _Handler)
        self._server.fake = self
        self._thread = threading.Thread(target=self._server.serve_forever, daemon=True)

    @property
    def port(self) -> int:
        return self._server.server_address[1]

    def start(self) -> None:
        self._thread.start()

    def stop(self) -> None:
        self.closing.set()
        self._server.shutdown()
        self._server.server_close()

    def record(self, request: str) -> None:
        with self._lock:
            self.requests.append(request)

    def add_device(self, serial: str, state: str = "device", **attributes: str) -> None:
        self.devices[serial] = {"state": state, **attributes}

    def devices_listing(self) -> str:
        lines = []
        for serial, info in self.devices.items():
            attrs = " ".join(f"{key}:{value}" for key, value in info.items() if key != "state")
            lines.append(f"{serial:<22} {info['state']} {attrs}".rstrip())
        return "".join(line + "\n" for line in lines)

    def shell_output(self, serial: str, command: str) -> bytes:
        reply = self.shell.get(command)
        if callable(reply):
            return reply(serial, command)
        if reply is not None:
            return reply
        if command.startswith("du -b "):
            path = command[len("du -b "):]
            if path in self.files:
                return f"{len(self.files[path])}\t{path}\n".encode()
            return f"du: {path}: No such file or directory\n".encode()
        return b""

    def add_hydration_replies(self, release: str = "13", sdk: str = "33") -> None:
        """Answer everything a device lookup asks for."""
        self.shell.update({
            "getprop ro.build.version.release": f"{release}\n".encode(),
            "getprop ro.build.version.sdk": f"{sdk}\n".encode(),
            "getprop ro.product.cpu.abi": b"arm64-v8a\n",
            "getprop ro.hardware.egl": b"mali\n",
            "wm size": b"Physical size: 1080x2340\n",
            "wm density": b"Physical density: 440\n",
        })


@pytest.fixture
def fake_server():
    server = FakeAdbServer()
    server.start()
    yield server
    server.stop()


@pytest.fixture
def client(fake_server):
    return ADBClient(
        host="127.0.0.1",
        port=fake_server.port,
        connect_timeout=2.0,
        start_timeout=1.0,
        watcher_poll_interval=0.05,
    )


@pytest.fixture
def online_device(fake_server, client):
    """A hydrated device reachable through the fake server."""
    fake_server.add_device("ABC123", "device", product="sdk_phone", model="Pixel_5", device="generic",
                           transport_id="1")
    fake_server.add_hydration_replies()
    return client.get_device("ABC123")
