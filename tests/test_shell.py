"""Tests for shell command execution."""

import pytest

from droidlink.adb.errors import ADBError, CommandFailedError
from droidlink.adb.shell import build_command, parse_int, parse_key_value


class TestHelpers:
    """Test command building and output parsing helpers."""

    def test_build_command_joins_with_spaces(self):
        assert build_command("wm", "size") == "wm size"
        assert build_command("logcat", "-v", "threadtime", 3) == "logcat -v threadtime 3"

    def test_build_command_does_not_quote(self):
        assert build_command("echo", "a b") == "echo a b"

    def test_parse_key_value(self):
        assert parse_key_value("Physical size: 1080x2340") == ("Physical size", "1080x2340")
        assert parse_key_value("[ro.build.version.sdk]: [33]") == ("ro.build.version.sdk", "33")

    def test_parse_key_value_without_colon(self):
        assert parse_key_value("13\n") == ("", "13")

    def test_parse_int(self):
        assert parse_int("440") == 440
        assert parse_int(" 33\n") == 33
        assert parse_int("") == 0
        assert parse_int("n/a") == 0


class TestShellCommand:
    """Test shell commands against the fake server."""

    def test_run_returns_output(self, fake_server, client, online_device):
        fake_server.shell["echo hello"] = b"hello\n"
        assert client.shell.run(online_device, "echo", "hello") == b"hello\n"
        assert "shell:echo hello" in fake_server.requests

    def test_run_text(self, fake_server, client, online_device):
        fake_server.shell["id"] = "uid=2000(shell)\n".encode()
        assert client.shell.run_text(online_device, "id").startswith("uid=2000")

    def test_getprop(self, client, online_device):
        assert client.shell.getprop(online_device, "ro.build.version.release") == "13"

    def test_getprop_keeps_colons_in_value(self, fake_server, client, online_device):
        fingerprint = "google/redfin/redfin:13/TQ3A.230805.001/10316531:user/release-keys"
        fake_server.shell["getprop ro.build.fingerprint"] = f"{fingerprint}\n".encode()

        assert client.shell.getprop(online_device, "ro.build.fingerprint") == fingerprint

    def test_getprop_missing_is_empty(self, client, online_device):
        assert client.shell.getprop(online_device, "ro.does.not.exist") == ""

    def test_wm_prefers_physical_value(self, fake_server, client, online_device):
        fake_server.shell["wm size"] = b"Physical size: 1080x2340\nOverride size: 720x1560\n"
        assert client.shell.wm_size(online_device) == (1080, 2340)

    def test_wm_size_unparseable(self, fake_server, client, online_device):
        fake_server.shell["wm size"] = b"error\n"
        assert client.shell.wm_size(online_device) == (0, 0)

    def test_disk_usage(self, fake_server, client, online_device):
        fake_server.files["/sdcard/a.bin"] = b"x" * 1234
        assert client.shell.disk_usage(online_device, "/sdcard/a.bin") == 1234

    def test_disk_usage_missing_file(self, client, online_device):
        with pytest.raises(ADBError):
            client.shell.disk_usage(online_device, "/sdcard/missing")

    def test_open_stream_reports_failure(self, fake_server, client, online_device):
        def refuse(serial, command):
            raise KeyError("closed")

        fake_server.shell["reboot"] = refuse

        with pytest.raises(CommandFailedError):
            client.shell.open_stream(online_device, "reboot")
