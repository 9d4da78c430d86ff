"""Tests for utility helpers."""

import logging

from droidlink.util import ensure_directory, format_size, get_logger, safe_filename, setup_logging


class TestPaths:
    """Test path and size helpers."""

    def test_format_size(self):
        assert format_size(0) == "0 B"
        assert format_size(512) == "512.0 B"
        assert format_size(64 * 1024) == "64.0 KB"
        assert format_size(3 * 1024 ** 3) == "3.0 GB"

    def test_safe_filename(self):
        assert safe_filename("emulator-5554:screen.png") == "emulator-5554_screen.png"
        assert safe_filename("  ..  ") == "unknown"

    def test_ensure_directory(self, tmp_path):
        target = tmp_path / "a" / "b"
        assert ensure_directory(target) == target
        assert target.is_dir()


class TestLogging:
    """Test logger setup."""

    def test_get_logger_namespace(self):
        assert get_logger("adb.client").name == "droidlink.adb.client"
        assert get_logger("droidlink.adb.client").name == "droidlink.adb.client"

    def test_setup_logging_with_file(self, tmp_path):
        log_file = tmp_path / "logs" / "droidlink.log"

        logger = setup_logging(level="WARNING", log_file=log_file)
        get_logger("adb.wire").debug("Send: host:version")
        for handler in logger.handlers:
            handler.flush()

        assert logger.level == logging.DEBUG
        assert "Send: host:version" in log_file.read_text()

        setup_logging(level="INFO")
