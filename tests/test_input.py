"""Tests for input commands."""

import pytest

from droidlink.adb.input import (
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
    build_input_args,
    send_input,
)


class TestInputValidation:
    """Test that commands reject bad arguments at construction."""

    def test_tap_requires_integers(self):
        with pytest.raises(ValueError):
            Tap("10", 20)
        with pytest.raises(ValueError):
            Tap(1.5, 20)

    def test_keyevent_requires_codes(self):
        with pytest.raises(ValueError):
            KeyEvent()

    def test_keyevent_rejects_both_modes(self):
        with pytest.raises(ValueError):
            KeyEvent(26, longpress=True, doubletap=True)

    def test_keyevent_rejects_non_int_codes(self):
        with pytest.raises(ValueError):
            KeyEvent(26, "HOME")

    def test_swipe_negative_duration(self):
        with pytest.raises(ValueError):
            Swipe(0, 0, 100, 100, duration_ms=-5)

    def test_motionevent_action(self):
        with pytest.raises(ValueError):
            MotionEvent("hover", 1, 2)

    def test_keycombination_requires_keys(self):
        with pytest.raises(ValueError):
            KeyCombination()

    def test_text_requires_string(self):
        with pytest.raises(ValueError):
            Text(42)


class TestInputArgs:
    """Test rendering commands into ``input`` arguments."""

    @pytest.mark.parametrize(
        "command, expected",
        [
            (Text("hello world"), ["text", "hello%sworld"]),
            (KeyEvent(3, 4), ["keyevent", "3", "4"]),
            (KeyEvent(26, longpress=True), ["keyevent", "--longpress", "26"]),
            (KeyEvent(66, doubletap=True), ["keyevent", "--doubletap", "66"]),
            (Tap(100, 200), ["tap", "100", "200"]),
            (Swipe(1, 2, 3, 4), ["swipe", "1", "2", "3", "4"]),
            (Swipe(1, 2, 3, 4, duration_ms=300), ["swipe", "1", "2", "3", "4", "300"]),
            (DragAndDrop(1, 2, 3, 4, 500), ["draganddrop", "1", "2", "3", "4", "500"]),
            (Press(), ["press"]),
            (Roll(-1, 2), ["roll", "-1", "2"]),
            (MotionEvent("down", 5, 6), ["motionevent", "down", "5", "6"]),
            (KeyCombination("KEYCODE_CTRL_LEFT", "KEYCODE_A"), ["keycombination", "KEYCODE_CTRL_LEFT", "KEYCODE_A"]),
        ],
    )
    def test_args(self, command, expected):
        assert build_input_args(command) == expected

    def test_source_prefix(self):
        assert build_input_args(Tap(1, 2), InputSource.TOUCHSCREEN) == ["touchscreen", "tap", "1", "2"]

    def test_send_input(self, fake_server, client, online_device):
        send_input(client, online_device, KeyEvent(3), InputSource.KEYBOARD)
        assert "shell:input keyboard keyevent 3" in fake_server.requests
