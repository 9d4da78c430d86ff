"""Tests for file transfers over the sync protocol."""

import io
import threading

import pytest

from droidlink.adb.errors import ADBError, OperationCancelled, SyncError
from droidlink.adb.sync import DEFAULT_FILE_MODE, MAX_DATA_SIZE
from droidlink.adb.transfer import (
    TransferOptions,
    copy_chunks,
    create_transfer_progress_bar,
    download,
    download_file,
    upload,
    upload_file,
)


class TestTransferOptions:
    """Test transfer option validation."""

    def test_defaults(self):
        options = TransferOptions()
        assert options.chunk_size == 32 * 1024
        assert options.progress is None

    @pytest.mark.parametrize("size", [0, -1, MAX_DATA_SIZE + 1])
    def test_invalid_chunk_size(self, size):
        with pytest.raises(ValueError):
            TransferOptions(chunk_size=size)


class TestCopyChunks:
    """Test the chunked copy loop."""

    def test_progress_after_each_chunk(self):
        calls = []
        sink = io.BytesIO()
        options = TransferOptions(chunk_size=1000, progress=lambda done, total: calls.append((done, total)))

        copied = copy_chunks(io.BytesIO(b"a" * 10_000).read, sink.write, 10_000, options)

        assert copied == 10_000
        assert len(calls) == 10
        assert calls[0] == (1000, 10_000)
        assert calls[-1] == (10_000, 10_000)
        assert sink.getvalue() == b"a" * 10_000

    def test_cancel_before_first_chunk(self):
        cancel = threading.Event()
        cancel.set()
        source = io.BytesIO(b"a" * 100)

        with pytest.raises(OperationCancelled):
            copy_chunks(source.read, io.BytesIO().write, 100, TransferOptions(chunk_size=10, cancel=cancel))

        assert source.tell() == 0

    def test_cancel_mid_transfer(self):
        cancel = threading.Event()
        sink = io.BytesIO()

        def progress(done, total):
            if done >= 300:
                cancel.set()

        options = TransferOptions(chunk_size=100, progress=progress, cancel=cancel)
        with pytest.raises(OperationCancelled):
            copy_chunks(io.BytesIO(b"a" * 1000).read, sink.write, 1000, options)

        assert len(sink.getvalue()) == 300


class TestUpload:
    """Test uploads against the fake server."""

    def test_upload(self, fake_server, client, online_device):
        calls = []
        data = bytes(range(256)) * 40
        options = TransferOptions(chunk_size=1000, progress=lambda done, total: calls.append(done))

        copied = upload(client, online_device, io.BytesIO(data), len(data), "/sdcard/blob.bin", options)

        assert copied == len(data)
        assert fake_server.files["/sdcard/blob.bin"] == data
        assert fake_server.modes["/sdcard/blob.bin"] == DEFAULT_FILE_MODE
        assert len(calls) == 11
        assert calls[-1] == len(data)

    def test_data_packets_never_exceed_limit(self, fake_server, client, online_device):
        data = b"z" * (MAX_DATA_SIZE * 2 + 5)

        upload(client, online_device, io.BytesIO(data), len(data), "/sdcard/big.bin",
               TransferOptions(chunk_size=MAX_DATA_SIZE))

        assert fake_server.files["/sdcard/big.bin"] == data
        assert max(fake_server.data_packets) <= MAX_DATA_SIZE

    def test_upload_file(self, fake_server, client, online_device, tmp_path):
        local = tmp_path / "notes.txt"
        local.write_bytes(b"hello device")

        upload_file(client, online_device, local, "/sdcard/notes.txt")

        assert fake_server.files["/sdcard/notes.txt"] == b"hello device"

    def test_cancelled_upload_is_not_committed(self, fake_server, client, online_device):
        cancel = threading.Event()

        def progress(done, total):
            if done >= 2000:
                cancel.set()

        options = TransferOptions(chunk_size=1000, progress=progress, cancel=cancel)
        with pytest.raises(OperationCancelled):
            upload(client, online_device, io.BytesIO(b"a" * 10_000), 10_000, "/sdcard/partial.bin", options)

        assert "/sdcard/partial.bin" not in fake_server.files

    def test_device_rejects_file(self, fake_server, client, online_device):
        fake_server.fail_send = "Read-only file system"

        with pytest.raises(SyncError, match="Read-only file system"):
            upload(client, online_device, io.BytesIO(b"data"), 4, "/system/x", TransferOptions())


class TestDownload:
    """Test downloads against the fake server."""

    def test_download(self, fake_server, client, online_device):
        data = b"0123456789" * 1000
        fake_server.files["/sdcard/log.txt"] = data
        calls = []
        sink = io.BytesIO()

        copied = download(client, online_device, "/sdcard/log.txt", sink,
                          TransferOptions(chunk_size=1000, progress=lambda done, total: calls.append((done, total))))

        assert copied == len(data)
        assert sink.getvalue() == data
        assert len(calls) == 10
        assert all(total == len(data) for _, total in calls)

    def test_download_file_creates_directories(self, fake_server, client, online_device, tmp_path):
        fake_server.files["/sdcard/a.bin"] = b"abc"
        target = tmp_path / "nested" / "a.bin"

        download_file(client, online_device, "/sdcard/a.bin", target)

        assert target.read_bytes() == b"abc"

    def test_download_missing_file(self, fake_server, client, online_device):
        with pytest.raises(ADBError):
            download(client, online_device, "/sdcard/missing", io.BytesIO())

    def test_cancelled_download(self, fake_server, client, online_device):
        fake_server.files["/sdcard/a.bin"] = b"a" * 5000
        cancel = threading.Event()
        cancel.set()

        with pytest.raises(OperationCancelled):
            download(client, online_device, "/sdcard/a.bin", io.BytesIO(), TransferOptions(cancel=cancel))


class TestProgressBar:
    """Test the tqdm progress adapter."""

    def test_update_to(self):
        with create_transfer_progress_bar(100, desc="test") as bar:
            bar.update_to(40, 100)
            bar.update_to(100, 100)
            assert bar.n == 100

    def test_total_learned_from_callback(self):
        with create_transfer_progress_bar(desc="test") as bar:
            bar.update_to(10, 50)
            assert bar.total == 50


class TestSyncConnection:
    """Test sync requests outside the transfer helpers."""

    def test_stat(self, fake_server, client, online_device):
        fake_server.files["/sdcard/a.bin"] = b"abc"

        with client.sync(online_device) as sync:
            found = sync.stat("/sdcard/a.bin")
            missing = sync.stat("/sdcard/none")

        assert found.exists
        assert found.size == 3
        assert not missing.exists
