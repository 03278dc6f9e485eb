"""
Unit tests for readable and writable cloud file handles

===============================================================================
PROVENANCE TRACKING
===============================================================================
File: tests/unit/test_cloud_files.py
Created: 2026-10-19
Author: KVCloud Contributors
Type: Unit Test Suite

Change History:
-------------------------------------------------------------------------------
Date        Author      Type    Description
-------------------------------------------------------------------------------
2026-10-19  kvcloud     CREATE  Tests for CloudStorageReadableFile and
                                CloudStorageWritableFile.
-------------------------------------------------------------------------------

License: MIT
===============================================================================
"""

from unittest.mock import MagicMock

import pytest

from kvcloud.errors import CloudIOError, NotFoundError
from kvcloud.providers.files import (
    CloudStorageReadableFile,
    FileOptions,
    RandomAccessFile,
    SequentialFile,
    WritableFile,
)


BUCKET = "db.live-b"
PAYLOAD = bytes(range(256)) * 4


@pytest.fixture
def provider(memory_provider):
    memory_provider.put_bytes(BUCKET, "db/000012.sst", PAYLOAD)
    return memory_provider


# =============================================================================
# Readable Handle Tests
# =============================================================================

class TestReadableFile:
    """Tests for the sequential and random-access reader"""

    def test_implements_both_capabilities(self, provider):
        handle = provider.new_cloud_readable_file(BUCKET, "db/000012.sst")
        assert isinstance(handle, SequentialFile)
        assert isinstance(handle, RandomAccessFile)
        assert handle.size() == len(PAYLOAD)
        assert handle.name == "cloud"

    def test_missing_object(self, provider):
        with pytest.raises(NotFoundError):
            provider.new_cloud_readable_file(BUCKET, "db/missing")

    def test_sequential_reads(self, provider):
        handle = provider.new_cloud_readable_file(BUCKET, "db/000012.sst",
                                                  FileOptions(readahead_size=100))
        assert handle.read(10) == PAYLOAD[:10]
        handle.skip(5)
        assert handle.read(10) == PAYLOAD[15:25]
        assert handle.tell() == 25

    def test_read_past_end_is_short(self, provider):
        handle = provider.new_cloud_readable_file(BUCKET, "db/000012.sst")
        handle.skip(len(PAYLOAD) - 3)
        assert handle.read(10) == PAYLOAD[-3:]
        assert handle.read(10) == b""

    def test_read_at(self, provider):
        handle = provider.new_cloud_readable_file(BUCKET, "db/000012.sst")
        assert handle.read_at(300, 4) == PAYLOAD[300:304]
        assert handle.read_at(len(PAYLOAD) + 1, 4) == b""
        assert handle.read_at(0, 0) == b""

    def test_readahead_serves_from_window(self, provider):
        handle = provider.new_cloud_readable_file(BUCKET, "db/000012.sst",
                                                  FileOptions(readahead_size=512))
        provider.calls.clear()

        handle.read_at(0, 8)
        handle.read_at(8, 8)
        handle.read_at(500, 12)
        assert provider.calls.count("read_cloud_object_range") == 1

        handle.read_at(600, 8)
        assert provider.calls.count("read_cloud_object_range") == 2

    def test_transient_failure_is_retried(self, provider):
        handle = provider.new_cloud_readable_file(BUCKET, "db/000012.sst",
                                                  FileOptions(max_retries=2))
        provider.fail("read_cloud_object_range", CloudIOError("reset"), times=2)
        assert handle.read_at(0, 4) == PAYLOAD[:4]

    def test_retries_exhausted(self, provider):
        handle = provider.new_cloud_readable_file(BUCKET, "db/000012.sst",
                                                  FileOptions(max_retries=1))
        provider.fail("read_cloud_object_range", CloudIOError("reset"), times=2)
        with pytest.raises(CloudIOError):
            handle.read_at(0, 4)

    def test_not_found_is_not_retried(self):
        provider = MagicMock()
        provider.read_cloud_object_range.side_effect = NotFoundError("gone")
        handle = CloudStorageReadableFile(provider, BUCKET, "db/x", 10)
        with pytest.raises(NotFoundError):
            handle.read(4)
        assert provider.read_cloud_object_range.call_count == 1


# =============================================================================
# Writable Handle Tests
# =============================================================================

class TestWritableFile:
    """Tests for the append-only writer"""

    def test_append_and_close_uploads(self, provider, tmp_path):
        handle = provider.new_cloud_writable_file(str(tmp_path / "000013.sst"),
                                                  BUCKET, "db/000013.sst")
        assert isinstance(handle, WritableFile)
        assert handle.append(b"hello ")
        assert handle.append(b"world")
        assert handle.sync()
        assert not provider.exists_cloud_object(BUCKET, "db/000013.sst")

        assert handle.close() is True
        assert handle.status() is None
        assert handle.size() == 11
        assert provider.get_bytes(BUCKET, "db/000013.sst") == b"hello world"

    def test_upload_failure_kept_in_status(self, provider, tmp_path):
        handle = provider.new_cloud_writable_file(str(tmp_path / "f"), BUCKET, "db/f")
        handle.append(b"x")
        provider.fail("put_cloud_object", CloudIOError("upload reset"))

        assert handle.close() is False
        assert isinstance(handle.status(), CloudIOError)

    def test_failed_append_is_never_published(self, provider, tmp_path):
        listener = MagicMock()
        handle = provider.new_cloud_writable_file(str(tmp_path / "f"), BUCKET, "db/f")
        handle.add_close_listener(listener)
        assert handle.append(b"first-")

        local = MagicMock(wraps=handle._file)
        local.write.side_effect = OSError("No space left on device")
        handle._file = local
        assert handle.append(b"second") is False

        assert handle.close() is False
        assert "No space left on device" in str(handle.status())
        assert not provider.exists_cloud_object(BUCKET, "db/f")
        local.close.assert_called_once_with()
        listener.assert_called_once_with(handle)

    def test_size_mismatch_detected(self, provider, tmp_path):
        handle = provider.new_cloud_writable_file(str(tmp_path / "f"), BUCKET, "db/f")
        handle.append(b"abc")
        handle._size = 99

        assert handle.close() is False
        assert "does not match" in str(handle.status())

    def test_size_check_can_be_disabled(self, provider, tmp_path):
        handle = provider.new_cloud_writable_file(str(tmp_path / "f"), BUCKET, "db/f",
                                                  FileOptions(validate_filesize=False))
        handle.append(b"abc")
        handle._size = 99
        assert handle.close() is True

    def test_append_after_close_fails(self, provider, tmp_path):
        handle = provider.new_cloud_writable_file(str(tmp_path / "f"), BUCKET, "db/f")
        handle.close()
        assert handle.append(b"late") is False
        assert handle.status() is not None

    def test_unwritable_local_path(self, provider, tmp_path):
        handle = provider.new_cloud_writable_file(str(tmp_path / "no" / "such" / "dir"),
                                                  BUCKET, "db/f")
        assert isinstance(handle.status(), CloudIOError)
        assert handle.append(b"x") is False
        assert handle.close() is False

    def test_close_listeners_fire_once(self, provider, tmp_path):
        listener = MagicMock()
        handle = provider.new_cloud_writable_file(str(tmp_path / "f"), BUCKET, "db/f")
        handle.add_close_listener(listener)

        handle.close()
        handle.close()
        listener.assert_called_once_with(handle)
