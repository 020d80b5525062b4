"""Tests for the file- and module-backed address spaces."""

from __future__ import annotations

import ctypes
import io
import os
from concurrent.futures import ThreadPoolExecutor

import pytest

from peinspect.core.errors import OutOfRangeError
from peinspect.parsers.address_space import FileAddressSpace, ModuleAddressSpace


@pytest.fixture
def blob_path(write_pe):
    return write_pe(bytes(range(256)) * 4, name="blob.bin")


class TestFileAddressSpace:
    def test_base_and_limit(self, blob_path):
        with FileAddressSpace.from_path(blob_path) as space:
            assert space.base() == 0
            assert space.limit() == 1024
            assert space.size() == 1024

    def test_read_at(self, blob_path):
        with FileAddressSpace.from_path(blob_path) as space:
            assert space.read_at(0x10, 4) == bytes([0x10, 0x11, 0x12, 0x13])
            assert space.read_at(1020, 4) == bytes([252, 253, 254, 255])

    def test_read_past_limit_raises(self, blob_path):
        with FileAddressSpace.from_path(blob_path) as space:
            with pytest.raises(OutOfRangeError) as excinfo:
                space.read_at(1022, 4)
            assert excinfo.value.limit == 1024
            with pytest.raises(OutOfRangeError):
                space.read_at(-1, 1)

    def test_cursor_reads_are_clamped(self, blob_path):
        with FileAddressSpace.from_path(blob_path) as space:
            space.seek(1020)
            assert space.read(16) == bytes([252, 253, 254, 255])
            assert space.read(1) == b""
            assert space.seek(-4, io.SEEK_END) == 1020

    def test_close_is_idempotent(self, blob_path):
        space = FileAddressSpace.from_path(blob_path)
        space.close()
        space.close()
        assert space.closed

    def test_from_handle_leaves_caller_file_open(self, blob_path):
        with open(blob_path, "rb") as fh:
            space = FileAddressSpace.from_handle(fh)
            assert space.read_at(0, 2) == b"\x00\x01"
            space.close()
            assert not fh.closed
            fh.seek(2)
            assert fh.read(2) == b"\x02\x03"

    def test_from_raw_descriptor(self, blob_path):
        with open(blob_path, "rb") as fh:
            with FileAddressSpace.from_handle(fh.fileno()) as space:
                assert space.limit() == 1024

    def test_sub_reader_is_bounded(self, blob_path):
        with FileAddressSpace.from_path(blob_path) as space:
            reader = space.sub_reader(0x20, 6)
            assert reader.read(4) == bytes([0x20, 0x21, 0x22, 0x23])
            assert reader.remaining == 2
            assert reader.read(10) == bytes([0x24, 0x25])
            assert reader.read(1) == b""

    def test_sub_reader_stops_at_end_of_store(self, blob_path):
        with FileAddressSpace.from_path(blob_path) as space:
            reader = space.sub_reader(1020, 64)
            assert len(reader.read(64)) == 4


class TestModuleAddressSpace:
    def test_reads_process_memory(self):
        buf = ctypes.create_string_buffer(b"MZ\x90\x00" + b"\x00" * 60, 64)
        base = ctypes.addressof(buf)
        space = ModuleAddressSpace(base, 64)
        assert space.base() == base
        assert space.limit() == base + 64
        assert space.read_at(0, 2) == b"MZ"
        with pytest.raises(OutOfRangeError):
            space.read_at(62, 4)

    def test_buffer_backed(self):
        space = ModuleAddressSpace(0x10000, 8, buffer=b"abcdefgh")
        assert space.read_at(2, 3) == b"cde"
        assert space.size() == 8

    def test_close_is_noop(self):
        space = ModuleAddressSpace(0x10000, 4, buffer=b"abcd")
        space.close()
        space.close()
        assert space.read_at(0, 4) == b"abcd"

    def test_rejects_null_base(self):
        with pytest.raises(ValueError):
            ModuleAddressSpace(0, 16)


def test_variant_flags(blob_path):
    with FileAddressSpace.from_path(blob_path) as space:
        assert space.is_file and not space.is_module
    module = ModuleAddressSpace(0x10000, 4, buffer=b"abcd")
    assert module.is_module and not module.is_file


@pytest.mark.parametrize("has_pread", [True, False], ids=["pread", "seek-read"])
def test_concurrent_read_at(write_pe, monkeypatch, has_pread):
    if has_pread and not hasattr(os, "pread"):
        pytest.skip("platform has no os.pread")
    if not has_pread:
        monkeypatch.delattr(os, "pread", raising=False)

    data = bytes((i * 7 + (i >> 8)) & 0xFF for i in range(1 << 20))
    path = write_pe(data, name="large.bin")
    offsets = [(n * 4099) % (len(data) - 64) for n in range(2000)]

    def worker(shift: int) -> list[int]:
        bad = []
        for off in offsets[shift:] + offsets[:shift]:
            if space.read_at(off, 64) != data[off:off + 64]:
                bad.append(off)
        return bad

    with FileAddressSpace.from_path(path) as space:
        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(worker, range(0, 800, 100)))
    assert results == [[]] * 8
