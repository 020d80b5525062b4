"""Shared fixtures: synthetic PE images built byte by byte."""

from __future__ import annotations

import struct
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import pytest

from shared.config import reset_config


AMD64 = 0x8664
I386 = 0x14C

E_LFANEW = 0x80
TEXT_RVA, TEXT_RAW = 0x1000, 0x400
RDATA_RVA, RDATA_RAW = 0x2000, 0x600
RDATA_VSIZE = 0x300
RAW_SIZE = 0x200
CERT_OFFSET = 0x800
IMAGE_SIZE = 0x3000

CODEVIEW_GUID = uuid.UUID("12345678-ABCD-EF01-0203-040506070809")
CODEVIEW_AGE = 7
CODEVIEW_PATH = b"C:\\build\\app.pdb"
CODEVIEW_KEY = "12345678ABCDEF0102030405060708097"


@dataclass
class PEImage:
    """A synthetic image plus the layout facts tests assert against."""

    data: bytes
    section_table_offset: int
    debug_entry_count: int = 0
    certificates: list = field(default_factory=list)

    def mapped(self) -> bytes:
        """Lay the sections out at their RVAs, as the OS loader would."""
        image = bytearray(IMAGE_SIZE)
        image[:TEXT_RAW] = self.data[:TEXT_RAW]
        image[TEXT_RVA:TEXT_RVA + RAW_SIZE] = self.data[TEXT_RAW:TEXT_RAW + RAW_SIZE]
        image[RDATA_RVA:RDATA_RVA + RAW_SIZE] = self.data[RDATA_RAW:RDATA_RAW + RAW_SIZE]
        return bytes(image)


def codeview_record(path: bytes = CODEVIEW_PATH) -> bytes:
    return b"RSDS" + CODEVIEW_GUID.bytes_le + struct.pack("<I", CODEVIEW_AGE) + path + b"\x00"


def debug_entry(type_: int, size: int, rva: int, ptr: int) -> bytes:
    return struct.pack("<IIHHIIII", 0, 0x5F000000, 0, 0, type_, size, rva, ptr)


def certificate_table(certs: list[tuple[int, int, bytes]]) -> bytes:
    """Encode ``(revision, type, payload)`` entries, each padded to 8 bytes."""
    out = bytearray()
    for revision, cert_type, payload in certs:
        out += struct.pack("<IHH", 8 + len(payload), revision, cert_type) + payload
        out += b"\x00" * (-len(out) % 8)
    return bytes(out)


def build_pe(
    *,
    machine: int = AMD64,
    magic: Optional[int] = None,
    number_of_rva_and_sizes: int = 16,
    with_debug: bool = True,
    codeview_size: Optional[int] = None,
    certs: Optional[list[tuple[int, int, bytes]]] = None,
    cert_blob: Optional[bytes] = None,
    cert_dir_size: Optional[int] = None,
    import_dir: tuple[int, int] = (0x2100, 0x28),
) -> PEImage:
    """Assemble a two-section PE image (.text, .rdata)."""
    if magic is None:
        magic = 0x10B if machine == I386 else 0x20B

    if magic == 0x10B:
        std = struct.pack("<HBBIIIIII", magic, 14, 30, RAW_SIZE, RAW_SIZE, 0, TEXT_RVA, TEXT_RVA, RDATA_RVA)
        win = struct.pack(
            "<IIIHHHHHHIIIIHHIIIIII",
            0x400000, 0x1000, 0x200, 6, 0, 0, 0, 6, 0, 0,
            IMAGE_SIZE, TEXT_RAW, 0, 3, 0x8140,
            0x100000, 0x1000, 0x100000, 0x1000, 0, number_of_rva_and_sizes,
        )
    else:
        std = struct.pack("<HBBIIIII", magic, 14, 30, RAW_SIZE, RAW_SIZE, 0, TEXT_RVA, TEXT_RVA)
        win = struct.pack(
            "<QIIHHHHHHIIIIHHQQQQII",
            0x140000000, 0x1000, 0x200, 6, 0, 0, 0, 6, 0, 0,
            IMAGE_SIZE, TEXT_RAW, 0, 3, 0x8160,
            0x100000, 0x1000, 0x100000, 0x1000, 0, number_of_rva_and_sizes,
        )

    if cert_blob is None and certs:
        cert_blob = certificate_table(certs)

    directories = [(0, 0)] * 16
    directories[1] = import_dir
    if with_debug:
        directories[6] = (RDATA_RVA, 2 * 28)
    if cert_blob:
        directories[4] = (CERT_OFFSET, cert_dir_size if cert_dir_size is not None else len(cert_blob))
    data_dirs = b"".join(struct.pack("<II", va, size) for va, size in directories)
    optional = std + win + data_dirs

    file_header = struct.pack("<HHIIIHH", machine, 2, 0x5F000000, 0, 0, len(optional), 0x0022)

    sections = (
        struct.pack("<8sIIIIIIHHI", b".text", RAW_SIZE, TEXT_RVA, RAW_SIZE, TEXT_RAW, 0, 0, 0, 0, 0x60000020)
        + struct.pack("<8sIIIIIIHHI", b".rdata", RDATA_VSIZE, RDATA_RVA, RAW_SIZE, RDATA_RAW, 0, 0, 0, 0, 0x40000040)
    )

    data = bytearray(CERT_OFFSET)
    data[0:2] = b"MZ"
    data[60:64] = struct.pack("<i", E_LFANEW)
    headers = b"PE\x00\x00" + file_header + optional + sections
    data[E_LFANEW:E_LFANEW + len(headers)] = headers
    section_table_offset = E_LFANEW + 4 + 20 + len(optional)

    data[TEXT_RAW:TEXT_RAW + 4] = b"\xC3\xCC\xCC\xCC"

    if with_debug:
        record = codeview_record()
        size = codeview_size if codeview_size is not None else len(record)
        entries = debug_entry(2, size, RDATA_RVA + 0x40, RDATA_RAW + 0x40) + debug_entry(16, 0, 0, 0)
        data[RDATA_RAW:RDATA_RAW + len(entries)] = entries
        data[RDATA_RAW + 0x40:RDATA_RAW + 0x40 + len(record)] = record

    if cert_blob:
        data += cert_blob

    return PEImage(
        data=bytes(data),
        section_table_offset=section_table_offset,
        debug_entry_count=2 if with_debug else 0,
        certificates=list(certs or []),
    )


@pytest.fixture(autouse=True)
def _isolated_config(monkeypatch):
    monkeypatch.delenv("PEINSPECT_CONFIG", raising=False)
    reset_config()
    yield
    reset_config()


@pytest.fixture
def pe64() -> PEImage:
    return build_pe(certs=[(0x0200, 0x0002, b"\x30\x82" + b"\xAB" * 30)])


@pytest.fixture
def write_pe(tmp_path):
    """Write image bytes to a temporary file and return its path."""

    def _write(data: bytes, name: str = "sample.exe") -> Path:
        path = tmp_path / name
        path.write_bytes(data)
        return path

    return _write
