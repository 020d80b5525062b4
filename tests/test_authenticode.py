"""Tests for the certificate table walker."""

from __future__ import annotations

import struct

import pytest

from conftest import AMD64, build_pe, certificate_table
from peinspect.core.errors import BadLengthError, NotPresentError
from peinspect.core.models import CertificateType
from peinspect.parsers.authenticode import align_up
from peinspect.parsers.pe_parser import IMAGE_DIRECTORY_ENTRY_SECURITY, PEHeaders


def _certs(write_pe, **kwargs):
    image = build_pe(**kwargs)
    with PEHeaders.from_file_name(write_pe(image.data), AMD64) as pe:
        return pe.entry(IMAGE_DIRECTORY_ENTRY_SECURITY)


def test_align_up():
    assert align_up(0, 8) == 0
    assert align_up(1, 8) == 8
    assert align_up(8, 8) == 8
    assert align_up(13, 8) == 16


def test_single_certificate(pe64, write_pe):
    with PEHeaders.from_file_name(write_pe(pe64.data), AMD64) as pe:
        certs = pe.entry(IMAGE_DIRECTORY_ENTRY_SECURITY)
    assert len(certs) == 1
    cert = certs[0]
    assert cert.length == 40
    assert cert.revision == 0x0200
    assert cert.certificate_type == CertificateType.PKCS_SIGNED_DATA
    assert cert.type_name == "PKCS_SIGNED_DATA"
    assert cert.revision_name == "REVISION_2_0"
    assert cert.data == b"\x30\x82" + b"\xAB" * 30


def test_entries_keep_order_and_skip_padding(write_pe):
    entries = [
        (0x0200, 0x0002, b"first"),
        (0x0100, 0x0001, b"second-entry"),
        (0x0200, 0x0004, b"x" * 16),
    ]
    certs = _certs(write_pe, certs=entries)
    assert [(c.revision, c.certificate_type, c.data) for c in certs] == entries
    assert [c.length for c in certs] == [13, 20, 24]


def test_empty_payload(write_pe):
    certs = _certs(write_pe, certs=[(0x0200, 0x0002, b"")])
    assert certs[0].length == 8
    assert certs[0].data == b""


def test_unknown_type_name(write_pe):
    certs = _certs(write_pe, certs=[(0x0300, 0x0009, b"abc")])
    assert certs[0].type_name == "0x0009"
    assert certs[0].revision_name == "0x0300"


def test_absent_table(write_pe):
    image = build_pe()
    with PEHeaders.from_file_name(write_pe(image.data), AMD64) as pe:
        with pytest.raises(NotPresentError):
            pe.entry(IMAGE_DIRECTORY_ENTRY_SECURITY)


def test_length_shorter_than_header(write_pe):
    blob = struct.pack("<IHH", 4, 0x0200, 0x0002) + b"\x00" * 8
    with pytest.raises(BadLengthError):
        _certs(write_pe, cert_blob=blob)


def test_payload_runs_past_directory(write_pe):
    blob = struct.pack("<IHH", 64, 0x0200, 0x0002) + b"\x00" * 16
    with pytest.raises(BadLengthError, match="want 56, got 16"):
        _certs(write_pe, cert_blob=blob)


def test_truncated_header(write_pe):
    blob = certificate_table([(0x0200, 0x0002, b"abcdefgh")]) + b"\x10\x00\x00\x00"
    with pytest.raises(BadLengthError, match="header"):
        _certs(write_pe, cert_blob=blob)


def test_directory_size_bounds_walk(write_pe):
    blob = certificate_table([(0x0200, 0x0002, b"A" * 8), (0x0200, 0x0002, b"B" * 8)])
    certs = _certs(write_pe, cert_blob=blob, cert_dir_size=16)
    assert len(certs) == 1
    assert certs[0].data == b"A" * 8
