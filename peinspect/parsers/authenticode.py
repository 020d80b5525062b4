"""
Authenticode Certificate Table
===============================

Walks the ``WIN_CERTIFICATE`` entries of the security data directory.

Unlike every other directory, the security directory's ``VirtualAddress``
is a *file offset*: the certificate table is appended to the file and is
never mapped by the loader.  It can therefore only be read from a file
address space.

Each entry is an 8-byte header (``dwLength``, ``wRevision``,
``wCertificateType``) followed by ``dwLength - 8`` payload bytes; the next
entry begins at the following 8-byte boundary.
"""

from __future__ import annotations

import io
import struct
from typing import TYPE_CHECKING

from peinspect.core.errors import BadLengthError, UnavailableInModuleError
from peinspect.core.models import AuthenticodeCertificate, DataDirectory

if TYPE_CHECKING:
    from peinspect.parsers.pe_parser import PEHeaders


_CERT_HEADER_FMT = "<IHH"
CERT_HEADER_SIZE = struct.calcsize(_CERT_HEADER_FMT)   # 8
CERT_ALIGNMENT = 8


def align_up(value: int, alignment: int) -> int:
    """Round *value* up to a multiple of *alignment* (a power of two)."""
    return (value + alignment - 1) & ~(alignment - 1)


def extract_authenticode(
    headers: PEHeaders, directory: DataDirectory
) -> list[AuthenticodeCertificate]:
    """Return the certificates stored in the security *directory*.

    Args:
        headers: Header bundle of a file-backed image.
        directory: The security data directory slot.

    Returns:
        Certificates in table order; payloads are copied verbatim.

    Raises:
        UnavailableInModuleError: *headers* describes a loaded module.
        BadLengthError: An entry header or payload runs past the end of the
            table, or an entry declares a length shorter than its header.
    """
    if not headers.is_file:
        raise UnavailableInModuleError("the certificate table exists only in the file")

    log = headers.logger
    reader = headers.address_space.sub_reader(directory.virtual_address, directory.size)
    certificates: list[AuthenticodeCertificate] = []

    with log.operation("extract_authenticode"):
        while reader.remaining > 0:
            start = reader.tell()
            raw = reader.read(CERT_HEADER_SIZE)
            if len(raw) < CERT_HEADER_SIZE:
                raise BadLengthError(
                    f"certificate header at +0x{start:X} truncated: "
                    f"want {CERT_HEADER_SIZE}, got {len(raw)}"
                )

            length, revision, cert_type = struct.unpack(_CERT_HEADER_FMT, raw)
            if length < CERT_HEADER_SIZE:
                raise BadLengthError(
                    f"certificate at +0x{start:X} declares length {length}, "
                    f"shorter than its {CERT_HEADER_SIZE}-byte header"
                )

            want = length - CERT_HEADER_SIZE
            data = reader.read(want)
            if len(data) != want:
                raise BadLengthError(
                    f"certificate payload at +0x{start:X} truncated: "
                    f"want {want}, got {len(data)}"
                )

            certificates.append(
                AuthenticodeCertificate(
                    length=length,
                    revision=revision,
                    certificate_type=cert_type,
                    data=data,
                )
            )
            log.debug(
                "certificate %d: length=%d revision=0x%04X type=0x%04X",
                len(certificates), length, revision, cert_type,
            )
            reader.seek(align_up(reader.tell(), CERT_ALIGNMENT), io.SEEK_SET)

    return certificates
