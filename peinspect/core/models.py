"""
peinspect Data Models
======================

Pydantic-based value types for the structures decoded from PE images.
Every model is frozen: once the header loader hands out a record it can be
shared between threads without locking.

Records are decoded field by field from little-endian bytes by the parsers;
the models only describe and validate the resulting values.

References:
    - Microsoft. (2024). PE Format. Microsoft Learn.
      https://learn.microsoft.com/en-us/windows/win32/debug/pe-format
    - Microsoft. (2008). Windows Authenticode Portable Executable Signature
      Format.
"""

from __future__ import annotations

import enum
import uuid
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class CertificateRevision(enum.IntEnum):
    """``WIN_CERTIFICATE.wRevision`` values."""
    REVISION_1_0 = 0x0100
    REVISION_2_0 = 0x0200


class CertificateType(enum.IntEnum):
    """``WIN_CERTIFICATE.wCertificateType`` values."""
    X509 = 0x0001
    PKCS_SIGNED_DATA = 0x0002
    TS_STACK_SIGNED = 0x0004


class DebugType(enum.IntEnum):
    """``IMAGE_DEBUG_DIRECTORY.Type`` values."""
    UNKNOWN = 0
    COFF = 1
    CODEVIEW = 2
    FPO = 3
    MISC = 4
    EXCEPTION = 5
    FIXUP = 6
    OMAP_TO_SRC = 7
    OMAP_FROM_SRC = 8
    BORLAND = 9
    RESERVED10 = 10
    CLSID = 11
    VC_FEATURE = 12
    POGO = 13
    ILTCG = 14
    MPX = 15
    REPRO = 16
    EX_DLLCHARACTERISTICS = 20


class _Record(BaseModel):
    """Common configuration for decoded records."""
    model_config = ConfigDict(frozen=True, ser_json_bytes="base64")


# ---------------------------------------------------------------------------
# File header
# ---------------------------------------------------------------------------

class FileHeader(_Record):
    """The COFF file header that follows the ``PE\\0\\0`` signature.

    Attributes:
        machine: Target machine type (``IMAGE_FILE_MACHINE_*``).
        number_of_sections: Section count as declared (before the 96 cap).
        time_date_stamp: Link time, seconds since the Unix epoch.
        pointer_to_symbol_table: File offset of the COFF symbol table.
        number_of_symbols: Entries in the COFF symbol table.
        size_of_optional_header: Size of the optional header in bytes.
        characteristics: ``IMAGE_FILE_*`` flags.
    """
    machine: int
    number_of_sections: int
    time_date_stamp: int
    pointer_to_symbol_table: int
    number_of_symbols: int
    size_of_optional_header: int
    characteristics: int


# ---------------------------------------------------------------------------
# Optional header
# ---------------------------------------------------------------------------

class DataDirectory(_Record):
    """One ``(VirtualAddress, Size)`` slot of the data directory."""
    virtual_address: int
    size: int

    @property
    def is_present(self) -> bool:
        """``True`` unless the slot's address or size is zero."""
        return self.virtual_address != 0 and self.size != 0


class _OptionalHeaderBase(_Record):
    major_linker_version: int
    minor_linker_version: int
    size_of_code: int
    size_of_initialized_data: int
    size_of_uninitialized_data: int
    address_of_entry_point: int
    base_of_code: int
    image_base: int
    section_alignment: int
    file_alignment: int
    major_operating_system_version: int
    minor_operating_system_version: int
    major_image_version: int
    minor_image_version: int
    major_subsystem_version: int
    minor_subsystem_version: int
    win32_version_value: int
    size_of_image: int
    size_of_headers: int
    checksum: int
    subsystem: int
    dll_characteristics: int
    size_of_stack_reserve: int
    size_of_stack_commit: int
    size_of_heap_reserve: int
    size_of_heap_commit: int
    loader_flags: int
    number_of_rva_and_sizes: int
    data_directories: tuple[DataDirectory, ...] = ()

    def data_directory(self) -> tuple[DataDirectory, ...]:
        """Return the usable slots: at most ``number_of_rva_and_sizes``, at most 16."""
        return self.data_directories[: min(self.number_of_rva_and_sizes, 16)]


class OptionalHeader32(_OptionalHeaderBase):
    """PE32 optional header (``magic == 0x010B``)."""
    magic: Literal[0x010B] = 0x010B
    base_of_data: int = 0

    @property
    def bits(self) -> int:
        return 32


class OptionalHeader64(_OptionalHeaderBase):
    """PE32+ optional header (``magic == 0x020B``)."""
    magic: Literal[0x020B] = 0x020B

    @property
    def bits(self) -> int:
        return 64


OptionalHeader = Annotated[
    Union[OptionalHeader32, OptionalHeader64],
    Field(discriminator="magic"),
]


# ---------------------------------------------------------------------------
# Section table
# ---------------------------------------------------------------------------

class SectionHeader(_Record):
    """A 40-byte ``IMAGE_SECTION_HEADER``.

    Attributes:
        raw_name: The 8 name bytes as stored, NUL padded.
        name: ``raw_name`` up to the first NUL.
        virtual_size: Size of the section once mapped.
        virtual_address: RVA of the first byte once mapped.
        size_of_raw_data: Size of the initialised data on disk.
        pointer_to_raw_data: File offset of the initialised data.
        characteristics: ``IMAGE_SCN_*`` flags.
    """
    raw_name: bytes
    name: str
    virtual_size: int
    virtual_address: int
    size_of_raw_data: int
    pointer_to_raw_data: int
    pointer_to_relocations: int = 0
    pointer_to_linenumbers: int = 0
    number_of_relocations: int = 0
    number_of_linenumbers: int = 0
    characteristics: int = 0

    def contains_rva(self, rva: int) -> bool:
        """Return ``True`` if *rva* falls inside the section's virtual range."""
        return self.virtual_address <= rva < self.virtual_address + self.virtual_size


# ---------------------------------------------------------------------------
# Authenticode
# ---------------------------------------------------------------------------

class AuthenticodeCertificate(_Record):
    """A ``WIN_CERTIFICATE`` entry extracted from the security directory.

    The payload is returned as stored; it is neither parsed nor verified.

    Attributes:
        length: ``dwLength``, header included.
        revision: ``wRevision`` (see :class:`CertificateRevision`).
        certificate_type: ``wCertificateType`` (see :class:`CertificateType`).
        data: ``length - 8`` payload bytes, typically a PKCS#7 SignedData blob.
    """
    length: int
    revision: int
    certificate_type: int
    data: bytes = Field(repr=False)

    @property
    def revision_name(self) -> str:
        try:
            return CertificateRevision(self.revision).name
        except ValueError:
            return f"0x{self.revision:04X}"

    @property
    def type_name(self) -> str:
        try:
            return CertificateType(self.certificate_type).name
        except ValueError:
            return f"0x{self.certificate_type:04X}"


# ---------------------------------------------------------------------------
# Debug directory
# ---------------------------------------------------------------------------

class DebugDirectoryEntry(_Record):
    """A 28-byte ``IMAGE_DEBUG_DIRECTORY`` record.

    ``address_of_raw_data`` is an RVA, usable against a loaded module;
    ``pointer_to_raw_data`` is a file offset, usable against the file.
    """
    characteristics: int
    time_date_stamp: int
    major_version: int
    minor_version: int
    type: int
    size_of_data: int
    address_of_raw_data: int
    pointer_to_raw_data: int

    @property
    def type_name(self) -> str:
        try:
            return DebugType(self.type).name
        except ValueError:
            return str(self.type)


def format_codeview_key(guid: uuid.UUID, age: int) -> str:
    """Format *guid* and *age* the way symbol servers index PDB files.

    ``Data1`` as 8 hex digits, ``Data2`` and ``Data3`` as 4, each ``Data4``
    byte as 2, all uppercase with no separators, then the age in uppercase
    hex without padding.

    >>> format_codeview_key(uuid.UUID("12345678-ABCD-EF01-0203-040506070809"), 7)
    '12345678ABCDEF0102030405060708097'
    """
    data1, data2, data3 = guid.fields[0], guid.fields[1], guid.fields[2]
    return f"{data1:08X}{data2:04X}{data3:04X}{guid.bytes[8:].hex().upper()}{age:X}"


class CodeViewInfo(_Record):
    """CodeView (``RSDS``) record identifying the matching PDB.

    Attributes:
        signature: The 4-byte format signature as a little-endian integer.
        guid: PDB GUID, decoded from its mixed-endian on-disk layout.
        age: PDB age.
        pdb_path: Path of the PDB recorded at link time.
    """
    signature: int
    guid: uuid.UUID
    age: int
    pdb_path: str

    @property
    def guid_fields(self) -> tuple[int, int, int, bytes]:
        """``(Data1, Data2, Data3, Data4)`` as in the Windows ``GUID`` struct."""
        return (
            self.guid.fields[0],
            self.guid.fields[1],
            self.guid.fields[2],
            self.guid.bytes[8:],
        )

    @property
    def is_rsds(self) -> bool:
        return self.signature == CODEVIEW_RSDS_SIGNATURE

    def __str__(self) -> str:
        return format_codeview_key(self.guid, self.age)


CODEVIEW_RSDS_SIGNATURE: int = int.from_bytes(b"RSDS", "little")


# ---------------------------------------------------------------------------
# Dispatcher result and report
# ---------------------------------------------------------------------------

DirectoryResult = Union[
    DataDirectory,
    list[AuthenticodeCertificate],
    list[DebugDirectoryEntry],
]


class CertificateSummary(BaseModel):
    """Presentation view of a certificate without its payload."""
    revision: str
    certificate_type: str
    length: int
    data_size: int


class HeadersReport(BaseModel):
    """Everything the inspection front end shows for one binary.

    Attributes:
        path: Source file path.
        file_header: Decoded COFF file header.
        optional_header: Decoded PE32 or PE32+ optional header.
        sections: Section table in file order.
        debug_entries: Debug directory records, if present.
        codeview: First CodeView record, if present.
        codeview_key: Symbol-server key for ``codeview``.
        certificates: Certificate summaries, if present.
    """
    path: str = ""
    file_header: FileHeader
    optional_header: OptionalHeader
    sections: list[SectionHeader] = Field(default_factory=list)
    debug_entries: list[DebugDirectoryEntry] = Field(default_factory=list)
    codeview: CodeViewInfo | None = None
    codeview_key: str | None = None
    certificates: list[CertificateSummary] = Field(default_factory=list)
