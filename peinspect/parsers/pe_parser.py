"""
PE/COFF Header Parser
======================

Struct-based parser for the headers of Portable Executable (PE) images,
the format Microsoft Windows uses for executables (.exe) and dynamic link
libraries (.dll).

The same code serves two inputs:

    - a PE file on disk (:class:`~peinspect.parsers.address_space.FileAddressSpace`);
    - a module already mapped into the current process
      (:class:`~peinspect.parsers.address_space.ModuleAddressSpace`).

The parser extracts:
    - DOS header (MZ stub) and the ``e_lfanew`` pointer
    - PE signature verification
    - COFF file header (machine, section count, timestamp, characteristics)
    - Optional header, PE32 or PE32+ as selected by the observed magic
    - Section table (at most 96 entries)
    - Data directory slots, with specialised decoding of the security
      (Authenticode) and debug (CodeView) directories

Parsing is fail-fast: any structural violation raises a
:class:`~peinspect.core.errors.StructuralError` and no partial result is
returned.

References:
    - Microsoft. (2024). PE Format. Microsoft Learn.
      https://learn.microsoft.com/en-us/windows/win32/debug/pe-format
    - Pietrek, M. (1994). Peering Inside the PE: A Tour of the Win32
      Portable Executable File Format. Microsoft Systems Journal.
"""

from __future__ import annotations

import ctypes
import platform
import struct
import sys
from pathlib import Path
from typing import BinaryIO, Optional, Union

from shared.config import get_config
from shared.logger import InspectLogger

from peinspect.core.errors import (
    IndexOutOfRangeError,
    InvalidBinaryError,
    NotPresentError,
    OutOfRangeError,
    UnavailableInModuleError,
    UnsupportedMachineError,
)
from peinspect.core.models import (
    CodeViewInfo,
    DataDirectory,
    DebugDirectoryEntry,
    DebugType,
    DirectoryResult,
    FileHeader,
    OptionalHeader32,
    OptionalHeader64,
    SectionHeader,
)
from peinspect.parsers.address_space import (
    AddressSpace,
    FileAddressSpace,
    ModuleAddressSpace,
)
from peinspect.parsers.authenticode import extract_authenticode
from peinspect.parsers.debug_info import extract_codeview as _extract_codeview
from peinspect.parsers.debug_info import extract_debug_directory


# ---------------------------------------------------------------------------
# PE Constants
# ---------------------------------------------------------------------------

# Magic numbers
MZ_MAGIC: bytes = b"MZ"
PE_MAGIC: bytes = b"PE\x00\x00"

# Optional header magic
PE32_MAGIC: int = 0x10B      # PE32 (32-bit)
PE32PLUS_MAGIC: int = 0x20B  # PE32+ (64-bit)

# DOS header layout
OFFSET_E_LFANEW: int = 60
SIZE_DOS_HEADER: int = 64

# Format-mandated cap on the section table
MAX_NUM_SECTIONS: int = 96

# Machine types
IMAGE_FILE_MACHINE_UNKNOWN: int = 0x0
IMAGE_FILE_MACHINE_I386: int = 0x14C
IMAGE_FILE_MACHINE_ARM: int = 0x1C0
IMAGE_FILE_MACHINE_ARMNT: int = 0x1C4
IMAGE_FILE_MACHINE_IA64: int = 0x200
IMAGE_FILE_MACHINE_AMD64: int = 0x8664
IMAGE_FILE_MACHINE_ARM64: int = 0xAA64
IMAGE_FILE_MACHINE_RISCV32: int = 0x5032
IMAGE_FILE_MACHINE_RISCV64: int = 0x5064

MACHINE_NAMES: dict[int, str] = {
    IMAGE_FILE_MACHINE_UNKNOWN: "Unknown",
    IMAGE_FILE_MACHINE_I386: "x86",
    IMAGE_FILE_MACHINE_ARM: "ARM",
    IMAGE_FILE_MACHINE_ARMNT: "ARM Thumb-2",
    IMAGE_FILE_MACHINE_IA64: "IA-64",
    IMAGE_FILE_MACHINE_AMD64: "x86_64",
    IMAGE_FILE_MACHINE_ARM64: "AArch64",
    IMAGE_FILE_MACHINE_RISCV32: "RISC-V 32",
    IMAGE_FILE_MACHINE_RISCV64: "RISC-V 64",
}

# Optional header magic implied by each machine
_MACHINE_MAGIC: dict[int, int] = {
    IMAGE_FILE_MACHINE_I386: PE32_MAGIC,
    IMAGE_FILE_MACHINE_ARM: PE32_MAGIC,
    IMAGE_FILE_MACHINE_ARMNT: PE32_MAGIC,
    IMAGE_FILE_MACHINE_RISCV32: PE32_MAGIC,
    IMAGE_FILE_MACHINE_IA64: PE32PLUS_MAGIC,
    IMAGE_FILE_MACHINE_AMD64: PE32PLUS_MAGIC,
    IMAGE_FILE_MACHINE_ARM64: PE32PLUS_MAGIC,
    IMAGE_FILE_MACHINE_RISCV64: PE32PLUS_MAGIC,
}

# Accepted spellings for configuration and the command line
_MACHINE_ALIASES: dict[str, int] = {
    "i386": IMAGE_FILE_MACHINE_I386,
    "x86": IMAGE_FILE_MACHINE_I386,
    "i686": IMAGE_FILE_MACHINE_I386,
    "amd64": IMAGE_FILE_MACHINE_AMD64,
    "x86_64": IMAGE_FILE_MACHINE_AMD64,
    "x64": IMAGE_FILE_MACHINE_AMD64,
    "arm64": IMAGE_FILE_MACHINE_ARM64,
    "aarch64": IMAGE_FILE_MACHINE_ARM64,
    "armnt": IMAGE_FILE_MACHINE_ARMNT,
    "arm": IMAGE_FILE_MACHINE_ARMNT,
    "ia64": IMAGE_FILE_MACHINE_IA64,
    "riscv32": IMAGE_FILE_MACHINE_RISCV32,
    "riscv64": IMAGE_FILE_MACHINE_RISCV64,
}

# Characteristics flags (COFF header)
IMAGE_FILE_RELOCS_STRIPPED: int = 0x0001
IMAGE_FILE_EXECUTABLE_IMAGE: int = 0x0002
IMAGE_FILE_LARGE_ADDRESS_AWARE: int = 0x0020
IMAGE_FILE_32BIT_MACHINE: int = 0x0100
IMAGE_FILE_DEBUG_STRIPPED: int = 0x0200
IMAGE_FILE_SYSTEM: int = 0x1000
IMAGE_FILE_DLL: int = 0x2000

# Section characteristics
IMAGE_SCN_CNT_CODE: int = 0x00000020
IMAGE_SCN_CNT_INITIALIZED_DATA: int = 0x00000040
IMAGE_SCN_CNT_UNINITIALIZED_DATA: int = 0x00000080
IMAGE_SCN_MEM_DISCARDABLE: int = 0x02000000
IMAGE_SCN_MEM_SHARED: int = 0x10000000
IMAGE_SCN_MEM_EXECUTE: int = 0x20000000
IMAGE_SCN_MEM_READ: int = 0x40000000
IMAGE_SCN_MEM_WRITE: int = 0x80000000

# Data directory indices
IMAGE_DIRECTORY_ENTRY_EXPORT: int = 0
IMAGE_DIRECTORY_ENTRY_IMPORT: int = 1
IMAGE_DIRECTORY_ENTRY_RESOURCE: int = 2
IMAGE_DIRECTORY_ENTRY_EXCEPTION: int = 3
IMAGE_DIRECTORY_ENTRY_SECURITY: int = 4
IMAGE_DIRECTORY_ENTRY_BASERELOC: int = 5
IMAGE_DIRECTORY_ENTRY_DEBUG: int = 6
IMAGE_DIRECTORY_ENTRY_ARCHITECTURE: int = 7
IMAGE_DIRECTORY_ENTRY_GLOBALPTR: int = 8
IMAGE_DIRECTORY_ENTRY_TLS: int = 9
IMAGE_DIRECTORY_ENTRY_LOAD_CONFIG: int = 10
IMAGE_DIRECTORY_ENTRY_BOUND_IMPORT: int = 11
IMAGE_DIRECTORY_ENTRY_IAT: int = 12
IMAGE_DIRECTORY_ENTRY_DELAY_IMPORT: int = 13
IMAGE_DIRECTORY_ENTRY_COM_DESCRIPTOR: int = 14

DIRECTORY_NAMES: dict[int, str] = {
    IMAGE_DIRECTORY_ENTRY_EXPORT: "Export",
    IMAGE_DIRECTORY_ENTRY_IMPORT: "Import",
    IMAGE_DIRECTORY_ENTRY_RESOURCE: "Resource",
    IMAGE_DIRECTORY_ENTRY_EXCEPTION: "Exception",
    IMAGE_DIRECTORY_ENTRY_SECURITY: "Security",
    IMAGE_DIRECTORY_ENTRY_BASERELOC: "Base Relocation",
    IMAGE_DIRECTORY_ENTRY_DEBUG: "Debug",
    IMAGE_DIRECTORY_ENTRY_ARCHITECTURE: "Architecture",
    IMAGE_DIRECTORY_ENTRY_GLOBALPTR: "Global Pointer",
    IMAGE_DIRECTORY_ENTRY_TLS: "TLS",
    IMAGE_DIRECTORY_ENTRY_LOAD_CONFIG: "Load Config",
    IMAGE_DIRECTORY_ENTRY_BOUND_IMPORT: "Bound Import",
    IMAGE_DIRECTORY_ENTRY_IAT: "IAT",
    IMAGE_DIRECTORY_ENTRY_DELAY_IMPORT: "Delay Import",
    IMAGE_DIRECTORY_ENTRY_COM_DESCRIPTOR: "COM Descriptor",
}

# Fixed record layouts
_FILE_HEADER_FMT = "<HHIIIHH"
_FILE_HEADER_SIZE = struct.calcsize(_FILE_HEADER_FMT)             # 20
_OPT32_STD_FMT = "<HBBIIIIII"                                     # 28
_OPT32_WIN_FMT = "<IIIHHHHHHIIIIHHIIIIII"                         # 68
_OPT64_STD_FMT = "<HBBIIIII"                                      # 24
_OPT64_WIN_FMT = "<QIIHHHHHHIIIIHHQQQQII"                         # 88
_DATA_DIRECTORY_FMT = "<II"
_DATA_DIRECTORY_SIZE = struct.calcsize(_DATA_DIRECTORY_FMT)       # 8
_MAX_DATA_DIRECTORIES = 16
_SECTION_FMT = "<8sIIIIIIHHI"
SECTION_HEADER_SIZE = struct.calcsize(_SECTION_FMT)               # 40

_log = InspectLogger("parser", console_output=False)


# ---------------------------------------------------------------------------
# Machine selection
# ---------------------------------------------------------------------------

def resolve_machine(value: Union[str, int]) -> int:
    """Turn a machine name (``"amd64"``) or number (``0x8664``, ``"0x8664"``) into a code."""
    if isinstance(value, int):
        return value
    key = value.strip().lower()
    if key in _MACHINE_ALIASES:
        return _MACHINE_ALIASES[key]
    try:
        return int(key, 0)
    except ValueError:
        raise ValueError(f"unknown machine type: {value!r}") from None


def host_machine() -> int:
    """Return the machine type matching the running interpreter.

    A 32-bit interpreter on an x64 host parses x86 images, exactly as a
    32-bit process on that host would.
    """
    arch = platform.machine().lower()
    pointer_bits = struct.calcsize("P") * 8
    if arch in ("amd64", "x86_64", "x64", "i386", "i686", "x86"):
        return IMAGE_FILE_MACHINE_AMD64 if pointer_bits == 64 else IMAGE_FILE_MACHINE_I386
    if arch in ("arm64", "aarch64", "armv8l"):
        return IMAGE_FILE_MACHINE_ARM64 if pointer_bits == 64 else IMAGE_FILE_MACHINE_ARMNT
    if arch.startswith("arm"):
        return IMAGE_FILE_MACHINE_ARMNT
    return _MACHINE_ALIASES.get(arch, IMAGE_FILE_MACHINE_UNKNOWN)


def _expected_machine(machine: Optional[Union[str, int]]) -> int:
    if machine is None:
        machine = get_config().peinspect.target_machine
    if machine is None:
        return host_machine()
    return resolve_machine(machine)


# ---------------------------------------------------------------------------
# Header decoding
# ---------------------------------------------------------------------------

def _read_header(space: AddressSpace, offset: int, length: int) -> bytes:
    """Read header bytes, reporting truncation as a malformed binary."""
    try:
        return space.read_at(offset, length)
    except OutOfRangeError as exc:
        raise InvalidBinaryError(
            f"truncated header: {length} bytes at offset 0x{offset:X}"
        ) from exc


def _decode_file_header(raw: bytes) -> FileHeader:
    (
        machine,
        number_of_sections,
        time_date_stamp,
        pointer_to_symbol_table,
        number_of_symbols,
        size_of_optional_header,
        characteristics,
    ) = struct.unpack(_FILE_HEADER_FMT, raw)
    return FileHeader(
        machine=machine,
        number_of_sections=number_of_sections,
        time_date_stamp=time_date_stamp,
        pointer_to_symbol_table=pointer_to_symbol_table,
        number_of_symbols=number_of_symbols,
        size_of_optional_header=size_of_optional_header,
        characteristics=characteristics,
    )


_WINDOWS_FIELDS = (
    "image_base", "section_alignment", "file_alignment",
    "major_operating_system_version", "minor_operating_system_version",
    "major_image_version", "minor_image_version",
    "major_subsystem_version", "minor_subsystem_version",
    "win32_version_value", "size_of_image", "size_of_headers",
    "checksum", "subsystem", "dll_characteristics",
    "size_of_stack_reserve", "size_of_stack_commit",
    "size_of_heap_reserve", "size_of_heap_commit",
    "loader_flags", "number_of_rva_and_sizes",
)

_STANDARD_FIELDS = (
    "magic", "major_linker_version", "minor_linker_version",
    "size_of_code", "size_of_initialized_data",
    "size_of_uninitialized_data", "address_of_entry_point",
    "base_of_code",
)


def _decode_optional_header(
    space: AddressSpace, offset: int
) -> Union[OptionalHeader32, OptionalHeader64]:
    """Decode the optional header at *offset*, choosing the layout by magic."""
    (magic,) = struct.unpack("<H", _read_header(space, offset, 2))

    if magic == PE32_MAGIC:
        std_fmt, win_fmt, model = _OPT32_STD_FMT, _OPT32_WIN_FMT, OptionalHeader32
        std_names = _STANDARD_FIELDS + ("base_of_data",)
    elif magic == PE32PLUS_MAGIC:
        std_fmt, win_fmt, model = _OPT64_STD_FMT, _OPT64_WIN_FMT, OptionalHeader64
        std_names = _STANDARD_FIELDS
    else:
        raise InvalidBinaryError(f"unknown optional header magic 0x{magic:04X}")

    std_size = struct.calcsize(std_fmt)
    win_size = struct.calcsize(win_fmt)
    raw = _read_header(space, offset, std_size + win_size)
    fields = dict(zip(std_names, struct.unpack_from(std_fmt, raw, 0)))
    fields.update(zip(_WINDOWS_FIELDS, struct.unpack_from(win_fmt, raw, std_size)))

    # Only the declared slots are read; padding after them is not ours to trust.
    count = min(fields["number_of_rva_and_sizes"], _MAX_DATA_DIRECTORIES)
    dd_offset = offset + std_size + win_size
    dd_raw = _read_header(space, dd_offset, count * _DATA_DIRECTORY_SIZE)
    fields["data_directories"] = tuple(
        DataDirectory(virtual_address=va, size=size)
        for va, size in struct.iter_unpack(_DATA_DIRECTORY_FMT, dd_raw)
    )
    return model(**fields)


def _decode_section(raw: bytes) -> SectionHeader:
    (
        raw_name,
        virtual_size,
        virtual_address,
        size_of_raw_data,
        pointer_to_raw_data,
        pointer_to_relocations,
        pointer_to_linenumbers,
        number_of_relocations,
        number_of_linenumbers,
        characteristics,
    ) = struct.unpack(_SECTION_FMT, raw)
    return SectionHeader(
        raw_name=raw_name,
        name=raw_name.split(b"\x00", 1)[0].decode("ascii", errors="replace"),
        virtual_size=virtual_size,
        virtual_address=virtual_address,
        size_of_raw_data=size_of_raw_data,
        pointer_to_raw_data=pointer_to_raw_data,
        pointer_to_relocations=pointer_to_relocations,
        pointer_to_linenumbers=pointer_to_linenumbers,
        number_of_relocations=number_of_relocations,
        number_of_linenumbers=number_of_linenumbers,
        characteristics=characteristics,
    )


def load_headers(
    space: AddressSpace,
    machine: Optional[Union[str, int]] = None,
    *,
    logger: Optional[InspectLogger] = None,
) -> PEHeaders:
    """Validate and decode the headers of the image in *space*.

    Args:
        space: File- or module-backed address space.  On success the
            returned :class:`PEHeaders` owns it; on failure it is left open
            for the caller to dispose of.
        machine: Machine type to accept.  Defaults to the configured
            ``target_machine``, else the host architecture.
        logger: Logger for diagnostic output.

    Returns:
        The decoded header bundle.

    Raises:
        InvalidBinaryError: Bad signature or magic, or truncated headers.
        UnsupportedMachineError: The image targets a different machine.
        OSError: The backing file could not be read.
    """
    log = logger or _log
    expected = _expected_machine(machine)

    with log.operation("load_headers"):
        if _read_header(space, 0, len(MZ_MAGIC)) != MZ_MAGIC:
            raise InvalidBinaryError("missing MZ signature")

        (e_lfanew,) = struct.unpack("<i", _read_header(space, OFFSET_E_LFANEW, 4))
        if e_lfanew <= 0 or space.base() + e_lfanew >= space.limit():
            raise InvalidBinaryError(f"bad e_lfanew 0x{e_lfanew & 0xFFFFFFFF:X}")
        log.debug("e_lfanew=0x%X limit=0x%X", e_lfanew, space.limit())

        if _read_header(space, e_lfanew, len(PE_MAGIC)) != PE_MAGIC:
            raise InvalidBinaryError("missing PE signature")

        file_header_offset = e_lfanew + len(PE_MAGIC)
        file_header = _decode_file_header(
            _read_header(space, file_header_offset, _FILE_HEADER_SIZE)
        )
        if file_header.machine != expected:
            raise UnsupportedMachineError(file_header.machine, expected)

        optional_header_offset = file_header_offset + _FILE_HEADER_SIZE
        optional_header = _decode_optional_header(space, optional_header_offset)
        expected_magic = _MACHINE_MAGIC.get(expected)
        if expected_magic is not None and optional_header.magic != expected_magic:
            raise InvalidBinaryError(
                f"optional header magic 0x{optional_header.magic:04X} does not "
                f"match machine 0x{expected:04X}"
            )

        num_sections = min(file_header.number_of_sections, MAX_NUM_SECTIONS)
        section_table_offset = optional_header_offset + file_header.size_of_optional_header
        table = _read_header(space, section_table_offset, num_sections * SECTION_HEADER_SIZE)
        sections = tuple(
            _decode_section(table[i:i + SECTION_HEADER_SIZE])
            for i in range(0, len(table), SECTION_HEADER_SIZE)
        )
        log.debug(
            "decoded %d of %d sections, %d data directories",
            len(sections),
            file_header.number_of_sections,
            len(optional_header.data_directories),
        )

    return PEHeaders(space, file_header, optional_header, sections, logger=log)


# ---------------------------------------------------------------------------
# Header bundle
# ---------------------------------------------------------------------------

class PEHeaders:
    """Decoded headers of one PE image plus the address space they came from.

    Instances are produced by :func:`load_headers` or the ``from_*``
    constructors and are immutable.  They own the address space: call
    :meth:`close` (or use a ``with`` block) to release a file handle.

    Usage::

        with PEHeaders.from_file_name("kernel32.dll") as pe:
            for section in pe.sections:
                print(section.name, hex(section.virtual_address))
            for entry in pe.entry(IMAGE_DIRECTORY_ENTRY_DEBUG):
                if entry.type == DebugType.CODEVIEW:
                    print(pe.extract_codeview(entry))
    """

    def __init__(
        self,
        space: AddressSpace,
        file_header: FileHeader,
        optional_header: Union[OptionalHeader32, OptionalHeader64],
        sections: tuple[SectionHeader, ...],
        *,
        logger: Optional[InspectLogger] = None,
    ) -> None:
        self._space = space
        self._file_header = file_header
        self._optional_header = optional_header
        self._sections = sections
        self._log = logger or _log

    # ------------------------------------------------------------------ #
    #  Constructors
    # ------------------------------------------------------------------ #

    @classmethod
    def from_space(
        cls,
        space: AddressSpace,
        machine: Optional[Union[str, int]] = None,
        *,
        logger: Optional[InspectLogger] = None,
    ) -> PEHeaders:
        """Parse *space*, closing it if parsing fails."""
        try:
            return load_headers(space, machine, logger=logger)
        except BaseException:
            space.close()
            raise

    @classmethod
    def from_file_name(
        cls,
        path: Union[str, Path],
        machine: Optional[Union[str, int]] = None,
        *,
        logger: Optional[InspectLogger] = None,
    ) -> PEHeaders:
        """Open and parse the PE file at *path*."""
        return cls.from_space(FileAddressSpace.from_path(path), machine, logger=logger)

    @classmethod
    def from_file_handle(
        cls,
        handle: Union[int, BinaryIO],
        machine: Optional[Union[str, int]] = None,
        *,
        logger: Optional[InspectLogger] = None,
    ) -> PEHeaders:
        """Parse an already-open file.  *handle* is duplicated, not consumed."""
        return cls.from_space(FileAddressSpace.from_handle(handle), machine, logger=logger)

    @classmethod
    def from_base_address_and_size(
        cls,
        base: int,
        size: int,
        machine: Optional[Union[str, int]] = None,
        *,
        buffer: Optional[bytes] = None,
        logger: Optional[InspectLogger] = None,
    ) -> PEHeaders:
        """Parse a module mapped at *base* spanning *size* bytes.

        The module must stay mapped while the returned object is in use.
        """
        space = ModuleAddressSpace(base, size, buffer=buffer)
        return cls.from_space(space, machine, logger=logger)

    @classmethod
    def from_base_address(
        cls,
        base: int,
        machine: Optional[Union[str, int]] = None,
        *,
        logger: Optional[InspectLogger] = None,
    ) -> PEHeaders:
        """Parse a module of the current process, querying its size from Windows."""
        size = _module_image_size(base)
        return cls.from_base_address_and_size(base, size, machine, logger=logger)

    @classmethod
    def from_hmodule(
        cls,
        hmodule: int,
        machine: Optional[Union[str, int]] = None,
        *,
        logger: Optional[InspectLogger] = None,
    ) -> PEHeaders:
        """Parse the module identified by *hmodule*, ignoring its low flag bits."""
        return cls.from_base_address(hmodule & ~3, machine, logger=logger)

    # ------------------------------------------------------------------ #
    #  Accessors
    # ------------------------------------------------------------------ #

    @property
    def address_space(self) -> AddressSpace:
        return self._space

    @property
    def is_file(self) -> bool:
        return isinstance(self._space, FileAddressSpace)

    @property
    def file_header(self) -> FileHeader:
        return self._file_header

    @property
    def optional_header(self) -> Union[OptionalHeader32, OptionalHeader64]:
        return self._optional_header

    @property
    def sections(self) -> tuple[SectionHeader, ...]:
        return self._sections

    @property
    def logger(self) -> InspectLogger:
        return self._log

    def data_directory(self) -> tuple[DataDirectory, ...]:
        return self._optional_header.data_directory()

    def section_by_name(self, name: str) -> Optional[SectionHeader]:
        for section in self._sections:
            if section.name == name:
                return section
        return None

    # ------------------------------------------------------------------ #
    #  Address resolution
    # ------------------------------------------------------------------ #

    def resolve_rva(self, rva: int) -> Optional[int]:
        """Translate *rva* into an offset usable with the address space.

        Modules are returned unchanged: the loader already placed every
        section at its RVA.  For files the first section (in table order)
        whose virtual range holds *rva* decides; an offset past that
        section's raw data, or an RVA no section covers, yields ``None``.
        """
        space = self._space
        if isinstance(space, ModuleAddressSpace):
            return rva
        if isinstance(space, FileAddressSpace):
            for section in self._sections:
                if not section.contains_rva(rva):
                    continue
                offset = section.pointer_to_raw_data + (rva - section.virtual_address)
                if offset >= section.pointer_to_raw_data + section.size_of_raw_data:
                    return None
                return offset
            return None
        raise TypeError(f"unsupported address space {type(space).__name__}")

    # ------------------------------------------------------------------ #
    #  Data directory dispatch
    # ------------------------------------------------------------------ #

    def entry(self, index: int) -> DirectoryResult:
        """Return the decoded contents of data directory slot *index*.

        Returns:
            ``list[AuthenticodeCertificate]`` for the security slot,
            ``list[DebugDirectoryEntry]`` for the debug slot, and the raw
            :class:`DataDirectory` for every other slot.

        Raises:
            IndexOutOfRangeError: *index* is beyond the declared slots.
            NotPresentError: The slot's address or size is zero.
            UnavailableInModuleError: Security slot requested from a module.
        """
        directories = self.data_directory()
        if index < 0 or index >= len(directories):
            raise IndexOutOfRangeError(
                f"data directory index {index} out of range (0..{len(directories) - 1})"
            )

        slot = directories[index]
        if not slot.is_present:
            raise NotPresentError(
                f"data directory {DIRECTORY_NAMES.get(index, index)} not present"
            )

        self._log.debug(
            "dispatching directory %d va=0x%X size=0x%X",
            index, slot.virtual_address, slot.size,
        )
        if index == IMAGE_DIRECTORY_ENTRY_SECURITY:
            if not self.is_file:
                raise UnavailableInModuleError(
                    "the certificate table is not mapped by the loader; "
                    "examine the PE file itself"
                )
            return extract_authenticode(self, slot)
        if index == IMAGE_DIRECTORY_ENTRY_DEBUG:
            return extract_debug_directory(self, slot)
        return slot

    def extract_codeview(self, entry: DebugDirectoryEntry) -> CodeViewInfo:
        """Decode the CodeView record *entry* points at."""
        return _extract_codeview(self, entry)

    def codeview(self) -> CodeViewInfo:
        """Return the first CodeView record of the debug directory.

        Raises:
            NotPresentError: No debug directory, or no CodeView entry in it.
        """
        for entry in self.entry(IMAGE_DIRECTORY_ENTRY_DEBUG):
            if entry.type == DebugType.CODEVIEW:
                return self.extract_codeview(entry)
        raise NotPresentError("no CodeView entry in the debug directory")

    # ------------------------------------------------------------------ #
    #  Lifetime
    # ------------------------------------------------------------------ #

    def close(self) -> None:
        """Release the backing file; a no-op for modules.  Idempotent."""
        self._space.close()

    def __enter__(self) -> PEHeaders:
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def __repr__(self) -> str:
        return (
            f"PEHeaders(space={self._space!r}, "
            f"machine=0x{self._file_header.machine:04X}, "
            f"sections={len(self._sections)})"
        )


# ---------------------------------------------------------------------------
# Windows module queries
# ---------------------------------------------------------------------------

class _MODULEINFO(ctypes.Structure):
    _fields_ = [
        ("lpBaseOfDll", ctypes.c_void_p),
        ("SizeOfImage", ctypes.c_uint32),
        ("EntryPoint", ctypes.c_void_p),
    ]


def _module_image_size(base: int) -> int:
    """Ask Windows for the ``SizeOfImage`` of the module loaded at *base*."""
    if sys.platform != "win32":
        raise NotImplementedError("module queries require Windows")

    kernel32 = ctypes.WinDLL("kernel32", use_last_error=True)
    psapi = ctypes.WinDLL("psapi", use_last_error=True)
    kernel32.GetCurrentProcess.restype = ctypes.c_void_p
    psapi.GetModuleInformation.argtypes = [
        ctypes.c_void_p,
        ctypes.c_void_p,
        ctypes.POINTER(_MODULEINFO),
        ctypes.c_uint32,
    ]
    psapi.GetModuleInformation.restype = ctypes.c_int

    info = _MODULEINFO()
    ok = psapi.GetModuleInformation(
        kernel32.GetCurrentProcess(),
        ctypes.c_void_p(base),
        ctypes.byref(info),
        ctypes.sizeof(info),
    )
    if not ok:
        raise ctypes.WinError(ctypes.get_last_error())
    return info.SizeOfImage


def section_characteristics_str(characteristics: int) -> str:
    """Convert section characteristics bitmask to a readable string.

    Args:
        characteristics: Section characteristics flags.

    Returns:
        Flags string like ``"R X CODE"``, or ``"-"`` when no flag is set.
    """
    parts: list[str] = []
    if characteristics & IMAGE_SCN_MEM_READ:
        parts.append("R")
    if characteristics & IMAGE_SCN_MEM_WRITE:
        parts.append("W")
    if characteristics & IMAGE_SCN_MEM_EXECUTE:
        parts.append("X")
    if characteristics & IMAGE_SCN_CNT_CODE:
        parts.append("CODE")
    if characteristics & IMAGE_SCN_CNT_INITIALIZED_DATA:
        parts.append("IDATA")
    if characteristics & IMAGE_SCN_CNT_UNINITIALIZED_DATA:
        parts.append("UDATA")
    if characteristics & IMAGE_SCN_MEM_SHARED:
        parts.append("SHARED")
    if characteristics & IMAGE_SCN_MEM_DISCARDABLE:
        parts.append("DISCARD")
    return " ".join(parts) if parts else "-"
