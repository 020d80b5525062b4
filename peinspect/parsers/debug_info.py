"""
Debug Directory and CodeView Records
=====================================

Decodes the array of ``IMAGE_DEBUG_DIRECTORY`` records behind data
directory slot 6, and the CodeView ``RSDS`` record a CodeView entry points
at.  The CodeView record carries the GUID, age and path a debugger or
symbol server uses to locate the matching PDB.

CodeView layout::

    +0   signature   4 bytes  ("RSDS")
    +4   guid       16 bytes  (Data1/2/3 little-endian, Data4 as bytes)
    +20  age         4 bytes
    +24  pdb path   NUL-terminated, up to the end of the record
"""

from __future__ import annotations

import struct
import uuid
from typing import TYPE_CHECKING

from shared.config import get_config

from peinspect.core.errors import (
    InvalidBinaryError,
    NotCodeViewError,
    OutOfRangeError,
)
from peinspect.core.models import (
    CodeViewInfo,
    DataDirectory,
    DebugDirectoryEntry,
    DebugType,
)

if TYPE_CHECKING:
    from peinspect.parsers.pe_parser import PEHeaders


_DEBUG_ENTRY_FMT = "<IIHHIIII"
DEBUG_ENTRY_SIZE = struct.calcsize(_DEBUG_ENTRY_FMT)   # 28
CODEVIEW_FIXED_SIZE = 24


def extract_debug_directory(
    headers: PEHeaders, directory: DataDirectory
) -> list[DebugDirectoryEntry]:
    """Decode the debug directory records described by *directory*.

    The record count is ``directory.size // 28``; trailing bytes that do not
    form a whole record are ignored.

    Raises:
        InvalidBinaryError: The directory's RVA does not resolve, or the
            records extend past the end of the address space.
    """
    log = headers.logger
    count = directory.size // DEBUG_ENTRY_SIZE
    offset = headers.resolve_rva(directory.virtual_address)
    if offset is None:
        raise InvalidBinaryError(
            f"debug directory RVA 0x{directory.virtual_address:X} is not backed by any section"
        )

    try:
        raw = headers.address_space.read_at(offset, count * DEBUG_ENTRY_SIZE)
    except OutOfRangeError as exc:
        raise InvalidBinaryError("debug directory truncated") from exc

    entries = [
        DebugDirectoryEntry(
            characteristics=fields[0],
            time_date_stamp=fields[1],
            major_version=fields[2],
            minor_version=fields[3],
            type=fields[4],
            size_of_data=fields[5],
            address_of_raw_data=fields[6],
            pointer_to_raw_data=fields[7],
        )
        for fields in struct.iter_unpack(_DEBUG_ENTRY_FMT, raw)
    ]
    log.debug("debug directory: %d entries at 0x%X", len(entries), offset)
    return entries


def extract_codeview(headers: PEHeaders, entry: DebugDirectoryEntry) -> CodeViewInfo:
    """Decode the CodeView record referenced by *entry*.

    Files are read at ``pointer_to_raw_data``; loaded modules at
    ``address_of_raw_data``.  The read never extends past ``size_of_data``.

    Raises:
        NotCodeViewError: *entry* is not of type CodeView.
        InvalidBinaryError: The record is shorter than its 24 fixed bytes.
    """
    if entry.type != DebugType.CODEVIEW:
        raise NotCodeViewError(f"debug entry type {entry.type_name} is not CodeView")

    offset = entry.pointer_to_raw_data if headers.is_file else entry.address_of_raw_data
    reader = headers.address_space.sub_reader(offset, entry.size_of_data)

    fixed = reader.read(CODEVIEW_FIXED_SIZE)
    if len(fixed) < CODEVIEW_FIXED_SIZE:
        raise InvalidBinaryError(
            f"CodeView record at 0x{offset:X} truncated: "
            f"want {CODEVIEW_FIXED_SIZE}, got {len(fixed)}"
        )

    (signature,) = struct.unpack_from("<I", fixed, 0)
    guid = uuid.UUID(bytes_le=fixed[4:20])
    (age,) = struct.unpack_from("<I", fixed, 20)

    max_path = get_config().peinspect.max_codeview_path
    tail = reader.read(min(reader.remaining, max_path))
    pdb_path = tail.split(b"\x00", 1)[0].decode("utf-8", errors="replace")

    headers.logger.debug("codeview: guid=%s age=%d path=%s", guid, age, pdb_path)
    return CodeViewInfo(signature=signature, guid=guid, age=age, pdb_path=pdb_path)
