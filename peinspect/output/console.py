"""
peinspect Console Output
=========================

Rich-powered terminal display for decoded PE headers: file and optional
header fields, the section table, data directory slots, debug directory
records with their CodeView identity, and the certificate table.

Uses :class:`~shared.console.InspectConsole` for consistent styling.
"""

from __future__ import annotations

import datetime as _dt
from typing import Sequence

from shared.console import InspectConsole

from peinspect.core.models import (
    CertificateSummary,
    CodeViewInfo,
    DataDirectory,
    DebugDirectoryEntry,
    FileHeader,
    HeadersReport,
    OptionalHeader32,
    OptionalHeader64,
    SectionHeader,
)
from peinspect.parsers.pe_parser import (
    DIRECTORY_NAMES,
    IMAGE_FILE_32BIT_MACHINE,
    IMAGE_FILE_DEBUG_STRIPPED,
    IMAGE_FILE_DLL,
    IMAGE_FILE_EXECUTABLE_IMAGE,
    IMAGE_FILE_LARGE_ADDRESS_AWARE,
    IMAGE_FILE_RELOCS_STRIPPED,
    IMAGE_FILE_SYSTEM,
    MACHINE_NAMES,
    section_characteristics_str,
)


_FILE_FLAG_NAMES: list[tuple[int, str]] = [
    (IMAGE_FILE_RELOCS_STRIPPED, "RELOCS_STRIPPED"),
    (IMAGE_FILE_EXECUTABLE_IMAGE, "EXECUTABLE"),
    (IMAGE_FILE_LARGE_ADDRESS_AWARE, "LARGE_ADDRESS_AWARE"),
    (IMAGE_FILE_32BIT_MACHINE, "32BIT"),
    (IMAGE_FILE_DEBUG_STRIPPED, "DEBUG_STRIPPED"),
    (IMAGE_FILE_SYSTEM, "SYSTEM"),
    (IMAGE_FILE_DLL, "DLL"),
]


def _file_flags(characteristics: int) -> str:
    names = [name for flag, name in _FILE_FLAG_NAMES if characteristics & flag]
    return " | ".join(names) if names else "-"


def _timestamp(value: int) -> str:
    """Render a link timestamp; reproducible builds store a hash instead."""
    try:
        when = _dt.datetime.fromtimestamp(value, tz=_dt.timezone.utc)
    except (OverflowError, OSError, ValueError):
        return f"0x{value:08X}"
    return f"0x{value:08X} ({when:%Y-%m-%d %H:%M:%S} UTC)"


class PEConsoleOutput:
    """Rich terminal display for a :class:`HeadersReport`.

    Usage::

        output = PEConsoleOutput()
        output.display(report)
    """

    def __init__(self, console: InspectConsole | None = None) -> None:
        self._console: InspectConsole = console or InspectConsole()

    def display(
        self,
        report: HeadersReport,
        *,
        headers: bool = True,
        sections: bool = True,
        directories: bool = True,
        debuginfo: bool = True,
        certs: bool = True,
    ) -> None:
        """Render the requested views of *report*."""
        self._console.header("peinspect", report.path)

        if headers:
            self.display_file_header(report.file_header)
            self.display_optional_header(report.optional_header)
        if sections:
            self.display_sections(report.sections)
        if directories:
            self.display_directories(report.optional_header.data_directory())
        if debuginfo:
            self.display_debug(report.debug_entries, report.codeview)
        if certs:
            self.display_certificates(report.certificates)

    # ------------------------------------------------------------------ #
    #  Headers
    # ------------------------------------------------------------------ #

    def display_file_header(self, fh: FileHeader) -> None:
        self._console.section("File Header")
        machine_name = MACHINE_NAMES.get(fh.machine, "unknown")
        self._console.key_values(
            [
                ("Machine", f"0x{fh.machine:04X} ({machine_name})"),
                ("Sections", fh.number_of_sections),
                ("Timestamp", _timestamp(fh.time_date_stamp)),
                ("Symbol table", f"0x{fh.pointer_to_symbol_table:X}"),
                ("Symbols", fh.number_of_symbols),
                ("Optional header size", fh.size_of_optional_header),
                ("Characteristics", f"0x{fh.characteristics:04X} ({_file_flags(fh.characteristics)})"),
            ],
        )
        self._console.blank()

    def display_optional_header(
        self, oh: OptionalHeader32 | OptionalHeader64
    ) -> None:
        self._console.section(f"Optional Header (PE32{'+' if oh.bits == 64 else ''})")
        pairs: list[tuple[str, object]] = [
            ("Magic", f"0x{oh.magic:04X}"),
            ("Linker", f"{oh.major_linker_version}.{oh.minor_linker_version}"),
            ("Entry point", f"0x{oh.address_of_entry_point:X}"),
            ("Base of code", f"0x{oh.base_of_code:X}"),
        ]
        if isinstance(oh, OptionalHeader32):
            pairs.append(("Base of data", f"0x{oh.base_of_data:X}"))
        pairs.extend(
            [
                ("Image base", f"0x{oh.image_base:X}"),
                ("Section alignment", f"0x{oh.section_alignment:X}"),
                ("File alignment", f"0x{oh.file_alignment:X}"),
                ("OS version", f"{oh.major_operating_system_version}.{oh.minor_operating_system_version}"),
                ("Subsystem version", f"{oh.major_subsystem_version}.{oh.minor_subsystem_version}"),
                ("Size of image", f"0x{oh.size_of_image:X}"),
                ("Size of headers", f"0x{oh.size_of_headers:X}"),
                ("Checksum", f"0x{oh.checksum:08X}"),
                ("Subsystem", oh.subsystem),
                ("DLL characteristics", f"0x{oh.dll_characteristics:04X}"),
                ("Data directories", oh.number_of_rva_and_sizes),
            ]
        )
        self._console.key_values(pairs)
        self._console.blank()

    # ------------------------------------------------------------------ #
    #  Tables
    # ------------------------------------------------------------------ #

    def display_sections(self, sections: Sequence[SectionHeader]) -> None:
        self._console.section("Sections")
        if not sections:
            self._console.info("No sections.")
            return
        rows = [
            (
                i,
                sec.name or "<unnamed>",
                f"0x{sec.virtual_address:08X}",
                f"0x{sec.virtual_size:X}",
                f"0x{sec.pointer_to_raw_data:08X}",
                f"0x{sec.size_of_raw_data:X}",
                section_characteristics_str(sec.characteristics),
            )
            for i, sec in enumerate(sections, 1)
        ]
        self._console.table(
            [
                ("#", "dim", "right"),
                ("Name", "bold"),
                ("VirtAddr", "", "right"),
                ("VirtSize", "", "right"),
                ("RawPtr", "", "right"),
                ("RawSize", "", "right"),
                "Flags",
            ],
            rows,
        )
        self._console.blank()

    def display_directories(self, slots: Sequence[DataDirectory]) -> None:
        self._console.section("Data Directories")
        rows = [
            (
                i,
                DIRECTORY_NAMES.get(i, "Reserved"),
                f"0x{slot.virtual_address:08X}",
                f"0x{slot.size:X}",
                "yes" if slot.is_present else "-",
            )
            for i, slot in enumerate(slots)
        ]
        self._console.table(
            [("#", "dim", "right"), ("Directory", "bold"), ("Address", "", "right"), ("Size", "", "right"), "Present"],
            rows,
        )
        self._console.blank()

    def display_debug(
        self,
        entries: Sequence[DebugDirectoryEntry],
        codeview: CodeViewInfo | None,
    ) -> None:
        self._console.section("Debug Directory")
        if not entries:
            self._console.info("No debug directory.")
            return
        rows = [
            (
                entry.type_name,
                _timestamp(entry.time_date_stamp),
                f"{entry.major_version}.{entry.minor_version}",
                f"0x{entry.size_of_data:X}",
                f"0x{entry.address_of_raw_data:08X}",
                f"0x{entry.pointer_to_raw_data:08X}",
            )
            for entry in entries
        ]
        self._console.table(
            [("Type", "bold"), "Timestamp", "Version", ("Size", "", "right"), ("RVA", "", "right"), ("FilePtr", "", "right")],
            rows,
        )
        if codeview is not None:
            self._console.key_values(
                [
                    ("GUID", str(codeview.guid).upper()),
                    ("Age", codeview.age),
                    ("PDB", codeview.pdb_path),
                    ("Symbol key", str(codeview)),
                ],
                title="CodeView",
            )
        self._console.blank()

    def display_certificates(self, certificates: Sequence[CertificateSummary]) -> None:
        self._console.section("Certificates")
        if not certificates:
            self._console.info("No certificate table.")
            return
        rows = [
            (i, cert.revision, cert.certificate_type, cert.length, cert.data_size)
            for i, cert in enumerate(certificates, 1)
        ]
        self._console.table(
            [("#", "dim", "right"), "Revision", ("Type", "bold"), ("Length", "", "right"), ("Payload", "", "right")],
            rows,
        )
        self._console.blank()
