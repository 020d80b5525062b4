"""
peinspect Errors
=================

Exception hierarchy raised by the PE parsers.

Callers distinguish three families:

* :class:`StructuralError` -- the binary is malformed or unsupported.  Always
  fatal to the current parse; no partial result is produced.
* :class:`NotPresentError` -- an optional table is simply absent.  This is a
  normal outcome, not a sign of corruption.
* Misuse signals -- :class:`IndexOutOfRangeError`,
  :class:`UnavailableInModuleError`, :class:`NotCodeViewError`,
  :class:`OutOfRangeError`.

Raw operating-system failures (``OSError`` and subclasses) are never wrapped,
so "corrupt binary" and "unreadable file" stay distinguishable.
"""

from __future__ import annotations


class PEError(Exception):
    """Base class for every error raised by peinspect."""


# ========================== Structural =====================================


class StructuralError(PEError):
    """The binary violates the PE layout in a way that prevents parsing."""


class InvalidBinaryError(StructuralError):
    """Bad signature or magic, or a truncated or inconsistent header."""


class UnsupportedMachineError(StructuralError):
    """The file header names a machine type this loader does not accept."""

    def __init__(self, machine: int, expected: int) -> None:
        super().__init__(
            f"unsupported machine 0x{machine:04X} (expected 0x{expected:04X})"
        )
        self.machine = machine
        self.expected = expected


class BadLengthError(StructuralError):
    """A length-prefixed record ran past the end of its enclosing range."""


# ========================== Non-fatal / misuse =============================


class NotPresentError(PEError):
    """The requested optional table is absent from this image."""


class UnavailableInModuleError(PEError):
    """The information exists only in the file, not in a loaded module."""


class IndexOutOfRangeError(PEError, IndexError):
    """A data directory index beyond the slots the image declares."""


class NotCodeViewError(PEError):
    """A debug directory entry that does not describe CodeView data."""


class OutOfRangeError(PEError):
    """A read that would cross the upper bound of an address space."""

    def __init__(self, offset: int, length: int, limit: int) -> None:
        super().__init__(
            f"read of {length} bytes at offset 0x{offset:X} exceeds limit 0x{limit:X}"
        )
        self.offset = offset
        self.length = length
        self.limit = limit
