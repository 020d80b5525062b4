"""
PE Address Spaces
==================

Two backing stores share one addressing contract:

* :class:`FileAddressSpace` -- a PE file on disk.  The base is always 0 and
  offsets are file offsets; virtual addresses must be translated through
  the section table before reading.
* :class:`ModuleAddressSpace` -- an image already mapped into the current
  process by the OS loader.  Offsets are RVAs relative to the module base;
  the loader has already done the translation.

Both expose ``base()``, a lazily cached exclusive ``limit()``, bounded
random access through :meth:`read_at`, a sequential cursor for streaming
consumers, and bounded sub-range readers.

A module address space reinterprets memory the caller does not own.  The
caller must keep the module mapped for the lifetime of the address space;
reading an unmapped module is undefined and is not detected.
"""

from __future__ import annotations

import ctypes
import io
import os
import threading
from pathlib import Path
from typing import BinaryIO, Optional, Union

from peinspect.core.errors import OutOfRangeError


class _AddressSpaceBase:
    """Behaviour common to both backing stores."""

    is_file: bool = False
    is_module: bool = False

    def __init__(self) -> None:
        self._limit: int = 0
        self._pos: int = 0

    # ------------------------------------------------------------------ #
    #  Subclass hooks
    # ------------------------------------------------------------------ #

    def base(self) -> int:
        raise NotImplementedError

    def limit(self) -> int:
        raise NotImplementedError

    def close(self) -> None:
        raise NotImplementedError

    def _read_raw(self, offset: int, length: int) -> bytes:
        raise NotImplementedError

    # ------------------------------------------------------------------ #
    #  Random access
    # ------------------------------------------------------------------ #

    def size(self) -> int:
        """Number of addressable bytes, i.e. ``limit() - base()``."""
        return max(self.limit() - self.base(), 0)

    def read_at(self, offset: int, length: int) -> bytes:
        """Read exactly *length* bytes at *offset*.

        Raises:
            OutOfRangeError: If the range starts below zero, ends past
                ``limit()``, or the backing store returns fewer bytes.
        """
        if offset < 0 or length < 0 or self.base() + offset + length > self.limit():
            raise OutOfRangeError(offset, length, self.limit())
        data = self._read_raw(offset, length)
        if len(data) != length:
            raise OutOfRangeError(offset, length, self.limit())
        return data

    def _read_clamped(self, offset: int, length: int) -> bytes:
        """Read up to *length* bytes at *offset*, stopping at the limit."""
        available = self.size() - offset
        if offset < 0 or available <= 0 or length <= 0:
            return b""
        return self._read_raw(offset, min(length, available))

    # ------------------------------------------------------------------ #
    #  Sequential cursor
    # ------------------------------------------------------------------ #

    def seek(self, offset: int, whence: int = io.SEEK_SET) -> int:
        if whence == io.SEEK_SET:
            pos = offset
        elif whence == io.SEEK_CUR:
            pos = self._pos + offset
        elif whence == io.SEEK_END:
            pos = self.size() + offset
        else:
            raise ValueError(f"invalid whence ({whence})")
        if pos < 0:
            raise ValueError(f"negative seek position {pos}")
        self._pos = pos
        return pos

    def tell(self) -> int:
        return self._pos

    def read(self, length: int = -1) -> bytes:
        """Read up to *length* bytes from the cursor; ``b""`` at the end."""
        if length < 0:
            length = self.size() - self._pos
        data = self._read_clamped(self._pos, length)
        self._pos += len(data)
        return data

    def sub_reader(self, offset: int, length: int) -> SectionReader:
        """Return a cursor bounded to ``[offset, offset + length)``."""
        return SectionReader(self, offset, length)

    # ------------------------------------------------------------------ #
    #  Context management
    # ------------------------------------------------------------------ #

    def __enter__(self):
        return self

    def __exit__(self, *exc) -> None:
        self.close()


class FileAddressSpace(_AddressSpaceBase):
    """A PE file on disk.

    The address space owns *fileobj* and closes it in :meth:`close`.  Use
    :meth:`from_path` to open a file by name, or :meth:`from_handle` to
    parse an already-open file without consuming the caller's handle.

    Random reads use ``os.pread`` where the platform offers it.  Elsewhere
    (Windows) the seek and read pair runs under a per-space lock, so
    concurrent :meth:`read_at` calls never share a file position.
    """

    is_file = True

    def __init__(self, fileobj: BinaryIO, *, name: Optional[str] = None) -> None:
        super().__init__()
        self._file = fileobj
        self._name = name or getattr(fileobj, "name", "<file>")
        self._closed = False
        self._seek_lock = threading.Lock()

    @classmethod
    def from_path(cls, path: Union[str, Path]) -> FileAddressSpace:
        fh = open(path, "rb")
        return cls(fh, name=str(path))

    @classmethod
    def from_handle(cls, handle: Union[int, BinaryIO]) -> FileAddressSpace:
        """Duplicate *handle* (a descriptor or file object) and wrap the copy."""
        fd = handle if isinstance(handle, int) else handle.fileno()
        dup_fd = os.dup(fd)
        try:
            fh = os.fdopen(dup_fd, "rb")
        except BaseException:
            os.close(dup_fd)
            raise
        name = None if isinstance(handle, int) else getattr(handle, "name", None)
        return cls(fh, name=str(name) if name is not None else f"<fd {fd}>")

    @property
    def name(self) -> str:
        return str(self._name)

    @property
    def closed(self) -> bool:
        return self._closed

    def base(self) -> int:
        return 0

    def limit(self) -> int:
        if self._limit == 0:
            self._limit = os.fstat(self._file.fileno()).st_size
        return self._limit

    def _read_raw(self, offset: int, length: int) -> bytes:
        if hasattr(os, "pread"):
            return os.pread(self._file.fileno(), length, offset)
        with self._seek_lock:
            self._file.seek(offset)
            return self._file.read(length)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._file.close()

    def __repr__(self) -> str:
        return f"FileAddressSpace(name={self._name!r}, closed={self._closed})"


class ModuleAddressSpace(_AddressSpaceBase):
    """A PE image mapped into the current process at *base*.

    Args:
        base: Load address of the module.
        size: Size of the mapped image (``SizeOfImage``).
        buffer: Optional bytes-like object holding the image contents.
            When omitted the memory at *base* is read directly.  When given,
            the buffer stands in for the mapped image and *base* is only the
            address the image is reported at.
    """

    is_module = True

    def __init__(self, base: int, size: int, *, buffer: Optional[bytes] = None) -> None:
        super().__init__()
        if base <= 0:
            raise ValueError("module base address must be positive")
        if size < 0:
            raise ValueError("module size must not be negative")
        self._base = base
        self._size = size
        self._buffer = buffer

    def base(self) -> int:
        return self._base

    def limit(self) -> int:
        if self._limit == 0:
            self._limit = self._base + self._size
        return self._limit

    def _read_raw(self, offset: int, length: int) -> bytes:
        if self._buffer is None:
            return ctypes.string_at(self._base + offset, length)
        return bytes(self._buffer[offset:offset + length])

    def close(self) -> None:
        """No-op: the caller owns the mapped module."""

    def __repr__(self) -> str:
        return f"ModuleAddressSpace(base=0x{self._base:X}, size=0x{self._size:X})"


AddressSpace = Union[FileAddressSpace, ModuleAddressSpace]


class SectionReader:
    """Sequential reader confined to ``[offset, offset + length)`` of a space.

    Reads stop at the end of the range and at the end of the backing store;
    a short result is returned as-is for the caller to judge.
    """

    def __init__(self, space: AddressSpace, offset: int, length: int) -> None:
        self._space = space
        self._offset = offset
        self._length = max(length, 0)
        self._pos = 0

    @property
    def length(self) -> int:
        return self._length

    @property
    def remaining(self) -> int:
        return max(self._length - self._pos, 0)

    def tell(self) -> int:
        return self._pos

    def seek(self, pos: int, whence: int = io.SEEK_SET) -> int:
        if whence == io.SEEK_SET:
            new_pos = pos
        elif whence == io.SEEK_CUR:
            new_pos = self._pos + pos
        elif whence == io.SEEK_END:
            new_pos = self._length + pos
        else:
            raise ValueError(f"invalid whence ({whence})")
        if new_pos < 0:
            raise ValueError(f"negative seek position {new_pos}")
        self._pos = new_pos
        return new_pos

    def read(self, length: int = -1) -> bytes:
        if length < 0 or length > self.remaining:
            length = self.remaining
        data = self._space._read_clamped(self._offset + self._pos, length)
        self._pos += len(data)
        return data
