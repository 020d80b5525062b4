"""
peinspect Structured Logger
============================

:class:`InspectLogger` is the logging facade handed to the parsers.  It
wraps one stdlib :class:`logging.Logger` named ``peinspect.<component>``
and attaches up to two sinks:

* a Rich handler on stderr, so a JSON report on stdout stays clean;
* a rotating file handler writing plain lines or JSON lines.

Parsers only ever log at DEBUG: offsets, counts and dispatch decisions.
Conditions they raise are not logged at ERROR; the caller decides.

Every record carries the component name and the current operation (set
with :meth:`InspectLogger.operation`).  Keyword arguments passed to the log
methods travel as structured ``fields``.

References:
    - Python logging HOWTO. https://docs.python.org/3/howto/logging.html
    - Rich library. https://github.com/Textualize/rich
"""

from __future__ import annotations

import json
import logging
import threading
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Iterator

from rich.console import Console
from rich.logging import RichHandler
from rich.theme import Theme

_LOG_THEME = Theme(
    {
        "log.level.debug": "dim cyan",
        "log.level.info": "bold bright_blue",
        "log.level.warning": "bold yellow",
        "log.level.error": "bold red",
        "log.level.critical": "bold white on red",
    }
)

_PLAIN_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(operation)s | %(message)s"
_PLAIN_DATEFMT = "%Y-%m-%dT%H:%M:%S%z"

_RECORD_KWARGS = frozenset({"exc_info", "stack_info", "stacklevel"})


def _level(name: str) -> int:
    value = logging.getLevelName(name.upper())
    return value if isinstance(value, int) else logging.INFO


# ---------------------------------------------------------------------------
# Record enrichment and formatting
# ---------------------------------------------------------------------------

class _ContextFilter(logging.Filter):
    """Stamp every record with the owning component and its operation."""

    def __init__(self, owner: InspectLogger) -> None:
        super().__init__()
        self._owner = owner

    def filter(self, record: logging.LogRecord) -> bool:
        record.component = self._owner.tool_name
        record.operation = self._owner.current_operation or "-"
        if not hasattr(record, "fields"):
            record.fields = {}
        return True


class _JSONLineFormatter(logging.Formatter):
    """One JSON object per record.

    Example::

        {"ts": "2026-01-01T00:00:00+00:00", "level": "DEBUG",
         "logger": "peinspect.parser", "component": "parser",
         "operation": "load_headers", "msg": "e_lfanew=0x80",
         "fields": {"sections": 2}}
    """

    def format(self, record: logging.LogRecord) -> str:
        doc: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "component": getattr(record, "component", None),
            "operation": getattr(record, "operation", None),
            "msg": record.getMessage(),
        }
        fields = getattr(record, "fields", None)
        if fields:
            doc["fields"] = fields
        if record.exc_info and record.exc_info[1] is not None:
            doc["exc"] = self.formatException(record.exc_info)
        return json.dumps(doc, ensure_ascii=False, default=str)


def _console_handler(level: int) -> logging.Handler:
    handler = RichHandler(
        console=Console(theme=_LOG_THEME, stderr=True),
        level=level,
        show_path=False,
        show_time=True,
        rich_tracebacks=True,
        tracebacks_show_locals=False,
        markup=False,
    )
    return handler


def _file_handler(
    path: Path, level: int, json_lines: bool, max_bytes: int, backup_count: int
) -> logging.Handler:
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        filename=str(path),
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )
    handler.setLevel(level)
    if json_lines:
        handler.setFormatter(_JSONLineFormatter())
    else:
        handler.setFormatter(logging.Formatter(_PLAIN_FORMAT, datefmt=_PLAIN_DATEFMT))
    return handler


# ---------------------------------------------------------------------------
# Facade
# ---------------------------------------------------------------------------

class _Stopwatch:
    __slots__ = ("started",)

    def __init__(self) -> None:
        self.started = time.perf_counter()

    @property
    def elapsed(self) -> float:
        return time.perf_counter() - self.started


class InspectLogger:
    """Logger bound to one peinspect component.

    Creating a second instance for the same component reconfigures the
    shared stdlib logger in place, so objects holding the first instance
    pick up the new sinks.  The CLI relies on this to turn on parser
    diagnostics with ``--verbose``.

    Usage::

        log = InspectLogger("parser", log_level="DEBUG")
        with log.operation("load_headers"):
            log.debug("e_lfanew=0x%X", e_lfanew, limit=space.limit())

    Args:
        tool_name:       Component name; the stdlib logger is ``peinspect.<tool_name>``.
        log_level:       Minimum severity name.
        log_file:        Rotating log file, or ``None`` for no file sink.
        json_logs:       Write JSON lines instead of plain text to the file.
        max_bytes:       Rotation threshold for the file sink.
        backup_count:    Rotated files to keep.
        console_output:  Attach the Rich stderr sink.
    """

    def __init__(
        self,
        tool_name: str,
        *,
        log_level: str = "INFO",
        log_file: str | Path | None = None,
        json_logs: bool = False,
        max_bytes: int = 10_485_760,
        backup_count: int = 5,
        console_output: bool = True,
    ) -> None:
        self._tool_name = tool_name
        self._context = threading.local()
        self._logger = logging.getLogger(f"peinspect.{tool_name}")
        self._logger.propagate = False

        level = _level(log_level)
        self._logger.setLevel(level)

        for old in list(self._logger.handlers):
            self._logger.removeHandler(old)
            old.close()
        for old_filter in list(self._logger.filters):
            self._logger.removeFilter(old_filter)
        self._logger.addFilter(_ContextFilter(self))

        if console_output:
            self._logger.addHandler(_console_handler(level))
        if log_file is not None:
            self._logger.addHandler(
                _file_handler(Path(log_file), level, json_logs, max_bytes, backup_count)
            )
        if not self._logger.handlers:
            self._logger.addHandler(logging.NullHandler())

    # ------------------------------------------------------------------ #
    #  Context
    # ------------------------------------------------------------------ #

    @property
    def tool_name(self) -> str:
        return self._tool_name

    @property
    def current_operation(self) -> str | None:
        stack = self._operation_stack()
        return stack[-1] if stack else None

    def _operation_stack(self) -> list[str]:
        stack = getattr(self._context, "operations", None)
        if stack is None:
            stack = self._context.operations = []
        return stack

    @property
    def underlying(self) -> logging.Logger:
        """The wrapped stdlib :class:`logging.Logger`."""
        return self._logger

    @contextmanager
    def operation(self, name: str) -> Iterator[InspectLogger]:
        """Tag records emitted inside the block with ``operation=<name>``.

        Blocks nest; the innermost name wins.  Each thread keeps its own
        stack.
        """
        stack = self._operation_stack()
        stack.append(name)
        try:
            yield self
        finally:
            stack.pop()

    @contextmanager
    def timed(self, label: str) -> Iterator[_Stopwatch]:
        """Log the wall time of the enclosed block at DEBUG."""
        watch = _Stopwatch()
        self.debug("begin %s", label)
        try:
            yield watch
        finally:
            self.debug("end %s (%.3f s)", label, watch.elapsed)

    # ------------------------------------------------------------------ #
    #  Emitters
    # ------------------------------------------------------------------ #

    def _emit(self, level: int, msg: str, args: tuple[Any, ...], kwargs: dict[str, Any]) -> None:
        if not self._logger.isEnabledFor(level):
            return
        passthrough = {k: kwargs.pop(k) for k in list(kwargs) if k in _RECORD_KWARGS}
        passthrough.setdefault("stacklevel", 3)
        self._logger.log(level, msg, *args, extra={"fields": kwargs}, **passthrough)

    def debug(self, msg: str, *args: Any, **fields: Any) -> None:
        self._emit(logging.DEBUG, msg, args, fields)

    def info(self, msg: str, *args: Any, **fields: Any) -> None:
        self._emit(logging.INFO, msg, args, fields)

    def warning(self, msg: str, *args: Any, **fields: Any) -> None:
        self._emit(logging.WARNING, msg, args, fields)

    def error(self, msg: str, *args: Any, **fields: Any) -> None:
        self._emit(logging.ERROR, msg, args, fields)

    def exception(self, msg: str, *args: Any, **fields: Any) -> None:
        """Log at ERROR with the active exception's traceback."""
        fields.setdefault("exc_info", True)
        self._emit(logging.ERROR, msg, args, fields)
