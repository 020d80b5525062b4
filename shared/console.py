"""
peinspect Console Interface
============================

Rich-powered presentation helpers for the peinspect front end: a title
panel, section rules, coloured status lines, column tables and field/value
listings, drawn with one palette.

Cells are escaped before rendering, so section names or PDB paths holding
``[`` never turn into Rich markup.
"""

from __future__ import annotations

from typing import Any, Iterable, Sequence, Union

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.theme import Theme

_INSPECT_THEME = Theme(
    {
        "inspect.title": "bold bright_cyan",
        "inspect.rule": "bold bright_magenta",
        "inspect.warning": "bold yellow",
        "inspect.error": "bold red",
        "inspect.info": "bold bright_blue",
        "inspect.dim": "dim white",
        "inspect.key": "bold bright_white",
        "inspect.value": "bright_green",
    }
)

# A column is a bare header, or (header, style) / (header, style, justify).
ColumnSpec = Union[str, tuple[str, str], tuple[str, str, str]]


def _new_table(title: str | None, *, show_header: bool = True) -> Table:
    return Table(
        title=title or None,
        show_header=show_header,
        border_style="bright_cyan",
        header_style="bold bright_magenta",
        padding=(0, 1),
    )


class InspectConsole:
    """Presentation layer shared by every peinspect view.

    Usage::

        con = InspectConsole()
        con.header("peinspect", "kernel32.dll")
        con.section("Sections")
        con.table([("#", "dim", "right"), "Name"], [(1, ".text")])
    """

    def __init__(self, *, quiet: bool = False, record: bool = False) -> None:
        """
        Args:
            quiet:  Suppress all output (library and test use).
            record: Keep a record of output for later export.
        """
        self._console = Console(
            theme=_INSPECT_THEME,
            quiet=quiet,
            record=record,
            highlight=False,
        )

    def export_text(self) -> str:
        """Return recorded output as plain text (requires ``record=True``)."""
        return self._console.export_text()

    # ------------------------------------------------------------------ #
    #  Headings
    # ------------------------------------------------------------------ #

    def header(self, title: str, subtitle: str = "") -> None:
        """Boxed title shown once at the top of a report."""
        body = f"[inspect.title]{escape(title)}[/inspect.title]"
        if subtitle:
            body += f"\n[inspect.dim]{escape(subtitle)}[/inspect.dim]"
        self._console.print(Panel(body, border_style="bright_cyan", padding=(0, 2)))

    def section(self, title: str) -> None:
        self._console.rule(f"  {escape(title)}  ", style="inspect.rule", characters="─")
        self._console.print()

    # ------------------------------------------------------------------ #
    #  Status lines
    # ------------------------------------------------------------------ #

    def _status_line(self, style: str, tag: str, message: str) -> None:
        self._console.print(f"[{style}]{tag}[/{style}] {escape(message)}")

    def info(self, message: str) -> None:
        self._status_line("inspect.info", "INFO:", message)

    def warning(self, message: str) -> None:
        self._status_line("inspect.warning", "WARNING:", message)

    def error(self, message: str) -> None:
        self._status_line("inspect.error", "ERROR:", message)

    # ------------------------------------------------------------------ #
    #  Tables
    # ------------------------------------------------------------------ #

    def table(
        self,
        columns: Sequence[ColumnSpec],
        rows: Iterable[Sequence[Any]],
        *,
        title: str | None = None,
    ) -> None:
        """Render *rows* under *columns*; every cell is stringified."""
        tbl = _new_table(title)
        for spec in columns:
            if isinstance(spec, str):
                tbl.add_column(spec)
            else:
                name, style, *justify = spec
                tbl.add_column(name, style=style, justify=justify[0] if justify else "left")
        for row in rows:
            tbl.add_row(*(escape(str(cell)) for cell in row))
        self._console.print(tbl)

    def key_values(self, pairs: Iterable[tuple[str, Any]], *, title: str | None = None) -> None:
        """Render a two-column field/value listing."""
        tbl = _new_table(title, show_header=False)
        tbl.add_column("Field", style="inspect.key")
        tbl.add_column("Value", style="inspect.value")
        for key, value in pairs:
            tbl.add_row(escape(key), escape(str(value)))
        self._console.print(tbl)

    def blank(self) -> None:
        self._console.print()
