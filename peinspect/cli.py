"""
peinspect CLI -- PE Header Inspector
=====================================

Click-based command-line interface over the PE header parser.  Shows the
decoded headers, section table, data directories, debug information and
certificate table of a PE file.

Usage::

    # Everything
    peinspect C:/Windows/System32/kernel32.dll

    # Sections and CodeView only
    peinspect app.exe --sections --debuginfo

    # Parse an x86 image on an x64 host
    peinspect app32.exe --machine i386

    # Machine-readable output
    peinspect app.exe --json

References:
    - Click documentation: https://click.palletsprojects.com/
"""

from __future__ import annotations

import json
import sys

import click

from shared.config import get_config
from shared.console import InspectConsole
from shared.logger import InspectLogger

from peinspect import __version__
from peinspect.core.errors import NotPresentError, PEError
from peinspect.core.models import CertificateSummary, HeadersReport
from peinspect.output.console import PEConsoleOutput
from peinspect.parsers.pe_parser import (
    IMAGE_DIRECTORY_ENTRY_DEBUG,
    IMAGE_DIRECTORY_ENTRY_SECURITY,
    PEHeaders,
    resolve_machine,
)


def build_report(
    pe: PEHeaders,
    path: str,
    *,
    debuginfo: bool = True,
    certs: bool = True,
) -> HeadersReport:
    """Collect the views of *pe* into a serialisable report.

    Absent tables yield empty fields; malformed ones propagate their error.
    """
    report = HeadersReport(
        path=path,
        file_header=pe.file_header,
        optional_header=pe.optional_header,
        sections=list(pe.sections),
    )

    if debuginfo:
        try:
            report.debug_entries = list(pe.entry(IMAGE_DIRECTORY_ENTRY_DEBUG))
        except NotPresentError:
            pass
        else:
            try:
                codeview = pe.codeview()
            except NotPresentError:
                codeview = None
            report.codeview = codeview
            report.codeview_key = str(codeview) if codeview is not None else None

    if certs and pe.is_file:
        try:
            certificates = pe.entry(IMAGE_DIRECTORY_ENTRY_SECURITY)
        except NotPresentError:
            certificates = []
        report.certificates = [
            CertificateSummary(
                revision=cert.revision_name,
                certificate_type=cert.type_name,
                length=cert.length,
                data_size=len(cert.data),
            )
            for cert in certificates
        ]

    return report


def _parse_machine(ctx: click.Context, param: click.Parameter, value: str | None) -> int | None:
    if value is None:
        return None
    try:
        return resolve_machine(value)
    except ValueError as exc:
        raise click.BadParameter(str(exc)) from exc


# ---------------------------------------------------------------------------
# Command
# ---------------------------------------------------------------------------

@click.command("peinspect")
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.option("--headers", is_flag=True, default=False, help="Show the file and optional headers.")
@click.option("--sections", is_flag=True, default=False, help="Show the section table.")
@click.option("--directories", is_flag=True, default=False, help="Show the data directory slots.")
@click.option("--debuginfo", is_flag=True, default=False, help="Show the debug directory and CodeView record.")
@click.option("--certs", is_flag=True, default=False, help="Show the Authenticode certificate table.")
@click.option(
    "--machine", "-m",
    callback=_parse_machine,
    default=None,
    metavar="NAME",
    help="Machine type to accept (amd64, i386, arm64, or a number).  Default: host.",
)
@click.option(
    "--json", "json_output",
    is_flag=True,
    default=False,
    help="Output results as JSON to stdout.",
)
@click.option(
    "--verbose", "-v",
    is_flag=True,
    default=False,
    help="Enable verbose/debug output.",
)
@click.version_option(__version__, prog_name="peinspect")
def peinspect_cli(
    path: str,
    headers: bool,
    sections: bool,
    directories: bool,
    debuginfo: bool,
    certs: bool,
    machine: int | None,
    json_output: bool,
    verbose: bool,
) -> None:
    """peinspect -- PE Header Inspector.

    Decode the headers of a Windows PE image (.exe, .dll, .sys) and show
    its section table, data directories, debug information and
    certificate table.  With no view flags every view is shown.

    PATH is the PE file to inspect.

    Examples:

    \b
        peinspect kernel32.dll --debuginfo
    \b
        peinspect app.exe --json
    """
    console = InspectConsole()
    config = get_config()
    settings = config.global_settings
    log_level = "DEBUG" if verbose or settings.debug else settings.log_level

    logger = InspectLogger(
        "parser",
        log_level=log_level,
        log_file=settings.log_file,
        json_logs=settings.log_json,
        console_output=verbose,
    )

    if not any((headers, sections, directories, debuginfo, certs)):
        headers = sections = directories = debuginfo = certs = True

    try:
        with logger.timed(f"inspect {path}"):
            with PEHeaders.from_file_name(path, machine, logger=logger) as pe:
                report = build_report(pe, path, debuginfo=debuginfo, certs=certs)
    except KeyboardInterrupt:
        console.warning("Inspection interrupted by user.")
        sys.exit(130)
    except (PEError, OSError) as exc:
        console.error(f"{path}: {exc}")
        sys.exit(1)

    if json_output or config.peinspect.output_format == "json":
        click.echo(json.dumps(report.model_dump(mode="json"), indent=2))
        return

    PEConsoleOutput(console=console).display(
        report,
        headers=headers,
        sections=sections,
        directories=directories,
        debuginfo=debuginfo,
        certs=certs,
    )


# ---------------------------------------------------------------------------
# Module entry point
# ---------------------------------------------------------------------------

def main() -> None:
    """Entry point for the ``peinspect`` console script."""
    peinspect_cli()


if __name__ == "__main__":
    main()
