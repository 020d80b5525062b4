"""
peinspect -- PE Header Inspector
=================================

peinspect validates and decodes the headers of Windows Portable Executable
images, either files on disk or modules already mapped into the running
process.

Capabilities:
    - DOS, COFF file and PE32/PE32+ optional header decoding
    - Section table and data directory access
    - RVA to file offset translation
    - Authenticode certificate table extraction
    - Debug directory and CodeView (PDB GUID/age/path) decoding
    - Rich console and JSON output

References:
    - Microsoft. (2024). PE Format.
    - Microsoft. (2008). Windows Authenticode Portable Executable Signature Format.
"""

__version__ = "1.0.0"
__all__ = [
    "PEHeaders",
    "load_headers",
    "FileAddressSpace",
    "ModuleAddressSpace",
    "PEError",
]

from peinspect.core.errors import PEError
from peinspect.parsers.address_space import FileAddressSpace, ModuleAddressSpace
from peinspect.parsers.pe_parser import PEHeaders, load_headers
