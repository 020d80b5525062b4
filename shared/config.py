"""
peinspect Configuration Management
===================================

Centralized configuration for the peinspect toolkit using Python
dataclasses and TOML-based persistence.

The configuration file is looked up in this order:

    1. An explicit path handed to :meth:`InspectConfig.load`.
    2. The ``PEINSPECT_CONFIG`` environment variable.
    3. ``config.toml`` in the project root.

Example ``config.toml``::

    [global]
    log_level = "DEBUG"
    log_file = "peinspect.log"

    [peinspect]
    target_machine = "amd64"
    max_codeview_path = 1024

References:
    - Wiggins, A. (2011). The Twelve-Factor App. https://12factor.net/
    - TOML v1.0.0 Specification. https://toml.io/en/v1.0.0
"""

from __future__ import annotations

import os
import sys
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Optional, Union

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib


# ---------------------------------------------------------------------------
# Default configuration file path relative to the project root
# ---------------------------------------------------------------------------
_DEFAULT_CONFIG_PATH: Path = Path(__file__).resolve().parent.parent / "config.toml"
_CONFIG_ENV_VAR: str = "PEINSPECT_CONFIG"
_OUTPUT_FORMATS = frozenset({"table", "json"})


# ========================== Tool-Specific Configs ==========================


@dataclass(frozen=False, slots=True)
class PEInspectConfig:
    """Configuration for the PE header parser and its inspection front end.

    Attributes:
        target_machine:    Machine type the loader accepts, as an integer
                           (``0x8664``) or a name (``"amd64"``).  ``None``
                           selects the architecture of the running
                           interpreter.
        max_codeview_path: Upper bound on the bytes read for a CodeView PDB
                           path.  The declared ``SizeOfData`` of the debug
                           record always bounds the read as well.
        output_format:     Default front-end output (``"table"`` or ``"json"``).
    """

    target_machine: Optional[Union[str, int]] = None
    max_codeview_path: int = 4096
    output_format: str = "table"

    def __post_init__(self) -> None:
        if self.target_machine is not None and not isinstance(self.target_machine, (str, int)):
            raise ValueError(
                f"target_machine must be a name or an integer, not {self.target_machine!r}"
            )
        if self.max_codeview_path <= 0:
            raise ValueError("max_codeview_path must be positive")
        if self.output_format not in _OUTPUT_FORMATS:
            raise ValueError(
                f"output_format must be one of {sorted(_OUTPUT_FORMATS)}, "
                f"not {self.output_format!r}"
            )


# =========================== Global Settings ===============================


@dataclass(frozen=False, slots=True)
class GlobalConfig:
    """Logging verbosity and sinks for every component."""

    log_level: str = "INFO"
    log_file: Optional[str] = None
    log_json: bool = False
    debug: bool = False


# =========================== Master Config =================================


@dataclass(frozen=False, slots=True)
class InspectConfig:
    """Master configuration aggregating tool-specific and global settings.

    Usage:
        >>> config = InspectConfig.load()                  # default lookup
        >>> config = InspectConfig.load("custom.toml")     # explicit path
        >>> config.peinspect.max_codeview_path
        4096
    """

    global_settings: GlobalConfig = field(default_factory=GlobalConfig)
    peinspect: PEInspectConfig = field(default_factory=PEInspectConfig)

    # ------------------------------------------------------------------ #
    #  TOML Loading
    # ------------------------------------------------------------------ #

    @classmethod
    def load(cls, path: str | Path | None = None) -> InspectConfig:
        """Load configuration from a TOML file.

        Missing keys fall back to dataclass defaults; unknown keys are
        ignored.

        Args:
            path: Filesystem path to a TOML configuration file.  Defaults
                  to ``$PEINSPECT_CONFIG`` or ``<project_root>/config.toml``.

        Returns:
            A fully-populated :class:`InspectConfig` instance.

        Raises:
            FileNotFoundError: If the path was given explicitly (argument or
                environment variable) and does not exist.
        """
        explicit = path if path is not None else os.environ.get(_CONFIG_ENV_VAR)
        config_path = Path(explicit) if explicit else _DEFAULT_CONFIG_PATH

        if not config_path.exists():
            if explicit:
                raise FileNotFoundError(
                    f"Configuration file not found: {config_path}"
                )
            return cls()

        with open(config_path, "rb") as fh:
            raw: dict[str, Any] = tomllib.load(fh)

        return cls(
            global_settings=cls._build_section(GlobalConfig, raw.get("global", {})),
            peinspect=cls._build_section(PEInspectConfig, raw.get("peinspect", {})),
        )

    # ------------------------------------------------------------------ #
    #  Serialisation helpers
    # ------------------------------------------------------------------ #

    def to_dict(self) -> dict[str, Any]:
        """Serialise the entire configuration tree to a plain dictionary."""
        return asdict(self)

    # ------------------------------------------------------------------ #
    #  Internal helpers
    # ------------------------------------------------------------------ #

    @staticmethod
    def _build_section(cls: type, data: dict[str, Any]) -> Any:
        """Instantiate a dataclass *cls* using only the keys it declares."""
        declared = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in declared})


# ========================= Module-level convenience ========================

def get_config(path: str | Path | None = None) -> InspectConfig:
    """Module-level convenience wrapper around :meth:`InspectConfig.load`.

    Caches the result so that repeated calls share one instance.  Passing
    a *path* always reloads.
    """
    if not hasattr(get_config, "_cached") or path is not None:
        get_config._cached = InspectConfig.load(path)  # type: ignore[attr-defined]
    return get_config._cached  # type: ignore[attr-defined]


def reset_config() -> None:
    """Drop the cached configuration so the next :func:`get_config` reloads."""
    if hasattr(get_config, "_cached"):
        del get_config._cached  # type: ignore[attr-defined]
