"""
peinspect Shared Module
========================

Configuration, logging and console utilities used by the peinspect
parsers and command-line front end.
"""

from shared.config import InspectConfig, get_config

__all__ = ["InspectConfig", "get_config"]
