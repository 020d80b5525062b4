"""
peinspect Output Module
========================

Console display for decoded PE headers.
"""

from peinspect.output.console import PEConsoleOutput

__all__ = ["PEConsoleOutput"]
