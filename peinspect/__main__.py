"""
peinspect Module Entry Point
=============================

Allows running the peinspect CLI via: python -m peinspect
"""

from peinspect.cli import main

if __name__ == "__main__":
    main()
