"""
Entry point for running forgepilot as a module.

Usage:
    python -m forgepilot events stats
    python -m forgepilot pr status 42

This is equivalent to the ``forgepilot`` console script.
"""

import sys

from forgepilot.cli.pilot_cli import main


if __name__ == "__main__":
    sys.exit(main())
