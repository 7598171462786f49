"""
Entry point for running learnforge as a module.

Usage:
    python -m learnforge state user-123
    python -m learnforge check-inactivity user-123 user-456

Equivalent to the `learnforge` console script.
"""

import sys

from learnforge.cli.enforcement_cli import main

if __name__ == "__main__":
    sys.exit(main())
