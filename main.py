"""
frm — Entry Point.

Single entry point: `python main.py <command>` runs the frm CLI
(the same as the installed `frm` script).
"""

import sys

from frm.cli.app import main

if __name__ == "__main__":
    sys.exit(main())
