"""
Main entry point for running git-cipher as a module.

Usage:
    python -m gitcipher <command> [options]
"""

from .cli import main
import sys

if __name__ == "__main__":
    sys.exit(main())
