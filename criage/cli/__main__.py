"""
Entry point for running the criage CLI as a module.

Usage: python -m criage.cli [command] [options]
"""

from .parser import main

if __name__ == "__main__":
    main()
