"""
Entry point for running the criage CLI as a module.

Usage: python -m criage [command] [options]
"""

from criage.cli.parser import main

if __name__ == "__main__":
    main()
