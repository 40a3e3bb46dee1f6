"""
Entry point for running permsync as a module.

Usage:
    python -m permsync --help
    python -m permsync compare
    python -m permsync sync --dry-run
"""

from permsync.cli import cli

if __name__ == "__main__":
    cli()
