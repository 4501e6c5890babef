"""
VHDForge CLI Module.

Provides command-line interface for VHDForge operations.
"""

from vhdforge.cli.main import main, cli

__all__ = ["main", "cli"]
