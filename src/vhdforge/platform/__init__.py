"""
VHDForge Platform Layer.

Process execution plus the Windows adapters for diskpart, bcdboot/bcdedit,
DISM and drive-letter allocation.
"""

from __future__ import annotations

import platform

from vhdforge.platform.base import CommandResult, ProcessRunner


def is_admin() -> bool:
    """Check if running with administrative privileges."""
    if platform.system().lower() != "windows":
        return False

    import ctypes

    try:
        return ctypes.windll.shell32.IsUserAnAdmin() != 0
    except Exception:
        return False


__all__ = [
    "CommandResult",
    "ProcessRunner",
    "is_admin",
]
