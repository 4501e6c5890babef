"""
VHDForge - Native-boot virtual disk workspace manager.

Creates base and differencing VHDX disks, deploys OS images onto them,
registers them with the Windows boot manager and keeps a durable record of
the disk tree reconciled against storage and the boot store.
"""

__version__ = "1.0.0"
__author__ = "VHDForge Team"

from vhdforge.core.config import VhdForgeConfig
from vhdforge.core.session import Workspace

__all__ = ["VhdForgeConfig", "Workspace", "__version__"]
