"""
VHDForge Windows Platform Adapters.

Implements the workspace tooling on top of Windows tools:
- diskpart for creating, attaching and detaching virtual disks
- bcdboot/bcdedit for boot entries
- DISM for applying OS images
"""

from vhdforge.platform.windows.bcd import BootAdapter
from vhdforge.platform.windows.diskpart import DiskpartRunner
from vhdforge.platform.windows.dism import ImageDeployer
from vhdforge.platform.windows.letters import (
    DriveLetterAllocator,
    HostDriveLetters,
    StaticDriveLetters,
)
from vhdforge.platform.windows.parsers import (
    extract_guid_for_partition_letter,
    extract_guid_for_vhd,
    parse_boot_identifiers,
    parse_detail_vdisk,
    parse_list_partition,
    parse_list_volume,
    parse_wim_info,
)

__all__ = [
    "BootAdapter",
    "DiskpartRunner",
    "ImageDeployer",
    "DriveLetterAllocator",
    "HostDriveLetters",
    "StaticDriveLetters",
    "extract_guid_for_partition_letter",
    "extract_guid_for_vhd",
    "parse_boot_identifiers",
    "parse_detail_vdisk",
    "parse_list_partition",
    "parse_list_volume",
    "parse_wim_info",
]
