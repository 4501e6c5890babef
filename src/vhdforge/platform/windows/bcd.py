"""
Boot configuration adapter.

Wraps bcdboot (install boot files) and bcdedit (enumerate, boot sequence,
description, delete) for the host's default boot store.
"""

from __future__ import annotations

from vhdforge.core.logging import get_logger
from vhdforge.platform.base import CommandResult, ProcessRunner
from vhdforge.platform.windows.parsers import (
    extract_guid_for_partition_letter,
    extract_guid_for_vhd,
)

logger = get_logger(__name__)


class BootAdapter:
    """Boot-manager operations needed by the node lifecycle."""

    BCDBOOT = "bcdboot.exe"
    BCDEDIT = "bcdedit.exe"
    SHUTDOWN = "shutdown.exe"

    def __init__(self, runner: ProcessRunner) -> None:
        self.runner = runner

    def install_boot_files(self, system_letter: str) -> CommandResult:
        """Register the Windows install on ``system_letter`` in the default store."""
        windows_dir = f"{system_letter.strip().rstrip(':').upper()}:\\Windows"
        return self.runner.run(self.BCDBOOT, [windows_dir, "/d"])

    def enum_all(self) -> CommandResult:
        return self.runner.run(self.BCDEDIT, ["/enum", "all"])

    def set_boot_sequence(self, guid: str) -> CommandResult:
        """Make ``guid`` the one-time entry for the next boot."""
        return self.runner.run(self.BCDEDIT, ["/bootsequence", guid])

    def set_description(self, guid: str, description: str) -> CommandResult:
        return self.runner.run(self.BCDEDIT, ["/set", guid, "description", description])

    def delete_entry(self, guid: str) -> CommandResult:
        return self.runner.run(self.BCDEDIT, ["/delete", guid])

    def reboot_now(self) -> CommandResult:
        return self.runner.run_elevated(self.SHUTDOWN, ["/r", "/t", "0"])

    @staticmethod
    def find_guid(
        enum_output: str,
        vhd_path: str,
        letter: str | None = None,
    ) -> str | None:
        """Resolve an entry by disk path, falling back to the mounted letter."""
        guid = extract_guid_for_vhd(enum_output, vhd_path)
        if guid is None and letter:
            guid = extract_guid_for_partition_letter(enum_output, letter)
            if guid is not None:
                logger.info("Boot entry resolved by drive letter", letter=letter, guid=guid)
        return guid
