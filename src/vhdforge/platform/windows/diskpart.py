"""
diskpart script generation and execution.

Each builder returns the script as a list of lines; DiskpartRunner writes
it to a temporary file, runs ``diskpart /s`` on it and removes the file on
every exit path.
"""

from __future__ import annotations

import os
import tempfile
from collections.abc import Iterable
from pathlib import Path

from vhdforge.core.errors import WorkspaceIOError
from vhdforge.core.logging import get_logger
from vhdforge.platform.base import CommandResult, ProcessRunner

logger = get_logger(__name__)


def _quoted(path: Path | str) -> str:
    return f'"{path}"'


def _letter(letter: str) -> str:
    return letter.strip().rstrip(":\\").upper()


def base_create_script(
    vhd_path: Path | str,
    size_gb: int,
    efi_letter: str,
    sys_letter: str,
    efi_size_mb: int = 100,
    msr_size_mb: int = 16,
) -> list[str]:
    """Create an expandable GPT disk with EFI, MSR and an NTFS system partition."""
    size_mb = int(size_gb) * 1024
    commands = [
        f"create vdisk file={_quoted(vhd_path)} maximum={size_mb} type=expandable",
        f"select vdisk file={_quoted(vhd_path)}",
        "attach vdisk",
        "convert gpt",
        f"create partition efi size={efi_size_mb}",
        'format quick fs=fat32 label="System"',
        f"assign letter={_letter(efi_letter)}",
    ]
    if msr_size_mb > 0:
        commands.append(f"create partition msr size={msr_size_mb}")
    commands += [
        "create partition primary",
        'format quick fs=ntfs label="Windows"',
        f"assign letter={_letter(sys_letter)}",
        "list volume",
        "list partition",
    ]
    return commands


def diff_create_script(child_path: Path | str, parent_path: Path | str) -> list[str]:
    """Create a differencing disk and list its partitions without letters."""
    return [
        f"create vdisk file={_quoted(child_path)} parent={_quoted(parent_path)}",
        f"select vdisk file={_quoted(child_path)}",
        "attach vdisk",
        "list partition",
    ]


def attach_script(vhd_path: Path | str) -> list[str]:
    """Attach an existing disk (no letters) and list its partitions."""
    return [
        f"select vdisk file={_quoted(vhd_path)}",
        "attach vdisk",
        "list partition",
    ]


def assign_letters_script(
    vhd_path: Path | str,
    assignments: Iterable[tuple[int, str]],
) -> list[str]:
    """
    Assign letters to partitions of an attached disk.

    ``noerr`` keeps one failed assignment from aborting the rest.
    """
    commands = [
        f"select vdisk file={_quoted(vhd_path)}",
        "attach vdisk noerr",
    ]
    for index, letter in assignments:
        commands.append(f"select partition {int(index)}")
        commands.append(f"assign letter={_letter(letter)} noerr")
    commands.append("list volume")
    return commands


def detach_script(vhd_path: Path | str, letters: Iterable[str] = ()) -> list[str]:
    """Remove temporary letters, tolerating missing ones, then detach."""
    commands: list[str] = []
    for letter in letters:
        commands.append(f"select volume={_letter(letter)} noerr")
        commands.append(f"remove letter={_letter(letter)} noerr")
    commands += [
        f"select vdisk file={_quoted(vhd_path)}",
        "detach vdisk",
    ]
    return commands


def detail_script(vhd_path: Path | str) -> list[str]:
    """Query the disk's detail block (parent reference)."""
    return [
        f"select vdisk file={_quoted(vhd_path)}",
        "detail vdisk",
    ]


class DiskpartRunner:
    """Runs diskpart scripts through a scoped temporary script file."""

    DISKPART = "diskpart.exe"

    def __init__(self, runner: ProcessRunner, tmp_dir: Path) -> None:
        self.runner = runner
        self.tmp_dir = Path(tmp_dir)

    def run(self, commands: list[str], purpose: str = "script") -> CommandResult:
        """Run ``commands`` as one diskpart script."""
        script = "\n".join(commands) + "\n"

        try:
            self.tmp_dir.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                mode="w",
                prefix=f"{purpose}_",
                suffix=".txt",
                dir=self.tmp_dir,
                delete=False,
                encoding="utf-8",
            ) as f:
                f.write(script)
                script_path = Path(f.name)
        except OSError as e:
            raise WorkspaceIOError(f"cannot write diskpart script in {self.tmp_dir}: {e}") from e

        logger.debug("diskpart script", purpose=purpose, script_path=str(script_path), script=script)

        try:
            result = self.runner.run(self.DISKPART, ["/s", str(script_path)])
        finally:
            try:
                os.unlink(script_path)
            except OSError:
                logger.warning("Could not remove diskpart script", script_path=str(script_path))

        result.script_path = script_path
        result.script = script
        return result
