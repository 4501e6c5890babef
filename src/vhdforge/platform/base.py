"""
VHDForge process execution.

Runs the external command-line tools the workspace is built on and returns
their exit status and captured output as text.
"""

from __future__ import annotations

import subprocess
import time
from pathlib import Path

from vhdforge.core.logging import get_logger

logger = get_logger(__name__)


class CommandResult:
    """Result of a command execution."""

    def __init__(
        self,
        returncode: int,
        stdout: str,
        stderr: str,
        command: str | list[str],
        duration_seconds: float = 0.0,
        script_path: Path | None = None,
        script: str | None = None,
    ) -> None:
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        self.command = command
        self.duration_seconds = duration_seconds
        self.script_path = script_path
        self.script = script

    @property
    def success(self) -> bool:
        return self.returncode == 0

    def __repr__(self) -> str:
        cmd = self.command if isinstance(self.command, str) else " ".join(self.command)
        return f"CommandResult(rc={self.returncode}, cmd='{cmd[:50]}...')"


def _hidden_startupinfo() -> subprocess.STARTUPINFO | None:
    startupinfo_cls = getattr(subprocess, "STARTUPINFO", None)
    if startupinfo_cls is None:
        return None
    # Keep diskpart/bcdedit consoles from flashing up
    startupinfo = startupinfo_cls()
    startupinfo.dwFlags |= subprocess.STARTF_USESHOWWINDOW
    startupinfo.wShowWindow = subprocess.SW_HIDE
    return startupinfo


def _ps_quote(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


class ProcessRunner:
    """Runs external programs, optionally with elevated privilege."""

    POWERSHELL = "powershell.exe"

    def run(
        self,
        program: str,
        args: list[str],
        workdir: Path | None = None,
    ) -> CommandResult:
        """Run a program to completion and capture its output."""
        command = [program, *args]
        logger.debug("Running command", command=command, workdir=str(workdir) if workdir else None)
        start_time = time.time()

        try:
            result = subprocess.run(
                command,
                capture_output=True,
                text=True,
                errors="replace",
                cwd=workdir,
                startupinfo=_hidden_startupinfo(),
            )
        except OSError as e:
            return CommandResult(
                returncode=-1,
                stdout="",
                stderr=f"Failed to run {program}: {e}",
                command=command,
                duration_seconds=time.time() - start_time,
            )

        return CommandResult(
            returncode=result.returncode,
            stdout=result.stdout or "",
            stderr=result.stderr or "",
            command=command,
            duration_seconds=time.time() - start_time,
        )

    def run_elevated(
        self,
        program: str,
        args: list[str],
        workdir: Path | None = None,
    ) -> CommandResult:
        """
        Run a program with administrative privilege.

        Runs directly when this process is already elevated; otherwise asks
        the OS for elevation through PowerShell. The elevated child's own
        output cannot be captured, only its exit code.
        """
        from vhdforge.platform import is_admin

        if is_admin():
            return self.run(program, args, workdir)

        arg_list = ",".join(_ps_quote(a) for a in args) if args else "@()"
        script = (
            f"$p = Start-Process -FilePath {_ps_quote(program)} -ArgumentList {arg_list} "
            "-Verb RunAs -Wait -PassThru -WindowStyle Hidden"
        )
        if workdir is not None:
            script += f" -WorkingDirectory {_ps_quote(str(workdir))}"
        script += "; exit $p.ExitCode"

        logger.info("Requesting elevation", program=program, args=args)
        return self.run(
            self.POWERSHELL,
            ["-NoProfile", "-NonInteractive", "-ExecutionPolicy", "Bypass", "-Command", script],
        )
