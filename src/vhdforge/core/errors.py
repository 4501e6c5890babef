"""
VHDForge error types.

Every failure surfaced by a workspace operation derives from VhdForgeError;
``str(exc)`` is the single descriptive message shown to the user while the
attributes keep the structured detail for audit logging.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from vhdforge.core.logging import truncate

if TYPE_CHECKING:
    from vhdforge.core.safety import PreflightReport
    from vhdforge.platform.base import CommandResult


class VhdForgeError(Exception):
    """Base class for all workspace errors."""


class WorkspaceIOError(VhdForgeError):
    """A file or directory operation failed."""


class StoreError(VhdForgeError):
    """The durable node store rejected a read or write."""


class NodeNotFoundError(VhdForgeError):
    """A referenced node (or parent node) is not in the store."""

    def __init__(self, node_id: str, role: str = "node") -> None:
        self.node_id = node_id
        self.role = role
        super().__init__(f"{role} not found: {node_id}")


class NoFreeDriveLetterError(VhdForgeError):
    """No drive letter in the reserved range is free."""

    def __init__(self, needed: int, candidates: str, free: list[str]) -> None:
        self.needed = needed
        self.candidates = candidates
        self.free = free
        first, last = candidates[0], candidates[-1]
        super().__init__(
            f"no free drive letter available between {first}: and {last}: "
            f"(needed {needed}, free {len(free)})"
        )


class PartitionDetectionError(VhdForgeError):
    """A partition role could not be inferred from the listing output."""


class BootEntryMissingError(VhdForgeError):
    """The node has no bound boot entry but the operation requires one."""

    def __init__(self, node_id: str) -> None:
        self.node_id = node_id
        super().__init__(f"node {node_id} has no boot entry")


class PreflightError(VhdForgeError):
    """Preflight checks failed before the operation started."""

    def __init__(self, operation: str, report: PreflightReport) -> None:
        self.operation = operation
        self.report = report
        failed = [c.message for c in report.checks if not c.passed and c.severity in ("error", "critical")]
        super().__init__(f"{operation} preflight failed: {'; '.join(failed)}")


class CommandFailedError(VhdForgeError):
    """An external disk, image or boot tool exited with a nonzero status."""

    def __init__(
        self,
        operation: str,
        exit_code: int | None,
        stdout: str = "",
        stderr: str = "",
        script_path: Path | str | None = None,
        limit: int = 800,
    ) -> None:
        self.operation = operation
        self.exit_code = exit_code
        self.stdout = stdout
        self.stderr = stderr
        self.script_path = str(script_path) if script_path else None
        self.limit = limit
        super().__init__(self._build_message())

    @classmethod
    def from_result(
        cls, operation: str, result: CommandResult, limit: int = 800
    ) -> CommandFailedError:
        return cls(
            operation,
            result.returncode,
            stdout=result.stdout,
            stderr=result.stderr,
            script_path=result.script_path,
            limit=limit,
        )

    def _build_message(self) -> str:
        parts = []
        if self.exit_code is not None:
            parts.append(f"exit={self.exit_code}")
        if self.script_path:
            parts.append(f"script={self.script_path}")
        stderr = self.stderr.strip()
        stdout = self.stdout.strip()
        if stderr:
            parts.append(f"stderr={truncate(stderr, self.limit)}")
        elif stdout:
            parts.append(f"stdout={truncate(stdout, self.limit)}")
        else:
            parts.append("no output")
        return f"{self.operation} failed: {' | '.join(parts)}"
