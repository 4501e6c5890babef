"""
VHDForge preflight checks.

Checks run before a lifecycle operation touches the host: privilege,
input files and power state. A report with errors stops the operation
before any sequence number is consumed or any tool is invoked.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Callable

from vhdforge.core.logging import get_logger

logger = get_logger(__name__)

CheckFunc = Callable[[dict[str, Any]], "PreflightCheck | bool"]


@dataclass
class PreflightCheck:
    """Result of a single preflight check."""

    name: str
    passed: bool
    message: str
    severity: str = "info"  # info, warning, error, critical
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class PreflightReport:
    """Complete preflight check report."""

    checks: list[PreflightCheck] = field(default_factory=list)
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def all_passed(self) -> bool:
        return all(c.passed for c in self.checks)

    @property
    def has_errors(self) -> bool:
        return any(c.severity in ("error", "critical") and not c.passed for c in self.checks)

    @property
    def has_warnings(self) -> bool:
        return any(c.severity == "warning" and not c.passed for c in self.checks)

    def get_summary(self) -> str:
        """Get human-readable summary."""
        lines = [f"Preflight Check Report ({self.timestamp.isoformat()})"]
        lines.append("=" * 60)

        passed = sum(1 for c in self.checks if c.passed)
        total = len(self.checks)
        lines.append(f"Results: {passed}/{total} checks passed")
        lines.append("")

        for check in self.checks:
            status = "✓" if check.passed else "✗"
            lines.append(f"[{status}] {check.name}: {check.message}")
            if check.details:
                for key, value in check.details.items():
                    lines.append(f"    {key}: {value}")

        return "\n".join(lines)


class PreflightChecker:
    """Performs preflight checks before operations."""

    def __init__(self) -> None:
        self._checks: list[tuple[str, CheckFunc, frozenset[str] | None]] = []

    def add_check(
        self,
        name: str,
        check_func: CheckFunc,
        operations: set[str] | None = None,
    ) -> None:
        """Add a check, optionally limited to the named operations."""
        self._checks.append((name, check_func, frozenset(operations) if operations else None))

    @property
    def check_names(self) -> list[str]:
        return [name for name, _, _ in self._checks]

    def run_checks(self, operation: str, context: dict[str, Any]) -> PreflightReport:
        """Run all checks applying to ``operation`` and return the report."""
        report = PreflightReport()

        for name, check_func, operations in self._checks:
            if operations is not None and operation not in operations:
                continue
            try:
                result = check_func(context)
                if isinstance(result, PreflightCheck):
                    report.checks.append(result)
                elif isinstance(result, bool):
                    report.checks.append(
                        PreflightCheck(
                            name=name,
                            passed=result,
                            message="Passed" if result else "Failed",
                            severity="info" if result else "error",
                        )
                    )
            except Exception as e:
                report.checks.append(
                    PreflightCheck(
                        name=name,
                        passed=False,
                        message=f"Check failed with error: {e}",
                        severity="error",
                    )
                )

        logger.debug(
            "Preflight checks complete",
            operation=operation,
            passed=report.all_passed,
            checks=len(report.checks),
        )
        return report


def check_admin(context: dict[str, Any]) -> PreflightCheck:
    """Check that the process can drive diskpart and bcdedit."""
    from vhdforge.platform import is_admin

    if is_admin():
        return PreflightCheck(
            name="Administrator",
            passed=True,
            message="Running with administrative privileges",
        )
    return PreflightCheck(
        name="Administrator",
        passed=False,
        message="Administrative privileges are required",
        severity="error",
    )


def check_power_status(context: dict[str, Any]) -> PreflightCheck:
    """Check if system is on AC power (not battery)."""
    try:
        import psutil

        battery = psutil.sensors_battery()
        if battery is None:
            return PreflightCheck(
                name="Power Status",
                passed=True,
                message="No battery detected (desktop/server)",
            )

        if battery.power_plugged:
            return PreflightCheck(
                name="Power Status",
                passed=True,
                message="System is on AC power",
                details={"battery_percent": battery.percent},
            )
        return PreflightCheck(
            name="Power Status",
            passed=battery.percent > 50,
            message=f"System on battery ({battery.percent}%)",
            severity="warning" if battery.percent > 50 else "error",
            details={"battery_percent": battery.percent},
        )
    except Exception as e:
        return PreflightCheck(
            name="Power Status",
            passed=True,
            message=f"Could not check power status: {e}",
            severity="info",
        )


def check_image_file(context: dict[str, Any]) -> PreflightCheck:
    """Check that the deployable image file exists."""
    image_file = context.get("image_file")
    if image_file and Path(image_file).is_file():
        return PreflightCheck(
            name="Image File",
            passed=True,
            message="Image file found",
            details={"image_file": str(image_file)},
        )
    return PreflightCheck(
        name="Image File",
        passed=False,
        message=f"Image file not found: {image_file}",
        severity="error",
    )


def check_parent_disk(context: dict[str, Any]) -> PreflightCheck:
    """Check that the parent virtual disk is still on storage."""
    parent_path = context.get("parent_path")
    if parent_path and Path(parent_path).is_file():
        return PreflightCheck(
            name="Parent Disk",
            passed=True,
            message="Parent disk found",
            details={"parent_path": str(parent_path)},
        )
    return PreflightCheck(
        name="Parent Disk",
        passed=False,
        message=f"Parent disk file not found: {parent_path}",
        severity="error",
    )


def create_vhd_preflight_checker(
    require_admin: bool = True,
    power_check: bool = True,
) -> PreflightChecker:
    """Create a preflight checker for the disk lifecycle operations."""
    checker = PreflightChecker()
    if require_admin:
        checker.add_check("Administrator", check_admin)
    if power_check:
        checker.add_check("Power Status", check_power_status, {"create_base", "create_diff"})
    checker.add_check("Image File", check_image_file, {"create_base"})
    checker.add_check("Parent Disk", check_parent_disk, {"create_diff"})
    return checker
