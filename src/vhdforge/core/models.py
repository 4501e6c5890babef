"""
VHDForge data models.

Defines the persisted node/operation records and the ephemeral facts parsed
out of disk, boot and image tool output.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class NodeStatus(Enum):
    """Health of a node, recomputed on every scan."""

    NORMAL = "normal"
    MISSING_FILE = "missing_file"
    MISSING_PARENT = "missing_parent"
    MISSING_BCD = "missing_bcd"
    MOUNTED = "mounted"
    ERROR = "error"

    @classmethod
    def from_string(cls, value: str | None) -> NodeStatus:
        """Create NodeStatus from a stored value, defaulting to NORMAL."""
        if not value:
            return cls.NORMAL
        value_lower = value.strip().lower()
        for status in cls:
            if status.value == value_lower or status.name.lower() == value_lower:
                return status
        # Older records stored the CamelCase variant name
        aliases = {
            "missingfile": cls.MISSING_FILE,
            "missingparent": cls.MISSING_PARENT,
            "missingbcd": cls.MISSING_BCD,
        }
        return aliases.get(value_lower, cls.NORMAL)


@dataclass
class Node:
    """A virtual disk image registered in the workspace."""

    id: str
    name: str
    path: str
    parent_id: str | None = None
    desc: str | None = None
    bcd_guid: str | None = None
    created_at: datetime = field(default_factory=utc_now)
    status: NodeStatus = NodeStatus.NORMAL
    boot_files_ready: bool = False

    @property
    def is_base(self) -> bool:
        return self.parent_id is None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "parent_id": self.parent_id,
            "name": self.name,
            "path": self.path,
            "bcd_guid": self.bcd_guid,
            "desc": self.desc,
            "created_at": self.created_at.isoformat(),
            "status": self.status.value,
            "boot_files_ready": self.boot_files_ready,
        }


@dataclass
class OperationRecord:
    """Append-only audit entry for one lifecycle operation."""

    id: str
    action: str
    result: str
    node_id: str | None = None
    detail: str = ""
    timestamp: datetime = field(default_factory=utc_now)

    @property
    def success(self) -> bool:
        return self.result == "ok"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "node_id": self.node_id,
            "timestamp": self.timestamp.isoformat(),
            "action": self.action,
            "result": self.result,
            "detail": self.detail,
        }


@dataclass
class VolumeInfo:
    """One row of a diskpart volume listing."""

    number: int
    letter: str | None = None
    label: str | None = None
    filesystem: str | None = None
    guid: str | None = None


@dataclass
class PartitionInfo:
    """One row of a diskpart partition listing."""

    index: int
    kind: str
    size_mb: int | None = None

    @property
    def kind_lower(self) -> str:
        return self.kind.lower()


@dataclass
class VhdDetail:
    """Facts extracted from ``detail vdisk`` output."""

    parent: str | None = None


@dataclass
class WimImageInfo:
    """An image entry inside a deployable image file."""

    index: int
    name: str = ""
    description: str | None = None
    size: str | None = None
    size_bytes: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "name": self.name,
            "description": self.description,
            "size": self.size,
            "size_bytes": self.size_bytes,
        }


@dataclass
class ScanReport:
    """Outcome of one scan/reconcile pass."""

    nodes: list[Node] = field(default_factory=list)
    discovered_paths: list[str] = field(default_factory=list)
    inserted: list[str] = field(default_factory=list)
    relinked: list[str] = field(default_factory=list)
    rebound: list[str] = field(default_factory=list)
    status_changes: dict[str, tuple[NodeStatus, NodeStatus]] = field(default_factory=dict)
    failures: list[str] = field(default_factory=list)
    timestamp: datetime = field(default_factory=utc_now)

    @property
    def changed(self) -> bool:
        return bool(self.inserted or self.relinked or self.rebound or self.status_changes)

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "nodes": [n.to_dict() for n in self.nodes],
            "discovered_paths": self.discovered_paths,
            "inserted": self.inserted,
            "relinked": self.relinked,
            "rebound": self.rebound,
            "status_changes": {
                node_id: [old.value, new.value]
                for node_id, (old, new) in self.status_changes.items()
            },
            "failures": self.failures,
        }


@dataclass
class DeleteReport:
    """Outcome of a best-effort subtree deletion."""

    root_id: str
    deleted: list[str] = field(default_factory=list)
    failures: list[str] = field(default_factory=list)

    @property
    def clean(self) -> bool:
        return not self.failures

    def to_dict(self) -> dict[str, Any]:
        return {
            "root_id": self.root_id,
            "deleted": self.deleted,
            "failures": self.failures,
        }
