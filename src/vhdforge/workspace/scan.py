"""
Helpers for the scan/reconcile pass: path keys, discovery, naming and
status derivation.
"""

from __future__ import annotations

import os
import re
from pathlib import Path

from vhdforge.core.models import Node, NodeStatus

_LONG_PATH_PREFIXES = ("\\\\?\\unc\\", "\\\\?\\", "\\??\\")
_SEQ_PREFIX_RE = re.compile(r"^\d+[-_ ]+")
_SLUG_RE = re.compile(r"[^a-z0-9._-]+")


def normalize_path(path: Path | str) -> str:
    """
    Key for comparing Windows paths.

    Lower-cased, forward slashes turned into back slashes and the long-path
    prefix stripped. Applying it twice gives the same key.
    """
    key = str(path).strip().replace("/", "\\").lower()
    for prefix in _LONG_PATH_PREFIXES:
        if key.startswith(prefix):
            key = ("\\\\" if prefix.endswith("unc\\") else "") + key[len(prefix) :]
            break
    return key


def slugify(name: str) -> str:
    slug = _SLUG_RE.sub("-", name.strip().lower()).strip("-.")
    return slug or "disk"


def node_file_name(seq: int, name: str, extension: str = ".vhdx") -> str:
    """Deterministic file name for a new disk, e.g. ``0007-win11-dev.vhdx``."""
    return f"{seq:04d}-{slugify(name)}{extension}"


def name_from_filename(path: Path | str) -> str:
    """Display name for a discovered file: the stem minus its sequence prefix."""
    stem = Path(str(path).replace("\\", "/")).stem
    return _SEQ_PREFIX_RE.sub("", stem) or stem


def discover_vhd_files(root: Path, extensions: list[str] | None = None) -> list[Path]:
    """Recursively find virtual-disk files under ``root``, sorted."""
    wanted = {e.lower() for e in (extensions or [".vhdx", ".vhd"])}
    found: list[Path] = []
    if not root.is_dir():
        return found
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames.sort()
        for filename in sorted(filenames):
            if os.path.splitext(filename)[1].lower() in wanted:
                found.append(Path(dirpath) / filename)
    return found


def derive_status(
    node: Node,
    file_exists: bool,
    detail_failed: bool,
    discovered_parent_id: str | None,
    has_discovered_parent: bool,
) -> NodeStatus:
    """
    Status of a node after merging.

    ``discovered_parent_id`` is the discovered parent reference mapped to a
    node id (None when it maps to nothing); ``has_discovered_parent`` says
    whether the disk reported a parent at all.
    """
    if not file_exists:
        return NodeStatus.MISSING_FILE
    if detail_failed:
        return NodeStatus.ERROR
    if has_discovered_parent:
        if discovered_parent_id is None or discovered_parent_id != node.parent_id:
            return NodeStatus.MISSING_PARENT
    elif node.parent_id is not None:
        return NodeStatus.MISSING_PARENT
    return NodeStatus.NORMAL
