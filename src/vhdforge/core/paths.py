"""
Workspace directory layout.
"""

from __future__ import annotations

from pathlib import Path

from vhdforge.core.errors import WorkspaceIOError


class WorkspacePaths:
    """Directory roots of one workspace."""

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root).expanduser().resolve()

    @property
    def base_dir(self) -> Path:
        return self.root / "base"

    @property
    def diff_dir(self) -> Path:
        return self.root / "diff"

    @property
    def meta_dir(self) -> Path:
        return self.root / "meta"

    @property
    def tmp_dir(self) -> Path:
        return self.meta_dir / "tmp"

    @property
    def log_dir(self) -> Path:
        return self.meta_dir / "logs"

    @property
    def mount_root(self) -> Path:
        return self.meta_dir / "mnt"

    @property
    def state_db_path(self) -> Path:
        return self.meta_dir / "state.db"

    def ensure_layout(self) -> None:
        """Create the expected directory layout."""
        for directory in (
            self.root,
            self.base_dir,
            self.diff_dir,
            self.meta_dir,
            self.tmp_dir,
            self.mount_root,
            self.log_dir,
        ):
            try:
                directory.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise WorkspaceIOError(f"cannot create {directory}: {e}") from e

    def __repr__(self) -> str:
        return f"WorkspacePaths(root='{self.root}')"
