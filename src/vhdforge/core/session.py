"""
VHDForge workspace session.

Wires configuration, logging, the directory layout, the node store, the
process runner and the drive-letter allocator into one reconciler for a
workspace root.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from pathlib import Path
from typing import Any

from vhdforge.core.config import VhdForgeConfig, load_config
from vhdforge.core.errors import VhdForgeError
from vhdforge.core.logging import (
    attach_workspace_log,
    detach_log_handler,
    get_logger,
    setup_logging,
)
from vhdforge.core.paths import WorkspacePaths
from vhdforge.core.safety import create_vhd_preflight_checker
from vhdforge.core.store import SqlNodeStore
from vhdforge.platform.base import ProcessRunner
from vhdforge.platform.windows.letters import (
    DriveLetterAllocator,
    DriveLetterSource,
    HostDriveLetters,
)
from vhdforge.workspace.reconciler import WorkspaceReconciler

logger = get_logger(__name__)


class Workspace:
    """
    An opened workspace root.

    This is the main entry point for all VHDForge operations; the CLI talks
    to ``workspace.reconciler``.
    """

    def __init__(
        self,
        config: VhdForgeConfig | None = None,
        root: Path | str | None = None,
        runner: ProcessRunner | None = None,
        letter_source: DriveLetterSource | None = None,
    ) -> None:
        self.id = str(uuid.uuid4())
        self.config = config or load_config()
        self.started_at = datetime.now()

        setup_logging(self.config.logging)

        root = root or self.config.workspace.root
        if root is None:
            raise VhdForgeError("no workspace root configured (use --root or set workspace.root)")

        self.paths = WorkspacePaths(root)
        self.paths.ensure_layout()
        self.store = SqlNodeStore.open(self.paths.state_db_path)

        self.runner = runner or ProcessRunner()
        workspace_config = self.config.workspace
        self.letters = DriveLetterAllocator(
            letter_source or HostDriveLetters(),
            workspace_config.reserved_letters,
        )

        safety = self.config.safety
        preflight = None
        if safety.preflight_checks_enabled:
            preflight = create_vhd_preflight_checker(
                require_admin=safety.require_admin,
                power_check=safety.power_check_enabled,
            )

        self.reconciler = WorkspaceReconciler(
            store=self.store,
            paths=self.paths,
            runner=self.runner,
            letters=self.letters,
            preflight=preflight,
            output_limit=workspace_config.output_limit,
            vhd_extensions=workspace_config.vhd_extensions,
            efi_size_mb=workspace_config.efi_size_mb,
            msr_size_mb=workspace_config.msr_size_mb,
        )

        self.log_handler = None
        if self.config.logging.workspace_log_enabled:
            self.log_handler = attach_workspace_log(self.paths.log_dir)

        logger.info("Workspace opened", session_id=self.id, root=str(self.paths.root))

    def close(self) -> None:
        """Release the store connection."""
        self.store.close()
        logger.info(
            "Workspace closed",
            session_id=self.id,
            duration_seconds=(datetime.now() - self.started_at).total_seconds(),
        )
        if self.log_handler is not None:
            detach_log_handler(self.log_handler)
            self.log_handler = None

    def __enter__(self) -> Workspace:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
