"""
VHDForge workspace reconciler.

Sequences the diskpart, DISM and boot adapters to implement the node
lifecycle (create base, create differencing disk, delete a subtree, bind or
remove boot entries, boot into a node) and the scan pass that merges what is
on storage and in the boot store into the persisted node tree.
"""

from __future__ import annotations

import threading
import uuid
from collections import defaultdict, deque
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from vhdforge.core.errors import (
    BootEntryMissingError,
    CommandFailedError,
    NodeNotFoundError,
    PartitionDetectionError,
    PreflightError,
    StoreError,
    VhdForgeError,
)
from vhdforge.core.logging import OperationLogger, get_logger, truncate
from vhdforge.core.models import (
    DeleteReport,
    Node,
    NodeStatus,
    OperationRecord,
    ScanReport,
    VhdDetail,
    WimImageInfo,
)
from vhdforge.core.paths import WorkspacePaths
from vhdforge.core.safety import PreflightChecker
from vhdforge.core.store import NodeStore
from vhdforge.platform.base import CommandResult, ProcessRunner
from vhdforge.platform.windows.bcd import BootAdapter
from vhdforge.platform.windows.diskpart import (
    DiskpartRunner,
    assign_letters_script,
    attach_script,
    base_create_script,
    detach_script,
    detail_script,
    diff_create_script,
)
from vhdforge.platform.windows.dism import ImageDeployer
from vhdforge.platform.windows.letters import DriveLetterAllocator
from vhdforge.platform.windows.parsers import (
    extract_guid_for_vhd,
    parse_boot_identifiers,
    parse_detail_vdisk,
    parse_list_partition,
    select_efi_partition,
    select_system_partition,
)
from vhdforge.workspace.scan import (
    derive_status,
    discover_vhd_files,
    name_from_filename,
    node_file_name,
    normalize_path,
)

logger = get_logger(__name__)

# Held for every mutating operation and scan. Drive letters and the boot
# store are host-wide, so the lock is shared by all reconcilers in a process.
_WORKSPACE_LOCK = threading.RLock()


def _new_id() -> str:
    return str(uuid.uuid4())


class WorkspaceReconciler:
    """Lifecycle operations and scan/reconcile for one workspace root."""

    def __init__(
        self,
        store: NodeStore,
        paths: WorkspacePaths,
        runner: ProcessRunner,
        letters: DriveLetterAllocator,
        diskpart: DiskpartRunner | None = None,
        boot: BootAdapter | None = None,
        deployer: ImageDeployer | None = None,
        preflight: PreflightChecker | None = None,
        output_limit: int = 800,
        vhd_extensions: list[str] | None = None,
        efi_size_mb: int = 100,
        msr_size_mb: int = 16,
    ) -> None:
        self.store = store
        self.paths = paths
        self.runner = runner
        self.letters = letters
        self.diskpart = diskpart or DiskpartRunner(runner, paths.tmp_dir)
        self.boot = boot or BootAdapter(runner)
        self.deployer = deployer or ImageDeployer(runner, output_limit)
        self.preflight = preflight
        self.output_limit = output_limit
        self.vhd_extensions = vhd_extensions or [".vhdx", ".vhd"]
        self.efi_size_mb = efi_size_mb
        self.msr_size_mb = msr_size_mb
        self._lock = _WORKSPACE_LOCK

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _log_command(self, name: str, result: CommandResult) -> None:
        log = logger.info if result.success else logger.warning
        log(
            "Command finished",
            command=name,
            exit_code=result.returncode,
            script_path=str(result.script_path) if result.script_path else None,
            duration_seconds=round(result.duration_seconds, 3),
            stderr=truncate(result.stderr.strip(), self.output_limit),
            stdout=truncate(result.stdout.strip(), self.output_limit),
        )

    def _check(self, name: str, result: CommandResult) -> CommandResult:
        """Log ``result`` and raise CommandFailedError on a nonzero exit."""
        self._log_command(name, result)
        if not result.success:
            raise CommandFailedError.from_result(name, result, self.output_limit)
        return result

    def _record(self, action: str, result: str, node_id: str | None, detail: str = "") -> None:
        self.store.insert_op(_new_id(), node_id, action, result, detail)

    @contextmanager
    def _audit_failures(self, action: str, node_id: str | None = None) -> Iterator[None]:
        """Append an ``error`` audit record for any failure, then re-raise."""
        try:
            yield
        except VhdForgeError as e:
            try:
                self._record(action, "error", node_id, str(e))
            except StoreError as store_error:
                logger.error(
                    "Could not record failed operation",
                    action=action,
                    node_id=node_id,
                    error=str(store_error),
                )
            raise

    def _run_preflight(self, operation: str, **context: object) -> None:
        if self.preflight is None:
            return
        report = self.preflight.run_checks(operation, dict(context))
        if report.has_warnings:
            logger.warning("Preflight warnings", operation=operation, summary=report.get_summary())
        if report.has_errors:
            raise PreflightError(operation, report)

    def _require_node(self, node_id: str, role: str = "node") -> Node:
        node = self.store.fetch_node(node_id)
        if node is None:
            raise NodeNotFoundError(node_id, role)
        return node

    def _detach(self, vhd_path: Path | str, letters: list[str], purpose: str) -> bool:
        """Best-effort detach; failures are logged, never raised."""
        try:
            result = self.diskpart.run(detach_script(vhd_path, letters), purpose=purpose)
        except VhdForgeError as e:
            logger.warning("Detach failed", path=str(vhd_path), error=str(e))
            return False
        self._log_command(f"diskpart {purpose}", result)
        if not result.success:
            logger.warning("Detach returned an error", path=str(vhd_path), exit_code=result.returncode)
        return result.success

    def _remove_partial(self, vhd_path: Path) -> None:
        try:
            if vhd_path.exists():
                vhd_path.unlink()
                logger.info("Removed partially created disk", path=str(vhd_path))
        except OSError as e:
            logger.warning("Could not remove partially created disk", path=str(vhd_path), error=str(e))

    def _install_boot(self, vhd_path: Path | str, system_letter: str) -> str | None:
        """Install boot files from ``system_letter`` and resolve the new entry."""
        self._check("bcdboot", self.boot.install_boot_files(system_letter))

        enum_result = self.boot.enum_all()
        self._log_command("bcdedit enum", enum_result)
        if not enum_result.success:
            logger.warning("Could not enumerate boot entries", path=str(vhd_path))
            return None

        guid = BootAdapter.find_guid(enum_result.stdout, str(vhd_path), system_letter)
        if guid is None:
            logger.warning("No boot entry matched disk", path=str(vhd_path), letter=system_letter)
        return guid

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def list_nodes(self) -> list[Node]:
        """Persisted tree as stored; runs no external tools."""
        return self.store.fetch_nodes()

    def list_wim_images(self, image_path: Path | str) -> list[WimImageInfo]:
        with OperationLogger("list_wim_images", logger, image_path=str(image_path)):
            return self.deployer.list_images(image_path)

    def history(self, node_id: str | None = None) -> list[OperationRecord]:
        return self.store.fetch_ops(node_id)

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_base(
        self,
        name: str,
        desc: str | None,
        image_file: Path | str,
        image_index: int,
        size_gb: int,
    ) -> Node:
        """
        Create a base disk, apply an OS image onto it and register it for boot.

        Nothing is persisted unless every step up to boot-file installation
        succeeds. The partially created file is removed on failure.
        """
        with self._lock, OperationLogger(
            "create_base", logger, name=name, image_index=image_index, size_gb=size_gb
        ) as op, self._audit_failures("create_base"):
            if not name.strip():
                raise VhdForgeError("node name must not be empty")
            if size_gb <= 0:
                raise VhdForgeError(f"disk size must be positive, got {size_gb} GB")

            self._run_preflight("create_base", image_file=str(image_file))
            self.paths.ensure_layout()

            seq = self.store.next_seq()
            node_id = _new_id()
            vhd_path = self.paths.base_dir / node_file_name(seq, name)
            efi_letter, sys_letter = self.letters.allocate(2)
            op.update(node_id=node_id, path=str(vhd_path), efi_letter=efi_letter, sys_letter=sys_letter)

            create_result = self.diskpart.run(
                base_create_script(
                    vhd_path,
                    size_gb,
                    efi_letter,
                    sys_letter,
                    efi_size_mb=self.efi_size_mb,
                    msr_size_mb=self.msr_size_mb,
                ),
                purpose="create_base",
            )
            succeeded = False
            try:
                self._check("diskpart create base", create_result)
                self._check(
                    "dism apply",
                    self.deployer.apply_image(image_file, image_index, f"{sys_letter}:\\"),
                )
                guid = self._install_boot(vhd_path, sys_letter)
                succeeded = True
            finally:
                self._detach(vhd_path, [efi_letter, sys_letter], purpose="detach_base")
                if not succeeded:
                    self._remove_partial(vhd_path)

            node = Node(
                id=node_id,
                name=name,
                path=str(vhd_path),
                desc=desc,
                bcd_guid=guid,
                status=NodeStatus.NORMAL,
                boot_files_ready=guid is not None,
            )
            self.store.insert_node(node)
            self._record("create_base", "ok", node_id, f"path={vhd_path} guid={guid or '-'}")
            op.update(guid=guid)
            return node

    def create_diff(self, parent_id: str, name: str, desc: str | None = None) -> Node:
        """Create a differencing disk chained to ``parent_id`` and register it for boot."""
        with self._lock, OperationLogger(
            "create_diff", logger, parent_id=parent_id, name=name
        ) as op, self._audit_failures("create_diff"):
            if not name.strip():
                raise VhdForgeError("node name must not be empty")
            parent = self._require_node(parent_id, role="parent node")

            self._run_preflight("create_diff", parent_path=parent.path)
            self.paths.ensure_layout()

            seq = self.store.next_seq()
            node_id = _new_id()
            vhd_path = self.paths.diff_dir / node_file_name(seq, name)
            op.update(node_id=node_id, path=str(vhd_path))

            create_result = self.diskpart.run(
                diff_create_script(vhd_path, parent.path), purpose="create_diff"
            )
            letters: list[str] = []
            succeeded = False
            try:
                self._check("diskpart create diff", create_result)

                partitions = parse_list_partition(create_result.stdout)
                system = select_system_partition(partitions)
                efi = select_efi_partition(partitions)
                if system is None or efi is None or system.index == efi.index:
                    kinds = ", ".join(f"{p.index}:{p.kind}" for p in partitions) or "none"
                    raise PartitionDetectionError(
                        f"cannot identify system and EFI partitions of {vhd_path} (found {kinds})"
                    )

                efi_letter, sys_letter = self.letters.allocate(2)
                letters = [efi_letter, sys_letter]
                op.update(efi_letter=efi_letter, sys_letter=sys_letter)
                self._check(
                    "diskpart assign letters",
                    self.diskpart.run(
                        assign_letters_script(
                            vhd_path, [(efi.index, efi_letter), (system.index, sys_letter)]
                        ),
                        purpose="assign_diff",
                    ),
                )
                guid = self._install_boot(vhd_path, sys_letter)
                succeeded = True
            finally:
                self._detach(vhd_path, letters, purpose="detach_diff")
                if not succeeded:
                    self._remove_partial(vhd_path)

            node = Node(
                id=node_id,
                name=name,
                path=str(vhd_path),
                parent_id=parent.id,
                desc=desc,
                bcd_guid=guid,
                status=NodeStatus.NORMAL,
                boot_files_ready=guid is not None,
            )
            self.store.insert_node(node)
            self._record("create_diff", "ok", node_id, f"parent={parent.id} guid={guid or '-'}")
            op.update(guid=guid)
            return node

    # ------------------------------------------------------------------
    # Deletion
    # ------------------------------------------------------------------

    def delete_subtree(self, node_id: str) -> DeleteReport:
        """
        Remove a node and all of its descendants.

        Descendants are torn down before their ancestors. Each node's boot
        entry, attachment and backing file are removed independently; a
        failed step is collected in the report and the teardown continues.
        """
        with self._lock, OperationLogger(
            "delete_subtree", logger, node_id=node_id
        ) as op, self._audit_failures("delete_subtree", node_id):
            nodes = self.store.fetch_nodes()
            by_id = {node.id: node for node in nodes}
            if node_id not in by_id:
                raise NodeNotFoundError(node_id)

            children: dict[str, list[str]] = defaultdict(list)
            for node in nodes:
                if node.parent_id is not None:
                    children[node.parent_id].append(node.id)

            order: list[str] = []
            seen: set[str] = set()
            queue = deque([node_id])
            while queue:
                current = queue.popleft()
                if current in seen:
                    continue
                seen.add(current)
                order.append(current)
                queue.extend(children[current])
            order.reverse()

            report = DeleteReport(root_id=node_id)
            for current in order:
                self._teardown_node(by_id[current], report)
                report.deleted.append(current)

            self.store.delete_nodes(order)

            result = "ok" if report.clean else "partial"
            detail = f"deleted {len(order)} node(s)"
            if report.failures:
                detail += f", {len(report.failures)} step(s) failed"
            self._record("delete_subtree", result, node_id, detail)
            op.update(deleted=len(order), failures=len(report.failures))
            return report

    def _teardown_node(self, node: Node, report: DeleteReport) -> None:
        if node.bcd_guid:
            try:
                result = self.boot.delete_entry(node.bcd_guid)
                self._log_command("bcdedit delete", result)
                if not result.success:
                    report.failures.append(
                        f"{node.id}: "
                        f"{CommandFailedError.from_result('bcdedit delete', result, self.output_limit)}"
                    )
            except VhdForgeError as e:
                report.failures.append(f"{node.id}: {e}")

        # The disk is usually not attached; a failing detach is expected
        self._detach(node.path, [], purpose="detach_delete")

        path = Path(node.path)
        try:
            if path.exists():
                path.unlink()
        except OSError as e:
            logger.warning("Could not remove disk file", node_id=node.id, path=node.path, error=str(e))
            report.failures.append(f"{node.id}: cannot remove {node.path}: {e}")

    # ------------------------------------------------------------------
    # Boot entries
    # ------------------------------------------------------------------

    def repair_bcd(self, node_id: str) -> str | None:
        """Re-create the boot entry of a node whose entry was lost."""
        return self._bind_boot_entry("repair_bcd", node_id)

    def add_bcd_entry(self, node_id: str, description: str | None = None) -> str | None:
        """Register a boot entry for a node, optionally naming it."""
        return self._bind_boot_entry("add_bcd", node_id, description)

    def _bind_boot_entry(
        self,
        action: str,
        node_id: str,
        description: str | None = None,
    ) -> str | None:
        with self._lock, OperationLogger(
            action, logger, node_id=node_id
        ) as op, self._audit_failures(action, node_id):
            node = self._require_node(node_id)
            self.paths.ensure_layout()

            attach_result = self.diskpart.run(attach_script(node.path), purpose=f"attach_{action}")
            letters: list[str] = []
            try:
                self._check("diskpart attach", attach_result)

                partitions = parse_list_partition(attach_result.stdout)
                system = select_system_partition(partitions)
                if system is None:
                    kinds = ", ".join(f"{p.index}:{p.kind}" for p in partitions) or "none"
                    raise PartitionDetectionError(
                        f"cannot identify the system partition of {node.path} (found {kinds})"
                    )

                (letter,) = self.letters.allocate(1)
                letters = [letter]
                op.update(letter=letter)
                self._check(
                    "diskpart assign letters",
                    self.diskpart.run(
                        assign_letters_script(node.path, [(system.index, letter)]),
                        purpose=f"assign_{action}",
                    ),
                )
                guid = self._install_boot(node.path, letter)
                if guid is not None:
                    self.store.update_node_bcd(node.id, guid)
                    if description:
                        self._apply_description(node.id, guid, description)
            finally:
                self._detach(node.path, letters, purpose=f"detach_{action}")

            detail = f"guid={guid}" if guid else "no matching boot entry found"
            self._record(action, "ok", node.id, detail)
            op.update(guid=guid)
            return guid

    def _apply_description(self, node_id: str, guid: str, description: str) -> None:
        result = self.boot.set_description(guid, description)
        self._log_command("bcdedit set description", result)
        if not result.success:
            logger.warning("Could not set boot entry description", node_id=node_id, guid=guid)
            return
        self.store.update_node_desc(node_id, description)

    def update_bcd_description(self, node_id: str, description: str) -> Node:
        """Rename the node's boot entry and store the text as its description."""
        with self._lock, OperationLogger(
            "update_bcd_description", logger, node_id=node_id
        ), self._audit_failures("update_bcd_description", node_id):
            node = self._require_node(node_id)
            if not node.bcd_guid:
                raise BootEntryMissingError(node_id)

            self._check("bcdedit set description", self.boot.set_description(node.bcd_guid, description))
            self.store.update_node_desc(node_id, description)
            self._record("update_bcd_description", "ok", node_id, description)
            return self._require_node(node_id)

    def delete_bcd(self, node_id: str) -> None:
        """Delete the node's boot entry, if any, and forget its identifier."""
        with self._lock, OperationLogger(
            "delete_bcd", logger, node_id=node_id
        ), self._audit_failures("delete_bcd", node_id):
            node = self._require_node(node_id)
            if node.bcd_guid:
                self._check("bcdedit delete", self.boot.delete_entry(node.bcd_guid))
                detail = f"deleted {node.bcd_guid}"
            else:
                detail = "no boot entry bound"
            self.store.clear_node_bcd(node_id)
            self._record("delete_bcd", "ok", node_id, detail)

    def set_bootsequence_and_reboot(self, node_id: str, reboot: bool = True) -> str:
        """
        Make the node's entry the one-time next boot, then restart.

        A failing restart command is logged only; the committed boot sequence
        is the result of the operation.
        """
        with self._lock, OperationLogger(
            "set_bootsequence", logger, node_id=node_id, reboot=reboot
        ), self._audit_failures("bootsequence_reboot", node_id):
            node = self._require_node(node_id)
            if not node.bcd_guid:
                raise BootEntryMissingError(node_id)

            self._check("bcdedit bootsequence", self.boot.set_boot_sequence(node.bcd_guid))
            self._record("bootsequence_reboot", "ok", node_id, f"guid={node.bcd_guid} reboot={reboot}")

            if reboot:
                reboot_result = self.boot.reboot_now()
                self._log_command("shutdown reboot", reboot_result)
                if not reboot_result.success:
                    logger.warning("Restart request failed", node_id=node_id, exit_code=reboot_result.returncode)
            return node.bcd_guid

    # ------------------------------------------------------------------
    # Scan / reconcile
    # ------------------------------------------------------------------

    def scan(self) -> list[Node]:
        return self.scan_report().nodes

    def scan_report(self) -> ScanReport:
        """
        Merge virtual-disk files on storage and boot entries into the store.

        New files are imported as root nodes, parent links and boot entry
        identifiers are updated from what the disks and the boot store
        report, and every node's status is recomputed. Nodes are never
        deleted. Sub-step failures are collected in the report.
        """
        with self._lock, OperationLogger("scan", logger, root=str(self.paths.root)) as op:
            report = ScanReport()
            existing = self.store.fetch_nodes()
            by_key: dict[str, Node] = {normalize_path(node.path): node for node in existing}

            files: dict[str, str] = {}
            for path in discover_vhd_files(self.paths.root, self.vhd_extensions):
                files.setdefault(normalize_path(path), str(path))
            for node in existing:
                key = normalize_path(node.path)
                if key not in files and Path(node.path).is_file():
                    files[key] = node.path
            report.discovered_paths = list(files.values())

            details: dict[str, VhdDetail | None] = {
                key: self._query_detail(path, report) for key, path in files.items()
            }
            guids: dict[str, str | None] = {}
            identifiers: set[str] | None = None
            if files:
                guids, identifiers = self._discover_guids(files, report)

            self._import_new_files(files, guids, by_key, report)
            id_by_key = {key: node.id for key, node in by_key.items()}
            self._relink_parents(by_key, details, id_by_key, report)
            self._rebind_guids(by_key, guids, report)
            if identifiers is not None:
                self._report_stale_entries(by_key, identifiers, report)
            self._refresh_statuses(by_key, files, details, id_by_key, report)

            report.nodes = self.store.fetch_nodes()
            op.update(
                files=len(files),
                inserted=len(report.inserted),
                relinked=len(report.relinked),
                rebound=len(report.rebound),
                status_changes=len(report.status_changes),
                failures=len(report.failures),
            )
            return report

    def _query_detail(self, path: str, report: ScanReport) -> VhdDetail | None:
        """Parent reference of one disk, or None when the query failed."""
        try:
            result = self.diskpart.run(detail_script(path), purpose="detail")
        except VhdForgeError as e:
            report.failures.append(f"{path}: {e}")
            return None
        self._log_command("diskpart detail vdisk", result)
        if not result.success:
            report.failures.append(
                f"{path}: {CommandFailedError.from_result('diskpart detail vdisk', result, self.output_limit)}"
            )
            return None
        return parse_detail_vdisk(result.stdout)

    def _discover_guids(
        self, files: dict[str, str], report: ScanReport
    ) -> tuple[dict[str, str | None], set[str] | None]:
        """GUID per discovered file plus every identifier in the boot store."""
        result = self.boot.enum_all()
        self._log_command("bcdedit enum", result)
        if not result.success:
            report.failures.append(
                str(CommandFailedError.from_result("bcdedit enum", result, self.output_limit))
            )
            return {}, None
        guids = {key: extract_guid_for_vhd(result.stdout, path) for key, path in files.items()}
        return guids, parse_boot_identifiers(result.stdout)

    def _import_new_files(
        self,
        files: dict[str, str],
        guids: dict[str, str | None],
        by_key: dict[str, Node],
        report: ScanReport,
    ) -> None:
        for key, path in files.items():
            if key in by_key:
                continue
            guid = guids.get(key)
            node = Node(
                id=_new_id(),
                name=name_from_filename(path),
                path=path,
                bcd_guid=guid,
                boot_files_ready=guid is not None,
            )
            try:
                self.store.insert_node(node)
                self._record("import", "ok", node.id, f"path={path}")
            except StoreError as e:
                report.failures.append(f"{path}: {e}")
                continue
            logger.info("Imported disk", node_id=node.id, path=path)
            by_key[key] = node
            report.inserted.append(node.id)

    def _relink_parents(
        self,
        by_key: dict[str, Node],
        details: dict[str, VhdDetail | None],
        id_by_key: dict[str, str],
        report: ScanReport,
    ) -> None:
        parents = {node.id: node.parent_id for node in by_key.values()}
        for key, node in by_key.items():
            detail = details.get(key)
            if detail is None or not detail.parent:
                continue
            parent_id = id_by_key.get(normalize_path(detail.parent))
            # An unresolvable parent is left for the status pass to report
            if parent_id is None or parent_id == node.parent_id:
                continue
            if self._creates_cycle(node.id, parent_id, parents):
                report.failures.append(f"{node.id}: parent {parent_id} would create a cycle")
                continue
            try:
                self.store.update_node_parent(node.id, parent_id)
            except StoreError as e:
                report.failures.append(f"{node.id}: {e}")
                continue
            logger.info("Relinked node", node_id=node.id, old_parent=node.parent_id, new_parent=parent_id)
            node.parent_id = parent_id
            parents[node.id] = parent_id
            report.relinked.append(node.id)

    @staticmethod
    def _creates_cycle(node_id: str, parent_id: str, parents: dict[str, str | None]) -> bool:
        current: str | None = parent_id
        seen: set[str] = set()
        while current is not None and current not in seen:
            if current == node_id:
                return True
            seen.add(current)
            current = parents.get(current)
        return False

    def _rebind_guids(
        self,
        by_key: dict[str, Node],
        guids: dict[str, str | None],
        report: ScanReport,
    ) -> None:
        for key, node in by_key.items():
            guid = guids.get(key)
            if guid is None or guid == node.bcd_guid:
                continue
            try:
                self.store.update_node_bcd(node.id, guid)
            except StoreError as e:
                report.failures.append(f"{node.id}: {e}")
                continue
            logger.info("Boot entry rebound", node_id=node.id, old_guid=node.bcd_guid, new_guid=guid)
            node.bcd_guid = guid
            node.boot_files_ready = True
            report.rebound.append(node.id)

    def _report_stale_entries(
        self,
        by_key: dict[str, Node],
        identifiers: set[str],
        report: ScanReport,
    ) -> None:
        # The stored identifier is kept; repair_bcd re-creates the entry
        for node in by_key.values():
            if node.bcd_guid and node.bcd_guid.lower() not in identifiers:
                logger.warning("Boot entry not in boot store", node_id=node.id, guid=node.bcd_guid)
                report.failures.append(f"{node.id}: boot entry {node.bcd_guid} not found in boot store")

    def _refresh_statuses(
        self,
        by_key: dict[str, Node],
        files: dict[str, str],
        details: dict[str, VhdDetail | None],
        id_by_key: dict[str, str],
        report: ScanReport,
    ) -> None:
        for key, node in by_key.items():
            detail = details.get(key)
            discovered_parent = detail.parent if detail is not None else None
            status = derive_status(
                node,
                file_exists=key in files,
                detail_failed=key in files and detail is None,
                discovered_parent_id=(
                    id_by_key.get(normalize_path(discovered_parent)) if discovered_parent else None
                ),
                has_discovered_parent=bool(discovered_parent),
            )
            if status == node.status:
                continue
            try:
                self.store.update_node_status(node.id, status)
            except StoreError as e:
                report.failures.append(f"{node.id}: {e}")
                continue
            logger.info("Node status changed", node_id=node.id, old=node.status.value, new=status.value)
            report.status_changes[node.id] = (node.status, status)
            node.status = status
