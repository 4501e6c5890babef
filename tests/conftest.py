"""
Pytest configuration and fixtures for VHDForge tests.
"""

import re
import sys
import tempfile
import uuid
from pathlib import Path
from typing import Generator

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from vhdforge.core.config import LoggingConfig, VhdForgeConfig  # noqa: E402
from vhdforge.core.logging import setup_logging  # noqa: E402
from vhdforge.core.paths import WorkspacePaths  # noqa: E402
from vhdforge.core.store import SqlNodeStore  # noqa: E402
from vhdforge.platform.base import CommandResult, ProcessRunner  # noqa: E402
from vhdforge.platform.windows.letters import (  # noqa: E402
    DriveLetterAllocator,
    StaticDriveLetters,
)
from vhdforge.workspace.reconciler import WorkspaceReconciler  # noqa: E402

PARTITION_LISTING = """
  Partition ###  Type              Size     Offset
  -------------  ----------------  -------  -------
  Partition 1    System             100 MB  1024 KB
  Partition 2    Reserved            16 MB   101 MB
  Partition 3    Primary             63 GB   117 MB
"""

VOLUME_LISTING = """
  Volume ###  Ltr  Label        Fs     Type        Size     Status     Info
  ----------  ---  -----------  -----  ----------  -------  ---------  --------
  Volume 0     C   OS           NTFS   Partition    475 GB  Healthy    Boot
  Volume 1                      FAT32  Partition    100 MB  Healthy    System
"""

WIM_INFO = """
Deployment Image Servicing and Management tool
Version: 10.0.22621.1

Details for image : D:\\sources\\install.wim

Index : 1
Name : Windows 11 Home
Description : Windows 11 Home
Size : 17,252,012,345 bytes

Index : 6
Name : Windows 11 Pro
Description : Windows 11 Pro
Size : 17,495,335,786 bytes

The operation completed successfully.
"""

_FILE_RE = re.compile(r'file="([^"]+)"')
_PARENT_RE = re.compile(r'parent="([^"]+)"')
_ASSIGN_RE = re.compile(r"assign letter=([A-Z])", re.IGNORECASE)


class FakeHost(ProcessRunner):
    """
    In-memory stand-in for the Windows tools.

    Interprets the diskpart scripts, bcdboot, bcdedit, DISM and shutdown
    invocations the reconciler issues, keeping just enough host state
    (virtual disk parents, mounted letters, boot entries) to answer them.
    """

    def __init__(self) -> None:
        self.calls: list[list[str]] = []
        self.scripts: list[str] = []
        self.elevated: list[list[str]] = []
        self.parents: dict[str, str | None] = {}
        self.mounted: dict[str, str] = {}
        self.entries: list[dict[str, str]] = []
        self.bootsequence: str | None = None
        self.bind_by_path = True
        self.partition_listing = PARTITION_LISTING
        self._failures: list[tuple[str, str | None]] = []

    # --- configuration -------------------------------------------------

    def fail_on(self, marker: str, path_fragment: str | None = None) -> None:
        """Fail any invocation whose script or arguments contain ``marker``."""
        self._failures.append((marker.lower(), path_fragment.lower() if path_fragment else None))

    def add_disk(self, path: Path, parent: Path | None = None) -> Path:
        """Put a virtual disk file on storage, as if created outside the tool."""
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(b"vhdx")
        self.parents[str(path).lower()] = str(parent) if parent else None
        return path

    def add_entry(self, device: str, description: str = "Windows 11") -> str:
        guid = "{" + str(uuid.uuid4()) + "}"
        self.entries.append({"guid": guid, "device": device, "description": description})
        return guid

    def entry_for(self, vhd_path: Path) -> dict[str, str] | None:
        for entry in self.entries:
            if str(vhd_path).lower() in entry["device"].lower():
                return entry
        return None

    # --- ProcessRunner ----------------------------------------------------

    def run(self, program: str, args: list[str], workdir: Path | None = None) -> CommandResult:
        command = [program, *args]
        self.calls.append(command)
        name = program.lower().replace(".exe", "")

        script = None
        if name == "diskpart":
            script = Path(args[args.index("/s") + 1]).read_text(encoding="utf-8")
            self.scripts.append(script)

        haystack = (script or " ".join(args)).lower()
        for marker, fragment in self._failures:
            if marker in haystack and (fragment is None or fragment in haystack):
                return CommandResult(2, "", f"Virtual Disk Service error: {marker}", command)

        handler = getattr(self, f"_{name}")
        returncode, stdout = handler(args, script)
        return CommandResult(returncode, stdout, "", command)

    def run_elevated(
        self, program: str, args: list[str], workdir: Path | None = None
    ) -> CommandResult:
        self.elevated.append([program, *args])
        return self.run(program, args, workdir)

    # --- tools ------------------------------------------------------------

    def _diskpart(self, args: list[str], script: str) -> tuple[int, str]:
        output: list[str] = ["Microsoft DiskPart version 10.0.22621.1", ""]
        current: str | None = None

        for line in script.splitlines():
            lower = line.strip().lower()
            file_match = _FILE_RE.search(line)

            if lower.startswith("create vdisk") and file_match:
                path = Path(file_match.group(1))
                path.parent.mkdir(parents=True, exist_ok=True)
                path.write_bytes(b"vhdx")
                parent_match = _PARENT_RE.search(line)
                self.parents[str(path).lower()] = parent_match.group(1) if parent_match else None
                output.append("DiskPart successfully created the virtual disk file.")
            elif lower.startswith("select vdisk") and file_match:
                current = file_match.group(1)
                if current.lower() not in self.parents:
                    return 2, "Virtual Disk Service error:\nThe system cannot find the file specified."
            elif lower.startswith("assign letter"):
                self.mounted[_ASSIGN_RE.search(line).group(1).upper()] = current or ""
                output.append("DiskPart successfully assigned the drive letter or mount point.")
            elif lower.startswith("remove letter"):
                self.mounted.pop(lower.split("=")[1][0].upper(), None)
            elif lower == "list partition":
                output.append(self.partition_listing)
            elif lower == "list volume":
                output.append(VOLUME_LISTING)
            elif lower == "detail vdisk":
                parent = self.parents.get((current or "").lower())
                output.append("Device type ID: 3 (Unknown)")
                output.append("Vendor ID: {EC984AEC-A0F9-47E9-901F-71415A66345B} (Microsoft Corporation)")
                output.append("State: Added")
                output.append(f"Filename: {current}")
                output.append(f"Parent Filename: {parent or ''}")
            elif lower == "detach vdisk":
                for letter, vhd in list(self.mounted.items()):
                    if vhd == current:
                        del self.mounted[letter]
                output.append("DiskPart successfully detached the virtual disk file.")

        return 0, "\n".join(output)

    def _bcdboot(self, args: list[str], script: None) -> tuple[int, str]:
        letter = args[0][0].upper()
        vhd = self.mounted.get(letter)
        if vhd and self.bind_by_path:
            device = f"vhd=[locate]{vhd}"
        else:
            device = f"partition={letter}:"
        if not any(entry["device"] == device for entry in self.entries):
            self.add_entry(device)
        return 0, "Boot files successfully created."

    def render_enum(self) -> str:
        blocks = [
            "Windows Boot Manager\n"
            "--------------------\n"
            "identifier              {bootmgr}\n"
            "device                  partition=\\Device\\HarddiskVolume1\n"
            "description             Windows Boot Manager\n"
        ]
        for entry in self.entries:
            blocks.append(
                "Windows Boot Loader\n"
                "-------------------\n"
                f"identifier              {entry['guid']}\n"
                f"device                  {entry['device']}\n"
                "path                    \\Windows\\system32\\winload.efi\n"
                f"description             {entry['description']}\n"
                f"osdevice                {entry['device']}\n"
            )
        return "\n".join(blocks)

    def _bcdedit(self, args: list[str], script: None) -> tuple[int, str]:
        verb = args[0].lower()
        if verb == "/enum":
            return 0, self.render_enum()
        if verb == "/bootsequence":
            self.bootsequence = args[1]
            return 0, "The operation completed successfully."
        if verb == "/set":
            for entry in self.entries:
                if entry["guid"] == args[1]:
                    entry["description"] = args[3]
                    return 0, "The operation completed successfully."
            return 1, "The boot configuration data store could not be opened."
        if verb == "/delete":
            before = len(self.entries)
            self.entries = [e for e in self.entries if e["guid"] != args[1]]
            if len(self.entries) == before:
                return 1, "The specified entry identifier is not valid."
            return 0, "The operation completed successfully."
        return 1, "The parameter is incorrect."

    def _dism(self, args: list[str], script: None) -> tuple[int, str]:
        if "/Get-WimInfo" in args:
            return 0, WIM_INFO
        return 0, "The operation completed successfully."

    def _shutdown(self, args: list[str], script: None) -> tuple[int, str]:
        return 0, ""


@pytest.fixture(scope="session", autouse=True)
def configure_logging(tmp_path_factory: pytest.TempPathFactory) -> None:
    """Route structured logs through stdlib logging, away from stdout."""
    setup_logging(
        LoggingConfig(
            console_enabled=False,
            file_enabled=False,
            log_directory=tmp_path_factory.mktemp("logs"),
        )
    )


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def workspace_paths(temp_dir: Path) -> WorkspacePaths:
    paths = WorkspacePaths(temp_dir / "ws")
    paths.ensure_layout()
    return paths


@pytest.fixture
def host() -> FakeHost:
    return FakeHost()


@pytest.fixture
def store(workspace_paths: WorkspacePaths) -> Generator[SqlNodeStore, None, None]:
    """SQLite store inside the temporary workspace."""
    node_store = SqlNodeStore.open(workspace_paths.state_db_path)
    yield node_store
    node_store.close()


@pytest.fixture
def letter_source() -> StaticDriveLetters:
    """Host with only C: and D: in use."""
    return StaticDriveLetters("CD")


@pytest.fixture
def reconciler(
    store: SqlNodeStore,
    workspace_paths: WorkspacePaths,
    host: FakeHost,
    letter_source: StaticDriveLetters,
) -> WorkspaceReconciler:
    return WorkspaceReconciler(
        store=store,
        paths=workspace_paths,
        runner=host,
        letters=DriveLetterAllocator(letter_source),
    )


@pytest.fixture
def sample_config(temp_dir: Path) -> VhdForgeConfig:
    """Create a sample configuration for testing."""
    config = VhdForgeConfig()
    config.logging.log_directory = temp_dir / "logs"
    config.logging.console_enabled = False
    config.workspace.root = temp_dir / "ws"
    config.safety.preflight_checks_enabled = False
    config.safety.confirm_destructive = False
    config.ensure_directories()
    return config


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "slow: Slow running tests")
