"""
Tests for the command-line interface against the fake Windows host.
"""

import json
from pathlib import Path
from typing import Any

import pytest
from click.testing import CliRunner

from conftest import FakeHost
from vhdforge.cli.main import cli
from vhdforge.core.config import VhdForgeConfig
from vhdforge.core.session import Workspace
from vhdforge.platform.windows.letters import StaticDriveLetters

pytestmark = pytest.mark.integration


@pytest.fixture
def config_file(sample_config: VhdForgeConfig, temp_dir: Path) -> Path:
    path = temp_dir / "config.json"
    sample_config.save(path)
    return path


@pytest.fixture
def image(temp_dir: Path) -> Path:
    path = temp_dir / "install.wim"
    path.write_bytes(b"MSWIM")
    return path


@pytest.fixture
def invoke(mocker: Any, host: FakeHost, config_file: Path):
    """Run the CLI with workspaces wired to the fake host."""

    def open_workspace(config: VhdForgeConfig, root: Path | None = None) -> Workspace:
        return Workspace(config, root=root, runner=host, letter_source=StaticDriveLetters("C"))

    mocker.patch("vhdforge.cli.main.Workspace", side_effect=open_workspace)
    runner = CliRunner()

    def run(*args: str) -> Any:
        return runner.invoke(cli, ["--config", str(config_file), *args], obj={})

    return run


class TestCli:
    def test_version(self) -> None:
        result = CliRunner().invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "1.0.0" in result.output

    def test_list_empty(self, invoke) -> None:
        result = invoke("list")
        assert result.exit_code == 0
        assert "No disks in workspace" in result.output

    def test_json_scan_empty(self, invoke) -> None:
        result = invoke("--json", "scan")
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["nodes"] == []
        assert data["failures"] == []

    def test_create_boot_delete(self, invoke, host: FakeHost, image: Path) -> None:
        result = invoke("--json", "create-base", "--name", "Win11", "--image", str(image), "--index", "6")
        assert result.exit_code == 0, result.output
        node = json.loads(result.output)
        assert node["name"] == "Win11"
        assert node["bcd_guid"] == host.entries[0]["guid"]

        result = invoke("--json", "boot", node["id"], "--no-reboot")
        assert result.exit_code == 0, result.output
        assert json.loads(result.output)["bcd_guid"] == node["bcd_guid"]
        assert host.bootsequence == node["bcd_guid"]
        assert host.elevated == []

        result = invoke("--json", "delete", node["id"], "--yes")
        assert result.exit_code == 0, result.output
        assert json.loads(result.output)["deleted"] == [node["id"]]
        assert host.entries == []

        result = invoke("--json", "history", node["id"])
        actions = [record["action"] for record in json.loads(result.output)]
        assert actions == ["delete_subtree", "bootsequence_reboot", "create_base"]

    def test_list_table(self, invoke, image: Path) -> None:
        invoke("create-base", "--name", "Win11", "--image", str(image))

        result = invoke("list")

        assert result.exit_code == 0
        assert "No disks in workspace" not in result.output

    def test_images(self, invoke, image: Path) -> None:
        result = invoke("--json", "images", str(image))
        assert result.exit_code == 0
        assert [i["index"] for i in json.loads(result.output)] == [1, 6]

    def test_unknown_node_fails(self, invoke) -> None:
        result = invoke("repair-bcd", "does-not-exist")
        assert result.exit_code == 1
        assert "node not found: does-not-exist" in result.output

    def test_tool_failure_reported(self, invoke, host: FakeHost, image: Path) -> None:
        host.fail_on("create vdisk")

        result = invoke("create-base", "--name", "Win11", "--image", str(image))

        assert result.exit_code == 1
        assert "diskpart create base failed" in result.output
