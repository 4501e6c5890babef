"""
Tests for the boot and image adapters.
"""

from pathlib import Path

import pytest

from vhdforge.core.errors import CommandFailedError
from vhdforge.platform.base import CommandResult, ProcessRunner
from vhdforge.platform.windows.bcd import BootAdapter
from vhdforge.platform.windows.dism import ImageDeployer

ENUM = """
Windows Boot Loader
-------------------
identifier              {11111111-1111-1111-1111-111111111111}
device                  partition=S:
description             Windows 11

Windows Boot Loader
-------------------
identifier              {22222222-2222-2222-2222-222222222222}
device                  vhd=[D:]\\vhd\\base\\0001-win11.vhdx
description             win11
"""


class StubRunner(ProcessRunner):
    def __init__(self, returncode: int = 0, stdout: str = "") -> None:
        self.returncode = returncode
        self.stdout = stdout
        self.calls: list[list[str]] = []
        self.elevated: list[list[str]] = []

    def run(self, program: str, args: list[str], workdir: Path | None = None) -> CommandResult:
        self.calls.append([program, *args])
        return CommandResult(self.returncode, self.stdout, "", [program, *args])

    def run_elevated(
        self, program: str, args: list[str], workdir: Path | None = None
    ) -> CommandResult:
        self.elevated.append([program, *args])
        return CommandResult(self.returncode, "", "", [program, *args])


class TestBootAdapter:
    """Tests for BootAdapter command construction."""

    def test_install_boot_files(self) -> None:
        runner = StubRunner()
        BootAdapter(runner).install_boot_files("t:")
        assert runner.calls == [["bcdboot.exe", "T:\\Windows", "/d"]]

    def test_enum_all(self) -> None:
        runner = StubRunner()
        BootAdapter(runner).enum_all()
        assert runner.calls == [["bcdedit.exe", "/enum", "all"]]

    def test_set_boot_sequence(self) -> None:
        runner = StubRunner()
        BootAdapter(runner).set_boot_sequence("{guid}")
        assert runner.calls == [["bcdedit.exe", "/bootsequence", "{guid}"]]

    def test_set_description_keeps_text_as_one_argument(self) -> None:
        runner = StubRunner()
        BootAdapter(runner).set_description("{guid}", "Dev box 2")
        assert runner.calls == [["bcdedit.exe", "/set", "{guid}", "description", "Dev box 2"]]

    def test_delete_entry(self) -> None:
        runner = StubRunner()
        BootAdapter(runner).delete_entry("{guid}")
        assert runner.calls == [["bcdedit.exe", "/delete", "{guid}"]]

    def test_reboot_is_elevated(self) -> None:
        runner = StubRunner()
        BootAdapter(runner).reboot_now()
        assert runner.elevated == [["shutdown.exe", "/r", "/t", "0"]]
        assert runner.calls == []


class TestFindGuid:
    """Tests for BootAdapter.find_guid."""

    def test_path_match_preferred(self) -> None:
        guid = BootAdapter.find_guid(ENUM, "D:\\vhd\\base\\0001-win11.vhdx", "S")
        assert guid == "{22222222-2222-2222-2222-222222222222}"

    def test_letter_fallback(self) -> None:
        guid = BootAdapter.find_guid(ENUM, "D:\\vhd\\diff\\0002-dev.vhdx", "S")
        assert guid == "{11111111-1111-1111-1111-111111111111}"

    def test_no_letter_no_match(self) -> None:
        assert BootAdapter.find_guid(ENUM, "D:\\vhd\\diff\\0002-dev.vhdx") is None


class TestImageDeployer:
    """Tests for ImageDeployer."""

    def test_apply_image_arguments(self) -> None:
        runner = StubRunner()
        ImageDeployer(runner).apply_image("D:\\install.wim", 6, "T:\\")
        assert runner.calls == [
            [
                "dism.exe",
                "/English",
                "/Apply-Image",
                "/ImageFile:D:\\install.wim",
                "/Index:6",
                "/ApplyDir:T:\\",
            ]
        ]

    def test_list_images_sorted(self) -> None:
        stdout = "Index : 2\nName : Pro\n\nIndex : 1\nName : Home\n"
        images = ImageDeployer(StubRunner(stdout=stdout)).list_images("install.wim")
        assert [i.name for i in images] == ["Home", "Pro"]

    def test_list_images_failure(self) -> None:
        with pytest.raises(CommandFailedError) as exc_info:
            ImageDeployer(StubRunner(returncode=87, stdout="Error: 87")).list_images("x.wim")

        assert exc_info.value.exit_code == 87
        assert "exit=87" in str(exc_info.value)
