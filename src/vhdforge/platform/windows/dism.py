"""
DISM image deployment adapter.
"""

from __future__ import annotations

from pathlib import Path

from vhdforge.core.errors import CommandFailedError
from vhdforge.core.models import WimImageInfo
from vhdforge.platform.base import CommandResult, ProcessRunner
from vhdforge.platform.windows.parsers import parse_wim_info


class ImageDeployer:
    """Enumerates and applies images from WIM/ESD files."""

    DISM = "dism.exe"

    def __init__(self, runner: ProcessRunner, output_limit: int = 800) -> None:
        self.runner = runner
        self.output_limit = output_limit

    def get_wim_info(self, image_file: Path | str) -> CommandResult:
        return self.runner.run(
            self.DISM,
            ["/English", "/Get-WimInfo", f"/WimFile:{image_file}"],
        )

    def list_images(self, image_file: Path | str) -> list[WimImageInfo]:
        """Images contained in ``image_file``, in index order."""
        result = self.get_wim_info(image_file)
        if not result.success:
            raise CommandFailedError.from_result("dism get-wiminfo", result, self.output_limit)
        return sorted(parse_wim_info(result.stdout), key=lambda image: image.index)

    def apply_image(self, image_file: Path | str, index: int, apply_dir: str) -> CommandResult:
        """Apply image ``index`` onto ``apply_dir`` (e.g. ``T:\\``)."""
        return self.runner.run(
            self.DISM,
            [
                "/English",
                "/Apply-Image",
                f"/ImageFile:{image_file}",
                f"/Index:{int(index)}",
                f"/ApplyDir:{apply_dir}",
            ],
        )
