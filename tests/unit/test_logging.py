"""
Tests for vhdforge.core.logging module.
"""

import logging
from pathlib import Path

from vhdforge.core.logging import attach_workspace_log, detach_log_handler, get_logger, truncate


class TestTruncate:
    def test_short_text_unchanged(self) -> None:
        assert truncate("exit 0", 80) == "exit 0"

    def test_long_text_marked(self) -> None:
        assert truncate("x" * 100, 10) == "x" * 10 + "..."


class TestWorkspaceLog:
    def test_records_reach_workspace_file(self, temp_dir: Path) -> None:
        handler = attach_workspace_log(temp_dir / "logs")
        try:
            get_logger("vhdforge.test").info("Disk attached", letter="S")
        finally:
            detach_log_handler(handler)

        (log_file,) = (temp_dir / "logs").glob("workspace_*.log")
        text = log_file.read_text(encoding="utf-8")
        assert "Disk attached" in text
        assert "letter" in text

    def test_detach_removes_handler(self, temp_dir: Path) -> None:
        handler = attach_workspace_log(temp_dir / "logs", level="WARNING")
        assert handler in logging.getLogger().handlers
        assert handler.level == logging.WARNING

        detach_log_handler(handler)

        assert handler not in logging.getLogger().handlers
