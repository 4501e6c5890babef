"""
Tests for vhdforge.platform.windows.letters module.
"""

import pytest

from vhdforge.core.errors import NoFreeDriveLetterError, WorkspaceIOError
from vhdforge.platform.windows.letters import (
    DriveLetterAllocator,
    DriveLetterSource,
    StaticDriveLetters,
    free_letters,
    letters_in_mask,
)


class FailingSource(DriveLetterSource):
    def in_use_mask(self) -> int:
        raise OSError("access denied")


class TestMask:
    def test_letters_in_mask(self) -> None:
        # A: (bit 0) and C: (bit 2)
        assert letters_in_mask(0b101) == ["A", "C"]

    def test_free_letters(self) -> None:
        mask = StaticDriveLetters("CSU").in_use_mask()
        assert free_letters(mask) == ["T", "V", "W", "X", "Y", "Z"]


class TestDriveLetterAllocator:
    """Tests for DriveLetterAllocator."""

    def test_first_free_letters_in_order(self) -> None:
        allocator = DriveLetterAllocator(StaticDriveLetters("CDS"))
        assert allocator.allocate(2) == ["T", "U"]

    def test_single_letter(self) -> None:
        assert DriveLetterAllocator(StaticDriveLetters("C")).allocate() == ["S"]

    def test_exhausted_range(self) -> None:
        allocator = DriveLetterAllocator(StaticDriveLetters("CSTUVWXYZ"))

        with pytest.raises(NoFreeDriveLetterError) as exc_info:
            allocator.allocate(1)

        assert "no free drive letter available between S: and Z:" in str(exc_info.value)
        assert exc_info.value.free == []

    def test_not_enough_letters(self) -> None:
        allocator = DriveLetterAllocator(StaticDriveLetters("CSTUVWXY"))
        with pytest.raises(NoFreeDriveLetterError) as exc_info:
            allocator.allocate(2)
        assert exc_info.value.free == ["Z"]

    def test_custom_range(self) -> None:
        allocator = DriveLetterAllocator(StaticDriveLetters("C"), candidates="yz")
        assert allocator.allocate(2) == ["Y", "Z"]

    def test_host_query_failure(self) -> None:
        with pytest.raises(WorkspaceIOError):
            DriveLetterAllocator(FailingSource()).allocate()
