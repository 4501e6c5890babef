"""
Drive-letter allocation for temporary mounts.

Letters are taken from a reserved high range (S-Z by default) so temporary
mounts never collide with the user's real volumes. The host is queried at
call time; nothing is reserved between allocation and assignment.
"""

from __future__ import annotations

import string
from abc import ABC, abstractmethod

from vhdforge.core.errors import NoFreeDriveLetterError, WorkspaceIOError
from vhdforge.core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_RESERVED_LETTERS = "STUVWXYZ"


def letters_in_mask(mask: int) -> list[str]:
    """Decode a GetLogicalDrives bitmask (bit 0 = A:)."""
    return [letter for i, letter in enumerate(string.ascii_uppercase) if mask & (1 << i)]


def free_letters(mask: int, candidates: str = DEFAULT_RESERVED_LETTERS) -> list[str]:
    """Letters from ``candidates`` that are not set in ``mask``, in order."""
    used = set(letters_in_mask(mask))
    return [letter for letter in candidates.upper() if letter not in used]


class DriveLetterSource(ABC):
    """Where the in-use drive letters come from."""

    @abstractmethod
    def in_use_mask(self) -> int:
        """Bitmask of drive letters currently in use (bit 0 = A:)."""


class HostDriveLetters(DriveLetterSource):
    """Live host state via kernel32.GetLogicalDrives."""

    def in_use_mask(self) -> int:
        import ctypes

        mask = int(ctypes.windll.kernel32.GetLogicalDrives())
        if mask == 0:
            raise ctypes.WinError()
        return mask


class StaticDriveLetters(DriveLetterSource):
    """A fixed mask, for dry runs and tests."""

    def __init__(self, used: str = "C") -> None:
        self.mask = 0
        for letter in used.upper():
            self.mask |= 1 << (ord(letter) - ord("A"))

    def in_use_mask(self) -> int:
        return self.mask


class DriveLetterAllocator:
    """Selects free letters from the reserved range."""

    def __init__(
        self,
        source: DriveLetterSource,
        candidates: str = DEFAULT_RESERVED_LETTERS,
    ) -> None:
        self.source = source
        self.candidates = candidates.upper()

    def allocate(self, count: int = 1) -> list[str]:
        """Return the first ``count`` free letters or raise NoFreeDriveLetterError."""
        try:
            mask = self.source.in_use_mask()
        except OSError as e:
            raise WorkspaceIOError(f"cannot query drive letters: {e}") from e
        free = free_letters(mask, self.candidates)
        if len(free) < count:
            logger.error(
                "No free drive letter",
                needed=count,
                candidates=self.candidates,
                in_use=letters_in_mask(mask),
            )
            raise NoFreeDriveLetterError(count, self.candidates, free)
        chosen = free[:count]
        logger.debug("Allocated drive letters", letters=chosen)
        return chosen
