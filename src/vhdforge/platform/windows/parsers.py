"""
Windows output parsers.

Parsers for diskpart, bcdedit and DISM console output. Every parser is
permissive: an unrecognized line is skipped and a missing fact comes back
as None (or an empty list), never as an exception. Callers treat that as
"unknown", not "broken".
"""

from __future__ import annotations

import re
from collections.abc import Callable

from vhdforge.core.models import PartitionInfo, VhdDetail, VolumeInfo, WimImageInfo

KNOWN_FILESYSTEMS = {"ntfs", "fat32", "fat", "exfat", "refs", "raw", "cdfs", "udf"}

_SIZE_RE = re.compile(r"^(\d+(?:[.,]\d+)?)\s*(KB|MB|GB|TB)$", re.IGNORECASE)
_PARENT_MARKERS = ("parent path", "parent:", "parent filename")


def _tokens(line: str) -> list[str]:
    """Split a listing row, dropping diskpart's '*' selection marker."""
    parts = line.split()
    if parts and parts[0] == "*":
        parts = parts[1:]
    elif parts and parts[0].startswith("*"):
        parts[0] = parts[0][1:]
    return parts


def parse_list_volume(output: str) -> list[VolumeInfo]:
    """
    Parse ``list volume`` output.

    Rows start with a "Volume" token followed by the volume number; the
    remaining columns map positionally to letter, label and filesystem.
    A "GUID:" line attaches to the most recently parsed volume.
    """
    volumes: list[VolumeInfo] = []

    for line in output.splitlines():
        parts = _tokens(line)

        if parts and parts[0].lower() == "volume" and len(parts) >= 2 and parts[1].isdigit():
            rest = parts[2:]
            letter = None
            if rest and len(rest[0]) == 1 and rest[0].isalpha():
                letter = rest[0].upper()
                rest = rest[1:]

            label = None
            filesystem = None
            fs_index = next(
                (i for i, token in enumerate(rest) if token.lower() in KNOWN_FILESYSTEMS),
                None,
            )
            if fs_index is not None:
                filesystem = rest[fs_index]
                label = " ".join(rest[:fs_index]) or None
            else:
                label = rest[0] if len(rest) >= 1 else None
                filesystem = rest[1] if len(rest) >= 2 else None

            volumes.append(
                VolumeInfo(
                    number=int(parts[1]),
                    letter=letter,
                    label=label,
                    filesystem=filesystem,
                )
            )
            continue

        idx = line.upper().find("GUID:")
        if idx >= 0 and volumes:
            guid = line[idx + 5 :].strip()
            if guid:
                volumes[-1].guid = guid

    return volumes


def parse_size_mb(value: str, unit: str) -> int:
    """Convert a diskpart size column to whole megabytes."""
    number = float(value.replace(",", "."))
    multipliers = {"KB": 1 / 1024, "MB": 1, "GB": 1024, "TB": 1024 * 1024}
    return int(round(number * multipliers[unit.upper()]))


def _first_size(tokens: list[str]) -> int | None:
    for i, token in enumerate(tokens):
        match = _SIZE_RE.match(token)
        if match:
            return parse_size_mb(match.group(1), match.group(2))
        if i + 1 < len(tokens):
            match = _SIZE_RE.match(f"{token} {tokens[i + 1]}")
            if match:
                return parse_size_mb(match.group(1), match.group(2))
    return None


def parse_list_partition(output: str) -> list[PartitionInfo]:
    """
    Parse ``list partition`` output.

    Rows look like ``Partition 3    Primary   126 GB   117 MB``; the size is
    the first size-like value after the kind column (the trailing column is
    the offset).
    """
    partitions: list[PartitionInfo] = []

    for line in output.splitlines():
        parts = _tokens(line)
        if len(parts) < 3 or parts[0].lower() != "partition" or not parts[1].isdigit():
            continue

        partitions.append(
            PartitionInfo(
                index=int(parts[1]),
                kind=parts[2],
                size_mb=_first_size(parts[3:]),
            )
        )

    return partitions


def parse_detail_vdisk(output: str) -> VhdDetail:
    """Extract the parent disk path from ``detail vdisk`` output."""
    for line in output.splitlines():
        lower = line.lower()
        if not any(marker in lower for marker in _PARENT_MARKERS):
            continue
        idx = line.find(":")
        if idx < 0:
            continue
        value = line[idx + 1 :].strip()
        if value:
            return VhdDetail(parent=value)
    return VhdDetail(parent=None)


def select_system_partition(partitions: list[PartitionInfo]) -> PartitionInfo | None:
    """Pick the OS partition: the largest primary/basic partition."""
    candidates = [p for p in partitions if p.kind_lower in ("primary", "basic")]
    if not candidates:
        return None
    return max(candidates, key=lambda p: (p.size_mb or 0, -p.index))


def select_efi_partition(partitions: list[PartitionInfo]) -> PartitionInfo | None:
    """Pick the EFI partition: kind "System", else partition index 2."""
    for partition in partitions:
        if partition.kind_lower == "system":
            return partition
    for partition in partitions:
        if partition.index == 2:
            return partition
    return None


def normalize_bcd_text(text: str) -> str:
    """Lower-case and drop the brackets bcdedit puts around volume letters."""
    return text.lower().replace("[", "").replace("]", "").replace("/", "\\")


def _normalize_needle(path: str) -> str:
    needle = normalize_bcd_text(path.strip())
    for prefix in ("\\\\?\\", "\\??\\"):
        if needle.startswith(prefix):
            needle = needle[len(prefix) :]
    return needle


def _find_identifier(bcd_output: str, matches: Callable[[str], bool]) -> str | None:
    current_guid: str | None = None

    for line in bcd_output.splitlines():
        stripped = line.strip()
        lower = stripped.lower()

        if stripped.startswith("---"):
            # New entry block; an identifier never carries across blocks
            current_guid = None
            continue

        if lower.startswith("identifier"):
            parts = stripped.split()
            current_guid = parts[1].strip() if len(parts) >= 2 else None
            continue

        if "device" in lower and current_guid and matches(normalize_bcd_text(stripped)):
            return current_guid

    return None


def extract_guid_for_vhd(bcd_output: str, vhd_path: str) -> str | None:
    """
    Find the identifier of the boot entry whose device references ``vhd_path``.

    Single pass over ``bcdedit /enum`` text, first match wins. A device or
    osdevice line matches when it mentions "vhd" and contains the path,
    compared case-insensitively with brackets removed.
    """
    needle = _normalize_needle(vhd_path)
    if not needle:
        return None
    return _find_identifier(bcd_output, lambda line: "vhd" in line and needle in line)


def parse_boot_identifiers(bcd_output: str) -> set[str]:
    """Every entry identifier in ``bcdedit /enum`` text, lower-cased."""
    identifiers: set[str] = set()
    for line in bcd_output.splitlines():
        parts = line.split()
        if len(parts) >= 2 and parts[0].lower() == "identifier":
            identifiers.add(parts[1].strip().lower())
    return identifiers


def extract_guid_for_partition_letter(bcd_output: str, letter: str) -> str | None:
    """Find the identifier of the entry whose device is ``partition=<letter>:``."""
    letter = letter.strip().rstrip(":\\").lower()
    if len(letter) != 1:
        return None
    token = f"partition={letter}:"
    return _find_identifier(bcd_output, lambda line: token in line)


def parse_wim_info(output: str) -> list[WimImageInfo]:
    """Parse ``dism /Get-WimInfo`` output into image entries."""
    images: list[WimImageInfo] = []
    current: WimImageInfo | None = None

    for line in output.splitlines():
        key, sep, value = line.strip().partition(":")
        if not sep:
            continue
        key = key.strip().lower()
        value = value.strip()

        if key == "index":
            if current is not None:
                images.append(current)
            current = WimImageInfo(index=int(value)) if value.isdigit() else None
        elif current is None:
            continue
        elif key == "name":
            current.name = value
        elif key == "description":
            current.description = value or None
        elif key == "size":
            current.size = value or None
            current.size_bytes = parse_wim_size(value)

    if current is not None:
        images.append(current)

    return images


def parse_wim_size(value: str) -> int | None:
    """Parse DISM's ``12,345,678 bytes`` size text."""
    match = re.match(r"^([\d,.\s]+)\s*bytes$", value.strip(), re.IGNORECASE)
    if not match:
        return None
    digits = re.sub(r"[^\d]", "", match.group(1))
    return int(digits) if digits else None
