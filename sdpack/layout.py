"""
Compute aligned, non-overlapping partition placements for input blobs.

The first partition starts at the first usable sector of the scheme; every
following partition starts at the next alignment boundary after the end of
its predecessor. The disk ends at the alignment boundary after the last
partition, plus any trailing sectors reserved by the scheme (e.g. the GPT
backup header and entry array).
"""

import os
import uuid
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from sdpack.config import SchemeConfig
from sdpack.constants import (
    PARTITION_TYPE_ALIASES,
    SECTOR_SIZE,
    GPTPartitionType,
    MBRPartitionType,
    TableScheme,
)
from sdpack.errors import InputValidationError
from sdpack.utils import align_up, get_offset_of, get_sectors_of, get_size_of


@dataclass(frozen=True)
class Blob:
    """Dataclass for a pre-built filesystem image used as partition content."""

    path: Path
    size: int

    @classmethod
    def from_path(cls: type["Blob"], path: str | os.PathLike) -> "Blob":
        """Return Blob for existing file at path, raising if missing or empty."""
        path = Path(path)
        if not (path.is_file() or path.is_block_device()):
            raise InputValidationError(f"Input image '{path}' not found")
        if not os.access(path, os.R_OK):
            raise InputValidationError(f"Input image '{path}' is not readable")
        size = get_size_of(path)
        if size == 0:
            raise InputValidationError(f"Input image '{path}' is empty")
        return cls(path=path, size=size)

    @property
    def size_sectors(self) -> int:
        """Return number of sectors required for blob."""
        return get_sectors_of(self.size)


@dataclass(frozen=True)
class PartitionRequest:
    """
    Dataclass for a requested partition, in table order.

    fs_uuid is the filesystem UUID to write into the blob before it is
    embedded; bootable of None applies the scheme's ESP convention.
    """

    path: Path
    partition_type: str = "linux"
    name: str | None = None
    fs_uuid: str | None = None
    bootable: bool | None = None
    partition_guid: uuid.UUID | None = None

    @classmethod
    def parse(cls: type["PartitionRequest"], value: str) -> "PartitionRequest":
        """Return request from string of form PATH[:TYPE[:NAME[:FS_UUID]]]."""
        path, *options = value.split(":")
        if not path:
            raise InputValidationError(f"Missing image path in partition '{value}'")
        if len(options) > 3:
            raise InputValidationError(f"Too many fields in partition '{value}'")
        type_, name, fs_uuid = (options + [""] * 3)[:3]
        return cls(
            path=Path(path),
            partition_type=type_ or "linux",
            name=name or None,
            fs_uuid=fs_uuid or None,
        )


def resolve_type(value: str, scheme: TableScheme) -> int | uuid.UUID:
    """
    Return partition type code for scheme from alias, hex byte or GUID.

    MBR types accept aliases and type bytes (e.g. 83, 0xef); GPT types accept
    aliases and type GUIDs.
    """
    alias = value.strip().lower()
    if alias in PARTITION_TYPE_ALIASES:
        mbr_type, gpt_type = PARTITION_TYPE_ALIASES[alias]
        return mbr_type if scheme == TableScheme.DOS else gpt_type.value
    if scheme == TableScheme.DOS:
        try:
            type_ = int(alias, 16)
        except ValueError:
            raise InputValidationError(
                f"Invalid MBR partition type '{value}'"
            ) from None
        if not 0 < type_ <= 0xFF:
            raise InputValidationError(f"Invalid MBR partition type '{value}'")
        return type_
    try:
        return uuid.UUID(alias)
    except ValueError:
        raise InputValidationError(f"Invalid GPT partition type '{value}'") from None


def is_esp_type(type_code: int | uuid.UUID) -> bool:
    """Return whether type code denotes an EFI System partition."""
    return type_code in (MBRPartitionType.EFI_SYSTEM, GPTPartitionType.EFI_SYSTEM.value)


@dataclass(frozen=True)
class PartitionSpec:
    """Dataclass for a placed partition."""

    number: int  # 1-based, in table order
    start: int  # sector
    sectors: int
    type_code: int | uuid.UUID
    blob: Blob
    name: str | None = None
    bootable: bool = False
    partition_guid: uuid.UUID | None = None
    fs_uuid: str | None = None

    @property
    def end(self) -> int:
        """Return first sector after partition."""
        return self.start + self.sectors

    @property
    def last_sector(self) -> int:
        """Return last sector of partition."""
        return self.end - 1

    @property
    def offset(self) -> int:
        """Return byte offset of partition."""
        return get_offset_of(self.start)

    @property
    def type_name(self) -> str:
        """Return readable name for type code."""
        if isinstance(self.type_code, uuid.UUID):
            try:
                return GPTPartitionType(self.type_code).name
            except ValueError:
                return str(self.type_code)
        try:
            return MBRPartitionType(self.type_code).name
        except ValueError:
            return f"0x{self.type_code:02x}"

    def to_dict(self) -> dict[str, Any]:
        """Return dictionary of partition information."""
        return {
            "number": self.number,
            "start": self.start,
            "sectors": self.sectors,
            "offset": self.offset,
            "type": (
                str(self.type_code)
                if isinstance(self.type_code, uuid.UUID)
                else f"0x{self.type_code:02x}"
            ),
            "type_name": self.type_name,
            "name": self.name,
            "bootable": self.bootable,
            "image": self.blob.path.as_posix(),
            "image_size": self.blob.size,
        }


@dataclass(frozen=True)
class DiskLayout:
    """Dataclass for the complete placement of partitions on a disk image."""

    scheme: SchemeConfig
    partitions: tuple[PartitionSpec, ...]
    total_sectors: int

    @property
    def size(self) -> int:
        """Return size of disk image in bytes."""
        return self.total_sectors * SECTOR_SIZE

    @property
    def end_sector(self) -> int:
        """Return first sector after the last partition."""
        return self.partitions[-1].end

    def to_dict(self) -> dict[str, Any]:
        """Return dictionary of layout information."""
        return {
            "scheme": self.scheme.scheme.value,
            "alignment": self.scheme.alignment,
            "sector_size": SECTOR_SIZE,
            "total_sectors": self.total_sectors,
            "size": self.size,
            "partitions": [partition.to_dict() for partition in self.partitions],
        }


def plan_sectors(
    sizes: Sequence[int], scheme: SchemeConfig
) -> tuple[list[tuple[int, int]], int]:
    """
    Return (start, sectors) for blobs of sizes in bytes and total sectors.

    Pure arithmetic; sizes are rounded up to whole sectors.
    """
    placements = []
    start = scheme.start_sector
    for size in sizes:
        sectors = get_sectors_of(size)
        placements.append((start, sectors))
        start = align_up(start + sectors, scheme.alignment_sectors)
    end = placements[-1][0] + placements[-1][1] if placements else start
    total_sectors = align_up(end, scheme.alignment_sectors) + scheme.trailing_sectors
    return placements, total_sectors


def compute_layout(
    scheme: SchemeConfig, requests: Sequence[PartitionRequest]
) -> DiskLayout:
    """Return DiskLayout for requested partitions, validating every input."""
    if not requests:
        raise InputValidationError("At least one partition is required")
    if len(requests) > scheme.max_partitions:
        raise InputValidationError(
            f"{len(requests)} partitions requested, but a {scheme.scheme.value} "
            f"table holds at most {scheme.max_partitions}"
        )
    blobs = []
    for request in requests:
        if request.fs_uuid is not None and not request.fs_uuid.strip():
            raise InputValidationError(
                f"Filesystem UUID for '{request.path}' must not be empty"
            )
        if request.name is not None and not request.name.strip():
            raise InputValidationError(
                f"Partition label for '{request.path}' must not be empty"
            )
        blobs.append(Blob.from_path(request.path))
    placements, total_sectors = plan_sectors([blob.size for blob in blobs], scheme)
    partitions = []
    for number, (request, blob, (start, sectors)) in enumerate(
        zip(requests, blobs, placements), start=1
    ):
        type_code = resolve_type(request.partition_type, scheme.scheme)
        bootable = request.bootable
        if bootable is None:
            bootable = scheme.esp_bootable and is_esp_type(type_code)
        partitions.append(
            PartitionSpec(
                number=number,
                start=start,
                sectors=sectors,
                type_code=type_code,
                blob=blob,
                name=request.name,
                bootable=bootable,
                partition_guid=request.partition_guid,
                fs_uuid=request.fs_uuid,
            )
        )
    return DiskLayout(
        scheme=scheme, partitions=tuple(partitions), total_sectors=total_sectors
    )
