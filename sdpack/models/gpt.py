"""Data models for a GUID Partition Table."""

import uuid
import zlib
from dataclasses import dataclass, field
from typing import ClassVar

from sdpack.constants import (
    GPT_BACKUP_SECTORS,
    GPT_ENTRIES_LBA,
    GPT_ENTRIES_SECTORS,
    GPT_HEADER_SIZE,
    GPT_PARTITION_ENTRIES,
    GPT_PARTITION_ENTRY_SIZE,
    GPT_PARTITION_NAME_LENGTH,
    GPT_PRIMARY_LBA,
    GPT_REVISION,
    GPT_SIGNATURE,
    SECTOR_SIZE,
    GPTPartitionType,
)
from sdpack.models.base import BaseDataModel
from sdpack.models.collections import DataModelCollection
from sdpack.models.mixins import CRCMixin


def encode_name(name: str) -> bytes:
    """Return partition name encoded as UTF-16LE and padded to 72 bytes."""
    data = name.encode("utf-16-le")
    if len(data) > GPT_PARTITION_NAME_LENGTH * 2:
        raise ValueError(
            f"Partition name '{name}' is longer than "
            f"{GPT_PARTITION_NAME_LENGTH} UTF-16 code units"
        )
    return data.ljust(GPT_PARTITION_NAME_LENGTH * 2, b"\x00")


def decode_name(data: bytes) -> str:
    """Return partition name from UTF-16LE bytes."""
    name = data.decode("utf-16-le")
    return name.split("\x00", 1)[0]


@dataclass
class GPTHeader(BaseDataModel, CRCMixin):
    """
    Dataclass to handle a GPT header.

    The primary header is stored in LBA 1 and the backup header in the last
    sector of the disk. Both are followed by zero padding to the sector size.
    """

    MODEL_ATTRIBUTE_SIZES: ClassVar[dict[str, int]] = {
        "signature": 8,
        "revision": 4,
        "header_size": 4,
        "crc": 4,
        "reserved": 4,
        "current_lba": 8,
        "backup_lba": 8,
        "first_usable_lba": 8,
        "last_usable_lba": 8,
        "disk_guid": 16,
        "partition_entry_lba": 8,
        "num_partition_entries": 4,
        "partition_entry_size": 4,
        "partition_entry_array_crc": 4,
    }

    signature: bytes
    revision: bytes
    header_size: int
    crc: int
    reserved: bytes
    current_lba: int
    backup_lba: int
    first_usable_lba: int
    last_usable_lba: int
    disk_guid: bytes  # mixed-endian GUID
    partition_entry_lba: int
    num_partition_entries: int
    partition_entry_size: int
    partition_entry_array_crc: int

    def __post_init__(self) -> None:
        """Verify magic signature of header."""
        if self.signature != GPT_SIGNATURE:
            raise ValueError(f"Unexpected signature '{self.signature}' for GPT header")

    def to_sector_bytes(self) -> bytes:
        """Return bytes of header padded to sector size."""
        return self.to_bytes().ljust(SECTOR_SIZE, b"\x00")

    def get_disk_guid(self) -> uuid.UUID:
        """Return disk GUID as UUID."""
        return uuid.UUID(bytes_le=self.disk_guid)


@dataclass
class GPTPartitionEntry(BaseDataModel):
    """Dataclass to handle a GPT partition entry."""

    MODEL_ATTRIBUTE_SIZES: ClassVar[dict[str, int]] = {
        "type_guid": 16,
        "unique_guid": 16,
        "first_lba": 8,
        "last_lba": 8,
        "attributes": 8,
        "name": GPT_PARTITION_NAME_LENGTH * 2,
    }

    type_guid: bytes
    unique_guid: bytes
    first_lba: int
    last_lba: int  # inclusive
    attributes: int
    name: bytes  # UTF-16LE

    @classmethod
    def from_range(
        cls: type["GPTPartitionEntry"],
        start: int,
        sectors: int,
        type_guid: uuid.UUID,
        unique_guid: uuid.UUID,
        name: str = "",
        attributes: int = 0,
    ) -> "GPTPartitionEntry":
        """Return partition entry covering sectors from start."""
        return cls(
            type_guid=type_guid.bytes_le,
            unique_guid=unique_guid.bytes_le,
            first_lba=start,
            last_lba=start + sectors - 1,
            attributes=attributes,
            name=encode_name(name),
        )

    def is_empty(self) -> bool:
        """Return whether entry is unused."""
        return self.type_guid == bytes(16)

    def get_type_guid(self) -> uuid.UUID:
        """Return partition type GUID as UUID."""
        return uuid.UUID(bytes_le=self.type_guid)

    def get_type(self) -> GPTPartitionType | uuid.UUID:
        """Return GPTPartitionType for entry, or GUID if unknown."""
        try:
            return GPTPartitionType(self.get_type_guid())
        except ValueError:
            return self.get_type_guid()

    def get_unique_guid(self) -> uuid.UUID:
        """Return unique partition GUID as UUID."""
        return uuid.UUID(bytes_le=self.unique_guid)

    def get_name(self) -> str:
        """Return decoded partition name."""
        return decode_name(self.name)

    @property
    def sectors(self) -> int:
        """Return number of sectors of partition."""
        return self.last_lba - self.first_lba + 1


@dataclass
class GUIDPartitionTable:
    """
    Dataclass to build and decode a complete GUID Partition Table.

    Layout of a disk with total_sectors sectors:
      - LBA 0: protective MBR (handled separately)
      - LBA 1: primary header
      - LBA 2-33: primary partition entry array
      - LBA total-33 to total-2: backup partition entry array
      - LBA total-1: backup header
    """

    disk_guid: uuid.UUID
    total_sectors: int
    entries: DataModelCollection[GPTPartitionEntry] = field(
        default_factory=DataModelCollection
    )

    @property
    def first_usable_lba(self) -> int:
        """Return first sector available for partitions."""
        return GPT_ENTRIES_LBA + GPT_ENTRIES_SECTORS

    @property
    def last_usable_lba(self) -> int:
        """Return last sector available for partitions."""
        return self.total_sectors - GPT_BACKUP_SECTORS - 1

    @property
    def backup_lba(self) -> int:
        """Return sector of backup header."""
        return self.total_sectors - 1

    @property
    def backup_entries_lba(self) -> int:
        """Return first sector of backup partition entry array."""
        return self.total_sectors - GPT_BACKUP_SECTORS

    def add(self, entry: GPTPartitionEntry) -> int:
        """Append partition entry, returning its 1-based partition number."""
        if len(self.entries) >= GPT_PARTITION_ENTRIES:
            raise ValueError(
                f"GPT cannot hold more than {GPT_PARTITION_ENTRIES} partitions"
            )
        if entry.first_lba < self.first_usable_lba:
            raise ValueError(
                f"Partition starting at sector {entry.first_lba} overlaps the "
                f"primary GPT (first usable sector is {self.first_usable_lba})"
            )
        if entry.last_lba > self.last_usable_lba:
            raise ValueError(
                f"Partition ending at sector {entry.last_lba} does not fit "
                f"(last usable sector is {self.last_usable_lba})"
            )
        self.entries.append(entry)
        return len(self.entries)

    def get_used_entries(self) -> list[tuple[int, GPTPartitionEntry]]:
        """Return list of (partition number, entry) for used entries."""
        return [
            (number, entry)
            for number, entry in enumerate(self.entries, start=1)
            if not entry.is_empty()
        ]

    def get_entry_array(self) -> bytes:
        """Return bytes of complete partition entry array, padded with empty entries."""
        data = self.entries.to_bytes()
        return data.ljust(GPT_PARTITION_ENTRIES * GPT_PARTITION_ENTRY_SIZE, b"\x00")

    def _get_header(self, current_lba: int, backup_lba: int, entry_lba: int) -> GPTHeader:
        """Return header with CRC32 values for specified location."""
        header = GPTHeader(
            signature=GPT_SIGNATURE,
            revision=GPT_REVISION,
            header_size=GPT_HEADER_SIZE,
            crc=0,
            reserved=bytes(4),
            current_lba=current_lba,
            backup_lba=backup_lba,
            first_usable_lba=self.first_usable_lba,
            last_usable_lba=self.last_usable_lba,
            disk_guid=self.disk_guid.bytes_le,
            partition_entry_lba=entry_lba,
            num_partition_entries=GPT_PARTITION_ENTRIES,
            partition_entry_size=GPT_PARTITION_ENTRY_SIZE,
            partition_entry_array_crc=zlib.crc32(self.get_entry_array()),
        )
        header.update_crc()
        return header

    @property
    def primary_header(self) -> GPTHeader:
        """Return primary GPT header."""
        return self._get_header(GPT_PRIMARY_LBA, self.backup_lba, GPT_ENTRIES_LBA)

    @property
    def backup_header(self) -> GPTHeader:
        """Return backup GPT header."""
        return self._get_header(
            self.backup_lba, GPT_PRIMARY_LBA, self.backup_entries_lba
        )

    def get_regions(self) -> list[tuple[int, bytes]]:
        """Return list of (byte offset, data) to write, excluding the protective MBR."""
        entry_array = self.get_entry_array()
        return [
            (GPT_PRIMARY_LBA * SECTOR_SIZE, self.primary_header.to_sector_bytes()),
            (GPT_ENTRIES_LBA * SECTOR_SIZE, entry_array),
            (self.backup_entries_lba * SECTOR_SIZE, entry_array),
            (self.backup_lba * SECTOR_SIZE, self.backup_header.to_sector_bytes()),
        ]

    @classmethod
    def from_bytes(
        cls: type["GUIDPartitionTable"], header_data: bytes, entry_data: bytes
    ) -> "GUIDPartitionTable":
        """
        Return table from primary header and entry array bytes.

        Raises ValueError if the header or entry array CRC32 does not match.
        """
        header = GPTHeader.from_bytes(header_data[:GPT_HEADER_SIZE])
        if not header.verify():
            raise ValueError("CRC32 of GPT header does not match")
        size = header.num_partition_entries * header.partition_entry_size
        if zlib.crc32(entry_data[:size]) != header.partition_entry_array_crc:
            raise ValueError("CRC32 of GPT partition entry array does not match")
        entries = DataModelCollection(
            GPTPartitionEntry.from_bytes(
                entry_data[offset : offset + header.partition_entry_size]
            )
            for offset in range(0, size, header.partition_entry_size)
        )
        # Partition numbers are slot indices, so only trailing empty slots go
        while entries and entries[-1].is_empty():
            entries.pop()
        return cls(
            disk_guid=header.get_disk_guid(),
            total_sectors=header.backup_lba + 1,
            entries=entries,
        )
