"""Data models for a Master Boot Record."""

from dataclasses import dataclass
from typing import ClassVar

from sdpack.constants import (
    MBR_BOOTSTRAP_SIZE,
    MBR_MAX_PARTITIONS,
    MBR_MAX_SECTORS,
    MBR_SIGNATURE,
    MBR_STATUS_ACTIVE,
    MBR_STATUS_INACTIVE,
    MBRPartitionType,
)
from sdpack.models.base import BaseDataModel
from sdpack.models.collections import DataModelCollection
from sdpack.utils import lba_to_chs


@dataclass
class MBRPartitionEntry(BaseDataModel):
    """Dataclass to handle a primary partition entry of the MBR."""

    MODEL_ATTRIBUTE_SIZES: ClassVar[dict[str, int]] = {
        "status": 1,
        "chs_first": 3,
        "type": 1,
        "chs_last": 3,
        "lba_first": 4,
        "sectors": 4,
    }

    status: int  # 0x80 if active (bootable)
    chs_first: bytes
    type: int
    chs_last: bytes
    lba_first: int
    sectors: int

    @classmethod
    def from_range(
        cls: type["MBRPartitionEntry"],
        start: int,
        sectors: int,
        type_: int,
        bootable: bool = False,
    ) -> "MBRPartitionEntry":
        """Return partition entry covering sectors from start."""
        if start > MBR_MAX_SECTORS or sectors > MBR_MAX_SECTORS:
            raise ValueError(
                f"Partition at sector {start} with {sectors} sectors "
                "exceeds the addressable range of an MBR"
            )
        return cls(
            status=MBR_STATUS_ACTIVE if bootable else MBR_STATUS_INACTIVE,
            chs_first=lba_to_chs(start),
            type=type_,
            chs_last=lba_to_chs(start + sectors - 1),
            lba_first=start,
            sectors=sectors,
        )

    @property
    def bootable(self) -> bool:
        """Return whether partition is marked active."""
        return self.status == MBR_STATUS_ACTIVE

    @property
    def lba_last(self) -> int:
        """Return last sector of partition."""
        return self.lba_first + self.sectors - 1

    def is_empty(self) -> bool:
        """Return whether entry is unused."""
        return self.type == MBRPartitionType.EMPTY

    def get_type(self) -> MBRPartitionType | int:
        """Return MBRPartitionType for entry, or raw type byte if unknown."""
        try:
            return MBRPartitionType(self.type)
        except ValueError:
            return self.type


@dataclass
class MasterBootRecord(BaseDataModel):
    """
    Dataclass to handle the Master Boot Record.

    Occupies the first sector of the disk. No boot code is written;
    firmware on the target boots from the ESP.
    """

    MODEL_ATTRIBUTE_SIZES: ClassVar[dict[str, int]] = {
        "bootstrap": MBR_BOOTSTRAP_SIZE,
        "disk_signature": 4,
        "reserved": 2,
        "partitions": MBR_MAX_PARTITIONS * 16,
        "signature": 2,
    }
    DEFAULT_VALUES: ClassVar[dict[str, bytes]] = {"signature": MBR_SIGNATURE}

    bootstrap: bytes
    disk_signature: int
    reserved: bytes
    partitions: DataModelCollection[MBRPartitionEntry]
    signature: bytes

    def __post_init__(self) -> None:
        """Pad partition entries up to maximum count."""
        if len(self.partitions) > MBR_MAX_PARTITIONS:
            raise ValueError(
                f"MBR cannot hold more than {MBR_MAX_PARTITIONS} primary partitions"
            )
        while len(self.partitions) < MBR_MAX_PARTITIONS:
            self.partitions.append(MBRPartitionEntry.new())

    @classmethod
    def from_entries(
        cls: type["MasterBootRecord"],
        entries: list[MBRPartitionEntry],
        disk_signature: int = 0,
    ) -> "MasterBootRecord":
        """Return MBR with specified partition entries."""
        return cls(
            bootstrap=bytes(MBR_BOOTSTRAP_SIZE),
            disk_signature=disk_signature,
            reserved=bytes(2),
            partitions=DataModelCollection(entries),
            signature=MBR_SIGNATURE,
        )

    @classmethod
    def protective(
        cls: type["MasterBootRecord"], total_sectors: int
    ) -> "MasterBootRecord":
        """Return protective MBR for a GPT disk of total_sectors."""
        entry = MBRPartitionEntry.from_range(
            start=1,
            sectors=min(total_sectors - 1, MBR_MAX_SECTORS),
            type_=MBRPartitionType.GPT_PROTECTIVE,
        )
        return cls.from_entries([entry])

    def verify(self) -> bool:
        """Verify size and boot signature of MBR."""
        return super().verify() and self.signature == MBR_SIGNATURE

    def is_protective(self) -> bool:
        """Return whether MBR is a GPT protective MBR."""
        return any(
            entry.type == MBRPartitionType.GPT_PROTECTIVE
            for entry in self.partitions
        )

    def get_used_entries(self) -> list[tuple[int, MBRPartitionEntry]]:
        """Return tuples of 1-based number and entry for non-empty entries."""
        return [
            (number, entry)
            for number, entry in enumerate(self.partitions, start=1)
            if not entry.is_empty()
        ]
