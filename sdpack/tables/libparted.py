"""Partition table writer using libparted through pyparted."""

import logging
import os

import parted

from sdpack.constants import TableScheme
from sdpack.errors import TableWriteError
from sdpack.layout import DiskLayout, PartitionSpec, is_esp_type
from sdpack.tables.base import BaseTableWriter

LOG = logging.getLogger(__name__)

PARTED_ERRORS = (
    parted.PartedException,
    parted.DiskException,
    parted.PartitionException,
    parted.IOException,
    parted.ConstraintException,
    parted.GeometryException,
)


class LibpartedTableWriter(BaseTableWriter):
    """
    Write partition table with libparted.

    Partition types are expressed through libparted flags, so only EFI
    System and Linux filesystem partitions are supported. Disk and partition
    GUIDs are always generated by libparted.
    """

    NAME = "libparted"
    DISK_TYPES = {TableScheme.DOS: "msdos", TableScheme.GPT: "gpt"}

    @staticmethod
    def is_linux_type(partition: PartitionSpec) -> bool:
        """Return whether partition has the default Linux type of libparted."""
        return partition.type_name in ("LINUX", "LINUX_FILESYSTEM")

    def check(self, layout: DiskLayout) -> None:
        """Raise TableWriteError if writer cannot write layout."""
        super().check(layout)
        for partition in layout.partitions:
            if not (is_esp_type(partition.type_code) or self.is_linux_type(partition)):
                raise TableWriteError(
                    f"Table writer '{self.NAME}' cannot set partition type "
                    f"{partition.type_name} of partition {partition.number}"
                )

    def write(self, path: str | os.PathLike, layout: DiskLayout) -> None:
        """Write partition table for layout into allocated image at path."""
        self.check(layout)
        scheme = layout.scheme.scheme
        try:
            device = parted.getDevice(os.fspath(path))
            disk = parted.freshDisk(device, self.DISK_TYPES[scheme])
            for spec in layout.partitions:
                geometry = parted.Geometry(
                    device=device, start=spec.start, length=spec.sectors
                )
                partition = parted.Partition(
                    disk=disk, type=parted.PARTITION_NORMAL, geometry=geometry
                )
                disk.addPartition(
                    partition=partition,
                    constraint=parted.Constraint(exactGeom=geometry),
                )
                if spec.name and scheme == TableScheme.GPT:
                    partition.set_name(spec.name)
                if is_esp_type(spec.type_code):
                    partition.setFlag(parted.PARTITION_ESP)
                if spec.bootable:
                    partition.setFlag(
                        parted.PARTITION_LEGACY_BOOT
                        if scheme == TableScheme.GPT
                        else parted.PARTITION_BOOT
                    )
            disk.commit()
        except PARTED_ERRORS as error:
            raise TableWriteError(f"libparted: {error}") from error
        LOG.debug("Wrote %s table with libparted", self.DISK_TYPES[scheme])
