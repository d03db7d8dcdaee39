"""Partition table writer using sgdisk operations."""

import logging
import os
import uuid

from sdpack.constants import (
    GPT_ATTRIBUTE_LEGACY_BIOS_BOOTABLE,
    SGDISK_TYPE_CODES,
    GPTPartitionType,
    TableScheme,
)
from sdpack.layout import DiskLayout, PartitionSpec
from sdpack.tables.base import BaseTableWriter
from sdpack.utils import run_process

LOG = logging.getLogger(__name__)


def get_sgdisk_type(type_code: uuid.UUID) -> str:
    """Return sgdisk type code, falling back to the full GUID."""
    try:
        return SGDISK_TYPE_CODES[GPTPartitionType(type_code)]
    except (KeyError, ValueError):
        return str(type_code).upper()


def get_partition_options(partition: PartitionSpec) -> list[str]:
    """Return sgdisk options to create, type and name partition."""
    number = partition.number
    options = [
        f"--new={number}:{partition.start}:{partition.last_sector}",
        f"--typecode={number}:{get_sgdisk_type(partition.type_code)}",
    ]
    if partition.name:
        options.append(f"--change-name={number}:{partition.name}")
    if partition.partition_guid:
        options.append(f"--partition-guid={number}:{partition.partition_guid}")
    if partition.bootable:
        options.append(
            f"--attributes={number}:set:{GPT_ATTRIBUTE_LEGACY_BIOS_BOOTABLE}"
        )
    return options


class SgdiskTableWriter(BaseTableWriter):
    """Write GPT with explicit create, type and name operations per partition."""

    NAME = "sgdisk"
    SCHEMES = frozenset({TableScheme.GPT})
    REQUIRED_TOOLS = ("sgdisk",)

    def get_command(self, path: str | os.PathLike, layout: DiskLayout) -> list[str]:
        """Return sgdisk command writing layout to image at path."""
        # Placements are already aligned; stop sgdisk from moving them
        command = ["sgdisk", "--clear", "--set-alignment=1"]
        if self.disk_guid:
            command.append(f"--disk-guid={self.disk_guid}")
        for partition in layout.partitions:
            command += get_partition_options(partition)
        command.append(os.fspath(path))
        return command

    def write(self, path: str | os.PathLike, layout: DiskLayout) -> None:
        """Write partition table for layout into allocated image at path."""
        self.check(layout)
        run_process(self.get_command(path, layout))
