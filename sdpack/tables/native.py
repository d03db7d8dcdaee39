"""Partition table writer using the built-in MBR and GPT data models."""

import logging
import os
import random
import uuid

from sdpack.constants import (
    GPT_ATTRIBUTE_LEGACY_BIOS_BOOTABLE,
    TableScheme,
)
from sdpack.errors import TableWriteError
from sdpack.image import DiskImage
from sdpack.layout import DiskLayout
from sdpack.models import (
    GPTPartitionEntry,
    GUIDPartitionTable,
    MasterBootRecord,
    MBRPartitionEntry,
)
from sdpack.tables.base import BaseTableWriter

LOG = logging.getLogger(__name__)


class NativeTableWriter(BaseTableWriter):
    """
    Write MBR or GPT structures directly into the image.

    Output is fully deterministic when disk_id, disk_guid and every
    partition GUID are specified.
    """

    NAME = "native"

    def get_mbr(self, layout: DiskLayout) -> MasterBootRecord:
        """Return MBR for layout."""
        try:
            entries = [
                MBRPartitionEntry.from_range(
                    start=partition.start,
                    sectors=partition.sectors,
                    type_=partition.type_code,
                    bootable=partition.bootable,
                )
                for partition in layout.partitions
            ]
            disk_id = self.disk_id
            if disk_id is None:
                disk_id = random.getrandbits(32)
            return MasterBootRecord.from_entries(entries, disk_signature=disk_id)
        except ValueError as error:
            raise TableWriteError(str(error)) from error

    def get_gpt(self, layout: DiskLayout) -> GUIDPartitionTable:
        """Return GUID Partition Table for layout."""
        table = GUIDPartitionTable(
            disk_guid=self.disk_guid or uuid.uuid4(),
            total_sectors=layout.total_sectors,
        )
        for partition in layout.partitions:
            attributes = 0
            if partition.bootable:
                attributes |= 1 << GPT_ATTRIBUTE_LEGACY_BIOS_BOOTABLE
            try:
                entry = GPTPartitionEntry.from_range(
                    start=partition.start,
                    sectors=partition.sectors,
                    type_guid=partition.type_code,
                    unique_guid=partition.partition_guid or uuid.uuid4(),
                    name=partition.name or "",
                    attributes=attributes,
                )
                table.add(entry)
            except ValueError as error:
                raise TableWriteError(
                    f"Partition {partition.number}: {error}"
                ) from error
        return table

    def write(self, path: str | os.PathLike, layout: DiskLayout) -> None:
        """Write partition table for layout into allocated image at path."""
        self.check(layout)
        image = DiskImage(path)
        if image.size < layout.size:
            raise TableWriteError(
                f"Image '{path}' is smaller than the layout ({layout.size} bytes)"
            )
        if layout.end_sector > layout.total_sectors:
            raise TableWriteError("Last partition does not fit on the disk")
        if layout.scheme.scheme == TableScheme.GPT:
            table = self.get_gpt(layout)
            LOG.debug("Writing GPT with disk GUID %s", table.disk_guid)
            regions = [
                (0, MasterBootRecord.protective(layout.total_sectors).to_bytes()),
                *table.get_regions(),
            ]
        else:
            mbr = self.get_mbr(layout)
            LOG.debug("Writing MBR with disk identifier 0x%08x", mbr.disk_signature)
            regions = [(0, mbr.to_bytes())]
        try:
            for offset, data in regions:
                image.write_bytes(data, offset)
        except OSError as error:
            raise TableWriteError(
                f"Unable to write partition table to '{path}': {error.strerror}"
            ) from error
