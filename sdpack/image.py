"""Python implementation to handle raw disk image files."""

import logging
import os
from pathlib import Path
from typing import Any

from sdpack.constants import (
    DEFAULT_CHUNK_SIZE,
    GPT_ENTRIES_LBA,
    GPT_PARTITION_ENTRIES,
    GPT_PARTITION_ENTRY_SIZE,
    GPT_PRIMARY_LBA,
    MBR_SIZE,
    SECTOR_SIZE,
    TableScheme,
)
from sdpack.errors import PayloadCopyError
from sdpack.models import GUIDPartitionTable, MasterBootRecord
from sdpack.utils import get_offset_of, get_size_of

LOG = logging.getLogger(__name__)


class DiskImage:
    """Disk image class to allocate, write and inspect image files."""

    def __init__(self, path: str | os.PathLike) -> None:
        """Initialise instance."""
        self.path = Path(path).resolve()

    @property
    def size(self) -> int:
        """Return size of image."""
        return get_size_of(self.path)

    @property
    def total_sectors(self) -> int:
        """Return number of whole sectors of image."""
        return self.size // SECTOR_SIZE

    def allocate(self, size: int) -> None:
        """Create empty sparse file of specified size, discarding any content."""
        try:
            with open(self.path, "wb") as fd:
                fd.truncate(size)
        except OSError as error:
            raise PayloadCopyError(
                f"Unable to allocate '{self.path}': {error.strerror}"
            ) from error

    def get_bytes(self, offset: int = 0, size: int = -1) -> bytes:
        """Return bytes for specified offset and size."""
        if offset > self.size:
            raise ValueError("Offset is greater than image size")
        with open(self.path, "rb") as fd:
            fd.seek(offset)
            return fd.read(size)

    def write_bytes(self, data: bytes, offset: int = 0) -> int:
        """Write bytes to specified offset, returning number of written bytes."""
        if offset + len(data) > self.size:
            raise ValueError("Data extends beyond end of image")
        with open(self.path, "r+b") as fd:
            fd.seek(offset)
            return fd.write(data)

    def copy_in(
        self,
        source: str | os.PathLike,
        offset: int,
        limit: int | None = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        fsync: bool = True,
    ) -> int:
        """
        Copy content of source file into image at byte offset.

        The image is not truncated. If limit is specified, copying more bytes
        than limit raises PayloadCopyError. Returns number of copied bytes.
        """
        copied = 0
        try:
            with open(source, "rb") as fsrc, open(self.path, "r+b") as fdst:
                fdst.seek(offset)
                while chunk := fsrc.read(chunk_size):
                    copied += len(chunk)
                    if limit is not None and copied > limit:
                        raise PayloadCopyError(
                            f"Image '{source}' is larger than its partition "
                            f"({limit} bytes)"
                        )
                    fdst.write(chunk)
                fdst.flush()
                if fsync:
                    os.fsync(fdst.fileno())
        except OSError as error:
            raise PayloadCopyError(
                f"Unable to copy '{source}' to '{self.path}' at offset "
                f"{offset}: {error.strerror}"
            ) from error
        LOG.debug("Copied %d bytes of '%s' to offset %d", copied, source, offset)
        return copied

    @property
    def mbr(self) -> MasterBootRecord:
        """Return Master Boot Record of image."""
        return MasterBootRecord.from_bytes(self.get_bytes(0, MBR_SIZE))

    @property
    def gpt(self) -> GUIDPartitionTable:
        """Return primary GUID Partition Table of image."""
        header = self.get_bytes(get_offset_of(GPT_PRIMARY_LBA), SECTOR_SIZE)
        entries = self.get_bytes(
            get_offset_of(GPT_ENTRIES_LBA),
            GPT_PARTITION_ENTRIES * GPT_PARTITION_ENTRY_SIZE,
        )
        return GUIDPartitionTable.from_bytes(header, entries)

    def get_scheme(self) -> TableScheme:
        """Return partition table scheme of image, raising ValueError if unknown."""
        mbr = self.mbr
        if not mbr.verify():
            raise ValueError(f"No partition table found in '{self.path}'")
        if mbr.is_protective():
            return TableScheme.GPT
        return TableScheme.DOS

    def get_partitions(self) -> list[dict[str, Any]]:
        """Return list of partition information from the partition table."""
        if self.get_scheme() == TableScheme.GPT:
            return [
                {
                    "number": number,
                    "start": entry.first_lba,
                    "sectors": entry.sectors,
                    "type": str(entry.get_type_guid()),
                    "type_name": getattr(entry.get_type(), "name", None),
                    "name": entry.get_name(),
                    "guid": str(entry.get_unique_guid()),
                    "attributes": entry.attributes,
                }
                for number, entry in self.gpt.get_used_entries()
            ]
        return [
            {
                "number": number,
                "start": entry.lba_first,
                "sectors": entry.sectors,
                "type": f"0x{entry.type:02x}",
                "type_name": getattr(entry.get_type(), "name", None),
                "bootable": entry.bootable,
            }
            for number, entry in self.mbr.get_used_entries()
        ]

    def get_info(self) -> dict[str, Any]:
        """Return information about disk image."""
        scheme = self.get_scheme()
        info: dict[str, Any] = {
            "path": self.path.as_posix(),
            "size": self.size,
            "sector_size": SECTOR_SIZE,
            "total_sectors": self.total_sectors,
            "scheme": scheme.value,
            "partitions": self.get_partitions(),
        }
        if scheme == TableScheme.GPT:
            info["disk_guid"] = str(self.gpt.disk_guid)
        else:
            info["disk_id"] = f"0x{self.mbr.disk_signature:08x}"
        return info
