"""Partition table writer using sfdisk scripts."""

import logging
import os
import uuid
from dataclasses import dataclass, field

from sdpack.constants import SECTOR_SIZE, TableScheme
from sdpack.errors import TableWriteError
from sdpack.layout import DiskLayout, PartitionSpec
from sdpack.tables.base import BaseTableWriter
from sdpack.utils import run_process

LOG = logging.getLogger(__name__)

# Default first usable LBA of GPTs created by sfdisk
SFDISK_FIRST_LBA = 2048


@dataclass
class SfdiskLine:
    """Dataclass for one partition line of an sfdisk script."""

    number: int
    start: int
    size: int
    type_code: str
    name: str | None = None
    partition_uuid: uuid.UUID | None = None
    bootable: bool = False
    attrs: list[str] = field(default_factory=list)

    @classmethod
    def from_partition(
        cls: type["SfdiskLine"], partition: PartitionSpec, scheme: TableScheme
    ) -> "SfdiskLine":
        """Return line for placed partition."""
        if isinstance(partition.type_code, uuid.UUID):
            type_ = str(partition.type_code).upper()
        else:
            type_ = f"{partition.type_code:x}"
        gpt = scheme == TableScheme.GPT
        return cls(
            number=partition.number,
            start=partition.start,
            size=partition.sectors,
            type_code=type_,
            name=partition.name if gpt else None,
            partition_uuid=partition.partition_guid if gpt else None,
            bootable=partition.bootable and not gpt,
            attrs=["LegacyBIOSBootable"] if partition.bootable and gpt else [],
        )


@dataclass
class SfdiskScript:
    """Dataclass for a complete sfdisk script."""

    label: TableScheme
    lines: list[SfdiskLine]
    label_id: str | None = None
    first_lba: int | None = None

    def to_text(self) -> str:
        """Return script in sfdisk input format."""
        headers = [f"label: {self.label.value}"]
        if self.label_id:
            headers.append(f"label-id: {self.label_id}")
        headers += ["unit: sectors", f"sector-size: {SECTOR_SIZE}"]
        if self.first_lba is not None:
            headers.append(f"first-lba: {self.first_lba}")
        body = []
        for line in self.lines:
            fields = [f"start={line.start}", f"size={line.size}", f"type={line.type_code}"]
            if line.name is not None:
                if '"' in line.name or "\n" in line.name:
                    raise TableWriteError(
                        f"Partition name '{line.name}' contains invalid characters"
                    )
                fields.append(f'name="{line.name}"')
            if line.partition_uuid:
                fields.append(f"uuid={str(line.partition_uuid).upper()}")
            if line.attrs:
                fields.append(f'attrs="{" ".join(line.attrs)}"')
            if line.bootable:
                fields.append("bootable")
            body.append(f"{line.number} : {', '.join(fields)}")
        return "\n".join(headers) + "\n\n" + "\n".join(body) + "\n"


def format_sfdisk_script(
    layout: DiskLayout,
    disk_id: int | None = None,
    disk_guid: uuid.UUID | None = None,
) -> str:
    """Return sfdisk script describing layout."""
    scheme = layout.scheme.scheme
    if scheme == TableScheme.GPT:
        label_id = str(disk_guid).upper() if disk_guid else None
    else:
        label_id = f"0x{disk_id:08x}" if disk_id is not None else None
    script = SfdiskScript(
        label=scheme,
        lines=[
            SfdiskLine.from_partition(partition, scheme)
            for partition in layout.partitions
        ],
        label_id=label_id,
    )
    if scheme == TableScheme.GPT and layout.partitions[0].start < SFDISK_FIRST_LBA:
        script.first_lba = layout.scheme.reserved_sectors
    return script.to_text()


class SfdiskTableWriter(BaseTableWriter):
    """Write partition table declaratively by feeding a script to sfdisk."""

    NAME = "sfdisk"
    REQUIRED_TOOLS = ("sfdisk",)

    def get_command(self, path: str | os.PathLike) -> list[str]:
        """Return sfdisk command for image at path."""
        return ["sfdisk", "--no-reread", "--no-tell-kernel", os.fspath(path)]

    def write(self, path: str | os.PathLike, layout: DiskLayout) -> None:
        """Write partition table for layout into allocated image at path."""
        self.check(layout)
        script = format_sfdisk_script(layout, self.disk_id, self.disk_guid)
        LOG.debug("sfdisk script:\n%s", script)
        run_process(self.get_command(path), input=script.encode())
