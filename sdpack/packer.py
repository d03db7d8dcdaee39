"""
Pack filesystem images into a partitioned disk image.

The packer runs a fixed sequence of steps, stopping at the first failure:

  validate inputs -> check tools -> compute layout -> allocate file ->
  write table -> rewrite filesystem identifiers -> copy images -> publish

Everything from allocation onwards happens in a temporary file beside the
output, which is renamed over the output only after every step succeeded.
No filesystem is mounted and no loop device is used.
"""

import logging
import os
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from sdpack.config import PackerConfig
from sdpack.constants import SECTOR_SIZE
from sdpack.errors import InputValidationError, PayloadCopyError
from sdpack.identity import Tune2fs, validate_fs_uuid
from sdpack.image import DiskImage
from sdpack.layout import Blob, DiskLayout, PartitionRequest, compute_layout
from sdpack.publish import AtomicOutput
from sdpack.tables import BaseTableWriter, get_writer
from sdpack.utils import get_size_of, require_tools

LOG = logging.getLogger(__name__)


@dataclass
class PackContext:
    """Dataclass for state passed between packing steps."""

    config: PackerConfig
    requests: tuple[PartitionRequest, ...]
    output: Path
    writer: BaseTableWriter
    layout: DiskLayout | None = None
    path: Path | None = None  # temporary image
    copied: dict[int, int] = field(default_factory=dict)


@dataclass(frozen=True)
class Step:
    """Dataclass for a named packing step."""

    name: str
    run: Callable[[PackContext], None]


@dataclass(frozen=True)
class PackResult:
    """Dataclass for the result of packing a disk image."""

    output: Path
    layout: DiskLayout
    copied: dict[int, int]  # partition number: bytes copied


def run_steps(context: PackContext, steps: Iterable[Step]) -> None:
    """Run steps in order; any exception aborts the remaining steps."""
    for step in steps:
        LOG.info("Step: %s", step.name)
        step.run(context)


def validate_inputs(context: PackContext) -> None:
    """Validate output path, partition parameters and input images."""
    if not context.requests:
        raise InputValidationError("At least one partition is required")
    if context.output.is_dir():
        raise InputValidationError(f"Output '{context.output}' is a directory")
    for request in context.requests:
        if request.fs_uuid is not None:
            validate_fs_uuid(request.fs_uuid)
        if request.name is not None and not request.name.strip():
            raise InputValidationError(
                f"Partition label for '{request.path}' must not be empty"
            )
        blob = Blob.from_path(request.path)
        if blob.path.resolve() == context.output.resolve():
            raise InputValidationError(
                f"Output '{context.output}' must not be one of the input images"
            )


def check_tools(context: PackContext) -> None:
    """Verify all external tools used by the remaining steps are available."""
    tools = list(context.writer.REQUIRED_TOOLS)
    if any(request.fs_uuid for request in context.requests):
        tools += Tune2fs.required_tools(use_sudo=context.config.use_sudo)
    require_tools(tools)


def plan_layout(context: PackContext) -> None:
    """Compute partition placements and check the writer supports them."""
    layout = compute_layout(context.config.scheme, context.requests)
    context.writer.check(layout)
    for partition in layout.partitions:
        LOG.info(
            "Partition %d: start=%d size=%d type=%s image=%s",
            partition.number,
            partition.start,
            partition.sectors,
            partition.type_name,
            partition.blob.path,
        )
    LOG.info("Disk image: %d sectors (%d bytes)", layout.total_sectors, layout.size)
    context.layout = layout


def allocate_image(context: PackContext) -> None:
    """Allocate sparse image file of layout size."""
    DiskImage(context.path).allocate(context.layout.size)


def write_table(context: PackContext) -> None:
    """Write partition table with configured writer."""
    context.writer.write(context.path, context.layout)


def rewrite_identifiers(context: PackContext) -> None:
    """
    Set filesystem UUIDs of input images before they are embedded.

    This modifies the input images in place.
    """
    for partition in context.layout.partitions:
        if not partition.fs_uuid:
            continue
        Tune2fs.set_uuid(
            partition.blob.path, partition.fs_uuid, use_sudo=context.config.use_sudo
        )
        if get_size_of(partition.blob.path) != partition.blob.size:
            raise PayloadCopyError(
                f"Size of '{partition.blob.path}' changed while setting its UUID"
            )


def copy_images(context: PackContext) -> None:
    """Copy each input image to the offset of its partition."""
    image = DiskImage(context.path)
    for partition in context.layout.partitions:
        LOG.info(
            "Copying '%s' to partition %d at offset %d",
            partition.blob.path,
            partition.number,
            partition.offset,
        )
        context.copied[partition.number] = image.copy_in(
            partition.blob.path,
            partition.offset,
            limit=partition.sectors * SECTOR_SIZE,
            chunk_size=context.config.chunk_size,
            fsync=context.config.fsync,
        )


PREPARE_STEPS = (
    Step("validate inputs", validate_inputs),
    Step("check tools", check_tools),
    Step("compute layout", plan_layout),
)
BUILD_STEPS = (
    Step("allocate image", allocate_image),
    Step("write partition table", write_table),
    Step("rewrite filesystem identifiers", rewrite_identifiers),
    Step("copy images", copy_images),
)


class ImagePacker:
    """Class to pack filesystem images into a partitioned disk image."""

    def __init__(self, config: PackerConfig) -> None:
        """Initialise packer with configuration."""
        self.config = config

    def get_writer(self) -> BaseTableWriter:
        """Return configured partition table writer."""
        return get_writer(
            self.config.table_writer,
            disk_id=self.config.disk_id,
            disk_guid=self.config.disk_guid,
        )

    def get_layout(self, requests: Sequence[PartitionRequest]) -> DiskLayout:
        """Return layout for requests without writing anything."""
        return compute_layout(self.config.scheme, requests)

    def pack(
        self, requests: Sequence[PartitionRequest], output: str | os.PathLike
    ) -> PackResult:
        """
        Pack requested partitions into disk image at output.

        Raises PackError (or a subclass) on failure, in which case no
        temporary file is left and an existing output is unchanged.
        """
        context = PackContext(
            config=self.config,
            requests=tuple(requests),
            output=Path(output),
            writer=self.get_writer(),
        )
        run_steps(context, PREPARE_STEPS)
        with AtomicOutput(context.output) as path:
            context.path = path
            run_steps(context, BUILD_STEPS)
        return PackResult(
            output=context.output, layout=context.layout, copied=context.copied
        )
