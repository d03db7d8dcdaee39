"""Collection of functions to assist other modules."""

import logging
import os
import re
import shutil
import subprocess
from collections.abc import Iterable
from pathlib import Path

from sdpack.constants import (
    CHS_HEADS,
    CHS_MAX_CYLINDER,
    CHS_SECTORS_PER_TRACK,
    SECTOR_SIZE,
)
from sdpack.errors import (
    InputValidationError,
    ToolExecutionError,
    ToolNotFoundError,
)

LOG = logging.getLogger(__name__)

SIZE_SUFFIXES = {"": 1, "K": 1 << 10, "M": 1 << 20, "G": 1 << 30, "T": 1 << 40}


def ceil_div(dividend: int, divisor: int) -> int:
    """Return dividend divided by divisor, rounded up."""
    return -(-dividend // divisor)


def align_up(value: int, alignment: int) -> int:
    """Return smallest multiple of alignment which is not less than value."""
    return ceil_div(value, alignment) * alignment


def is_power_of_two(value: int) -> bool:
    """Return whether value is a positive power of two."""
    return value > 0 and value & (value - 1) == 0


def get_sectors_of(size: int) -> int:
    """Return number of sectors required to hold size bytes."""
    return ceil_div(size, SECTOR_SIZE)


def get_offset_of(sector: int) -> int:
    """Return byte offset for start of sector."""
    return sector * SECTOR_SIZE


def parse_size(value: str | int) -> int:
    """
    Return size in bytes from integer or string.

    Strings may carry a binary suffix, e.g. 4M, 512K, 1GiB.
    """
    if isinstance(value, int):
        size = value
    else:
        match = re.fullmatch(
            r"\s*(\d+)\s*([KMGT]?)(?:i?B)?\s*", value, flags=re.IGNORECASE
        )
        if not match:
            raise InputValidationError(f"Invalid size '{value}'")
        size = int(match.group(1)) * SIZE_SUFFIXES[match.group(2).upper()]
    if size < 0:
        raise InputValidationError(f"Size must not be negative: {size}")
    return size


def lba_to_chs(lba: int) -> bytes:
    """Return packed 3-byte CHS address for LBA, saturating at the CHS limit."""
    cylinder, remainder = divmod(lba, CHS_HEADS * CHS_SECTORS_PER_TRACK)
    head, sector = divmod(remainder, CHS_SECTORS_PER_TRACK)
    sector += 1
    if cylinder > CHS_MAX_CYLINDER:
        cylinder, head, sector = CHS_MAX_CYLINDER, CHS_HEADS - 1, CHS_SECTORS_PER_TRACK
    return bytes(
        (head, ((cylinder >> 2) & 0xC0) | (sector & 0x3F), cylinder & 0xFF)
    )


def replace_bytes(data: bytes, replacement: bytes, offset: int) -> bytes:
    """Return data with bytes from offset replaced by replacement."""
    return data[:offset] + replacement + data[offset + len(replacement) :]


def get_size_of(path: str | os.PathLike) -> int:
    """Return exact size of file or block device in bytes."""
    path = Path(path)
    if path.is_block_device():
        with open(path, "rb") as fd:
            return fd.seek(0, os.SEEK_END)
    return path.stat().st_size


def require_tools(tools: Iterable[str]) -> None:
    """Raise ToolNotFoundError for the first tool which is not in PATH."""
    for tool in tools:
        if shutil.which(tool) is None:
            raise ToolNotFoundError(tool)


def run_process(*args, **kwargs) -> str:
    """Run process and return stdout or raise exception if failed."""
    LOG.debug("Running: %s", " ".join(str(arg) for arg in args[0]))
    try:
        return (
            subprocess.run(
                *args,
                capture_output=kwargs.pop("capture_output", True),
                check=kwargs.pop("check", True),
                **kwargs,
            )
            .stdout.strip()
            .decode()
        )
    except FileNotFoundError as error:
        raise ToolNotFoundError(str(args[0][0])) from error
    except subprocess.CalledProcessError as error:
        raise ToolExecutionError.from_called_process_error(error) from error
