"""Writers for partition tables, one per partitioning tool."""

from sdpack.errors import InputValidationError
from sdpack.tables.base import BaseTableWriter
from sdpack.tables.native import NativeTableWriter
from sdpack.tables.sfdisk import SfdiskTableWriter, format_sfdisk_script
from sdpack.tables.sgdisk import SgdiskTableWriter

try:
    from sdpack.tables.libparted import LibpartedTableWriter
except ImportError:
    LIBPARTED_AVAILABLE = False
else:
    LIBPARTED_AVAILABLE = True

TABLE_WRITERS: dict[str, type[BaseTableWriter]] = {
    NativeTableWriter.NAME: NativeTableWriter,
    SfdiskTableWriter.NAME: SfdiskTableWriter,
    SgdiskTableWriter.NAME: SgdiskTableWriter,
}
if LIBPARTED_AVAILABLE:
    TABLE_WRITERS[LibpartedTableWriter.NAME] = LibpartedTableWriter

WRITER_NAMES = ("native", "sfdisk", "sgdisk", "libparted")


def get_writer(name: str, **kwargs) -> BaseTableWriter:
    """Return instance of table writer with name."""
    if name == "libparted" and not LIBPARTED_AVAILABLE:
        raise InputValidationError(
            "Table writer 'libparted' is not available (pyparted is not installed)"
        )
    try:
        return TABLE_WRITERS[name](**kwargs)
    except KeyError:
        raise InputValidationError(
            f"Unknown table writer '{name}' (choose from {', '.join(WRITER_NAMES)})"
        ) from None


__all__ = [
    "LIBPARTED_AVAILABLE",
    "TABLE_WRITERS",
    "WRITER_NAMES",
    "BaseTableWriter",
    "NativeTableWriter",
    "SfdiskTableWriter",
    "SgdiskTableWriter",
    "format_sfdisk_script",
    "get_writer",
]
