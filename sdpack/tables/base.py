"""Abstract base class for partition table writers."""

import abc
import os
import uuid
from typing import ClassVar

from sdpack.constants import TableScheme
from sdpack.errors import TableWriteError
from sdpack.layout import DiskLayout


class BaseTableWriter(abc.ABC):
    """Abstract base class to write a partition table for a layout into an image."""

    NAME: ClassVar[str]
    SCHEMES: ClassVar[frozenset[TableScheme]] = frozenset(TableScheme)
    REQUIRED_TOOLS: ClassVar[tuple[str, ...]] = ()

    def __init__(
        self, disk_id: int | None = None, disk_guid: uuid.UUID | None = None
    ) -> None:
        """Initialise writer with optional disk identifiers."""
        self.disk_id = disk_id
        self.disk_guid = disk_guid

    def supports(self, scheme: TableScheme) -> bool:
        """Return whether writer can write tables of scheme."""
        return scheme in self.SCHEMES

    def check(self, layout: DiskLayout) -> None:
        """Raise TableWriteError if writer cannot write layout."""
        if not self.supports(layout.scheme.scheme):
            raise TableWriteError(
                f"Table writer '{self.NAME}' does not support "
                f"{layout.scheme.scheme.value} partition tables"
            )

    @abc.abstractmethod
    def write(self, path: str | os.PathLike, layout: DiskLayout) -> None:
        """Write partition table for layout into allocated image at path."""
        ...
