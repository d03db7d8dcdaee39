"""Mixin classes to extend functionality for various data models."""

import zlib
from typing import ClassVar

from sdpack.utils import replace_bytes


class CRCMixin:
    """
    Provide methods to handle CRC checking.

    The checksum covers all bytes of the model with the CRC attribute itself
    set to zero, as for GPT headers.
    """

    CRC_ATTRIBUTE: ClassVar[str] = "crc"
    crc: int

    def get_crc(self) -> int:
        """Calculate CRC32 of model."""
        offset = self.get_attribute_offset(self.CRC_ATTRIBUTE)
        size = self.get_attribute_size(self.CRC_ATTRIBUTE)
        return zlib.crc32(replace_bytes(self.to_bytes(), bytes(size), offset))

    def update_crc(self) -> None:
        """Set CRC attribute to calculated CRC32 of model."""
        self.crc = self.get_crc()

    def verify(self) -> bool:
        """Verify CRC32 checksum."""
        return self.crc == self.get_crc()
