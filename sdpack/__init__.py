"""
Pack pre-built filesystem images into flashable disk images.

A packed SD card image for the handheld has the following layout:
- Sector 0
  - MBR, or protective MBR for GPT
- Sectors 1-33 (GPT only)
  - Primary GPT header and partition entries
- Partition 1, at the first alignment boundary
  - FAT ESP with GRUB
- Partition 2, at the next alignment boundary
  - ext4 root filesystem
- Alignment padding
- Last 33 sectors (GPT only)
  - Backup partition entries and GPT header
"""

from sdpack.config import PRESETS, PackerConfig, SchemeConfig, get_preset
from sdpack.esp import EspBuilder, EspOptions, GrubConfig
from sdpack.image import DiskImage
from sdpack.layout import (
    Blob,
    DiskLayout,
    PartitionRequest,
    PartitionSpec,
    compute_layout,
)
from sdpack.packer import ImagePacker, PackResult

__all__ = [
    "PRESETS",
    "Blob",
    "DiskImage",
    "DiskLayout",
    "EspBuilder",
    "EspOptions",
    "GrubConfig",
    "ImagePacker",
    "PackResult",
    "PackerConfig",
    "PartitionRequest",
    "PartitionSpec",
    "SchemeConfig",
    "compute_layout",
    "get_preset",
]
