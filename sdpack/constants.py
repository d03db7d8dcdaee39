"""Constants for disk images, partition tables and partition types."""

import enum
import uuid

SECTOR_SIZE = 512
KIB = 1024
MIB = 1024 * KIB

DEFAULT_CHUNK_SIZE = 4 * MIB

# MBR
MBR_SIZE = SECTOR_SIZE
MBR_BOOTSTRAP_SIZE = 440
MBR_SIGNATURE = b"\x55\xaa"
MBR_MAX_PARTITIONS = 4
MBR_MAX_SECTORS = 0xFFFFFFFF
MBR_STATUS_ACTIVE = 0x80
MBR_STATUS_INACTIVE = 0x00

# CHS geometry used when translating LBA for MBR entries
CHS_HEADS = 255
CHS_SECTORS_PER_TRACK = 63
CHS_MAX_CYLINDER = 1023

# GPT
GPT_SIGNATURE = b"EFI PART"
GPT_REVISION = b"\x00\x00\x01\x00"  # 1.0
GPT_HEADER_SIZE = 92
GPT_PARTITION_ENTRY_SIZE = 128
GPT_PARTITION_ENTRIES = 128
GPT_PARTITION_NAME_LENGTH = 36  # UTF-16 code units
GPT_ENTRIES_SECTORS = (
    GPT_PARTITION_ENTRIES * GPT_PARTITION_ENTRY_SIZE // SECTOR_SIZE
)  # 32
GPT_PRIMARY_LBA = 1
GPT_ENTRIES_LBA = 2
# Backup entry array and backup header at the end of the disk
GPT_BACKUP_SECTORS = GPT_ENTRIES_SECTORS + 1  # 33
GPT_FIRST_USABLE_SECTOR = 2048
GPT_TRAILING_SECTORS = 34

# GPT partition attribute bit
GPT_ATTRIBUTE_LEGACY_BIOS_BOOTABLE = 2


class TableScheme(str, enum.Enum):
    """Enumeration for partition table schemes."""

    DOS = "dos"
    GPT = "gpt"


class MBRPartitionType(enum.IntEnum):
    """Enumeration for MBR partition type bytes."""

    EMPTY = 0x00
    FAT12 = 0x01
    FAT16 = 0x06
    FAT32 = 0x0B
    FAT32_LBA = 0x0C
    LINUX_SWAP = 0x82
    LINUX = 0x83
    GPT_PROTECTIVE = 0xEE
    EFI_SYSTEM = 0xEF


class GPTPartitionType(enum.Enum):
    """Enumeration for GPT partition type GUIDs."""

    UNUSED = uuid.UUID("00000000-0000-0000-0000-000000000000")
    EFI_SYSTEM = uuid.UUID("c12a7328-f81f-11d2-ba4b-00a0c93ec93b")
    BIOS_BOOT = uuid.UUID("21686148-6449-6e6f-744e-656564454649")
    MICROSOFT_BASIC_DATA = uuid.UUID("ebd0a0a2-b9e5-4433-87c0-68b6b72699c7")
    LINUX_FILESYSTEM = uuid.UUID("0fc63daf-8483-4772-8e79-3d69d8477de4")
    LINUX_ROOT_ARM64 = uuid.UUID("b921b045-1df0-41c3-af44-4c6f280d3fae")
    LINUX_SWAP = uuid.UUID("0657fd6d-a4ab-43c4-84e5-0933c84b4f4f")


# Aliases accepted wherever a partition type is given, named as sfdisk does
PARTITION_TYPE_ALIASES: dict[str, tuple[MBRPartitionType, GPTPartitionType]] = {
    "uefi": (MBRPartitionType.EFI_SYSTEM, GPTPartitionType.EFI_SYSTEM),
    "esp": (MBRPartitionType.EFI_SYSTEM, GPTPartitionType.EFI_SYSTEM),
    "linux": (MBRPartitionType.LINUX, GPTPartitionType.LINUX_FILESYSTEM),
    "linux-filesystem": (MBRPartitionType.LINUX, GPTPartitionType.LINUX_FILESYSTEM),
    "root-arm64": (MBRPartitionType.LINUX, GPTPartitionType.LINUX_ROOT_ARM64),
    "swap": (MBRPartitionType.LINUX_SWAP, GPTPartitionType.LINUX_SWAP),
    "fat12": (MBRPartitionType.FAT12, GPTPartitionType.MICROSOFT_BASIC_DATA),
    "fat16": (MBRPartitionType.FAT16, GPTPartitionType.MICROSOFT_BASIC_DATA),
    "fat32": (MBRPartitionType.FAT32_LBA, GPTPartitionType.MICROSOFT_BASIC_DATA),
    "basic-data": (MBRPartitionType.FAT32_LBA, GPTPartitionType.MICROSOFT_BASIC_DATA),
}

# sgdisk expects its own two-byte hex codes
SGDISK_TYPE_CODES: dict[GPTPartitionType, str] = {
    GPTPartitionType.EFI_SYSTEM: "EF00",
    GPTPartitionType.BIOS_BOOT: "EF02",
    GPTPartitionType.MICROSOFT_BASIC_DATA: "0700",
    GPTPartitionType.LINUX_FILESYSTEM: "8300",
    GPTPartitionType.LINUX_ROOT_ARM64: "8305",
    GPTPartitionType.LINUX_SWAP: "8200",
}
