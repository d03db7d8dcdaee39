"""Configuration for partition schemes and the image packer."""

import configparser
import dataclasses
import os
import uuid
from dataclasses import dataclass, field
from typing import Any

from sdpack.constants import (
    DEFAULT_CHUNK_SIZE,
    GPT_BACKUP_SECTORS,
    GPT_ENTRIES_LBA,
    GPT_ENTRIES_SECTORS,
    GPT_FIRST_USABLE_SECTOR,
    GPT_PARTITION_ENTRIES,
    GPT_TRAILING_SECTORS,
    MBR_MAX_PARTITIONS,
    MIB,
    SECTOR_SIZE,
    TableScheme,
)
from sdpack.errors import InputValidationError
from sdpack.utils import is_power_of_two, parse_size


@dataclass(frozen=True)
class SchemeConfig:
    """
    Dataclass describing placement conventions of a partition table scheme.

    first_sector of None places the first partition on the first alignment
    boundary. esp_bootable sets the active flag (MBR) or the legacy BIOS
    bootable attribute (GPT) on EFI System partitions.
    """

    scheme: TableScheme = TableScheme.DOS
    alignment: int = 4 * MIB
    first_sector: int | None = None
    trailing_sectors: int = 0
    esp_bootable: bool = True

    def __post_init__(self) -> None:
        """Validate scheme conventions."""
        if not is_power_of_two(self.alignment) or self.alignment < SECTOR_SIZE:
            raise InputValidationError(
                f"Alignment must be a power of two of at least {SECTOR_SIZE} "
                f"bytes, got {self.alignment}"
            )
        if self.trailing_sectors < 0:
            raise InputValidationError("Trailing sectors must not be negative")
        if self.first_sector is not None and self.first_sector < self.reserved_sectors:
            raise InputValidationError(
                f"First sector {self.first_sector} overlaps the {self.scheme.value} "
                f"partition table (minimum is {self.reserved_sectors})"
            )
        if self.trailing_sectors < self.backup_sectors:
            raise InputValidationError(
                f"{self.scheme.value} tables need at least {self.backup_sectors} "
                f"trailing sectors for the backup table, got {self.trailing_sectors} "
                "(set trailing_sectors or --trailing-sectors)"
            )

    @property
    def alignment_sectors(self) -> int:
        """Return alignment unit in sectors."""
        return self.alignment // SECTOR_SIZE

    @property
    def start_sector(self) -> int:
        """Return start sector of the first partition."""
        if self.first_sector is None:
            return self.alignment_sectors
        return self.first_sector

    @property
    def reserved_sectors(self) -> int:
        """Return number of sectors occupied by the table at the start of the disk."""
        if self.scheme == TableScheme.GPT:
            return GPT_ENTRIES_LBA + GPT_ENTRIES_SECTORS
        return 1

    @property
    def backup_sectors(self) -> int:
        """Return number of sectors required at the end of the disk."""
        if self.scheme == TableScheme.GPT:
            return GPT_BACKUP_SECTORS
        return 0

    @property
    def max_partitions(self) -> int:
        """Return maximum number of partitions for scheme."""
        if self.scheme == TableScheme.GPT:
            return GPT_PARTITION_ENTRIES
        return MBR_MAX_PARTITIONS


@dataclass(frozen=True)
class PackerConfig:
    """
    Dataclass for all options of the image packer.

    disk_id (MBR disk signature) and disk_guid (GPT) are generated randomly
    by the table writer when not specified.
    """

    scheme: SchemeConfig = field(default_factory=SchemeConfig)
    table_writer: str = "sfdisk"
    use_sudo: bool = False
    chunk_size: int = DEFAULT_CHUNK_SIZE
    fsync: bool = True
    disk_id: int | None = None
    disk_guid: uuid.UUID | None = None

    def __post_init__(self) -> None:
        """Validate packer options."""
        if self.chunk_size <= 0:
            raise InputValidationError("Chunk size must be positive")
        if self.disk_id is not None and not 0 <= self.disk_id <= 0xFFFFFFFF:
            raise InputValidationError(f"Invalid MBR disk identifier {self.disk_id}")

    def replace(self, **changes: Any) -> "PackerConfig":
        """Return copy of config with changes applied to it or its scheme."""
        scheme_changes = {
            name: changes.pop(name) for name in list(changes) if name in SCHEME_OPTIONS
        }
        if scheme_changes:
            changes["scheme"] = dataclasses.replace(self.scheme, **scheme_changes)
        return dataclasses.replace(self, **changes)


SCHEME_OPTIONS = frozenset(field.name for field in dataclasses.fields(SchemeConfig))

PRESETS: dict[str, PackerConfig] = {
    "dos": PackerConfig(
        scheme=SchemeConfig(
            scheme=TableScheme.DOS,
            alignment=4 * MIB,
            first_sector=None,
            trailing_sectors=0,
            esp_bootable=True,
        ),
        table_writer="sfdisk",
    ),
    "gpt": PackerConfig(
        scheme=SchemeConfig(
            scheme=TableScheme.GPT,
            alignment=1 * MIB,
            first_sector=GPT_FIRST_USABLE_SECTOR,
            trailing_sectors=GPT_TRAILING_SECTORS,
            esp_bootable=False,
        ),
        table_writer="sgdisk",
    ),
    # SD card images for the handheld: GPT on 4 MiB erase blocks
    "sdcard": PackerConfig(
        scheme=SchemeConfig(
            scheme=TableScheme.GPT,
            alignment=4 * MIB,
            first_sector=None,
            trailing_sectors=GPT_TRAILING_SECTORS,
            esp_bootable=True,
        ),
        table_writer="sfdisk",
    ),
}

DEFAULT_PRESET = "dos"


def get_preset(name: str) -> PackerConfig:
    """Return packer configuration for preset name."""
    try:
        return PRESETS[name]
    except KeyError:
        raise InputValidationError(
            f"Unknown preset '{name}' (choose from {', '.join(PRESETS)})"
        ) from None


class ConfigFileParser(configparser.ConfigParser):
    """ConfigParser subclass for packer configuration files."""

    def __init__(self, *args, **kwargs) -> None:
        """Initialise instance of configuration parser."""
        super().__init__(
            *args,
            defaults=kwargs.pop("defaults", None),
            delimiters=kwargs.pop("delimiters", ("=",)),
            strict=kwargs.pop("strict", True),
            **kwargs,
        )

    def get(self, *args, **kwargs) -> Any:
        """Override get method to strip values of quotes."""
        value = super().get(*args, **kwargs)
        if isinstance(value, str):
            return value.strip('"')
        return value


def _get_options(parser: ConfigFileParser) -> dict[str, Any]:
    """Return dictionary of typed options from parsed configuration."""
    options: dict[str, Any] = {}
    if parser.has_section("scheme"):
        section = parser["scheme"]
        if "scheme" in section:
            try:
                options["scheme"] = TableScheme(parser.get("scheme", "scheme"))
            except ValueError:
                raise InputValidationError(
                    f"Unknown scheme '{section['scheme']}'"
                ) from None
        if "alignment" in section:
            options["alignment"] = parse_size(parser.get("scheme", "alignment"))
        if "first_sector" in section:
            value = parser.get("scheme", "first_sector")
            options["first_sector"] = int(value) if value else None
        if "trailing_sectors" in section:
            options["trailing_sectors"] = parser.getint("scheme", "trailing_sectors")
        if "esp_bootable" in section:
            options["esp_bootable"] = parser.getboolean("scheme", "esp_bootable")
    if parser.has_section("packer"):
        section = parser["packer"]
        if "table_writer" in section:
            options["table_writer"] = parser.get("packer", "table_writer")
        if "use_sudo" in section:
            options["use_sudo"] = parser.getboolean("packer", "use_sudo")
        if "chunk_size" in section:
            options["chunk_size"] = parse_size(parser.get("packer", "chunk_size"))
        if "fsync" in section:
            options["fsync"] = parser.getboolean("packer", "fsync")
        if "disk_id" in section:
            options["disk_id"] = int(parser.get("packer", "disk_id"), 0)
        if "disk_guid" in section:
            options["disk_guid"] = uuid.UUID(parser.get("packer", "disk_guid"))
    return options


def load_config(path: str | os.PathLike, base: PackerConfig | None = None) -> PackerConfig:
    """
    Return packer configuration from INI file at path.

    The optional preset key of the [packer] section selects the base
    configuration, otherwise base (or the default preset) is used.
    """
    parser = ConfigFileParser()
    try:
        with open(path) as fd:
            parser.read_file(fd)
    except OSError as error:
        raise InputValidationError(
            f"Unable to read configuration file '{path}': {error.strerror}"
        ) from error
    except configparser.Error as error:
        raise InputValidationError(f"Invalid configuration file '{path}': {error}") from error
    if parser.has_option("packer", "preset"):
        base = get_preset(parser.get("packer", "preset"))
    base = base or get_preset(DEFAULT_PRESET)
    try:
        return base.replace(**_get_options(parser))
    except ValueError as error:
        raise InputValidationError(f"Invalid configuration file '{path}': {error}") from error
