"""
Build the FAT EFI System Partition image from a GRUB ESP tree.

The tree is staged in a temporary directory, unused GRUB modules are
removed and a stub grub.cfg is written which locates the root filesystem
by UUID and chains to its own configuration. The image is formatted with
mkfs.vfat and populated with mtools, so nothing is mounted.
"""

import logging
import os
import shutil
import tarfile
import tempfile
from dataclasses import dataclass
from pathlib import Path

from sdpack.constants import MIB
from sdpack.errors import InputValidationError
from sdpack.image import DiskImage
from sdpack.publish import AtomicOutput
from sdpack.utils import require_tools, run_process

LOG = logging.getLogger(__name__)

GRUB_MODULE_DIR = "boot/grub/arm64-efi"
GRUB_CONFIG_PATH = "boot/grub/grub.cfg"
DEFAULT_KEEP_MODULES = ("ext2.mod", "part_msdos.mod", "part_gpt.mod")
FAT_LABEL_LENGTH = 11


@dataclass(frozen=True)
class GrubConfig:
    """Dataclass for the stub GRUB configuration stored on the ESP."""

    root_uuid: str
    device_tree: str
    partlabel: str
    config_file: str = "grub2.cfg"

    def __post_init__(self) -> None:
        """Validate configuration values."""
        for name in ("root_uuid", "device_tree", "partlabel", "config_file"):
            value = getattr(self, name)
            if not value or not value.strip():
                raise InputValidationError(f"GRUB {name} must be provided")
            if any(char.isspace() for char in value):
                raise InputValidationError(
                    f"GRUB {name} '{value}' must not contain whitespace"
                )

    def get_commands(self) -> list[tuple[str, ...]]:
        """Return GRUB commands of configuration."""
        return [
            ("search.fs_uuid", self.root_uuid, "root"),
            ("set", "prefix=($root)/boot/grub"),
            ("set", f"device_tree={self.device_tree}"),
            ("save_env", "device_tree"),
            ("set", f"partlabel={self.partlabel}"),
            ("save_env", "partlabel"),
            ("configfile", f"$prefix/{self.config_file}"),
        ]

    def to_text(self) -> str:
        """Return configuration in grub.cfg format."""
        return "".join(" ".join(command) + "\n" for command in self.get_commands())


@dataclass(frozen=True)
class EspOptions:
    """Dataclass for options of the ESP image."""

    size: int = 32 * MIB
    label: str = "LOGFS"
    fat_size: int = 12
    sector_size: int = 4096
    keep_modules: tuple[str, ...] = DEFAULT_KEEP_MODULES
    compress: bool = False

    def __post_init__(self) -> None:
        """Validate options."""
        if self.size <= 0:
            raise InputValidationError("ESP size must be positive")
        if self.fat_size not in (12, 16, 32):
            raise InputValidationError(f"Invalid FAT size {self.fat_size}")
        if not self.label or len(self.label) > FAT_LABEL_LENGTH:
            raise InputValidationError(
                f"FAT label must have 1 to {FAT_LABEL_LENGTH} characters"
            )


class EspBuilder:
    """Class to build an ESP image from a GRUB ESP tree."""

    REQUIRED_TOOLS = ("mkfs.vfat", "mcopy")
    COMPRESS_TOOL = "7z"

    def __init__(self, options: EspOptions | None = None) -> None:
        """Initialise builder with options."""
        self.options = options or EspOptions()

    @property
    def required_tools(self) -> tuple[str, ...]:
        """Return names of tools required to build image."""
        if self.options.compress:
            return (*self.REQUIRED_TOOLS, self.COMPRESS_TOOL)
        return self.REQUIRED_TOOLS

    @staticmethod
    def stage(source: str | os.PathLike, directory: str | os.PathLike) -> Path:
        """Copy directory or extract tarball at source to directory."""
        source, directory = Path(source), Path(directory)
        try:
            if source.is_dir():
                shutil.copytree(source, directory, dirs_exist_ok=True)
            elif source.is_file() and tarfile.is_tarfile(source):
                with tarfile.open(source) as tar:
                    tar.extractall(directory, filter="data")
            else:
                raise InputValidationError(
                    f"ESP source '{source}' is neither a directory nor a tarball"
                )
        except (OSError, tarfile.TarError) as error:
            raise InputValidationError(
                f"Unable to stage ESP source '{source}': {error}"
            ) from error
        return directory

    def prune_modules(self, root: str | os.PathLike) -> list[Path]:
        """Remove GRUB modules which are not kept, returning removed paths."""
        module_dir = Path(root, GRUB_MODULE_DIR)
        if not module_dir.is_dir():
            return []
        keep = set(self.options.keep_modules) | {"grub.cfg"}
        removed = [
            path
            for path in sorted(module_dir.rglob("*"))
            if path.is_file() and path.name not in keep
        ]
        for path in removed:
            path.unlink()
        LOG.debug("Removed %d unused GRUB modules", len(removed))
        return removed

    @staticmethod
    def write_config(root: str | os.PathLike, grub_config: GrubConfig) -> Path:
        """Write stub grub.cfg to staged tree."""
        path = Path(root, GRUB_CONFIG_PATH)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(grub_config.to_text())
        return path

    def format(self, path: str | os.PathLike) -> None:
        """Create FAT filesystem on image at path."""
        run_process(
            [
                "mkfs.vfat",
                "-F",
                str(self.options.fat_size),
                "-S",
                str(self.options.sector_size),
                "-n",
                self.options.label,
                os.fspath(path),
            ]
        )

    @staticmethod
    def populate(path: str | os.PathLike, root: str | os.PathLike) -> None:
        """Copy content of root recursively into FAT image at path."""
        entries = sorted(Path(root).iterdir())
        if not entries:
            raise InputValidationError("ESP tree is empty")
        run_process(
            ["mcopy", "-s", "-i", os.fspath(path), *map(os.fspath, entries), "::/"],
            env={**os.environ, "MTOOLS_SKIP_CHECK": "1"},
        )

    def compress(self, path: str | os.PathLike) -> Path:
        """Compress image at path with 7z, returning archive path."""
        archive = Path(f"{os.fspath(path)}.7z")
        archive.unlink(missing_ok=True)  # 7z would add to an existing archive
        run_process([self.COMPRESS_TOOL, "a", "-t7z", "-mx=9", archive, os.fspath(path)])
        return archive

    def build(
        self,
        source: str | os.PathLike,
        output: str | os.PathLike,
        grub_config: GrubConfig,
    ) -> Path:
        """Build ESP image at output from source tree, returning produced path."""
        if not Path(source).exists():
            raise InputValidationError(f"ESP source '{source}' not found")
        require_tools(self.required_tools)
        with tempfile.TemporaryDirectory() as staging:
            root = self.stage(source, staging)
            self.prune_modules(root)
            self.write_config(root, grub_config)
            with AtomicOutput(output) as path:
                DiskImage(path).allocate(self.options.size)
                self.format(path)
                self.populate(path, root)
        if self.options.compress:
            return self.compress(output)
        return Path(output)
