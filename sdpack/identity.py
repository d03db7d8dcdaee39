"""
Functions to rewrite filesystem identifiers of image files in place.

Rewriting an identifier mutates the caller's input image. The packer does
this before the image is embedded, so the copy carries the new identifier.
"""

import logging
import os
import uuid

from sdpack.errors import InputValidationError
from sdpack.utils import run_process

LOG = logging.getLogger(__name__)

# Special values accepted by tune2fs -U in place of a UUID
TUNE2FS_UUID_KEYWORDS = frozenset({"clear", "random", "time"})


def validate_fs_uuid(value: str | None) -> str:
    """Return normalised filesystem UUID, raising if empty or malformed."""
    if value is None or not value.strip():
        raise InputValidationError("Filesystem UUID must be provided")
    value = value.strip()
    if value.lower() in TUNE2FS_UUID_KEYWORDS:
        return value.lower()
    try:
        return str(uuid.UUID(value))
    except ValueError:
        raise InputValidationError(f"Invalid filesystem UUID '{value}'") from None


class Tune2fs:
    """Helper class for tune2fs operations on ext2/3/4 images."""

    TOOL = "tune2fs"

    @classmethod
    def get_command(
        cls: type["Tune2fs"],
        path: str | os.PathLike,
        fs_uuid: str,
        use_sudo: bool = False,
    ) -> list[str]:
        """Return command to set filesystem UUID of image at path."""
        command = [cls.TOOL, "-U", fs_uuid, os.fspath(path)]
        if use_sudo:
            return ["sudo", *command]
        return command

    @classmethod
    def required_tools(cls: type["Tune2fs"], use_sudo: bool = False) -> tuple[str, ...]:
        """Return names of tools required to set filesystem UUID."""
        if use_sudo:
            return ("sudo", cls.TOOL)
        return (cls.TOOL,)

    @classmethod
    def set_uuid(
        cls: type["Tune2fs"],
        path: str | os.PathLike,
        fs_uuid: str,
        use_sudo: bool = False,
    ) -> None:
        """Set filesystem UUID of ext image at path."""
        fs_uuid = validate_fs_uuid(fs_uuid)
        LOG.info("Setting filesystem UUID of '%s' to %s", path, fs_uuid)
        run_process(cls.get_command(path, fs_uuid, use_sudo=use_sudo))
