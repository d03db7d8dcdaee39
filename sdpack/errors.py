"""Exceptions raised while building disk images."""

import subprocess


class PackError(Exception):
    """Base class for all image packing errors."""


class ToolNotFoundError(PackError):
    """Required external tool is not available in PATH."""

    def __init__(self, tool: str) -> None:
        """Initialise exception with name of missing tool."""
        self.tool = tool
        super().__init__(f"required tool '{tool}' not found in PATH")


class InputValidationError(PackError):
    """Input file or parameter is missing or invalid."""


class ToolExecutionError(PackError):
    """External tool returned a failure status."""

    def __init__(
        self, args: list[str], returncode: int, stderr: str | None = None
    ) -> None:
        """Initialise exception with command, exit status and diagnostic output."""
        self.command = [str(arg) for arg in args]
        self.returncode = returncode
        self.stderr = stderr or ""
        super().__init__(
            f"'{self.command[0]}' failed with exit status {returncode}"
        )

    @classmethod
    def from_called_process_error(
        cls: type["ToolExecutionError"], error: subprocess.CalledProcessError
    ) -> "ToolExecutionError":
        """Return instance from CalledProcessError."""
        stderr = error.stderr
        if isinstance(stderr, bytes):
            stderr = stderr.decode(errors="replace")
        return cls(error.cmd, error.returncode, (stderr or "").strip())


class TableWriteError(PackError):
    """Partition table could not be constructed or written."""


class PayloadCopyError(PackError):
    """Blob content could not be copied into the disk image."""
