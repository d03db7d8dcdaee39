"""Context managers to publish output files atomically."""

import abc
import contextlib
import logging
import os
import tempfile
from collections.abc import Generator
from pathlib import Path
from types import TracebackType
from typing import Any

from sdpack.errors import InputValidationError, PayloadCopyError

LOG = logging.getLogger(__name__)


class BaseContext(contextlib.AbstractContextManager):
    """Base class for helper context managers."""

    def __init__(self, *args, **kwargs) -> None:
        """Initialise instance with passed arguments."""
        self._args = args
        self._kwargs = kwargs

    def __enter__(self) -> Any:
        """Enter runtime context for object."""
        self._context = self.context(*self._args, **self._kwargs)
        return self._context.__enter__()

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> bool | None:
        """Exit runtime context for object."""
        return self._context.__exit__(exc_type, exc_value, traceback)

    @classmethod
    @contextlib.contextmanager
    @abc.abstractmethod
    def context(cls: type["BaseContext"], *args, **kwargs) -> Generator[Any]:
        """Abstract class method allowing helper classes to be used as context managers."""
        ...


class AtomicOutput(BaseContext):
    """
    Helper class to build an output file under a temporary name.

    The temporary file is created beside the output, so the final rename
    stays on one filesystem. On leaving the context without an exception it
    replaces the output; otherwise it is removed and the output is untouched.
    """

    @staticmethod
    def create(output: str | os.PathLike) -> Path:
        """Create uniquely named empty temporary file beside output."""
        output = Path(output)
        try:
            output.parent.mkdir(parents=True, exist_ok=True)
            fd, name = tempfile.mkstemp(prefix=f"{output.name}.tmp.", dir=output.parent)
        except OSError as error:
            raise InputValidationError(
                f"Unable to create output in '{output.parent}': {error.strerror}"
            ) from error
        os.close(fd)
        return Path(name)

    @staticmethod
    def publish(path: str | os.PathLike, output: str | os.PathLike) -> None:
        """Rename temporary file over output."""
        try:
            os.replace(path, output)
        except OSError as error:
            raise PayloadCopyError(
                f"Unable to write '{output}': {error.strerror}"
            ) from error
        LOG.info("Wrote '%s'", output)

    @staticmethod
    def discard(path: str | os.PathLike) -> None:
        """Remove temporary file if it still exists."""
        Path(path).unlink(missing_ok=True)

    @classmethod
    @contextlib.contextmanager
    def context(
        cls: type["AtomicOutput"], output: str | os.PathLike
    ) -> Generator[Path]:
        """Context manager yielding temporary path, published on success."""
        path = cls.create(output)
        try:
            yield path
            cls.publish(path, output)
        finally:
            cls.discard(path)
