"""Unit tests for helper functions."""

import pytest

from sdpack.errors import InputValidationError, ToolExecutionError, ToolNotFoundError
from sdpack.utils import is_power_of_two, parse_size, require_tools, run_process


@pytest.mark.parametrize(
    "value,expected",
    [
        (512, 512),
        ("512", 512),
        ("512K", 512 * 1024),
        ("4M", 4 * 1024 * 1024),
        ("4MiB", 4 * 1024 * 1024),
        ("1g", 1024**3),
        (" 2 GB ", 2 * 1024**3),
    ],
)
def test_parse_size(value: str | int, expected: int) -> None:
    """Test parsing sizes with binary suffixes."""
    assert parse_size(value) == expected


@pytest.mark.parametrize("value", ["", "M", "4X", "-1", "1.5M", -1])
def test_parse_size_invalid(value: str | int) -> None:
    """Test invalid sizes are rejected."""
    with pytest.raises(InputValidationError):
        parse_size(value)


def test_is_power_of_two() -> None:
    """Test power of two check."""
    assert [value for value in range(-1, 17) if is_power_of_two(value)] == [1, 2, 4, 8, 16]


def test_run_process() -> None:
    """Test running a process returns its stripped output."""
    assert run_process(["sh", "-c", "echo ' output '"]) == "output"


def test_run_process_failure() -> None:
    """Test a failing process raises ToolExecutionError with its stderr."""
    with pytest.raises(ToolExecutionError) as excinfo:
        run_process(["sh", "-c", "echo failure >&2; exit 3"])
    assert excinfo.value.returncode == 3
    assert excinfo.value.stderr == "failure"
    assert excinfo.value.command[0] == "sh"


def test_run_process_not_found() -> None:
    """Test a missing executable raises ToolNotFoundError."""
    with pytest.raises(ToolNotFoundError) as excinfo:
        run_process(["sdpack-missing-tool", "--help"])
    assert excinfo.value.tool == "sdpack-missing-tool"


def test_require_tools() -> None:
    """Test checking external tools are available."""
    require_tools(["sh"])
    with pytest.raises(ToolNotFoundError, match="sdpack-missing-tool"):
        require_tools(["sh", "sdpack-missing-tool"])
