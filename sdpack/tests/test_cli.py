"""Unit tests for the command-line interface."""

import json
from pathlib import Path

import pytest

from sdpack.cli import get_parser, main
from sdpack.constants import SECTOR_SIZE
from sdpack.errors import ToolExecutionError

DISK_GUID = "6b1c2a8e-3f4d-4e5a-9b7c-0d1e2f3a4b5c"


def run_main(argv: list[str]) -> int:
    """Run main with arguments, returning exit status."""
    try:
        main(argv)
    except SystemExit as error:
        return error.code
    return 0


def test_sd_missing_esp(
    capsys: pytest.CaptureFixture,
    tmp_path: Path,
    output_dir: Path,
    rootfs_blob: Path,
) -> None:
    """Test a missing ESP image exits non-zero with a diagnostic."""
    argv = [
        "sd",
        str(tmp_path / "missing.img"),
        str(rootfs_blob),
        str(output_dir / "sd.img"),
        "2a7d8e6c-1f3b-4c5d-8e9f-0a1b2c3d4e5f",
        "rootfs",
    ]
    assert run_main(argv) == 1
    assert "missing.img" in capsys.readouterr().err
    assert list(output_dir.iterdir()) == []


def test_sd_empty_uuid(
    capsys: pytest.CaptureFixture,
    output_dir: Path,
    esp_blob: Path,
    rootfs_blob: Path,
) -> None:
    """Test an empty filesystem UUID exits non-zero before writing output."""
    argv = ["sd", str(esp_blob), str(rootfs_blob), str(output_dir / "sd.img"), "", "rootfs"]
    assert run_main(argv) == 1
    assert "Filesystem UUID must be provided" in capsys.readouterr().err
    assert list(output_dir.iterdir()) == []


def test_sd(
    monkeypatch: pytest.MonkeyPatch,
    output_dir: Path,
    esp_blob: Path,
    rootfs_blob: Path,
) -> None:
    """Test packing the SD card layout with a configured table writer."""
    commands = []
    monkeypatch.setattr("sdpack.packer.require_tools", lambda tools: None)
    monkeypatch.setattr(
        "sdpack.identity.run_process",
        lambda command, **kwargs: commands.append(command) or "",
    )
    output = output_dir / "sd.img"
    argv = [
        "sd",
        "--table-writer=native",
        "--no-sudo",
        str(esp_blob),
        str(rootfs_blob),
        str(output),
        "2a7d8e6c-1f3b-4c5d-8e9f-0a1b2c3d4e5f",
        "rootfs-a",
    ]
    assert run_main(argv) == 0
    assert commands == [
        ["tune2fs", "-U", "2a7d8e6c-1f3b-4c5d-8e9f-0a1b2c3d4e5f", str(rootfs_blob)]
    ]
    assert output.stat().st_size == 40994 * SECTOR_SIZE


def test_pack_and_info(
    capsys: pytest.CaptureFixture,
    output_dir: Path,
    esp_blob: Path,
    rootfs_blob: Path,
) -> None:
    """Test packing a GPT image and reading its partition table as JSON."""
    output = output_dir / "disk.img"
    argv = [
        "pack",
        str(output),
        "--preset=gpt",
        "--table-writer=native",
        f"--disk-guid={DISK_GUID}",
        "-p",
        f"{esp_blob}:uefi:ESP",
        "-p",
        f"{rootfs_blob}:linux:rootfs",
    ]
    assert run_main(argv) == 0
    assert run_main(["info", "--json", str(output)]) == 0
    info = json.loads(capsys.readouterr().out)
    assert info["scheme"] == "gpt"
    assert info["disk_guid"] == DISK_GUID
    assert [
        (partition["start"], partition["sectors"], partition["name"])
        for partition in info["partitions"]
    ] == [(2048, 8192, "ESP"), (10240, 20480, "rootfs")]


def test_layout(capsys: pytest.CaptureFixture, esp_blob: Path, rootfs_blob: Path) -> None:
    """Test displaying a layout without writing an image."""
    argv = [
        "layout",
        "--json",
        "--alignment=1M",
        "-p",
        f"{esp_blob}:uefi",
        "-p",
        str(rootfs_blob),
    ]
    assert run_main(argv) == 0
    layout = json.loads(capsys.readouterr().out)
    assert layout["scheme"] == "dos"
    assert layout["alignment"] == 1024 * 1024
    assert [
        (partition["start"], partition["type"], partition["bootable"])
        for partition in layout["partitions"]
    ] == [(2048, "0xef", True), (10240, "0x83", False)]


def test_tool_stderr(
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture,
    output_dir: Path,
    esp_blob: Path,
) -> None:
    """Test diagnostic output of a failing tool is shown."""

    def run_process(command: list[str], **kwargs) -> str:
        raise ToolExecutionError(command, 1, "sfdisk: failed to parse script")

    monkeypatch.setattr("sdpack.packer.require_tools", lambda tools: None)
    monkeypatch.setattr("sdpack.tables.sfdisk.run_process", run_process)
    argv = ["pack", str(output_dir / "disk.img"), "-p", str(esp_blob)]
    assert run_main(argv) == 1
    err = capsys.readouterr().err
    assert "sfdisk: failed to parse script" in err
    assert "'sfdisk' failed with exit status 1" in err
    assert list(output_dir.iterdir()) == []


def test_info_missing(capsys: pytest.CaptureFixture, tmp_path: Path) -> None:
    """Test reading a missing disk image exits non-zero."""
    assert run_main(["info", str(tmp_path / "missing.img")]) == 1
    assert "Unable to read disk image" in capsys.readouterr().err


def test_invalid_disk_guid(capsys: pytest.CaptureFixture, esp_blob: Path, tmp_path: Path) -> None:
    """Test invalid disk GUIDs exit non-zero."""
    argv = ["pack", str(tmp_path / "disk.img"), "--disk-guid=nope", "-p", str(esp_blob)]
    assert run_main(argv) == 1
    assert "Invalid disk GUID" in capsys.readouterr().err


@pytest.mark.parametrize(
    "argv",
    [
        [],
        ["sd"],
        ["pack", "disk.img"],
        ["layout", "--preset=hybrid", "-p", "esp.img"],
    ],
)
def test_usage_error(argv: list[str]) -> None:
    """Test invalid command lines exit with usage status."""
    with pytest.raises(SystemExit) as excinfo:
        get_parser().parse_args(argv)
    assert excinfo.value.code == 2


def test_output_not_writable(
    capsys: pytest.CaptureFixture,
    tmp_path: Path,
    esp_blob: Path,
    rootfs_blob: Path,
) -> None:
    """Test an output path below a regular file exits with a diagnostic."""
    blocker = tmp_path / "blocker"
    blocker.write_bytes(b"file")
    argv = [
        "pack",
        str(blocker / "disk.img"),
        "--table-writer=native",
        "-p",
        f"{esp_blob}:uefi",
        "-p",
        f"{rootfs_blob}:linux",
    ]
    assert run_main(argv) == 1
    err = capsys.readouterr().err
    assert err.startswith("Error: Unable to create output")
    assert "Traceback" not in err
    assert blocker.read_bytes() == b"file"


def test_gpt_without_trailing_sectors(
    capsys: pytest.CaptureFixture, esp_blob: Path
) -> None:
    """Test switching the default preset to GPT names the option to change."""
    assert run_main(["layout", "--scheme=gpt", "-p", str(esp_blob)]) == 1
    assert "--trailing-sectors" in capsys.readouterr().err
    assert run_main(
        ["layout", "--scheme=gpt", "--trailing-sectors=34", "-p", str(esp_blob)]
    ) == 0
